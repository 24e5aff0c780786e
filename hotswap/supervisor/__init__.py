"""
The Supervisor package.
Keeps one instance of a development binary running and swaps it when it changes.

This package contains the Supervisor control loop and its helper modules,
which together handle argument loading, launching, change detection, signal
handling and killing of the supervised child.
"""
from .supervisor import Supervisor, SupervisorState

__all__ = ['Supervisor', 'SupervisorState']
