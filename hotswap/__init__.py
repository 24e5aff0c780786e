"""
hotswap: restarts a development binary whenever it is rebuilt.

The supervisor launches one executable with arguments read from a sidecar
file, polls the executable on disk for replacement, and relaunches it when it
changes or exits.
"""

__version__ = "0.1.0"
