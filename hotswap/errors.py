"""
Typed exceptions for the supervisor.

Every fatal condition is raised as a subclass of HotswapError. Each class
carries the process exit code that the CLI entry point uses when the error
reaches it, so components never call sys.exit themselves.
"""


class HotswapError(Exception):
    """Base exception for the application."""
    exit_code = 1


class ConfigError(HotswapError):
    """Invalid startup configuration (missing binary, bad interval)."""
    exit_code = 2


class ArgsFileNotFoundError(ConfigError):
    """The arguments file could not be stat'ed at spawn time."""
    exit_code = 2


class SpawnError(HotswapError):
    """The target could not be started for a non-transient reason."""
    exit_code = 3


class SpawnRetryExhaustedError(SpawnError):
    """The target stayed busy for every allowed spawn attempt."""
    exit_code = 4


class WatchError(HotswapError):
    """The watched file could not be inspected for a reason other than absence."""
    exit_code = 5
