"""
This module defines custom exceptions for the mcpio process bridge.
"""
from .models import SetupStage


class BridgeException(Exception):
    """Base class for all custom bridge exceptions."""
    pass


class SpecParseError(BridgeException):
    """Raised when the server argument list cannot be split into server specs."""
    pass


class MalformedGroupError(SpecParseError):
    """Raised when a server group lacks a name or a command."""

    def __init__(self, group: list[str]):
        super().__init__(
            f"server group {' '.join(group)!r} requires at least a name and a command"
        )


class NoServersError(SpecParseError):
    """Raised when no server group was given at all."""

    def __init__(self):
        super().__init__("no servers specified")


class SetupError(BridgeException):
    """Raised when a server cannot be brought up. Fatal to that server only."""

    stage: SetupStage = SetupStage.SPAWN


class IODirError(SetupError):
    """Raised when the communication directory cannot be created."""

    stage = SetupStage.IO_DIR


class FifoCreateError(SetupError):
    """Raised when the named pipe cannot be (re)created."""

    stage = SetupStage.FIFO_CREATE


class LogOpenError(SetupError):
    """Raised when the transcript log file cannot be opened."""

    stage = SetupStage.LOG_OPEN


class FifoOpenError(SetupError):
    """Raised when the named pipe cannot be opened for reading."""

    stage = SetupStage.FIFO_OPEN


class SpawnError(SetupError):
    """Raised when the child process fails to start."""

    stage = SetupStage.SPAWN


class LineTooLongError(BridgeException):
    """Raised when a stream produces a line longer than the configured limit."""

    def __init__(self, limit: int):
        super().__init__(f"line exceeds {limit} bytes")
