"""Error taxonomy for the Embedded Board Tester.

Flashing and validation errors propagate to the command boundary and end the
invocation. Protocol and timeout errors are raised inside the session layer
only and are always converted into failing result records there.
"""

from __future__ import annotations

from typing import Optional


class EbtError(Exception):
    """Base class for all harness errors."""


class ToolNotFound(EbtError):
    """The candidate executable could not be located on this host."""

    def __init__(self, message: str, executable: Optional[str] = None):
        super().__init__(message)
        self.executable = executable


class ToolExecutionFailed(EbtError):
    """The tool was found but failed (non-zero exit or launch error)."""

    def __init__(
        self,
        message: str,
        *,
        executable: Optional[str] = None,
        returncode: Optional[int] = None,
    ):
        super().__init__(message)
        self.executable = executable
        self.returncode = returncode


class ValidationError(EbtError):
    """Manifest, firmware bundle, suite or port input is not usable."""


class ProtocolError(EbtError):
    """No parseable sentinel line was found in a session's output."""


class SessionTimeout(EbtError):
    """The host watchdog expired before the session produced a verdict."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output
