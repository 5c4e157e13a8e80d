"""Shared process-management utilities for the harness.

Spawn failures are classified here, at the spawn boundary, so callers can
tell "executable missing" apart from "tool ran and failed" without looking
at error message text.
"""

from __future__ import annotations

import enum
import logging
import signal
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


class ProcessOutcomeKind(enum.Enum):
    """How an external tool invocation ended."""

    OK = "ok"
    NOT_FOUND = "not_found"
    LAUNCH_FAILED = "launch_failed"
    NONZERO_EXIT = "nonzero_exit"


@dataclass(frozen=True)
class ProcessOutcome:
    """Result of :func:`run_process`."""

    kind: ProcessOutcomeKind
    argv: tuple[str, ...]
    returncode: Optional[int] = None
    error: Optional[str] = None
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is ProcessOutcomeKind.OK


def run_process(
    argv: Sequence[str],
    *,
    capture: bool = False,
    env: Optional[dict[str, str]] = None,
) -> ProcessOutcome:
    """Run *argv* to completion and classify the outcome.

    Args:
        argv: Full command line, executable first.
        capture: Capture stdout/stderr as text instead of inheriting the
            parent's streams.
        env: Environment for the child (``None`` inherits).

    Returns:
        A :class:`ProcessOutcome`. Never raises for spawn errors.
    """
    cmd = tuple(argv)
    try:
        result = subprocess.run(
            list(cmd),
            capture_output=capture,
            text=True,
            env=env,
        )
    except FileNotFoundError as e:
        return ProcessOutcome(
            kind=ProcessOutcomeKind.NOT_FOUND,
            argv=cmd,
            error=f"Tool not found: {cmd[0]} ({e.strerror or e})",
        )
    except OSError as e:
        return ProcessOutcome(
            kind=ProcessOutcomeKind.LAUNCH_FAILED,
            argv=cmd,
            error=f"Failed to launch {cmd[0]}: {e}",
        )

    stdout = result.stdout or ""
    stderr = result.stderr or ""
    if result.returncode != 0:
        return ProcessOutcome(
            kind=ProcessOutcomeKind.NONZERO_EXIT,
            argv=cmd,
            returncode=result.returncode,
            error=f"{cmd[0]} exited with code {result.returncode}",
            stdout=stdout,
            stderr=stderr,
        )
    return ProcessOutcome(
        kind=ProcessOutcomeKind.OK,
        argv=cmd,
        returncode=0,
        stdout=stdout,
        stderr=stderr,
    )


def popen_is_alive(proc: subprocess.Popen) -> bool:
    """Check if a :class:`subprocess.Popen` process is still running."""
    return proc.poll() is None


def graceful_kill(proc: subprocess.Popen, timeout_s: float = 2.0) -> None:
    """Stop *proc*: SIGINT, then SIGTERM, then SIGKILL.

    The device CLIs release the serial port cleanly on SIGINT, so that is
    tried first. Each stage waits up to *timeout_s*.
    """
    if not popen_is_alive(proc):
        return
    for stage in ("interrupt", "terminate"):
        try:
            if stage == "interrupt":
                proc.send_signal(signal.SIGINT)
            else:
                proc.terminate()
        except OSError:
            return
        try:
            proc.wait(timeout=timeout_s)
            return
        except subprocess.TimeoutExpired:
            logger.debug("pid %s ignored %s", proc.pid, stage)
    proc.kill()
    proc.wait()
