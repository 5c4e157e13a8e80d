"""Ordered fallback across alternative invocations of an external tool.

Flashing tools are installed under different names depending on platform
and packaging (``esptool.py``, ``esptool``, ``python -m esptool``). The
resolver walks the candidates in order. A candidate whose executable does
not exist is skipped; any other failure ends the walk, since the tool was
found and its failure belongs to the operation.
"""

from __future__ import annotations

import logging
import shlex
import sys
from typing import Callable, Optional, Sequence

from ebt.errors import EbtError, ToolExecutionFailed, ToolNotFound
from ebt.flashers.base import CommandCandidate
from ebt.process_utils import ProcessOutcome, ProcessOutcomeKind, run_process

logger = logging.getLogger(__name__)

Runner = Callable[..., ProcessOutcome]


def esptool_candidates(preferred: str) -> list[CommandCandidate]:
    """Known-good esptool invocation chain, most specific first."""
    chain = [
        CommandCandidate(preferred),
        CommandCandidate("esptool"),
        CommandCandidate(sys.executable or "python3", ("-m", "esptool")),
    ]
    unique: list[CommandCandidate] = []
    for candidate in chain:
        if candidate not in unique:
            unique.append(candidate)
    return unique


def format_command(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def resolve_and_run(
    candidates: Sequence[CommandCandidate],
    args: Sequence[str],
    *,
    runner: Runner = run_process,
    capture: bool = False,
    tool_name: str = "esptool",
) -> ProcessOutcome:
    """Run *args* through the first candidate that can be launched.

    Args:
        candidates: Invocations in fallback priority order.
        args: Argument tail appended to every candidate.
        runner: Spawns one command line and classifies it (injectable).
        capture: Capture tool output instead of streaming it.
        tool_name: Used in the "nothing worked" error.

    Returns:
        The successful :class:`ProcessOutcome`.

    Raises:
        ToolExecutionFailed: A candidate launched and failed, or could not be
            started for a reason other than being absent.
        ToolNotFound: Every candidate was absent.
    """
    last_error: Optional[EbtError] = None
    for candidate in candidates:
        argv = candidate.argv(list(args))
        logger.info("trying: %s", format_command(argv))
        outcome = runner(argv, capture=capture)

        if outcome.kind is ProcessOutcomeKind.OK:
            return outcome
        if outcome.kind is ProcessOutcomeKind.NOT_FOUND:
            logger.debug("%s not found, trying next candidate", candidate.executable)
            last_error = ToolNotFound(
                outcome.error or f"Tool not found: {candidate.executable}",
                executable=candidate.executable,
            )
            continue
        raise ToolExecutionFailed(
            outcome.error or f"{candidate.executable} failed",
            executable=candidate.executable,
            returncode=outcome.returncode,
        )

    if last_error is not None:
        raise last_error
    raise ToolNotFound(f"Unable to execute {tool_name} with any known method")
