"""Session runner: one external process per test, guarded by a host watchdog.

Each test is sent to the device through a command-line session tool (the
Espruino CLI, or Node.js for host baselines). The tool's merged output is
streamed into a collector running on a worker thread; the calling thread
waits on the collector's future with the watchdog deadline as timeout.
Whichever finishes first decides how the session ends:

- the collector sees the sentinel record (or the tool exits) first: the
  record is parsed from the collected text;
- the watchdog expires first: the tool is interrupted and the test fails
  with ``reason="timeout"``.

The watchdog is set ``watchdog_margin_ms`` beyond the device-side deadline
embedded in the payload, so it only fires when the device or transport is
wedged.
"""

from __future__ import annotations

import concurrent.futures
import json
import logging
import re
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Iterable, Optional, Protocol

from ebt.config import DEFAULT_TEST_TIMEOUT_MS, DEFAULT_WATCHDOG_MARGIN_MS
from ebt.errors import ProtocolError, SessionTimeout
from ebt.process_utils import graceful_kill, popen_is_alive
from ebt.session.models import ResultRecord, WrappedPayload
from ebt.session.wrapper import (
    READY_MARKER,
    SENTINEL,
    compose_ready_probe,
    compose_wrapped_test,
    device_timeout_seconds,
)
from ebt.suites import TestCase

logger = logging.getLogger(__name__)

REASON_TIMEOUT = "timeout"
REASON_NO_RESULT = "no_result"

# Time a session tool gets to exit by itself after printing its verdict.
_EXIT_GRACE_S = 0.5
# Time the output reader gets to drain the pipe once the tool is gone.
_COLLECTOR_JOIN_S = 1.0

_RECORD_RE = re.compile(r"(\{.*\})")


class SessionCommand(Protocol):
    """Builds the command line that runs *code* in a device session."""

    host_shim: bool

    def argv(self, code: str) -> list[str]:
        ...


@dataclass(frozen=True)
class EspruinoSession:
    """Espruino CLI session against a serial port."""

    port: str
    board: Optional[str] = None
    executable: str = "espruino"
    host_shim: ClassVar[bool] = False

    def argv(self, code: str) -> list[str]:
        args = [self.executable, "--port", self.port, "-e", code]
        if self.board:
            args.extend(["--board", self.board])
        return args


@dataclass(frozen=True)
class NodeSession:
    """Node.js on the host, for hardware-free baselines."""

    executable: str = "node"
    host_shim: ClassVar[bool] = True

    def argv(self, code: str) -> list[str]:
        return [self.executable, "-e", code]


def parse_sentinel_line(line: str) -> Optional[dict[str, Any]]:
    """Parse the JSON record on a sentinel line, or ``None`` if malformed."""
    if SENTINEL not in line:
        return None
    m = _RECORD_RE.search(line)
    if not m:
        return None
    try:
        record = json.loads(m.group(1))
    except ValueError:
        return None
    if not isinstance(record, dict) or "pass" not in record:
        return None
    return record


def extract_result(text: str) -> dict[str, Any]:
    """Return the first well-formed sentinel record in *text*.

    Later sentinel lines never replace an earlier verdict. Lines carrying the
    marker without a parseable record (e.g. the device echoing the payload
    source) are skipped.

    Raises:
        ProtocolError: No sentinel line with a parseable record.
    """
    for line in text.splitlines():
        record = parse_sentinel_line(line)
        if record is not None:
            return record
    raise ProtocolError("no sentinel record in session output")


def record_from_result(test_id: str, record: dict[str, Any], output: str = "") -> ResultRecord:
    duration = record.get("duration_ms")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        duration = None
    reason = record.get("reason")
    return ResultRecord(
        test_id=test_id,
        passed=record.get("pass") is True,
        duration_ms=int(duration) if duration is not None else None,
        reason=str(reason) if reason not in (None, "") else None,
        output=output,
    )


def _is_ready_line(line: str) -> bool:
    # The REPL may echo the probe source; only the printed marker counts.
    return line.strip().lstrip(">").strip() == READY_MARKER


class _OutputCollector:
    """Reads session output line by line until EOF or the first verdict."""

    def __init__(self, stream, *, stop_on_result: bool):
        self._stream = stream
        self._stop_on_result = stop_on_result
        self._lines: list[str] = []
        self._lock = threading.Lock()

    def run(self) -> None:
        for raw in iter(self._stream.readline, ""):
            line = raw.rstrip("\r\n")
            with self._lock:
                self._lines.append(line)
            logger.debug("[session] %s", line)
            if self._stop_on_result and parse_sentinel_line(line) is not None:
                return

    def text(self) -> str:
        with self._lock:
            return "\n".join(self._lines)


def _join_collector(future: concurrent.futures.Future) -> None:
    try:
        future.result(timeout=_COLLECTOR_JOIN_S)
    except concurrent.futures.TimeoutError:
        logger.debug("Session output reader still blocked; closing its pipe")
    except (OSError, ValueError) as e:
        logger.debug("Session output reader failed: %s", e)


@dataclass
class _SessionOutput:
    output: str
    error: Optional[str] = None


class SessionRunner:
    """Runs tests one at a time through a :class:`SessionCommand`.

    Args:
        command: Session tool invocation.
        timeout_ms: Per-test budget; the device deadline is derived from it.
        watchdog_margin_ms: Extra host-side allowance past the device deadline.
        stop_on_result: End the session as soon as a verdict is printed
            instead of waiting for the tool to exit.
        process_factory: ``subprocess.Popen`` or a stand-in.
    """

    def __init__(
        self,
        command: SessionCommand,
        *,
        timeout_ms: int = DEFAULT_TEST_TIMEOUT_MS,
        watchdog_margin_ms: int = DEFAULT_WATCHDOG_MARGIN_MS,
        stop_on_result: bool = True,
        process_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.command = command
        self.timeout_ms = timeout_ms
        self.watchdog_margin_ms = watchdog_margin_ms
        self.stop_on_result = stop_on_result
        self._process_factory = process_factory

    @property
    def device_timeout_s(self) -> int:
        return device_timeout_seconds(self.timeout_ms)

    @property
    def watchdog_s(self) -> float:
        # Backstop past the device-side deadline embedded in the payload.
        return (self.device_timeout_s * 1000 + self.watchdog_margin_ms) / 1000.0

    def _run_session(self, code: str) -> _SessionOutput:
        """Run *code* in one session and return everything it printed.

        Raises:
            SessionTimeout: The watchdog expired; the tool has been stopped.
        """
        deadline = time.monotonic() + self.watchdog_s

        def remaining() -> float:
            return max(0.0, deadline - time.monotonic())

        argv = self.command.argv(code)
        try:
            proc = self._process_factory(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except (OSError, ValueError) as e:
            return _SessionOutput(output="", error=f"spawn_error: {e}")

        collector = _OutputCollector(proc.stdout, stop_on_result=self.stop_on_result)
        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="ebt-session",
        )
        future = pool.submit(collector.run)
        timed_out = False
        error = None
        try:
            future.result(timeout=remaining())
            if popen_is_alive(proc):
                proc.wait(timeout=min(_EXIT_GRACE_S, remaining()))
        except concurrent.futures.TimeoutError:
            timed_out = True
        except subprocess.TimeoutExpired:
            logger.debug("Session tool still running after its output ended; stopping it")
        except (OSError, ValueError) as e:
            error = f"session_error: {e}"
        finally:
            graceful_kill(proc)
            pool.shutdown(wait=False)
            _join_collector(future)
            if proc.stdout is not None:
                proc.stdout.close()

        if timed_out:
            logger.warning("Session exceeded %.1fs watchdog; terminated", self.watchdog_s)
            raise SessionTimeout(
                f"no verdict within {self.watchdog_s:.1f}s", output=collector.text(),
            )
        return _SessionOutput(output=collector.text(), error=error)

    def run_payload(self, payload: WrappedPayload) -> ResultRecord:
        """Run one wrapped test and reduce the session to a record.

        Never raises: spawn errors, watchdog expiry and missing sentinel
        records all become failing records.
        """
        try:
            session = self._run_session(payload.text)
        except SessionTimeout as e:
            return ResultRecord(
                test_id=payload.test_id, passed=False,
                reason=REASON_TIMEOUT, output=e.output,
            )
        if session.error:
            logger.error("%s: %s", payload.test_id, session.error)
            return ResultRecord(
                test_id=payload.test_id, passed=False,
                reason=session.error, output=session.output,
            )
        try:
            record = extract_result(session.output)
        except ProtocolError:
            return ResultRecord(
                test_id=payload.test_id, passed=False,
                reason=REASON_NO_RESULT, output=session.output,
            )
        return record_from_result(payload.test_id, record, session.output)

    def run_test(self, test: TestCase) -> ResultRecord:
        """Read, wrap and run a single test file."""
        try:
            with open(test.path, "r", encoding="utf-8") as f:
                source = f.read()
        except (OSError, UnicodeDecodeError) as e:
            return ResultRecord(test_id=test.test_id, passed=False, reason=f"read_error: {e}")
        payload = compose_wrapped_test(
            test.test_id,
            source,
            self.device_timeout_s,
            host_shim=self.command.host_shim,
        )
        return self.run_payload(payload)

    def run_tests(
        self,
        tests: Iterable[TestCase],
        *,
        on_start: Optional[Callable[[TestCase], None]] = None,
        on_result: Optional[Callable[[TestCase, ResultRecord], None]] = None,
    ) -> list[tuple[TestCase, ResultRecord]]:
        """Run *tests* strictly in order, one session at a time."""
        results: list[tuple[TestCase, ResultRecord]] = []
        for test in tests:
            if on_start:
                on_start(test)
            record = self.run_test(test)
            results.append((test, record))
            if on_result:
                on_result(test, record)
        return results

    def warmup(self) -> bool:
        """Open a throwaway session to drain banner and prompt noise.

        Returns:
            True if the ready marker came back.
        """
        try:
            session = self._run_session(compose_ready_probe())
        except SessionTimeout as e:
            logger.warning("Warmup timed out: %s", e)
            return False
        ready = any(_is_ready_line(line) for line in session.output.splitlines())
        if session.error:
            logger.warning("Warmup failed: %s", session.error)
        elif not ready:
            logger.warning("Warmup did not see the ready marker; continuing")
        else:
            logger.debug("Warmup complete")
        return ready
