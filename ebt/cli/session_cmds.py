"""Device and host test-run commands for ebtctl."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from ebt.config import DEFAULT_TEST_TIMEOUT_MS, HarnessConfig
from ebt.errors import EbtError, ValidationError
from ebt.manifest import parse_suites_arg
from ebt.port_lock import PortLock
from ebt.ports import resolve_port
from ebt.session import (
    EspruinoSession,
    NodeSession,
    ResultRecord,
    SessionRunner,
    SuiteSummary,
    aggregate,
    persist_summaries,
    run_stamp,
)
from ebt.suites import TestCase, resolve_suite_tests

from ebt.cli.helpers import _load_board, _print, _print_error, _select_suites

logger = logging.getLogger(__name__)


def _timeout_ms(timeout_s: Optional[float]) -> int:
    return int(timeout_s * 1000) if timeout_s else DEFAULT_TEST_TIMEOUT_MS


def _run_with_progress(
    runner: SessionRunner,
    tests: list[TestCase],
    *,
    json_mode: bool,
    show_output: bool,
) -> dict[str, SuiteSummary]:
    def on_start(test: TestCase) -> None:
        if not json_mode:
            sys.stdout.write(f"Running {test.test_id} ... ")
            sys.stdout.flush()

    def on_result(test: TestCase, record: ResultRecord) -> None:
        if json_mode:
            return
        if record.passed:
            print("PASS")
            return
        print("FAIL" + (f" ({record.reason})" if record.reason else ""))
        if show_output and record.output.strip():
            print(record.output.strip())

    pairs = runner.run_tests(tests, on_start=on_start, on_result=on_result)
    return aggregate((test.suite, record) for test, record in pairs)


def _print_suite_summary(summaries: dict[str, SuiteSummary], *, with_duration: bool) -> None:
    print("")
    print("Suite Summary")
    print("============")
    for name, summary in summaries.items():
        line = f"{name}: {summary.pass_count}/{len(summary.records)} passed"
        if with_duration:
            line += f", total {summary.total_duration_ms} ms"
        print(line)


def _totals(summaries: dict[str, SuiteSummary]) -> tuple[int, int]:
    passed = sum(s.pass_count for s in summaries.values())
    failed = sum(s.fail_count for s in summaries.values())
    return passed, failed


def cmd_test(
    *,
    config: HarnessConfig,
    board: str,
    port: Optional[str],
    suites: Optional[str],
    filter_pattern: Optional[str] = None,
    timeout_s: Optional[float] = None,
    save: bool = True,
    quiet: bool = False,
    json_mode: bool,
) -> int:
    """Run the selected suites on a device through the Espruino CLI.

    Tests run one at a time. Each gets its own session, a device-side
    deadline and a host watchdog, so a hung test costs at most its timeout
    plus the watchdog margin. Summaries are written under
    ``results/<stamp>/<board>/`` unless *save* is false.

    Returns:
        0 if every test passed, 1 otherwise.
    """
    try:
        manifest = _load_board(config, board)
        selected_port = resolve_port(port, manifest.serial_ports)
        if not selected_port:
            raise ValidationError("--port <tty> is required (manifest contains only wildcards).")
        selection = _select_suites(manifest, suites)
    except EbtError as e:
        _print_error(str(e), json_mode=json_mode)
        return 1

    tests = resolve_suite_tests(config.tests_dir, selection.requested, filter_pattern)
    if not tests:
        _print(
            {"board": board, "suites": selection.requested, "tests": []} if json_mode
            else "No tests discovered for given suites.",
            json_mode=json_mode,
        )
        return 0

    if not json_mode:
        print("Test Run Summary")
        print("================")
        print(f"Board:    {board}")
        print(f"Manifest: {manifest.path}")
        print(f"Port:     {selected_port}")
        print(f"Suites:   {', '.join(selection.requested)}")
        print(f"Tests:    {', '.join(t.test_id for t in tests)}")
        print("")

    command = EspruinoSession(
        port=selected_port,
        board=config.espruino_board or manifest.espruino_board,
        executable=config.espruino_cli,
    )
    runner = SessionRunner(command, timeout_ms=_timeout_ms(timeout_s))
    when = run_stamp()
    try:
        with PortLock(selected_port, run_dir=config.run_dir):
            runner.warmup()
            summaries = _run_with_progress(
                runner, tests, json_mode=json_mode, show_output=not quiet,
            )
    except EbtError as e:
        _print_error(str(e), json_mode=json_mode)
        return 1

    saved: list[Path] = []
    if save:
        saved = persist_summaries(
            summaries,
            results_dir=config.results_dir,
            board=board,
            port=selected_port,
            when=when,
        )
    passed, failed = _totals(summaries)

    if json_mode:
        _print(
            {
                "board": board,
                "port": selected_port,
                "when": when,
                "suites": {name: s.to_dict() for name, s in summaries.items()},
                "passed": passed,
                "failed": failed,
                "saved": [str(p) for p in saved],
            },
            json_mode=True,
        )
    else:
        _print_suite_summary(summaries, with_duration=True)
        if saved:
            print("")
            print(f"Saved results to {saved[0].parent}/")
        print(f"\nResults: {passed} passed, {failed} failed")
    return 1 if failed else 0


def cmd_baseline(
    *,
    config: HarnessConfig,
    board: Optional[str],
    suites: Optional[str],
    filter_pattern: Optional[str] = None,
    timeout_s: Optional[float] = None,
    json_mode: bool,
) -> int:
    """Run suites under Node.js on the host, as a reference for device runs.

    Without *board*, ``--suites`` must name the suites explicitly.
    """
    try:
        if board:
            manifest = _load_board(config, board)
            requested = _select_suites(manifest, suites).requested
        else:
            requested = parse_suites_arg(suites)
        if not requested:
            raise ValidationError("No suites specified. Use --suites or define defaults in the manifest.")
    except EbtError as e:
        _print_error(str(e), json_mode=json_mode)
        return 1

    tests = resolve_suite_tests(config.tests_dir, requested, filter_pattern)
    if not tests:
        _print(
            {"suites": requested, "tests": []} if json_mode
            else "No tests discovered for given suites.",
            json_mode=json_mode,
        )
        return 0

    if not json_mode:
        print("Node.js Baseline Summary")
        print("=========================")
        print(f"Board (for suite selection): {board or '(none)'}")
        print(f"Suites: {', '.join(requested)}")
        print(f"Tests: {', '.join(t.test_id for t in tests)}")
        print("")

    runner = SessionRunner(NodeSession(executable=config.node), timeout_ms=_timeout_ms(timeout_s))
    summaries = _run_with_progress(runner, tests, json_mode=json_mode, show_output=False)
    passed, failed = _totals(summaries)

    if json_mode:
        _print(
            {
                "board": board,
                "suites": {name: s.to_dict() for name, s in summaries.items()},
                "passed": passed,
                "failed": failed,
            },
            json_mode=True,
        )
    else:
        _print_suite_summary(summaries, with_duration=False)
        print(f"\nResults: {passed} passed, {failed} failed")
    return 1 if failed else 0
