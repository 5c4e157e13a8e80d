"""Test discovery: map requested suites to test files on disk."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

TEST_GLOB = "test_*.js"


@dataclass(frozen=True)
class TestCase:
    """One runnable test file. ``test_id`` is the file's basename."""

    __test__ = False  # not a pytest class

    test_id: str
    path: str
    suite: str


def discover_suite(tests_dir: Path, suite: str, filter_pattern: Optional[str] = None) -> list[TestCase]:
    """Sorted ``test_*.js`` files under ``tests_dir/<suite>``."""
    suite_dir = tests_dir / suite
    if not suite_dir.is_dir():
        return []
    cases = [
        TestCase(test_id=p.name, path=str(p), suite=suite)
        for p in sorted(suite_dir.glob(TEST_GLOB))
        if p.is_file()
    ]
    if filter_pattern:
        cases = [c for c in cases if fnmatch.fnmatch(c.test_id, filter_pattern)]
    return cases


def resolve_suite_tests(
    tests_dir: Path,
    requested_suites: Sequence[str],
    filter_pattern: Optional[str] = None,
) -> list[TestCase]:
    """Tests for *requested_suites*, suite order first, then filename order."""
    tests: list[TestCase] = []
    for suite in requested_suites:
        tests.extend(discover_suite(tests_dir, suite, filter_pattern))
    return tests
