"""Data models for device test sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class WrappedPayload:
    """Instrumented test source ready to send to a session."""
    test_id: str
    source_text: str
    timeout_seconds: int
    text: str


@dataclass(frozen=True)
class ResultRecord:
    """Verdict for one test.

    ``output`` is the raw session text kept for diagnostics; it is not part
    of the persisted record.
    """
    test_id: str
    passed: bool
    duration_ms: Optional[int] = None
    reason: Optional[str] = None
    output: str = field(default="", compare=False, repr=False)

    def to_dict(self) -> dict:
        return {
            "file": self.test_id,
            "pass": self.passed,
            "reason": self.reason,
            "duration_ms": self.duration_ms,
        }


@dataclass
class SuiteSummary:
    """Records of one suite, in execution order."""
    suite_name: str
    records: list[ResultRecord] = field(default_factory=list)

    @property
    def pass_count(self) -> int:
        return sum(1 for r in self.records if r.passed)

    @property
    def fail_count(self) -> int:
        return sum(1 for r in self.records if not r.passed)

    @property
    def total_duration_ms(self) -> int:
        return sum(r.duration_ms or 0 for r in self.records)

    def to_dict(self) -> dict:
        return {
            "tests": [r.to_dict() for r in self.records],
            "pass": self.pass_count,
            "fail": self.fail_count,
        }
