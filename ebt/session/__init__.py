"""Device test sessions: payload wrapping, execution and result aggregation."""

from ebt.session.aggregate import aggregate, persist_summaries, run_stamp
from ebt.session.models import ResultRecord, SuiteSummary, WrappedPayload
from ebt.session.runner import (
    REASON_NO_RESULT,
    REASON_TIMEOUT,
    EspruinoSession,
    NodeSession,
    SessionRunner,
    extract_result,
)
from ebt.session.wrapper import SENTINEL, compose_wrapped_test

__all__ = [
    "REASON_NO_RESULT",
    "REASON_TIMEOUT",
    "SENTINEL",
    "EspruinoSession",
    "NodeSession",
    "ResultRecord",
    "SessionRunner",
    "SuiteSummary",
    "WrappedPayload",
    "aggregate",
    "compose_wrapped_test",
    "extract_result",
    "persist_summaries",
    "run_stamp",
]
