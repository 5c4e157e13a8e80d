"""Fold per-test records into suite summaries and persist them as JSON."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from ebt.session.models import ResultRecord, SuiteSummary

logger = logging.getLogger(__name__)


def aggregate(pairs: Iterable[tuple[str, ResultRecord]]) -> dict[str, SuiteSummary]:
    """Group ``(suite_name, record)`` pairs by suite, keeping first-seen order."""
    summaries: dict[str, SuiteSummary] = {}
    for suite_name, record in pairs:
        summary = summaries.get(suite_name)
        if summary is None:
            summary = summaries[suite_name] = SuiteSummary(suite_name)
        summary.records.append(record)
    return summaries


def run_stamp(now: Optional[datetime] = None) -> str:
    """Local-time run directory name, e.g. ``20240131-154502``."""
    return (now or datetime.now()).strftime("%Y%m%d-%H%M%S")


def suite_payload(summary: SuiteSummary, *, board: str, port: Optional[str], when: str) -> dict:
    return {
        "board": board,
        "port": port,
        "suite": summary.suite_name,
        "when": when,
        "summary": summary.to_dict(),
    }


def persist_summaries(
    summaries: dict[str, SuiteSummary],
    *,
    results_dir: Path,
    board: str,
    port: Optional[str],
    when: str,
) -> list[Path]:
    """Write ``<results_dir>/<when>/<board>/<suite>.json`` for each suite.

    Returns:
        Written paths, in suite order.
    """
    out_dir = Path(results_dir) / when / board
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for summary in summaries.values():
        path = out_dir / f"{summary.suite_name}.json"
        payload = suite_payload(summary, board=board, port=port, when=when)
        path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        logger.info("Saved %s results to %s", summary.suite_name, path)
        written.append(path)
    return written
