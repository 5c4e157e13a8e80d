"""Serial port selection from CLI overrides and manifest hints."""

from __future__ import annotations

import fnmatch
import logging
from typing import Optional, Sequence

import serial.tools.list_ports

logger = logging.getLogger(__name__)


def is_wildcard(port: str) -> bool:
    return any(ch in port for ch in "*?[")


def connected_ports() -> list[str]:
    """Device paths of the serial ports currently present."""
    return sorted(p.device for p in serial.tools.list_ports.comports())


def resolve_port(
    override: Optional[str],
    hints: Sequence[str],
    *,
    allow_wildcard: bool = False,
) -> Optional[str]:
    """Choose the serial port for a session.

    Priority:
      1. Explicit *override* (``--port``)
      2. First manifest hint without wildcards
      3. First connected port matching a wildcard hint (``/dev/ttyUSB*``)
      4. The first wildcard hint itself, only if *allow_wildcard*

    Returns:
        The port, or ``None`` if nothing usable was found.
    """
    if override:
        return override
    concrete = [h for h in hints if not is_wildcard(h)]
    if concrete:
        return concrete[0]

    patterns = [h for h in hints if is_wildcard(h)]
    if not patterns:
        return None

    present = connected_ports()
    for pattern in patterns:
        for device in present:
            if fnmatch.fnmatch(device, pattern):
                logger.info("Port hint %s matched %s", pattern, device)
                return device

    if allow_wildcard:
        logger.warning(
            "Selected serial port %s contains a wildcard; consider specifying --port explicitly.",
            patterns[0],
        )
        return patterns[0]
    return None
