"""Exclusive advisory lock on a serial endpoint.

One ``ebtctl`` process at a time may flash or run sessions against a port.
The lock is an ``fcntl.flock`` on ``<run_dir>/ebt-locks/<port>.lock``; a
sidecar ``.info`` file records who holds it so contention can be reported.
"""

from __future__ import annotations

import errno
import fcntl
import json
import logging
import os
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from ebt.config import _get_run_dir
from ebt.errors import ValidationError

logger = logging.getLogger(__name__)

LOCK_DIR_NAME = "ebt-locks"


@dataclass
class PortOwner:
    """Holder of a port lock, as recorded in its info file."""
    pid: int
    command: str
    started: datetime
    port: str


def lock_dir(run_dir: Optional[str] = None) -> Path:
    return Path(run_dir or _get_run_dir()) / LOCK_DIR_NAME


def _is_process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except OSError as e:
        # EPERM: the process exists but belongs to someone else.
        return e.errno == errno.EPERM
    return True


class PortLock:
    """
    File-based lock for one serial port.

    Usage:
        with PortLock("/dev/ttyUSB0"):
            ...  # flash or run tests

    Raises:
        ValidationError: from ``__enter__`` when the port is already held.
    """

    def __init__(self, port: str, *, run_dir: Optional[str] = None):
        self.port = port
        self._dir = lock_dir(run_dir)
        safe_name = port.strip("/").replace("/", "_").replace("\\", "_") or "port"
        self.lock_path = self._dir / f"{safe_name}.lock"
        self.info_path = self._dir / f"{safe_name}.lock.info"
        self._fd = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self, timeout: float = 0) -> bool:
        """Try to take the lock, polling for up to *timeout* seconds."""
        self._dir.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + timeout
        while True:
            fd = open(self.lock_path, "w")
            try:
                fcntl.flock(fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError:
                fd.close()
                if time.monotonic() < deadline:
                    time.sleep(0.1)
                    continue
                owner = self.get_owner()
                if owner:
                    logger.warning(
                        "Port %s locked by PID %d (%s) since %s",
                        self.port, owner.pid, owner.command, owner.started.isoformat(timespec="seconds"),
                    )
                else:
                    logger.warning("Port %s locked by unknown process", self.port)
                return False
            self._fd = fd
            self._write_owner_info()
            logger.debug("Acquired lock for %s", self.port)
            return True

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            self.info_path.unlink(missing_ok=True)
        finally:
            fcntl.flock(self._fd.fileno(), fcntl.LOCK_UN)
            self._fd.close()
            self._fd = None
        logger.debug("Released lock for %s", self.port)

    def get_owner(self) -> Optional[PortOwner]:
        """Current holder, or ``None`` if unknown or no longer running."""
        try:
            info = json.loads(self.info_path.read_text(encoding="utf-8"))
            owner = PortOwner(
                pid=int(info["pid"]),
                command=str(info.get("command", "")),
                started=datetime.fromisoformat(info["started"]),
                port=str(info.get("port", self.port)),
            )
        except (OSError, ValueError, KeyError, TypeError):
            return None
        if not _is_process_alive(owner.pid):
            return None
        return owner

    def _write_owner_info(self) -> None:
        info = {
            "pid": os.getpid(),
            "command": " ".join(sys.argv[:3])[:80],
            "started": datetime.now().isoformat(),
            "port": self.port,
        }
        # Atomic replace so readers never see a partial file.
        tmp_path = self.info_path.with_name(f"{self.info_path.name}.tmp.{os.getpid()}")
        tmp_path.write_text(json.dumps(info, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.info_path)

    def __enter__(self) -> "PortLock":
        if not self.acquire():
            owner = self.get_owner()
            holder = f" by PID {owner.pid}" if owner else ""
            raise ValidationError(f"Port {self.port} is in use{holder}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
