"""Data types shared by flashing adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class CommandCandidate:
    """One way of invoking an external tool: executable plus leading args."""

    executable: str
    prefix_args: tuple[str, ...] = ()

    def argv(self, args: list[str] | tuple[str, ...]) -> list[str]:
        return [self.executable, *self.prefix_args, *args]


@dataclass(frozen=True)
class Artifact:
    """A firmware segment destined for a fixed flash offset."""

    name: str
    offset: str
    absolute_path: str


@dataclass(frozen=True)
class ExecutionPlan:
    """Everything needed to build the flashing tool's argument list."""

    port: str
    baud_rate: int
    flash_mode: str
    flash_frequency: str
    flash_size: str
    compress: bool = False
    extra_args: tuple[str, ...] = ()
    artifacts: tuple[Artifact, ...] = field(default_factory=tuple)
    chip: Optional[str] = None
