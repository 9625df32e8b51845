"""Pipeline stage interfaces, results and progress events."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Literal, Protocol


ProgressKind = Literal["stage_started", "stage_progress", "stage_finished", "overall"]


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """One progress report.

    `stage_started` and `overall` events carry a new `maximum`; the others
    carry the current `value` against the known maximum.
    """

    kind: ProgressKind
    stage: str
    value: int
    maximum: int


ProgressSink = Callable[[ProgressEvent], None]


def discard_progress(_event: ProgressEvent) -> None:
    """Progress sink that ignores every event."""


class StageTransform(Protocol):
    """Call signature every per-item transform must implement.

    `target` is the path the stage derived for `item`; the return value is
    what the tool actually produced.
    """

    def __call__(self, item: Path, target: Path) -> Path:
        ...


@dataclass(frozen=True, slots=True)
class StageDefinition:
    """Declarative stage metadata and per-item execution hook."""

    name: str
    output_dir: Path
    output_suffix: str
    transform: StageTransform

    def output_path_for(self, item: Path) -> Path:
        """Same base name as `item`, stage suffix, inside `output_dir`."""

        return self.output_dir / f"{item.stem}{self.output_suffix}"


@dataclass(slots=True)
class StageResult:
    """Counters collected while running one stage."""

    name: str
    total: int
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: bool = False
    outputs: list[Path] = field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
        }
