"""Run-scoped models: requested formats, batch collections and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
import threading
from typing import Any, Iterable
from uuid import uuid4


class AudioFormat(str, Enum):
    """Target formats an export can produce."""

    WAV = "wav"
    MP3 = "mp3"
    OGG = "ogg"
    FLAC = "flac"


def parse_formats(names: Iterable[str | AudioFormat]) -> tuple[AudioFormat, ...]:
    """Parse format names, keeping caller order and dropping duplicates."""

    formats: list[AudioFormat] = []
    for name in names:
        if isinstance(name, AudioFormat):
            fmt = name
        else:
            key = str(name).strip().lower().lstrip(".")
            try:
                fmt = AudioFormat(key)
            except ValueError:
                known = ", ".join(item.value for item in AudioFormat)
                raise ValueError(f"Unknown audio format '{name}'. Supported: {known}") from None
        if fmt not in formats:
            formats.append(fmt)
    return tuple(formats)


class RunOutcome(str, Enum):
    """Terminal outcome of one pipeline run."""

    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class OrchestratorState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class BatchState:
    """File collections handed from one stage to the next."""

    containers: list[Path] = field(default_factory=list)
    intermediate_files: list[Path] = field(default_factory=list)
    decoded_files: list[Path] = field(default_factory=list)

    @property
    def unique_sources(self) -> int:
        return len(self.decoded_files)


@dataclass(slots=True)
class PipelineRun:
    """One export invocation and the counters it owns."""

    inputs: tuple[Path, ...]
    output_dir: Path
    formats: tuple[AudioFormat, ...]
    run_id: str = field(default_factory=lambda: uuid4().hex)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    files_produced: int = 0
    stage_progress: int = 0
    overall_progress: int = 0
    overall_maximum: int = 0
    batch: BatchState = field(default_factory=BatchState)

    @classmethod
    def create(
        cls,
        inputs: Iterable[Path | str],
        output_dir: Path | str,
        formats: Iterable[str | AudioFormat],
    ) -> "PipelineRun":
        """Build a run from caller input, validating the requested formats."""

        parsed = parse_formats(formats)
        if not parsed:
            raise ValueError("At least one output format must be selected.")
        return cls(
            inputs=tuple(Path(item).expanduser().absolute() for item in inputs),
            output_dir=Path(output_dir).expanduser().absolute(),
            formats=parsed,
        )

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass(slots=True)
class RunResult:
    """Final report of a pipeline run."""

    run_id: str
    outcome: RunOutcome
    files_produced: int = 0
    unique_sources: int = 0
    stage_stats: dict[str, dict[str, Any]] = field(default_factory=dict)
    error: str | None = None
    started_at: str = field(default_factory=utc_now)
    finished_at: str | None = None

    def summary_line(self) -> str:
        if self.outcome is RunOutcome.CANCELLED:
            return f"Task has been aborted, {self.files_produced} audio files were exported"
        if self.outcome is RunOutcome.FAILED:
            return f"Export failed: {self.error}"
        return (
            f"{self.files_produced} audio files have been exported "
            f"({self.unique_sources} unique sounds)"
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "outcome": self.outcome.value,
            "files_produced": self.files_produced,
            "unique_sources": self.unique_sources,
            "stage_stats": self.stage_stats,
            "error": self.error,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "message": self.summary_line(),
        }
