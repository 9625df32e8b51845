"""Scratch directory layout for intermediate export artifacts."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import shutil
from typing import Iterable

from pckaudio.config.schema import DEFAULT_SCRATCH_ROOT
from pckaudio.pipeline.errors import ScratchAreaError, TeardownError
from pckaudio.pipeline.run import AudioFormat


INTERMEDIATE_DIR = "wem"
DECODED_DIR = "wav"


@dataclass(frozen=True, slots=True)
class ScratchArea:
    """All scratch paths rooted at `.pckaudio/processing`.

    The decoded folder doubles as the `wav` target folder.
    """

    root: Path

    @property
    def intermediate(self) -> Path:
        return self.root / INTERMEDIATE_DIR

    @property
    def decoded(self) -> Path:
        return self.root / DECODED_DIR

    def format_dir(self, fmt: AudioFormat) -> Path:
        return self.root / fmt.value

    def prepare(self, formats: Iterable[AudioFormat]) -> "ScratchArea":
        """Drop leftovers from earlier runs and create the stage folders."""

        directories = [self.intermediate, self.decoded]
        directories.extend(self.format_dir(fmt) for fmt in formats)
        try:
            if self.root.exists():
                _clear_directory(self.root)
            for directory in directories:
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ScratchAreaError(f"Could not prepare scratch area {self.root}: {exc}") from exc
        return self

    def exists(self) -> bool:
        return self.root.exists()

    def remove(self) -> None:
        """Delete the whole scratch tree; a missing tree is not an error."""

        try:
            if self.root.exists():
                shutil.rmtree(self.root)
        except OSError as exc:
            raise TeardownError(self.root, str(exc)) from exc


def _clear_directory(path: Path) -> None:
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def build_scratch_area(root: Path = DEFAULT_SCRATCH_ROOT) -> ScratchArea:
    """Build a scratch area object without touching the filesystem."""

    return ScratchArea(root=root.expanduser().absolute())


def list_stage_files(directory: Path, suffix: str) -> list[Path]:
    """Return files in `directory` with `suffix`, sorted by name."""

    if not directory.exists():
        return []
    return sorted(
        child for child in directory.iterdir() if child.is_file() and child.suffix.lower() == suffix
    )
