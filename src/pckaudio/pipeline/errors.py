"""Error taxonomy for export runs."""

from __future__ import annotations

from pathlib import Path


class PipelineError(Exception):
    """Base error for the export pipeline."""


class StageItemError(PipelineError):
    """A single item failed inside a stage; the batch continues."""


class ToolLaunchError(StageItemError):
    """Raised when an external tool cannot be started."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(f"Could not start {tool}: {message}")
        self.tool = tool
        self.message = message


class ToolExecutionError(StageItemError):
    """Raised when an external tool exits with a non-zero status."""

    def __init__(self, tool: str, returncode: int, item: Path | None = None) -> None:
        target = f" for {item.name}" if item is not None else ""
        super().__init__(f"{tool} exited with status {returncode}{target}")
        self.tool = tool
        self.returncode = returncode
        self.item = item


class NoInputFiles(PipelineError):
    """Raised when every requested container path is missing."""


class ScratchAreaError(PipelineError):
    """Raised when the scratch directory tree cannot be created."""


class ToolUnpackError(PipelineError):
    """Raised when the bundled tool archive cannot be extracted."""


class TeardownError(PipelineError):
    """Cleanup failure. Logged and never propagated."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"Could not remove {path}: {message}")
        self.path = path


class RunCancelled(Exception):
    """Control-flow signal for a cancelled run. Not a failure."""
