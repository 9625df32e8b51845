"""Tests for StageExecutor."""

from __future__ import annotations

from pathlib import Path
import threading

from pckaudio.pipeline.errors import ToolExecutionError, ToolLaunchError
from pckaudio.pipeline.executor import StageExecutor
from pckaudio.pipeline.stage import ProgressEvent, StageDefinition


def _stage(tmp_path: Path, transform) -> StageDefinition:
    return StageDefinition(
        name="decode",
        output_dir=tmp_path / "decoded",
        output_suffix=".wav",
        transform=transform,
    )


def _inputs(tmp_path: Path, *names: str) -> list[Path]:
    return [tmp_path / name for name in names]


class TestStageExecutor:
    def test_all_items_succeed(self, tmp_path):
        stage = _stage(tmp_path, lambda item, target: target)
        events: list[ProgressEvent] = []

        result = StageExecutor().run(stage, _inputs(tmp_path, "a.wem", "b.wem"), events.append)

        assert result.succeeded == 2
        assert result.processed == 2
        assert not result.cancelled
        assert stage.output_dir.is_dir()
        assert [event.kind for event in events] == [
            "stage_started",
            "stage_progress",
            "stage_progress",
            "stage_finished",
        ]
        assert events[0].maximum == 2
        assert result.outputs == [stage.output_dir / "a.wav", stage.output_dir / "b.wav"]

    def test_item_errors_are_counted_and_skipped(self, tmp_path):
        def _transform(item: Path, target: Path) -> Path:
            if item.name == "bad.wem":
                raise ToolExecutionError("vgmstream-cli", 2, item)
            if item.name == "gone.wem":
                raise ToolLaunchError("vgmstream-cli", "No such file or directory")
            return item

        stage = _stage(tmp_path, _transform)

        result = StageExecutor().run(
            stage, _inputs(tmp_path, "a.wem", "bad.wem", "gone.wem", "z.wem")
        )

        assert result.processed == 4
        assert result.succeeded == 2
        assert result.failed == 2
        assert [path.name for path in result.outputs] == ["a.wem", "z.wem"]

    def test_cancel_is_polled_before_each_item(self, tmp_path):
        cancel = threading.Event()
        seen: list[str] = []

        def _transform(item: Path, target: Path) -> Path:
            seen.append(item.name)
            cancel.set()
            return item

        stage = _stage(tmp_path, _transform)
        events: list[ProgressEvent] = []

        result = StageExecutor().run(
            stage, _inputs(tmp_path, "a.wem", "b.wem", "c.wem"), events.append, cancel
        )

        assert seen == ["a.wem"]
        assert result.cancelled
        assert result.processed == 1
        assert events[-1].kind == "stage_progress"

    def test_empty_input_still_reports_start_and_finish(self, tmp_path):
        stage = _stage(tmp_path, lambda item, target: item)
        events: list[ProgressEvent] = []

        result = StageExecutor().run(stage, [], events.append)

        assert result.total == 0
        assert [event.kind for event in events] == ["stage_started", "stage_finished"]


class TestOutputPath:
    def test_keeps_base_name_and_swaps_suffix(self, tmp_path):
        stage = _stage(tmp_path, lambda item, target: target)

        assert stage.output_path_for(Path("/elsewhere/Music 01.wem")) == tmp_path / "decoded" / "Music 01.wav"

    def test_executor_hands_derived_target_to_transform(self, tmp_path):
        received: list[tuple[str, Path]] = []

        def _transform(item: Path, target: Path) -> Path:
            received.append((item.name, target))
            return target

        stage = _stage(tmp_path, _transform)
        StageExecutor().run(stage, _inputs(tmp_path, "x.wem", "y.wem"))

        assert received == [
            ("x.wem", tmp_path / "decoded" / "x.wav"),
            ("y.wem", tmp_path / "decoded" / "y.wav"),
        ]
