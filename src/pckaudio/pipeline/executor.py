"""Sequential per-item stage execution."""

from __future__ import annotations

import logging
from pathlib import Path
import threading
from typing import Sequence

from pckaudio.observability.logging import get_logger, log_event
from pckaudio.pipeline.errors import StageItemError
from pckaudio.pipeline.stage import (
    ProgressEvent,
    ProgressSink,
    StageDefinition,
    StageResult,
    discard_progress,
)


_LOGGER = get_logger("pckaudio.executor")


class StageExecutor:
    """Run one stage over its inputs, one item at a time."""

    def run(
        self,
        stage: StageDefinition,
        inputs: Sequence[Path],
        progress: ProgressSink = discard_progress,
        cancel_event: threading.Event | None = None,
    ) -> StageResult:
        """Apply `stage.transform` to every input in order.

        Cancellation is polled before each item; a cancelled result keeps the
        counts reached so far. Item failures are logged and skipped.
        """

        result = StageResult(name=stage.name, total=len(inputs))
        stage.output_dir.mkdir(parents=True, exist_ok=True)
        log_event(_LOGGER, "stage_started", stage=stage.name, total=result.total)
        progress(ProgressEvent("stage_started", stage.name, 0, result.total))

        for item in inputs:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                log_event(
                    _LOGGER,
                    "stage_cancelled",
                    stage=stage.name,
                    processed=result.processed,
                    total=result.total,
                )
                return result

            try:
                output = stage.transform(item, stage.output_path_for(item))
            except StageItemError as exc:
                result.failed += 1
                log_event(
                    _LOGGER,
                    "item_failed",
                    level=logging.WARNING,
                    stage=stage.name,
                    item=str(item),
                    error=str(exc),
                )
            else:
                result.succeeded += 1
                result.outputs.append(output)
                log_event(
                    _LOGGER,
                    "item_converted",
                    level=logging.DEBUG,
                    stage=stage.name,
                    source=item.name,
                    output=output.name,
                )

            result.processed += 1
            progress(ProgressEvent("stage_progress", stage.name, result.processed, result.total))

        log_event(
            _LOGGER,
            "stage_finished",
            stage=stage.name,
            succeeded=result.succeeded,
            failed=result.failed,
            total=result.total,
        )
        progress(ProgressEvent("stage_finished", stage.name, result.processed, result.total))
        return result
