"""`pckaudio export` command."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import tyro

from pckaudio.config.loader import load_export_config
from pckaudio.observability.logging import set_level
from pckaudio.pipeline.orchestrator import PipelineOrchestrator
from pckaudio.pipeline.run import PipelineRun, RunOutcome, RunResult
from pckaudio.pipeline.stage import ProgressEvent
from pckaudio.storage.atomic import atomic_write_json


EXIT_CODES = {
    RunOutcome.COMPLETED: 0,
    RunOutcome.FAILED: 1,
    RunOutcome.CANCELLED: 130,
}


@dataclass(slots=True)
class ExportCommand:
    """Export audio from PCK containers into one or more formats."""

    inputs: Annotated[tuple[Path, ...], tyro.conf.Positional]
    output_dir: Path = Path("exported")
    formats: tuple[str, ...] = ("wav",)
    config: str | None = None
    report: Path | None = None
    log_level: str | None = None


def _print_progress(event: ProgressEvent) -> None:
    if event.kind == "stage_finished":
        print(f"stage={event.stage} processed={event.value}/{event.maximum}")


def wait_for_result(orchestrator: PipelineOrchestrator, run: PipelineRun) -> RunResult:
    """Run the export, turning Ctrl+C into a cancellation request."""

    future = orchestrator.start(run, _print_progress)
    try:
        return future.result()
    except KeyboardInterrupt:
        print("cancelling export, waiting for tools to stop")
        orchestrator.request_cancel()
        return future.result()


def execute(command: ExportCommand) -> None:
    config = load_export_config(command.config)
    set_level(command.log_level or config.log_level)
    run = PipelineRun.create(command.inputs, command.output_dir, command.formats)

    with PipelineOrchestrator(config) as orchestrator:
        result = wait_for_result(orchestrator, run)

    if command.report is not None:
        atomic_write_json(command.report, result.to_record())
    print(result.summary_line())

    code = EXIT_CODES[result.outcome]
    if code:
        raise SystemExit(code)
