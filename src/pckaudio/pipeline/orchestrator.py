"""Export orchestrator: stage sequencing, progress, cancellation and busy state."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
import logging
from pathlib import Path
import threading
import traceback
from typing import Sequence

from pckaudio.config.schema import ExportConfig
from pckaudio.observability.logging import get_logger, log_event
from pckaudio.pipeline.dag import decode_stage, encode_stage, unpack_stage
from pckaudio.pipeline.errors import (
    NoInputFiles,
    PipelineError,
    RunCancelled,
)
from pckaudio.pipeline.executor import StageExecutor
from pckaudio.pipeline.run import (
    OrchestratorState,
    PipelineRun,
    RunOutcome,
    RunResult,
    utc_now,
)
from pckaudio.pipeline.runner import ProcessRunner
from pckaudio.pipeline.stage import (
    ProgressEvent,
    ProgressSink,
    StageDefinition,
    StageResult,
    discard_progress,
)
from pckaudio.pipeline.tools import ExternalToolSet
from pckaudio.resources.lifecycle import ResourceLifecycle
from pckaudio.storage.scratch import build_scratch_area, list_stage_files


_LOGGER = get_logger("pckaudio.orchestrator")

OVERALL = "overall"


@dataclass(slots=True)
class _ActiveExport:
    owner: "PipelineOrchestrator"
    run: PipelineRun
    future: Future[RunResult]


# One export per process: the scratch area and the unpack flag are shared.
# Lock order is _ACTIVE_LOCK, then the orchestrator's own lock.
_ACTIVE_LOCK = threading.Lock()
_ACTIVE: _ActiveExport | None = None


class PipelineOrchestrator:
    """Run at most one export at a time on a dedicated worker thread.

    State machine: IDLE -> RUNNING -> {COMPLETED, CANCELLED, FAILED} -> IDLE.
    Only one export runs per process, whichever orchestrator started it.
    Calling `start` while any export is active requests its cancellation
    instead of starting a second run.
    """

    def __init__(
        self,
        config: ExportConfig | None = None,
        runner: ProcessRunner | None = None,
    ) -> None:
        self.config = config if config is not None else ExportConfig()
        self.runner = runner if runner is not None else ProcessRunner()
        self.executor = StageExecutor()
        self.tools = ExternalToolSet.from_config(self.config.tools)
        self.resources = ResourceLifecycle(self.tools, self.runner, bundle=self.config.tools.bundle)
        self.scratch = build_scratch_area(self.config.scratch_root)

        self._lock = threading.Lock()
        self._state = OrchestratorState.IDLE
        self._last_result: RunResult | None = None
        self._pool: ThreadPoolExecutor | None = None

    def __enter__(self) -> "PipelineOrchestrator":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    @property
    def state(self) -> OrchestratorState:
        with self._lock:
            return self._state

    @property
    def busy(self) -> bool:
        return _ACTIVE is not None

    @property
    def last_result(self) -> RunResult | None:
        with self._lock:
            return self._last_result

    def start(self, run: PipelineRun, progress: ProgressSink = discard_progress) -> Future[RunResult]:
        """Start `run` in the background, or cancel the active export if busy."""

        global _ACTIVE
        with _ACTIVE_LOCK:
            active = _ACTIVE
            if active is None:
                with self._lock:
                    self._set_state(OrchestratorState.RUNNING, run_id=run.run_id)
                    if self._pool is None:
                        self._pool = ThreadPoolExecutor(
                            max_workers=1,
                            thread_name_prefix="pckaudio-export",
                        )
                    future = self._pool.submit(self._execute_active, run, progress)
                _ACTIVE = _ActiveExport(owner=self, run=run, future=future)
                return future

        log_event(
            _LOGGER,
            "start_while_busy",
            requested_run_id=run.run_id,
            active_run_id=active.run.run_id,
        )
        self.request_cancel()
        return active.future

    def execute(self, run: PipelineRun, progress: ProgressSink = discard_progress) -> RunResult:
        """Blocking variant of `start`."""

        return self.start(run, progress).result()

    def request_cancel(self) -> bool:
        """Ask the active export to stop. Returns False when nothing is running."""

        active = _ACTIVE
        if active is None:
            return False
        if not active.run.cancelled:
            active.run.cancel_event.set()
            log_event(_LOGGER, "run_cancel_requested", run_id=active.run.run_id)
        active.owner.resources.kill_all_tool_processes()
        return True

    def close(self, timeout: float | None = None) -> None:
        """Cancel this orchestrator's run, wait for it and stop the worker thread."""

        active = _ACTIVE
        if active is not None and active.owner is self:
            self.request_cancel()
            active.future.exception(timeout=timeout)
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=True)

    def dispose(self) -> None:
        """Stop any export, close and remove scratch plus unpacked tools."""

        active = _ACTIVE
        if active is not None:
            self.request_cancel()
            active.future.exception()
        self.close()
        self.resources.teardown(self.scratch, dispose=True)

    def _set_state(self, state: OrchestratorState, **fields: object) -> None:
        previous = self._state
        self._state = state
        log_event(
            _LOGGER,
            "state_changed",
            level=logging.DEBUG,
            previous=previous.value,
            state=state.value,
            **fields,
        )

    def _execute_active(self, run: PipelineRun, progress: ProgressSink) -> RunResult:
        global _ACTIVE
        result: RunResult | None = None
        try:
            result = self._run_pipeline(run, progress)
            return result
        finally:
            with _ACTIVE_LOCK, self._lock:
                if result is not None:
                    self._last_result = result
                    self._set_state(OrchestratorState(result.outcome.value), run_id=run.run_id)
                self._set_state(OrchestratorState.IDLE, run_id=run.run_id)
                if _ACTIVE is not None and _ACTIVE.run is run:
                    _ACTIVE = None

    def _existing_inputs(self, run: PipelineRun) -> list[Path]:
        existing: list[Path] = []
        for path in run.inputs:
            if path.is_file():
                existing.append(path)
                continue
            log_event(
                _LOGGER,
                "input_missing",
                level=logging.WARNING,
                run_id=run.run_id,
                path=str(path),
                detail=f'"{path}" is missing',
            )
        if not existing:
            raise NoInputFiles("All container files are missing.")
        return existing

    def _check_cancel(self, run: PipelineRun) -> None:
        if run.cancelled:
            raise RunCancelled(run.run_id)

    def _emit_overall(self, run: PipelineRun, progress: ProgressSink) -> None:
        progress(ProgressEvent("overall", OVERALL, run.overall_progress, run.overall_maximum))

    def _run_stage(
        self,
        run: PipelineRun,
        stage: StageDefinition,
        inputs: Sequence[Path],
        progress: ProgressSink,
        stage_stats: dict[str, dict[str, object]],
        *,
        advances_overall: bool = False,
    ) -> StageResult:
        def _sink(event: ProgressEvent) -> None:
            run.stage_progress = event.value
            progress(event)
            if advances_overall and event.kind == "stage_progress":
                run.overall_progress += 1
                self._emit_overall(run, progress)

        run.stage_progress = 0
        result = self.executor.run(stage, inputs, _sink, run.cancel_event)
        stage_stats[stage.name] = result.to_record()
        return result

    def _run_pipeline(self, run: PipelineRun, progress: ProgressSink) -> RunResult:
        result = RunResult(run_id=run.run_id, outcome=RunOutcome.COMPLETED)
        log_event(
            _LOGGER,
            "run_started",
            run_id=run.run_id,
            input_count=len(run.inputs),
            output_dir=str(run.output_dir),
            formats=[fmt.value for fmt in run.formats],
        )

        try:
            if not run.inputs:
                log_event(
                    _LOGGER,
                    "no_input_files",
                    level=logging.WARNING,
                    run_id=run.run_id,
                    detail="No container files to process",
                )
                return result

            run.batch.containers = self._existing_inputs(run)
            self.resources.ensure_tools_unpacked()
            scratch = self.scratch.prepare(run.formats)

            unpack = unpack_stage(self.runner, self.tools, scratch)
            decode = decode_stage(self.runner, self.tools, scratch)

            self._check_cancel(run)
            unpacked = self._run_stage(
                run,
                unpack,
                run.batch.containers,
                progress,
                result.stage_stats,
            )
            if unpacked.cancelled:
                raise RunCancelled(run.run_id)

            self._check_cancel(run)
            run.batch.intermediate_files = list_stage_files(unpack.output_dir, unpack.output_suffix)
            decoded = self._run_stage(
                run,
                decode,
                run.batch.intermediate_files,
                progress,
                result.stage_stats,
            )
            if decoded.cancelled:
                raise RunCancelled(run.run_id)

            run.batch.decoded_files = list_stage_files(decode.output_dir, decode.output_suffix)
            decoded_count = run.batch.unique_sources
            run.overall_maximum = decoded_count * (len(run.formats) + 1)
            run.overall_progress = decoded_count
            self._emit_overall(run, progress)

            for fmt in run.formats:
                self._check_cancel(run)
                encoded = self._run_stage(
                    run,
                    encode_stage(
                        self.runner,
                        self.tools,
                        scratch,
                        fmt,
                        self.config.encoder,
                        run.output_dir,
                    ),
                    run.batch.decoded_files,
                    progress,
                    result.stage_stats,
                    advances_overall=True,
                )
                run.files_produced += encoded.succeeded
                if encoded.cancelled:
                    raise RunCancelled(run.run_id)

        except RunCancelled:
            result.outcome = RunOutcome.CANCELLED
        except PipelineError as exc:
            result.outcome = RunOutcome.FAILED
            result.error = f"{type(exc).__name__}: {exc}"
        except Exception as exc:
            result.outcome = RunOutcome.FAILED
            result.error = f"{type(exc).__name__}: {exc}"
            log_event(
                _LOGGER,
                "run_crashed",
                level=logging.ERROR,
                run_id=run.run_id,
                traceback=traceback.format_exc(),
            )
        finally:
            self.resources.teardown(self.scratch)
            result.files_produced = run.files_produced
            result.unique_sources = run.batch.unique_sources
            result.finished_at = utc_now()
            log_event(
                _LOGGER,
                "run_finished",
                level=logging.ERROR if result.outcome is RunOutcome.FAILED else logging.INFO,
                run_id=run.run_id,
                outcome=result.outcome.value,
                files_produced=result.files_produced,
                unique_sources=result.unique_sources,
                error=result.error,
                summary=result.summary_line(),
            )

        return result
