"""Textual monitor for a single export run."""

from __future__ import annotations

import logging
from pathlib import Path
import sys
from typing import Sequence

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.message import Message
from textual.widgets import Footer, Header, ProgressBar, RichLog, Static
from textual.worker import Worker, WorkerState

from pckaudio.config.schema import ExportConfig
from pckaudio.observability.logging import configure_logging, record_fields
from pckaudio.pipeline.orchestrator import OVERALL, PipelineOrchestrator
from pckaudio.pipeline.run import AudioFormat, PipelineRun, RunResult
from pckaudio.pipeline.stage import ProgressEvent


def format_record(record: logging.LogRecord) -> str:
    fields = record_fields(record)
    fields.pop("event", None)
    details = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
    return f"{record.levelname:<7} {record.getMessage()} {details}".rstrip()


class LogLine(Message):
    def __init__(self, line: str) -> None:
        super().__init__()
        self.line = line


class ProgressUpdate(Message):
    def __init__(self, event: ProgressEvent) -> None:
        super().__init__()
        self.event = event


class _MonitorLogHandler(logging.Handler):
    """Forward pckaudio log records into the monitor's log panel."""

    def __init__(self, app: "ExportMonitorApp") -> None:
        super().__init__()
        self.app = app

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = format_record(record)
        except Exception:  # pragma: no cover
            self.handleError(record)
            return
        # post_message is thread-safe and never blocks the worker.
        self.app.post_message(LogLine(line))


class ExportMonitorApp(App[None]):
    """Start, abort and watch an export from the terminal."""

    CSS = """
    Screen {
        layout: vertical;
    }

    #status_line {
        height: 1;
        padding: 0 1;
        color: $text-muted;
        background: $surface-darken-1;
    }

    #bars {
        height: auto;
        margin: 1 1 0 1;
        border: round $panel;
        padding: 0 1;
    }

    #log {
        height: 1fr;
        margin: 1;
        border: round $panel;
    }
    """

    BINDINGS = [
        Binding("e", "toggle_export", "Export/Abort"),
        Binding("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        *,
        orchestrator: PipelineOrchestrator,
        inputs: Sequence[Path],
        output_dir: Path,
        formats: Sequence[AudioFormat],
    ) -> None:
        super().__init__()
        self.orchestrator = orchestrator
        self.inputs = tuple(inputs)
        self.output_dir = output_dir
        self.formats = tuple(formats)

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static(id="status_line")
        with Vertical(id="bars"):
            yield Static("Current stage", id="stage_label")
            yield ProgressBar(id="stage_progress", show_eta=False)
            yield Static("Overall", id="overall_label")
            yield ProgressBar(id="overall_progress", show_eta=False)
        yield RichLog(id="log", wrap=True, markup=False)
        yield Footer()

    def on_mount(self) -> None:
        self._set_status("idle | e to export")

    def on_unmount(self) -> None:
        self.orchestrator.close()

    def on_log_line(self, message: LogLine) -> None:
        self.query_one("#log", RichLog).write(message.line)

    def on_progress_update(self, message: ProgressUpdate) -> None:
        event = message.event
        if event.stage == OVERALL:
            bar = self.query_one("#overall_progress", ProgressBar)
            bar.update(total=max(event.maximum, 1), progress=event.value)
            return
        if event.kind == "stage_started":
            self.query_one("#stage_label", Static).update(f"Current stage: {event.stage}")
        bar = self.query_one("#stage_progress", ProgressBar)
        bar.update(total=max(event.maximum, 1), progress=event.value)

    def _set_status(self, text: str) -> None:
        self.query_one("#status_line", Static).update(text)

    def _on_progress(self, event: ProgressEvent) -> None:
        self.post_message(ProgressUpdate(event))

    def _reset_bars(self) -> None:
        for bar_id in ("#stage_progress", "#overall_progress"):
            self.query_one(bar_id, ProgressBar).update(total=None, progress=0)

    def action_toggle_export(self) -> None:
        if self.orchestrator.busy:
            self.orchestrator.request_cancel()
            self._set_status("aborting...")
            return

        try:
            run = PipelineRun.create(self.inputs, self.output_dir, self.formats)
        except ValueError as exc:
            self.notify(str(exc), severity="error")
            return
        self._reset_bars()
        self._set_status(f"running run_id={run.run_id[:12]} | e to abort")
        self.run_worker(
            lambda: self.orchestrator.execute(run, self._on_progress),
            name="export",
            thread=True,
            exclusive=True,
        )

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if event.worker.name != "export":
            return
        if event.state == WorkerState.SUCCESS:
            result: RunResult = event.worker.result
            self._set_status(f"{result.outcome.value.lower()} | e to export again")
            self.query_one("#log", RichLog).write(result.summary_line())
            self.notify(result.summary_line())
        elif event.state == WorkerState.ERROR:
            error = event.worker.error
            self._set_status("failed | e to retry")
            self.notify(f"Export crashed: {type(error).__name__}: {error}", severity="error")


def run_export_monitor(
    *,
    config: ExportConfig,
    inputs: Sequence[Path],
    output_dir: Path,
    formats: Sequence[AudioFormat],
) -> None:
    """Run the export monitor TUI."""

    if not sys.stdin.isatty() or not sys.stdout.isatty():
        raise SystemExit("pckaudio monitor requires an interactive terminal")

    app = ExportMonitorApp(
        orchestrator=PipelineOrchestrator(config),
        inputs=inputs,
        output_dir=output_dir,
        formats=formats,
    )

    # JSON lines on stderr would tear the screen; route records into the app.
    logger = configure_logging(config.log_level)
    logger.setLevel(config.log_level.upper())
    previous = list(logger.handlers)
    handler = _MonitorLogHandler(app)
    for existing in previous:
        logger.removeHandler(existing)
    logger.addHandler(handler)
    try:
        app.run()
    finally:
        logger.removeHandler(handler)
        for existing in previous:
            logger.addHandler(existing)
