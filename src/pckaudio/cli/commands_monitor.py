"""`pckaudio monitor` command."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import tyro

from pckaudio.config.loader import load_export_config
from pckaudio.monitor.app import run_export_monitor
from pckaudio.pipeline.run import parse_formats


@dataclass(slots=True)
class MonitorCommand:
    """Open the interactive export monitor."""

    inputs: Annotated[tuple[Path, ...], tyro.conf.Positional]
    output_dir: Path = Path("exported")
    formats: tuple[str, ...] = ("wav",)
    config: str | None = None


def execute(command: MonitorCommand) -> None:
    config = load_export_config(command.config)
    run_export_monitor(
        config=config,
        inputs=command.inputs,
        output_dir=command.output_dir,
        formats=parse_formats(command.formats),
    )
