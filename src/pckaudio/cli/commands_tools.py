"""`pckaudio tools` command group."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

import tyro

from pckaudio.config.loader import load_export_config
from pckaudio.observability.logging import set_level
from pckaudio.pipeline.orchestrator import PipelineOrchestrator


@dataclass(slots=True)
class ToolsUnpackCommand:
    """Unpack the bundled external tools."""

    config: Annotated[str | None, tyro.conf.arg(prefix_name=False)] = None


@dataclass(slots=True)
class ToolsCleanCommand:
    """Remove files unpacked from the tool bundle and any leftover scratch files."""

    config: Annotated[str | None, tyro.conf.arg(prefix_name=False)] = None


ToolsSubcommand = Annotated[
    ToolsUnpackCommand,
    tyro.conf.subcommand(name="unpack", prefix_name=False),
] | Annotated[
    ToolsCleanCommand,
    tyro.conf.subcommand(name="clean", prefix_name=False),
]


@dataclass(slots=True)
class ToolsCommand:
    """Manage the external tool directory."""

    command: ToolsSubcommand


def execute(command: ToolsCommand) -> None:
    sub = command.command
    config = load_export_config(sub.config)
    set_level(config.log_level)
    orchestrator = PipelineOrchestrator(config)

    if isinstance(sub, ToolsUnpackCommand):
        unpacked = orchestrator.resources.ensure_tools_unpacked()
        state = "unpacked" if unpacked else "already unpacked"
        print(f"tools {state} dir={orchestrator.tools.tools_dir}")
        return

    if isinstance(sub, ToolsCleanCommand):
        orchestrator.dispose()
        if config.tools.bundle is not None:
            print(f"tools cleaned dir={orchestrator.tools.tools_dir}")
        else:
            print(f"tools kept dir={orchestrator.tools.tools_dir} (no bundle configured)")
        print(f"scratch removed dir={orchestrator.scratch.root}")
        return

    raise TypeError(f"Unsupported tools command type: {type(sub).__name__}")
