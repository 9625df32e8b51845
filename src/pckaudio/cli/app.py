"""Tyro CLI application entrypoint."""

from __future__ import annotations

from typing import Annotated

import tyro

from pckaudio.cli import (
    commands_export,
    commands_monitor,
    commands_tools,
)


TopLevelCommand = Annotated[
    commands_export.ExportCommand,
    tyro.conf.subcommand(name="export"),
] | Annotated[
    commands_tools.ToolsCommand,
    tyro.conf.subcommand(name="tools"),
] | Annotated[
    commands_monitor.MonitorCommand,
    tyro.conf.subcommand(name="monitor"),
]


def dispatch(command: TopLevelCommand) -> None:
    """Dispatch parsed top-level command object."""

    if isinstance(command, commands_export.ExportCommand):
        commands_export.execute(command)
        return
    if isinstance(command, commands_tools.ToolsCommand):
        commands_tools.execute(command)
        return
    if isinstance(command, commands_monitor.MonitorCommand):
        commands_monitor.execute(command)
        return
    raise TypeError(f"Unsupported command type: {type(command).__name__}")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and run requested command."""

    command = tyro.cli(TopLevelCommand, args=argv)
    dispatch(command)
