"""Bundled tool unpacking and run teardown."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import stat
import threading
import zipfile

from pckaudio.observability.logging import get_logger, log_event
from pckaudio.pipeline.errors import TeardownError, ToolUnpackError
from pckaudio.pipeline.runner import ProcessRunner
from pckaudio.pipeline.tools import ExternalToolSet
from pckaudio.storage.scratch import ScratchArea


_LOGGER = get_logger("pckaudio.resources")

# Process-wide: the bundle is extracted at most once per interpreter.
_UNPACK_LOCK = threading.Lock()
_TOOLS_UNPACKED = False


def tools_unpacked() -> bool:
    return _TOOLS_UNPACKED


def _mark_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _member_paths(archive: zipfile.ZipFile, target: Path) -> list[Path]:
    root = target.resolve()
    paths: list[Path] = []
    for info in archive.infolist():
        if info.is_dir():
            continue
        path = target / info.filename
        if root in path.resolve().parents:
            paths.append(path)
    return paths


def _extract_bundle(bundle: Path, target: Path) -> list[Path]:
    try:
        with zipfile.ZipFile(bundle) as archive:
            paths = _member_paths(archive, target)
            archive.extractall(target)
    except (OSError, zipfile.BadZipFile) as exc:
        raise ToolUnpackError(f"Could not unpack tool bundle {bundle}: {exc}") from exc
    return paths


def _log_teardown_failure(error: TeardownError) -> None:
    log_event(
        _LOGGER,
        "teardown_failed",
        level=logging.WARNING,
        path=str(error.path),
        error=str(error),
    )


class ResourceLifecycle:
    """Unpack-once tool provisioning plus guaranteed cleanup."""

    def __init__(
        self,
        tools: ExternalToolSet,
        runner: ProcessRunner,
        bundle: Path | None = None,
    ) -> None:
        self.tools = tools
        self.runner = runner
        self.bundle = bundle

    def ensure_tools_unpacked(self) -> bool:
        """Extract the tool bundle unless this process already did.

        Returns True when an unpack happened during this call.
        """

        global _TOOLS_UNPACKED
        with _UNPACK_LOCK:
            if _TOOLS_UNPACKED:
                return False
            try:
                self.tools.tools_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise ToolUnpackError(
                    f"Could not create tools directory {self.tools.tools_dir}: {exc}"
                ) from exc

            extracted: list[Path] = []
            if self.bundle is not None:
                log_event(_LOGGER, "tools_unpacking", bundle=str(self.bundle))
                extracted = _extract_bundle(self.bundle, self.tools.tools_dir)
                if os.name != "nt":
                    for path in extracted:
                        if path in self.tools.executables():
                            _mark_executable(path)

            _TOOLS_UNPACKED = True
            log_event(
                _LOGGER,
                "tools_unpacked",
                tools_dir=str(self.tools.tools_dir),
                file_count=len(extracted),
            )
            return True

    def kill_all_tool_processes(self) -> int:
        """Stop every tool child still running. Never raises."""

        return self.runner.terminate_all()

    def teardown(self, scratch: ScratchArea | None, *, dispose: bool = False) -> None:
        """Kill children and delete scratch (and unpacked tools, on dispose)."""

        global _TOOLS_UNPACKED
        self.kill_all_tool_processes()
        if scratch is not None:
            try:
                scratch.remove()
            except TeardownError as exc:
                _log_teardown_failure(exc)
        if dispose:
            with _UNPACK_LOCK:
                self._remove_unpacked_tools()
                _TOOLS_UNPACKED = False

    def _remove_unpacked_tools(self) -> None:
        # Only files that came out of the bundle are ours; tools placed in
        # tools_dir by hand stay.
        tools_dir = self.tools.tools_dir
        if self.bundle is None:
            log_event(_LOGGER, "tools_kept", tools_dir=str(tools_dir), reason="no bundle configured")
            return
        if not tools_dir.is_dir():
            return
        try:
            with zipfile.ZipFile(self.bundle) as archive:
                members = _member_paths(archive, tools_dir)
        except (OSError, zipfile.BadZipFile) as exc:
            _log_teardown_failure(TeardownError(tools_dir, f"cannot list bundle {self.bundle}: {exc}"))
            return

        for path in members:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                _log_teardown_failure(TeardownError(path, str(exc)))
        _prune_empty_dirs(tools_dir)
        log_event(_LOGGER, "tools_removed", tools_dir=str(tools_dir), file_count=len(members))


def _prune_empty_dirs(root: Path) -> None:
    nested = [path for path in root.rglob("*") if path.is_dir() and not path.is_symlink()]
    for directory in sorted(nested, key=lambda path: len(path.parts), reverse=True) + [root]:
        try:
            if not any(directory.iterdir()):
                directory.rmdir()
        except OSError as exc:
            _log_teardown_failure(TeardownError(directory, str(exc)))
