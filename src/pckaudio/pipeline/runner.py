"""Synchronous external tool launcher with child-process tracking."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import subprocess
import threading
from typing import Sequence

from pckaudio.observability.logging import get_logger, log_event
from pckaudio.pipeline.errors import ToolLaunchError


_LOGGER = get_logger("pckaudio.runner")
_STDERR_TAIL = 2000


def _creation_flags() -> int:
    if os.name == "nt":
        return subprocess.CREATE_NO_WINDOW
    return 0


def _tool_name(executable: Path | str) -> str:
    return Path(executable).stem


class ProcessRunner:
    """Launch one external tool at a time and wait for it.

    Every child stays registered until it has exited, so `terminate_all` can
    reach it by handle from another thread.
    """

    def __init__(self, terminate_timeout: float = 5.0) -> None:
        self.terminate_timeout = terminate_timeout
        self._active: set[subprocess.Popen[bytes]] = set()
        self._lock = threading.Lock()

    def run(
        self,
        executable: Path | str,
        arguments: Sequence[Path | str],
        cwd: Path | None = None,
    ) -> int:
        """Run `executable` with `arguments` and return its exit status."""

        tool = _tool_name(executable)
        cmd = [str(executable), *(str(arg) for arg in arguments)]
        try:
            process = subprocess.Popen(
                cmd,
                cwd=str(cwd) if cwd is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                creationflags=_creation_flags(),
            )
        except OSError as exc:
            message = exc.strerror or str(exc)
            log_event(
                _LOGGER,
                "tool_launch_failed",
                level=logging.ERROR,
                tool=tool,
                executable=str(executable),
                error=message,
            )
            raise ToolLaunchError(tool, message) from exc

        with self._lock:
            self._active.add(process)
        try:
            _, stderr = process.communicate()
        finally:
            with self._lock:
                self._active.discard(process)

        if process.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL:] if stderr else ""
            log_event(
                _LOGGER,
                "tool_exit_nonzero",
                level=logging.DEBUG,
                tool=tool,
                returncode=process.returncode,
                stderr=tail,
            )
        return process.returncode

    def active_count(self) -> int:
        """Return the number of children that have not exited yet."""

        with self._lock:
            return len(self._active)

    def terminate_all(self) -> int:
        """Terminate every tracked child and return how many were signalled."""

        with self._lock:
            processes = list(self._active)

        signalled = 0
        for process in processes:
            if process.poll() is not None:
                continue
            tool = _tool_name(process.args[0]) if isinstance(process.args, list) else "tool"
            try:
                process.terminate()
                try:
                    process.wait(timeout=self.terminate_timeout)
                except subprocess.TimeoutExpired:
                    process.kill()
                    process.wait(timeout=self.terminate_timeout)
                signalled += 1
            except (OSError, subprocess.TimeoutExpired) as exc:
                log_event(
                    _LOGGER,
                    "process_kill_failed",
                    level=logging.WARNING,
                    tool=tool,
                    pid=process.pid,
                    error=str(exc),
                    hint=f"Please stop {tool} (pid={process.pid}) manually.",
                )
        return signalled
