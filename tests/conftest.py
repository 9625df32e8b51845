"""Shared fixtures: fake external tools written as small Python executables."""

from __future__ import annotations

import os
from pathlib import Path
import stat
import sys
import textwrap

import pytest

from pckaudio.config.schema import ExportConfig, ToolsConfig
from pckaudio.pipeline import orchestrator as orchestrator_module
from pckaudio.resources import lifecycle


if os.name == "nt":  # pragma: no cover
    collect_ignore_glob = ["test_*.py"]


# Writes one `<name>.wem` per non-empty line of the container. A container
# whose first line is FAIL makes the tool exit with status 3.
FAKE_UNPACKER = """
import sys
from pathlib import Path

_script, container, outdir = sys.argv[1:4]
lines = [line.strip() for line in Path(container).read_text().splitlines() if line.strip()]
if lines and lines[0] == "FAIL":
    sys.exit(3)
for name in lines:
    (Path(outdir) / f"{name}.wem").write_text(name)
"""

# `-o <out> <in>`; inputs whose content contains "corrupt" fail with status 2.
FAKE_DECODER = """
import shutil
import sys
from pathlib import Path

out = sys.argv[sys.argv.index("-o") + 1]
src = sys.argv[-1]
if "corrupt" in Path(src).read_text():
    sys.stderr.write("unsupported codec")
    sys.exit(2)
shutil.copyfile(src, out)
"""

# `-i <in> -y <flags...> <out>`; records the flags next to the output.
FAKE_ENCODER = """
import shutil
import sys
from pathlib import Path

src = sys.argv[sys.argv.index("-i") + 1]
out = Path(sys.argv[-1])
shutil.copyfile(src, out)
out.with_name(out.name + ".args").write_text(" ".join(sys.argv[1:]))
"""

FAKE_SLEEPER = """
import time

time.sleep(60)
"""


def write_tool(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body).lstrip(), encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture(autouse=True)
def reset_unpack_flag(monkeypatch):
    """Every test starts in a process where tools were never unpacked."""
    monkeypatch.setattr(lifecycle, "_TOOLS_UNPACKED", False)


@pytest.fixture(autouse=True)
def reset_active_export(monkeypatch):
    """A run left behind by a failed test must not make the next one busy."""
    monkeypatch.setattr(orchestrator_module, "_ACTIVE", None)


@pytest.fixture
def tools_dir(tmp_path):
    directory = tmp_path / "libs"
    write_tool(directory / "quickbms", FAKE_UNPACKER)
    write_tool(directory / "vgmstream-cli", FAKE_DECODER)
    write_tool(directory / "ffmpeg", FAKE_ENCODER)
    (directory / "wavescan.bms").write_text("# fake unpack script\n")
    return directory


@pytest.fixture
def export_config(tmp_path, tools_dir):
    return ExportConfig(
        tools=ToolsConfig(tools_dir=tools_dir),
        scratch_root=tmp_path / "processing",
    )


@pytest.fixture
def make_container(tmp_path):
    """Create a fake PCK container listing the entries it holds."""

    def _make(name: str, *entries: str) -> Path:
        path = tmp_path / "input" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(entries) + "\n", encoding="utf-8")
        return path

    return _make
