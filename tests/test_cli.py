"""Tests for the tyro CLI commands."""

from __future__ import annotations

import json
import zipfile

import pytest

from pckaudio.cli.app import main
from pckaudio.storage.atomic import read_json


@pytest.fixture
def config_file(tmp_path, tools_dir):
    path = tmp_path / "export.json"
    path.write_text(
        json.dumps(
            {
                "tools": {"tools_dir": str(tools_dir)},
                "scratch_root": str(tmp_path / "processing"),
                "log_level": "WARNING",
            }
        )
    )
    return path


class TestExportCommand:
    def test_export_writes_outputs_and_report(self, config_file, make_container, tmp_path, capsys):
        container = make_container("a.pck", "a", "b")
        report = tmp_path / "report.json"

        main(
            [
                "export",
                str(container),
                "--output-dir",
                str(tmp_path / "out"),
                "--formats",
                "mp3",
                "flac",
                "--config",
                str(config_file),
                "--report",
                str(report),
            ]
        )

        assert sorted(path.name for path in (tmp_path / "out" / "flac").iterdir()) == [
            "a.flac",
            "b.flac",
        ]
        record = read_json(report)
        assert record["outcome"] == "COMPLETED"
        assert record["files_produced"] == 4
        assert "4 audio files have been exported (2 unique sounds)" in capsys.readouterr().out

    def test_all_missing_inputs_exit_with_failure(self, config_file, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            main(
                [
                    "export",
                    str(tmp_path / "missing.pck"),
                    "--output-dir",
                    str(tmp_path / "out"),
                    "--config",
                    str(config_file),
                ]
            )

        assert excinfo.value.code == 1


class TestToolsCommand:
    def test_unpack_then_clean(self, config_file, tools_dir, capsys):
        main(["tools", "unpack", "--config", str(config_file)])
        assert "tools unpacked" in capsys.readouterr().out

        main(["tools", "unpack", "--config", str(config_file)])
        assert "tools already unpacked" in capsys.readouterr().out

        main(["tools", "clean", "--config", str(config_file)])
        out = capsys.readouterr().out
        assert "tools kept" in out
        assert "no bundle configured" in out
        assert (tools_dir / "quickbms").is_file()

    def test_clean_removes_only_bundle_files(self, tmp_path, capsys):
        bundle = tmp_path / "libs.zip"
        with zipfile.ZipFile(bundle, "w") as archive:
            archive.writestr("quickbms", "#!/bin/sh\n")
        tools_dir = tmp_path / "libs"
        config = tmp_path / "bundled.json"
        config.write_text(
            json.dumps(
                {
                    "tools": {"tools_dir": str(tools_dir), "bundle": str(bundle)},
                    "scratch_root": str(tmp_path / "processing"),
                    "log_level": "WARNING",
                }
            )
        )
        main(["tools", "unpack", "--config", str(config)])
        (tools_dir / "my_notes.txt").write_text("keep me")
        capsys.readouterr()

        main(["tools", "clean", "--config", str(config)])

        assert "tools cleaned" in capsys.readouterr().out
        assert not (tools_dir / "quickbms").exists()
        assert (tools_dir / "my_notes.txt").is_file()
