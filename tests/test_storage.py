"""Tests for scratch layout and atomic file helpers."""

from __future__ import annotations

import pytest

from pckaudio.pipeline.errors import ScratchAreaError, TeardownError
from pckaudio.pipeline.run import AudioFormat
from pckaudio.storage import scratch as scratch_module
from pckaudio.storage.atomic import atomic_copy, atomic_write_json, read_json
from pckaudio.storage.scratch import build_scratch_area, list_stage_files


class TestScratchArea:
    def test_prepare_creates_stage_folders(self, tmp_path):
        scratch = build_scratch_area(tmp_path / "processing")

        scratch.prepare([AudioFormat.MP3, AudioFormat.WAV])

        assert scratch.intermediate.is_dir()
        assert scratch.decoded.is_dir()
        assert scratch.format_dir(AudioFormat.MP3).is_dir()
        assert scratch.format_dir(AudioFormat.WAV) == scratch.decoded

    def test_prepare_clears_leftovers(self, tmp_path):
        scratch = build_scratch_area(tmp_path / "processing")
        scratch.prepare([AudioFormat.OGG])
        (scratch.intermediate / "stale.wem").write_text("old")
        (scratch.root / "stray.txt").write_text("old")

        scratch.prepare([AudioFormat.OGG])

        assert list(scratch.intermediate.iterdir()) == []
        assert not (scratch.root / "stray.txt").exists()

    def test_prepare_wraps_os_errors(self, tmp_path):
        blocker = tmp_path / "processing"
        blocker.write_text("not a directory")

        with pytest.raises(ScratchAreaError):
            build_scratch_area(blocker).prepare([AudioFormat.WAV])

    def test_remove_deletes_tree_and_tolerates_absence(self, tmp_path):
        scratch = build_scratch_area(tmp_path / "processing")
        scratch.prepare([AudioFormat.FLAC])
        (scratch.decoded / "a.wav").write_text("pcm")

        scratch.remove()
        scratch.remove()

        assert not scratch.exists()

    def test_remove_failure_raises_teardown_error(self, tmp_path, monkeypatch):
        scratch = build_scratch_area(tmp_path / "processing")
        scratch.prepare([])

        def _fail(path):
            raise PermissionError(13, "Permission denied", str(path))

        monkeypatch.setattr(scratch_module.shutil, "rmtree", _fail)

        with pytest.raises(TeardownError) as excinfo:
            scratch.remove()

        assert excinfo.value.path == scratch.root

    def test_list_stage_files_filters_and_sorts(self, tmp_path):
        for name in ("b.WEM", "a.wem", "c.txt"):
            (tmp_path / name).write_text(name)
        (tmp_path / "dir.wem").mkdir()

        found = list_stage_files(tmp_path, ".wem")

        assert [path.name for path in found] == ["a.wem", "b.WEM"]

    def test_list_stage_files_missing_directory(self, tmp_path):
        assert list_stage_files(tmp_path / "absent", ".wav") == []


class TestAtomic:
    def test_atomic_copy_overwrites_destination(self, tmp_path):
        src = tmp_path / "a.wav"
        src.write_text("new")
        dst = tmp_path / "out" / "a.wav"
        dst.parent.mkdir()
        dst.write_text("old")

        atomic_copy(src, dst)

        assert dst.read_text() == "new"
        assert [path.name for path in dst.parent.iterdir()] == ["a.wav"]

    def test_json_round_trip(self, tmp_path):
        path = tmp_path / "reports" / "run.json"

        atomic_write_json(path, {"outcome": "COMPLETED", "files_produced": 2})

        assert read_json(path) == {"files_produced": 2, "outcome": "COMPLETED"}
