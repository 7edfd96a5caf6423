"""Tests for whisper.cpp binary and model management."""

from pathlib import Path
from unittest.mock import patch

import pytest

from directordeck.errors import TranscriptionFailed
from directordeck.whisper_manager import WhisperManager


@pytest.fixture
def wm(tmp_path, monkeypatch):
    monkeypatch.setattr("shutil.which", lambda name: None)
    return WhisperManager(tmp_path / "whisper")


def _install_model(wm, model="base"):
    wm.models_dir.mkdir(parents=True, exist_ok=True)
    wm.model_path(model).write_bytes(b"fake model data")


class TestFindBinary:
    def test_no_binary(self, wm):
        assert wm.find_binary() is None

    def test_managed_binary(self, wm):
        wm.binary_path.parent.mkdir(parents=True, exist_ok=True)
        wm.binary_path.write_text("fake binary")
        assert wm.find_binary() == wm.binary_path

    def test_path_fallback(self, wm, monkeypatch):
        monkeypatch.setattr("shutil.which", lambda name: "/usr/bin/whisper-cpp" if name == "whisper-cpp" else None)
        assert wm.find_binary() == Path("/usr/bin/whisper-cpp")


class TestModelPath:
    def test_known_model(self, wm):
        path = wm.model_path("base")
        assert path.name == "ggml-base.bin"
        assert path.parent == wm.models_dir

    def test_large_maps_to_v3(self, wm):
        assert wm.model_path("large").name == "ggml-large-v3.bin"

    def test_availability(self, wm):
        assert wm.is_model_available("base") is False
        _install_model(wm)
        assert wm.is_model_available("base") is True


class TestRequire:
    def test_missing_binary(self, wm):
        _install_model(wm)
        with pytest.raises(TranscriptionFailed, match="whisper.cpp not found"):
            wm.require("base")

    def test_missing_model(self, wm, monkeypatch):
        monkeypatch.setattr("shutil.which", lambda name: "/usr/bin/whisper-cli")
        with pytest.raises(TranscriptionFailed, match="directordeck setup --model small"):
            wm.require("small")

    def test_ready(self, wm, monkeypatch):
        monkeypatch.setattr("shutil.which", lambda name: "/usr/bin/whisper-cli")
        _install_model(wm)
        binary, model = wm.require("base")
        assert binary == Path("/usr/bin/whisper-cli")
        assert model == wm.model_path("base")


class TestDownloadModel:
    def test_unknown_model(self, wm):
        with pytest.raises(ValueError, match="Unknown model"):
            wm.download_model("nonexistent")

    def test_skip_if_exists(self, wm):
        _install_model(wm)
        with patch("directordeck.whisper_manager._download_with_progress") as download:
            assert wm.download_model("base") == wm.model_path("base")
        download.assert_not_called()

    def test_force_redownloads(self, wm):
        _install_model(wm)
        with patch("directordeck.whisper_manager._download_with_progress") as download:
            wm.download_model("base", force=True)
        url, dest = download.call_args[0]
        assert url.endswith("/ggml-base.bin")
        assert dest == wm.model_path("base")

    def test_failed_download_cleans_up(self, wm):
        def partial_download(url, dest):
            dest.write_bytes(b"partial")
            raise OSError("connection reset")

        with patch("directordeck.whisper_manager._download_with_progress", side_effect=partial_download):
            with pytest.raises(RuntimeError, match="Failed to download model"):
                wm.download_model("tiny")
        assert not wm.model_path("tiny").exists()
