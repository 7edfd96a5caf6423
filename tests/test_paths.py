"""Tests for path resolution."""

from directordeck.paths import (
    ensure_dirs,
    get_config_path,
    get_data_dir,
    get_exports_dir,
    get_recordings_dir,
    get_whisper_dir,
)


def test_data_dir_default(monkeypatch):
    monkeypatch.delenv("DIRECTORDECK_DATA_DIR", raising=False)
    assert "directordeck" in str(get_data_dir())


def test_data_dir_config_override(tmp_path):
    assert get_data_dir(config_override=str(tmp_path / "custom")) == tmp_path / "custom"


def test_data_dir_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("DIRECTORDECK_DATA_DIR", str(tmp_path / "env_dir"))
    assert get_data_dir() == tmp_path / "env_dir"


def test_config_override_takes_precedence_over_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DIRECTORDECK_DATA_DIR", str(tmp_path / "env"))
    assert get_data_dir(config_override=str(tmp_path / "config")) == tmp_path / "config"


def test_subdirectory_helpers(tmp_path):
    assert get_recordings_dir(tmp_path) == tmp_path / "recordings"
    assert get_exports_dir(tmp_path) == tmp_path / "exports"
    assert get_whisper_dir(tmp_path) == tmp_path / "whisper"
    assert get_config_path(tmp_path) == tmp_path / "config.toml"


def test_ensure_dirs_idempotent(tmp_path):
    ensure_dirs(tmp_path)
    ensure_dirs(tmp_path)
    assert (tmp_path / "recordings").is_dir()
    assert (tmp_path / "exports").is_dir()


def test_data_dir_expands_user(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("DIRECTORDECK_DATA_DIR", "~/deck")
    assert get_data_dir() == tmp_path / "deck"
    assert get_data_dir(config_override="~/other") == tmp_path / "other"


def test_empty_env_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("DIRECTORDECK_DATA_DIR", "")
    assert "directordeck" in str(get_data_dir())


def test_ensure_dirs_leaves_whisper_for_install(tmp_path):
    ensure_dirs(tmp_path / "fresh")
    assert sorted(p.name for p in (tmp_path / "fresh").iterdir()) == ["exports", "recordings"]
