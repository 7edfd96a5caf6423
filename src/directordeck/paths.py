"""Data directory layout.

Everything directordeck stores lives under one data directory::

    <data_dir>/
        config.toml
        recordings/   audio, .meta, transcripts and summaries per stem
        exports/      NLE marker XML
        whisper/      whisper.cpp build and ggml models
"""

import os
from pathlib import Path

from platformdirs import user_data_dir

from directordeck.constants import APP_NAME, DATA_DIR_ENV

RECORDINGS = "recordings"
EXPORTS = "exports"
WHISPER = "whisper"
CONFIG_FILE = "config.toml"

# Created up front by ensure_dirs; whisper/ is created on first install.
ENSURED_DIRS = (RECORDINGS, EXPORTS)


def get_data_dir(config_override: str = "") -> Path:
    """Resolve the data directory.

    Priority: config_override > DIRECTORDECK_DATA_DIR env var > platform default.
    A leading ``~`` in either override is expanded.
    """
    override = config_override or os.environ.get(DATA_DIR_ENV, "")
    if override:
        return Path(override).expanduser()
    return Path(user_data_dir(APP_NAME))


def _subdir(data_dir: Path, name: str) -> Path:
    return Path(data_dir) / name


def get_recordings_dir(data_dir: Path) -> Path:
    """Where recordings and their sidecar files are kept."""
    return _subdir(data_dir, RECORDINGS)


def get_exports_dir(data_dir: Path) -> Path:
    """Default destination for ``export`` when no ``--output`` is given."""
    return _subdir(data_dir, EXPORTS)


def get_whisper_dir(data_dir: Path) -> Path:
    return _subdir(data_dir, WHISPER)


def get_config_path(data_dir: Path) -> Path:
    return _subdir(data_dir, CONFIG_FILE)


def ensure_dirs(data_dir: Path) -> None:
    """Create the recordings and exports directories if they don't exist."""
    for name in ENSURED_DIRS:
        _subdir(data_dir, name).mkdir(parents=True, exist_ok=True)
