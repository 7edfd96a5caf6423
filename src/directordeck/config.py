"""Configuration loading, saving, and management."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import tomli_w

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from directordeck.constants import (
    DEFAULT_CHANNELS,
    DEFAULT_FRAME_RATE,
    DEFAULT_LANGUAGE,
    DEFAULT_MODEL,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_SUMMARY_MAX_TOKENS,
    DEFAULT_SUMMARY_MODEL,
    DEFAULT_SUMMARY_TEMPERATURE,
    DEFAULT_TICK_INTERVAL_MS,
    MAX_TICK_INTERVAL_MS,
    QUICK_TAGS,
    VALID_MODELS,
)


@dataclass
class RecordingDefaults:
    sample_rate: int = DEFAULT_SAMPLE_RATE
    channels: int = DEFAULT_CHANNELS
    default_device: str = ""
    auto_transcribe: bool = False
    tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS


@dataclass
class TranscriptionDefaults:
    model: str = DEFAULT_MODEL
    language: str = DEFAULT_LANGUAGE


@dataclass
class SummaryDefaults:
    enabled: bool = True
    api_key: str = ""
    model: str = DEFAULT_SUMMARY_MODEL
    temperature: float = DEFAULT_SUMMARY_TEMPERATURE
    max_tokens: int = DEFAULT_SUMMARY_MAX_TOKENS


@dataclass
class MarkerDefaults:
    quick_tags: list[str] = field(default_factory=lambda: list(QUICK_TAGS))


@dataclass
class ExportDefaults:
    frame_rate: int = DEFAULT_FRAME_RATE


@dataclass
class StorageDefaults:
    data_dir: str = ""


@dataclass
class DirectorDeckConfig:
    recording: RecordingDefaults = field(default_factory=RecordingDefaults)
    transcription: TranscriptionDefaults = field(default_factory=TranscriptionDefaults)
    summary: SummaryDefaults = field(default_factory=SummaryDefaults)
    markers: MarkerDefaults = field(default_factory=MarkerDefaults)
    export: ExportDefaults = field(default_factory=ExportDefaults)
    storage: StorageDefaults = field(default_factory=StorageDefaults)

    @classmethod
    def load(cls, config_path: Path | None = None) -> DirectorDeckConfig:
        """Load config from TOML file, falling back to defaults for missing keys."""
        config = cls()
        if config_path is None or not config_path.exists():
            return config

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        for section_field in fields(config):
            section = getattr(config, section_field.name)
            for k, v in data.get(section_field.name, {}).items():
                if hasattr(section, k):
                    setattr(section, k, v)

        return config

    def save(self, config_path: Path) -> None:
        """Write current config to TOML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "wb") as f:
            tomli_w.dump(self._to_dict(), f)

    def get(self, key: str) -> Any:
        """Get a config value by dotted key (e.g., 'recording.sample_rate')."""
        obj, name = self._resolve(key)
        return getattr(obj, name)

    def set(self, key: str, value: Any) -> None:
        """Set a config value by dotted key, coercing strings to the field's type."""
        obj, name = self._resolve(key)
        coerced = _coerce_value(value, getattr(obj, name), key)
        _validate_value(key, coerced)
        setattr(obj, name, coerced)

    def _resolve(self, key: str) -> tuple[Any, str]:
        section, _, name = key.partition(".")
        if not name:
            raise KeyError(f"Invalid key format: {key!r}. Use 'section.key' (e.g., 'recording.sample_rate')")
        obj = getattr(self, section, None) if section in self._section_names() else None
        if obj is None:
            raise KeyError(f"Unknown config section: {section!r}")
        if not hasattr(obj, name):
            raise KeyError(f"Unknown config key: {key!r}")
        return obj, name

    def _section_names(self) -> set[str]:
        return {f.name for f in fields(self)}

    def _to_dict(self) -> dict:
        """Convert config to a nested dict for TOML serialization."""
        result = {}
        for section_field in fields(self):
            section_obj = getattr(self, section_field.name)
            result[section_field.name] = {
                f.name: getattr(section_obj, f.name) for f in fields(section_obj)
            }
        return result


def _coerce_value(value: Any, current: Any, key: str) -> Any:
    """Coerce a string value to match the type of the current value."""
    if not isinstance(value, str) or isinstance(current, str):
        return value
    if isinstance(current, bool):
        if value.lower() in ("true", "1", "yes"):
            return True
        if value.lower() in ("false", "0", "no"):
            return False
        raise ValueError(f"Cannot convert {value!r} to bool for key {key!r}")
    try:
        if isinstance(current, int):
            return int(value)
        if isinstance(current, float):
            return float(value)
    except ValueError:
        raise ValueError(f"Cannot convert {value!r} to a number for key {key!r}") from None
    if isinstance(current, list):
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _validate_value(key: str, value: Any) -> None:
    """Validate a config value."""
    if key == "transcription.model" and value not in VALID_MODELS:
        raise ValueError(f"Invalid model: {value!r}. Choose from: {', '.join(VALID_MODELS)}")
    if key == "recording.sample_rate" and value <= 0:
        raise ValueError(f"sample_rate must be positive, got {value}")
    if key == "recording.channels" and value <= 0:
        raise ValueError(f"channels must be positive, got {value}")
    if key == "recording.tick_interval_ms" and not (1 <= value <= MAX_TICK_INTERVAL_MS):
        raise ValueError(f"tick_interval_ms must be 1-{MAX_TICK_INTERVAL_MS}, got {value}")
    if key == "summary.temperature" and not (0.0 <= value <= 2.0):
        raise ValueError(f"temperature must be 0-2, got {value}")
    if key == "summary.max_tokens" and value <= 0:
        raise ValueError(f"max_tokens must be positive, got {value}")
    if key == "markers.quick_tags" and not value:
        raise ValueError("quick_tags must contain at least one tag")
    if key == "export.frame_rate" and value <= 0:
        raise ValueError(f"frame_rate must be positive, got {value}")
