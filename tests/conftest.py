"""Shared test fixtures."""

import wave
from pathlib import Path

import numpy as np
import pytest

from directordeck.clock import Clock
from directordeck.recorder import MockRecorder, RecordingConfig
from directordeck.session import RecordingSession


class FakeTime:
    """Manually advanced monotonic time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def clock(fake_time):
    return Clock(time_source=fake_time)


@pytest.fixture
def recorder():
    return MockRecorder(duration=0.5)


@pytest.fixture
def session(tmp_path, recorder, clock):
    return RecordingSession(
        recorder,
        tmp_path / "recordings",
        config=RecordingConfig(sample_rate=16000, channels=1),
        clock=clock,
        stem_factory=lambda: "2025-01-15-143022",
    )


@pytest.fixture
def tmp_data_dir(tmp_path, monkeypatch):
    """Point DIRECTORDECK_DATA_DIR at a temporary directory."""
    monkeypatch.setenv("DIRECTORDECK_DATA_DIR", str(tmp_path))
    (tmp_path / "recordings").mkdir()
    return tmp_path


def make_wav(path: Path, duration: float = 1.0, sample_rate: int = 16000):
    """Write a WAV file of silence."""
    samples = np.zeros(int(duration * sample_rate), dtype=np.int16)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(samples.tobytes())
