"""Mock capture device for testing without audio hardware."""

from __future__ import annotations

import wave
from pathlib import Path

import numpy as np

from directordeck.recorder.base import Recorder, RecordingConfig, RecordingResult


class MockRecorder(Recorder):
    """A recorder that writes pre-loaded audio (or silence) when stopped."""

    def __init__(
        self,
        audio_data: np.ndarray | None = None,
        duration: float = 2.0,
        start_error: Exception | None = None,
        stop_error: Exception | None = None,
    ):
        """Initialize with audio data or generate silence.

        Args:
            audio_data: Pre-loaded PCM data (int16). If None, generates silence.
            duration: Duration in seconds if generating silence.
            start_error: Raised from ``start`` to simulate an unavailable device.
            stop_error: Raised from ``stop`` to simulate a failed finalize.
        """
        self._audio_data = audio_data
        self._default_duration = duration
        self._start_error = start_error
        self._stop_error = stop_error
        self._output_path: Path | None = None
        self._config: RecordingConfig | None = None
        self._recording = False
        self._paused = False
        self.calls: list[str] = []

    def start(self, output_path: Path, config: RecordingConfig) -> None:
        if self._recording:
            raise RuntimeError("Already recording")
        self.calls.append("start")
        if self._start_error is not None:
            raise self._start_error

        self._config = config
        self._output_path = output_path
        self._recording = True
        self._paused = False

    def pause(self) -> None:
        if not self._recording:
            raise RuntimeError("Not recording")
        self.calls.append("pause")
        self._paused = True

    def resume(self) -> None:
        if not self._recording:
            raise RuntimeError("Not recording")
        self.calls.append("resume")
        self._paused = False

    def stop(self) -> RecordingResult:
        if not self._recording:
            raise RuntimeError("Not recording")
        self.calls.append("stop")
        self._recording = False
        if self._stop_error is not None:
            raise self._stop_error

        config = self._config
        if self._audio_data is not None:
            audio = self._audio_data
        else:
            num_samples = int(self._default_duration * config.sample_rate)
            audio = np.zeros(num_samples * config.channels, dtype=np.int16)

        with wave.open(str(self._output_path), "wb") as wf:
            wf.setnchannels(config.channels)
            wf.setsampwidth(2)
            wf.setframerate(config.sample_rate)
            wf.writeframes(audio.tobytes())

        return RecordingResult(
            path=self._output_path,
            frames_written=len(audio) // config.channels,
            sample_rate=config.sample_rate,
            channels=config.channels,
            device_name="mock",
        )

    def is_recording(self) -> bool:
        return self._recording

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def level(self) -> float:
        return 0.0
