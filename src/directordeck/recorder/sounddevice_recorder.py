"""Microphone capture using sounddevice (PortAudio)."""

from __future__ import annotations

import threading
import wave
from pathlib import Path

from directordeck.recorder.base import Recorder, RecordingConfig, RecordingResult


class SounddeviceRecorder(Recorder):
    """Records a sounddevice input stream into a 16-bit WAV file.

    Pausing stops the PortAudio stream; resuming restarts it. The WAV file
    stays open in between, so the paused stretch is simply absent from it.
    """

    def __init__(self):
        self._stream = None
        self._wav_file: wave.Wave_write | None = None
        self._config: RecordingConfig | None = None
        self._output_path: Path | None = None
        self._sample_rate = 0
        self._frames_written = 0
        self._recording = False
        self._level: float = 0.0
        self._device_name = "default"
        self._lock = threading.Lock()

    def start(self, output_path: Path, config: RecordingConfig) -> None:
        import numpy as np
        import sounddevice as sd

        if self._recording:
            raise RuntimeError("Already recording")

        device = config.device if config.device != "" else None
        dev_info = sd.query_devices(device, kind="input")
        sample_rate = config.sample_rate or int(dev_info["default_samplerate"])

        def callback(indata, frames, time_info, status):
            with self._lock:
                if self._wav_file is None:
                    return
                self._wav_file.writeframes(indata.tobytes())
                self._frames_written += frames
                self._level = float(np.max(np.abs(indata.astype(np.float32)))) / 32768.0

        wav_file = wave.open(str(output_path), "wb")
        wav_file.setnchannels(config.channels)
        wav_file.setsampwidth(2)  # 16-bit = 2 bytes
        wav_file.setframerate(sample_rate)

        try:
            stream = sd.InputStream(
                samplerate=sample_rate,
                channels=config.channels,
                dtype=config.dtype,
                device=device,
                callback=callback,
            )
        except Exception:
            wav_file.close()
            raise

        self._config = config
        self._output_path = output_path
        self._sample_rate = sample_rate
        self._frames_written = 0
        self._wav_file = wav_file
        self._device_name = str(dev_info.get("name", device or "default"))
        self._stream = stream
        try:
            stream.start()
        except Exception:
            stream.close()
            with self._lock:
                self._wav_file.close()
                self._wav_file = None
            self._stream = None
            raise
        self._recording = True

    def pause(self) -> None:
        if not self._recording:
            raise RuntimeError("Not recording")
        self._stream.stop()
        self._level = 0.0

    def resume(self) -> None:
        if not self._recording:
            raise RuntimeError("Not recording")
        self._stream.start()

    def stop(self) -> RecordingResult:
        if not self._recording:
            raise RuntimeError("Not recording")

        self._recording = False
        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        finally:
            with self._lock:
                self._wav_file.close()
                self._wav_file = None

        return RecordingResult(
            path=self._output_path,
            frames_written=self._frames_written,
            sample_rate=self._sample_rate,
            channels=self._config.channels,
            device_name=self._device_name,
        )

    def is_recording(self) -> bool:
        return self._recording

    @property
    def level(self) -> float:
        return self._level
