"""Abstract capture-device interface and shared data types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class RecordingConfig:
    """Capture settings. Opaque to the recording session."""
    sample_rate: int = 16000
    channels: int = 1
    dtype: str = "int16"
    device: Optional[int | str] = None


@dataclass
class RecordingResult:
    """What the device reports once the audio file is finalized."""
    path: Path
    frames_written: int
    sample_rate: int
    channels: int
    device_name: str

    @property
    def duration_seconds(self) -> float:
        if not self.sample_rate:
            return 0.0
        return self.frames_written / self.sample_rate


class Recorder(ABC):
    """Abstract interface for an audio capture device.

    A recorder writes one file at a time: ``start`` opens it, ``pause`` and
    ``resume`` suspend and continue capture into the same file, and ``stop``
    finalizes it.
    """

    @abstractmethod
    def start(self, output_path: Path, config: RecordingConfig) -> None:
        """Open the device and begin capturing to the given path."""
        ...

    @abstractmethod
    def pause(self) -> None:
        """Suspend capture without closing the file."""
        ...

    @abstractmethod
    def resume(self) -> None:
        """Continue capturing into the open file."""
        ...

    @abstractmethod
    def stop(self) -> RecordingResult:
        """Stop capturing and finalize the file."""
        ...

    @abstractmethod
    def is_recording(self) -> bool:
        """Whether a file is currently open."""
        ...

    @property
    @abstractmethod
    def level(self) -> float:
        """Current input level (0.0 to 1.0)."""
        ...
