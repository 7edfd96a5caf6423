"""Audio capture devices."""

from directordeck.recorder.base import Recorder, RecordingConfig, RecordingResult
from directordeck.recorder.mock_recorder import MockRecorder

__all__ = [
    "Recorder",
    "RecordingConfig",
    "RecordingResult",
    "MockRecorder",
]
