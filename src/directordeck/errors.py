"""Exception types raised by the recording core and its collaborators."""

from __future__ import annotations


class DirectorDeckError(Exception):
    """Base class for all directordeck errors."""


class PermissionDenied(DirectorDeckError):
    """Microphone access was not granted; the session never started."""


class DeviceUnavailable(DirectorDeckError):
    """The capture device could not be opened; the session never started."""


class InvalidTransition(DirectorDeckError):
    """An operation was invoked from a state that does not support it."""

    def __init__(self, operation: str, state):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while {state.value}")


class TranscriptionFailed(DirectorDeckError):
    """The speech-to-text backend failed for one recording."""


class SummarizationFailed(DirectorDeckError):
    """The summarization backend failed for one recording."""
