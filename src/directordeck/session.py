"""Interview recording session: the record/pause/resume/stop state machine.

A :class:`RecordingSession` owns one capture device, a :class:`Clock` and a
:class:`MarkerLog`. It is constructed explicitly and handed to whatever needs
it; every state change happens under the session's lock, so the clock's tick
thread and user-triggered calls never mutate it concurrently.

Invalid transitions are handled in one of two ways:

- ``pause`` and ``resume`` are lenient and return ``False`` when ignored.
- ``start``, ``stop``, ``add_marker``, ``update_marker_notes`` and ``handoff``
  raise :class:`InvalidTransition`, since ignoring them would drop data.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from directordeck.clock import Clock
from directordeck.errors import DeviceUnavailable, InvalidTransition, PermissionDenied
from directordeck.markers import Marker, MarkerLog, sort_markers
from directordeck.recorder.base import Recorder, RecordingConfig
from directordeck.timecode import format_timecode

logger = logging.getLogger(__name__)


class RecordingState(enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


ACTIVE_STATES = (RecordingState.RECORDING, RecordingState.PAUSED)


@dataclass(frozen=True)
class FinishedSession:
    """Everything a stopped session hands to storage and post-processing."""
    audio_path: Path
    duration_seconds: float
    markers: tuple[Marker, ...]
    subject_label: str
    started_at: datetime
    sample_rate: int
    channels: int
    device_name: str = "unknown"
    finalize_error: Optional[str] = None

    @property
    def sorted_markers(self) -> list[Marker]:
        return sort_markers(self.markers)

    @property
    def formatted_duration(self) -> str:
        return format_timecode(self.duration_seconds)


def generate_stem() -> str:
    """Timestamp-based recording name: YYYY-MM-DD-HHMMSS."""
    return datetime.now().strftime("%Y-%m-%d-%H%M%S")


@dataclass
class _Capture:
    """Per-session fields, cleared as a unit on reset."""
    subject_label: str = ""
    audio_path: Optional[Path] = None
    started_at: Optional[datetime] = None
    sample_rate: int = 0
    channels: int = 0
    device_name: str = "unknown"
    finalize_error: Optional[str] = None
    markers: MarkerLog = field(default_factory=MarkerLog)


class RecordingSession:
    def __init__(
        self,
        recorder: Recorder,
        output_dir: Path,
        config: RecordingConfig | None = None,
        clock: Clock | None = None,
        stem_factory: Callable[[], str] = generate_stem,
    ):
        self.output_dir = Path(output_dir)
        self.config = config or RecordingConfig()
        self.clock = clock or Clock()
        self._recorder = recorder
        self._stem_factory = stem_factory
        self._lock = threading.RLock()
        self._state = RecordingState.IDLE
        self._audio_handle: Recorder | None = None
        self._capture = _Capture()

    # ──── read accessors ────

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state in ACTIVE_STATES

    @property
    def subject_label(self) -> str:
        return self._capture.subject_label

    @property
    def audio_path(self) -> Optional[Path]:
        return self._capture.audio_path

    @property
    def elapsed_seconds(self) -> float:
        return self.clock.elapsed

    @property
    def formatted_time(self) -> str:
        return format_timecode(self.elapsed_seconds)

    @property
    def markers(self) -> tuple[Marker, ...]:
        with self._lock:
            return self._capture.markers.entries

    @property
    def sorted_markers(self) -> list[Marker]:
        with self._lock:
            return self._capture.markers.sorted()

    @property
    def level(self) -> float:
        handle = self._audio_handle
        return handle.level if handle is not None else 0.0

    # ──── transitions ────

    def start(self, subject_label: str, permission_granted: bool = True) -> None:
        """Open the capture device and begin recording.

        ``permission_granted`` is the result of the caller's (asynchronous)
        microphone permission query.
        """
        with self._lock:
            if self._state is not RecordingState.IDLE:
                raise InvalidTransition("start", self._state)
            if not permission_granted:
                raise PermissionDenied("Microphone access was not granted")

            audio_path = self.output_dir / f"{self._stem_factory()}.wav"
            try:
                self.output_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise DeviceUnavailable(f"Could not create audio file {audio_path}: {e}") from e
            try:
                self._recorder.start(audio_path, self.config)
            except Exception as e:
                raise DeviceUnavailable(f"Could not open capture device: {e}") from e

            self._audio_handle = self._recorder
            self._capture = _Capture(
                subject_label=subject_label,
                audio_path=audio_path,
                started_at=datetime.now(timezone.utc),
                sample_rate=self.config.sample_rate,
                channels=self.config.channels,
                device_name=str(self.config.device or "default"),
            )
            self.clock.start()
            self._state = RecordingState.RECORDING
            logger.info("Recording %r to %s", subject_label, audio_path)

    def pause(self) -> bool:
        with self._lock:
            if self._state is not RecordingState.RECORDING:
                logger.debug("Ignoring pause while %s", self._state.value)
                return False
            frozen = self.clock.pause()
            try:
                self._audio_handle.pause()
            except Exception:
                self.clock.resume()
                raise
            self._state = RecordingState.PAUSED
            logger.debug("Paused at %s", format_timecode(frozen))
            return True

    def resume(self) -> bool:
        with self._lock:
            if self._state is not RecordingState.PAUSED:
                logger.debug("Ignoring resume while %s", self._state.value)
                return False
            self._audio_handle.resume()
            self.clock.resume()
            self._state = RecordingState.RECORDING
            logger.debug("Resumed at %s", self.formatted_time)
            return True

    def toggle_pause(self) -> bool:
        """Pause if recording, resume if paused. Returns whether anything changed."""
        with self._lock:
            if self._state is RecordingState.PAUSED:
                return self.resume()
            return self.pause()

    def add_marker(self, label: str, notes: str = "") -> Marker:
        with self._lock:
            if self._state not in ACTIVE_STATES:
                raise InvalidTransition("add a marker", self._state)
            marker = self._capture.markers.append(label, notes, at_seconds=self.clock.elapsed)
            logger.debug("Marker %r at %s", label, marker.formatted_timestamp)
            return marker

    def update_marker_notes(self, marker_id: str, notes: str) -> Marker:
        with self._lock:
            if self._state not in ACTIVE_STATES:
                raise InvalidTransition("edit marker notes", self._state)
            return self._capture.markers.replace_notes(marker_id, notes)

    def stop(self) -> FinishedSession:
        """Stop recording and return the handoff value.

        Finalizing the device is best effort: a failure is logged and recorded
        on ``FinishedSession.finalize_error`` and the session still stops.
        """
        with self._lock:
            if self._state not in ACTIVE_STATES:
                raise InvalidTransition("stop", self._state)
            self.clock.stop()
            self._release_handle()
            self._state = RecordingState.STOPPED
            logger.info(
                "Stopped %r after %s with %d marker(s)",
                self._capture.subject_label,
                self.formatted_time,
                len(self._capture.markers),
            )
            return self.handoff()

    def handoff(self) -> FinishedSession:
        """Snapshot a stopped session for persistence."""
        with self._lock:
            if self._state is not RecordingState.STOPPED:
                raise InvalidTransition("hand off", self._state)
            capture = self._capture
            return FinishedSession(
                audio_path=capture.audio_path,
                duration_seconds=self.clock.elapsed,
                markers=capture.markers.entries,
                subject_label=capture.subject_label,
                started_at=capture.started_at,
                sample_rate=capture.sample_rate,
                channels=capture.channels,
                device_name=capture.device_name,
                finalize_error=capture.finalize_error,
            )

    def reset(self) -> None:
        """Discard all session fields and return to idle.

        An active session is aborted: its device is finalized first.
        """
        with self._lock:
            if self._audio_handle is not None:
                self._release_handle()
            self.clock.reset()
            self._capture = _Capture()
            self._state = RecordingState.IDLE

    def _release_handle(self) -> None:
        handle, self._audio_handle = self._audio_handle, None
        try:
            result = handle.stop()
        except Exception as e:
            self._capture.finalize_error = str(e) or e.__class__.__name__
            logger.warning(
                "Finalizing %s failed; audio may be incomplete: %s",
                self._capture.audio_path,
                self._capture.finalize_error,
            )
            return
        self._capture.device_name = result.device_name
        self._capture.sample_rate = result.sample_rate
        self._capture.channels = result.channels
