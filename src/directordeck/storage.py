"""Recording storage: metadata, markers, transcripts, listing and search.

Each recording is a set of files sharing a stem in the recordings directory:
``<stem>.wav`` (audio), ``<stem>.meta`` (JSON metadata including markers),
``<stem>.txt`` (transcript) and ``<stem>.summary.md`` (summary).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from directordeck.markers import Marker, sort_markers
from directordeck.session import FinishedSession

logger = logging.getLogger(__name__)


@dataclass
class RecordingInfo:
    """A stored recording with all its associated files."""
    stem: str
    wav_path: Path
    txt_path: Optional[Path]
    summary_path: Optional[Path]
    meta_path: Optional[Path]
    metadata: Optional[dict]
    duration_seconds: Optional[float]
    transcribed: bool
    subject: str = ""
    project: str = ""
    markers: list[Marker] = field(default_factory=list)

    @property
    def sorted_markers(self) -> list[Marker]:
        return sort_markers(self.markers)

    @property
    def audio_missing(self) -> bool:
        """True when finalizing left no audio file behind."""
        return not self.wav_path.exists()

    @property
    def finalize_error(self) -> Optional[str]:
        return (self.metadata or {}).get("finalize_error")

    def read_transcript(self) -> str:
        if self.txt_path is None:
            return ""
        return self.txt_path.read_text()

    def read_summary(self) -> str:
        if self.summary_path is None:
            return ""
        return self.summary_path.read_text()


class RecordingStore:
    def __init__(self, recordings_dir: Path):
        self.recordings_dir = recordings_dir
        self.recordings_dir.mkdir(parents=True, exist_ok=True)

    def save(self, finished: FinishedSession, project: str = "", subject: str = "") -> str:
        """Persist a finished session's metadata. Returns the recording stem.

        ``subject`` defaults to the session's subject label.
        """
        stem = finished.audio_path.stem
        meta = self.create_metadata(finished, project=project, subject=subject or finished.subject_label)
        self.write_metadata(stem, meta)
        logger.info("Saved recording %s (%d markers)", stem, len(finished.markers))
        return stem

    def create_metadata(self, finished: FinishedSession, **extra) -> dict:
        """Build metadata dict from a finished session."""
        meta = {
            "created": datetime.now(timezone.utc).isoformat(),
            "started_at": finished.started_at.isoformat() if finished.started_at else None,
            "subject": finished.subject_label,
            "project": "",
            "duration_seconds": finished.duration_seconds,
            "sample_rate": finished.sample_rate,
            "channels": finished.channels,
            "device": finished.device_name,
            "audio_file": finished.audio_path.name,
            "finalize_error": finished.finalize_error,
            "markers": [m.to_dict() for m in finished.markers],
            "transcribed": False,
            "model": None,
            "summary_source": None,
        }
        meta.update(extra)
        return meta

    def write_metadata(self, stem: str, metadata: dict) -> Path:
        """Write .meta JSON file."""
        meta_path = self.recordings_dir / f"{stem}.meta"
        meta_path.write_text(json.dumps(metadata, indent=2))
        return meta_path

    def read_metadata(self, stem: str) -> Optional[dict]:
        """Read .meta JSON file, return None if missing."""
        meta_path = self.recordings_dir / f"{stem}.meta"
        if not meta_path.exists():
            return None
        return json.loads(meta_path.read_text())

    def update_metadata(self, stem: str, **updates) -> None:
        """Update fields in an existing metadata file."""
        meta = self.read_metadata(stem) or {}
        meta.update(updates)
        self.write_metadata(stem, meta)

    def update_marker_notes(self, stem: str, marker_id: str, notes: str) -> Marker:
        """Edit the notes of a stored marker. Raises KeyError if unknown."""
        meta = self.read_metadata(stem)
        if meta is None:
            raise KeyError(f"Recording not found: {stem!r}")
        for entry in meta.get("markers", []):
            if entry.get("id") == marker_id:
                entry["notes"] = notes
                self.write_metadata(stem, meta)
                return Marker.from_dict(entry)
        raise KeyError(f"Unknown marker: {marker_id!r}")

    def write_transcript(self, stem: str, text: str, model: str | None = None) -> Path:
        txt_path = self.recordings_dir / f"{stem}.txt"
        txt_path.write_text(text)
        self.update_metadata(stem, transcribed=True, model=model)
        return txt_path

    def write_summary(self, stem: str, text: str, source: str) -> Path:
        """Store a summary; ``source`` is ``"ai"`` or ``"local"``."""
        summary_path = self.recordings_dir / f"{stem}.summary.md"
        summary_path.write_text(text)
        self.update_metadata(stem, summary_source=source)
        return summary_path

    def list_recordings(
        self,
        limit: Optional[int] = 20,
        sort_by: str = "date",
        search: Optional[str] = None,
    ) -> list[RecordingInfo]:
        """List recordings, optionally filtered by subject or transcript text."""
        recordings = []

        for stem in self._stems():
            info = self._build_recording_info(stem)
            if search and not self._matches_search(info, search):
                continue
            recordings.append(info)

        recordings.sort(key=lambda r: self._sort_key(r, sort_by), reverse=(sort_by == "date"))
        return recordings[:limit] if limit else recordings

    def get_recording(self, stem: str) -> Optional[RecordingInfo]:
        """Load a single recording by its stem name."""
        if stem not in self._stems():
            return None
        return self._build_recording_info(stem)

    def search_transcripts(
        self,
        query: str,
        limit: int = 20,
        sort_by: str = "date",
    ) -> list[tuple[RecordingInfo, list[str]]]:
        """Search transcript text and return matching recordings with context lines."""
        query_lower = query.lower()
        results = []

        for stem in self._stems():
            info = self._build_recording_info(stem)
            if info.txt_path is None:
                continue
            try:
                text = info.txt_path.read_text()
            except OSError:
                continue
            matching_lines = [
                line.strip()
                for line in text.splitlines()
                if query_lower in line.lower()
            ]
            if matching_lines:
                results.append((info, matching_lines))

        results.sort(
            key=lambda r: self._sort_key(r[0], sort_by),
            reverse=(sort_by == "date"),
        )
        return results[:limit]

    def _stems(self) -> set[str]:
        """Stems with audio, metadata or both.

        A recording whose audio could not be finalized has only a ``.meta``.
        """
        stems = {p.stem for p in self.recordings_dir.glob("*.wav")}
        stems.update(p.stem for p in self.recordings_dir.glob("*.meta"))
        return stems

    def _build_recording_info(self, stem: str) -> RecordingInfo:
        wav_path = self.recordings_dir / f"{stem}.wav"
        txt_path = self.recordings_dir / f"{stem}.txt"
        summary_path = self.recordings_dir / f"{stem}.summary.md"
        meta_path = self.recordings_dir / f"{stem}.meta"

        metadata = None
        if meta_path.exists():
            try:
                metadata = json.loads(meta_path.read_text())
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Unreadable metadata %s: %s", meta_path.name, e)

        meta = metadata or {}
        markers = []
        for entry in meta.get("markers", []):
            try:
                markers.append(Marker.from_dict(entry))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed marker in %s: %r", meta_path.name, entry)

        return RecordingInfo(
            stem=stem,
            wav_path=wav_path,
            txt_path=txt_path if txt_path.exists() else None,
            summary_path=summary_path if summary_path.exists() else None,
            meta_path=meta_path if meta_path.exists() else None,
            metadata=metadata,
            duration_seconds=meta.get("duration_seconds"),
            transcribed=txt_path.exists() or meta.get("transcribed", False),
            subject=meta.get("subject", ""),
            project=meta.get("project", ""),
            markers=markers,
        )

    def _matches_search(self, info: RecordingInfo, query: str) -> bool:
        """Check the subject, project, marker labels and transcript for the query."""
        query_lower = query.lower()
        haystacks = [info.subject, info.project]
        haystacks.extend(m.comment for m in info.markers)
        if any(query_lower in h.lower() for h in haystacks):
            return True
        if info.txt_path is not None:
            try:
                return query_lower in info.txt_path.read_text().lower()
            except OSError:
                return False
        return False

    def _sort_key(self, recording: RecordingInfo, sort_by: str):
        if sort_by == "duration":
            return recording.duration_seconds or 0.0
        if sort_by == "name":
            return (recording.subject.lower(), recording.stem)
        return recording.stem
