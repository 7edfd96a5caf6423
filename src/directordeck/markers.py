"""Timestamped tag markers placed during an interview recording."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Iterator

from directordeck.timecode import format_timecode


@dataclass(frozen=True)
class Marker:
    """A tag placed at an elapsed-time offset into a recording."""
    timestamp_seconds: float
    label: str
    notes: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def formatted_timestamp(self) -> str:
        return format_timecode(self.timestamp_seconds)

    @property
    def comment(self) -> str:
        """Label, followed by the notes when there are any."""
        if self.notes:
            return f"{self.label}: {self.notes}"
        return self.label

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp_seconds": self.timestamp_seconds,
            "label": self.label,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Marker:
        kwargs = {
            "timestamp_seconds": float(data["timestamp_seconds"]),
            "label": data["label"],
            "notes": data.get("notes", ""),
        }
        if data.get("id"):
            kwargs["id"] = data["id"]
        return cls(**kwargs)


def sort_markers(markers) -> list[Marker]:
    """Markers ascending by timestamp; ties keep their insertion order."""
    return sorted(markers, key=lambda m: m.timestamp_seconds)


class MarkerLog:
    """Append-only list of markers for one recording session.

    Entries are kept in insertion order. Sorting is done on read via
    :meth:`sorted`, never on insert.
    """

    def __init__(self):
        self._entries: list[Marker] = []

    def append(self, label: str, notes: str = "", at_seconds: float = 0.0) -> Marker:
        if at_seconds < 0:
            raise ValueError(f"Marker timestamp cannot be negative: {at_seconds!r}")
        marker = Marker(timestamp_seconds=at_seconds, label=label, notes=notes)
        self._entries.append(marker)
        return marker

    def replace_notes(self, marker_id: str, notes: str) -> Marker:
        """Swap in a copy of the marker with new notes. Raises KeyError if unknown."""
        for i, marker in enumerate(self._entries):
            if marker.id == marker_id:
                updated = replace(marker, notes=notes)
                self._entries[i] = updated
                return updated
        raise KeyError(f"Unknown marker: {marker_id!r}")

    @property
    def entries(self) -> tuple[Marker, ...]:
        return tuple(self._entries)

    def sorted(self) -> list[Marker]:
        return sort_markers(self._entries)

    def clear(self) -> None:
        self._entries = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Marker]:
        return iter(tuple(self._entries))
