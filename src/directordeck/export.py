"""Editing-timeline export of interview markers as Final Cut / Premiere xmeml.

Frame numbers are always truncated: ``floor(seconds * frame_rate)``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable
from xml.sax.saxutils import escape

from directordeck.constants import DEFAULT_FRAME_RATE
from directordeck.markers import Marker, sort_markers
from directordeck.timecode import seconds_to_frame

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def _esc(text: str) -> str:
    return escape(text, _XML_ENTITIES)


def total_frames(duration_seconds: float, frame_rate: int = DEFAULT_FRAME_RATE) -> int:
    return seconds_to_frame(duration_seconds, frame_rate)


def marker_entries(markers: Iterable[Marker], frame_rate: int = DEFAULT_FRAME_RATE) -> list[dict]:
    """Markers as ``{name, comment, in, out}`` dicts, sorted by timestamp."""
    return [
        {
            "name": marker.label,
            "comment": marker.comment,
            "in": seconds_to_frame(marker.timestamp_seconds, frame_rate),
            "out": -1,
        }
        for marker in sort_markers(markers)
    ]


def _rate_xml(frame_rate: int, indent: str) -> list[str]:
    return [
        f"{indent}<rate>",
        f"{indent}    <timebase>{frame_rate}</timebase>",
        f"{indent}    <ntsc>FALSE</ntsc>",
        f"{indent}</rate>",
    ]


def generate_xmeml(
    subject: str,
    audio_path: Path,
    duration_seconds: float,
    markers: Iterable[Marker],
    frame_rate: int = DEFAULT_FRAME_RATE,
    channels: int = 1,
) -> str:
    """Render a single-clip xmeml (version 4) sequence carrying the markers."""
    frames = total_frames(duration_seconds, frame_rate)
    audio_path = Path(audio_path)
    file_name = _esc(audio_path.name)
    path_url = _esc("file://localhost" + audio_path.resolve().as_posix())

    clip = " " * 16
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        "<!DOCTYPE xmeml>",
        '<xmeml version="4">',
        "    <sequence>",
        f"        <name>{_esc(subject)} Interview</name>",
        f"        <duration>{frames}</duration>",
        *_rate_xml(frame_rate, " " * 8),
        "        <media>",
        "            <audio>",
        "                <track>",
        "                    <clipitem>",
        f"{clip}        <name>{file_name}</name>",
        f"{clip}        <duration>{frames}</duration>",
        *_rate_xml(frame_rate, clip + " " * 8),
        f"{clip}        <start>0</start>",
        f"{clip}        <end>{frames}</end>",
        f"{clip}        <in>0</in>",
        f"{clip}        <out>{frames}</out>",
        f'{clip}        <file id="file-1">',
        f"{clip}            <name>{file_name}</name>",
        f"{clip}            <pathurl>{path_url}</pathurl>",
        f"{clip}            <media>",
        f"{clip}                <audio>",
        f"{clip}                    <channelcount>{channels}</channelcount>",
        f"{clip}                </audio>",
        f"{clip}            </media>",
        f"{clip}        </file>",
    ]
    for entry in marker_entries(markers, frame_rate):
        lines.extend([
            f"{clip}        <marker>",
            f"{clip}            <comment>{_esc(entry['comment'])}</comment>",
            f"{clip}            <name>{_esc(entry['name'])}</name>",
            f"{clip}            <in>{entry['in']}</in>",
            f"{clip}            <out>{entry['out']}</out>",
            f"{clip}        </marker>",
        ])
    lines.extend([
        "                    </clipitem>",
        "                </track>",
        "            </audio>",
        "        </media>",
        "    </sequence>",
        "</xmeml>",
    ])
    return "\n".join(lines) + "\n"


def export_filename(subject: str) -> str:
    safe = "_".join(subject.split()) or "untitled"
    return f"{safe.replace('/', '_')}_interview.xml"


def write_xmeml(
    output_dir: Path,
    subject: str,
    audio_path: Path,
    duration_seconds: float,
    markers: Iterable[Marker],
    frame_rate: int = DEFAULT_FRAME_RATE,
    channels: int = 1,
    output_path: Path | None = None,
) -> Path:
    """Write the xmeml export and return its path."""
    xml = generate_xmeml(subject, audio_path, duration_seconds, markers, frame_rate, channels)
    if output_path is None:
        output_path = Path(output_dir) / export_filename(subject)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(xml, encoding="utf-8")
    return output_path
