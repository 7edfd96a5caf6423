"""Speech-to-text via a whisper.cpp subprocess."""

from __future__ import annotations

import json
import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from directordeck.errors import TranscriptionFailed
from directordeck.timecode import parse_timecode

logger = logging.getLogger(__name__)

_STDOUT_LINE_RE = re.compile(
    r"\[(\d{2}:\d{2}:\d{2}\.\d{3})\s*-->\s*(\d{2}:\d{2}:\d{2}\.\d{3})\]\s*(.*)"
)


@dataclass
class TranscriptSegment:
    start: float
    end: float
    text: str


@dataclass
class TranscriptResult:
    file: str
    model: str
    language: str
    segments: list[TranscriptSegment] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Plain text, one segment per line."""
        return "\n".join(seg.text.strip() for seg in self.segments if seg.text.strip())

    def to_json(self) -> dict:
        return {
            "file": self.file,
            "model": self.model,
            "language": self.language,
            "segments": [
                {"start": seg.start, "end": seg.end, "text": seg.text.strip()}
                for seg in self.segments
            ],
        }


class Transcriber:
    def __init__(self, whisper_binary: Path, model_path: Path, timeout: int = 3600):
        self.whisper_binary = whisper_binary
        self.model_path = model_path
        self.timeout = timeout

    @property
    def model_name(self) -> str:
        return self.model_path.stem.replace("ggml-", "")

    def transcribe(self, audio_path: Path, language: str = "auto") -> TranscriptResult:
        """Run whisper.cpp once on the audio file. Raises TranscriptionFailed."""
        if not audio_path.exists():
            raise TranscriptionFailed(f"Audio file not found: {audio_path}")

        cmd = self._build_command(audio_path, language)
        logger.debug("Running %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TranscriptionFailed(f"whisper.cpp could not run: {e}") from e

        if proc.returncode != 0:
            raise TranscriptionFailed(
                f"whisper.cpp failed (exit code {proc.returncode}):\n{proc.stderr}"
            )

        return self._parse_output(proc.stdout, audio_path)

    def _build_command(self, audio_path: Path, language: str) -> list[str]:
        """Construct the whisper.cpp CLI arguments."""
        cmd = [str(self.whisper_binary)]
        cmd.extend(["-m", str(self.model_path)])
        cmd.extend(["-f", str(audio_path)])
        cmd.extend(["--output-json"])
        cmd.extend(["--print-progress", "false"])
        if language != "auto":
            cmd.extend(["-l", language])
        return cmd

    def _parse_output(self, stdout: str, audio_path: Path) -> TranscriptResult:
        """Prefer the JSON file whisper.cpp writes next to the input; fall back to stdout."""
        json_output_path = audio_path.with_suffix(".wav.json")
        if json_output_path.exists():
            return self._parse_json_file(json_output_path, audio_path)
        return self._parse_stdout(stdout, audio_path)

    def _parse_json_file(self, json_path: Path, audio_path: Path) -> TranscriptResult:
        try:
            data = json.loads(json_path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            raise TranscriptionFailed(f"Unreadable whisper.cpp output {json_path.name}: {e}") from e
        finally:
            json_path.unlink(missing_ok=True)

        segments = []
        for item in data.get("transcription", []):
            timestamps = item.get("timestamps", {})
            segments.append(TranscriptSegment(
                start=_parse_timestamp(timestamps.get("from", "00:00:00.000")),
                end=_parse_timestamp(timestamps.get("to", "00:00:00.000")),
                text=item.get("text", ""),
            ))

        return TranscriptResult(
            file=audio_path.name,
            model=self.model_name,
            language=data.get("result", {}).get("language", "unknown"),
            segments=segments,
        )

    def _parse_stdout(self, stdout: str, audio_path: Path) -> TranscriptResult:
        """Parse lines like ``[00:00:00.000 --> 00:00:04.520]  text``."""
        segments = []
        for line in stdout.splitlines():
            m = _STDOUT_LINE_RE.match(line.strip())
            if m:
                segments.append(TranscriptSegment(
                    start=_parse_timestamp(m.group(1)),
                    end=_parse_timestamp(m.group(2)),
                    text=m.group(3).strip(),
                ))

        return TranscriptResult(
            file=audio_path.name,
            model=self.model_name,
            language="unknown",
            segments=segments,
        )


def _parse_timestamp(ts: str) -> float:
    """Parse '00:01:23.456' or '00:01:23,456' to seconds."""
    try:
        return parse_timecode(str(ts).replace(",", "."))
    except ValueError as e:
        raise TranscriptionFailed(f"Unexpected whisper.cpp timestamp: {ts!r}") from e
