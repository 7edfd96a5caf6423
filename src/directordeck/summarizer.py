"""Interview summaries: OpenAI chat completion with a local fallback."""

from __future__ import annotations

import logging
import os
from typing import Any, Iterable, Optional

from directordeck.constants import (
    DEFAULT_SUMMARY_MAX_TOKENS,
    DEFAULT_SUMMARY_MODEL,
    DEFAULT_SUMMARY_TEMPERATURE,
)
from directordeck.errors import SummarizationFailed
from directordeck.markers import Marker, sort_markers

logger = logging.getLogger(__name__)

TRANSCRIPT_CHAR_LIMIT = 12000
OVERVIEW_SENTENCES = 5

SYSTEM_PROMPT = (
    "You are a film production assistant reviewing an interview transcript. "
    "Write a structured, actionable summary for the director and editor. "
    "Reference specific timecodes in [HH:MM:SS] format so moments can be found quickly. "
    "Be concise but thorough."
)

USER_PROMPT_TEMPLATE = """\
Below is an interview transcript and the timecoded markers the director placed while recording.

## Markers
{markers}

## Transcript
{transcript}

---

Write a summary with these sections:

1. **Key Themes**: the 3-5 main topics, with timecode references
2. **Notable Quotes**: quotes worth highlighting, each with its approximate timecode
3. **Action Items**: follow-ups or things to revisit
4. **Emotional Highlights**: moments of strong emotion, humor or authenticity (mention marker tags where relevant)
5. **Editor's Notes**: a chronological outline keyed to the marker timecodes, for building a rough cut

Use timecodes like [00:05:23] throughout."""


def format_marker_lines(markers: Iterable[Marker], bullet: str = "") -> list[str]:
    lines = []
    for marker in sort_markers(markers):
        line = f"{bullet}[{marker.formatted_timestamp}] {marker.label}"
        if marker.notes:
            line += f" - {marker.notes}"
        lines.append(line)
    return lines


def local_summary(transcript: str, markers: Iterable[Marker]) -> str:
    """Template summary used when no AI backend is available."""
    if not transcript.strip():
        return "No transcript available."

    parts = ["## Interview Summary", ""]

    marker_lines = format_marker_lines(markers, bullet="- ")
    if marker_lines:
        parts.append("### Key Moments")
        parts.extend(marker_lines)
        parts.append("")

    sentences = transcript.split(". ")
    if len(sentences) > 3:
        parts.append("### Overview")
        overview = ". ".join(sentences[:OVERVIEW_SENTENCES]).rstrip(".")
        parts.append(overview + ".")
        parts.append("")
        parts.append(f"Total length: {len(sentences)} sentences.")
    else:
        parts.append("### Full Content")
        parts.append(transcript)

    return "\n".join(parts) + "\n"


class GPTSummarizer:
    """Single-shot summary request against an OpenAI-compatible chat endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_SUMMARY_MODEL,
        temperature: float = DEFAULT_SUMMARY_TEMPERATURE,
        max_tokens: int = DEFAULT_SUMMARY_MAX_TOKENS,
        base_url: str | None = None,
        client: Any = None,
    ):
        key = api_key if api_key is not None else os.environ.get("OPENAI_API_KEY", "")
        self.api_key = key.strip()
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.base_url = base_url
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI

            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url, timeout=60)
        return self._client

    def build_messages(self, transcript: str, markers: Iterable[Marker]) -> list[dict[str, str]]:
        marker_lines = format_marker_lines(markers)
        user_prompt = USER_PROMPT_TEMPLATE.format(
            markers="\n".join(marker_lines) if marker_lines else "(No markers placed)",
            transcript=transcript[:TRANSCRIPT_CHAR_LIMIT],
        )
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ]

    def summarize(self, transcript: str, markers: Iterable[Marker]) -> str:
        """Request a summary. Raises SummarizationFailed on any failure."""
        if not self.is_configured:
            raise SummarizationFailed(
                "No OpenAI API key configured. Set summary.api_key or OPENAI_API_KEY."
            )

        messages = self.build_messages(transcript, markers)
        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            raise SummarizationFailed(f"OpenAI request failed: {e}") from e

        content = _message_content(response)
        if not content:
            raise SummarizationFailed("Unexpected response from OpenAI API.")
        return content.strip()


def _message_content(response: Any) -> Optional[str]:
    try:
        return response.choices[0].message.content
    except (AttributeError, IndexError, TypeError):
        return None


def summarize_with_fallback(
    summarizer: Optional[GPTSummarizer], transcript: str, markers: Iterable[Marker]
) -> tuple[str, bool]:
    """Return ``(summary, used_ai)``, falling back to :func:`local_summary`."""
    markers = list(markers)
    if summarizer is not None and summarizer.is_configured and transcript.strip():
        try:
            return summarizer.summarize(transcript, markers), True
        except SummarizationFailed as e:
            logger.warning("AI summary failed, using local summary: %s", e)
    return local_summary(transcript, markers), False
