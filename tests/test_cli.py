"""Tests for the CLI entry point."""

import json
import queue
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest
from click.testing import CliRunner

from conftest import make_wav
from directordeck import clock as clock_module
from directordeck.cli import _read_keys, main
from directordeck.errors import TranscriptionFailed
from directordeck.markers import Marker
from directordeck.recorder import MockRecorder
from directordeck.session import FinishedSession
from directordeck.storage import RecordingStore
from directordeck.transcriber import TranscriptResult, TranscriptSegment


@pytest.fixture(autouse=True)
def no_openai_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


def _seed(data_dir, stem="2025-01-15-143022", subject="Ada Lovelace", markers=None, transcript=None):
    store = RecordingStore(data_dir / "recordings")
    audio_path = store.recordings_dir / f"{stem}.wav"
    make_wav(audio_path)
    finished = FinishedSession(
        audio_path=audio_path,
        duration_seconds=10.0,
        markers=tuple(markers or ()),
        subject_label=subject,
        started_at=datetime(2025, 1, 15, 14, 30, 22, tzinfo=timezone.utc),
        sample_rate=16000,
        channels=1,
    )
    store.save(finished, project="Engines")
    if transcript is not None:
        store.write_transcript(stem, transcript, model="base")
    return store


def _scripted_keys(*events):
    """Replacement key reader that queues a fixed sequence of commands."""
    def start(commands, stop_event, prompting):
        for event in events:
            commands.put(event)
    return start


def _patch_record(monkeypatch, recorder=None, granted=True, events=(("key", "q"),)):
    recorder = recorder or MockRecorder(duration=0.5)
    monkeypatch.setattr("directordeck.cli._create_recorder", lambda cfg: recorder)
    monkeypatch.setattr("directordeck.cli._check_permission", lambda: granted)
    monkeypatch.setattr("directordeck.cli._start_key_reader", _scripted_keys(*events))
    return recorder


def _read_only_meta(data_dir):
    metas = list((data_dir / "recordings").glob("*.meta"))
    assert len(metas) == 1
    return json.loads(metas[0].read_text())


def test_help():
    result = CliRunner().invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "Record film interviews" in result.output


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_subcommands_registered():
    result = CliRunner().invoke(main, ["--help"])
    for cmd in ("record", "list", "show", "search", "transcribe", "summarize", "export", "note",
                "devices", "setup", "config"):
        assert cmd in result.output, f"Subcommand '{cmd}' not found in help output"


# ──── record ────


def test_record_with_markers(monkeypatch, tmp_data_dir):
    recorder = _patch_record(monkeypatch, events=[
        ("key", "1"),
        ("key", "m"),
        ("note", "  the punch card answer  "),
        ("key", "3"),
        ("key", "q"),
    ])
    result = CliRunner().invoke(main, ["record", "-s", "Ada Lovelace", "-p", "Engines"])
    assert result.exit_code == 0, result.output
    assert "+ Great Answer @" in result.output
    assert "Recording saved" in result.output
    assert "3 markers" in result.output
    assert recorder.calls == ["start", "stop"]

    meta = _read_only_meta(tmp_data_dir)
    assert meta["subject"] == "Ada Lovelace"
    assert meta["project"] == "Engines"
    assert [(m["label"], m["notes"]) for m in meta["markers"]] == [
        ("Great Answer", ""),
        ("Custom", "the punch card answer"),
        ("Follow Up", ""),
    ]
    assert len(list((tmp_data_dir / "recordings").glob("*.wav"))) == 1


def test_record_pause_resume(monkeypatch, tmp_data_dir):
    recorder = _patch_record(monkeypatch, events=[("key", "p"), ("key", " "), ("key", "q")])
    result = CliRunner().invoke(main, ["record", "-s", "Grace"])
    assert result.exit_code == 0, result.output
    assert recorder.calls == ["start", "pause", "resume", "stop"]


def test_record_ignores_unbound_keys(monkeypatch, tmp_data_dir):
    _patch_record(monkeypatch, events=[("key", "9"), ("key", "x"), ("key", "m"), ("note", ""), ("key", "q")])
    result = CliRunner().invoke(main, ["record", "-s", "Grace"])
    assert result.exit_code == 0, result.output
    markers = _read_only_meta(tmp_data_dir)["markers"]
    assert [(m["label"], m["notes"]) for m in markers] == [("Custom", "")]


def test_record_requires_subject(monkeypatch, tmp_data_dir):
    _patch_record(monkeypatch)
    result = CliRunner().invoke(main, ["record"])
    assert result.exit_code != 0
    assert "--subject" in result.output


def test_record_permission_denied(monkeypatch, tmp_data_dir):
    recorder = _patch_record(monkeypatch, granted=False)
    result = CliRunner().invoke(main, ["record", "-s", "Ada"])
    assert result.exit_code == 1
    assert "Microphone access was not granted" in result.output
    assert recorder.calls == []
    assert list((tmp_data_dir / "recordings").glob("*.meta")) == []


def test_record_device_unavailable(monkeypatch, tmp_data_dir):
    _patch_record(monkeypatch, recorder=MockRecorder(start_error=OSError("no such device")))
    result = CliRunner().invoke(main, ["record", "-s", "Ada"])
    assert result.exit_code == 1
    assert "Could not open capture device" in result.output


def test_record_finalize_failure_still_saved(monkeypatch, tmp_data_dir):
    _patch_record(monkeypatch, recorder=MockRecorder(stop_error=OSError("disk full")))
    result = CliRunner().invoke(main, ["record", "-s", "Ada"])
    assert result.exit_code == 0, result.output
    assert "may be incomplete" in result.output
    assert _read_only_meta(tmp_data_dir)["finalize_error"] == "disk full"


def test_record_finalize_failure_listed_as_audio_missing(monkeypatch, tmp_data_dir):
    _patch_record(monkeypatch, recorder=MockRecorder(stop_error=OSError("disk full")))
    runner = CliRunner()
    assert runner.invoke(main, ["record", "-s", "Ada"]).exit_code == 0

    result = runner.invoke(main, ["list", "--no-header"])
    assert result.exit_code == 0, result.output
    assert "Ada [audio missing]" in result.output

    result = runner.invoke(main, ["show"])
    assert result.exit_code == 0, result.output
    assert "Audio:     missing (expected " in result.output
    assert "audio may be incomplete (disk full)" in result.output


def test_record_finalize_failure_transcribe_reported(monkeypatch, tmp_data_dir):
    _patch_record(monkeypatch, recorder=MockRecorder(stop_error=OSError("disk full")))
    monkeypatch.setattr(
        "directordeck.whisper_manager.WhisperManager.require",
        lambda self, model: (Path("/usr/bin/whisper-cli"), Path("ggml-base.bin")),
    )
    result = CliRunner().invoke(main, ["record", "-s", "Ada", "--transcribe"])
    assert result.exit_code == 0, result.output
    assert "Transcription failed: Audio file not found" in result.output


def test_record_max_duration(monkeypatch, tmp_data_dir):
    _patch_record(monkeypatch, events=())
    result = CliRunner().invoke(main, ["record", "-s", "Ada", "--max-duration", "0.05s"])
    assert result.exit_code == 0, result.output
    assert "Maximum duration reached." in result.output
    assert "Recording saved" in result.output


def test_record_invalid_max_duration(monkeypatch, tmp_data_dir):
    _patch_record(monkeypatch)
    result = CliRunner().invoke(main, ["record", "-s", "Ada", "--max-duration", "soon"])
    assert result.exit_code == 1
    assert "Invalid duration" in result.output


def test_record_transcribe_failure_reported(monkeypatch, tmp_data_dir):
    _patch_record(monkeypatch)

    def missing(self, model):
        raise TranscriptionFailed("whisper.cpp not found.")

    monkeypatch.setattr("directordeck.whisper_manager.WhisperManager.require", missing)
    result = CliRunner().invoke(main, ["record", "-s", "Ada", "--transcribe"])
    assert result.exit_code == 0, result.output
    assert "Recording saved" in result.output
    assert "Transcription failed: whisper.cpp not found." in result.output


def test_record_transcribe_and_summarize(monkeypatch, tmp_data_dir):
    _patch_record(monkeypatch, events=[("key", "2"), ("key", "q")])
    monkeypatch.setattr(
        "directordeck.whisper_manager.WhisperManager.require",
        lambda self, model: (Path("/usr/bin/whisper-cli"), Path("ggml-base.bin")),
    )
    monkeypatch.setattr(
        "directordeck.transcriber.Transcriber.transcribe",
        lambda self, path, language="auto": TranscriptResult(
            file=path.name, model="base", language="en",
            segments=[TranscriptSegment(0.0, 2.0, "We spoke about looms.")],
        ),
    )
    result = CliRunner().invoke(main, ["record", "-s", "Ada", "--transcribe"])
    assert result.exit_code == 0, result.output
    assert "Transcription complete: 1 segments." in result.output
    assert "Summary written (local)." in result.output

    meta = _read_only_meta(tmp_data_dir)
    assert meta["transcribed"] is True
    assert meta["summary_source"] == "local"
    summary = next((tmp_data_dir / "recordings").glob("*.summary.md")).read_text()
    assert "Key Quote" in summary


def test_record_uses_configured_tick_interval(monkeypatch, tmp_data_dir):
    runner = CliRunner()
    assert runner.invoke(main, ["config", "recording.tick_interval_ms", "20"]).exit_code == 0
    created = []

    class RecordingClock(clock_module.Clock):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr(clock_module, "Clock", RecordingClock)
    _patch_record(monkeypatch)
    result = runner.invoke(main, ["record", "-s", "Ada"])
    assert result.exit_code == 0, result.output
    assert len(created) == 1
    assert created[0].interval == pytest.approx(0.02)
    assert created[0].on_tick is not None


def test_record_redraws_status_on_tick(monkeypatch, tmp_data_dir):
    _patch_record(monkeypatch, events=[("tick", 0.0), ("key", "q")])
    result = CliRunner().invoke(main, ["record", "-s", "Ada"])
    assert result.exit_code == 0, result.output
    assert "REC 00:00:" in result.output


# ──── key reader ────


def test_key_reader_stops_without_reading(monkeypatch):
    commands, stop_event, prompting = queue.Queue(), threading.Event(), threading.Event()
    reads = []
    monkeypatch.setattr("click.getchar", lambda: reads.append(1) or "1")

    def key_ready(timeout):
        stop_event.set()
        return False

    _read_keys(commands, stop_event, prompting, key_ready=key_ready)
    assert reads == []
    assert commands.empty()


def test_key_reader_drops_key_after_stop(monkeypatch):
    commands, stop_event, prompting = queue.Queue(), threading.Event(), threading.Event()

    def getchar():
        stop_event.set()
        return "1"

    monkeypatch.setattr("click.getchar", getchar)
    _read_keys(commands, stop_event, prompting, key_ready=lambda timeout: True)
    assert commands.empty()


def test_key_reader_flags_custom_tag_prompt(monkeypatch):
    commands, stop_event, prompting = queue.Queue(), threading.Event(), threading.Event()
    keys = iter(["m", "q"])
    monkeypatch.setattr("click.getchar", lambda: next(keys))
    seen = []

    def prompt(text, **kwargs):
        seen.append(prompting.is_set())
        return "the punch card answer"

    monkeypatch.setattr("click.prompt", prompt)
    _read_keys(commands, stop_event, prompting, key_ready=lambda timeout: True)

    assert seen == [True]
    assert not prompting.is_set()
    assert [commands.get_nowait() for _ in range(3)] == [
        ("key", "m"), ("note", "the punch card answer"), ("key", "q"),
    ]


def test_prompt_suppresses_status_redraw(monkeypatch, tmp_data_dir):
    def start(commands, stop_event, prompting):
        prompting.set()
        commands.put(("tick", 0.0))
        commands.put(("key", "q"))

    _patch_record(monkeypatch)
    monkeypatch.setattr("directordeck.cli._start_key_reader", start)
    result = CliRunner().invoke(main, ["record", "-s", "Ada"])
    assert result.exit_code == 0, result.output
    assert "REC 00:00:" not in result.output


# ──── list / show / search ────


def test_list_no_recordings(tmp_data_dir):
    result = CliRunner().invoke(main, ["list"])
    assert result.exit_code == 0
    assert "No recordings found." in result.output


def test_list_with_recordings(tmp_data_dir):
    _seed(tmp_data_dir, stem="2025-01-14-091500", subject="Grace Hopper")
    _seed(tmp_data_dir, markers=[Marker(1.0, "Key Quote")])
    result = CliRunner().invoke(main, ["list"])
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert "Subject" in lines[0]
    assert lines[2].startswith("HEAD ")
    assert "Ada Lovelace" in lines[2]
    assert "00:00:10.00" in lines[2]
    assert lines[3].startswith("HEAD~1")
    assert "Grace Hopper" in lines[3]


def test_list_search(tmp_data_dir):
    _seed(tmp_data_dir, stem="2025-01-14-091500", subject="Grace Hopper")
    _seed(tmp_data_dir)
    result = CliRunner().invoke(main, ["list", "--search", "hopper", "--no-header"])
    assert result.exit_code == 0
    assert "Grace Hopper" in result.output
    assert "Ada Lovelace" not in result.output


def test_show_markers_sorted(tmp_data_dir):
    _seed(tmp_data_dir, markers=[Marker(5.5, "Key Quote", notes="on poetry"), Marker(1.0, "Great Answer")])
    result = CliRunner().invoke(main, ["show"])
    assert result.exit_code == 0
    assert "Subject:   Ada Lovelace" in result.output
    assert "Project:   Engines" in result.output
    assert "  1. [00:00:01.00] Great Answer" in result.output
    assert "  2. [00:00:05.50] Key Quote - on poetry" in result.output


def test_show_invalid_ref(tmp_data_dir):
    result = CliRunner().invoke(main, ["show", "nonexistent"])
    assert result.exit_code == 1
    assert "Recording not found" in result.output


def test_show_out_of_range(tmp_data_dir):
    _seed(tmp_data_dir)
    result = CliRunner().invoke(main, ["show", "HEAD~3"])
    assert result.exit_code == 1
    assert "only 1 recording(s) exist" in result.output


def test_search_transcripts(tmp_data_dir):
    _seed(tmp_data_dir, transcript="intro\nthe loom and the engine\noutro")
    result = CliRunner().invoke(main, ["search", "LOOM"])
    assert result.exit_code == 0
    assert "the loom and the engine" in result.output
    assert "1 match found." in result.output


def test_search_no_matches(tmp_data_dir):
    result = CliRunner().invoke(main, ["search", "anything"])
    assert "No matches found." in result.output


# ──── transcribe / summarize ────


def test_transcribe_missing_whisper(monkeypatch, tmp_data_dir):
    _seed(tmp_data_dir)
    monkeypatch.setattr("shutil.which", lambda name: None)
    result = CliRunner().invoke(main, ["transcribe"])
    assert result.exit_code == 1
    assert "whisper.cpp not found" in result.output


def test_transcribe_ref(monkeypatch, tmp_data_dir):
    _seed(tmp_data_dir)
    monkeypatch.setattr(
        "directordeck.whisper_manager.WhisperManager.require",
        lambda self, model: (Path("/usr/bin/whisper-cli"), Path(f"ggml-{model}.bin")),
    )
    seen = {}

    def fake_transcribe(self, path, language="auto"):
        seen["model"] = self.model_name
        seen["language"] = language
        return TranscriptResult(file=path.name, model=self.model_name, language=language,
                                segments=[TranscriptSegment(0.0, 1.0, "Hello.")])

    monkeypatch.setattr("directordeck.transcriber.Transcriber.transcribe", fake_transcribe)
    result = CliRunner().invoke(main, ["transcribe", "HEAD", "--model", "small", "--language", "en"])
    assert result.exit_code == 0, result.output
    assert seen == {"model": "small", "language": "en"}
    assert (tmp_data_dir / "recordings" / "2025-01-15-143022.txt").read_text() == "Hello."


def test_summarize_without_transcript(tmp_data_dir):
    _seed(tmp_data_dir)
    result = CliRunner().invoke(main, ["summarize"])
    assert result.exit_code == 1
    assert "No transcript" in result.output


def test_summarize_local(tmp_data_dir):
    _seed(tmp_data_dir, markers=[Marker(3.0, "Follow Up")], transcript="Short talk. Very short.")
    result = CliRunner().invoke(main, ["summarize", "--local"])
    assert result.exit_code == 0, result.output
    assert "## Interview Summary" in result.output
    assert "[00:00:03.00] Follow Up" in result.output
    summary_path = tmp_data_dir / "recordings" / "2025-01-15-143022.summary.md"
    assert summary_path.read_text() == result.output


# ──── export / note ────


def test_export_default_path(tmp_data_dir):
    _seed(tmp_data_dir, markers=[Marker(5.5, "Key Quote"), Marker(1.0, "Great Answer")])
    result = CliRunner().invoke(main, ["export"])
    assert result.exit_code == 0, result.output
    assert "Exported 2 markers at 30 fps" in result.output

    xml = (tmp_data_dir / "exports" / "Ada_Lovelace_interview.xml").read_text()
    assert "<duration>300</duration>" in xml
    assert xml.index("Great Answer") < xml.index("Key Quote")
    assert "<in>165</in>" in xml


def test_export_custom_output_and_fps(tmp_data_dir, tmp_path):
    _seed(tmp_data_dir, markers=[Marker(2.0, "B-Roll Idea")])
    out = tmp_path / "cuts" / "ada.xml"
    result = CliRunner().invoke(main, ["export", "-o", str(out), "--fps", "24"])
    assert result.exit_code == 0, result.output
    assert "<in>48</in>" in out.read_text()


def test_export_invalid_fps(tmp_data_dir):
    _seed(tmp_data_dir)
    result = CliRunner().invoke(main, ["export", "--fps", "-5"])
    assert result.exit_code == 1
    assert "Frame rate must be positive" in result.output


def test_note_updates_marker(tmp_data_dir):
    store = _seed(tmp_data_dir, markers=[Marker(5.0, "Follow Up"), Marker(1.0, "Key Quote")])
    result = CliRunner().invoke(main, ["note", "HEAD", "2", "ask about Babbage"])
    assert result.exit_code == 0, result.output
    assert "[00:00:05.00] Follow Up: ask about Babbage" in result.output
    markers = store.get_recording("2025-01-15-143022").markers
    assert [m.notes for m in markers] == ["ask about Babbage", ""]


def test_note_out_of_range(tmp_data_dir):
    _seed(tmp_data_dir, markers=[Marker(1.0, "Key Quote")])
    result = CliRunner().invoke(main, ["note", "HEAD", "4", "x"])
    assert result.exit_code == 1
    assert "No marker 4" in result.output


# ──── config ────


def test_config_set_and_get(tmp_data_dir):
    runner = CliRunner()
    result = runner.invoke(main, ["config", "export.frame_rate", "24"])
    assert result.exit_code == 0, result.output
    assert "Set export.frame_rate = 24" in result.output
    assert (tmp_data_dir / "config.toml").exists()

    result = runner.invoke(main, ["config", "export.frame_rate"])
    assert result.output.strip() == "24"


def test_config_list_masks_api_key(tmp_data_dir):
    runner = CliRunner()
    runner.invoke(main, ["config", "summary.api_key", "sk-secret"])
    result = runner.invoke(main, ["config", "--list"])
    assert result.exit_code == 0
    assert "summary.api_key = '****'" in result.output
    assert "sk-secret" not in result.output
    assert "markers.quick_tags" in result.output


def test_config_invalid_value(tmp_data_dir):
    result = CliRunner().invoke(main, ["config", "recording.tick_interval_ms", "500"])
    assert result.exit_code == 1
    assert "tick_interval_ms must be 1-50" in result.output


def test_config_unknown_key(tmp_data_dir):
    result = CliRunner().invoke(main, ["config", "recording.bogus"])
    assert result.exit_code == 1
    assert "Unknown config key" in result.output


def test_quick_tags_from_config(monkeypatch, tmp_data_dir):
    runner = CliRunner()
    runner.invoke(main, ["config", "markers.quick_tags", "Laugh,Cut"])
    _patch_record(monkeypatch, events=[("key", "2"), ("key", "q")])
    result = runner.invoke(main, ["record", "-s", "Ada"])
    assert result.exit_code == 0, result.output
    assert "[1] Laugh  [2] Cut" in result.output
    assert [m["label"] for m in _read_only_meta(tmp_data_dir)["markers"]] == ["Cut"]
