"""CLI entry point for directordeck."""

import asyncio
import logging
import queue
import signal
import sys
import threading

import click

from directordeck import __version__

PAUSE_KEYS = ("p", " ")
STOP_KEYS = ("q", "\x03")
CUSTOM_KEY = "m"
CUSTOM_LABEL = "Custom"
KEY_POLL_SECONDS = 0.1
IDLE_POLL_SECONDS = 0.25


def _load_config():
    """Return (config, data_dir), honoring a data_dir override stored in the config."""
    from directordeck.config import DirectorDeckConfig
    from directordeck.paths import get_config_path, get_data_dir

    cfg = DirectorDeckConfig.load(get_config_path(get_data_dir()))
    data_dir = get_data_dir(cfg.storage.data_dir)
    if cfg.storage.data_dir:
        cfg = DirectorDeckConfig.load(get_config_path(data_dir))
    return cfg, data_dir


def _open_store(data_dir):
    from directordeck.paths import get_recordings_dir
    from directordeck.storage import RecordingStore

    return RecordingStore(get_recordings_dir(data_dir))


def _create_recorder(cfg):
    from directordeck.recorder.sounddevice_recorder import SounddeviceRecorder

    return SounddeviceRecorder()


def _check_permission() -> bool:
    from directordeck.devices import request_microphone_permission

    return asyncio.run(request_microphone_permission())


def _create_summarizer(cfg):
    if not cfg.summary.enabled:
        return None
    from directordeck.summarizer import GPTSummarizer

    return GPTSummarizer(
        api_key=cfg.summary.api_key or None,
        model=cfg.summary.model,
        temperature=cfg.summary.temperature,
        max_tokens=cfg.summary.max_tokens,
    )


def _key_ready(timeout: float) -> bool:
    """Wait up to ``timeout`` seconds for a keypress to be available on stdin."""
    if sys.platform == "win32":
        import msvcrt
        import time

        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if msvcrt.kbhit():
                return True
            time.sleep(0.01)
        return False

    import select
    import termios
    import tty

    if not sys.stdin.isatty():
        return bool(select.select([sys.stdin], [], [], timeout)[0])
    # Canonical mode only reports input after Enter, so poll in cbreak mode
    fd = sys.stdin.fileno()
    old_settings = termios.tcgetattr(fd)
    try:
        tty.setcbreak(fd)
        return bool(select.select([sys.stdin], [], [], timeout)[0])
    finally:
        termios.tcsetattr(fd, termios.TCSANOW, old_settings)


def _read_keys(commands, stop_event, prompting, key_ready=_key_ready):
    """Queue keypresses as commands until stopped.

    After the custom-tag key the reader prompts for a line of text and queues
    it as a ``note`` command. ``prompting`` is set while that prompt is open.
    """
    while not stop_event.is_set():
        try:
            if not key_ready(KEY_POLL_SECONDS):
                continue
            key = click.getchar()
        except (EOFError, OSError):
            return
        if stop_event.is_set():
            return
        if key == CUSTOM_KEY:
            prompting.set()
        commands.put(("key", key))
        if key in STOP_KEYS:
            return
        if key == CUSTOM_KEY:
            try:
                text = click.prompt("\n  Custom tag", default="", show_default=False)
            except click.Abort:
                text = ""
            finally:
                prompting.clear()
            commands.put(("note", text))


def _start_key_reader(commands, stop_event, prompting):
    thread = threading.Thread(
        target=_read_keys, args=(commands, stop_event, prompting), name="directordeck-keys", daemon=True
    )
    thread.start()
    return thread


def _tag_legend(tags) -> str:
    keys = "  ".join(f"[{i}] {tag}" for i, tag in enumerate(tags[:9], 1))
    return f"{keys}  [m] custom  [p] pause/resume  [q] stop"


def _handle_command(session, kind, value, tags, state) -> bool:
    """Apply one queued command to the session. Returns False to stop recording."""
    if kind == "tick":
        return True
    if kind == "note":
        marker_id = state.pop("custom_marker", None)
        if marker_id and value.strip():
            session.update_marker_notes(marker_id, value.strip())
        return True

    key = value
    if key in STOP_KEYS:
        return False
    if key in PAUSE_KEYS:
        session.toggle_pause()
        return True
    if key == CUSTOM_KEY:
        marker = session.add_marker(CUSTOM_LABEL)
        state["custom_marker"] = marker.id
        return True
    if key.isdigit() and 1 <= int(key) <= min(len(tags), 9):
        marker = session.add_marker(tags[int(key) - 1])
        click.echo(f"\n  + {marker.label} @ {marker.formatted_timestamp}")
    return True


def _render_status(session) -> str:
    from directordeck.session import RecordingState

    if session.state is RecordingState.PAUSED:
        led = click.style("||", fg="yellow")
        label = "PAUSED"
    else:
        led = click.style("●", fg="red", blink=True)
        label = "REC"
    blocks = " ▁▂▃▄▅▆▇█"
    meter = blocks[int(min(session.level ** 0.4, 1.0) * 8)]
    count = len(session.markers)
    return f"\r  {led} {label} {session.formatted_time} {meter}  {count} marker{'s' if count != 1 else ''}"


def _post_process(cfg, data_dir, store, stem):
    """Transcribe and summarize a saved recording. Failures are reported, never raised."""
    from directordeck.errors import TranscriptionFailed
    from directordeck.paths import get_whisper_dir
    from directordeck.summarizer import summarize_with_fallback
    from directordeck.transcriber import Transcriber
    from directordeck.whisper_manager import WhisperManager

    info = store.get_recording(stem)
    model_name = cfg.transcription.model
    click.echo(f"Transcribing with model '{model_name}'...")
    try:
        binary, model_path = WhisperManager(get_whisper_dir(data_dir)).require(model_name)
        result = Transcriber(binary, model_path).transcribe(
            info.wav_path, language=cfg.transcription.language
        )
    except TranscriptionFailed as e:
        click.echo(f"Transcription failed: {e}")
        return

    store.write_transcript(stem, result.text, model=model_name)
    click.echo(f"Transcription complete: {len(result.segments)} segments.")

    summary, used_ai = summarize_with_fallback(_create_summarizer(cfg), result.text, info.markers)
    store.write_summary(stem, summary, source="ai" if used_ai else "local")
    click.echo(f"Summary written ({'AI' if used_ai else 'local'}).")


@click.group()
@click.version_option(version=__version__, prog_name="directordeck")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def main(verbose):
    """Record film interviews with timecoded markers."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--subject", "-s", required=True, help="Name of the person being interviewed.")
@click.option("--project", "-p", default="", help="Project this interview belongs to.")
@click.option("--device", "-d", default=None, help="Audio device name or index.")
@click.option("--max-duration", default=None, help="Stop automatically after this long (e.g. 30m).")
@click.option("--no-transcribe", is_flag=True, help="Don't transcribe after recording.")
@click.option("--transcribe", "force_transcribe", is_flag=True, help="Transcribe after recording.")
def record(subject, project, device, max_duration, no_transcribe, force_transcribe):
    """Record an interview, tagging moments from the keyboard."""
    from directordeck.clock import Clock
    from directordeck.errors import DeviceUnavailable, PermissionDenied
    from directordeck.paths import ensure_dirs
    from directordeck.recorder import RecordingConfig
    from directordeck.session import RecordingSession
    from directordeck.timeparse import parse_duration

    cfg, data_dir = _load_config()
    ensure_dirs(data_dir)
    store = _open_store(data_dir)

    limit = None
    if max_duration:
        try:
            limit = parse_duration(max_duration)
        except ValueError as e:
            raise click.ClickException(str(e))

    device = device or cfg.recording.default_device or None
    rec_config = RecordingConfig(
        sample_rate=cfg.recording.sample_rate,
        channels=cfg.recording.channels,
        device=int(device) if device and device.isdigit() else device,
    )
    commands = queue.Queue()
    # The status line is redrawn on every clock tick
    clock = Clock(
        interval=cfg.recording.tick_interval_ms / 1000,
        on_tick=lambda elapsed: commands.put(("tick", elapsed)),
    )
    session = RecordingSession(
        _create_recorder(cfg),
        store.recordings_dir,
        config=rec_config,
        clock=clock,
    )

    try:
        session.start(subject, permission_granted=_check_permission())
    except (PermissionDenied, DeviceUnavailable) as e:
        raise click.ClickException(str(e))

    tags = cfg.markers.quick_tags
    stop_event = threading.Event()
    prompting = threading.Event()
    interrupt_count = 0
    original_handler = signal.getsignal(signal.SIGINT)

    def handle_sigint(sig, frame):
        nonlocal interrupt_count
        interrupt_count += 1
        if interrupt_count >= 2:
            click.echo("\nForced exit.")
            sys.exit(1)
        click.echo("\nStopping recording...")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_sigint)

    try:
        click.echo(f"Recording interview with {subject} to {session.audio_path}")
        click.echo(_tag_legend(tags))
        reader = _start_key_reader(commands, stop_event, prompting)

        state = {}
        while not stop_event.is_set():
            if limit is not None and session.elapsed_seconds >= limit:
                click.echo("\nMaximum duration reached.")
                break
            # Ticks stop while paused; keep polling for keys and SIGINT
            try:
                kind, value = commands.get(timeout=IDLE_POLL_SECONDS)
            except queue.Empty:
                continue
            if not _handle_command(session, kind, value, tags, state):
                break
            if not prompting.is_set():
                click.echo(_render_status(session), nl=False)

        stop_event.set()
        finished = session.stop()
        if reader is not None:
            reader.join(timeout=1.0)
        click.echo(
            f"\nRecording saved: {finished.audio_path} "
            f"({finished.formatted_duration}, {len(finished.markers)} markers)"
        )
        if finished.finalize_error:
            click.echo(
                click.style("Warning: ", fg="yellow")
                + f"audio file may be incomplete ({finished.finalize_error})"
            )

        stem = store.save(finished, project=project)
        session.reset()

        if force_transcribe or (cfg.recording.auto_transcribe and not no_transcribe):
            _post_process(cfg, data_dir, store, stem)

    finally:
        signal.signal(signal.SIGINT, original_handler)
        if session.is_active:
            session.reset()


def _date_str(stem: str) -> str:
    """Format a recording stem with a two-char day-of-week suffix."""
    from datetime import datetime

    try:
        dt = datetime.strptime(stem, "%Y-%m-%d-%H%M%S")
    except ValueError:
        return stem
    return f"{stem} {dt.strftime('%a')[:2]}"


def _ref_map(store):
    all_by_date = store.list_recordings(limit=None, sort_by="date")
    return {r.stem: (f"HEAD~{i}" if i else "HEAD") for i, r in enumerate(all_by_date)}


def _resolve_recording(ref, store):
    """Resolve a HEAD/HEAD~N/stem reference to a RecordingInfo."""
    if ref in ("HEAD", "last"):
        index = 0
    elif ref.startswith("HEAD~"):
        try:
            index = int(ref[5:])
        except ValueError:
            raise click.ClickException(f"Invalid ref: {ref}")
    else:
        recording = store.get_recording(ref)
        if recording is None:
            raise click.ClickException(f"Recording not found: {ref}")
        return recording

    recordings = store.list_recordings(limit=index + 1, sort_by="date")
    if index >= len(recordings):
        raise click.ClickException(
            f"Recording {ref} not found (only {len(recordings)} recording(s) exist)."
        )
    return recordings[index]


def _format_duration(seconds):
    from directordeck.timecode import format_timecode

    return format_timecode(seconds) if seconds is not None else "---"


@main.command(name="list")
@click.option("--limit", "-n", default=20, help="Number of entries to show.")
@click.option("--search", "-s", default=None, help="Search subject, project, markers and transcript.")
@click.option("--sort", "sort_by", default="date", type=click.Choice(["date", "duration", "name"]),
              help="Sort field.")
@click.option("--no-header", is_flag=True, help="Omit table header.")
def list_recordings(limit, search, sort_by, no_header):
    """List recorded interviews."""
    _, data_dir = _load_config()
    store = _open_store(data_dir)
    refs = _ref_map(store)

    recordings = store.list_recordings(limit=limit, sort_by=sort_by, search=search)
    if not recordings:
        click.echo("No recordings found.")
        return

    if not no_header:
        click.echo(f"{'REF':<9} {'Date':<25} {'Duration':>11}  {'Markers':>7}  {'Text':>4}  {'Subject'}")
        click.echo("-" * 88)

    for r in recordings:
        trans_str = "Yes" if r.transcribed else "No"
        flag = " [audio missing]" if r.audio_missing else ""
        click.echo(
            f"{refs.get(r.stem, '?'):<9} {_date_str(r.stem):<25} "
            f"{_format_duration(r.duration_seconds):>11}  {len(r.markers):>7}  "
            f"{trans_str:>4}  {r.subject}{flag}"
        )


@main.command()
@click.argument("ref", default="HEAD")
@click.option("--summary", "show_summary", is_flag=True, help="Print the stored summary too.")
def show(ref, show_summary):
    """Show a recording's details and markers.

    REF can be HEAD (most recent), HEAD~N (Nth previous), or a recording stem.
    """
    _, data_dir = _load_config()
    store = _open_store(data_dir)
    recording = _resolve_recording(ref, store)

    click.echo(f"Subject:   {recording.subject or '(unknown)'}")
    if recording.project:
        click.echo(f"Project:   {recording.project}")
    click.echo(f"Recorded:  {_date_str(recording.stem)}")
    click.echo(f"Duration:  {_format_duration(recording.duration_seconds)}")
    if recording.audio_missing:
        click.echo("Audio:     " + click.style("missing", fg="red") + f" (expected {recording.wav_path})")
    else:
        click.echo(f"Audio:     {recording.wav_path}")
    if recording.finalize_error:
        click.echo(click.style("Warning: ", fg="yellow") + f"audio may be incomplete ({recording.finalize_error})")
    click.echo(f"Transcript: {'yes' if recording.transcribed else 'no'}")
    click.echo(f"Summary:   {'yes' if recording.summary_path else 'no'}")

    markers = recording.sorted_markers
    click.echo()
    if not markers:
        click.echo("No markers.")
    for i, marker in enumerate(markers, 1):
        line = f"{i:>3}. [{marker.formatted_timestamp}] {marker.label}"
        if marker.notes:
            line += f" - {marker.notes}"
        click.echo(line)

    if show_summary and recording.summary_path:
        click.echo()
        click.echo(recording.read_summary(), nl=False)


@main.command()
@click.argument("query")
@click.option("--limit", "-n", default=20, help="Max recordings to show.")
def search(query, limit):
    """Search transcript text for a keyword or phrase."""
    _, data_dir = _load_config()
    store = _open_store(data_dir)
    refs = _ref_map(store)

    results = store.search_transcripts(query, limit=limit)
    if not results:
        click.echo("No matches found.")
        return

    for recording, lines in results:
        click.echo(f"── {recording.subject or recording.stem} ({refs.get(recording.stem, '?')}) ──")
        for line in lines:
            click.echo(line)
        click.echo()

    count = len(results)
    click.echo(f"{count} match{'es' if count != 1 else ''} found.")


@main.command()
@click.argument("ref", default="HEAD")
@click.option("--model", "-m", default=None, help="Whisper model size.")
@click.option("--language", default=None, help="Language code (default: auto-detect).")
def transcribe(ref, model, language):
    """Transcribe a recording with whisper.cpp."""
    from directordeck.errors import TranscriptionFailed
    from directordeck.paths import get_whisper_dir
    from directordeck.transcriber import Transcriber
    from directordeck.whisper_manager import WhisperManager

    cfg, data_dir = _load_config()
    store = _open_store(data_dir)
    recording = _resolve_recording(ref, store)
    model_name = model or cfg.transcription.model

    click.echo(f"Transcribing {recording.wav_path.name} with model '{model_name}'...")
    try:
        binary, model_path = WhisperManager(get_whisper_dir(data_dir)).require(model_name)
        result = Transcriber(binary, model_path).transcribe(
            recording.wav_path, language=language or cfg.transcription.language
        )
    except TranscriptionFailed as e:
        raise click.ClickException(str(e))

    path = store.write_transcript(recording.stem, result.text, model=model_name)
    click.echo(f"Transcription complete: {len(result.segments)} segments.")
    click.echo(f"  {path}")


@main.command()
@click.argument("ref", default="HEAD")
@click.option("--local", "local_only", is_flag=True, help="Skip the AI service and use the local template.")
def summarize(ref, local_only):
    """Summarize a transcribed recording."""
    from directordeck.summarizer import summarize_with_fallback

    cfg, data_dir = _load_config()
    store = _open_store(data_dir)
    recording = _resolve_recording(ref, store)

    if recording.txt_path is None:
        raise click.ClickException(
            f"No transcript for {recording.stem}. Run: directordeck transcribe {recording.stem}"
        )

    summarizer = None if local_only else _create_summarizer(cfg)
    summary, used_ai = summarize_with_fallback(
        summarizer, recording.read_transcript(), recording.markers
    )
    if summarizer is not None and summarizer.is_configured and not used_ai:
        click.echo("AI summary unavailable; using local summary.", err=True)
    store.write_summary(recording.stem, summary, source="ai" if used_ai else "local")
    click.echo(summary, nl=False)


@main.command()
@click.argument("ref", default="HEAD")
@click.option("--output", "-o", type=click.Path(), default=None, help="Output XML path.")
@click.option("--fps", type=int, default=None, help="Timeline frame rate (default from config).")
def export(ref, output, fps):
    """Export markers as an editing-timeline XML (xmeml)."""
    from pathlib import Path

    from directordeck.export import write_xmeml
    from directordeck.paths import get_exports_dir

    cfg, data_dir = _load_config()
    store = _open_store(data_dir)
    recording = _resolve_recording(ref, store)

    frame_rate = fps or cfg.export.frame_rate
    if frame_rate <= 0:
        raise click.ClickException(f"Frame rate must be positive, got {frame_rate}")

    channels = (recording.metadata or {}).get("channels", 1)
    path = write_xmeml(
        get_exports_dir(data_dir),
        recording.subject or recording.stem,
        recording.wav_path,
        recording.duration_seconds or 0.0,
        recording.markers,
        frame_rate=frame_rate,
        channels=channels,
        output_path=Path(output) if output else None,
    )
    click.echo(f"Exported {len(recording.markers)} markers at {frame_rate} fps: {path}")


@main.command()
@click.argument("ref")
@click.argument("index", type=int)
@click.argument("text")
def note(ref, index, text):
    """Set the notes of marker INDEX (as numbered by `show`)."""
    _, data_dir = _load_config()
    store = _open_store(data_dir)
    recording = _resolve_recording(ref, store)

    markers = recording.sorted_markers
    if not 1 <= index <= len(markers):
        raise click.ClickException(f"No marker {index}; {recording.stem} has {len(markers)} marker(s).")
    marker = store.update_marker_notes(recording.stem, markers[index - 1].id, text)
    click.echo(f"[{marker.formatted_timestamp}] {marker.comment}")


@main.command()
def devices():
    """List available audio input devices."""
    from directordeck.devices import list_devices

    try:
        devs = list_devices()
    except OSError as e:
        raise click.ClickException(str(e))
    if not devs:
        click.echo("No audio input devices found.")
        return

    click.echo(f"{'Idx':<5} {'Name':<45} {'Ch':>3} {'Rate':>7}  {'Host API'}")
    click.echo("-" * 80)
    for dev in devs:
        marker = "*" if dev.is_default else " "
        click.echo(
            f"{dev.index:<4}{marker} {dev.name:<45} {dev.max_input_channels:>3} "
            f"{dev.default_samplerate:>7.0f}  {dev.hostapi}"
        )


@main.command()
@click.option("--model", "-m", default=None, help="Whisper model to download.")
@click.option("--force", is_flag=True, help="Download even if already present.")
def setup(model, force):
    """Download a whisper model and check for the whisper.cpp binary."""
    from directordeck.paths import get_whisper_dir
    from directordeck.whisper_manager import WhisperManager

    cfg, data_dir = _load_config()
    wm = WhisperManager(get_whisper_dir(data_dir))
    try:
        wm.download_model(model or cfg.transcription.model, force=force)
    except (ValueError, RuntimeError) as e:
        raise click.ClickException(str(e))

    binary = wm.find_binary()
    if binary is None:
        click.echo("whisper.cpp not found on PATH; install it to enable transcription.")
    else:
        click.echo(f"whisper.cpp: {binary}")


@main.command()
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--list", "list_all", is_flag=True, help="Show all configuration values.")
def config(key, value, list_all):
    """View or set configuration."""
    from directordeck.paths import get_config_path

    cfg, data_dir = _load_config()
    config_path = get_config_path(data_dir)

    if list_all or (key is None and value is None):
        for section_name, section_dict in cfg._to_dict().items():
            for k, v in section_dict.items():
                if k == "api_key" and v:
                    v = "****"
                click.echo(f"{section_name}.{k} = {v!r}")
        return

    if value is None:
        try:
            click.echo(cfg.get(key))
        except KeyError as e:
            raise click.ClickException(str(e))
        return

    try:
        cfg.set(key, value)
    except (KeyError, ValueError) as e:
        raise click.ClickException(str(e))
    cfg.save(config_path)
    click.echo(f"Set {key} = {cfg.get(key)!r}")
