"""Input device enumeration and the microphone permission query."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class AudioDevice:
    index: int
    name: str
    max_input_channels: int
    default_samplerate: float
    hostapi: str
    is_default: bool = False


def _import_sounddevice():
    """Import sounddevice, raising a clear error on library conflicts."""
    try:
        import sounddevice as sd
        return sd
    except OSError as e:
        if "GLIBCXX" in str(e) or "libstdc++" in str(e):
            raise OSError(
                "PortAudio failed to load due to a libstdc++ conflict (likely Anaconda).\n"
                "Fix: run with the system libstdc++:\n"
                "  LD_PRELOAD=/lib/x86_64-linux-gnu/libstdc++.so.6 directordeck devices"
            ) from e
        raise


def _default_input_index(sd) -> int | None:
    default = sd.default.device
    if isinstance(default, (list, tuple)):
        default = default[0]
    return default if isinstance(default, int) and default >= 0 else None


def list_devices() -> list[AudioDevice]:
    """Enumerate devices that can capture audio."""
    sd = _import_sounddevice()

    raw_devices = sd.query_devices()
    hostapis = sd.query_hostapis()
    default_index = _default_input_index(sd)
    results = []

    for i, dev in enumerate(raw_devices):
        if dev["max_input_channels"] < 1:
            continue
        hostapi_name = hostapis[dev["hostapi"]]["name"] if dev["hostapi"] < len(hostapis) else ""
        results.append(AudioDevice(
            index=i,
            name=dev["name"],
            max_input_channels=dev["max_input_channels"],
            default_samplerate=dev["default_samplerate"],
            hostapi=hostapi_name,
            is_default=(i == default_index),
        ))

    return results


def has_input_device() -> bool:
    """Whether PortAudio exposes at least one capture device to this process."""
    try:
        return bool(list_devices())
    except Exception as e:
        logger.warning("Audio devices unavailable: %s", e)
        return False


async def request_microphone_permission() -> bool:
    """Ask the platform whether the microphone may be used.

    On macOS the first PortAudio query triggers the system permission prompt;
    a denied or missing microphone shows up as no input devices.
    """
    granted = await asyncio.to_thread(has_input_device)
    logger.debug("Microphone permission granted: %s", granted)
    return granted
