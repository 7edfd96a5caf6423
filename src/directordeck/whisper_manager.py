"""Locating the whisper.cpp binary and downloading ggml models."""

from __future__ import annotations

import shutil
import sys
import urllib.request
from pathlib import Path

import click

from directordeck.errors import TranscriptionFailed

MODEL_BASE_URL = "https://huggingface.co/ggerganov/whisper.cpp/resolve/main"

MODEL_FILES = {
    "tiny": "ggml-tiny.bin",
    "base": "ggml-base.bin",
    "small": "ggml-small.bin",
    "medium": "ggml-medium.bin",
    "large": "ggml-large-v3.bin",
}

BINARY_NAMES = ("whisper-cli", "whisper-cpp", "whisper", "main")


class WhisperManager:
    def __init__(self, whisper_dir: Path):
        self.whisper_dir = whisper_dir
        self.models_dir = whisper_dir / "models"
        self.binary_path = whisper_dir / ("whisper-cli" + (".exe" if sys.platform == "win32" else ""))

    def find_binary(self) -> Path | None:
        """Find whisper.cpp: check the managed location, then PATH."""
        if self.binary_path.exists():
            return self.binary_path
        for name in BINARY_NAMES:
            found = shutil.which(name)
            if found:
                return Path(found)
        return None

    def model_path(self, model: str) -> Path:
        filename = MODEL_FILES.get(model, f"ggml-{model}.bin")
        return self.models_dir / filename

    def is_model_available(self, model: str) -> bool:
        return self.model_path(model).exists()

    def require(self, model: str) -> tuple[Path, Path]:
        """Return (binary, model path) or raise TranscriptionFailed with setup hints."""
        binary = self.find_binary()
        if binary is None:
            raise TranscriptionFailed(
                "whisper.cpp not found. Install it and make sure 'whisper-cli' is on your PATH."
            )
        if not self.is_model_available(model):
            raise TranscriptionFailed(
                f"Model '{model}' not downloaded. Run: directordeck setup --model {model}"
            )
        return binary, self.model_path(model)

    def download_model(self, model: str = "base", force: bool = False) -> Path:
        """Download a ggml model from Hugging Face."""
        filename = MODEL_FILES.get(model)
        if not filename:
            raise ValueError(f"Unknown model: {model!r}")

        model_file = self.model_path(model)
        if model_file.exists() and not force:
            return model_file

        self.models_dir.mkdir(parents=True, exist_ok=True)
        url = f"{MODEL_BASE_URL}/{filename}"
        click.echo(f"Downloading model '{model}' from {url}...")

        try:
            _download_with_progress(url, model_file)
        except Exception as e:
            model_file.unlink(missing_ok=True)
            raise RuntimeError(f"Failed to download model: {e}") from e

        click.echo(f"Model '{model}' saved to {model_file}")
        return model_file


def _download_with_progress(url: str, dest: Path) -> None:
    """Download a URL to a file with a progress bar."""
    req = urllib.request.Request(url, headers={"User-Agent": "directordeck"})
    with urllib.request.urlopen(req) as response:
        total = int(response.headers.get("Content-Length", 0))
        with open(dest, "wb") as f:
            if total <= 0:
                shutil.copyfileobj(response, f)
                return
            with click.progressbar(length=total, label="Downloading") as bar:
                while True:
                    chunk = response.read(8192)
                    if not chunk:
                        break
                    f.write(chunk)
                    bar.update(len(chunk))
