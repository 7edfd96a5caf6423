"""Shared constants and defaults."""

APP_NAME = "directordeck"
DATA_DIR_ENV = "DIRECTORDECK_DATA_DIR"

DEFAULT_SAMPLE_RATE = 16000
DEFAULT_CHANNELS = 1
DEFAULT_TICK_INTERVAL_MS = 10
MAX_TICK_INTERVAL_MS = 50

DEFAULT_MODEL = "base"
DEFAULT_LANGUAGE = "auto"

DEFAULT_SUMMARY_MODEL = "gpt-4o-mini"
DEFAULT_SUMMARY_TEMPERATURE = 0.4
DEFAULT_SUMMARY_MAX_TOKENS = 2000

DEFAULT_FRAME_RATE = 30

QUICK_TAGS = ["Great Answer", "Key Quote", "Follow Up", "B-Roll Idea", "Emotional Moment"]

VALID_MODELS = ("tiny", "base", "small", "medium", "large")
VALID_SORT_FIELDS = ("date", "duration", "name")
