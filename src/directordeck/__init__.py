"""Interview recording with timecoded markers for film production."""

__version__ = "0.1.0"
