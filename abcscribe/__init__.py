"""Transcode detected note events into ABC notation."""

__version__ = "0.1.0"
