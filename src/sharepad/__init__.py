"""Sharepad - real-time shared scratchpad with versioned file storage."""

__version__ = "0.1.0"
