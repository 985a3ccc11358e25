"""Replay recorded coding sessions keystroke by keystroke."""

__version__ = "0.1.0"
