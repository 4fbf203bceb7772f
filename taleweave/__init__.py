"""Taleweave: session-based interactive narrative turn engine."""

__version__ = "0.1.0"
