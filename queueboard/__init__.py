"""Collaborative queue board client: sync engine, dispatcher and adapters."""

__version__ = "0.3.0"
