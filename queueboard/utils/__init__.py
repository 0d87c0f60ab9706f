"""Process-wide helpers (logging setup)."""
