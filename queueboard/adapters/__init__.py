"""Adapter package for external I/O implementations.

Purpose:
    Collect concrete implementations for domain ports (REST store, SSE
    broadcast, in-memory offline substitutes) used by the sync layer.

Dependencies:
    Individual submodules depend on ``requests`` and on the domain protocol
    definitions in ``queueboard.domain.ports``.

Call context:
    Imported by ``queueboard.app.runtime`` (for runtime wiring) and by tests
    (for offline doubles and transport-level behavior verification).
"""
