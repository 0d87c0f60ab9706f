"""ViewModel package for board UI state.

Call context:
    ``queueboard/app/runtime.py`` builds a ``BoardVM`` and feeds it from the
    sync engine hooks; a widget layer binds to its rows and status fields.

Dependencies:
    Domain types only. I/O adapters and use-case orchestration stay outside.
"""
