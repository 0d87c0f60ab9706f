"""Application composition layer.

Timers, background I/O, settings and the runtime that wires adapters, use
cases and the board view model into one running client.
"""
