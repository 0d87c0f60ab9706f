"""Use-case layer for board synchronization.

Each module coordinates domain objects and ports without performing transport
I/O directly; blocking port calls are handed to the background runner.
"""
