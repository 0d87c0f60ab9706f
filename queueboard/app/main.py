# queueboard/app/main.py
"""Headless Tk shell: runs one board client on a Tk event loop.

The widget layer lives elsewhere; this shell keeps the sync layer alive,
mirrors connection status into the window title and logs board changes.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from ..domain.entities import SIDES, Side
from ..utils import logging as logging_utils
from ..viewmodels.board_vm import BoardRow, BoardVM
from .runtime import BoardRuntime
from .settings import SettingsConfig, load_settings

APP_TITLE = "Queue Board"

_log = logging.getLogger(__name__)


def format_title(status: Mapping[str, object]) -> str:
    parts = [APP_TITLE]
    if status.get("offline"):
        parts.append("OFFLINE")
    elif status.get("connection") not in (None, "connected", "local"):
        parts.append(str(status["connection"]))
    hint = status.get("retry_hint")
    if hint:
        parts.append(str(hint))
    elif status.get("error_code"):
        parts.append(str(status["error_code"]))
    return " | ".join(parts)


def describe_board(rows: Dict[Side, List[BoardRow]]) -> str:
    """One-line summary per side: populated rows and the checked row."""
    chunks = []
    for side in SIDES:
        side_rows = rows.get(side, [])
        filled = sum(1 for row in side_rows if row.populated)
        checked = next((row.row_index + 1 for row in side_rows if row.checked), None)
        chunks.append(f"{side}: {filled} filled, checked={checked or '-'}")
    return "; ".join(chunks)


def build_runtime(root, settings: SettingsConfig, **overrides) -> BoardRuntime:
    """Wire a runtime to ``root``'s ``after`` timers and title bar."""

    def on_status(status: Dict[str, object]) -> None:
        root.title(format_title(status))

    def on_board(rows: Dict[Side, List[BoardRow]]) -> None:
        _log.debug("Board: %s", describe_board(rows))

    vm = overrides.pop("vm", None) or BoardVM()
    vm.on_board_changed = on_board
    vm.on_status_changed = on_status
    if settings.offline:
        # In-process store and hub; no stream to connect.
        vm.connection_state = "local"
    runtime = BoardRuntime(settings, root.after, root.after_cancel, vm=vm, **overrides)
    root.title(format_title(vm.status()))
    return runtime


def main(env: Optional[Mapping[str, str]] = None) -> None:
    level = logging_utils.configure_root(env=env)
    settings = load_settings(env)
    _log.info(
        "Starting board client (api=%s, realtime=%s, log level=%s)",
        settings.api_base_url or "in-memory",
        settings.realtime,
        logging.getLevelName(level),
    )
    import tkinter as tk

    root = tk.Tk()
    root.geometry("420x80")
    runtime = build_runtime(root, settings)

    def on_close() -> None:
        runtime.stop()
        root.destroy()

    root.protocol("WM_DELETE_WINDOW", on_close)
    runtime.start()
    root.mainloop()


if __name__ == "__main__":
    main()
