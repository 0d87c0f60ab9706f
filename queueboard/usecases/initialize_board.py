"""Use case: load the board, creating the canonical grid when it is missing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from queueboard.adapters.api_errors import ApiResponseFormatError
from queueboard.domain.entities import BOARD_SIZE, Slot
from queueboard.domain.ports import StorePort, UseCaseError
from queueboard.usecases.error_mapping import map_api_error

_log = logging.getLogger(__name__)


@dataclass
class InitializeBoard:
    """Make sure the 48 canonical slots exist and return the board.

    An empty or malformed read triggers ``initialize_grid``, which the store
    implements as an upsert, so two clients racing here is harmless.
    """

    store: StorePort

    def __call__(self) -> List[Slot]:
        try:
            slots = self.store.list_slots()
        except ApiResponseFormatError as exc:
            _log.warning("Board read malformed, initializing grid: %s", exc)
            slots = []
        except Exception as exc:
            raise map_api_error(exc, default_code="INITIALIZE_FAILED") from exc

        if slots and len(slots) >= BOARD_SIZE:
            return slots

        _log.info("Board has %d of %d slots, initializing grid", len(slots), BOARD_SIZE)
        try:
            slots = self.store.initialize_grid()
        except Exception as exc:
            raise map_api_error(exc, default_code="INITIALIZE_FAILED") from exc
        if len(slots) < BOARD_SIZE:
            raise UseCaseError(
                "INITIALIZE_FAILED",
                f"Store returned {len(slots)} slots after initialization.",
            )
        return slots
