"""Fold accented text to plain characters so every client shows the same name."""

from __future__ import annotations

import unicodedata
from typing import Dict

# Letters that NFKD leaves intact because they are distinct code points.
_FOLD_TABLE: Dict[int, str] = str.maketrans(
    {
        "đ": "d",
        "Đ": "D",
        "ð": "d",
        "Ð": "D",
        "ø": "o",
        "Ø": "O",
        "ł": "l",
        "Ł": "L",
        "ß": "ss",
        "æ": "ae",
        "Æ": "AE",
        "œ": "oe",
        "Œ": "OE",
        "ı": "i",
    }
)


def normalize_text(raw: str) -> str:
    """Return ``raw`` with diacritics removed and special letters folded.

    Whitespace is preserved so the caret position of a field being edited does
    not jump; ``None`` is treated as empty text.
    """
    if raw is None:
        return ""
    text = str(raw).translate(_FOLD_TABLE)
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return unicodedata.normalize("NFC", stripped)


__all__ = ["normalize_text"]
