from __future__ import annotations
from typing import Any, List, TypedDict


class Palette(TypedDict):
    """A generated five-color palette."""

    name: str            # short creative label
    colors: List[Any]    # "#RRGGBB" tokens, kept exactly as the model produced them
    description: str     # one-sentence vibe


class HistoryRecord(Palette):
    """A palette as persisted in a user's history shard."""

    original_text: str   # the input that produced the palette
    timestamp: int       # creation instant, epoch milliseconds
