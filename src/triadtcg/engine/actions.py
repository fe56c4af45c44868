from __future__ import annotations

from dataclasses import dataclass

from .types import Player


@dataclass(frozen=True)
class PlayCardAction:
    player: Player
    hand_index: int
    cell_index: int


@dataclass(frozen=True)
class TimeoutAction:
    """The active player's turn clock ran out."""

    player: Player


Action = PlayCardAction | TimeoutAction
