from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Player = Literal[1, 2]
Winner = Literal[1, 2, "draw"]

InvalidMove = Literal[
    "match_over",
    "not_your_turn",
    "invalid_cell",
    "cell_occupied",
    "invalid_hand_index",
]

PLAYERS: tuple[Player, Player] = (1, 2)
BOARD_SIZE = 9
BOARD_WIDTH = 3


def other_player(player: Player) -> Player:
    return 2 if player == 1 else 1


@dataclass(frozen=True)
class Card:
    """Catalog entry. Shared between boards and hands, never mutated."""

    id: str
    code: str
    name: str
    level: int
    cost: int
    top: int
    right: int
    bottom: int
    left: int
    image_name: str | None = None


@dataclass(frozen=True)
class BoardCell:
    card: Card | None = None
    owner: Player | None = None

    @property
    def occupied(self) -> bool:
        return self.card is not None


Board = tuple[BoardCell, ...]
Hand = tuple[Card, ...]


def empty_board() -> Board:
    return tuple(BoardCell() for _ in range(BOARD_SIZE))


@dataclass(frozen=True)
class CardDatabase:
    """Immutable card catalog used to resolve deck entries."""

    cards: dict[str, Card]

    def get(self, card_id: str) -> Card:
        return self.cards[card_id]
