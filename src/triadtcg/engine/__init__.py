"""Deterministic, headless rules engine for TriadTCG.

IMPORTANT: This package must never perform I/O.
"""

from .actions import PlayCardAction, TimeoutAction
from .match import (
    MatchConfig,
    MatchState,
    Score,
    StepResult,
    auto_play_on_timeout,
    new_match,
    play_move,
    score_board,
    step,
)
from .types import BoardCell, Card, Player, Winner

__all__ = [
    "BoardCell",
    "Card",
    "MatchConfig",
    "MatchState",
    "PlayCardAction",
    "Player",
    "Score",
    "StepResult",
    "TimeoutAction",
    "Winner",
    "auto_play_on_timeout",
    "new_match",
    "play_move",
    "score_board",
    "step",
]
