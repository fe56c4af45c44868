from __future__ import annotations

from .actions import PlayCardAction
from .match import MatchState


def fallback_move(state: MatchState) -> PlayCardAction | None:
    """The move a timed-out turn makes: first card in hand into the lowest empty cell.

    None when the active player cannot place anything (empty hand or full board),
    in which case the timeout passes the turn or ends the match instead.
    """
    if state.winner is not None:
        return None
    player = state.current_player
    empty = state.empty_cells()
    if not state.hand(player) or not empty:
        return None
    return PlayCardAction(player=player, hand_index=0, cell_index=empty[0])
