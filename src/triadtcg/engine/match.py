from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field, replace

from .actions import Action, PlayCardAction, TimeoutAction
from .types import (
    BOARD_WIDTH,
    PLAYERS,
    Board,
    BoardCell,
    Card,
    Hand,
    InvalidMove,
    Player,
    Winner,
    empty_board,
    other_player,
)

logger = logging.getLogger(__name__)

Event = dict[str, object]


@dataclass(frozen=True)
class MatchConfig:
    hand_size: int = 5
    turn_seconds: int = 30


@dataclass(frozen=True)
class Score:
    player1: int
    player2: int


@dataclass(frozen=True)
class MatchState:
    """One game in progress. Never mutated; every transition returns a new value."""

    board: Board
    hands: tuple[Hand, Hand]
    current_player: Player = 1
    winner: Winner | None = None
    seconds_left: int = 30

    def hand(self, player: Player) -> Hand:
        return self.hands[player - 1]

    def empty_cells(self) -> list[int]:
        return [i for i, cell in enumerate(self.board) if not cell.occupied]

    @property
    def is_over(self) -> bool:
        return self.winner is not None

    @property
    def board_full(self) -> bool:
        return all(cell.occupied for cell in self.board)


@dataclass
class StepResult:
    ok: bool
    state: MatchState
    events: list[Event] = field(default_factory=list)
    error: InvalidMove | None = None


def _reject(state: MatchState, error: InvalidMove) -> StepResult:
    return StepResult(ok=False, state=state, events=[], error=error)


def score_board(board: Sequence[BoardCell]) -> Score:
    s1 = 0
    s2 = 0
    for cell in board:
        if cell.owner == 1:
            s1 += 1
        elif cell.owner == 2:
            s2 += 1
    return Score(player1=s1, player2=s2)


def winner_from_board(board: Sequence[BoardCell]) -> Winner:
    score = score_board(board)
    if score.player1 > score.player2:
        return 1
    if score.player2 > score.player1:
        return 2
    return "draw"


def _neighbours(cell_index: int) -> Iterator[tuple[int, str, str]]:
    """Yield (neighbour index, placed card side, neighbour side) for each in-board neighbour."""
    row, col = divmod(cell_index, BOARD_WIDTH)
    if row > 0:
        yield cell_index - BOARD_WIDTH, "top", "bottom"
    if row < BOARD_WIDTH - 1:
        yield cell_index + BOARD_WIDTH, "bottom", "top"
    if col > 0:
        yield cell_index - 1, "left", "right"
    if col < BOARD_WIDTH - 1:
        yield cell_index + 1, "right", "left"


def _captures(board: Board, cell_index: int, placed: Card, owner: Player) -> list[tuple[int, Card]]:
    # Every comparison reads the board as it was before the placement, so no capture chains.
    captured: list[tuple[int, Card]] = []
    for idx, attack_side, defend_side in _neighbours(cell_index):
        cell = board[idx]
        if not cell.occupied or cell.owner == owner:
            continue
        if getattr(placed, attack_side) > getattr(cell.card, defend_side):
            captured.append((idx, cell.card))
    return captured


def _with_hand(hands: tuple[Hand, Hand], player: Player, hand: Hand) -> tuple[Hand, Hand]:
    if player == 1:
        return (hand, hands[1])
    return (hands[0], hand)


def _end_reason(board_full: bool) -> str:
    return "board_full" if board_full else "hands_empty"


def play_move(
    state: MatchState,
    hand_index: int,
    cell_index: int,
    player: Player,
    config: MatchConfig | None = None,
) -> StepResult:
    """Place hand[hand_index] of `player` on `cell_index` and resolve captures.

    Rejections leave the state untouched and carry the reason in `error`.
    """
    cfg = config or MatchConfig()
    if state.is_over:
        return _reject(state, "match_over")
    if player != state.current_player:
        return _reject(state, "not_your_turn")
    if cell_index < 0 or cell_index >= len(state.board):
        return _reject(state, "invalid_cell")
    if state.board[cell_index].occupied:
        return _reject(state, "cell_occupied")
    hand = state.hand(player)
    if hand_index < 0 or hand_index >= len(hand):
        return _reject(state, "invalid_hand_index")

    card = hand[hand_index]
    events: list[Event] = [
        {
            "type": "CARD_PLACED",
            "player": player,
            "hand_index": hand_index,
            "cell_index": cell_index,
            "card_id": card.id,
        }
    ]

    captured = _captures(state.board, cell_index, card, player)
    cells = list(state.board)
    cells[cell_index] = BoardCell(card=card, owner=player)
    for idx, flipped in captured:
        cells[idx] = BoardCell(card=flipped, owner=player)
        events.append({"type": "CARD_CAPTURED", "player": player, "cell_index": idx, "card_id": flipped.id})
    board: Board = tuple(cells)

    hands = _with_hand(state.hands, player, hand[:hand_index] + hand[hand_index + 1 :])
    next_state = replace(state, board=board, hands=hands)

    if next_state.board_full or not any(hands):
        winner = winner_from_board(board)
        score = score_board(board)
        events.append(
            {
                "type": "GAME_ENDED",
                "winner": winner,
                "reason": _end_reason(next_state.board_full),
                "score": [score.player1, score.player2],
            }
        )
        return StepResult(ok=True, state=replace(next_state, winner=winner), events=events)

    nxt = other_player(player)
    events.append({"type": "TURN_STARTED", "player": nxt})
    return StepResult(
        ok=True,
        state=replace(next_state, current_player=nxt, seconds_left=cfg.turn_seconds),
        events=events,
    )


def auto_play_on_timeout(state: MatchState, config: MatchConfig | None = None) -> StepResult:
    """Resolve the active player's expired turn.

    Plays hand[0] into the lowest empty cell when possible. Otherwise the match
    ends if the opponent cannot move either (or the board is full), and the turn
    passes to the opponent if it can.
    """
    cfg = config or MatchConfig()
    if state.is_over:
        return _reject(state, "match_over")

    player = state.current_player
    empty = state.empty_cells()
    if state.hand(player) and empty:
        return play_move(state, 0, empty[0], player, cfg)

    opponent = other_player(player)
    events: list[Event] = [{"type": "TURN_TIMED_OUT", "player": player}]
    if not state.hand(opponent) or not empty:
        winner = winner_from_board(state.board)
        score = score_board(state.board)
        events.append(
            {
                "type": "GAME_ENDED",
                "winner": winner,
                "reason": "no_legal_move",
                "score": [score.player1, score.player2],
            }
        )
        return StepResult(ok=True, state=replace(state, winner=winner), events=events)

    events.append({"type": "TURN_STARTED", "player": opponent})
    return StepResult(
        ok=True,
        state=replace(state, current_player=opponent, seconds_left=cfg.turn_seconds),
        events=events,
    )


def tick(state: MatchState, seconds: int = 1) -> MatchState:
    """Run the active player's clock down, stopping at zero."""
    if seconds < 0:
        raise ValueError(f"Cannot tick a negative number of seconds: {seconds}")
    if state.is_over:
        return state
    return replace(state, seconds_left=max(0, state.seconds_left - seconds))


def is_turn_expired(state: MatchState) -> bool:
    return state.winner is None and state.seconds_left <= 0


def step(state: MatchState, action: Action, config: MatchConfig | None = None) -> StepResult:
    if isinstance(action, PlayCardAction):
        return play_move(state, action.hand_index, action.cell_index, action.player, config)
    if isinstance(action, TimeoutAction):
        if state.winner is None and action.player != state.current_player:
            return _reject(state, "not_your_turn")
        return auto_play_on_timeout(state, config)
    raise TypeError(f"Unknown action: {action!r}")


def _starting_hand(pool: Sequence[Card], size: int) -> Hand:
    if not pool:
        return ()
    # Short pools wrap around to their first card.
    return tuple(pool[i % len(pool)] for i in range(size))


def degenerate_players(pool1: Sequence[Card], pool2: Sequence[Card]) -> list[Player]:
    """Players whose pool is empty and who will therefore start with no hand."""
    return [p for p, pool in zip(PLAYERS, (pool1, pool2)) if not pool]


def new_match(
    pool1: Sequence[Card],
    pool2: Sequence[Card],
    config: MatchConfig | None = None,
) -> MatchState:
    cfg = config or MatchConfig()
    for player in degenerate_players(pool1, pool2):
        logger.warning("Player %s has an empty card pool; starting with an empty hand", player)
    return MatchState(
        board=empty_board(),
        hands=(_starting_hand(pool1, cfg.hand_size), _starting_hand(pool2, cfg.hand_size)),
        current_player=1,
        winner=None,
        seconds_left=cfg.turn_seconds,
    )


def replay(
    pool1: Sequence[Card],
    pool2: Sequence[Card],
    actions: Iterable[Action],
    config: MatchConfig | None = None,
) -> MatchState:
    state = new_match(pool1, pool2, config=config)
    for a in actions:
        result = step(state, a, config)
        state = result.state
        if state.winner is not None:
            break
    return state
