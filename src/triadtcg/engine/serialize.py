from __future__ import annotations

from collections.abc import Mapping

from .actions import Action, PlayCardAction, TimeoutAction
from .match import MatchState
from .types import BOARD_SIZE, BoardCell, Card, Hand, Player, Winner

# Keys match records already persisted by the web client, so they stay camelCase.


def card_to_dict(c: Card) -> dict[str, object]:
    return {
        "id": c.id,
        "code": c.code,
        "name": c.name,
        "level": c.level,
        "cost": c.cost,
        "value_top": c.top,
        "value_right": c.right,
        "value_bottom": c.bottom,
        "value_left": c.left,
        "image_name": c.image_name,
    }


def card_from_dict(d: Mapping[str, object]) -> Card:
    if not isinstance(d.get("id"), str):
        raise ValueError("Card needs a string id")
    image = d.get("image_name")
    return Card(
        id=str(d["id"]),
        code=str(d.get("code", d["id"])),
        name=str(d.get("name", "")),
        level=_int(d, "level", 0),
        cost=_int(d, "cost", 0),
        top=_int(d, "value_top"),
        right=_int(d, "value_right"),
        bottom=_int(d, "value_bottom"),
        left=_int(d, "value_left"),
        image_name=str(image) if image is not None else None,
    )


def _int(d: Mapping[str, object], key: str, default: int | None = None) -> int:
    v = d.get(key, default)
    if not isinstance(v, int) or isinstance(v, bool):
        raise ValueError(f"Expected int for {key}")
    return v


def _cell_to_dict(cell: BoardCell) -> dict[str, object]:
    return {
        "card": card_to_dict(cell.card) if cell.card is not None else None,
        "owner": cell.owner,
    }


def _cell_from_dict(d: Mapping[str, object]) -> BoardCell:
    raw_card = d.get("card")
    owner = d.get("owner")
    if raw_card is None:
        if owner is not None:
            raise ValueError("Empty board cell cannot have an owner")
        return BoardCell()
    if not isinstance(raw_card, Mapping):
        raise ValueError("Board cell card must be an object")
    if owner not in (1, 2):
        raise ValueError("Occupied board cell needs owner 1 or 2")
    return BoardCell(card=card_from_dict(raw_card), owner=owner)  # type: ignore[arg-type]


def _hand_from_list(raw: object) -> Hand:
    if not isinstance(raw, list):
        raise ValueError("Hand must be a list")
    hand: list[Card] = []
    for c in raw:
        if not isinstance(c, Mapping):
            raise ValueError("Hand entries must be card objects")
        hand.append(card_from_dict(c))
    return tuple(hand)


def _hand_entry(raw_hands: Mapping[object, object], player: Player) -> object:
    # JSON object keys come back as strings
    if str(player) in raw_hands:
        return raw_hands[str(player)]
    return raw_hands.get(player, [])


def state_to_dict(state: MatchState) -> dict[str, object]:
    """Return the JSON-serializable canonical match record."""
    return {
        "board": [_cell_to_dict(c) for c in state.board],
        "hands": {
            "1": [card_to_dict(c) for c in state.hand(1)],
            "2": [card_to_dict(c) for c in state.hand(2)],
        },
        "currentPlayer": state.current_player,
        "winner": state.winner,
        "secondsLeft": state.seconds_left,
    }


def state_from_dict(d: Mapping[str, object]) -> MatchState:
    raw_board = d.get("board")
    if not isinstance(raw_board, list) or len(raw_board) != BOARD_SIZE:
        raise ValueError(f"board must be a list of {BOARD_SIZE} cells")
    cells: list[BoardCell] = []
    for c in raw_board:
        if not isinstance(c, Mapping):
            raise ValueError("Board cells must be objects")
        cells.append(_cell_from_dict(c))
    board = tuple(cells)

    raw_hands = d.get("hands")
    if not isinstance(raw_hands, Mapping):
        raise ValueError("hands must be an object")
    hand1 = _hand_from_list(_hand_entry(raw_hands, 1))
    hand2 = _hand_from_list(_hand_entry(raw_hands, 2))

    current: object = d.get("currentPlayer", 1)
    if current not in (1, 2):
        raise ValueError("currentPlayer must be 1 or 2")
    winner: object = d.get("winner")
    if winner not in (None, 1, 2, "draw"):
        raise ValueError("winner must be 1, 2, 'draw' or null")
    seconds = _int(d, "secondsLeft", 30)

    player: Player = current  # type: ignore[assignment]
    result: Winner | None = winner  # type: ignore[assignment]
    return MatchState(
        board=board,
        hands=(hand1, hand2),
        current_player=player,
        winner=result,
        seconds_left=seconds,
    )


def action_to_dict(a: Action) -> dict[str, object]:
    if isinstance(a, PlayCardAction):
        return {
            "type": "play",
            "player": a.player,
            "hand_index": a.hand_index,
            "cell_index": a.cell_index,
        }
    if isinstance(a, TimeoutAction):
        return {"type": "timeout", "player": a.player}
    # should be unreachable
    return {"type": "unknown"}


def action_from_dict(d: Mapping[str, object]) -> Action:
    t = d.get("type")
    player = d.get("player")
    if player not in (1, 2):
        raise ValueError("action player must be 1 or 2")
    if t == "play":
        return PlayCardAction(
            player=player,  # type: ignore[arg-type]
            hand_index=_int(d, "hand_index"),
            cell_index=_int(d, "cell_index"),
        )
    if t == "timeout":
        return TimeoutAction(player=player)  # type: ignore[arg-type]
    raise ValueError(f"Unknown action type: {t}")
