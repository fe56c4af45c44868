from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from triadtcg.engine.ai import fallback_move
from triadtcg.engine.match import MatchState, score_board
from triadtcg.paths import get_paths
from triadtcg.services.content import ContentError, ContentService
from triadtcg.services.decks import DeckService
from triadtcg.services.match_service import MatchService
from triadtcg.services.match_store import InMemoryMatchStore, JsonFileMatchStore, MatchStore
from triadtcg.services.telemetry import TelemetryService


def render_board(state: MatchState) -> str:
    rows: list[str] = []
    for r in range(3):
        cells: list[str] = []
        for c in range(3):
            cell = state.board[r * 3 + c]
            if cell.card is None:
                cells.append(f"{'.':^16}")
            else:
                cells.append(f"{cell.card.name[:12]:>12} (P{cell.owner})")
        rows.append(" | ".join(cells))
    return "\n".join(rows)


def _cmd_validate(content: ContentService) -> int:
    try:
        content.validate_all()
    except ContentError as e:
        print(e, file=sys.stderr)
        return 1
    print("Content OK")
    return 0


def _cmd_simulate(content: ContentService, args: argparse.Namespace) -> int:
    paths = get_paths()
    decks = DeckService(content, content.load_cards_db())
    store: MatchStore
    if args.store is not None:
        store = JsonFileMatchStore(Path(args.store), paths.schema_dir / "match_state.schema.json")
    else:
        store = InMemoryMatchStore()
    telemetry = TelemetryService(paths.userdata_dir / "telemetry.jsonl") if args.telemetry else None
    service = MatchService(store, decks, telemetry=telemetry)

    match_id = service.create_match(args.deck1)
    state = service.join_match(match_id, args.deck2)
    while state.winner is None:
        move = fallback_move(state)
        if move is not None:
            card = state.hand(move.player)[move.hand_index]
            print(f"P{move.player} plays {card.name} on cell {move.cell_index}")
        else:
            print(f"P{state.current_player} cannot move")
        state = service.handle_timeout(match_id).state

    score = score_board(state.board)
    print(render_board(state))
    print(f"Score {score.player1} - {score.player2}; winner: {state.winner}")
    print(f"Match id: {match_id}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="triadtcg")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("validate", help="Validate card and deck content against the schemas")
    sim = sub.add_parser("simulate", help="Play a match where every turn times out")
    sim.add_argument("--deck1", default="deck_starter_a")
    sim.add_argument("--deck2", default="deck_starter_b")
    sim.add_argument("--store", default=None, help="Directory for JSON match records")
    sim.add_argument("--telemetry", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    paths = get_paths()
    content = ContentService(paths.data_dir, paths.schema_dir)
    if args.command == "validate":
        return _cmd_validate(content)
    return _cmd_simulate(content, args)


if __name__ == "__main__":
    raise SystemExit(main())
