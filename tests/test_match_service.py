from __future__ import annotations

from pathlib import Path

import pytest

from triadtcg.cli import main
from triadtcg.engine.match import MatchState, play_move
from triadtcg.paths import get_paths
from triadtcg.services.content import ContentError, ContentService
from triadtcg.services.decks import DeckService
from triadtcg.services.match_service import MatchService, MatchServiceError
from triadtcg.services.match_store import InMemoryMatchStore, MatchRecord, StaleMatchError
from triadtcg.services.telemetry import TelemetryService


def _service(tmp_path: Path) -> tuple[MatchService, InMemoryMatchStore, TelemetryService]:
    paths = get_paths()
    content = ContentService(paths.data_dir, paths.schema_dir)
    decks = DeckService(content, content.load_cards_db())
    store = InMemoryMatchStore()
    telemetry = TelemetryService(tmp_path / "telemetry.jsonl")
    return MatchService(store, decks, telemetry=telemetry), store, telemetry


def _types(telemetry: TelemetryService) -> list[object]:
    return [r["type"] for r in telemetry.read_all()]


def test_create_and_join_initialises_match(tmp_path: Path) -> None:
    service, _, telemetry = _service(tmp_path)
    match_id = service.create_match("deck_starter_a")
    rec = service.get_match(match_id)
    assert rec.status == "waiting" and rec.state is None

    state = service.join_match(match_id, "deck_starter_b")
    rec = service.get_match(match_id)
    assert rec.status == "active"
    assert rec.deck_id_p2 == "deck_starter_b"
    assert rec.state == state
    assert len(state.hand(1)) == 5 and len(state.hand(2)) == 5
    assert _types(telemetry) == ["match_created", "match_started"]

    with pytest.raises(MatchServiceError):
        service.join_match(match_id, "deck_starter_b")


def test_unknown_deck_cannot_create_match(tmp_path: Path) -> None:
    service, _, _ = _service(tmp_path)
    with pytest.raises(ContentError):
        service.create_match("missing_deck")


def test_moves_before_join_are_refused(tmp_path: Path) -> None:
    service, _, _ = _service(tmp_path)
    match_id = service.create_match("deck_starter_a", match_id="room1")
    assert match_id == "room1"
    with pytest.raises(MatchServiceError):
        service.submit_move("room1", 1, 0, 0)


def test_rejected_move_is_not_persisted(tmp_path: Path) -> None:
    service, _, telemetry = _service(tmp_path)
    match_id = service.create_match("deck_starter_a")
    service.join_match(match_id, "deck_starter_b")
    version = service.get_match(match_id).version

    res = service.submit_move(match_id, 2, 0, 0)
    assert not res.ok
    assert res.error == "not_your_turn"
    assert service.get_match(match_id).version == version
    assert _types(telemetry)[-1] == "move_rejected"


def test_observer_sees_each_move(tmp_path: Path) -> None:
    service, _, _ = _service(tmp_path)
    match_id = service.create_match("deck_starter_a")
    service.join_match(match_id, "deck_starter_b")
    seen: list[MatchState] = []
    service.subscribe(match_id, seen.append)

    res = service.submit_move(match_id, 1, 0, 4)
    assert res.ok
    assert seen == [res.state]
    assert service.get_match(match_id).state == res.state


def test_stale_client_state_loses_the_race(tmp_path: Path) -> None:
    service, store, _ = _service(tmp_path)
    match_id = service.create_match("deck_starter_a")
    service.join_match(match_id, "deck_starter_b")
    snapshot = service.get_match(match_id)
    assert snapshot.state is not None

    service.submit_move(match_id, 1, 0, 4)
    stale = play_move(snapshot.state, 0, 0, 1).state
    with pytest.raises(StaleMatchError):
        store.persist_match(match_id, stale, expected_version=snapshot.version)


def test_timeouts_play_out_a_full_match(tmp_path: Path) -> None:
    service, _, telemetry = _service(tmp_path)
    match_id = service.create_match("deck_starter_a")
    service.join_match(match_id, "deck_starter_b")

    for _ in range(9):
        res = service.handle_timeout(match_id)
        assert res.ok
    rec = service.get_match(match_id)
    assert rec.status == "finished"
    assert rec.state is not None and rec.state.winner is not None
    score = service.score(match_id)
    assert score.player1 + score.player2 == 9
    assert _types(telemetry)[-1] == "match_ended"

    res = service.handle_timeout(match_id)
    assert not res.ok and res.error == "match_over"


def test_empty_deck_is_flagged_and_match_still_runs(tmp_path: Path) -> None:
    service, _, telemetry = _service(tmp_path)
    match_id = service.create_match("deck_starter_a")
    state = service.join_match(match_id, "deck_empty")
    assert state.hand(2) == ()
    flagged = [r for r in telemetry.read_all() if r["type"] == "degenerate_hand"]
    assert flagged and flagged[0]["payload"] == {"player": 2}
    assert flagged[0]["match_id"] == match_id

    # P1 places, P2 can only pass, until P1 runs out and the match ends.
    for _ in range(10):
        if service.get_match(match_id).status == "finished":
            break
        assert service.handle_timeout(match_id).ok
    rec = service.get_match(match_id)
    assert rec.state is not None
    assert rec.state.winner == 1
    assert rec.state.hand(1) == ()


def test_cli_validate_and_simulate(tmp_path: Path, capsys, monkeypatch) -> None:
    monkeypatch.setenv("TRIADTCG_USERDATA", str(tmp_path))
    assert main(["validate"]) == 0
    assert main(["simulate", "--store", str(tmp_path / "matches"), "--telemetry"]) == 0
    out = capsys.readouterr().out
    assert "Content OK" in out
    assert "winner:" in out
    assert list((tmp_path / "matches").glob("*.json"))
    assert (tmp_path / "telemetry.jsonl").exists()


class _CountingStore(InMemoryMatchStore):
    def __init__(self) -> None:
        super().__init__()
        self.loads = 0

    def load_match(self, match_id: str) -> MatchRecord | None:
        self.loads += 1
        return super().load_match(match_id)


def test_each_call_reads_the_match_once(tmp_path: Path) -> None:
    paths = get_paths()
    content = ContentService(paths.data_dir, paths.schema_dir)
    store = _CountingStore()
    service = MatchService(store, DeckService(content, content.load_cards_db()))
    match_id = service.create_match("deck_starter_a")
    service.join_match(match_id, "deck_starter_b")

    store.loads = 0
    assert service.handle_timeout(match_id).ok
    assert store.loads == 1

    store.loads = 0
    assert service.submit_move(match_id, 2, 0, 1).ok
    assert store.loads == 1


def test_telemetry_records_are_keyed_by_match(tmp_path: Path) -> None:
    service, _, telemetry = _service(tmp_path)
    first = service.create_match("deck_starter_a")
    second = service.create_match("deck_starter_b")
    service.join_match(first, "deck_starter_b")
    service.submit_move(first, 1, 0, 4)
    service.submit_move(first, 1, 0, 0)

    assert [r["type"] for r in telemetry.events_for(first)] == [
        "match_created",
        "match_started",
        "move_played",
        "move_rejected",
    ]
    assert [r["type"] for r in telemetry.events_for(second)] == ["match_created"]

    played, rejected = telemetry.events_for(first)[2:]
    assert played["payload"]["action"] == {
        "type": "play",
        "player": 1,
        "hand_index": 0,
        "cell_index": 4,
    }
    assert [e["type"] for e in played["payload"]["events"]] == ["CARD_PLACED", "TURN_STARTED"]
    assert rejected["payload"]["error"] == "not_your_turn"
