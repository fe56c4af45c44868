from __future__ import annotations

import logging
import uuid
from typing import Callable

from triadtcg.engine.actions import Action, PlayCardAction, TimeoutAction
from triadtcg.engine.match import (
    MatchConfig,
    MatchState,
    Score,
    StepResult,
    degenerate_players,
    new_match,
    score_board,
    step,
)
from triadtcg.engine.types import Player
from triadtcg.services.decks import DeckService
from triadtcg.services.match_store import Listener, MatchRecord, MatchStore
from triadtcg.services.telemetry import TelemetryService

logger = logging.getLogger(__name__)


class MatchServiceError(RuntimeError):
    pass


class MatchService:
    """Runs the match lifecycle against a store: create, join, move, timeout.

    Each call loads the stored record, asks the engine for the next state and
    writes it back with the version it was computed from, so a move built on a
    stale copy fails with StaleMatchError instead of overwriting the other player.
    """

    def __init__(
        self,
        store: MatchStore,
        decks: DeckService,
        telemetry: TelemetryService | None = None,
        config: MatchConfig | None = None,
    ) -> None:
        self._store = store
        self._decks = decks
        self._telemetry = telemetry
        self._config = config or MatchConfig()

    def _log(self, match_id: str, event_type: str, payload: dict[str, object]) -> None:
        if self._telemetry is not None:
            self._telemetry.log(event_type, payload, match_id=match_id)

    def get_match(self, match_id: str) -> MatchRecord:
        record = self._store.load_match(match_id)
        if record is None:
            raise MatchServiceError(f"Match not found: {match_id}")
        return record

    def _require_state(self, match_id: str) -> tuple[MatchRecord, MatchState]:
        record = self.get_match(match_id)
        if record.state is None:
            raise MatchServiceError(f"Match {match_id} is still waiting for player 2")
        return record, record.state

    def create_match(self, deck_id_p1: str, match_id: str | None = None) -> str:
        self._decks.get_deck(deck_id_p1)
        mid = match_id or uuid.uuid4().hex[:12]
        self._store.create_match(MatchRecord(match_id=mid, deck_id_p1=deck_id_p1))
        self._log(mid, "match_created", {"deck_id_p1": deck_id_p1})
        return mid

    def join_match(self, match_id: str, deck_id_p2: str) -> MatchState:
        record = self.get_match(match_id)
        if record.state is not None or record.status != "waiting":
            raise MatchServiceError(f"Match {match_id} has already started")
        if record.deck_id_p1 is None:
            raise MatchServiceError(f"Match {match_id} has no deck for player 1")

        pool1 = self._decks.card_pool(record.deck_id_p1)
        pool2 = self._decks.card_pool(deck_id_p2)
        for player in degenerate_players(pool1, pool2):
            self._log(match_id, "degenerate_hand", {"player": player})

        state = new_match(pool1, pool2, config=self._config)
        self._store.persist_match(
            match_id, state, expected_version=record.version, deck_id_p2=deck_id_p2
        )
        self._log(
            match_id,
            "match_started",
            {"deck_id_p1": record.deck_id_p1, "deck_id_p2": deck_id_p2},
        )
        return state

    def _apply(self, record: MatchRecord, state: MatchState, action: Action) -> StepResult:
        result = step(state, action, self._config)
        if result.ok:
            self._store.persist_match(record.match_id, result.state, expected_version=record.version)
            if result.state.winner is not None:
                logger.info("Match %s ended: winner=%s", record.match_id, result.state.winner)
        if self._telemetry is not None:
            self._telemetry.log_step(record.match_id, action, result)
        return result

    def submit_move(self, match_id: str, player: Player, hand_index: int, cell_index: int) -> StepResult:
        record, state = self._require_state(match_id)
        return self._apply(
            record, state, PlayCardAction(player=player, hand_index=hand_index, cell_index=cell_index)
        )

    def handle_timeout(self, match_id: str) -> StepResult:
        """Resolve an expired turn for whoever holds it in the stored record."""
        record, state = self._require_state(match_id)
        return self._apply(record, state, TimeoutAction(player=state.current_player))

    def score(self, match_id: str) -> Score:
        _, state = self._require_state(match_id)
        return score_board(state.board)

    def subscribe(self, match_id: str, listener: Listener) -> Callable[[], None]:
        return self._store.subscribe(match_id, listener)
