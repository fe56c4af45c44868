from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from triadtcg.engine.types import Card, CardDatabase
from triadtcg.services.content import ContentError, ContentService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeckEntry:
    card_id: str
    count: int

    @staticmethod
    def from_dict(d: Mapping[str, object]) -> "DeckEntry":
        cid = d.get("card_id")
        cnt = d.get("count", 1)
        if not isinstance(cid, str) or not isinstance(cnt, int):
            raise ContentError("Invalid deck entry")
        return DeckEntry(card_id=cid, count=cnt)


@dataclass(frozen=True)
class Deck:
    id: str
    name: str
    cards: tuple[DeckEntry, ...]

    @staticmethod
    def from_dict(d: Mapping[str, object]) -> "Deck":
        did = d.get("id")
        name = d.get("name")
        if not isinstance(did, str) or not isinstance(name, str):
            raise ContentError("Invalid deck")
        cards_raw = d.get("cards", [])
        cards: list[DeckEntry] = []
        if isinstance(cards_raw, list):
            for e in cards_raw:
                if isinstance(e, dict):
                    cards.append(DeckEntry.from_dict(e))
        return Deck(id=did, name=name, cards=tuple(cards))


def expand_deck(cards_db: CardDatabase, deck: Deck) -> list[Card]:
    """Resolve a deck into its flat card pool, one entry per copy, in deck order.

    Entries pointing at cards missing from the catalog are skipped.
    """
    pool: list[Card] = []
    for entry in deck.cards:
        if entry.card_id not in cards_db.cards:
            logger.warning("Deck %s references unknown card %s; skipping", deck.id, entry.card_id)
            continue
        pool.extend([cards_db.get(entry.card_id)] * max(0, entry.count))
    return pool


class DeckService:
    def __init__(self, content: ContentService, cards_db: CardDatabase) -> None:
        self._content = content
        self.cards_db = cards_db
        self._decks: dict[str, Deck] | None = None

    def load_decks(self) -> dict[str, Deck]:
        if self._decks is not None:
            return self._decks
        raw = self._content.load_validated("decks.json", "decks.schema.json")
        if not isinstance(raw, dict):
            raise ContentError("decks.json must be an object")
        raw_decks = raw.get("decks")
        if not isinstance(raw_decks, list):
            raise ContentError("decks.json.decks must be a list")
        decks: dict[str, Deck] = {}
        for item in raw_decks:
            if not isinstance(item, dict):
                continue
            deck = Deck.from_dict(item)
            for entry in deck.cards:
                if entry.card_id not in self.cards_db.cards:
                    raise ContentError(f"Deck {deck.id} references unknown card {entry.card_id}")
            decks[deck.id] = deck
        self._decks = decks
        return decks

    def get_deck(self, deck_id: str) -> Deck:
        deck = self.load_decks().get(deck_id)
        if deck is None:
            raise ContentError(f"Deck not found: {deck_id}")
        return deck

    def card_pool(self, deck_id: str) -> list[Card]:
        return expand_deck(self.cards_db, self.get_deck(deck_id))
