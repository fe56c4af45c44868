from __future__ import annotations

import json
from pathlib import Path

import pytest

from triadtcg.engine.match import new_match
from triadtcg.paths import get_paths
from triadtcg.services.content import ContentError, ContentService, validate_json
from triadtcg.services.decks import Deck, DeckEntry, DeckService, expand_deck


def _content() -> ContentService:
    paths = get_paths()
    return ContentService(paths.data_dir, paths.schema_dir)


def test_content_schemas_validate() -> None:
    _content().validate_all()


def test_cards_db_parses_capture_ranks() -> None:
    cards = _content().load_cards_db()
    titan = cards.get("sun_titan")
    assert (titan.top, titan.right, titan.bottom, titan.left) == (8, 7, 4, 6)
    assert titan.image_name is None
    assert cards.get("mudwalker").code == "C001"


def test_expand_deck_repeats_quantities_in_order() -> None:
    content = _content()
    decks = DeckService(content, content.load_cards_db())
    pool = decks.card_pool("deck_starter_a")
    assert [c.id for c in pool] == [
        "mudwalker",
        "mudwalker",
        "ember_fox",
        "iron_golem",
        "storm_drake",
        "glacier_owl",
        "glacier_owl",
    ]


def test_expand_deck_skips_unknown_cards(caplog) -> None:
    cards = _content().load_cards_db()
    deck = Deck(
        id="d",
        name="D",
        cards=(DeckEntry("ghost", 2), DeckEntry("cave_bat", 1)),
    )
    pool = expand_deck(cards, deck)
    assert [c.id for c in pool] == ["cave_bat"]
    assert "ghost" in caplog.text


def test_small_and_empty_decks_start_matches() -> None:
    content = _content()
    decks = DeckService(content, content.load_cards_db())
    state = new_match(decks.card_pool("deck_small"), decks.card_pool("deck_empty"))
    assert [c.id for c in state.hand(1)] == [
        "lantern_moth",
        "ember_fox",
        "lantern_moth",
        "ember_fox",
        "lantern_moth",
    ]
    assert state.hand(2) == ()


def test_unknown_deck_raises() -> None:
    content = _content()
    decks = DeckService(content, content.load_cards_db())
    with pytest.raises(ContentError):
        decks.get_deck("nope")


def test_invalid_cards_file_reports_schema_errors(tmp_path: Path) -> None:
    paths = get_paths()
    (tmp_path / "cards.json").write_text(
        json.dumps({"cards": [{"id": "broken", "name": "Broken", "level": 1, "cost": 1, "value_top": "high"}]}),
        encoding="utf-8",
    )
    content = ContentService(tmp_path, paths.schema_dir)
    with pytest.raises(ContentError) as exc:
        content.load_cards_db()
    assert "Schema validation failed" in str(exc.value)


def test_deck_with_unknown_card_fails_validation(tmp_path: Path) -> None:
    paths = get_paths()
    (tmp_path / "cards.json").write_text((paths.data_dir / "cards.json").read_text(encoding="utf-8"), encoding="utf-8")
    (tmp_path / "decks.json").write_text(
        json.dumps({"decks": [{"id": "bad", "name": "Bad", "cards": [{"card_id": "ghost", "count": 1}]}]}),
        encoding="utf-8",
    )
    content = ContentService(tmp_path, paths.schema_dir)
    with pytest.raises(ContentError):
        content.validate_all()


def test_match_state_schema_rejects_owner_without_card() -> None:
    content = _content()
    schema = content.schema("match_state.schema.json")
    record = {
        "board": [{"card": None, "owner": 1}] + [{"card": None, "owner": None}] * 8,
        "hands": {"1": [], "2": []},
        "currentPlayer": 1,
        "winner": None,
        "secondsLeft": 30,
    }
    with pytest.raises(ContentError):
        validate_json(record, schema, context="test")
