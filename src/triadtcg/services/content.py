from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping

from jsonschema import Draft202012Validator

from triadtcg.engine.types import Card, CardDatabase


class ContentError(RuntimeError):
    pass


def load_json(path: Path) -> object:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ContentError(f"Missing content file: {path}") from e
    except json.JSONDecodeError as e:
        raise ContentError(f"Invalid JSON in {path}: {e}") from e


def validate_json(instance: object, schema: object, *, context: str) -> None:
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: list(e.path))
    if errors:
        lines = [f"Schema validation failed for {context}:"]
        for err in errors[:10]:
            loc = "/".join(str(p) for p in err.absolute_path)
            lines.append(f"- {loc}: {err.message}")
        raise ContentError("\n".join(lines))


def _require_str(obj: Mapping[str, object], key: str) -> str:
    v = obj.get(key)
    if not isinstance(v, str):
        raise ContentError(f"Expected string for {key}")
    return v


def _require_int(obj: Mapping[str, object], key: str) -> int:
    v = obj.get(key)
    if not isinstance(v, int):
        raise ContentError(f"Expected int for {key}")
    return v


def _optional_str(obj: Mapping[str, object], key: str) -> str | None:
    v = obj.get(key)
    if v is None:
        return None
    if not isinstance(v, str):
        raise ContentError(f"Expected string for {key}")
    return v


def parse_card(item: Mapping[str, object]) -> Card:
    card_id = _require_str(item, "id")
    return Card(
        id=card_id,
        code=_optional_str(item, "code") or card_id,
        name=_require_str(item, "name"),
        level=_require_int(item, "level"),
        cost=_require_int(item, "cost"),
        top=_require_int(item, "value_top"),
        right=_require_int(item, "value_right"),
        bottom=_require_int(item, "value_bottom"),
        left=_require_int(item, "value_left"),
        image_name=_optional_str(item, "image_name"),
    )


class ContentService:
    def __init__(self, data_dir: Path, schema_dir: Path) -> None:
        self._data_dir = data_dir
        self._schema_dir = schema_dir

    def load_validated(self, file_name: str, schema_name: str) -> object:
        path = self._data_dir / file_name
        raw = load_json(path)
        validate_json(raw, self.schema(schema_name), context=str(path))
        return raw

    def schema(self, schema_name: str) -> object:
        return load_json(self._schema_dir / schema_name)

    def load_cards_db(self) -> CardDatabase:
        raw = self.load_validated("cards.json", "cards.schema.json")
        if not isinstance(raw, dict):
            raise ContentError("cards.json must be an object")
        raw_cards = raw.get("cards")
        if not isinstance(raw_cards, list):
            raise ContentError("cards.json.cards must be a list")

        cards: dict[str, Card] = {}
        for item in raw_cards:
            if not isinstance(item, dict):
                continue
            card = parse_card(item)
            if card.id in cards:
                raise ContentError(f"Duplicate card id: {card.id}")
            cards[card.id] = card
        return CardDatabase(cards=cards)

    def validate_all(self) -> None:
        # Load is validation (schema + parse)
        from triadtcg.services.decks import DeckService

        cards_db = self.load_cards_db()
        _ = DeckService(self, cards_db).load_decks()
        _ = self.schema("match_state.schema.json")
