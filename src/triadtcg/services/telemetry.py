from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping

from triadtcg.engine.actions import Action, TimeoutAction
from triadtcg.engine.match import StepResult, score_board
from triadtcg.engine.serialize import action_to_dict

TelemetryRecord = dict[str, object]


@dataclass
class TelemetryService:
    """Append-only JSON-lines log of match activity.

    Every line is `{"ts", "match_id", "type", "payload"}`; `match_id` is null for
    events that belong to no single match.
    """

    path: Path
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def log(self, event_type: str, payload: Mapping[str, object], match_id: str | None = None) -> None:
        rec: TelemetryRecord = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "match_id": match_id,
            "type": event_type,
            "payload": dict(payload),
        }
        line = json.dumps(rec, ensure_ascii=False) + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)

    def log_step(self, match_id: str, action: Action, result: StepResult) -> None:
        """Record one engine step: the rejection reason, or the events it produced.

        A step that ends the match is followed by a `match_ended` line with the final score.
        """
        if not result.ok:
            self.log(
                "move_rejected",
                {"action": action_to_dict(action), "error": result.error},
                match_id=match_id,
            )
            return
        self.log(
            "turn_timeout" if isinstance(action, TimeoutAction) else "move_played",
            {"action": action_to_dict(action), "events": result.events},
            match_id=match_id,
        )
        if result.state.winner is not None:
            score = score_board(result.state.board)
            self.log(
                "match_ended",
                {"winner": result.state.winner, "score": [score.player1, score.player2]},
                match_id=match_id,
            )

    def read_all(self) -> list[TelemetryRecord]:
        if not self.path.exists():
            return []
        records: list[TelemetryRecord] = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if line.strip():
                records.append(json.loads(line))
        return records

    def events_for(self, match_id: str) -> list[TelemetryRecord]:
        return [r for r in self.read_all() if r.get("match_id") == match_id]
