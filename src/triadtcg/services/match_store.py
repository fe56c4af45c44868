from __future__ import annotations

import json
import logging
import threading
import uuid
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, ContextManager, Iterator, Literal, Mapping, Protocol

from filelock import FileLock, Timeout

from triadtcg.engine.match import MatchState
from triadtcg.engine.serialize import state_from_dict, state_to_dict
from triadtcg.services.content import ContentError, load_json, validate_json

logger = logging.getLogger(__name__)

MatchStatus = Literal["waiting", "active", "finished"]
Listener = Callable[[MatchState], None]


class MatchStoreError(RuntimeError):
    pass


class StaleMatchError(MatchStoreError):
    """Another write reached the match first; reload and retry against the new version."""

    def __init__(self, match_id: str, expected: int, actual: int) -> None:
        super().__init__(f"Match {match_id} is at version {actual}, expected {expected}")
        self.match_id = match_id
        self.expected = expected
        self.actual = actual


@dataclass(frozen=True)
class MatchRecord:
    match_id: str
    deck_id_p1: str | None
    deck_id_p2: str | None = None
    status: MatchStatus = "waiting"
    state: MatchState | None = None
    version: int = 0

    @staticmethod
    def from_dict(d: Mapping[str, object], state_schema: object | None = None) -> "MatchRecord":
        mid = d.get("id")
        if not isinstance(mid, str):
            raise MatchStoreError("Match record is missing its id")
        raw_state = d.get("state")
        state: MatchState | None = None
        if raw_state is not None:
            if state_schema is not None:
                validate_json(raw_state, state_schema, context=f"match {mid}")
            if not isinstance(raw_state, dict):
                raise ContentError(f"match {mid}: state must be an object")
            try:
                state = state_from_dict(raw_state)
            except ValueError as e:
                raise ContentError(f"match {mid}: {e}") from e
        status = d.get("status", "waiting")
        if status not in ("waiting", "active", "finished"):
            raise MatchStoreError(f"Unknown match status: {status}")
        version = d.get("version", 0)
        p1 = d.get("deck_id_p1")
        p2 = d.get("deck_id_p2")
        return MatchRecord(
            match_id=mid,
            deck_id_p1=p1 if isinstance(p1, str) else None,
            deck_id_p2=p2 if isinstance(p2, str) else None,
            status=status,  # type: ignore[arg-type]
            state=state,
            version=version if isinstance(version, int) else 0,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.match_id,
            "deck_id_p1": self.deck_id_p1,
            "deck_id_p2": self.deck_id_p2,
            "status": self.status,
            "state": state_to_dict(self.state) if self.state is not None else None,
            "version": self.version,
        }


class MatchStore(Protocol):
    def create_match(self, record: MatchRecord) -> MatchRecord: ...

    def load_match(self, match_id: str) -> MatchRecord | None: ...

    def persist_match(
        self,
        match_id: str,
        state: MatchState,
        *,
        expected_version: int | None = None,
        deck_id_p2: str | None = None,
    ) -> MatchRecord: ...

    def subscribe(self, match_id: str, listener: Listener) -> Callable[[], None]: ...


class _LockedMatchStore:
    """Compare-and-set persistence with per-match change notification.

    Subclasses provide `_read` and `_write`; every read-modify-write runs under one lock.
    Writes to the same match, together with the listener calls that follow them, run
    one at a time, so listeners observe versions in commit order.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._match_locks: dict[str, threading.RLock] = {}
        self._listeners: dict[str, list[Listener]] = {}

    def _read(self, match_id: str) -> MatchRecord | None:
        raise NotImplementedError

    def _write(self, record: MatchRecord) -> None:
        raise NotImplementedError

    def _guard(self, match_id: str) -> ContextManager[object]:
        """Exclusion beyond this process for one match; nothing to do in memory."""
        return nullcontext()

    def _match_lock(self, match_id: str) -> threading.RLock:
        with self._lock:
            return self._match_locks.setdefault(match_id, threading.RLock())

    def create_match(self, record: MatchRecord) -> MatchRecord:
        with self._lock, self._guard(record.match_id):
            if self._read(record.match_id) is not None:
                raise MatchStoreError(f"Match already exists: {record.match_id}")
            self._write(record)
        return record

    def load_match(self, match_id: str) -> MatchRecord | None:
        with self._lock:
            return self._read(match_id)

    def persist_match(
        self,
        match_id: str,
        state: MatchState,
        *,
        expected_version: int | None = None,
        deck_id_p2: str | None = None,
    ) -> MatchRecord:
        with self._match_lock(match_id):
            with self._lock, self._guard(match_id):
                current = self._read(match_id)
                if current is None:
                    raise MatchStoreError(f"Match not found: {match_id}")
                if expected_version is not None and current.version != expected_version:
                    logger.warning(
                        "Rejected stale write to match %s (version %s, expected %s)",
                        match_id,
                        current.version,
                        expected_version,
                    )
                    raise StaleMatchError(match_id, expected_version, current.version)
                updated = replace(
                    current,
                    state=state,
                    status="finished" if state.winner is not None else "active",
                    deck_id_p2=deck_id_p2 if deck_id_p2 is not None else current.deck_id_p2,
                    version=current.version + 1,
                )
                self._write(updated)
                listeners = list(self._listeners.get(match_id, []))

            # Still holding the match lock: the next write to this match waits for these calls.
            for listener in listeners:
                try:
                    listener(state)
                except Exception:
                    # The write is committed; one broken observer must not hide it from the rest.
                    logger.exception("Match listener failed for %s", match_id)
        return updated

    def subscribe(self, match_id: str, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(match_id, []).append(listener)

        def unsubscribe() -> None:
            with self._lock:
                lst = self._listeners.get(match_id, [])
                if listener in lst:
                    lst.remove(listener)

        return unsubscribe


class InMemoryMatchStore(_LockedMatchStore):
    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, MatchRecord] = {}

    def _read(self, match_id: str) -> MatchRecord | None:
        return self._records.get(match_id)

    def _write(self, record: MatchRecord) -> None:
        self._records[record.match_id] = record


class JsonFileMatchStore(_LockedMatchStore):
    """One JSON document per match under `root`; state is schema-checked on load.

    Each write holds `<id>.json.lock` from the version check to the rename, so several
    stores (or processes) sharing `root` still get a single winner per version.
    """

    def __init__(
        self,
        root: Path,
        state_schema_path: Path | None = None,
        lock_timeout: float = 10.0,
    ) -> None:
        super().__init__()
        self._root = root
        self._state_schema = load_json(state_schema_path) if state_schema_path is not None else None
        self._lock_timeout = lock_timeout

    def _path(self, match_id: str) -> Path:
        if not match_id or "/" in match_id or "\\" in match_id or match_id.startswith("."):
            raise MatchStoreError(f"Invalid match id: {match_id!r}")
        return self._root / f"{match_id}.json"

    @contextmanager
    def _guard(self, match_id: str) -> Iterator[None]:
        path = self._path(match_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(path.with_name(f"{path.name}.lock")), timeout=self._lock_timeout)
        try:
            with lock:
                yield
        except Timeout as e:
            raise MatchStoreError(f"Timed out waiting for the lock on match {match_id}") from e

    def _read(self, match_id: str) -> MatchRecord | None:
        path = self._path(match_id)
        if not path.exists():
            return None
        raw = load_json(path)
        if not isinstance(raw, dict):
            raise ContentError(f"{path} must contain an object")
        return MatchRecord.from_dict(raw, self._state_schema)

    def _write(self, record: MatchRecord) -> None:
        path = self._path(record.match_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp.write_text(json.dumps(record.to_dict(), indent=2), encoding="utf-8")
            tmp.replace(path)
        finally:
            tmp.unlink(missing_ok=True)
