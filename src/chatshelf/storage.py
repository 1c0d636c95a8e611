"""SQLite key-value store and the versioned snapshot gateway on top of it."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from .config import ACTIVE_ID_STORAGE_KEY, STORAGE_KEY, STORAGE_VERSION
from .models import Conversation, Message, Snapshot

logger = logging.getLogger(__name__)


class KeyValueStore:
    """SQLite-backed durable string store keyed by name."""

    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
        """)
        self.conn.commit()

    def get(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str):
        self.conn.execute(
            """INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                              updated_at = excluded.updated_at""",
            (key, value, datetime.now(timezone.utc).isoformat()),
        )
        self.conn.commit()

    def remove(self, key: str):
        self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self.conn.commit()

    def close(self):
        self.conn.close()


@contextmanager
def _tolerated(action: str) -> Iterator[None]:
    """Log and swallow store failures; callers keep their fallback value."""
    try:
        yield
    except Exception:
        logger.error("Failed to %s", action, exc_info=True)


class PersistenceGateway:
    """Reads and writes the versioned conversation snapshot and the active id.

    Nothing here raises: absent, corrupt or mismatched data reads as ``None``
    and failed writes return ``False``.
    """

    def __init__(self, store: KeyValueStore, version: int = STORAGE_VERSION):
        self.store = store
        self.version = version

    def load_snapshot(self) -> Snapshot | None:
        raw: str | None = None
        with _tolerated("read stored conversations"):
            raw = self.store.get(STORAGE_KEY)

        if not raw:
            logger.info("No stored conversations; keeping defaults")
            return None

        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.error("Failed to restore conversations: stored value is not JSON", exc_info=True)
            return None

        if not isinstance(parsed, dict):
            logger.error("Failed to restore conversations: stored value is not an object")
            return None

        if parsed.get("version") != self.version:
            logger.info(
                "Version mismatch, ignoring stored data. Stored version: %r, expected: %d",
                parsed.get("version"),
                self.version,
            )
            return None

        if parsed.get("conversations") is None or parsed.get("conversationsById") is None:
            logger.warning("Stored snapshot is missing conversations; keeping defaults")
            return None

        try:
            snapshot = Snapshot.model_validate(parsed)
        except ValidationError as e:
            logger.warning("Stored snapshot has malformed entries, salvaging the rest: %s", e)
            snapshot = self._salvage(parsed)
            if snapshot is None:
                return None

        logger.debug("Loaded snapshot with %d conversations", len(snapshot.conversations))
        return snapshot

    def _salvage(self, parsed: dict) -> Snapshot | None:
        """Validate conversations and messages one by one, skipping bad entries."""
        raw_conversations = parsed["conversations"]
        raw_by_id = parsed["conversationsById"]
        if not isinstance(raw_conversations, list) or not isinstance(raw_by_id, dict):
            logger.error("Failed to restore conversations: malformed snapshot")
            return None

        conversations: list[Conversation] = []
        for entry in raw_conversations:
            try:
                conversations.append(Conversation.model_validate(entry))
            except ValidationError:
                logger.warning("Skipping malformed conversation %r", entry)

        by_id: dict[str, list[Message]] = {}
        for conversation_id, entries in raw_by_id.items():
            if not isinstance(entries, list):
                logger.warning("Skipping malformed message list for %s", conversation_id)
                entries = []
            messages: list[Message] = []
            for entry in entries:
                try:
                    messages.append(Message.model_validate(entry))
                except ValidationError:
                    logger.warning("Skipping malformed message in %s: %r", conversation_id, entry)
            by_id[str(conversation_id)] = messages

        return Snapshot(
            version=self.version,
            conversations=conversations,
            conversations_by_id=by_id,
        )

    def save_snapshot(
        self,
        conversations: Sequence[Conversation],
        conversations_by_id: Mapping[str, Sequence[Message]],
    ) -> bool:
        saved = False
        with _tolerated("save conversations"):
            snapshot = Snapshot(
                version=self.version,
                conversations=list(conversations),
                conversations_by_id={cid: list(msgs) for cid, msgs in conversations_by_id.items()},
            )
            self.store.set(STORAGE_KEY, snapshot.to_json())
            saved = True
        return saved

    def load_active_id(self) -> str | None:
        stored: str | None = None
        with _tolerated("restore active conversation id"):
            stored = self.store.get(ACTIVE_ID_STORAGE_KEY)
        return stored or None

    def save_active_id(self, conversation_id: str | None) -> bool:
        saved = False
        with _tolerated("persist active conversation id"):
            if conversation_id:
                self.store.set(ACTIVE_ID_STORAGE_KEY, conversation_id)
            else:
                self.store.remove(ACTIVE_ID_STORAGE_KEY)
            saved = True
        return saved

    def close(self):
        with _tolerated("close the store"):
            self.store.close()
