"""Shared fixtures: a store under tmp_path and stand-in reply services."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path

import pytest

from chatshelf.config import PLACEHOLDER_TITLE, STORAGE_KEY, STORAGE_VERSION
from chatshelf.models import Conversation, Message, ReplyRequest, Snapshot
from chatshelf.session import ChatSession
from chatshelf.storage import KeyValueStore, PersistenceGateway


class EchoReplyService:
    """Replies instantly and records every request."""

    def __init__(self) -> None:
        self.requests: list[ReplyRequest] = []

    async def reply(self, request: ReplyRequest) -> Message:
        self.requests.append(request)
        return Message(
            id=f"assistant-{len(self.requests)}",
            role="assistant",
            content=f"echo: {request.user_text}",
        )


class FailingReplyService:
    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or RuntimeError("model unavailable")

    async def reply(self, request: ReplyRequest) -> Message:
        raise self.exc


class GatedReplyService(EchoReplyService):
    """Holds every reply until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def reply(self, request: ReplyRequest) -> Message:
        message = await super().reply(request)
        await self.release.wait()
        return message


class BrokenStore:
    """A store whose every operation fails the way a full or locked disk would."""

    def __init__(self) -> None:
        self.closed = False

    def get(self, key: str) -> str | None:
        raise sqlite3.OperationalError("disk I/O error")

    def set(self, key: str, value: str):
        raise sqlite3.OperationalError("database or disk is full")

    def remove(self, key: str):
        raise sqlite3.OperationalError("database is locked")

    def close(self):
        self.closed = True


def make_messages(count: int, prefix: str = "m") -> list[Message]:
    roles = ("user", "assistant")
    return [
        Message(
            id=f"{prefix}-{i}",
            role=roles[i % 2],
            content=f"message {i}",
            timestamp=f"2025-01-18T10:{i:02d}:00",
        )
        for i in range(count)
    ]


def write_snapshot(
    store: KeyValueStore,
    conversations: list[Conversation],
    conversations_by_id: dict[str, list[Message]],
    version: int = STORAGE_VERSION,
) -> None:
    snapshot = Snapshot(
        version=version,
        conversations=conversations,
        conversations_by_id=conversations_by_id,
    )
    store.set(STORAGE_KEY, snapshot.to_json())


@pytest.fixture
def store(tmp_path: Path) -> KeyValueStore:
    kv = KeyValueStore(tmp_path / "chatshelf.db")
    yield kv
    kv.close()


@pytest.fixture
def gateway(store: KeyValueStore) -> PersistenceGateway:
    return PersistenceGateway(store)


@pytest.fixture
def echo() -> EchoReplyService:
    return EchoReplyService()


@pytest.fixture
def session(gateway: PersistenceGateway, echo: EchoReplyService) -> ChatSession:
    chat = ChatSession(gateway, reply_service=echo)
    chat.hydrate()
    return chat


@pytest.fixture
def untitled_session(
    store: KeyValueStore, gateway: PersistenceGateway, echo: EchoReplyService
) -> ChatSession:
    """Two empty conversations that still carry the placeholder title."""
    write_snapshot(
        store,
        [
            Conversation(id="a", title=PLACEHOLDER_TITLE),
            Conversation(id="b", title=PLACEHOLDER_TITLE),
        ],
        {"a": [], "b": []},
    )
    chat = ChatSession(gateway, reply_service=echo)
    chat.hydrate()
    return chat
