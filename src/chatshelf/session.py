"""Conversation state: the conversation list, per-conversation messages,
the active pointer, and the send/reply lifecycle.

A ``ChatSession`` is constructed at startup, hydrated once from the
persistence gateway, and closed on shutdown. The conversation list and the
message map are only changed through the private mutators below, which keep
their key sets identical and write the new state through to the store once
hydration has finished.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from .config import (
    FALLBACK_CHAT_TITLE,
    ORDINALS,
    PLACEHOLDER_TITLE,
    SEED_CONVERSATIONS,
)
from .models import Conversation, Message, ReplyRequest
from .reply import MockReplyService, ReplyService
from .storage import PersistenceGateway

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def ordinal_title(in_use: int) -> str:
    """Name for a conversation when ``in_use`` other conversations are taken."""
    if in_use < len(ORDINALS):
        return f"{ORDINALS[in_use]} conversation"
    return f"{in_use + 1}th conversation"


class ChatSession:
    """Owns conversations and their messages for one running application."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        reply_service: ReplyService | None = None,
    ):
        self.gateway = gateway
        self.reply_service = reply_service or MockReplyService()

        self._conversations: list[Conversation] = [
            Conversation(id=cid, title=title) for cid, title in SEED_CONVERSATIONS
        ]
        self._messages: dict[str, list[Message]] = {cid: [] for cid, _ in SEED_CONVERSATIONS}
        self._active_id: str | None = None
        self._is_loading = False
        self._error: Exception | None = None
        self._hydrated = False
        self._closed = False

    def hydrate(self):
        """Replace the seed state with the stored snapshot when it is valid.

        Always marks the session hydrated, whichever branch was taken.
        """
        snapshot = self.gateway.load_snapshot()
        if snapshot is not None:
            logger.info("Applying %d stored conversations", len(snapshot.conversations))
            self._replace_state(snapshot.conversations, snapshot.conversations_by_id)

        stored_id = self.gateway.load_active_id()
        if stored_id and self._has_conversation(stored_id):
            self._active_id = stored_id
        else:
            self._active_id = self._conversations[0].id if self._conversations else None

        self._hydrated = True
        self._persist()
        self.gateway.save_active_id(self._active_id)

    @property
    def is_hydrated(self) -> bool:
        return self._hydrated

    def close(self):
        """Flush the latest state and release the store."""
        if self._closed:
            return
        self._persist()
        self.gateway.close()
        self._closed = True

    def __enter__(self) -> ChatSession:
        if not self._hydrated:
            self.hydrate()
        return self

    def __exit__(self, *exc_info):
        self.close()

    @property
    def conversations(self) -> list[Conversation]:
        return list(self._conversations)

    @property
    def active_conversation_id(self) -> str | None:
        return self._active_id

    @property
    def active_title(self) -> str:
        for conv in self._conversations:
            if conv.id == self._active_id:
                return conv.title
        return FALLBACK_CHAT_TITLE

    @property
    def messages(self) -> list[Message]:
        """Messages of the active conversation, or an empty list."""
        if not self._active_id:
            return []
        return list(self._messages.get(self._active_id, []))

    def messages_for(self, conversation_id: str) -> list[Message]:
        return list(self._messages.get(conversation_id, []))

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> Exception | None:
        return self._error

    def set_active_conversation_id(self, conversation_id: str | None):
        if conversation_id is not None and not self._has_conversation(conversation_id):
            logger.debug("Ignoring selection of unknown conversation %s", conversation_id)
            return
        self._active_id = conversation_id
        if self._hydrated:
            self.gateway.save_active_id(conversation_id)

    def create_conversation(self) -> str:
        """Return the id of a conversation to make active.

        Reuses the active conversation or any other one that is still empty,
        so at most one empty conversation exists at a time. Only when every
        conversation has messages is a new one allocated.
        """
        if self._active_id and not self._messages.get(self._active_id):
            return self._active_id

        for conv in self._conversations:
            if not self._messages.get(conv.id):
                return conv.id

        conversation = Conversation(id=_new_id("c"), title=PLACEHOLDER_TITLE)
        self._add_conversation(conversation)
        logger.debug("Created conversation %s", conversation.id)
        return conversation.id

    async def send_message(self, user_text: str | None) -> Message | None:
        """Append the user's message, then await and append the reply.

        Returns the assistant message, or ``None`` when the input was ignored
        or the reply service failed (see ``error``). The reply always lands in
        the conversation it was requested for, even if the active conversation
        changes or that conversation is cleared in the meantime.
        """
        if not user_text or not user_text.strip() or not self._active_id:
            return None

        conversation_id = self._active_id
        user_message = Message(
            id=_new_id("user"),
            role="user",
            content=user_text.strip(),
            timestamp=_now_iso(),
        )
        is_first_message = not self._messages.get(conversation_id)
        in_use = self._count_other_in_use(conversation_id) if is_first_message else 0

        self._is_loading = True
        self._error = None

        self._append_message(conversation_id, user_message)
        if is_first_message:
            self._assign_ordinal_title(conversation_id, in_use)

        request = ReplyRequest(
            messages=self.messages_for(conversation_id),
            user_text=user_message.content,
        )
        try:
            reply = await self.reply_service.reply(request)
        except Exception as exc:
            logger.warning("Reply failed for conversation %s", conversation_id, exc_info=True)
            self._error = exc
            return None
        else:
            stamped = reply.model_copy(update={"timestamp": _now_iso()})
            self._append_message(conversation_id, stamped)
            return stamped
        finally:
            self._is_loading = False

    def clear_conversation(self, conversation_id: str | None):
        """Empty a conversation's messages. Its title is kept."""
        if not conversation_id:
            return
        self._set_messages(conversation_id, [])

    def _has_conversation(self, conversation_id: str) -> bool:
        return any(conv.id == conversation_id for conv in self._conversations)

    def _count_other_in_use(self, conversation_id: str) -> int:
        return sum(
            1
            for conv in self._conversations
            if conv.id != conversation_id
            and (self._messages.get(conv.id) or conv.title != PLACEHOLDER_TITLE)
        )

    def _assign_ordinal_title(self, conversation_id: str, in_use: int):
        for index, conv in enumerate(self._conversations):
            if conv.id != conversation_id:
                continue
            if conv.title != PLACEHOLDER_TITLE:
                return
            self._conversations[index] = conv.model_copy(update={"title": ordinal_title(in_use)})
            self._persist()
            return

    def _replace_state(
        self,
        conversations: list[Conversation],
        conversations_by_id: dict[str, list[Message]],
    ):
        ids = [conv.id for conv in conversations]
        orphans = set(conversations_by_id) - set(ids)
        if orphans:
            logger.warning("Dropping messages for unknown conversations: %s", sorted(orphans))
        self._conversations = list(conversations)
        self._messages = {cid: list(conversations_by_id.get(cid, [])) for cid in ids}
        self._persist()

    def _add_conversation(self, conversation: Conversation):
        self._conversations.append(conversation)
        self._messages[conversation.id] = []
        self._persist()

    def _append_message(self, conversation_id: str, message: Message):
        if not self._has_conversation(conversation_id):
            logger.warning("Dropping message for unknown conversation %s", conversation_id)
            return
        self._messages[conversation_id] = [*self._messages.get(conversation_id, []), message]
        self._persist()

    def _set_messages(self, conversation_id: str, messages: list[Message]):
        if not self._has_conversation(conversation_id):
            return
        self._messages[conversation_id] = messages
        self._persist()

    def _persist(self):
        if not self._hydrated:
            logger.debug("Skipping save: hydration has not completed yet")
            return
        self.gateway.save_snapshot(self._conversations, self._messages)
