"""Reply service contract and the reference stub that fakes a model reply."""

from __future__ import annotations

import asyncio
import random
import uuid
from typing import Protocol

from .config import REPLY_MAX_DELAY, REPLY_MIN_DELAY
from .models import Message, ReplyRequest


class ReplyService(Protocol):
    async def reply(self, request: ReplyRequest) -> Message:
        """Produce one assistant message for the conversation so far.

        May raise; the caller surfaces the exception instead of a message.
        """
        ...


class MockReplyService:
    """Echoes the latest user text after a short random delay."""

    def __init__(
        self,
        min_delay: float = REPLY_MIN_DELAY,
        max_delay: float = REPLY_MAX_DELAY,
    ):
        self.min_delay = min_delay
        self.max_delay = max(min_delay, max_delay)

    async def reply(self, request: ReplyRequest) -> Message:
        await asyncio.sleep(random.uniform(self.min_delay, self.max_delay))
        content = "\n".join([
            "Here's a mock ChatGPT-style response based on your last message:",
            "",
            f"> {request.user_text}",
            "",
            "In a real app, this text would come from an AI model running on a server.",
        ])
        return Message(
            id=f"assistant-{uuid.uuid4().hex}",
            role="assistant",
            content=content,
        )
