"""Data models for conversations, snapshots and render items."""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: str | int | float | None = None  # ISO 8601 or POSIX seconds; absent on legacy messages


class Conversation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str


class Snapshot(BaseModel):
    """Versioned payload written under the conversations storage key."""

    model_config = ConfigDict(populate_by_name=True)

    version: int
    conversations: list[Conversation]
    conversations_by_id: dict[str, list[Message]] = Field(alias="conversationsById")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class ReplyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[Message]
    user_text: str = Field(alias="userText")


class DateDivider(BaseModel):
    type: Literal["divider"] = "divider"
    date_key: str
    label: str
    key: str


class MessageItem(BaseModel):
    type: Literal["message"] = "message"
    message: Message
    time: str = ""
    key: str


RenderItem = Union[DateDivider, MessageItem]
