"""FastMCP server exposing the chat session to MCP clients."""

from __future__ import annotations

import atexit
import logging
import sys
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from . import config
from .grouping import group_messages_by_date
from .models import DateDivider
from .reply import MockReplyService
from .session import ChatSession
from .storage import KeyValueStore, PersistenceGateway

# Logging to stderr only — stdout is the MCP JSON-RPC transport
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)

mcp = FastMCP(
    "chatshelf",
    instructions=(
        "Chat in locally stored conversations. "
        "Use list_conversations to see conversations and which one is active. "
        "Use send_message to add a message to the active conversation and get a reply. "
        "Use new_conversation and select_conversation to move between conversations, "
        "and clear_conversation to empty one."
    ),
)

# Singleton session — reused across tool calls
_session: ChatSession | None = None
_data_dir: Path = config.DATA_DIR


def _get_session() -> ChatSession:
    global _session
    if _session is None:
        store = KeyValueStore(config.store_path(_data_dir))
        _session = ChatSession(
            PersistenceGateway(store),
            reply_service=MockReplyService(config.REPLY_MIN_DELAY, config.REPLY_MAX_DELAY),
        )
        _session.hydrate()
        atexit.register(_session.close)
    return _session


def _render_transcript(session: ChatSession) -> str:
    lines = [f"# {session.active_title}", ""]
    messages = session.messages
    if not messages and not session.is_loading:
        lines.append("Start a new conversation")

    for item in group_messages_by_date(messages):
        if isinstance(item, DateDivider):
            lines.append(f"--- {item.label} ---")
            lines.append("")
            continue
        role = "**User**" if item.message.role == "user" else "**Assistant**"
        header = role + (f" ({item.time})" if item.time else "")
        lines.append(f"{header}:")
        lines.append(item.message.content)
        lines.append("")

    if session.is_loading:
        lines.append("Assistant is thinking...")
    return "\n".join(lines)


@mcp.tool()
def list_conversations() -> str:
    """List conversations with their ids; the active one is marked."""
    session = _get_session()
    conversations = session.conversations
    if not conversations:
        return "No conversations yet. Start a new chat!"

    lines = ["Conversations:\n"]
    for i, conv in enumerate(conversations, 1):
        active = " (active)" if conv.id == session.active_conversation_id else ""
        count = len(session.messages_for(conv.id))
        lines.append(f"{i}. **{conv.title}**{active}")
        lines.append(f"   ID: `{conv.id}` | {count} msgs")
    return "\n".join(lines)


@mcp.tool()
def get_messages() -> str:
    """Show the active conversation, grouped by day."""
    return _render_transcript(_get_session())


@mcp.tool()
async def send_message(text: str) -> str:
    """Send a message to the active conversation and return the reply.

    Args:
        text: The message to send
    """
    session = _get_session()
    if session.is_loading:
        return "A reply is still pending; wait for it before sending again."
    if not text.strip() or session.active_conversation_id is None:
        return "Nothing to send."

    reply = await session.send_message(text)
    if session.error is not None:
        return f"Reply failed: {session.error}"
    return reply.content if reply else "No reply."


@mcp.tool()
def new_conversation() -> str:
    """Start a new conversation (an existing empty one is reused)."""
    session = _get_session()
    conversation_id = session.create_conversation()
    session.set_active_conversation_id(conversation_id)
    return f"Active conversation: `{conversation_id}` ({session.active_title})"


@mcp.tool()
def select_conversation(conversation_id: str) -> str:
    """Make another conversation active.

    Args:
        conversation_id: Id from list_conversations
    """
    session = _get_session()
    if not any(c.id == conversation_id for c in session.conversations):
        return f"Conversation not found: {conversation_id}"
    session.set_active_conversation_id(conversation_id)
    return f"Active conversation: `{conversation_id}` ({session.active_title})"


@mcp.tool()
def clear_conversation(conversation_id: str | None = None) -> str:
    """Remove all messages from a conversation. The title is kept.

    Args:
        conversation_id: Conversation to clear (default: the active one)
    """
    session = _get_session()
    target = conversation_id or session.active_conversation_id
    if not target or not any(c.id == target for c in session.conversations):
        return f"Conversation not found: {target}"
    session.clear_conversation(target)
    return f"Cleared `{target}`."


@mcp.tool()
def get_status() -> str:
    """Report whether a reply is pending and the last reply error, if any."""
    session = _get_session()
    error = f"{session.error}" if session.error is not None else "none"
    return "\n".join([
        f"- **Active**: {session.active_conversation_id or 'none'}",
        f"- **Loading**: {'yes' if session.is_loading else 'no'}",
        f"- **Last error**: {error}",
        f"\n*Data stored in: {_data_dir}*",
    ])


def run(data_dir: Path = config.DATA_DIR):
    global _data_dir
    _data_dir = data_dir
    mcp.run(transport="stdio")
