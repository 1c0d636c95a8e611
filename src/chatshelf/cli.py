"""CLI interface for chatshelf."""

from __future__ import annotations

import asyncio
import logging
import shutil
import sqlite3
from pathlib import Path

import click

from . import __version__, config
from .grouping import group_messages_by_date
from .models import DateDivider, Message
from .reply import MockReplyService
from .session import ChatSession
from .storage import KeyValueStore, PersistenceGateway

CHAT_HELP = """\
Commands:
  /new         start (or reuse) an empty conversation
  /list        list conversations
  /switch ID   make another conversation active
  /clear       clear the active conversation
  /quit        leave
Anything else is sent as a message."""


def open_session(data_dir: Path) -> ChatSession:
    """Build an unhydrated session on the store under ``data_dir``."""
    try:
        store = KeyValueStore(config.store_path(data_dir))
    except (sqlite3.Error, OSError) as e:
        raise click.ClickException(f"Cannot open data store in {data_dir}: {e}")
    reply_service = MockReplyService(config.REPLY_MIN_DELAY, config.REPLY_MAX_DELAY)
    return ChatSession(PersistenceGateway(store), reply_service=reply_service)


def _echo_messages(messages: list[Message], is_loading: bool = False):
    if not messages and not is_loading:
        click.echo(click.style("Start a new conversation", dim=True))
        return

    for item in group_messages_by_date(messages):
        if isinstance(item, DateDivider):
            click.echo(click.style(f"──── {item.label} ────", dim=True))
            continue
        msg = item.message
        if msg.role == "user":
            who = click.style("You", fg="cyan", bold=True)
        else:
            who = click.style("Assistant", fg="green", bold=True)
        header = f"{who} ({item.time})" if item.time else who
        click.echo(f"{header}:")
        click.echo(msg.content)
        click.echo()

    if is_loading:
        click.echo(click.style("Assistant is thinking...", dim=True))


def _echo_conversations(session: ChatSession):
    conversations = session.conversations
    if not conversations:
        click.echo("No conversations yet. Start a new chat!")
        return
    for conv in conversations:
        marker = "*" if conv.id == session.active_conversation_id else " "
        count = len(session.messages_for(conv.id))
        click.echo(f"{marker} {conv.id}  {conv.title or 'Untitled conversation'}  ({count} msgs)")


def _require_conversation(session: ChatSession, conversation_id: str) -> str:
    if not any(c.id == conversation_id for c in session.conversations):
        raise click.BadParameter(f"No conversation with id {conversation_id!r}")
    return conversation_id


def _send(session: ChatSession, text: str) -> Message | None:
    return asyncio.run(session.send_message(text))


@click.group()
@click.version_option(version=__version__, prog_name="chatshelf")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="CHATSHELF_DATA_DIR",
    default=config.DATA_DIR,
    show_default=True,
    help="Where conversations are stored.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def cli(ctx: click.Context, data_dir: Path, verbose: bool):
    """chatshelf — Keep several chat conversations on your own disk.

    Conversations, their messages and the active conversation survive
    restarts. Replies come from a local stand-in service.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    ctx.obj = {"data_dir": data_dir}


@cli.command()
@click.pass_obj
def chat(obj: dict):
    """Chat interactively in the active conversation."""
    with open_session(obj["data_dir"]) as session:
        click.echo(click.style(session.active_title, bold=True))
        _echo_messages(session.messages)
        click.echo(click.style("Type /help for commands.", dim=True))

        while True:
            try:
                line = click.prompt("", prompt_suffix="> ", default="", show_default=False)
            except click.Abort:
                click.echo()
                break

            command, _, arg = line.strip().partition(" ")
            if command in ("/quit", "/exit"):
                break
            elif command == "/help":
                click.echo(CHAT_HELP)
            elif command == "/list":
                _echo_conversations(session)
            elif command == "/new":
                session.set_active_conversation_id(session.create_conversation())
                click.echo(click.style(session.active_title, bold=True))
                _echo_messages(session.messages)
            elif command == "/switch":
                if not any(c.id == arg.strip() for c in session.conversations):
                    click.echo(f"No conversation with id {arg.strip()!r}", err=True)
                    continue
                session.set_active_conversation_id(arg.strip())
                click.echo(click.style(session.active_title, bold=True))
                _echo_messages(session.messages)
            elif command == "/clear":
                if session.messages:
                    session.clear_conversation(session.active_conversation_id)
                    click.echo("Cleared.")
            elif line.strip():
                click.echo(click.style("Assistant is thinking...", dim=True))
                reply = _send(session, line)
                if session.error is not None:
                    click.echo(click.style(f"Error: {session.error}", fg="red"), err=True)
                elif reply is not None:
                    _echo_messages([reply])


@cli.command()
@click.argument("text")
@click.pass_obj
def send(obj: dict, text: str):
    """Send TEXT to the active conversation and print the reply."""
    with open_session(obj["data_dir"]) as session:
        if not text.strip() or session.active_conversation_id is None:
            raise click.ClickException("Nothing to send.")
        reply = _send(session, text)
        if session.error is not None:
            raise click.ClickException(f"Reply failed: {session.error}")
        if reply is not None:
            _echo_messages([reply])


@cli.command("list")
@click.pass_obj
def list_cmd(obj: dict):
    """List conversations; the active one is marked with *."""
    with open_session(obj["data_dir"]) as session:
        _echo_conversations(session)


@cli.command()
@click.argument("conversation_id", required=False)
@click.pass_obj
def show(obj: dict, conversation_id: str | None):
    """Show the messages of a conversation (default: the active one)."""
    with open_session(obj["data_dir"]) as session:
        if conversation_id:
            _require_conversation(session, conversation_id)
            title = next(c.title for c in session.conversations if c.id == conversation_id)
            messages = session.messages_for(conversation_id)
        else:
            title = session.active_title
            messages = session.messages
        click.echo(click.style(title, bold=True))
        _echo_messages(messages)


@cli.command()
@click.pass_obj
def new(obj: dict):
    """Start a new conversation, reusing an empty one if there is one."""
    with open_session(obj["data_dir"]) as session:
        conversation_id = session.create_conversation()
        session.set_active_conversation_id(conversation_id)
        click.echo(f"Active conversation: {conversation_id} ({session.active_title})")


@cli.command()
@click.argument("conversation_id")
@click.pass_obj
def switch(obj: dict, conversation_id: str):
    """Make CONVERSATION_ID the active conversation."""
    with open_session(obj["data_dir"]) as session:
        session.set_active_conversation_id(_require_conversation(session, conversation_id))
        click.echo(f"Active conversation: {conversation_id} ({session.active_title})")


@cli.command()
@click.argument("conversation_id", required=False)
@click.pass_obj
def clear(obj: dict, conversation_id: str | None):
    """Remove every message from a conversation (default: the active one)."""
    with open_session(obj["data_dir"]) as session:
        target = conversation_id or session.active_conversation_id
        if not target:
            raise click.ClickException("No active conversation.")
        session.clear_conversation(_require_conversation(session, target))
        click.echo(f"Cleared {target}.")


@cli.command()
@click.pass_obj
def serve(obj: dict):
    """Start the MCP server (stdio transport)."""
    from . import server

    server.run(obj["data_dir"])


@cli.command()
@click.confirmation_option(prompt="This will delete all stored conversations. Are you sure?")
@click.pass_obj
def reset(obj: dict):
    """Delete all stored conversations and start fresh."""
    data_dir: Path = obj["data_dir"]
    if data_dir.exists():
        shutil.rmtree(data_dir)
        click.echo(f"Deleted {data_dir}")
    else:
        click.echo("No data to delete.")
