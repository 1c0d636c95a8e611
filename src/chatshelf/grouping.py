"""Interleave date dividers into a conversation's message list."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from .models import DateDivider, Message, MessageItem, RenderItem
from .timeformat import day_bucket_key, divider_label, format_clock_time


def group_messages_by_date(
    messages: Iterable[Message],
    today: date | None = None,
) -> list[RenderItem]:
    """Walk messages in order, emitting a divider wherever the local day changes.

    The first dated message always opens a divider of its own.

    Messages without a usable timestamp never start or match a divider; they
    stay under whichever divider precedes them, and the previous day is
    carried across them unchanged.
    """
    items: list[RenderItem] = []
    previous_key: str | None = None

    for index, message in enumerate(messages):
        current_key = day_bucket_key(message.timestamp) if message.timestamp else ""

        if current_key and current_key != previous_key:
            label = divider_label(current_key, today=today)
            if label:
                items.append(
                    DateDivider(
                        date_key=current_key,
                        label=label,
                        key=f"divider-{current_key}-{index}",
                    )
                )

        items.append(
            MessageItem(
                message=message,
                time=format_clock_time(message.timestamp),
                key=message.id,
            )
        )

        if current_key:
            previous_key = current_key

    return items
