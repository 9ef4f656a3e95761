"""Inline keyboard payload encoding.

Payload grammar::

    payload := "cancel" | token key

``token`` has the registry's fixed width and ``key`` is a non-empty file
reference key. There is no delimiter.
"""

from __future__ import annotations

from dataclasses import dataclass

from visionbot.commands import CANCEL_TOKEN, CommandRegistry, VisionCommand
from visionbot.providers.base import InlineButton, InlineKeyboard

# Maximum length for Telegram callback data (64 bytes)
MAX_CALLBACK_DATA_LEN = 64


class CallbackDataError(ValueError):
    """Callback payload does not follow the grammar."""


@dataclass(frozen=True)
class CancelSelection:
    pass


@dataclass(frozen=True)
class CommandSelection:
    command: VisionCommand
    key: str


Selection = CancelSelection | CommandSelection


def encode_selection(registry: CommandRegistry, command: VisionCommand, key: str) -> str:
    """Build the payload for a command button.

    Raises:
        ValueError: If the key is empty or the payload exceeds the size limit.
    """
    if not key:
        raise ValueError("File reference key must not be empty")
    data = registry.token_for(command) + key
    if len(data.encode("utf-8")) > MAX_CALLBACK_DATA_LEN:
        raise ValueError(
            f"Callback data is {len(data.encode('utf-8'))} bytes, "
            f"limit is {MAX_CALLBACK_DATA_LEN}"
        )
    return data


def decode(registry: CommandRegistry, data: str | None) -> Selection:
    """Parse a callback payload.

    Raises:
        CallbackDataError: For empty, oversized, truncated or unknown payloads.
    """
    if not data:
        raise CallbackDataError("Empty callback data")
    if len(data.encode("utf-8")) > MAX_CALLBACK_DATA_LEN:
        raise CallbackDataError("Callback data exceeds size limit")
    if data == CANCEL_TOKEN:
        return CancelSelection()

    width = registry.token_width
    if len(data) <= width:
        raise CallbackDataError(f"Truncated callback data: {data!r}")

    token, key = data[:width], data[width:]
    command = registry.command_for(token)
    if command is None:
        raise CallbackDataError(f"Unknown command token: {token!r}")
    return CommandSelection(command=command, key=key)


def build_menu(registry: CommandRegistry, key: str) -> InlineKeyboard:
    """One button row per command, followed by a cancel row."""
    rows: InlineKeyboard = [
        [
            InlineButton(
                text=spec.label,
                callback_data=encode_selection(registry, spec.command, key),
            )
        ]
        for spec in registry
    ]
    rows.append([InlineButton(text=CANCEL_TOKEN.title(), callback_data=CANCEL_TOKEN)])
    return rows
