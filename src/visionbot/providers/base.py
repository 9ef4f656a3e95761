"""Abstract provider interface for chat transports."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Literal


@dataclass
class ImageAttachment:
    """Image attached to a message."""

    file_id: str  # Provider-specific file identifier
    file_size: int | None = None
    mime_type: str | None = None


@dataclass
class IncomingMessage:
    """Message received from a provider."""

    id: str
    chat_id: str
    user_id: str
    text: str
    username: str | None = None
    display_name: str | None = None
    images: list[ImageAttachment] = field(default_factory=list)

    @property
    def has_images(self) -> bool:
        """Check if message has attached images."""
        return len(self.images) > 0


@dataclass
class IncomingCallback:
    """Inline button press received from a provider."""

    id: str
    chat_id: str
    message_id: str  # Message carrying the pressed keyboard
    data: str
    username: str | None = None
    display_name: str | None = None


@dataclass(frozen=True)
class InlineButton:
    """Provider-neutral inline keyboard button."""

    text: str
    callback_data: str


InlineKeyboard = list[list[InlineButton]]

ChatAction = Literal["typing", "upload_photo"]

MessageHandler = Callable[[IncomingMessage], Awaitable[None]]
CallbackHandler = Callable[[IncomingCallback], Awaitable[object]]


class DeliveryError(Exception):
    """A provider failed to deliver or fetch something."""


class Provider(ABC):
    """Abstract interface for chat transports.

    Providers receive messages and button presses from an external service
    and perform the outbound operations the dispatcher needs.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g., 'telegram')."""
        ...

    @abstractmethod
    async def start(
        self, handler: MessageHandler, callback_handler: CallbackHandler
    ) -> None:
        """Start receiving updates. Runs until ``stop()`` is called."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the provider and clean up resources."""
        ...

    @abstractmethod
    async def send_message(
        self,
        chat_id: str,
        text: str,
        *,
        reply_to: str | None = None,
        keyboard: InlineKeyboard | None = None,
    ) -> str:
        """Send a plain-text message and return its ID."""
        ...

    @abstractmethod
    async def send_photo(self, chat_id: str, photo: bytes, *, caption: str) -> str:
        """Send encoded image bytes with a caption and return the message ID."""
        ...

    @abstractmethod
    async def edit(self, chat_id: str, message_id: str, text: str) -> None:
        """Replace a message's text, dropping its inline keyboard."""
        ...

    @abstractmethod
    async def delete(self, chat_id: str, message_id: str) -> None: ...

    @abstractmethod
    async def send_chat_action(self, chat_id: str, action: ChatAction) -> None: ...

    @abstractmethod
    async def answer_callback(self, callback_id: str, text: str | None = None) -> None:
        ...

    @abstractmethod
    async def resolve_file(self, file_id: str) -> str:
        """Exchange a file handle for a downloadable file path.

        Raises:
            DeliveryError: If the file cannot be resolved.
        """
        ...

    @abstractmethod
    async def download_file(self, file_path: str) -> bytes:
        """Download a file previously resolved with ``resolve_file``.

        Raises:
            DeliveryError: If the download fails.
        """
        ...
