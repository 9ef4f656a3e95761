"""Telegram provider using aiogram."""

from __future__ import annotations

import logging

from aiogram import Bot, Dispatcher, F
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import (
    BufferedInputFile,
    CallbackQuery,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
)
from aiogram.types import Message as TelegramMessage

from visionbot.providers.base import (
    CallbackHandler,
    ChatAction,
    DeliveryError,
    ImageAttachment,
    IncomingCallback,
    IncomingMessage,
    InlineKeyboard,
    MessageHandler,
    Provider,
)

logger = logging.getLogger("telegram")

LOG_PREVIEW_MAX_LEN = 180
MAX_SEND_LENGTH = 4000  # Below Telegram's 4096 limit
MAX_CAPTION_LENGTH = 1024
DEFAULT_POLL_TIMEOUT = 10


def _truncate(text: str, max_len: int = LOG_PREVIEW_MAX_LEN) -> str:
    """Truncate text for logging (first line only, max length)."""
    first_line, *rest = text.split("\n", 1)
    truncated = len(first_line) > max_len or bool(rest)
    return first_line[:max_len] + "..." if truncated else first_line


def _find_split_point(text: str, max_length: int) -> int:
    """Find the best point to split text, searching backwards from max_length.

    Prefers a blank line, then any newline, then a comma, then a hard cut.
    """
    search_region = text[:max_length]
    for separator in ("\n\n", "\n", ", "):
        index = search_region.rfind(separator)
        if index > 0:
            return index + len(separator)
    return max_length


def split_message(text: str, max_length: int = MAX_SEND_LENGTH) -> list[str]:
    """Split text into chunks that fit in a single Telegram message."""
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break
        split_at = _find_split_point(remaining, max_length)
        chunks.append(remaining[:split_at].rstrip())
        remaining = remaining[split_at:].lstrip()
    return chunks


def to_reply_markup(keyboard: InlineKeyboard) -> InlineKeyboardMarkup:
    """Convert provider-neutral buttons into an aiogram keyboard."""
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text=button.text, callback_data=button.callback_data)
                for button in row
            ]
            for row in keyboard
        ]
    )


def image_attachments(message: TelegramMessage) -> list[ImageAttachment]:
    """Images carried by a message: the largest photo size or an image document."""
    if message.photo:
        photo = message.photo[-1]
        return [
            ImageAttachment(
                file_id=photo.file_id,
                file_size=photo.file_size,
                mime_type="image/jpeg",
            )
        ]
    document = message.document
    if document and (document.mime_type or "").startswith("image/"):
        return [
            ImageAttachment(
                file_id=document.file_id,
                file_size=document.file_size,
                mime_type=document.mime_type,
            )
        ]
    return []


class TelegramProvider(Provider):
    """Telegram provider using aiogram 3.x long polling."""

    def __init__(
        self,
        bot_token: str,
        poll_timeout: int = DEFAULT_POLL_TIMEOUT,
    ):
        self._poll_timeout = poll_timeout
        self._bot = Bot(token=bot_token)
        self._dp = Dispatcher()
        self._handler: MessageHandler | None = None
        self._callback_handler: CallbackHandler | None = None
        self._running = False

    @property
    def name(self) -> str:
        return "telegram"

    def _to_incoming_message(self, message: TelegramMessage) -> IncomingMessage:
        """Convert a Telegram message to an IncomingMessage."""
        user = message.from_user
        return IncomingMessage(
            id=str(message.message_id),
            chat_id=str(message.chat.id),
            user_id=str(user.id) if user else "",
            text=message.text or message.caption or "",
            username=user.username if user else None,
            display_name=user.full_name if user else None,
            images=image_attachments(message),
        )

    def _to_incoming_callback(
        self, callback_query: CallbackQuery
    ) -> IncomingCallback | None:
        """Convert a callback query, or None when its message is gone."""
        message = callback_query.message
        if message is None:
            return None
        user = callback_query.from_user
        return IncomingCallback(
            id=callback_query.id,
            chat_id=str(message.chat.id),
            message_id=str(message.message_id),
            data=callback_query.data or "",
            username=user.username if user else None,
            display_name=user.full_name if user else None,
        )

    async def start(
        self, handler: MessageHandler, callback_handler: CallbackHandler
    ) -> None:
        """Start the Telegram bot and poll until stopped."""
        self._handler = handler
        self._callback_handler = callback_handler
        self._setup_handlers()

        try:
            bot_info = await self._bot.get_me()
            logger.info(
                "bot_username_resolved",
                extra={"telegram.bot_username": bot_info.username},
            )
        except TelegramAPIError as e:
            logger.warning("bot_info_failed", extra={"error.message": str(e)})

        self._running = True

        logger.info("telegram_bot_starting")
        # Polling does not receive updates while a webhook is set
        await self._bot.delete_webhook(drop_pending_updates=False)
        # Disable aiogram's signal handling - let the app handle SIGINT/SIGTERM
        await self._dp.start_polling(
            self._bot,
            polling_timeout=self._poll_timeout,
            handle_signals=False,
            close_bot_session=False,  # We close it ourselves in stop()
        )

    async def stop(self) -> None:
        """Stop the Telegram bot."""
        if not self._running:
            return  # Already stopped
        self._running = False

        try:
            await self._dp.stop_polling()
        except (RuntimeError, LookupError) as e:
            logger.debug(f"Error stopping polling: {e}")

        try:
            await self._bot.session.close()
        except Exception as e:
            logger.debug(f"Error closing bot session: {e}")

        logger.info("telegram_bot_stopped")

    def _setup_handlers(self) -> None:
        """Set up message handlers on the dispatcher."""

        @self._dp.message(Command("start", "help"))
        async def handle_help(message: TelegramMessage) -> None:
            """Handle /start and /help; the dispatcher answers with help text."""
            await self._dispatch_message(message)

        @self._dp.message(F.photo | F.document)
        async def handle_media(message: TelegramMessage) -> None:
            """Handle photos and documents (image documents get a menu)."""
            await self._dispatch_message(message)

        @self._dp.message()
        async def handle_message(message: TelegramMessage) -> None:
            """Handle everything else."""
            await self._dispatch_message(message)

        @self._dp.callback_query()
        async def handle_callback_query(callback_query: CallbackQuery) -> None:
            """Handle callback queries from inline keyboards."""
            await self._dispatch_callback(callback_query)

    async def _dispatch_callback(self, callback_query: CallbackQuery) -> None:
        incoming = self._to_incoming_callback(callback_query)
        if incoming is None:
            await self._alert(callback_query.id, "This menu is no longer available")
            return

        if self._callback_handler:
            try:
                await self._callback_handler(incoming)
            except Exception:
                logger.exception("Error handling callback query")
                await self._alert(callback_query.id, "Error processing your selection")

    async def _alert(self, callback_id: str, text: str) -> None:
        # The query may already have been answered
        try:
            await self._bot.answer_callback_query(
                callback_id, text=text, show_alert=True
            )
        except TelegramAPIError as e:
            logger.debug(f"Failed to answer callback query: {e}")

    async def _dispatch_message(self, message: TelegramMessage) -> None:
        incoming = self._to_incoming_message(message)
        logger.info(
            "incoming_message",
            extra={
                "external_id": incoming.id,
                "chat_id": incoming.chat_id,
                "user_id": incoming.user_id,
                "username": incoming.username,
                "chat_type": message.chat.type,
                "has_images": incoming.has_images,
                "input.preview": _truncate(incoming.text),
            },
        )
        if self._handler:
            try:
                await self._handler(incoming)
            except Exception:
                logger.exception("Error handling message")

    async def send_message(
        self,
        chat_id: str,
        text: str,
        *,
        reply_to: str | None = None,
        keyboard: InlineKeyboard | None = None,
    ) -> str:
        """Send a plain-text message, splitting long text into chunks.

        The keyboard is attached to the last chunk.
        """
        chunks = split_message(text)
        last_id = ""
        for i, chunk in enumerate(chunks):
            is_last = i == len(chunks) - 1
            last_id = await self._send_single(
                chat_id,
                chunk,
                reply_to=reply_to if i == 0 else None,
                reply_markup=to_reply_markup(keyboard) if keyboard and is_last else None,
            )
        return last_id

    async def _send_single(
        self,
        chat_id: str,
        text: str,
        *,
        reply_to: str | None,
        reply_markup: InlineKeyboardMarkup | None,
    ) -> str:
        reply_to_id = int(reply_to) if reply_to else None
        try:
            try:
                sent = await self._bot.send_message(
                    chat_id=int(chat_id),
                    text=text,
                    reply_to_message_id=reply_to_id,
                    reply_markup=reply_markup,
                )
            except TelegramBadRequest as e:
                if (
                    "message to be replied not found" in str(e).lower()
                    and reply_to_id is not None
                ):
                    logger.debug(f"Reply target not found, sending without reply: {e}")
                    sent = await self._bot.send_message(
                        chat_id=int(chat_id), text=text, reply_markup=reply_markup
                    )
                else:
                    raise
        except TelegramAPIError as e:
            raise DeliveryError(str(e)) from e

        logger.debug("Sent message to chat %s: %s", chat_id, _truncate(text))
        return str(sent.message_id)

    async def send_photo(self, chat_id: str, photo: bytes, *, caption: str) -> str:
        if len(caption) > MAX_CAPTION_LENGTH:
            caption = caption[: MAX_CAPTION_LENGTH - 3] + "..."
        try:
            sent = await self._bot.send_photo(
                chat_id=int(chat_id),
                photo=BufferedInputFile(photo, filename="result.jpg"),
                caption=caption,
            )
        except TelegramAPIError as e:
            raise DeliveryError(str(e)) from e
        logger.debug(
            "photo_sent",
            extra={"messaging.chat_id": chat_id, "photo.bytes": len(photo)},
        )
        return str(sent.message_id)

    async def edit(self, chat_id: str, message_id: str, text: str) -> None:
        try:
            await self._bot.edit_message_text(
                chat_id=int(chat_id), message_id=int(message_id), text=text
            )
        except TelegramBadRequest as e:
            if "message is not modified" in str(e).lower():
                # Content unchanged - not an error, just a no-op
                return
            raise DeliveryError(str(e)) from e
        except TelegramAPIError as e:
            raise DeliveryError(str(e)) from e

    async def delete(self, chat_id: str, message_id: str) -> None:
        try:
            await self._bot.delete_message(
                chat_id=int(chat_id), message_id=int(message_id)
            )
        except TelegramAPIError as e:
            raise DeliveryError(str(e)) from e

    async def send_chat_action(self, chat_id: str, action: ChatAction) -> None:
        try:
            await self._bot.send_chat_action(chat_id=int(chat_id), action=action)
        except TelegramAPIError as e:
            raise DeliveryError(str(e)) from e

    async def answer_callback(self, callback_id: str, text: str | None = None) -> None:
        try:
            await self._bot.answer_callback_query(callback_id, text=text)
        except TelegramAPIError as e:
            raise DeliveryError(str(e)) from e

    async def resolve_file(self, file_id: str) -> str:
        try:
            file = await self._bot.get_file(file_id)
        except TelegramAPIError as e:
            raise DeliveryError(str(e)) from e
        if not file.file_path:
            raise DeliveryError(f"No file path for {file_id}")
        return file.file_path

    async def download_file(self, file_path: str) -> bytes:
        try:
            file_data = await self._bot.download_file(file_path)
        except Exception as e:
            # aiohttp and timeout errors surface here besides API errors
            raise DeliveryError(f"Download failed: {e}") from e
        if file_data is None:
            raise DeliveryError("Download returned no data")
        return file_data.read()
