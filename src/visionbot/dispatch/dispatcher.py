"""Request lifecycle from image message to delivered result.

Each received image gets a menu (``awaiting_selection``). Pressing a command
button moves the request to ``processing``: the file key is resolved, one
vision call is issued and, for drawable kinds, the image is decoded and
annotated. ``delivering`` sends the result. Every request ends in ``done`` or
``failed`` with exactly one reply explaining the outcome.

Processing runs in background tasks so the update loop never waits on the
vision service or on image encoding.
"""

from __future__ import annotations

import asyncio
import io
import logging
from collections.abc import Awaitable
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass
from enum import Enum

from PIL import Image

from visionbot.commands import CommandRegistry, VisionCommand
from visionbot.dispatch.callback_data import (
    CallbackDataError,
    CancelSelection,
    CommandSelection,
    build_menu,
    decode,
)
from visionbot.dispatch.file_refs import FileReferenceStore
from visionbot.providers.base import (
    ChatAction,
    DeliveryError,
    IncomingCallback,
    IncomingMessage,
    Provider,
)
from visionbot.render.formatting import (
    format_nsfw,
    format_tags,
    format_texts,
    result_caption,
)
from visionbot.render.renderer import AnnotationRenderer
from visionbot.vision.base import VisionAPIError, VisionProvider
from visionbot.vision.types import (
    DetectionResult,
    NSFWResult,
    TagResult,
    TextResult,
    is_empty,
)

logger = logging.getLogger(__name__)

MESSAGE_ACTION_IMAGE = "Choose action for this image:"
MESSAGE_UNPROCESSABLE = "Unprocessable message."
MESSAGE_FAILED_TO_GET_FILE = "Failed to get file from the server."
MESSAGE_CANCELED = "Canceled."
MESSAGE_UNEXPECTED = "Failed to process image."

EMPTY_RESULT_MESSAGES: dict[VisionCommand, str] = {
    VisionCommand.DETECT_FACES: "No face detected on this image.",
    VisionCommand.MASK_FACES: "No face detected on this image.",
    VisionCommand.DETECT_PRODUCTS: "No product detected on this image.",
    VisionCommand.TAG: "Could not tag given image.",
    VisionCommand.ANALYZE_POSES: "No pose detected on this image.",
    VisionCommand.EXTRACT_TEXTS: "No text detected on this image.",
}

REMOTE_FAILURE_PREFIXES: dict[VisionCommand, str] = {
    VisionCommand.DETECT_FACES: "Failed to detect faces",
    VisionCommand.MASK_FACES: "Failed to detect faces",
    VisionCommand.DETECT_PRODUCTS: "Failed to detect products",
    VisionCommand.DETECT_NSFW: "Failed to detect NSFW factors from image",
    VisionCommand.TAG: "Failed to tag image",
    VisionCommand.ANALYZE_POSES: "Failed to analyze poses",
    VisionCommand.EXTRACT_TEXTS: "Failed to detect texts",
}

DEFAULT_JPEG_QUALITY = 90


def help_text(registry: CommandRegistry) -> str:
    actions = "\n".join(f"- {spec.label}" for spec in registry)
    return (
        "Send any image to this bot, then select one of the following actions:\n\n"
        f"{actions}\n\n"
        "then it will send the result message and/or image back to you."
    )


class RequestState(str, Enum):
    AWAITING_SELECTION = "awaiting_selection"
    PROCESSING = "processing"
    DELIVERING = "delivering"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.AWAITING_SELECTION: frozenset(
        {RequestState.PROCESSING, RequestState.DONE, RequestState.FAILED}
    ),
    RequestState.PROCESSING: frozenset(
        {RequestState.DELIVERING, RequestState.FAILED}
    ),
    RequestState.DELIVERING: frozenset({RequestState.DONE, RequestState.FAILED}),
    RequestState.DONE: frozenset(),
    RequestState.FAILED: frozenset(),
}


class InvalidTransition(RuntimeError):
    """A request was moved to a state it cannot reach."""


class RequestFailed(Exception):
    """Terminal failure of one request; ``message`` is shown to the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass
class VisionRequest:
    """State of one menu selection, from button press to reply."""

    chat_id: str
    menu_message_id: str
    username: str | None = None
    command: VisionCommand | None = None
    file_id: str | None = None
    file_path: str | None = None
    state: RequestState = RequestState.AWAITING_SELECTION
    outcome: str | None = None

    @property
    def finished(self) -> bool:
        return self.state in (RequestState.DONE, RequestState.FAILED)

    def transition(self, state: RequestState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {state.value}")
        logger.debug(
            "request_transition",
            extra={
                "request.from": self.state.value,
                "request.to": state.value,
                "messaging.chat_id": self.chat_id,
            },
        )
        self.state = state

    def finish(self, outcome: str) -> None:
        self.transition(RequestState.DONE)
        self.outcome = outcome

    def fail(self, outcome: str) -> None:
        self.transition(RequestState.FAILED)
        self.outcome = outcome


@dataclass
class ImageReply:
    photo: bytes
    caption: str


class RequestDispatcher:
    """Turns image messages and menu callbacks into vision replies."""

    def __init__(
        self,
        *,
        provider: Provider,
        vision: VisionProvider,
        renderer: AnnotationRenderer,
        registry: CommandRegistry | None = None,
        store: FileReferenceStore | None = None,
        face_threshold: float = 0.7,
        product_threshold: float = 0.7,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        max_concurrent_jobs: int = 0,
    ) -> None:
        self._provider = provider
        self._vision = vision
        self._renderer = renderer
        self._registry = registry or CommandRegistry()
        self._store = store or FileReferenceStore()
        self._face_threshold = face_threshold
        self._product_threshold = product_threshold
        self._jpeg_quality = jpeg_quality
        self._semaphore = (
            asyncio.Semaphore(max_concurrent_jobs) if max_concurrent_jobs > 0 else None
        )
        self._tasks: set[asyncio.Task[VisionRequest]] = set()

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    @property
    def store(self) -> FileReferenceStore:
        return self._store

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # -- inbound events -------------------------------------------------

    async def handle_message(self, message: IncomingMessage) -> None:
        """Offer the command menu for images, help text for anything else."""
        keyboard = None
        if message.has_images:
            image = message.images[-1]
            key = self._store.put(image.file_id)
            logger.info(
                "image_received",
                extra={
                    "messaging.provider": self._provider.name,
                    "messaging.user_id": message.user_id,
                    "file_ref.key": key,
                    "file.size": image.file_size,
                    "file.mime_type": image.mime_type,
                },
            )
            keyboard = build_menu(self._registry, key)
            text = MESSAGE_ACTION_IMAGE
        else:
            text = help_text(self._registry)

        try:
            await self._provider.send_message(
                message.chat_id, text, reply_to=message.id, keyboard=keyboard
            )
        except DeliveryError as e:
            logger.error(
                "menu_send_failed",
                extra={"messaging.chat_id": message.chat_id, "error.message": str(e)},
            )

    async def handle_callback(self, callback: IncomingCallback) -> VisionRequest:
        """Handle a menu button press.

        Cancel and lookup failures finish here; accepted selections are
        scheduled for background processing.
        """
        request = VisionRequest(
            chat_id=callback.chat_id,
            menu_message_id=callback.message_id,
            username=callback.username or callback.display_name,
        )

        try:
            selection = decode(self._registry, callback.data)
        except CallbackDataError as e:
            logger.warning(
                "callback_parse_failed",
                extra={"callback_data": callback.data, "error.message": str(e)},
            )
            request.fail(MESSAGE_UNPROCESSABLE)
        else:
            if isinstance(selection, CancelSelection):
                request.finish(MESSAGE_CANCELED)
            else:
                await self._accept(request, selection)

        await self._guard(
            self._provider.answer_callback(callback.id), "answer_callback_failed"
        )
        try:
            await self._provider.edit(
                request.chat_id, request.menu_message_id, request.outcome or ""
            )
        except DeliveryError as e:
            logger.warning("menu_edit_failed", extra={"error.message": str(e)})
            if request.finished and request.outcome:
                await self._guard(
                    self._provider.send_message(request.chat_id, request.outcome),
                    "outcome_reply_failed",
                )

        if request.state == RequestState.PROCESSING:
            self._spawn(request)
        return request

    async def _accept(self, request: VisionRequest, selection: CommandSelection) -> None:
        request.command = selection.command
        request.transition(RequestState.PROCESSING)

        file_id = self._store.get(selection.key)
        if file_id is None:
            logger.error(
                "file_reference_missing",
                extra={"file_ref.key": selection.key, "hint": "bot restarted?"},
            )
            request.fail(MESSAGE_FAILED_TO_GET_FILE)
            return

        try:
            file_path = await self._provider.resolve_file(file_id)
        except DeliveryError as e:
            logger.error(
                "file_resolve_failed",
                extra={"file.id": file_id, "error.message": str(e)},
            )
            request.fail(MESSAGE_FAILED_TO_GET_FILE)
            return

        request.file_id = file_id
        request.file_path = file_path
        label = self._registry.label_for(selection.command)
        request.outcome = f"Processing '{label}' on received image..."
        logger.info(
            "vision_request",
            extra={
                "username": request.username,
                "command": selection.command.value,
                "file.id": file_id,
            },
        )

    # -- background processing -----------------------------------------

    def _spawn(self, request: VisionRequest) -> asyncio.Task[VisionRequest]:
        command = request.command.value if request.command else "unknown"
        task = asyncio.create_task(self.process(request), name=f"vision-{command}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _slot(self) -> AbstractAsyncContextManager[object]:
        return self._semaphore if self._semaphore is not None else nullcontext()

    async def wait_idle(self) -> None:
        """Wait until every scheduled request has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight requests without draining them."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def process(self, request: VisionRequest) -> VisionRequest:
        """Run an accepted request to completion and reply exactly once."""
        async with self._slot():
            error: str | None = None
            try:
                await self._run(request)
            except RequestFailed as e:
                error = e.message
            except Exception:
                logger.exception("Error processing vision request")
                error = MESSAGE_UNEXPECTED

            if error is not None:
                if not request.finished:
                    request.fail(error)
                logger.error(
                    "request_failed",
                    extra={
                        "messaging.chat_id": request.chat_id,
                        "command": request.command.value if request.command else None,
                        "error.message": error,
                    },
                )

            await self._guard(
                self._provider.delete(request.chat_id, request.menu_message_id),
                "menu_delete_failed",
            )

            if error is not None:
                await self._guard(
                    self._provider.send_message(request.chat_id, error),
                    "error_reply_failed",
                )
        return request

    async def _run(self, request: VisionRequest) -> None:
        if request.command is None or request.file_path is None:
            raise RequestFailed(MESSAGE_UNPROCESSABLE)
        command = request.command
        label = self._registry.label_for(command)

        await self._chat_action(request.chat_id, "typing")

        try:
            data = await self._provider.download_file(request.file_path)
        except DeliveryError as e:
            logger.error(
                "file_download_failed",
                extra={"file.id": request.file_id, "error.message": str(e)},
            )
            raise RequestFailed(MESSAGE_FAILED_TO_GET_FILE) from e

        result = await self._analyze(command, data)
        if is_empty(result):
            raise RequestFailed(EMPTY_RESULT_MESSAGES[command])

        request.transition(RequestState.DELIVERING)
        if command.produces_image:
            reply = await self._render(command, label, data, result)
            await self._chat_action(request.chat_id, "upload_photo")
            try:
                await self._provider.send_photo(
                    request.chat_id, reply.photo, caption=reply.caption
                )
            except DeliveryError as e:
                raise RequestFailed(f"Failed to send image: {e}") from e
            request.finish(reply.caption)
        else:
            text = self._format(label, result)
            try:
                await self._provider.send_message(request.chat_id, text)
            except DeliveryError as e:
                raise RequestFailed(f"Failed to send result: {e}") from e
            request.finish(text)

    async def _analyze(self, command: VisionCommand, data: bytes) -> DetectionResult:
        try:
            return await analyze(
                self._vision,
                command,
                data,
                face_threshold=self._face_threshold,
                product_threshold=self._product_threshold,
            )
        except VisionAPIError as e:
            raise RequestFailed(f"{REMOTE_FAILURE_PREFIXES[command]}: {e}") from e
        except ValueError as e:
            raise RequestFailed(str(e)) from e

    async def _render(
        self,
        command: VisionCommand,
        label: str,
        data: bytes,
        result: DetectionResult,
    ) -> ImageReply:
        try:
            image = await asyncio.to_thread(decode_image, data)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise RequestFailed(f"Failed to decode image: {e}") from e

        rendered = await asyncio.to_thread(self._renderer.render, image, result, command)
        if rendered.partial:
            logger.warning(
                "render_partial",
                extra={
                    "command": command.value,
                    "labels.missing": [f.text for f in rendered.label_failures],
                },
            )

        try:
            photo = await asyncio.to_thread(
                encode_jpeg, rendered.image, self._jpeg_quality
            )
        except (OSError, ValueError) as e:
            raise RequestFailed(f"Failed to encode image: {e}") from e

        return ImageReply(photo=photo, caption=result_caption(label, rendered.classes))

    @staticmethod
    def _format(label: str, result: DetectionResult) -> str:
        try:
            return format_result(label, result)
        except ValueError as e:
            raise RequestFailed(str(e)) from e

    async def _chat_action(self, chat_id: str, action: ChatAction) -> None:
        await self._guard(
            self._provider.send_chat_action(chat_id, action), "chat_action_failed"
        )

    @staticmethod
    async def _guard(call: Awaitable[object], event: str) -> None:
        """Await a cosmetic provider call, logging delivery failures."""
        try:
            await call
        except DeliveryError as e:
            logger.warning(event, extra={"error.message": str(e)})


async def analyze(
    vision: VisionProvider,
    command: VisionCommand,
    data: bytes,
    *,
    face_threshold: float,
    product_threshold: float,
) -> DetectionResult:
    """Issue the single vision call for ``command``.

    Raises:
        VisionAPIError: If the remote call fails.
    """
    if command in (VisionCommand.DETECT_FACES, VisionCommand.MASK_FACES):
        return await vision.detect_faces(data, face_threshold)
    if command == VisionCommand.DETECT_PRODUCTS:
        return await vision.detect_products(data, product_threshold)
    if command == VisionCommand.DETECT_NSFW:
        return await vision.detect_nsfw(data)
    if command == VisionCommand.TAG:
        return await vision.generate_tags(data)
    if command == VisionCommand.ANALYZE_POSES:
        return await vision.analyze_poses(data)
    if command == VisionCommand.EXTRACT_TEXTS:
        return await vision.extract_texts(data)
    raise ValueError(f"Command not supported: {command.value}")


def format_result(label: str, result: DetectionResult) -> str:
    """Message body for results delivered as text.

    Raises:
        ValueError: If the result kind is drawn rather than described.
    """
    if isinstance(result, NSFWResult):
        return result_caption(label, format_nsfw(result))
    if isinstance(result, TagResult):
        return result_caption(label, format_tags(result))
    if isinstance(result, TextResult):
        return result_caption(label, format_texts(result))
    raise ValueError(f"Cannot format {type(result).__name__} as text")


def decode_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def encode_jpeg(image: Image.Image, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()
