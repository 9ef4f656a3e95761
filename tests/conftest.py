"""Shared test fixtures and fakes."""

import asyncio
import io
from dataclasses import dataclass, field
from typing import Any

import pytest
from PIL import Image

from visionbot.commands import CommandRegistry
from visionbot.dispatch import FileReferenceStore, RequestDispatcher
from visionbot.providers.base import (
    ChatAction,
    DeliveryError,
    ImageAttachment,
    IncomingCallback,
    IncomingMessage,
    InlineKeyboard,
    Provider,
)
from visionbot.render import AnnotationRenderer
from visionbot.vision.base import VisionAPIError
from visionbot.vision.types import (
    FaceResult,
    NSFWResult,
    PoseResult,
    ProductResult,
    TagResult,
    TextResult,
)

# =============================================================================
# Images
# =============================================================================


def make_image(width: int = 100, height: int = 100) -> Image.Image:
    """RGB image where neighbouring pixels differ."""
    image = Image.new("RGB", (width, height))
    image.putdata(
        [
            ((x * 2) % 256, (y * 3) % 256, (x + y) % 256)
            for y in range(height)
            for x in range(width)
        ]
    )
    return image


def make_jpeg(width: int = 100, height: int = 100) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (40, 40, 40)).save(buffer, format="JPEG")
    return buffer.getvalue()


# =============================================================================
# Provider Fake
# =============================================================================


@dataclass
class SentMessage:
    chat_id: str
    text: str
    reply_to: str | None = None
    keyboard: InlineKeyboard | None = None


@dataclass
class SentPhoto:
    chat_id: str
    photo: bytes
    caption: str


class FakeProvider(Provider):
    """In-memory provider that records every outbound call."""

    def __init__(self, image_bytes: bytes | None = None) -> None:
        self.image_bytes = image_bytes if image_bytes is not None else make_jpeg()
        self.messages: list[SentMessage] = []
        self.photos: list[SentPhoto] = []
        self.edits: list[tuple[str, str, str]] = []
        self.deletes: list[tuple[str, str]] = []
        self.actions: list[ChatAction] = []
        self.answered: list[str] = []
        self.resolved: list[str] = []
        self.failures: dict[str, str] = {}
        self._next_id = 1000

    @property
    def name(self) -> str:
        return "fake"

    def fail(self, method: str, message: str = "boom") -> None:
        """Make ``method`` raise DeliveryError from now on."""
        self.failures[method] = message

    def _check(self, method: str) -> None:
        if method in self.failures:
            raise DeliveryError(self.failures[method])

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    async def start(self, handler, callback_handler) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def send_message(self, chat_id, text, *, reply_to=None, keyboard=None):
        self._check("send_message")
        self.messages.append(SentMessage(chat_id, text, reply_to, keyboard))
        return self._new_id()

    async def send_photo(self, chat_id, photo, *, caption):
        self._check("send_photo")
        self.photos.append(SentPhoto(chat_id, photo, caption))
        return self._new_id()

    async def edit(self, chat_id, message_id, text):
        self._check("edit")
        self.edits.append((chat_id, message_id, text))

    async def delete(self, chat_id, message_id):
        self._check("delete")
        self.deletes.append((chat_id, message_id))

    async def send_chat_action(self, chat_id, action):
        self._check("send_chat_action")
        self.actions.append(action)

    async def answer_callback(self, callback_id, text=None):
        self._check("answer_callback")
        self.answered.append(callback_id)

    async def resolve_file(self, file_id):
        self._check("resolve_file")
        self.resolved.append(file_id)
        return f"photos/{file_id}.jpg"

    async def download_file(self, file_path):
        self._check("download_file")
        return self.image_bytes


# =============================================================================
# Vision Fake
# =============================================================================


@dataclass
class FakeVision:
    """Vision service returning canned results.

    ``calls`` records (method, threshold) pairs. Setting ``error`` makes every
    call raise it. With ``gate`` set, calls wait on it before returning.
    """

    faces: FaceResult = field(
        default_factory=lambda: FaceResult(width=100, height=100, faces=[])
    )
    products: ProductResult = field(
        default_factory=lambda: ProductResult(width=100, height=100, objects=[])
    )
    nsfw: NSFWResult = field(
        default_factory=lambda: NSFWResult(normal=0.951, soft=0.03, adult=0.019)
    )
    tags: TagResult = field(
        default_factory=lambda: TagResult(labels=[], localized_labels=[])
    )
    poses: PoseResult = field(default_factory=lambda: PoseResult(poses=[]))
    texts: TextResult = field(default_factory=lambda: TextResult(blocks=[]))
    error: VisionAPIError | None = None
    gate: asyncio.Event | None = None
    calls: list[tuple[str, Any]] = field(default_factory=list)
    active: int = 0
    max_active: int = 0

    async def _call(self, method: str, result: Any, threshold: Any = None) -> Any:
        self.calls.append((method, threshold))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.error is not None:
                raise self.error
            return result
        finally:
            self.active -= 1

    async def detect_faces(self, image, threshold):
        return await self._call("detect_faces", self.faces, threshold)

    async def detect_products(self, image, threshold):
        return await self._call("detect_products", self.products, threshold)

    async def detect_nsfw(self, image):
        return await self._call("detect_nsfw", self.nsfw)

    async def generate_tags(self, image):
        return await self._call("generate_tags", self.tags)

    async def analyze_poses(self, image):
        return await self._call("analyze_poses", self.poses)

    async def extract_texts(self, image):
        return await self._call("extract_texts", self.texts)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def registry() -> CommandRegistry:
    return CommandRegistry()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def vision() -> FakeVision:
    return FakeVision()


@pytest.fixture
def dispatcher(provider, vision, registry) -> RequestDispatcher:
    return RequestDispatcher(
        provider=provider,
        vision=vision,
        renderer=AnnotationRenderer(),
        registry=registry,
        store=FileReferenceStore(),
        face_threshold=0.7,
        product_threshold=0.6,
    )


def image_message(file_id: str = "file-abc", message_id: str = "10") -> IncomingMessage:
    return IncomingMessage(
        id=message_id,
        chat_id="42",
        user_id="7",
        text="",
        username="alice",
        images=[
            ImageAttachment(file_id=file_id, file_size=2048, mime_type="image/jpeg")
        ],
    )


def text_message(text: str = "/start") -> IncomingMessage:
    return IncomingMessage(id="11", chat_id="42", user_id="7", text=text)


def callback(data: str, message_id: str = "500") -> IncomingCallback:
    return IncomingCallback(
        id="cb-1",
        chat_id="42",
        message_id=message_id,
        data=data,
        username="alice",
    )
