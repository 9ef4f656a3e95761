"""Supported analysis commands and their callback wire tokens."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

# Literal callback payload for the cancel button
CANCEL_TOKEN = "cancel"


class VisionCommand(str, Enum):
    """Analysis kinds offered for every received image."""

    DETECT_FACES = "detect_faces"
    DETECT_PRODUCTS = "detect_products"
    DETECT_NSFW = "detect_nsfw"
    TAG = "tag"
    ANALYZE_POSES = "analyze_poses"
    EXTRACT_TEXTS = "extract_texts"
    MASK_FACES = "mask_faces"

    @property
    def produces_image(self) -> bool:
        """Whether the reply is an annotated image rather than text."""
        return self in _IMAGE_COMMANDS


_IMAGE_COMMANDS = frozenset(
    {
        VisionCommand.DETECT_FACES,
        VisionCommand.DETECT_PRODUCTS,
        VisionCommand.ANALYZE_POSES,
        VisionCommand.MASK_FACES,
    }
)


@dataclass(frozen=True)
class CommandSpec:
    command: VisionCommand
    token: str
    label: str


DEFAULT_COMMANDS: tuple[CommandSpec, ...] = (
    CommandSpec(VisionCommand.DETECT_FACES, "fd", "Detect Faces"),
    CommandSpec(VisionCommand.DETECT_PRODUCTS, "pd", "Detect Products"),
    CommandSpec(VisionCommand.DETECT_NSFW, "ns", "Detect NSFW"),
    CommandSpec(VisionCommand.TAG, "tg", "Tag This Image"),
    CommandSpec(VisionCommand.ANALYZE_POSES, "ps", "Analyze Poses"),
    CommandSpec(VisionCommand.EXTRACT_TEXTS, "tx", "Extract Texts"),
    # fun commands
    CommandSpec(VisionCommand.MASK_FACES, "mf", "Mask Faces"),
)


class RegistryError(Exception):
    """The command table is inconsistent."""


class CommandRegistry:
    """Bijective lookup between commands and fixed-width wire tokens.

    Built once; construction fails when tokens repeat, differ in width or
    shadow the cancel payload.
    """

    def __init__(self, specs: Iterable[CommandSpec] = DEFAULT_COMMANDS) -> None:
        self._specs: list[CommandSpec] = list(specs)
        if not self._specs:
            raise RegistryError("At least one command is required")

        self._by_command: dict[VisionCommand, CommandSpec] = {}
        self._by_token: dict[str, CommandSpec] = {}
        widths = set()

        for spec in self._specs:
            if not spec.token:
                raise RegistryError(f"Empty token for {spec.command.value}")
            if spec.command in self._by_command:
                raise RegistryError(f"Duplicate command: {spec.command.value}")
            if spec.token in self._by_token:
                other = self._by_token[spec.token].command.value
                raise RegistryError(
                    f"Token '{spec.token}' used by both {other} and {spec.command.value}"
                )
            if CANCEL_TOKEN.startswith(spec.token):
                raise RegistryError(
                    f"Token '{spec.token}' is ambiguous with '{CANCEL_TOKEN}'"
                )
            widths.add(len(spec.token))
            self._by_command[spec.command] = spec
            self._by_token[spec.token] = spec

        if len(widths) != 1:
            raise RegistryError(f"Tokens must share one width, got {sorted(widths)}")
        self._token_width = widths.pop()

    @property
    def token_width(self) -> int:
        return self._token_width

    def __iter__(self) -> Iterator[CommandSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, command: object) -> bool:
        return command in self._by_command

    def token_for(self, command: VisionCommand) -> str:
        return self._by_command[command].token

    def command_for(self, token: str) -> VisionCommand | None:
        spec = self._by_token.get(token)
        return spec.command if spec else None

    def label_for(self, command: VisionCommand) -> str:
        return self._by_command[command].label
