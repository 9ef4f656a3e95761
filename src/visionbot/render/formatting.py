"""Text formatting for results delivered as messages or captions."""

from __future__ import annotations

from visionbot.vision.types import NSFWResult, TagResult, TextResult


def format_percentage(probability: float) -> str:
    """Format a [0, 1] probability as a percentage with two decimals."""
    return f"{probability * 100:.2f}%"


def format_nsfw(result: NSFWResult) -> list[str]:
    return [
        f"Normal: {format_percentage(result.normal)}",
        f"Soft: {format_percentage(result.soft)}",
        f"Adult: {format_percentage(result.adult)}",
    ]


def format_tags(result: TagResult) -> list[str]:
    return [
        f"{label} ({localized})"
        for label, localized in zip(result.labels, result.localized_labels)
    ]


def format_texts(result: TextResult) -> str:
    return ", ".join(result.words)


def result_caption(label: str, lines: list[str] | str | None = None) -> str:
    """Caption or message body for a finished command."""
    if not lines:
        return f"Process result of '{label}'"
    body = lines if isinstance(lines, str) else "\n".join(lines)
    return f"Process result of '{label}':\n\n{body}"
