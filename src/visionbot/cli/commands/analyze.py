"""Run a single analysis locally, without Telegram."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError

from visionbot.commands import VisionCommand


def register(app: typer.Typer) -> None:
    """Register the analyze command."""

    @app.command()
    def analyze(
        image: Annotated[
            Path,
            typer.Argument(
                exists=True,
                dir_okay=False,
                readable=True,
                help="Image file to analyze",
            ),
        ],
        command: Annotated[
            VisionCommand,
            typer.Option(
                "--command",
                "-m",
                help="Analysis to run",
            ),
        ] = VisionCommand.DETECT_FACES,
        output: Annotated[
            Path | None,
            typer.Option(
                "--output",
                "-o",
                help="Where to write the annotated image",
            ),
        ] = None,
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Send IMAGE to the vision API and show the result."""
        from visionbot.cli.console import error
        from visionbot.config import ConfigError, load_config
        from visionbot.logging import configure_logging

        try:
            bot_config = load_config(config)
            bot_config.vision_api_key()
        except (FileNotFoundError, ValueError, ValidationError, ConfigError) as e:
            error(f"Failed to load config: {e}")
            raise typer.Exit(1) from None

        configure_logging(level="DEBUG" if bot_config.logging.verbose else "WARNING")

        if output is None:
            output = image.with_name(f"{image.stem}.{command.value}.jpg")

        ok = asyncio.run(_analyze(bot_config, image, command, output))
        if not ok:
            raise typer.Exit(1)


async def _analyze(bot_config, image: Path, command: VisionCommand, output: Path) -> bool:
    from visionbot.cli.console import console, dim, error, success, warning
    from visionbot.commands import CommandRegistry
    from visionbot.dispatch.dispatcher import (
        EMPTY_RESULT_MESSAGES,
        analyze,
        decode_image,
        encode_jpeg,
        format_result,
    )
    from visionbot.render import AnnotationRenderer, FontError, FontLoader
    from visionbot.render.formatting import result_caption
    from visionbot.vision import KakaoVisionClient, VisionAPIError, is_empty

    vision_config = bot_config.vision
    label = CommandRegistry().label_for(command)
    data = image.read_bytes()

    async with KakaoVisionClient(
        bot_config.vision_api_key(),
        base_url=vision_config.base_url,
        pose_url=vision_config.pose_url,
        timeout=vision_config.request_timeout_seconds,
        pose_score_threshold=vision_config.pose_score_threshold,
    ) as client:
        try:
            result = await analyze(
                client,
                command,
                data,
                face_threshold=vision_config.face_threshold,
                product_threshold=vision_config.product_threshold,
            )
        except VisionAPIError as e:
            error(f"{label} failed: {e}")
            return False

    if is_empty(result):
        warning(EMPTY_RESULT_MESSAGES[command])
        return True

    if not command.produces_image:
        console.print(format_result(label, result), markup=False, highlight=False)
        return True

    renderer = AnnotationRenderer(FontLoader(bot_config.render.font_path))
    try:
        rendered = renderer.render(decode_image(data), result, command)
    except (OSError, ValueError, FontError) as e:
        error(f"Failed to render image: {e}")
        return False

    output.write_bytes(encode_jpeg(rendered.image, bot_config.render.jpeg_quality))
    for failure in rendered.label_failures:
        warning(f"Label not drawn: {failure.text} ({failure.error})")
    console.print(result_caption(label, rendered.classes), markup=False)
    success(f"Wrote {output}")
    if rendered.partial:
        dim("Some labels are missing from the image")
    return True
