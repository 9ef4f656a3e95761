"""Server command for running the bot."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError

from visionbot.config import BotConfig, ConfigError, load_config
from visionbot.render.fonts import FontError, FontLoader

logger = logging.getLogger(__name__)

# Time in-flight requests get to finish after a stop signal
SHUTDOWN_GRACE_SECONDS = 10.0


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
        verbose: Annotated[
            bool,
            typer.Option(
                "--verbose",
                "-v",
                help="Enable debug logging",
            ),
        ] = False,
    ) -> None:
        """Start the bot and poll Telegram for updates."""
        from visionbot.cli.console import error
        from visionbot.logging import configure_logging

        try:
            bot_config = load_config(config)
            bot_config.telegram_token()
            bot_config.vision_api_key()
        except (FileNotFoundError, ValueError, ValidationError, ConfigError) as e:
            error(f"Failed to load config: {e}")
            raise typer.Exit(1) from None

        configure_logging(
            level="DEBUG" if verbose or bot_config.logging.verbose else None,
            use_rich=True,
            log_to_file=bot_config.logging.log_to_file,
        )

        fonts = FontLoader(bot_config.render.font_path)
        try:
            fonts.verify()
        except FontError as e:
            error(str(e))
            raise typer.Exit(1) from None

        try:
            asyncio.run(_run_server(bot_config, fonts))
        except KeyboardInterrupt:
            # Use print here since the loop is gone
            print("\nServer stopped")


async def _run_server(bot_config: BotConfig, fonts: FontLoader) -> None:
    """Run the bot until SIGINT/SIGTERM."""
    import signal as signal_module

    from visionbot.commands import CommandRegistry
    from visionbot.dispatch import FileReferenceStore, RequestDispatcher
    from visionbot.providers.telegram import TelegramProvider
    from visionbot.render import AnnotationRenderer
    from visionbot.vision import KakaoVisionClient

    vision_config = bot_config.vision
    client = KakaoVisionClient(
        bot_config.vision_api_key(),
        base_url=vision_config.base_url,
        pose_url=vision_config.pose_url,
        timeout=vision_config.request_timeout_seconds,
        pose_score_threshold=vision_config.pose_score_threshold,
    )

    logger.info("Setting up Telegram provider")
    provider = TelegramProvider(
        bot_token=bot_config.telegram_token(),
        poll_timeout=bot_config.telegram.poll_timeout_seconds,
    )

    registry = CommandRegistry()
    dispatcher = RequestDispatcher(
        provider=provider,
        vision=client,
        renderer=AnnotationRenderer(fonts),
        registry=registry,
        store=FileReferenceStore(),
        face_threshold=vision_config.face_threshold,
        product_threshold=vision_config.product_threshold,
        jpeg_quality=bot_config.render.jpeg_quality,
        max_concurrent_jobs=bot_config.dispatch.max_concurrent_jobs,
    )
    logger.debug(f"Commands: {', '.join(spec.label for spec in registry)}")

    polling_task: asyncio.Task[None] | None = None
    loop = asyncio.get_running_loop()

    def handle_signal() -> None:
        if polling_task and not polling_task.done():
            polling_task.cancel()

    for sig in (signal_module.SIGTERM, signal_module.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    try:
        logger.info("Starting Telegram polling")
        polling_task = asyncio.create_task(
            provider.start(dispatcher.handle_message, dispatcher.handle_callback)
        )
        try:
            await polling_task
        except asyncio.CancelledError:
            logger.info("Telegram polling cancelled")
    finally:
        await _cleanup_server(dispatcher, provider, client)


async def _cleanup_server(dispatcher, provider, client) -> None:
    """Let in-flight requests finish briefly, then release resources."""
    if dispatcher.in_flight:
        logger.info(
            "draining_requests", extra={"requests.in_flight": dispatcher.in_flight}
        )
        try:
            await asyncio.wait_for(dispatcher.wait_idle(), SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            logger.warning("drain_timeout")
    await dispatcher.shutdown()

    for resource, method in [(provider, "stop"), (client, "close")]:
        try:
            await getattr(resource, method)()
        except Exception as e:
            logger.warning(f"Error during {method}: {e}")
