"""Tests for CLI commands."""

from unittest.mock import patch

import pytest
from PIL import Image
from typer.testing import CliRunner

from tests.conftest import FakeVision, make_jpeg
from visionbot.cli.app import app
from visionbot.vision.base import VisionAPIError
from visionbot.vision.types import Face, FaceResult


class ContextFakeVision(FakeVision):
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    monkeypatch.delenv("KAKAO_REST_API_KEY", raising=False)
    path = tmp_path / "config.toml"
    path.write_text('[vision]\napi_key = "kakao-key"\n')
    return path


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "photo.jpg"
    path.write_bytes(make_jpeg())
    return path


def run_analyze(cli_runner, vision, *args):
    with patch("visionbot.vision.KakaoVisionClient", return_value=vision):
        return cli_runner.invoke(app, ["analyze", *args])


class TestServeCommand:
    """Tests for 'visionbot serve' startup checks."""

    def test_missing_config_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            app, ["serve", "--config", str(tmp_path / "missing.toml")]
        )
        assert result.exit_code == 1
        assert "Failed to load config" in result.stdout

    def test_missing_bot_token(self, cli_runner, config_file):
        result = cli_runner.invoke(app, ["serve", "--config", str(config_file)])
        assert result.exit_code == 1
        assert "TELEGRAM_BOT_TOKEN" in result.stdout

    def test_verbose_enables_debug_logging(
        self, cli_runner, config_file, monkeypatch
    ):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123456:test-token")
        with (
            patch("visionbot.logging.configure_logging") as configure,
            patch("visionbot.cli.commands.serve._run_server"),
            patch("visionbot.cli.commands.serve.asyncio.run") as run,
        ):
            result = cli_runner.invoke(
                app, ["serve", "--config", str(config_file), "--verbose"]
            )

        assert result.exit_code == 0
        assert configure.call_args.kwargs["level"] == "DEBUG"
        run.assert_called_once()


class TestAnalyzeCommand:
    """Tests for 'visionbot analyze'."""

    def test_text_result_printed(self, cli_runner, config_file, image_file):
        vision = ContextFakeVision()

        result = run_analyze(
            cli_runner,
            vision,
            str(image_file),
            "--command",
            "detect_nsfw",
            "--config",
            str(config_file),
        )

        assert result.exit_code == 0
        assert "Normal: 95.10%" in result.stdout
        assert vision.calls == [("detect_nsfw", None)]

    def test_annotated_image_written(
        self, cli_runner, config_file, image_file, tmp_path
    ):
        vision = ContextFakeVision(
            faces=FaceResult(
                width=100, height=100, faces=[Face(x=0.1, y=0.1, w=0.5, h=0.5)]
            )
        )
        output = tmp_path / "out.jpg"

        result = run_analyze(
            cli_runner,
            vision,
            str(image_file),
            "--command",
            "detect_faces",
            "--output",
            str(output),
            "--config",
            str(config_file),
        )

        assert result.exit_code == 0
        assert Image.open(output).size == (100, 100)

    def test_empty_result(self, cli_runner, config_file, image_file):
        result = run_analyze(
            cli_runner,
            ContextFakeVision(),
            str(image_file),
            "--command",
            "detect_faces",
            "--config",
            str(config_file),
        )

        assert result.exit_code == 0
        assert "No face detected on this image." in result.stdout

    def test_remote_error(self, cli_runner, config_file, image_file):
        vision = ContextFakeVision(error=VisionAPIError("HTTP 401: wrong appKey"))

        result = run_analyze(
            cli_runner,
            vision,
            str(image_file),
            "--command",
            "tag",
            "--config",
            str(config_file),
        )

        assert result.exit_code == 1
        assert "wrong appKey" in result.stdout
