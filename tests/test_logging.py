"""Tests for logging configuration and utilities."""

import json
import logging
import os
import time

from visionbot.logging import (
    DEFAULT_REDACT_PATTERNS,
    ComponentFormatter,
    JSONLHandler,
    SecretRedactor,
    extra_fields,
    prune_old_logs,
)


class TestSecretRedactor:
    """Tests for SecretRedactor class."""

    def test_redacts_telegram_bot_token(self):
        redactor = SecretRedactor()
        text = "Bot token: 1234567890:ABCdefGHIjklMNOpqrSTUvwxYZ123456789"
        result = redactor.redact(text)
        assert "ABCdefGHIjklMNOpqrSTUvwxYZ" not in result
        assert "1234" in result

    def test_redacts_kakao_authorization(self):
        redactor = SecretRedactor()
        text = "Authorization: KakaoAK 0123456789abcdef0123456789abcdef"
        result = redactor.redact(text)
        assert "KakaoAK 0123...cdef" in result
        assert "456789abcdef0123456789ab" not in result

    def test_redacts_token_in_file_url(self):
        redactor = SecretRedactor()
        text = (
            "GET https://api.telegram.org/file/"
            "bot1234567890:ABCdefGHIjklMNOpqrSTUvwxYZ123456789/photos/file_1.jpg"
        )
        result = redactor.redact(text)
        assert "ABCdefGHIjklMNOpqrSTUvwxYZ" not in result
        assert "/photos/file_1.jpg" in result

    def test_redacts_env_style_assignments(self):
        redactor = SecretRedactor()
        result = redactor.redact("KAKAO_REST_API_KEY=abcdefghijklmnopqrstuvwxyz")
        assert "KAKAO_REST_API_KEY=" in result
        assert "abcdefghijklmnopqrstuvwxyz" not in result

    def test_preserves_non_secrets(self):
        redactor = SecretRedactor()
        text = "vision_request command=detect_faces username=alice"
        assert redactor.redact(text) == text

    def test_disabled_redactor_passes_through(self):
        redactor = SecretRedactor(enabled=False)
        text = "KAKAO_REST_API_KEY=abcdefghijklmnopqrstuvwxyz"
        assert redactor.redact(text) == text

    def test_all_patterns_compile(self):
        import re

        for pattern in DEFAULT_REDACT_PATTERNS:
            re.compile(pattern)


class TestExtraFields:
    """Tests for structured extra field handling."""

    def _record(self, **extra):
        logger = logging.getLogger("visionbot.dispatch.dispatcher")
        return logger.makeRecord(
            logger.name,
            logging.INFO,
            __file__,
            1,
            "vision_request",
            None,
            None,
            extra=extra,
        )

    def test_extra_fields_collected(self):
        record = self._record(command="tag", username="alice")
        assert extra_fields(record) == {"command": "tag", "username": "alice"}

    def test_formatter_appends_fields(self):
        record = self._record(command="tag")
        line = ComponentFormatter("%(component)s | %(message)s").format(record)
        assert line == "dispatch | vision_request command=tag"

    def test_jsonl_handler_writes_extra(self, tmp_path):
        handler = JSONLHandler(tmp_path)
        try:
            handler.emit(self._record(command="tag", **{"file.id": "abc"}))
        finally:
            handler.close()

        (log_file,) = tmp_path.glob("*.jsonl")
        entry = json.loads(log_file.read_text().strip())
        assert entry["component"] == "dispatch"
        assert entry["message"] == "vision_request"
        assert entry["extra"] == {"command": "tag", "file.id": "abc"}


class TestPruneOldLogs:
    """Tests for prune_old_logs function."""

    def test_deletes_old_files(self, tmp_path):
        old_log = tmp_path / "2024-01-01.jsonl"
        old_log.write_text('{"test": "old"}\n')
        old_time = time.time() - (10 * 24 * 60 * 60)
        os.utime(old_log, (old_time, old_time))

        recent_log = tmp_path / "2024-01-10.jsonl"
        recent_log.write_text('{"test": "recent"}\n')

        deleted = prune_old_logs(tmp_path, retention_days=7)

        assert deleted == 1
        assert not old_log.exists()
        assert recent_log.exists()

    def test_ignores_non_jsonl_files(self, tmp_path):
        old_txt = tmp_path / "old.txt"
        old_txt.write_text("old text")
        old_time = time.time() - (10 * 24 * 60 * 60)
        os.utime(old_txt, (old_time, old_time))

        assert prune_old_logs(tmp_path, retention_days=7) == 0
        assert old_txt.exists()

    def test_handles_nonexistent_directory(self, tmp_path):
        assert prune_old_logs(tmp_path / "nonexistent") == 0
