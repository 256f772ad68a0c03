"""Tests for the command-line entry point and logging helpers."""

from unittest.mock import patch

from maestro.__main__ import main, parse_args
from maestro.config import settings
from maestro.utils.logging import truncate_for_log, truncate_text


def test_parse_args_defaults_follow_settings() -> None:
    args = parse_args([])
    assert args.host == settings.api_host
    assert args.port == settings.api_port
    assert not args.reload


def test_main_serves_app() -> None:
    with patch("maestro.__main__.uvicorn.run") as run:
        main(["--port", "9000", "--log-level", "DEBUG"])
    run.assert_called_once_with(
        "maestro.server:app",
        host=settings.api_host,
        port=9000,
        log_level="debug",
        reload=False,
    )


def test_truncation_helpers() -> None:
    assert truncate_text("abcdef", 3) == "abc..."
    assert truncate_text("abc", 3) == "abc"
    assert truncate_text("abcdef", 0) == "abcdef"
    assert truncate_for_log("abcdef", 2) == "ab... <truncated 4 chars>"
