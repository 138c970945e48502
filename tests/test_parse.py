import pytest

from pollbot.telegram.parse import (
    is_command,
    normalize_command,
    parse_slash_command,
    split_command_args,
)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("/echo hello world", ("echo", "hello world")),
        ("/echo  two  spaces", ("echo", " two  spaces")),
        ("/ping", ("ping", "")),
        ("/ping@pollbot_bot", ("ping", "")),
        ("/set@pollbot_bot key value", ("set", "key value")),
        ("/Echo Hi", ("Echo", "Hi")),
        ("/echo\nline two", ("echo", "line two")),
        ("/", (None, "/")),
        ("hello", (None, "hello")),
    ],
)
def test_parse_slash_command(text: str, expected: tuple[str | None, str]) -> None:
    assert parse_slash_command(text) == expected


def test_is_command() -> None:
    assert is_command("/start")
    assert not is_command("start")
    assert not is_command("")
    assert not is_command(None)


def test_normalize_command() -> None:
    assert normalize_command("/help") == "help"
    assert normalize_command("help") == "help"


def test_split_command_args() -> None:
    assert split_command_args('a "b c" d') == ("a", "b c", "d")
    assert split_command_args("   ") == ()
    assert split_command_args('unbalanced "quote') == ("unbalanced", '"quote')
