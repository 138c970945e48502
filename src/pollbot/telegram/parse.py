from __future__ import annotations

import shlex

COMMAND_MARKER = "/"


def is_command(text: str | None) -> bool:
    return bool(text) and text.startswith(COMMAND_MARKER)


def normalize_command(name: str) -> str:
    return name.lstrip(COMMAND_MARKER)


def parse_slash_command(text: str) -> tuple[str | None, str]:
    """Split ``/name@bot rest`` into ``("name", "rest")``.

    The name keeps its case. ``rest`` is everything after the first whitespace
    character following the command token, unmodified.
    """
    if not is_command(text):
        return None, text
    for index, char in enumerate(text):
        if char.isspace():
            token, rest = text[:index], text[index + 1 :]
            break
    else:
        token, rest = text, ""
    command = normalize_command(token)
    if "@" in command:
        command = command.split("@", 1)[0]
    if not command:
        return None, text
    return command, rest


def split_command_args(text: str) -> tuple[str, ...]:
    if not text.strip():
        return ()
    try:
        return tuple(shlex.split(text))
    except ValueError:
        return tuple(text.split())
