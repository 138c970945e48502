import logging
import os
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

from pollbot.logging import get_logger, redact_tokens, setup_logging

TOKEN = "123456:abcDEF_secretXYZ"
SRC = Path(__file__).resolve().parents[1] / "src"


def test_redact_tokens_walks_nested_values() -> None:
    url = "https://api.telegram.org/bot123:abcDEF_ghij/getMe"
    event = {
        "event": "telegram.server_error",
        "url": url,
        "nested": {"urls": [url, "plain"]},
        "status": 500,
    }

    out = redact_tokens(None, "warning", event)

    assert out["url"] == "https://api.telegram.org/bot[REDACTED]/getMe"
    assert out["nested"]["urls"][0] == out["url"]
    assert out["nested"]["urls"][1] == "plain"
    assert out["status"] == 500
    assert "abcDEF" not in repr(out)


def test_stdlib_records_are_redacted(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging(debug=True)

    logging.getLogger("httpx").info(
        "HTTP Request: POST %s", f"https://api.telegram.org/bot{TOKEN}/getUpdates"
    )
    get_logger("pollbot.test").info(
        "telegram.request", url=f"https://api.telegram.org/bot{TOKEN}/getMe"
    )

    out = capsys.readouterr().out
    assert TOKEN not in out
    assert out.count("bot[REDACTED]") == 2


def test_setup_logging_is_idempotent() -> None:
    setup_logging()
    setup_logging(debug=True)

    ours = [
        handler
        for handler in logging.getLogger().handlers
        if type(handler).__name__ == "_StdoutHandler"
    ]
    assert len(ours) == 1


def test_http_client_logs_are_quiet_unless_debug() -> None:
    setup_logging()
    assert logging.getLogger("httpx").getEffectiveLevel() == logging.WARNING
    setup_logging(debug=True)
    assert logging.getLogger("httpx").getEffectiveLevel() == logging.DEBUG


def test_no_token_on_stdout_in_fresh_interpreter() -> None:
    script = textwrap.dedent(
        f"""
        import anyio
        import httpx

        from pollbot.logging import setup_logging
        from pollbot.telegram.client import TelegramClient


        def handler(request):
            return httpx.Response(200, json={{"ok": True, "result": []}}, request=request)


        async def main():
            http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            async with TelegramClient({TOKEN!r}, http_client=http) as client:
                await client.get_updates(offset=None, timeout_s=0)
            await http.aclose()


        setup_logging(debug=True)
        anyio.run(main)
        """
    )
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(
        part for part in (str(SRC), env.get("PYTHONPATH")) if part
    )

    result = subprocess.run(
        [sys.executable, "-c", script],
        capture_output=True,
        text=True,
        env=env,
        check=True,
        timeout=60,
    )

    assert TOKEN not in result.stdout
    assert TOKEN not in result.stderr
    assert "HTTP Request" in result.stdout
    assert "bot[REDACTED]" in result.stdout
