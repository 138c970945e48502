from __future__ import annotations

from pathlib import Path

import anyio
import typer

from . import __version__
from .config import ConfigError
from .logging import setup_logging
from .loop import run_main_loop
from .settings import PollbotSettings, load_settings
from .telegram.api_schemas import User
from .telegram.client import TelegramClient
from .telegram.outcome import CallOutcome, Failure

_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to pollbot.toml (defaults to ~/.pollbot/pollbot.toml).",
)


def _print_version_and_exit() -> None:
    typer.echo(__version__)
    raise typer.Exit()


def _version_callback(value: bool) -> None:
    if value:
        _print_version_and_exit()


def _exit_config_error(exc: ConfigError, *, code: int = 2) -> None:
    typer.echo(f"error: {exc}", err=True)
    raise typer.Exit(code=code) from exc


def _load_settings_or_exit(config: Path | None) -> PollbotSettings:
    try:
        settings, _ = load_settings(config)
    except ConfigError as exc:
        _exit_config_error(exc)
    return settings


def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Poll Telegram for updates and dispatch commands to handlers."""


def run(
    config: Path | None = _CONFIG_OPTION,
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
) -> None:
    """Start polling until SIGINT/SIGTERM."""
    setup_logging(debug=debug)
    settings = _load_settings_or_exit(config)
    anyio.run(run_main_loop, settings)


async def _get_me(settings: PollbotSettings) -> CallOutcome[User]:
    async with TelegramClient(settings.token) as client:
        return await client.get_me()


def check(
    config: Path | None = _CONFIG_OPTION,
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
) -> None:
    """Validate the config and the bot token."""
    setup_logging(debug=debug)
    settings = _load_settings_or_exit(config)
    outcome = anyio.run(_get_me, settings)
    if isinstance(outcome, Failure):
        typer.echo(f"error: getMe failed ({outcome.kind.value}): {outcome.message}", err=True)
        raise typer.Exit(code=1)
    me = outcome.value
    typer.echo(f"ok: @{me.username or me.first_name} (id {me.id})")


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="Telegram command bot with resilient calls and bounded dispatch.",
    )
    app.command(name="run")(run)
    app.command(name="check")(check)
    app.callback()(app_main)
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()
