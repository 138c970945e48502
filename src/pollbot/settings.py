from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import InitSettingsSource

from .config import ConfigError, read_config, resolve_config_path


class RetrySettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=5, ge=1)
    base_delay_s: float = Field(default=0.5, ge=0)


class PollbotSettings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        env_prefix="POLLBOT__",
        env_nested_delimiter="__",
        env_file=".env",
    )

    bot_token: SecretStr
    admin_id: int | None = None

    concurrency_limit: int | None = Field(default=None, ge=1)
    handler_timeout_s: float | None = Field(default=None, gt=0)

    poll_timeout_s: int = Field(default=30, ge=0)
    poll_cooldown_s: float = Field(default=2.0, ge=0)
    command_cooldown_s: float = Field(default=2.0, ge=0)

    autosave_interval_s: float = Field(default=30.0, gt=0)
    data_dir: Path = Path("data")
    upload_path: Path = Path("README.md")

    retry: RetrySettings = Field(default_factory=RetrySettings)

    @field_validator("bot_token", mode="before")
    @classmethod
    def _validate_bot_token(cls, value: Any) -> Any:
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        if not isinstance(value, str):
            raise ValueError("bot_token must be a string")
        cleaned = value.strip()
        if ":" not in cleaned or len(cleaned) <= 10:
            raise ValueError("bot_token looks invalid (expected a token like 123:ABC)")
        return cleaned

    @field_validator("admin_id", mode="before")
    @classmethod
    def _validate_admin_id(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            raise ValueError("admin_id must be an integer")
        return value

    @property
    def token(self) -> str:
        return self.bot_token.get_secret_value()


def _load_settings_from_table(table: dict[str, Any], source: Path | str) -> PollbotSettings:
    class Bound(PollbotSettings):
        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls,
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ):
            return (
                init_settings,
                env_settings,
                dotenv_settings,
                InitSettingsSource(settings_cls, init_kwargs=table),
                file_secret_settings,
            )

    try:
        return Bound()
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {source}: {exc}") from exc


def load_settings(path: str | Path | None = None) -> tuple[PollbotSettings, Path | None]:
    """Load settings from the TOML file (if present) layered under the environment.

    An explicit ``path`` must exist; the default home config is optional so the
    bot can be configured from ``POLLBOT__*`` variables alone.
    """
    cfg_path = resolve_config_path(path)
    if path is not None or cfg_path.exists():
        return _load_settings_from_table(read_config(cfg_path), cfg_path), cfg_path
    return _load_settings_from_table({}, "environment"), None
