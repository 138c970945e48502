from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

HOME_CONFIG_PATH = Path.home() / ".pollbot" / "pollbot.toml"


class ConfigError(RuntimeError):
    pass


def resolve_config_path(path: str | Path | None) -> Path:
    return Path(path).expanduser() if path else HOME_CONFIG_PATH


def read_config(cfg_path: Path) -> dict[str, Any]:
    """Parse the TOML config file into the table the settings are built from."""
    if cfg_path.is_dir():
        raise ConfigError(f"Config path {cfg_path} is not a file.")
    try:
        with cfg_path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {exc}") from None
    except UnicodeDecodeError as exc:
        raise ConfigError(f"Config file {cfg_path} is not UTF-8: {exc.reason}") from None
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {cfg_path}: {exc}") from exc
