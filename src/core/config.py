"""Core configuration.

- Centralizes environment variables (pydantic-settings) away from the CLI.
- Adapters (HTTP client, servers file) and services read the same contract.
"""

from __future__ import annotations

import os
import sys
import uuid
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_DIR_NAME = "moonfin-pool"


def get_user_config_dir() -> Path:
    """Per-user configuration directory.

    `%APPDATA%` on Windows, `~/Library/Application Support` on macOS,
    `$XDG_CONFIG_HOME` (or `~/.config`) elsewhere.
    """

    home = Path.home()
    if sys.platform.startswith("win"):
        root = Path(os.environ.get("APPDATA") or home)
    elif sys.platform == "darwin":
        root = home / "Library" / "Application Support"
    else:
        root = Path(os.environ.get("XDG_CONFIG_HOME") or home / ".config")
    return root / APP_DIR_NAME


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def get_default_servers_path() -> Path:
    return get_user_config_dir() / "servers.json"


def read_env_file(path: Path) -> dict[str, str]:
    """`KEY=value` pairs of a .env file; comments, blanks and junk lines are skipped."""

    if not path.exists():
        return {}
    entries: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.strip().partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        entries[key] = value.strip().strip("\"'")
    return entries


def write_user_env_vars(values: dict[str, str | None]) -> Path:
    """Merge `values` into the user .env file; `None` values leave a key unchanged."""

    env_path = get_user_env_file()
    entries = read_env_file(env_path)
    entries.update({key: value for key, value in values.items() if value is not None})

    env_path.parent.mkdir(parents=True, exist_ok=True)
    body = "".join(f"{key}={entries[key]}\n" for key in sorted(entries))
    env_path.write_text(f"# {APP_DIR_NAME} user config (.env)\n{body}", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Application-wide settings.

    Every value can be overridden with a `MOONFIN_`-prefixed environment
    variable or an entry in `.env` (project first, then the user config dir).
    """

    model_config = SettingsConfigDict(
        env_prefix="MOONFIN_",
        extra="ignore",
        case_sensitive=False,
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    http_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Timeout per HTTP request (seconds).",
    )
    server_timeout_seconds: float | None = Field(
        default=15.0,
        gt=0,
        description=(
            "Upper bound for one server's answer during a fan-out (seconds). "
            "A server that exceeds it is reported as failed and marked offline. "
            "Unset to wait indefinitely."
        ),
    )
    user_agent: str = Field(
        default="moonfin-pool/0.1",
        min_length=1,
        description="User-Agent sent to media servers.",
    )

    client_name: str = Field(
        default="Moonfin",
        min_length=1,
        description="Client name advertised in the MediaBrowser authorization header.",
    )
    device_name: str = Field(
        default="Smart TV",
        min_length=1,
        description="Device name advertised in the MediaBrowser authorization header.",
    )
    device_id: str = Field(
        default_factory=lambda: f"moonfin_{uuid.uuid4().hex[:16]}",
        min_length=1,
        description="Stable device identifier; persist it with `doctor save-device-id`.",
    )
    client_version: str = Field(
        default="0.1.0",
        min_length=1,
        description="Client version advertised in the MediaBrowser authorization header.",
    )

    servers_path: Path = Field(
        default_factory=get_default_servers_path,
        description="JSON file holding the configured servers and the active one.",
    )

    ignore_errors: bool = Field(
        default=True,
        description="Drop per-server failures from aggregated results instead of reporting them.",
    )

    resume_limit: int = Field(default=20, ge=1, le=500)
    next_up_limit: int = Field(default=20, ge=1, le=500)
    search_limit: int = Field(default=20, ge=1, le=500)
    latest_limit: int = Field(default=50, ge=1, le=500)
    random_limit: int = Field(default=10, ge=1, le=500)

    log_level: str = Field(
        default="WARNING",
        description="Root log level for the CLI (DEBUG, INFO, WARNING, ERROR).",
    )
