"""Domain models (Pydantic v2).

These models describe *what* a configured server is, not how it is reached.
They are frozen: the registry replaces records instead of mutating them, so a
snapshot handed to an in-flight fan-out never changes under it.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict

DEFAULT_HTTP_PORT = 8096

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_server_url(value: str) -> str:
    """Normalize a user-typed server address.

    - trims whitespace and trailing slashes
    - assumes `http://` when no scheme is given
    - adds the default Jellyfin port to plain `http` URLs without one
    """

    url = value.strip().rstrip("/")
    if not url:
        raise ValueError("server url must not be empty")
    if not _SCHEME_RE.match(url):
        url = f"http://{url}"

    parts = urlsplit(url)
    netloc = parts.netloc
    if parts.scheme.lower() == "http" and parts.port is None:
        netloc = f"{netloc}:{DEFAULT_HTTP_PORT}"
    return urlunsplit((parts.scheme.lower(), netloc, parts.path, parts.query, "")).rstrip("/")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ServerRecord(BaseModel):
    """A configured media server plus the user signed in on it."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque server identifier (unique within a registry).",
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=256,
        description="Display name.",
    )
    url: str = Field(
        ...,
        description="Base address, normalized (scheme, default port, no trailing slash).",
    )
    access_token: str = Field(
        ...,
        min_length=1,
        repr=False,
        description="Per-server credential.",
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="User identity on that server.",
    )
    username: str | None = Field(
        default=None,
        description="Human readable user name, if known.",
    )
    connected: bool = Field(
        default=True,
        description="Whether the most recent call against this server succeeded.",
    )
    added_date: datetime = Field(default_factory=_utcnow)
    last_connected: datetime | None = Field(
        default=None,
        description="Last time a call against this server succeeded (UTC).",
    )

    @field_validator("url")
    @classmethod
    def _normalize_url(cls, value: str) -> str:
        return normalize_server_url(value)


class ServersFile(BaseModel):
    """On-disk shape of the servers file."""

    model_config = ConfigDict(extra="ignore")

    active_server_id: str | None = None
    servers: list[ServerRecord] = Field(default_factory=list)
