"""httpx wrapper.

- Standardizes timeouts, headers and the MediaBrowser authorization header.
- Easy to swap for a mocked transport in tests.
"""

from __future__ import annotations

import httpx

from core.config import AppSettings


def build_authorization_header(settings: AppSettings, access_token: str | None = None) -> str:
    """Value for `X-Emby-Authorization`, with the token when there is one."""

    header = (
        f'MediaBrowser Client="{settings.client_name}", Device="{settings.device_name}", '
        f'DeviceId="{settings.device_id}", Version="{settings.client_version}"'
    )
    if access_token:
        header += f', Token="{access_token}"'
    return header


def build_async_client(
    settings: AppSettings | None = None,
    *,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an `httpx.AsyncClient` with the application defaults.

    Per-server headers (authorization) are added per request; this client is
    shared by every server in the pool.
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
        headers=headers,
        transport=transport,
    )
