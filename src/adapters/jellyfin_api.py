"""Jellyfin HTTP procedures.

Each public coroutine is a per-server procedure usable in an
`OperationDescriptor`: the server address comes first, the user id and access
token arrive as the `user_id` / `access_token` keywords. Failures surface as
`TransportError`.

Only the endpoints the pool aggregates are covered.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from adapters.http_client import build_async_client, build_authorization_header
from core.config import AppSettings
from core.errors import TransportError

logger = logging.getLogger(__name__)

SEARCH_ITEM_TYPES = "Movie,Series,Episode,Audio,Person"
CARD_FIELDS = "PrimaryImageAspectRatio,ProductionYear"

_CONTENT_TYPES = {
    "movies": "Movie",
    "tv": "Series",
}


def _clean_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    if not params:
        return {}
    out: dict[str, Any] = {}
    for key, value in params.items():
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        out[key] = value
    return out


class JellyfinAPI:
    """Thin async client shared by every server of a pool."""

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "JellyfinAPI":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = build_async_client(self._settings)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        base_url: str,
        path: str,
        *,
        access_token: str | None,
        method: str = "GET",
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        url = f"{base_url.rstrip('/')}{path}"
        headers = {
            "X-Emby-Authorization": build_authorization_header(self._settings, access_token),
        }
        logger.debug("%s %s", method, url)
        try:
            response = await self.client.request(
                method,
                url,
                params=_clean_params(params),
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if response.is_error:
            raise TransportError(
                f"API Error: {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Invalid JSON from {url}", status_code=response.status_code) from exc

    async def get_public_info(
        self,
        base_url: str,
        *,
        user_id: str | None = None,
        access_token: str | None = None,
    ) -> dict[str, Any]:
        return await self._request(base_url, "/System/Info/Public", access_token=access_token)

    async def get_user_views(self, base_url: str, *, user_id: str, access_token: str) -> dict[str, Any]:
        return await self._request(base_url, f"/Users/{user_id}/Views", access_token=access_token)

    async def get_items(
        self,
        base_url: str,
        params: Mapping[str, Any] | None = None,
        *,
        user_id: str,
        access_token: str,
    ) -> dict[str, Any]:
        return await self._request(
            base_url,
            f"/Users/{user_id}/Items",
            access_token=access_token,
            params=params,
        )

    async def get_item(self, base_url: str, item_id: str, *, user_id: str, access_token: str) -> dict[str, Any]:
        return await self._request(base_url, f"/Users/{user_id}/Items/{item_id}", access_token=access_token)

    async def get_resume_items(
        self,
        base_url: str,
        limit: int = 12,
        *,
        user_id: str,
        access_token: str,
    ) -> dict[str, Any]:
        return await self._request(
            base_url,
            f"/Users/{user_id}/Items/Resume",
            access_token=access_token,
            params={"Limit": limit, "MediaTypes": "Video"},
        )

    async def get_next_up(
        self,
        base_url: str,
        limit: int = 24,
        series_id: str | None = None,
        *,
        user_id: str,
        access_token: str,
    ) -> dict[str, Any]:
        return await self._request(
            base_url,
            "/Shows/NextUp",
            access_token=access_token,
            params={"UserId": user_id, "Limit": limit, "SeriesId": series_id},
        )

    async def search(
        self,
        base_url: str,
        term: str,
        limit: int = 150,
        *,
        user_id: str,
        access_token: str,
    ) -> dict[str, Any]:
        return await self._request(
            base_url,
            f"/Users/{user_id}/Items",
            access_token=access_token,
            params={
                "searchTerm": term,
                "Limit": limit,
                "Recursive": True,
                "IncludeItemTypes": SEARCH_ITEM_TYPES,
                "Fields": CARD_FIELDS,
            },
        )

    async def get_latest(
        self,
        base_url: str,
        parent_id: str | None = None,
        limit: int = 16,
        *,
        user_id: str,
        access_token: str,
    ) -> list[dict[str, Any]]:
        """Latest additions; Jellyfin answers with a bare list here."""

        return await self._request(
            base_url,
            f"/Users/{user_id}/Items/Latest",
            access_token=access_token,
            params={
                "ParentId": parent_id,
                "Limit": limit,
                "Fields": "Overview,Genres,OfficialRating,ImageTags,ParentLogoImageTag",
                "ImageTypeLimit": 1,
                "GroupItems": True,
            },
        )

    async def get_genres(
        self,
        base_url: str,
        parent_id: str | None = None,
        *,
        user_id: str,
        access_token: str,
    ) -> dict[str, Any]:
        return await self._request(
            base_url,
            "/Genres",
            access_token=access_token,
            params={"UserId": user_id, "SortBy": "SortName", "ParentId": parent_id},
        )

    async def get_random_items(
        self,
        base_url: str,
        content_type: str = "both",
        limit: int = 10,
        *,
        user_id: str,
        access_token: str,
    ) -> dict[str, Any]:
        include_types = _CONTENT_TYPES.get(content_type, "Movie,Series")
        return await self._request(
            base_url,
            f"/Users/{user_id}/Items",
            access_token=access_token,
            params={
                "IncludeItemTypes": include_types,
                "Recursive": True,
                "SortBy": "Random",
                "Limit": limit,
                "Fields": "PrimaryImageAspectRatio,Overview,Genres",
                "HasBackdrop": True,
                "ExcludeItemTypes": "BoxSet",
            },
        )

    async def get_favorites(
        self,
        base_url: str,
        limit: int | None = None,
        *,
        user_id: str,
        access_token: str,
    ) -> dict[str, Any]:
        """Favorites of the user; every one of them unless `limit` is given."""

        return await self._request(
            base_url,
            f"/Users/{user_id}/Items",
            access_token=access_token,
            params={
                "Recursive": True,
                "Filters": "IsFavorite",
                "IncludeItemTypes": "Movie,Series,Episode,Person",
                "SortBy": "SortName",
                "SortOrder": "Ascending",
                "Limit": limit,
                "Fields": f"{CARD_FIELDS},ParentIndexNumber,IndexNumber,SeriesName",
            },
        )
