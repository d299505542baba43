"""Cross-server catalog views.

Each view is a fan-out with a fixed policy: which endpoint, how to merge,
how to order and where to cap. The CLI (or any other entry point) only picks
a view and renders the `AggregatedResult`.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from adapters.jellyfin_api import JellyfinAPI
from core.domain.operations import operation
from core.domain.policy import ITEMS_KEY, AggregatedResult, AggregateType, AggregationPolicy
from core.errors import TransportError
from core.services.fanout import SERVER_ID_TAG, SERVER_NAME_TAG, FanOutCoordinator, tag_payload

logger = logging.getLogger(__name__)

SEARCH_TYPE_PRIORITY: dict[str, int] = {
    "Movie": 0,
    "Series": 1,
    "Episode": 2,
    "Audio": 3,
}
UNRANKED_TYPE = 99

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_date(value: Any) -> datetime:
    """Parse a Jellyfin timestamp; missing or malformed values sort as the epoch.

    Jellyfin emits 7 fractional digits and a `Z` suffix, neither of which
    `datetime.fromisoformat` accepts on every supported Python.
    """

    if not isinstance(value, str) or not value.strip():
        return _EPOCH
    text = _FRACTION_RE.sub(r"\1", value.strip())
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _text(item: Mapping[str, Any], key: str) -> str:
    value = item.get(key)
    return value.casefold() if isinstance(value, str) else ""


def _number(item: Mapping[str, Any], key: str) -> int:
    value = item.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def library_sort_key(item: Mapping[str, Any]) -> tuple[str, str]:
    return _text(item, "Name"), _text(item, SERVER_NAME_TAG)


def last_played_key(item: Mapping[str, Any]) -> datetime:
    user_data = item.get("UserData")
    if not isinstance(user_data, dict):
        return _EPOCH
    return parse_date(user_data.get("LastPlayedDate"))


def next_up_sort_key(item: Mapping[str, Any]) -> tuple[str, int, int]:
    return _text(item, "SeriesName"), _number(item, "ParentIndexNumber"), _number(item, "IndexNumber")


def search_sort_key(item: Mapping[str, Any]) -> tuple[int, str]:
    priority = SEARCH_TYPE_PRIORITY.get(item.get("Type"), UNRANKED_TYPE)  # type: ignore[arg-type]
    return priority, _text(item, "Name")


def date_added_key(item: Mapping[str, Any]) -> datetime:
    return parse_date(item.get("DateCreated") or item.get("PremiereDate"))


def name_sort_key(item: Mapping[str, Any]) -> str:
    return _text(item, "Name")


def per_server_limit(total_limit: int, server_count: int) -> int:
    """Per-server request size so the merged list can still fill `total_limit`."""

    return math.ceil((total_limit * 1.5) / max(server_count, 1))


async def get_all_libraries(
    *,
    pool: FanOutCoordinator,
    api: JellyfinAPI,
    ignore_errors: bool = True,
) -> AggregatedResult:
    return await pool.execute_all(
        operation(api.get_user_views, name="libraries"),
        AggregationPolicy(
            aggregate_type=AggregateType.MERGE_PAGED,
            sort_key=library_sort_key,
            ignore_errors=ignore_errors,
        ),
    )


async def get_all_resume_items(
    *,
    pool: FanOutCoordinator,
    api: JellyfinAPI,
    limit: int = 20,
    ignore_errors: bool = True,
) -> AggregatedResult:
    """Continue watching, most recently played first."""

    return await pool.execute_all(
        operation(api.get_resume_items, limit, name="resume"),
        AggregationPolicy(
            aggregate_type=AggregateType.MERGE_PAGED,
            sort_key=last_played_key,
            reverse=True,
            limit=limit,
            dedupe_key="Id",
            ignore_errors=ignore_errors,
        ),
    )


async def get_all_next_up(
    *,
    pool: FanOutCoordinator,
    api: JellyfinAPI,
    limit: int = 20,
    ignore_errors: bool = True,
) -> AggregatedResult:
    """Next episodes, grouped by series then season then episode."""

    return await pool.execute_all(
        operation(api.get_next_up, limit, name="next-up"),
        AggregationPolicy(
            aggregate_type=AggregateType.MERGE_PAGED,
            sort_key=next_up_sort_key,
            limit=limit,
            dedupe_key="Id",
            ignore_errors=ignore_errors,
        ),
    )


async def search_all(
    *,
    pool: FanOutCoordinator,
    api: JellyfinAPI,
    term: str,
    limit: int = 20,
    ignore_errors: bool = True,
) -> AggregatedResult:
    """Search every server; movies first, then series, episodes, audio, the rest."""

    size = per_server_limit(limit, len(pool.registry))
    return await pool.execute_all(
        operation(api.search, term, size, name="search"),
        AggregationPolicy(
            aggregate_type=AggregateType.MERGE_PAGED,
            sort_key=search_sort_key,
            limit=limit,
            dedupe_key="Id",
            ignore_errors=ignore_errors,
        ),
    )


async def get_all_latest(
    *,
    pool: FanOutCoordinator,
    api: JellyfinAPI,
    limit: int = 50,
    per_server: int = 16,
    library_id: str | None = None,
    server_id: str | None = None,
    ignore_errors: bool = True,
) -> AggregatedResult:
    """Recently added items, newest first.

    With `library_id` only the server owning that library is asked: the one
    named by `server_id`, or else every server whose id prefixes
    `library_id`. The other servers contribute an empty list.
    """

    procedure: Any = api.get_latest
    if library_id:
        owners = {
            server.url
            for server in pool.registry.list_all()
            if (server.id == server_id if server_id else library_id.startswith(server.id))
        }

        async def latest_in_library(base_url: str, parent_id: str, size: int, **credentials: Any) -> Any:
            if base_url not in owners:
                return []
            return await api.get_latest(base_url, parent_id, size, **credentials)

        procedure = latest_in_library

    return await pool.execute_all(
        operation(procedure, library_id, per_server, name="latest"),
        AggregationPolicy(
            aggregate_type=AggregateType.CONCATENATE,
            sort_key=date_added_key,
            reverse=True,
            limit=limit,
            ignore_errors=ignore_errors,
        ),
    )


def _eligible_library(library: Any, excluded_ids: set[str], excluded_types: set[str]) -> bool:
    if not isinstance(library, dict) or not library.get("Id"):
        return False
    collection_type = library.get("CollectionType")
    if isinstance(collection_type, str) and collection_type.lower() in excluded_types:
        return False
    return library["Id"] not in excluded_ids


def library_row_sort_key(row: Mapping[str, Any]) -> tuple[str, str]:
    library = row.get("lib")
    return _text(row, SERVER_NAME_TAG), _text(library if isinstance(library, dict) else {}, "Name")


def _finish_row(row: Mapping[str, Any]) -> dict[str, Any]:
    server_id = row[SERVER_ID_TAG]
    server_name = row[SERVER_NAME_TAG]
    return {
        "lib": {**row["lib"], SERVER_ID_TAG: server_id, SERVER_NAME_TAG: server_name},
        "latest": tag_payload(row["latest"], server_id, server_name),
        "serverName": server_name,
    }


async def get_latest_per_library(
    *,
    pool: FanOutCoordinator,
    api: JellyfinAPI,
    excluded_library_ids: Iterable[str] = (),
    excluded_collection_types: Iterable[str] = (),
    per_library: int = 16,
    ignore_errors: bool = True,
) -> AggregatedResult:
    """One home row per library of every server.

    Each row is `{"lib": library, "latest": items, "serverName": name}`, with
    the library and its items tagged with their server. Libraries whose id is
    in `excluded_library_ids` or whose collection type is in
    `excluded_collection_types` (case-insensitive) are skipped, as are
    libraries with nothing new. A library whose latest items cannot be
    fetched is dropped without failing its server. Rows are ordered by
    server name, then library name.
    """

    excluded_ids = set(excluded_library_ids)
    excluded_types = {value.lower() for value in excluded_collection_types}

    async def latest_for(base_url: str, library: dict[str, Any], credentials: dict[str, Any]) -> Any:
        try:
            return await api.get_latest(base_url, library["Id"], per_library, **credentials)
        except TransportError as exc:
            logger.debug("latest for library %s on %s failed: %s", library["Id"], base_url, exc)
            return None

    async def library_rows(base_url: str, **credentials: Any) -> list[dict[str, Any]]:
        views = await api.get_user_views(base_url, **credentials)
        collection = views.get(ITEMS_KEY) if isinstance(views, dict) else views
        libraries = [
            library
            for library in collection or []
            if _eligible_library(library, excluded_ids, excluded_types)
        ]
        latest = await asyncio.gather(*(latest_for(base_url, library, credentials) for library in libraries))
        return [{"lib": library, "latest": items} for library, items in zip(libraries, latest) if items]

    result = await pool.execute_all(
        operation(library_rows, name="latest-per-library"),
        AggregationPolicy(
            aggregate_type=AggregateType.CONCATENATE,
            sort_key=library_row_sort_key,
            ignore_errors=ignore_errors,
        ),
    )
    return AggregatedResult(
        aggregate_type=result.aggregate_type,
        payload=[_finish_row(row) for row in result.items],
        errors=result.errors,
    )


async def get_all_favorites(
    *,
    pool: FanOutCoordinator,
    api: JellyfinAPI,
    ignore_errors: bool = True,
) -> AggregatedResult:
    return await pool.execute_all(
        operation(api.get_favorites, name="favorites"),
        AggregationPolicy(
            aggregate_type=AggregateType.MERGE_PAGED,
            sort_key=name_sort_key,
            dedupe_key="Id",
            ignore_errors=ignore_errors,
        ),
    )


def merge_genres(genres: list[Any]) -> list[dict[str, Any]]:
    """Collapse same-named genres from different servers, summing `ChildCount`."""

    merged: dict[str, dict[str, Any]] = {}
    for genre in genres:
        if not isinstance(genre, dict) or not genre.get("Name"):
            continue
        name = genre["Name"]
        count = _number(genre, "ChildCount")
        existing = merged.get(name)
        if existing is not None:
            existing["ChildCount"] += count
            continue
        merged[name] = {
            "Id": genre.get("Id"),
            "Name": name,
            "ChildCount": count,
            "_unifiedGenre": True,
        }
    return list(merged.values())


async def get_all_genres(
    *,
    pool: FanOutCoordinator,
    api: JellyfinAPI,
    parent_id: str | None = None,
    ignore_errors: bool = True,
) -> AggregatedResult:
    result = await pool.execute_all(
        operation(api.get_genres, parent_id, name="genres"),
        AggregationPolicy(
            aggregate_type=AggregateType.CONCATENATE,
            ignore_errors=ignore_errors,
        ),
    )
    return AggregatedResult(
        aggregate_type=result.aggregate_type,
        payload=merge_genres(result.items),
        errors=result.errors,
    )


async def get_all_genre_items(
    *,
    pool: FanOutCoordinator,
    api: JellyfinAPI,
    params: Mapping[str, Any],
    ignore_errors: bool = True,
) -> AggregatedResult:
    return await pool.execute_all(
        operation(api.get_items, dict(params), name="genre-items"),
        AggregationPolicy(
            aggregate_type=AggregateType.MERGE_PAGED,
            ignore_errors=ignore_errors,
        ),
    )


async def get_random_items(
    *,
    pool: FanOutCoordinator,
    api: JellyfinAPI,
    content_type: str = "both",
    limit: int = 10,
    rng: random.Random | None = None,
    ignore_errors: bool = True,
) -> AggregatedResult:
    rng = rng or random.Random()
    size = per_server_limit(limit, len(pool.registry))
    return await pool.execute_all(
        operation(api.get_random_items, content_type, size, name="random"),
        AggregationPolicy(
            aggregate_type=AggregateType.CONCATENATE,
            sort_key=lambda _item: rng.random(),
            limit=limit,
            dedupe_key="Id",
            ignore_errors=ignore_errors,
        ),
    )


def has_cross_server_info(item: Any) -> bool:
    return isinstance(item, dict) and bool(item.get(SERVER_ID_TAG))


async def get_item(*, pool: FanOutCoordinator, api: JellyfinAPI, item: Mapping[str, Any]) -> Any:
    """Full details of an aggregated item, fetched from the server it came from."""

    return await pool.execute_for_item(item, operation(api.get_item, item.get("Id"), name="item"))
