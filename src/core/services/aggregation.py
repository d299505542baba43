"""Aggregation strategies.

Pure functions over the successful outcomes of a fan-out, in snapshot order.
None of them mutates the payloads it receives.
"""

from __future__ import annotations

from typing import Any, Callable, Sequence

from core.domain.outcomes import Success
from core.domain.policy import ITEMS_KEY, TOTAL_KEY, AggregateType, AggregationPolicy


def _item_collection(payload: Any) -> list[Any] | None:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get(ITEMS_KEY), list):
        return payload[ITEMS_KEY]
    return None


def _reported_total(payload: Any, items: list[Any]) -> int:
    if isinstance(payload, dict):
        total = payload.get(TOTAL_KEY)
        # A zero count next to a non-empty page means the server did not count.
        if isinstance(total, int) and not isinstance(total, bool) and total > 0:
            return total
    return len(items)


def merge_paged(outcomes: Sequence[Success]) -> dict[str, Any]:
    """Concatenate item collections and sum their reported totals.

    Outcomes whose payload exposes no item collection contribute nothing.
    """

    items: list[Any] = []
    total = 0
    for outcome in outcomes:
        collection = _item_collection(outcome.payload)
        if collection is None:
            continue
        items.extend(collection)
        total += _reported_total(outcome.payload, collection)
    return {ITEMS_KEY: items, TOTAL_KEY: total}


def concatenate(outcomes: Sequence[Success]) -> list[Any]:
    items: list[Any] = []
    for outcome in outcomes:
        collection = _item_collection(outcome.payload)
        if collection is not None:
            items.extend(collection)
    return items


def first_success(outcomes: Sequence[Success]) -> Any:
    if not outcomes:
        return None
    payload = outcomes[0].payload
    # Copy the containers so ordering/capping never reach the caller's data.
    if isinstance(payload, list):
        return list(payload)
    if isinstance(payload, dict):
        copied = dict(payload)
        if isinstance(copied.get(ITEMS_KEY), list):
            copied[ITEMS_KEY] = list(copied[ITEMS_KEY])
        return copied
    return payload


STRATEGIES: dict[AggregateType, Callable[[Sequence[Success]], Any]] = {
    AggregateType.MERGE_PAGED: merge_paged,
    AggregateType.CONCATENATE: concatenate,
    AggregateType.FIRST_SUCCESS: first_success,
}


def dedupe_items(items: list[Any], key: str) -> list[Any]:
    """Keep the first item for every value of `key`.

    Items that are not mappings, lack the key, or hold an unhashable value
    under it are always kept.
    """

    seen: set[Any] = set()
    out: list[Any] = []
    for item in items:
        value = item.get(key) if isinstance(item, dict) else None
        if value is not None:
            try:
                if value in seen:
                    continue
                seen.add(value)
            except TypeError:
                pass
        out.append(item)
    return out


def _post_process(items: list[Any], policy: AggregationPolicy) -> tuple[list[Any], int]:
    """Dedupe, order and cap `items`; also return how many duplicates were dropped."""

    dropped = 0
    if policy.dedupe_key:
        deduped = dedupe_items(items, policy.dedupe_key)
        dropped = len(items) - len(deduped)
        items = deduped
    if policy.sort_key is not None:
        items = sorted(items, key=policy.sort_key, reverse=policy.reverse)
    if policy.limit:
        items = items[: policy.limit]
    return items, dropped


def aggregate(outcomes: Sequence[Success], policy: AggregationPolicy) -> Any:
    """Combine successful outcomes under `policy`."""

    payload = STRATEGIES[policy.aggregate_type](outcomes)

    if isinstance(payload, list):
        items, _ = _post_process(payload, policy)
        return items

    if isinstance(payload, dict) and isinstance(payload.get(ITEMS_KEY), list):
        items, dropped = _post_process(payload[ITEMS_KEY], policy)
        result = {**payload, ITEMS_KEY: items}
        total = result.get(TOTAL_KEY)
        if isinstance(total, int) and not isinstance(total, bool):
            total = max(total - dropped, 0)
            if policy.limit:
                total = min(total, policy.limit)
            result[TOTAL_KEY] = total
        return result

    return payload
