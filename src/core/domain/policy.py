"""Aggregation policy and aggregated result."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from core.domain.outcomes import Failure

ITEMS_KEY = "Items"
TOTAL_KEY = "TotalRecordCount"


class AggregateType(str, Enum):
    """How successful per-server payloads are combined."""

    MERGE_PAGED = "merge-paged"
    CONCATENATE = "concatenate"
    FIRST_SUCCESS = "first-success"


@dataclass(frozen=True)
class AggregationPolicy:
    """Per-call aggregation options.

    `sort_key` and `reverse` follow `sorted()` semantics and are applied to
    the combined item list. `limit` caps that list. With `ignore_errors`
    (the default) per-server failures are dropped from the result.
    """

    aggregate_type: AggregateType = AggregateType.MERGE_PAGED
    sort_key: Callable[[Any], Any] | None = None
    reverse: bool = False
    limit: int | None = None
    ignore_errors: bool = True
    dedupe_key: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "aggregate_type", AggregateType(self.aggregate_type))
        if self.limit is not None and self.limit < 1:
            raise ValueError(f"limit must be a positive integer, got {self.limit}")


@dataclass
class AggregatedResult:
    aggregate_type: AggregateType
    payload: Any
    errors: list[Failure] = field(default_factory=list)

    @property
    def items(self) -> list[Any]:
        if isinstance(self.payload, list):
            return self.payload
        if isinstance(self.payload, dict) and isinstance(self.payload.get(ITEMS_KEY), list):
            return self.payload[ITEMS_KEY]
        return []

    @property
    def total_record_count(self) -> int | None:
        if isinstance(self.payload, dict):
            total = self.payload.get(TOTAL_KEY)
            if isinstance(total, int):
                return total
        return None
