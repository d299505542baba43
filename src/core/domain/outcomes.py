"""Per-server operation outcomes.

An outcome is produced once by the executor and consumed once by the
aggregation that builds the final result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Success:
    server_id: str
    server_name: str
    payload: Any

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> Any:
        return self.payload


@dataclass(frozen=True)
class Failure:
    server_id: str | None
    server_name: str | None
    error: Exception

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Any:
        raise self.error


OperationOutcome = Union[Success, Failure]
