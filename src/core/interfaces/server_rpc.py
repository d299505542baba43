"""Contract for per-server procedures.

A procedure performs one remote call against one media server. It receives
the server's base address as its first positional argument; the credential
and user id arrive as keyword arguments named by the operation descriptor.
It returns the decoded payload (a list, or a mapping exposing `Items` and
optionally `TotalRecordCount`) or raises.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ServerProcedure(Protocol):
    async def __call__(self, base_url: str, *args: Any, **kwargs: Any) -> Any:
        ...
