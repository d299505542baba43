"""
Pytest configuration and shared fixtures.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from core.domain.models import ServerRecord
from core.registry import ServerRegistry


def make_server(server_id: str, *, name: Optional[str] = None, connected: bool = True) -> ServerRecord:
    """Build a server whose url/token/user are derived from its id."""
    return ServerRecord(
        id=server_id,
        name=name or f"Server {server_id.upper()}",
        url=f"http://{server_id}.local:8096",
        access_token=f"token-{server_id}",
        user_id=f"user-{server_id}",
        connected=connected,
    )


class FakeProcedure:
    """Per-server procedure with scripted answers keyed by base url.

    An answer that is an exception instance is raised instead of returned.
    """

    def __init__(
        self,
        answers: Optional[Dict[str, Any]] = None,
        delays: Optional[Dict[str, float]] = None,
        name: str = "fake_procedure",
    ):
        self.answers = answers or {}
        self.delays = delays or {}
        self.calls: List[Tuple[tuple, dict]] = []
        self.__name__ = name

    async def __call__(self, base_url: str, *args: Any, **kwargs: Any) -> Any:
        self.calls.append(((base_url, *args), kwargs))
        delay = self.delays.get(base_url)
        if delay:
            await asyncio.sleep(delay)
        answer = self.answers[base_url]
        if isinstance(answer, BaseException):
            raise answer
        return answer

    @property
    def called_urls(self) -> List[str]:
        return [args[0] for args, _ in self.calls]


@pytest.fixture
def server_a() -> ServerRecord:
    return make_server("a", name="Alpha")


@pytest.fixture
def server_b() -> ServerRecord:
    return make_server("b", name="Bravo", connected=False)


@pytest.fixture
def registry(server_a, server_b) -> ServerRegistry:
    """Two servers: A (alive, active) and B (offline)."""
    return ServerRegistry([server_a, server_b])
