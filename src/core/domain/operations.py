"""Operation descriptors.

An operation is a per-server procedure plus its arguments. The executor
supplies the server address as the first positional argument and injects the
server's credential and user id through the named keyword parameters below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from core.interfaces.server_rpc import ServerProcedure


@dataclass(frozen=True)
class OperationDescriptor:
    procedure: ServerProcedure
    args: tuple[Any, ...] = ()
    kwargs: Mapping[str, Any] = field(default_factory=dict)
    name: str | None = None
    credential_param: str | None = "access_token"
    user_param: str | None = "user_id"

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))
        object.__setattr__(self, "kwargs", MappingProxyType(dict(self.kwargs)))
        if self.name is None:
            label = getattr(self.procedure, "__name__", None) or type(self.procedure).__name__
            object.__setattr__(self, "name", label)

    def bind(self, *, url: str, access_token: str, user_id: str) -> tuple[tuple[Any, ...], dict[str, Any]]:
        """Return the concrete `(args, kwargs)` for one server."""

        kwargs = dict(self.kwargs)
        if self.credential_param:
            kwargs[self.credential_param] = access_token
        if self.user_param:
            kwargs[self.user_param] = user_id
        return (url, *self.args), kwargs


def operation(
    procedure: ServerProcedure,
    *args: Any,
    name: str | None = None,
    credential_param: str | None = "access_token",
    user_param: str | None = "user_id",
    **kwargs: Any,
) -> OperationDescriptor:
    """Shorthand for building an `OperationDescriptor`."""

    return OperationDescriptor(
        procedure=procedure,
        args=args,
        kwargs=kwargs,
        name=name,
        credential_param=credential_param,
        user_param=user_param,
    )
