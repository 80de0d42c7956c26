from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import g

from app.palette.errors import Forbidden, Unauthorized
from app.palette.models import User


@dataclass(frozen=True)
class RequestContext:
    """
    Who is calling. Built once per request and passed explicitly to services
    that make role-dependent decisions.
    """

    user: User | None = None
    request_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.user.is_active

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and bool(self.user.is_admin)  # type: ignore[union-attr]

    @property
    def user_id(self) -> int | None:
        return self.user.id if self.is_authenticated else None  # type: ignore[union-attr]


def current_context() -> RequestContext:
    return RequestContext(user=getattr(g, "current_user", None), request_id=getattr(g, "request_id", None))


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not current_context().is_authenticated:
            raise Unauthorized("Not authorized, please log in.")
        return fn(*args, **kwargs)

    return wrapped


def require_admin(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        ctx = current_context()
        # Unauthenticated -> 401, authenticated but not admin -> 403
        if not ctx.is_authenticated:
            raise Unauthorized("Not authorized, please log in.")
        if not ctx.is_admin:
            g.missing_permission = "admin"
            raise Forbidden("Not authorized to access this route.")
        return fn(*args, **kwargs)

    return wrapped
