"""Process-wide hooks the subscription routers resolve at request time."""
from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import HTTPException, status

ADMIN_ROLES = frozenset({"admin", "owner"})

_connect: Optional[Callable[[], Any]] = None
_resolve_session_user: Optional[Callable[[str], Optional[Any]]] = None


def configure(
    *,
    connect: Callable[[], Any],
    resolve_session_user: Callable[[str], Optional[Any]],
) -> None:
    """Install the database connector and the session-token resolver."""

    global _connect
    global _resolve_session_user

    _connect = connect
    _resolve_session_user = resolve_session_user


def _configured(hook: Optional[Any], name: str) -> Any:
    if hook is None:
        raise RuntimeError(f"Subscription context is missing {name}; call configure() at startup")
    return hook


def get_conn() -> Any:
    return _configured(_connect, "connect")()


def current_user(session_token: Optional[str]) -> Any:
    """Resolve the signed-in user or fail with 401."""

    if not session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    user = _configured(_resolve_session_user, "resolve_session_user")(session_token)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


def is_admin(user: Any) -> bool:
    return getattr(user, "role", None) in ADMIN_ROLES


def require_admin(user: Any) -> None:
    if not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator access required")
