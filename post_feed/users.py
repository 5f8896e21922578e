from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from .backend import PostBackend
from .errors import BackendError

USERNAME_TAKEN = "USERNAME_TAKEN"

_UNIQUE_VIOLATION = "23505"
_NO_ROWS = "PGRST116"


@dataclass(frozen=True)
class ProfileResult:
    error: str | None = None
    code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ProfileLookup:
    username: str | None = None
    error: str | None = None


async def create_user_profile(
    backend: PostBackend,
    user_id: str,
    username: str,
    *,
    now: datetime | None = None,
) -> ProfileResult:
    """
    Create the profile row for a signed-up user.

    A username that already exists yields code USERNAME_TAKEN so callers can show
    a specific message.
    """
    created_at = (now or datetime.now(timezone.utc)).isoformat()
    try:
        await backend.insert_user(
            user_id=user_id,
            username=(username or "").strip(),
            created_at=created_at,
        )
    except BackendError as e:
        if e.code == _UNIQUE_VIOLATION:
            return ProfileResult(error="Username is already taken", code=USERNAME_TAKEN)
        return ProfileResult(error=str(e))
    return ProfileResult()


async def get_user_profile(backend: PostBackend, user_id: str) -> ProfileLookup:
    try:
        username = await backend.get_username(user_id)
    except BackendError as e:
        if e.code == _NO_ROWS:
            return ProfileLookup()
        return ProfileLookup(error=str(e))
    return ProfileLookup(username=username)
