from __future__ import annotations

import inspect
from typing import Any, Mapping, Protocol, Sequence

from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from .config import RuntimeSecrets
from .config_schema import SupabaseConfig
from .errors import BackendError
from .keyset import KeysetPredicate
from .post import FeedCursor, Post, ValidatedPost


class PostBackend(Protocol):
    """Data and object storage operations the import tool and the feed rely on."""

    async def find_users_by_username(self, usernames: Sequence[str]) -> list[dict[str, Any]]: ...

    async def insert_posts(self, posts: Sequence[ValidatedPost]) -> None: ...

    async def insert_post(self, post: ValidatedPost) -> str: ...

    async def select_posts(self, *, before: FeedCursor | None, limit: int) -> list[Post]: ...

    async def insert_user(self, *, user_id: str, username: str, created_at: str) -> None: ...

    async def get_username(self, user_id: str) -> str | None: ...

    async def upload_object(self, path: str, data: bytes, *, content_type: str) -> str: ...

    async def public_url(self, path: str) -> str: ...


def _opt_str(value: Any) -> str | None:
    return str(value) if value is not None else None


def post_from_row(row: Mapping[str, Any], *, author_key: str = "user") -> Post:
    """Build a Post from a feed row, including the embedded author username if present."""
    author = row.get(author_key)
    username = author.get("username") if isinstance(author, Mapping) else None

    return Post(
        id=str(row["id"]),
        title=str(row["title"]),
        author_id=str(row["author_id"]),
        created_at=str(row["created_at"]),
        description=_opt_str(row.get("description")),
        image_url=_opt_str(row.get("image_url")),
        author_username=_opt_str(username),
    )


def _api_error(context: str, exc: APIError) -> BackendError:
    message = (getattr(exc, "message", None) or str(exc) or "").strip()
    code = getattr(exc, "code", None)
    return BackendError(f"{context}: {message}", code=str(code) if code else None)


class SupabaseBackend:
    """
    Thin wrapper around a Supabase async client.

    The client is passed in explicitly so callers (and tests) control its lifetime.
    """

    def __init__(self, client: AsyncClient, *, config: SupabaseConfig | None = None) -> None:
        self._client = client
        self._cfg = config or SupabaseConfig()

    @property
    def feed_columns(self) -> str:
        return (
            "id, title, author_id, description, image_url, created_at, "
            f"{self._cfg.user_table}(username)"
        )

    async def find_users_by_username(self, usernames: Sequence[str]) -> list[dict[str, Any]]:
        names = list(usernames)
        if not names:
            return []

        try:
            resp = (
                await self._client.table(self._cfg.user_table)
                .select("id, username")
                .in_("username", names)
                .execute()
            )
        except APIError as e:
            raise _api_error("Failed to fetch users", e) from e
        except Exception as e:
            raise BackendError(f"Failed to fetch users: {e}") from e

        return [dict(row) for row in (resp.data or [])]

    async def insert_posts(self, posts: Sequence[ValidatedPost]) -> None:
        rows = [p.to_row() for p in posts]
        if not rows:
            return

        try:
            await self._client.table(self._cfg.post_table).insert(rows).execute()
        except APIError as e:
            raise _api_error("Failed to insert posts", e) from e
        except Exception as e:
            raise BackendError(f"Failed to insert posts: {e}") from e

    async def insert_post(self, post: ValidatedPost) -> str:
        try:
            resp = await self._client.table(self._cfg.post_table).insert(post.to_row()).execute()
        except APIError as e:
            raise _api_error("Failed to create post", e) from e
        except Exception as e:
            raise BackendError(f"Failed to create post: {e}") from e

        rows = resp.data or []
        if not rows or rows[0].get("id") is None:
            raise BackendError("Insert response did not include the new post id")
        return str(rows[0]["id"])

    async def select_posts(self, *, before: FeedCursor | None, limit: int) -> list[Post]:
        query = self._client.table(self._cfg.post_table).select(self.feed_columns)
        if before is not None:
            query = query.or_(KeysetPredicate.from_cursor(before).to_postgrest())
        query = query.order("created_at", desc=True).order("id", desc=True).limit(int(limit))

        try:
            resp = await query.execute()
        except APIError as e:
            raise _api_error("Failed to fetch posts", e) from e
        except Exception as e:
            raise BackendError(f"Failed to fetch posts: {e}") from e

        author_key = self._cfg.user_table
        return [post_from_row(row, author_key=author_key) for row in (resp.data or [])]

    async def insert_user(self, *, user_id: str, username: str, created_at: str) -> None:
        try:
            await (
                self._client.table(self._cfg.user_table)
                .insert({"id": user_id, "username": username, "created_at": created_at})
                .execute()
            )
        except APIError as e:
            raise _api_error("Failed to create user", e) from e
        except Exception as e:
            raise BackendError(f"Failed to create user: {e}") from e

    async def get_username(self, user_id: str) -> str | None:
        try:
            resp = (
                await self._client.table(self._cfg.user_table)
                .select("username")
                .eq("id", user_id)
                .single()
                .execute()
            )
        except APIError as e:
            raise _api_error("Failed to fetch user", e) from e
        except Exception as e:
            raise BackendError(f"Failed to fetch user: {e}") from e

        data = resp.data or {}
        return _opt_str(data.get("username"))

    async def upload_object(self, path: str, data: bytes, *, content_type: str) -> str:
        bucket = self._client.storage.from_(self._cfg.bucket)
        try:
            await bucket.upload(path, data, {"content-type": content_type})
        except Exception as e:
            raise BackendError(f"Failed to upload {path}: {e}") from e
        return path

    async def public_url(self, path: str) -> str:
        url = self._client.storage.from_(self._cfg.bucket).get_public_url(path)
        # Some storage client releases expose this as a coroutine.
        if inspect.isawaitable(url):
            url = await url
        return str(url)


async def open_supabase_backend(
    secrets: RuntimeSecrets, config: SupabaseConfig | None = None
) -> SupabaseBackend:
    """Create a service-role client: no session persistence, no token refresh."""
    client = await acreate_client(
        secrets.supabase_url,
        secrets.service_key,
        options=AsyncClientOptions(auto_refresh_token=False, persist_session=False),
    )
    return SupabaseBackend(client, config=config)
