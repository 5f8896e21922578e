from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Sequence

from .errors import BackendError, StorageError
from .keyset import KeysetPredicate
from .post import FeedCursor, Post, ValidatedPost
from .sqlite_schema import initialize_sqlite

# Mirrors the codes the managed backend reports for the same conditions.
UNIQUE_VIOLATION = "23505"
NO_ROWS = "PGRST116"

_DEFAULT_PUBLIC_BASE_URL = "http://localhost/storage/v1/object/public"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _new_id() -> str:
    return uuid.uuid4().hex


def _as_path(value: str | Path) -> str:
    return str(value)


class SQLiteBackend:
    """
    Local stand-in for the managed backend, backed by a single SQLite file.

    It assigns ids and timestamps the way the server does: one created_at per
    insert statement, so every row of a batch shares a timestamp and the feed
    relies on the id tie-breaker.

    The async methods call sqlite3 directly and block the event loop while a
    query runs; use it for local runs and tests, not under concurrent tasks.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        bucket: str = "post-photos",
        public_base_url: str = _DEFAULT_PUBLIC_BASE_URL,
        now_fn: Callable[[], str] | None = None,
        id_fn: Callable[[], str] | None = None,
    ) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row
        self._bucket = bucket
        self._public_base_url = public_base_url.rstrip("/")
        self._now = now_fn or _utc_now_iso
        self._new_id = id_fn or _new_id

    @classmethod
    def open(cls, path: str | Path, **kwargs: Any) -> "SQLiteBackend":
        db_path = _as_path(path)
        if db_path != ":memory:":
            p = Path(db_path)
            p.parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(db_path)
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to open sqlite database: {db_path}: {e}") from e

        try:
            initialize_sqlite(conn)
        except Exception as e:
            conn.close()
            raise StorageError(f"Failed to initialize sqlite schema: {e}") from e

        return cls(conn, **kwargs)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteBackend":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    async def find_users_by_username(self, usernames: Sequence[str]) -> list[dict[str, Any]]:
        names = list(usernames)
        if not names:
            return []

        # One bound parameter regardless of how many names are looked up.
        try:
            rows = self._conn.execute(
                """
                SELECT id, username FROM "user"
                WHERE username IN (SELECT value FROM json_each(?))
                """.strip(),
                (json.dumps(names),),
            ).fetchall()
        except sqlite3.DatabaseError as e:
            raise BackendError(f"Failed to fetch users: {e}") from e

        return [{"id": r["id"], "username": r["username"]} for r in rows]

    async def insert_posts(self, posts: Sequence[ValidatedPost]) -> None:
        if not posts:
            return

        ts = self._now()
        params = [
            (self._new_id(), p.title, p.author_id, p.description, p.image_url, ts)
            for p in posts
        ]

        try:
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO post(id, title, author_id, description, image_url, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """.strip(),
                    params,
                )
        except sqlite3.DatabaseError as e:
            raise BackendError(f"Failed to insert posts: {e}") from e

    async def insert_post(self, post: ValidatedPost) -> str:
        pid = self._new_id()
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO post(id, title, author_id, description, image_url, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """.strip(),
                    (pid, post.title, post.author_id, post.description, post.image_url, self._now()),
                )
        except sqlite3.DatabaseError as e:
            raise BackendError(f"Failed to create post: {e}") from e
        return pid

    async def select_posts(self, *, before: FeedCursor | None, limit: int) -> list[Post]:
        where = ""
        params: tuple[Any, ...] = ()
        if before is not None:
            cond, values = KeysetPredicate.from_cursor(before).to_sql(
                created_at_column="p.created_at", id_column="p.id"
            )
            where = f"WHERE {cond}"
            params = values

        sql = f"""
        SELECT
          p.id, p.title, p.author_id, p.description, p.image_url, p.created_at,
          u.username AS author_username
        FROM post p
        LEFT JOIN "user" u ON u.id = p.author_id
        {where}
        ORDER BY p.created_at DESC, p.id DESC
        LIMIT ?
        """.strip()

        try:
            rows = self._conn.execute(sql, params + (int(limit),)).fetchall()
        except sqlite3.DatabaseError as e:
            raise BackendError(f"Failed to fetch posts: {e}") from e

        return [
            Post(
                id=str(r["id"]),
                title=str(r["title"]),
                author_id=str(r["author_id"]),
                created_at=str(r["created_at"]),
                description=r["description"],
                image_url=r["image_url"],
                author_username=r["author_username"],
            )
            for r in rows
        ]

    async def insert_user(self, *, user_id: str, username: str, created_at: str) -> None:
        try:
            with self._conn:
                self._conn.execute(
                    'INSERT INTO "user"(id, username, created_at) VALUES (?, ?, ?)',
                    (user_id, username, created_at),
                )
        except sqlite3.IntegrityError as e:
            raise BackendError(
                f"Failed to create user: {e}", code=UNIQUE_VIOLATION
            ) from e
        except sqlite3.DatabaseError as e:
            raise BackendError(f"Failed to create user: {e}") from e

    async def get_username(self, user_id: str) -> str | None:
        try:
            row = self._conn.execute(
                'SELECT username FROM "user" WHERE id = ?',
                (user_id,),
            ).fetchone()
        except sqlite3.DatabaseError as e:
            raise BackendError(f"Failed to fetch user: {e}") from e

        if row is None:
            raise BackendError("Failed to fetch user: no rows returned", code=NO_ROWS)
        return str(row["username"]) if row["username"] is not None else None

    async def upload_object(self, path: str, data: bytes, *, content_type: str) -> str:
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO storage_object(bucket, path, content_type, data, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """.strip(),
                    (self._bucket, path, content_type, sqlite3.Binary(data), self._now()),
                )
        except sqlite3.DatabaseError as e:
            raise BackendError(f"Failed to upload {path}: {e}") from e
        return path

    async def public_url(self, path: str) -> str:
        return f"{self._public_base_url}/{self._bucket}/{path}"

    def post_count(self) -> int:
        row = self._conn.execute("SELECT COUNT(1) AS n FROM post").fetchone()
        return int(row["n"]) if row is not None else 0
