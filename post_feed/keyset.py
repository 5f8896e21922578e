from __future__ import annotations

from dataclasses import dataclass

from .post import FeedCursor


def _quote_postgrest(value: str) -> str:
    # Double quotes keep reserved characters (".", ",", ":", "(", ")") literal.
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(frozen=True)
class KeysetPredicate:
    """
    Rows strictly after a cursor in (created_at DESC, id DESC) order:

        created_at < c OR (created_at = c AND id < i)

    The id comparison breaks ties between rows sharing a timestamp.
    """

    created_at: str
    id: str

    @classmethod
    def from_cursor(cls, cursor: FeedCursor) -> "KeysetPredicate":
        return cls(created_at=cursor.created_at, id=cursor.id)

    def to_postgrest(self) -> str:
        """Render the body of a PostgREST `or` filter with every value quoted."""
        ts = _quote_postgrest(self.created_at)
        rid = _quote_postgrest(self.id)
        return f"created_at.lt.{ts},and(created_at.eq.{ts},id.lt.{rid})"

    def to_sql(
        self, *, created_at_column: str = "created_at", id_column: str = "id"
    ) -> tuple[str, tuple[str, str, str]]:
        """Render a parameterized SQL condition and its bound values."""
        ts, rid = created_at_column, id_column
        return (
            f"({ts} < ? OR ({ts} = ? AND {rid} < ?))",
            (self.created_at, self.created_at, self.id),
        )
