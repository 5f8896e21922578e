from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RawPost:
    """An untrusted record read from an import file."""

    title: Any
    author: Any
    description: Any = None
    image: Any = None


@dataclass(frozen=True)
class ValidatedPost:
    """A post ready for insertion: normalized fields and a resolved author id."""

    title: str
    author_id: str
    description: str | None = None
    image_url: str | None = None

    def to_row(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "author_id": self.author_id,
            "description": self.description,
            "image_url": self.image_url,
        }


@dataclass(frozen=True)
class Post:
    id: str
    title: str
    author_id: str
    created_at: str
    description: str | None = None
    image_url: str | None = None
    author_username: str | None = None


@dataclass(frozen=True)
class FeedCursor:
    """Sort key of the last row of a feed page."""

    created_at: str
    id: str

    @classmethod
    def from_post(cls, post: Post) -> "FeedCursor":
        return cls(created_at=post.created_at, id=post.id)
