from __future__ import annotations

from dataclasses import dataclass, field
from typing import AsyncIterator, Sequence

from .backend import PostBackend
from .post import FeedCursor, Post
from .run_log import RunLogger

PAGE_SIZE = 15


@dataclass(frozen=True)
class FeedPage:
    """
    One page of the feed, newest first.

    A failed fetch is reported in `error` with no rows and no cursor instead of raising.
    """

    rows: Sequence[Post] = ()
    cursor: FeedCursor | None = None
    error: str | None = None
    page_size: int = PAGE_SIZE

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def has_more(self) -> bool:
        # A short page ends the feed. An exactly full last page costs one extra empty fetch.
        return len(self.rows) >= self.page_size


def _page_from_rows(rows: Sequence[Post], *, page_size: int) -> FeedPage:
    cursor = FeedCursor.from_post(rows[-1]) if rows else None
    return FeedPage(rows=tuple(rows), cursor=cursor, page_size=page_size)


async def fetch_first_page(backend: PostBackend, *, page_size: int = PAGE_SIZE) -> FeedPage:
    """Newest posts, ordered by created_at DESC then id DESC."""
    try:
        rows = await backend.select_posts(before=None, limit=page_size)
    except Exception as e:
        return FeedPage(error=str(e) or type(e).__name__, page_size=page_size)
    return _page_from_rows(rows, page_size=page_size)


async def fetch_next_page(
    backend: PostBackend, cursor: FeedCursor, *, page_size: int = PAGE_SIZE
) -> FeedPage:
    """Posts strictly after `cursor` in feed order, so pages never overlap or skip rows."""
    try:
        rows = await backend.select_posts(before=cursor, limit=page_size)
    except Exception as e:
        return FeedPage(error=str(e) or type(e).__name__, page_size=page_size)
    return _page_from_rows(rows, page_size=page_size)


async def iter_feed(
    backend: PostBackend, *, page_size: int = PAGE_SIZE, max_pages: int | None = None
) -> AsyncIterator[FeedPage]:
    """
    Walk the feed page by page until a short page, an error, or max_pages.

    Failed pages are yielded too so callers can report them; iteration stops after one.
    """
    page = await fetch_first_page(backend, page_size=page_size)
    count = 1
    yield page

    while page.ok and page.has_more and page.cursor is not None:
        if max_pages is not None and count >= max_pages:
            return
        page = await fetch_next_page(backend, page.cursor, page_size=page_size)
        count += 1
        yield page


@dataclass
class FeedPager:
    """
    Infinite-scroll state for one feed.

    Only one page fetch runs at a time: load_more() calls made while a fetch is
    in flight are ignored. A failed fetch leaves posts, cursor and has_more as
    they were.
    """

    backend: PostBackend
    page_size: int = PAGE_SIZE
    logger: RunLogger | None = None

    posts: list[Post] = field(default_factory=list)
    cursor: FeedCursor | None = None
    has_more: bool = True
    loading: bool = False
    loading_more: bool = False
    last_error: str | None = None

    async def load_first_page(self) -> bool:
        self.loading = True
        try:
            page = await fetch_first_page(self.backend, page_size=self.page_size)
        finally:
            self.loading = False

        if not page.ok:
            self._record_error("first_page", page)
            return False

        self.posts = list(page.rows)
        self.cursor = page.cursor
        self.has_more = page.has_more
        self.last_error = None
        return True

    async def refresh(self) -> bool:
        return await self.load_first_page()

    async def load_more(self) -> bool:
        if self.cursor is None or self.loading_more or not self.has_more:
            return False

        self.loading_more = True
        try:
            page = await fetch_next_page(self.backend, self.cursor, page_size=self.page_size)
        finally:
            self.loading_more = False

        if not page.ok:
            self._record_error("next_page", page)
            return False

        self.posts.extend(page.rows)
        self.cursor = page.cursor
        self.has_more = page.has_more
        self.last_error = None
        return True

    def user_posts(self, user_id: str) -> list[Post]:
        return [p for p in self.posts if p.author_id == user_id]

    def _record_error(self, stage: str, page: FeedPage) -> None:
        self.last_error = page.error
        if self.logger is not None:
            self.logger.warning("feed_fetch_failed", stage=stage, error_message=page.error)
