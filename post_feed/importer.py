from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

from .backend import PostBackend
from .batch import chunked
from .dead_letter import write_failed_batch
from .loader import load_posts
from .post import RawPost, ValidatedPost
from .retry import RetryConfig, RetryEvent, SleepFn, call_with_retries
from .run_log import RunLogger
from .user_map import build_user_map, unique_usernames
from .validate import validate_post

DEFAULT_BATCH_SIZE = 1000
DEFAULT_IMPORT_RETRY = RetryConfig(max_attempts=3, base_delay_seconds=1.0)


@dataclass(frozen=True)
class ImportResult:
    loaded: int = 0
    validated: int = 0
    inserted: int = 0
    skipped_unknown_author: int = 0
    skipped_invalid: int = 0
    unknown_authors: tuple[str, ...] = ()
    batches_total: int = 0
    batches_failed: int = 0
    dead_letter_files: tuple[Path, ...] = field(default_factory=tuple)

    @property
    def skipped(self) -> int:
        return self.skipped_unknown_author + self.skipped_invalid


@dataclass
class _Partition:
    validated: list[ValidatedPost] = field(default_factory=list)
    skipped_unknown_author: int = 0
    skipped_invalid: int = 0
    unknown_authors: list[str] = field(default_factory=list)


def _partition(posts: Sequence[RawPost], user_map: dict[str, str]) -> _Partition:
    out = _Partition()
    unknown_seen: set[str] = set()

    for raw in posts:
        author = raw.author if isinstance(raw.author, str) else ""
        author_id = user_map.get(author) if author else None

        if author_id is None:
            out.skipped_unknown_author += 1
            if author not in unknown_seen:
                unknown_seen.add(author)
                out.unknown_authors.append(author)
            continue

        post = validate_post(raw, author_id)
        if post is None:
            out.skipped_invalid += 1
            continue
        out.validated.append(post)

    return out


async def run_import(
    posts: Sequence[RawPost],
    *,
    backend: PostBackend,
    dead_letter_dir: str | Path,
    batch_size: int = DEFAULT_BATCH_SIZE,
    retry: RetryConfig | None = None,
    logger: RunLogger | None = None,
    sleep_fn: SleepFn | None = None,
    now_fn: Callable[[], datetime] | None = None,
) -> ImportResult:
    """
    Import raw posts into the backend in sequential batches.

    - Authors are resolved with one lookup; a failed lookup aborts the import.
    - Records with an unknown author or a blank title are counted and skipped.
    - Each batch insert is retried; a batch that still fails is written to
      dead_letter_dir and the import moves on to the next batch.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    retry_cfg = retry or DEFAULT_IMPORT_RETRY
    clock = now_fn or (lambda: datetime.now(timezone.utc))

    if not posts:
        if logger is not None:
            logger.info("import_empty")
        return ImportResult()

    authors = unique_usernames(p.author for p in posts)
    if logger is not None:
        logger.info("import_started", loaded=len(posts), unique_authors=len(authors))

    user_map = await build_user_map(backend, authors)
    if logger is not None:
        logger.info("users_resolved", found=len(user_map), requested=len(authors))

    part = _partition(posts, user_map)
    if logger is not None:
        logger.info(
            "posts_validated",
            validated=len(part.validated),
            skipped_unknown_author=part.skipped_unknown_author,
            skipped_invalid=part.skipped_invalid,
        )

    inserted = 0
    batches_total = 0
    batches_failed = 0
    dead_letters: list[Path] = []

    for batch_index, batch in enumerate(chunked(part.validated, batch_size), start=1):
        batches_total += 1

        def _on_retry(event: RetryEvent, _index: int = batch_index) -> None:
            if logger is not None:
                logger.warning(
                    "batch_retry",
                    batch=_index,
                    attempt=event.failure_attempt,
                    next_attempt=event.next_attempt,
                    delay_seconds=event.delay_seconds,
                    error_type=event.error_type,
                    error_message=event.error_message,
                )

        async def _insert(rows: list[ValidatedPost] = batch) -> None:
            await backend.insert_posts(rows)

        try:
            await call_with_retries(
                _insert,
                cfg=retry_cfg,
                operation=f"insert_posts:batch_{batch_index}",
                on_retry=_on_retry,
                sleep_fn=sleep_fn,
            )
        except Exception as e:
            batches_failed += 1
            if logger is not None:
                logger.error(
                    "batch_failed",
                    batch=batch_index,
                    rows=len(batch),
                    error_type=type(e).__name__,
                    error_message=str(e),
                )

            try:
                path = write_failed_batch(dead_letter_dir, batch, now=clock())
            except OSError as write_err:
                # The log is the last copy of these rows.
                if logger is not None:
                    logger.error(
                        "dead_letter_write_failed",
                        batch=batch_index,
                        dead_letter_dir=str(dead_letter_dir),
                        error_type=type(write_err).__name__,
                        error_message=str(write_err),
                        rows=[r.to_row() for r in batch],
                    )
                continue

            dead_letters.append(path)
            if logger is not None:
                logger.warning("dead_letter_written", batch=batch_index, path=str(path))
            continue

        inserted += len(batch)
        if logger is not None:
            logger.info(
                "batch_inserted",
                batch=batch_index,
                rows=len(batch),
                inserted=inserted,
                total=len(part.validated),
            )

    result = ImportResult(
        loaded=len(posts),
        validated=len(part.validated),
        inserted=inserted,
        skipped_unknown_author=part.skipped_unknown_author,
        skipped_invalid=part.skipped_invalid,
        unknown_authors=tuple(part.unknown_authors),
        batches_total=batches_total,
        batches_failed=batches_failed,
        dead_letter_files=tuple(dead_letters),
    )

    if logger is not None:
        logger.info(
            "import_completed",
            inserted=result.inserted,
            skipped=result.skipped,
            batches_failed=result.batches_failed,
        )
    return result


async def import_file(
    path: str | Path,
    *,
    backend: PostBackend,
    dead_letter_dir: str | Path,
    batch_size: int = DEFAULT_BATCH_SIZE,
    retry: RetryConfig | None = None,
    logger: RunLogger | None = None,
    sleep_fn: SleepFn | None = None,
) -> ImportResult:
    posts = load_posts(path)
    if logger is not None:
        logger.info("posts_loaded", path=str(path), loaded=len(posts))
    return await run_import(
        posts,
        backend=backend,
        dead_letter_dir=dead_letter_dir,
        batch_size=batch_size,
        retry=retry,
        logger=logger,
        sleep_fn=sleep_fn,
    )


async def resubmit_failed_batch(
    rows: Sequence[ValidatedPost],
    *,
    backend: PostBackend,
    retry: RetryConfig | None = None,
    logger: RunLogger | None = None,
    sleep_fn: SleepFn | None = None,
) -> int:
    """Insert a dead-lettered batch again with the import retry policy."""
    batch = list(rows)
    if not batch:
        return 0

    def _on_retry(event: RetryEvent) -> None:
        if logger is not None:
            logger.warning(
                "resubmit_retry",
                attempt=event.failure_attempt,
                delay_seconds=event.delay_seconds,
                error_message=event.error_message,
            )

    async def _insert() -> None:
        await backend.insert_posts(batch)

    await call_with_retries(
        _insert,
        cfg=retry or DEFAULT_IMPORT_RETRY,
        operation="insert_posts:resubmit",
        on_retry=_on_retry,
        sleep_fn=sleep_fn,
    )
    return len(batch)
