from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from .errors import InputFileError
from .post import ValidatedPost


def dead_letter_stem(now: datetime) -> str:
    """2026-10-19T08:15:02.123456+00:00 -> 2026-10-19T08-15-02"""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    iso = now.isoformat(timespec="milliseconds")
    return iso.replace(":", "-").replace(".", "-")[:19]


def _unique_path(directory: Path, stem: str) -> Path:
    candidate = directory / f"{stem}.json"
    n = 0
    while candidate.exists():
        n += 1
        candidate = directory / f"{stem}-{n}.json"
    return candidate


def write_failed_batch(
    directory: str | Path,
    rows: Sequence[ValidatedPost],
    *,
    now: datetime | None = None,
) -> Path:
    """
    Persist a batch that could not be inserted, for manual inspection or re-submission.

    Files are named by UTC timestamp; same-second collisions get a -N suffix.
    """
    d = Path(directory)
    d.mkdir(parents=True, exist_ok=True)

    stem = dead_letter_stem(now or datetime.now(timezone.utc))
    path = _unique_path(d, stem)

    payload = json.dumps([r.to_row() for r in rows], indent=2, ensure_ascii=False)
    path.write_text(payload, encoding="utf-8")
    return path


def _validated_post_from_item(item: Any) -> ValidatedPost | None:
    if not isinstance(item, dict):
        return None
    title = item.get("title")
    author_id = item.get("author_id")
    if not isinstance(title, str) or not isinstance(author_id, str):
        return None
    description = item.get("description")
    image_url = item.get("image_url")
    return ValidatedPost(
        title=title,
        author_id=author_id,
        description=description if isinstance(description, str) else None,
        image_url=image_url if isinstance(image_url, str) else None,
    )


def read_failed_batch(path: str | Path) -> list[ValidatedPost]:
    p = Path(path)
    if not p.is_file():
        raise InputFileError(f"File not found: {p}")

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise InputFileError(f"Failed to read dead-letter file: {p}: {e}") from e

    if not isinstance(data, list):
        raise InputFileError(f"Dead-letter file must hold a JSON array: {p}")

    # All or nothing: a partially readable file must not be re-submitted and deleted.
    out: list[ValidatedPost] = []
    for index, item in enumerate(data):
        post = _validated_post_from_item(item)
        if post is None:
            raise InputFileError(
                f"Invalid row at index {index} in dead-letter file: {p} "
                "(title and author_id must be strings)"
            )
        out.append(post)
    return out
