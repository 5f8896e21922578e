from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Iterator

from .errors import InputFileError
from .post import RawPost

_CONTAINER_KEYS = ("posts", "data", "items")


def _raw_post_from_item(item: Any) -> RawPost | None:
    if not isinstance(item, dict):
        return None

    author = item.get("author")
    title = item.get("title")
    if not isinstance(author, str) or not isinstance(title, str):
        return None

    return RawPost(
        title=title,
        author=author,
        description=item.get("description"),
        image=item.get("image"),
    )


def _raw_posts_from_items(items: Iterable[Any]) -> list[RawPost]:
    out: list[RawPost] = []
    for item in items:
        post = _raw_post_from_item(item)
        if post is not None:
            out.append(post)
    return out


def _raw_posts_from_document(parsed: Any) -> list[RawPost]:
    if isinstance(parsed, list):
        return _raw_posts_from_items(parsed)

    if not isinstance(parsed, dict):
        return []

    for key in _CONTAINER_KEYS:
        value = parsed.get(key)
        if value is None:
            continue
        if isinstance(value, list):
            return _raw_posts_from_items(value)
        return []

    # A one-line NDJSON file parses as a single JSON object.
    single = _raw_post_from_item(parsed)
    return [single] if single is not None else []


def iter_ndjson(lines: Iterable[str]) -> Iterator[RawPost]:
    """Yield posts from newline-delimited JSON, skipping blank or unusable lines."""
    for line in lines:
        text = line.strip()
        if not text:
            continue
        try:
            item = json.loads(text)
        except ValueError:
            continue
        post = _raw_post_from_item(item)
        if post is not None:
            yield post


def parse_posts(content: str) -> list[RawPost]:
    """
    Parse import file content.

    Accepts a JSON array, a JSON object holding the array under posts/data/items,
    or newline-delimited JSON. JSON is tried first; NDJSON is the fallback.
    """
    if not (content or "").strip():
        return []

    try:
        parsed = json.loads(content)
    except ValueError:
        return list(iter_ndjson(content.splitlines()))

    return _raw_posts_from_document(parsed)


def load_posts(path: str | Path) -> list[RawPost]:
    p = Path(path)

    if not p.is_file():
        raise InputFileError(f"File not found: {p}")

    try:
        content = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise InputFileError(f"Failed to read input file: {p}: {e}") from e

    return parse_posts(content)
