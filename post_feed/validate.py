from __future__ import annotations

from typing import Any

from .post import RawPost, ValidatedPost

MAX_TITLE_LENGTH = 25

_IMAGE_URL_PREFIXES = ("http://", "https://")


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s if s else None
    return None


def _coerce_image_url(value: Any) -> str | None:
    url = _coerce_str(value)
    if url is None:
        return None
    if not url.startswith(_IMAGE_URL_PREFIXES):
        return None
    return url


def validate_post(raw: RawPost, author_id: str | None) -> ValidatedPost | None:
    """
    Normalize a raw import record, or return None when it cannot be imported.

    - Records without a resolved author id or with a blank title are rejected.
    - Titles are trimmed and cut to MAX_TITLE_LENGTH characters.
    - Blank descriptions become None.
    - Images are kept only when they start with http:// or https://.
    """
    if not author_id:
        return None

    title = _coerce_str(raw.title)
    if title is None:
        return None

    return ValidatedPost(
        title=title[:MAX_TITLE_LENGTH],
        author_id=author_id,
        description=_coerce_str(raw.description),
        image_url=_coerce_image_url(raw.image),
    )
