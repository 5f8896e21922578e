from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path

from .backend import PostBackend
from .feed import FeedPager
from .post import ValidatedPost

_ALLOWED_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "webp", "gif")


@dataclass(frozen=True)
class UploadResult:
    public_url: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CreatePostResult:
    post_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def image_extension(path: str | Path) -> str:
    suffix = Path(str(path)).suffix.lstrip(".").lower()
    return suffix if suffix in _ALLOWED_IMAGE_EXTENSIONS else "jpg"


def image_content_type(ext: str) -> str:
    return f"image/{'jpeg' if ext == 'jpg' else ext}"


def object_path(user_id: str, ext: str, *, object_id: str | None = None) -> str:
    return f"{user_id}/{object_id or uuid.uuid4()}.{ext}"


async def upload_image(backend: PostBackend, local_path: str | Path, user_id: str) -> UploadResult:
    """
    Upload a local image to object storage under {user_id}/{random id}.{ext}.

    Failures are returned in UploadResult.error rather than raised.
    """
    try:
        data = Path(local_path).read_bytes()
    except OSError as e:
        return UploadResult(error=f"Could not read image file: {e}")

    if not data:
        return UploadResult(error="Could not read image file")

    ext = image_extension(local_path)
    path = object_path(user_id, ext)

    try:
        stored = await backend.upload_object(path, data, content_type=image_content_type(ext))
        url = await backend.public_url(stored)
    except Exception as e:
        return UploadResult(error=str(e) or "Failed to upload image")

    return UploadResult(public_url=url)


async def create_post(
    backend: PostBackend,
    user_id: str,
    *,
    title: str,
    description: str | None = None,
    image_url: str | None = None,
) -> CreatePostResult:
    post = ValidatedPost(
        title=(title or "").strip(),
        author_id=user_id,
        description=(description or "").strip() or None,
        image_url=image_url or None,
    )
    try:
        post_id = await backend.insert_post(post)
    except Exception as e:
        return CreatePostResult(error=str(e) or "Failed to create post")
    return CreatePostResult(post_id=post_id)


async def submit_post(
    backend: PostBackend,
    pager: FeedPager | None,
    user_id: str | None,
    *,
    title: str,
    description: str | None = None,
    image_path: str | Path | None = None,
) -> CreatePostResult:
    """
    Publish a post from the composer: optional image upload, insert, then feed refresh.

    A failed upload stops the submit before anything is inserted.
    """
    if not user_id:
        return CreatePostResult(error="You must be signed in to post")

    trimmed_title = (title or "").strip()
    if not trimmed_title:
        return CreatePostResult(error="Please enter a title for your post.")

    image_url: str | None = None
    if image_path:
        upload = await upload_image(backend, image_path, user_id)
        if not upload.ok:
            return CreatePostResult(error=upload.error)
        image_url = upload.public_url

    result = await create_post(
        backend,
        user_id,
        title=trimmed_title,
        description=description,
        image_url=image_url,
    )
    if not result.ok:
        return result

    if pager is not None:
        await pager.refresh()
    return result
