from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from post_feed.feed import FeedPager
from post_feed.posts import (
    create_post,
    image_content_type,
    image_extension,
    object_path,
    submit_post,
    upload_image,
)
from post_feed.sqlite_backend import SQLiteBackend

_T0 = "2026-01-01T00:00:00+00:00"


class TestImageHelpers(unittest.TestCase):
    def test_extension_defaults_to_jpg(self) -> None:
        self.assertEqual(image_extension("photo.PNG"), "png")
        self.assertEqual(image_extension("photo.heic"), "jpg")
        self.assertEqual(image_extension("photo"), "jpg")

    def test_content_type(self) -> None:
        self.assertEqual(image_content_type("jpg"), "image/jpeg")
        self.assertEqual(image_content_type("webp"), "image/webp")

    def test_object_path_is_scoped_to_user(self) -> None:
        self.assertEqual(object_path("u1", "png", object_id="abc"), "u1/abc.png")
        a = object_path("u1", "jpg")
        b = object_path("u1", "jpg")
        self.assertTrue(a.startswith("u1/"))
        self.assertNotEqual(a, b)


class TestPosts(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.store = SQLiteBackend.open(":memory:", public_base_url="http://local/public")
        await self.store.insert_user(user_id="u1", username="alice", created_at=_T0)

    async def asyncTearDown(self) -> None:
        self.store.close()

    async def test_upload_image(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            img = Path(td) / "pic.png"
            img.write_bytes(b"\x89PNG....")

            result = await upload_image(self.store, img, "u1")

            self.assertTrue(result.ok)
            self.assertRegex(result.public_url, r"^http://local/public/post-photos/u1/[0-9a-f-]+\.png$")

    async def test_upload_missing_file(self) -> None:
        result = await upload_image(self.store, "/nonexistent/pic.png", "u1")
        self.assertFalse(result.ok)
        self.assertEqual(result.public_url, "")

    async def test_create_post_reports_failures(self) -> None:
        ok = await create_post(self.store, "u1", title=" hi ", description="  ")
        self.assertTrue(ok.ok)
        self.assertIsNotNone(ok.post_id)

        bad = await create_post(self.store, "nobody", title="hi")
        self.assertFalse(bad.ok)
        self.assertIsNone(bad.post_id)

    async def test_submit_requires_user_and_title(self) -> None:
        r = await submit_post(self.store, None, None, title="x")
        self.assertEqual(r.error, "You must be signed in to post")

        r = await submit_post(self.store, None, "u1", title="   ")
        self.assertEqual(r.error, "Please enter a title for your post.")
        self.assertEqual(self.store.post_count(), 0)

    async def test_submit_uploads_inserts_and_refreshes_feed(self) -> None:
        pager = FeedPager(self.store)
        await pager.load_first_page()
        self.assertEqual(pager.posts, [])

        with tempfile.TemporaryDirectory() as td:
            img = Path(td) / "pic.jpeg"
            img.write_bytes(b"\xff\xd8\xff")
            result = await submit_post(
                self.store, pager, "u1", title="Morning", description="run", image_path=img
            )

        self.assertTrue(result.ok)
        self.assertEqual([p.title for p in pager.posts], ["Morning"])
        self.assertTrue((pager.posts[0].image_url or "").endswith(".jpeg"))

    async def test_failed_upload_stops_submit(self) -> None:
        result = await submit_post(
            self.store, None, "u1", title="Morning", image_path="/nonexistent/pic.jpg"
        )
        self.assertFalse(result.ok)
        self.assertEqual(self.store.post_count(), 0)


if __name__ == "__main__":
    unittest.main()
