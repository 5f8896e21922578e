from __future__ import annotations

import unittest
from datetime import datetime, timezone

from post_feed.errors import BackendError
from post_feed.sqlite_backend import SQLiteBackend
from post_feed.users import USERNAME_TAKEN, create_user_profile, get_user_profile


class _BrokenBackend:
    async def insert_user(self, *, user_id: str, username: str, created_at: str) -> None:
        raise BackendError("Failed to create user: permission denied", code="42501")

    async def get_username(self, user_id: str) -> str | None:
        raise BackendError("Failed to fetch user: timeout")


class TestUserProfiles(unittest.IsolatedAsyncioTestCase):
    async def test_create_and_read_profile(self) -> None:
        with SQLiteBackend.open(":memory:") as store:
            result = await create_user_profile(
                store, "u1", "  alice ", now=datetime(2026, 1, 1, tzinfo=timezone.utc)
            )
            self.assertTrue(result.ok)

            lookup = await get_user_profile(store, "u1")
            self.assertEqual(lookup.username, "alice")
            self.assertIsNone(lookup.error)

    async def test_taken_username_has_specific_code(self) -> None:
        with SQLiteBackend.open(":memory:") as store:
            await create_user_profile(store, "u1", "alice")
            result = await create_user_profile(store, "u2", "alice")

            self.assertFalse(result.ok)
            self.assertEqual(result.code, USERNAME_TAKEN)
            self.assertEqual(result.error, "Username is already taken")

    async def test_missing_profile_is_not_an_error(self) -> None:
        with SQLiteBackend.open(":memory:") as store:
            lookup = await get_user_profile(store, "ghost")
            self.assertIsNone(lookup.username)
            self.assertIsNone(lookup.error)

    async def test_other_failures_are_reported(self) -> None:
        backend = _BrokenBackend()
        result = await create_user_profile(backend, "u1", "alice")  # type: ignore[arg-type]
        self.assertIsNone(result.code)
        self.assertIn("permission denied", result.error or "")

        lookup = await get_user_profile(backend, "u1")  # type: ignore[arg-type]
        self.assertIn("timeout", lookup.error or "")


if __name__ == "__main__":
    unittest.main()
