from __future__ import annotations

from typing import Iterable

from .backend import PostBackend


def unique_usernames(usernames: Iterable[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for name in usernames:
        if not isinstance(name, str) or not name:
            continue
        if name in seen:
            continue
        seen.add(name)
        out.append(name)
    return out


async def build_user_map(backend: PostBackend, usernames: Iterable[str]) -> dict[str, str]:
    """
    Resolve usernames to user ids with a single batched lookup.

    Unknown usernames are left out of the mapping. Lookup failures propagate.
    Matching is exact: usernames are case-sensitive as stored.
    """
    names = unique_usernames(usernames)
    if not names:
        return {}

    rows = await backend.find_users_by_username(names)

    mapping: dict[str, str] = {}
    for row in rows:
        username = row.get("username")
        user_id = row.get("id")
        if username is None or user_id is None:
            continue
        mapping[str(username)] = str(user_id)
    return mapping
