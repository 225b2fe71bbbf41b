"""Canonical room identifiers for two-party conversations."""

from __future__ import annotations

ROOM_SEPARATOR = "_"


def room_id(user_a: str, user_b: str) -> str:
    """Return the room id shared by ``user_a`` and ``user_b``.

    The two names are ordered by code point and joined with ``ROOM_SEPARATOR``,
    so swapping the arguments yields the same id.
    """

    first, second = sorted((user_a, user_b))
    return f"{first}{ROOM_SEPARATOR}{second}"


def peer_of(room: str, me: str) -> str | None:
    """Return the participant of ``room`` that is not ``me``."""

    for participant in room.split(ROOM_SEPARATOR):
        if participant != me:
            return participant
    return None
