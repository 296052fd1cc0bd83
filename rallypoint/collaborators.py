"""Interfaces to the services Rallypoint consumes but does not own."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Profile:
    full_name: str | None
    avatar_url: str | None = None
    is_private: bool = False


class ProfileStore(Protocol):
    def get_profile(self, user_id: str) -> Profile | None: ...


class InMemoryProfileStore:
    """Dictionary-backed profile store used by the default app and tests."""

    def __init__(self, profiles: dict[str, Profile] | None = None):
        self._profiles: dict[str, Profile] = dict(profiles or {})

    def put(self, user_id: str, profile: Profile) -> None:
        self._profiles[user_id] = profile

    def get_profile(self, user_id: str) -> Profile | None:
        return self._profiles.get(user_id)
