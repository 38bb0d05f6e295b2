"""Domain models shared by the cache warming pipeline."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class UserIdentity:
    """A ``domain\\user`` pair read from the user list file."""

    domain: str
    user: str

    def __str__(self) -> str:
        return f"{self.domain}\\{self.user}"


__all__ = ["UserIdentity"]
