"""Domain models for the roster service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the roster database."""

    id: int
    first_name: str
    last_name: str
    display_name: Optional[str]
    email: Optional[str]
    created_at: datetime

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass(frozen=True)
class DisplayNameSuggestion:
    """A display name together with the strategy that produced it."""

    display_name: str
    strategy: str


__all__ = ["DisplayNameSuggestion", "User"]
