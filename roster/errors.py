"""Exceptions raised while validating or allocating display names."""
from __future__ import annotations


class DisplayNameError(ValueError):
    """Base class for display name failures."""


class InvalidDisplayNameError(DisplayNameError):
    """Raised when a requested display name does not match the allowed format."""


class DisplayNameTakenError(DisplayNameError):
    """Raised when an explicitly requested display name is already in use."""

    def __init__(self, display_name: str) -> None:
        super().__init__(f"Display name '{display_name}' is already taken")
        self.display_name = display_name


class DisplayNameAllocationError(DisplayNameError):
    """Raised when no unique display name could be produced."""


__all__ = [
    "DisplayNameAllocationError",
    "DisplayNameError",
    "DisplayNameTakenError",
    "InvalidDisplayNameError",
]
