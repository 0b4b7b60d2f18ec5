"""Display name derivation and unique allocation.

A display name is derived from the user's first and last name (the *base*).
When the base is already taken a counter is appended; the next counter is
computed from the names already stored rather than by probing ``base1``,
``base2`` ... one query at a time. Should the counters run out, the allocator
falls back to a random token instead of refusing to create the account.
"""
from __future__ import annotations

import logging
import re
import secrets
import unicodedata
from typing import Iterable, List, Optional, Protocol, Tuple

from .config import MAX_DISPLAY_NAME_LENGTH, NamingPolicy
from .errors import DisplayNameAllocationError, InvalidDisplayNameError
from .models import DisplayNameSuggestion

logger = logging.getLogger("roster.naming")

DISPLAY_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]{2,31}$")

STRATEGY_EXPLICIT = "explicit"
STRATEGY_BASE = "base"
STRATEGY_COUNTER = "counter"
STRATEGY_RANDOM = "random"

_RANDOM_ATTEMPTS = 5
_SEPARATORS = "._-"


class DisplayNameStore(Protocol):
    """Read access to the display names that are already persisted."""

    def display_name_exists(self, display_name: str) -> bool:
        ...

    def display_names_with_prefix(self, prefix: str) -> List[str]:
        ...


def _fold(value: Optional[str]) -> str:
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    ascii_only = decomposed.encode("ascii", "ignore").decode("ascii").lower()
    return re.sub(r"[^a-z0-9]", "", ascii_only)


def derive_base_display_name(
    first_name: Optional[str],
    last_name: Optional[str],
    *,
    separator: str = ".",
    max_length: int = MAX_DISPLAY_NAME_LENGTH,
) -> str:
    """Return the name-derived prefix, or ``""`` when nothing usable remains."""

    parts = [part for part in (_fold(first_name), _fold(last_name)) if part]
    base = separator.join(parts)[:max_length]
    return base.rstrip(_SEPARATORS)


def normalize_display_name(value: str) -> str:
    """Normalise an explicitly requested display name."""

    normalized = (value or "").strip().lower()
    if not DISPLAY_NAME_PATTERN.match(normalized):
        raise InvalidDisplayNameError(
            "Display names must be 3-32 characters of a-z, 0-9, '.', '_' or '-' "
            "and start with a letter or digit"
        )
    return normalized


def next_counter(base: str, existing: Iterable[str]) -> int:
    """Return the first counter above every ``base<digits>`` name in *existing*.

    A bare ``base`` counts as 1, so the first collision yields ``base2``.
    """

    pattern = re.compile(rf"^{re.escape(base)}(\d*)$")
    highest = 1
    for name in existing:
        match = pattern.match(name.lower())
        if match is None:
            continue
        digits = match.group(1)
        if digits:
            highest = max(highest, int(digits))
    return highest + 1


def counter_stem(base: str, width: int) -> str:
    """Return *base* trimmed so that a counter of *width* digits still fits."""

    return base[: MAX_DISPLAY_NAME_LENGTH - width].rstrip(_SEPARATORS)


def with_counter(base: str, counter: int) -> str:
    suffix = str(counter)
    return f"{counter_stem(base, len(suffix))}{suffix}"


def random_display_name(prefix: str = "user", token_bytes: int = 4) -> str:
    return f"{prefix}-{secrets.token_hex(token_bytes)}"


class DisplayNameAllocator:
    """Pick unique display names against a :class:`DisplayNameStore`."""

    def __init__(self, store: DisplayNameStore, policy: Optional[NamingPolicy] = None) -> None:
        self._store = store
        self._policy = policy or NamingPolicy()

    @property
    def policy(self) -> NamingPolicy:
        return self._policy

    def is_available(self, display_name: str) -> bool:
        if self._policy.is_reserved(display_name):
            return False
        return not self._store.display_name_exists(display_name)

    def suggest(self, first_name: Optional[str], last_name: Optional[str]) -> DisplayNameSuggestion:
        """Preview the name :meth:`allocate` would pick right now. Nothing is reserved."""

        return self._resolve(first_name, last_name)

    def allocate(self, first_name: Optional[str], last_name: Optional[str]) -> DisplayNameSuggestion:
        suggestion = self._resolve(first_name, last_name)
        logger.debug(
            "Allocated display name %s using the %s strategy",
            suggestion.display_name,
            suggestion.strategy,
        )
        return suggestion

    def _resolve(self, first_name: Optional[str], last_name: Optional[str]) -> DisplayNameSuggestion:
        policy = self._policy
        base = derive_base_display_name(first_name, last_name, separator=policy.separator)

        if len(base) < policy.min_length:
            return self._random(base)

        if self.is_available(base):
            return DisplayNameSuggestion(display_name=base, strategy=STRATEGY_BASE)

        stem, start = self._counter_start(base)
        for counter in range(start, start + policy.max_attempts):
            candidate = f"{stem}{counter}"
            if self.is_available(candidate):
                return DisplayNameSuggestion(display_name=candidate, strategy=STRATEGY_COUNTER)

        if policy.on_exhausted == "raise":
            raise DisplayNameAllocationError(
                f"Could not find a unique display name for '{base}' after {policy.max_attempts} attempts"
            )
        return self._random(base)

    def _counter_start(self, base: str) -> Tuple[str, int]:
        """Pick the stem counters are appended to, and the first counter to try.

        Long bases lose characters to the counter digits, so names are counted
        against the trimmed stem. The stem is widened until every counter in
        the attempt window fits.
        """

        width = 1
        while True:
            stem = counter_stem(base, width)
            start = next_counter(stem, self._store.display_names_with_prefix(stem))
            needed = len(str(start + self._policy.max_attempts - 1))
            if needed <= width:
                return stem, start
            width = needed

    def _random(self, base: str) -> DisplayNameSuggestion:
        policy = self._policy
        for _ in range(_RANDOM_ATTEMPTS):
            candidate = random_display_name(policy.random_prefix, policy.random_token_bytes)
            if self.is_available(candidate):
                logger.warning(
                    "Falling back to random display name %s (base %r was unusable or exhausted)",
                    candidate,
                    base,
                )
                return DisplayNameSuggestion(display_name=candidate, strategy=STRATEGY_RANDOM)
        raise DisplayNameAllocationError("Could not generate a unique random display name")


__all__ = [
    "DISPLAY_NAME_PATTERN",
    "DisplayNameAllocator",
    "DisplayNameStore",
    "STRATEGY_BASE",
    "STRATEGY_COUNTER",
    "STRATEGY_EXPLICIT",
    "STRATEGY_RANDOM",
    "counter_stem",
    "derive_base_display_name",
    "next_counter",
    "normalize_display_name",
    "random_display_name",
    "with_counter",
]
