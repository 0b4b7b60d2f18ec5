from __future__ import annotations

import logging
from typing import Iterable, List

import pytest

from roster.config import NamingPolicy
from roster.errors import DisplayNameAllocationError, InvalidDisplayNameError
from roster.naming import (
    DISPLAY_NAME_PATTERN,
    STRATEGY_BASE,
    STRATEGY_COUNTER,
    STRATEGY_RANDOM,
    DisplayNameAllocator,
    derive_base_display_name,
    next_counter,
    normalize_display_name,
    random_display_name,
    counter_stem,
    with_counter,
)


class InMemoryStore:
    def __init__(self, names: Iterable[str] = ()) -> None:
        self.names = {name.lower() for name in names}
        self.exists_calls = 0

    def display_name_exists(self, display_name: str) -> bool:
        self.exists_calls += 1
        return display_name.lower() in self.names

    def display_names_with_prefix(self, prefix: str) -> List[str]:
        return [name for name in self.names if name.startswith(prefix)]


class SaturatedStore(InMemoryStore):
    """Reports every name starting with ``taken_prefix`` as used, without listing them."""

    def __init__(self, taken_prefix: str) -> None:
        super().__init__([taken_prefix])
        self.taken_prefix = taken_prefix

    def display_name_exists(self, display_name: str) -> bool:
        self.exists_calls += 1
        return display_name.startswith(self.taken_prefix)


def test_derive_base_folds_accents_and_punctuation() -> None:
    assert derive_base_display_name("José", "Müller") == "jose.muller"
    assert derive_base_display_name(" Mary Ann ", "O'Brien") == "maryann.obrien"


def test_derive_base_respects_separator_and_missing_parts() -> None:
    assert derive_base_display_name("Ada", "Lovelace", separator="") == "adalovelace"
    assert derive_base_display_name("Ada", "Lovelace", separator="_") == "ada_lovelace"
    assert derive_base_display_name("", "Lovelace") == "lovelace"
    assert derive_base_display_name(None, None) == ""


def test_derive_base_returns_empty_for_non_latin_names() -> None:
    assert derive_base_display_name("Иван", "Петров") == ""


def test_derive_base_truncates_without_trailing_separator() -> None:
    base = derive_base_display_name("a" * 31, "bcd")
    assert base == "a" * 31
    assert len(derive_base_display_name("x" * 50, "y")) == 32


def test_normalize_display_name_lowercases_and_validates() -> None:
    assert normalize_display_name("  Ada.Lovelace ") == "ada.lovelace"
    for invalid in ("ab", ".hidden", "has space", "x" * 33, ""):
        with pytest.raises(InvalidDisplayNameError):
            normalize_display_name(invalid)


def test_next_counter_uses_highest_existing_suffix() -> None:
    assert next_counter("john.smith", []) == 2
    assert next_counter("john.smith", ["john.smith"]) == 2
    existing = ["john.smith", "john.smith2", "john.smith7", "john.smithson", "JOHN.SMITH3"]
    assert next_counter("john.smith", existing) == 8


def test_with_counter_keeps_names_within_length_limit() -> None:
    candidate = with_counter("a" * 32, 12)
    assert candidate == "a" * 30 + "12"
    assert DISPLAY_NAME_PATTERN.match(candidate)


def test_random_display_name_format() -> None:
    name = random_display_name("user", 4)
    assert name.startswith("user-")
    assert len(name) == len("user-") + 8
    assert DISPLAY_NAME_PATTERN.match(name)


def test_allocator_prefers_base_when_free() -> None:
    allocator = DisplayNameAllocator(InMemoryStore())
    suggestion = allocator.allocate("John", "Smith")
    assert suggestion.display_name == "john.smith"
    assert suggestion.strategy == STRATEGY_BASE


def test_allocator_appends_counter_after_highest_existing() -> None:
    store = InMemoryStore(["john.smith", "john.smith5"])
    suggestion = DisplayNameAllocator(store).allocate("John", "Smith")
    assert suggestion.display_name == "john.smith6"
    assert suggestion.strategy == STRATEGY_COUNTER


def test_allocator_reads_existing_names_in_one_query() -> None:
    names = ["john.smith"] + [f"john.smith{i}" for i in range(2, 52)]
    store = InMemoryStore(names)
    suggestion = DisplayNameAllocator(store).allocate("John", "Smith")
    assert suggestion.display_name == "john.smith52"
    assert store.exists_calls == 2


def test_allocator_falls_back_to_random_token_when_counters_exhausted(caplog) -> None:
    store = SaturatedStore("john.smith")
    allocator = DisplayNameAllocator(store, NamingPolicy(max_attempts=3))

    with caplog.at_level(logging.WARNING, logger="roster.naming"):
        suggestion = allocator.allocate("John", "Smith")

    assert suggestion.strategy == STRATEGY_RANDOM
    assert suggestion.display_name.startswith("user-")
    assert any("Falling back to random display name" in record.message for record in caplog.records)


def test_allocator_raise_policy_keeps_hard_failure() -> None:
    allocator = DisplayNameAllocator(
        SaturatedStore("john.smith"), NamingPolicy(max_attempts=3, on_exhausted="raise")
    )
    with pytest.raises(DisplayNameAllocationError):
        allocator.allocate("John", "Smith")


def test_allocator_uses_random_token_for_short_or_empty_base() -> None:
    allocator = DisplayNameAllocator(InMemoryStore(), NamingPolicy(on_exhausted="raise"))
    assert allocator.allocate("Al", "").strategy == STRATEGY_RANDOM
    assert allocator.allocate("Иван", "Петров").strategy == STRATEGY_RANDOM


def test_allocator_treats_reserved_names_as_taken() -> None:
    allocator = DisplayNameAllocator(InMemoryStore())
    assert allocator.is_available("Admin") is False
    suggestion = allocator.allocate("Admin", "")
    assert suggestion.display_name == "admin2"
    assert suggestion.strategy == STRATEGY_COUNTER


def test_allocator_gives_up_when_random_tokens_keep_colliding() -> None:
    allocator = DisplayNameAllocator(SaturatedStore(""), NamingPolicy(max_attempts=1))
    with pytest.raises(DisplayNameAllocationError):
        allocator.allocate("John", "Smith")


def test_suggest_does_not_reserve_anything() -> None:
    store = InMemoryStore()
    allocator = DisplayNameAllocator(store)
    first = allocator.suggest("Grace", "Hopper")
    second = allocator.suggest("Grace", "Hopper")
    assert first == second
    assert store.names == set()


def test_allocator_counts_against_truncated_stem() -> None:
    stem = "maximilianalexanderbartholomew"
    store = InMemoryStore([f"{stem}.s"] + [f"{stem}{i}" for i in range(2, 12)])
    allocator = DisplayNameAllocator(store, NamingPolicy(on_exhausted="raise"))

    suggestion = allocator.allocate("Maximilianalexanderbartholomew", "Smithson")

    assert suggestion.display_name == f"{stem}12"
    assert suggestion.strategy == STRATEGY_COUNTER
    assert store.exists_calls == 2


def test_counter_stem_leaves_room_for_digits() -> None:
    base = "maximilianalexanderbartholomew.s"
    assert counter_stem(base, 1) == "maximilianalexanderbartholomew"
    assert counter_stem(base, 3) == "maximilianalexanderbartholome"
    assert counter_stem("john.smith", 2) == "john.smith"
