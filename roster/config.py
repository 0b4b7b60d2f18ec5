"""Configuration management for display name allocation."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Optional

import yaml

logger = logging.getLogger("roster.config")

ALLOWED_SEPARATORS = ("", ".", "_", "-")
FALLBACK_POLICIES = ("random", "raise")
MAX_DISPLAY_NAME_LENGTH = 32

_DEFAULT_RESERVED = frozenset(
    {"admin", "administrator", "root", "support", "system", "moderator", "staff", "help"}
)


@dataclass(frozen=True)
class NamingPolicy:
    """Tunable knobs for :class:`roster.naming.DisplayNameAllocator`."""

    separator: str = "."
    min_length: int = 3
    max_attempts: int = 10
    on_exhausted: str = "random"
    random_prefix: str = "user"
    random_token_bytes: int = 4
    reserved: FrozenSet[str] = field(default_factory=lambda: _DEFAULT_RESERVED)

    def __post_init__(self) -> None:
        if self.separator not in ALLOWED_SEPARATORS:
            raise ValueError(
                f"separator must be one of {', '.join(repr(s) for s in ALLOWED_SEPARATORS)}"
            )
        if not 3 <= self.min_length <= MAX_DISPLAY_NAME_LENGTH:
            raise ValueError(f"min_length must be between 3 and {MAX_DISPLAY_NAME_LENGTH}")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.on_exhausted not in FALLBACK_POLICIES:
            raise ValueError(f"on_exhausted must be one of {', '.join(FALLBACK_POLICIES)}")
        if not self.random_prefix.isalnum() or not self.random_prefix.islower():
            raise ValueError("random_prefix must be lowercase alphanumeric")
        if not 2 <= self.random_token_bytes <= 12:
            raise ValueError("random_token_bytes must be between 2 and 12")
        if len(self.random_prefix) + 1 + self.random_token_bytes * 2 > MAX_DISPLAY_NAME_LENGTH:
            raise ValueError("random_prefix is too long for the configured token size")

    def is_reserved(self, name: str) -> bool:
        return name.lower() in self.reserved

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "NamingPolicy":
        """Create a :class:`NamingPolicy` from raw dictionary data."""

        known = {
            "separator",
            "min_length",
            "max_attempts",
            "on_exhausted",
            "random_prefix",
            "random_token_bytes",
            "reserved",
        }
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown naming configuration keys: {', '.join(sorted(unknown))}")

        kwargs: Dict[str, object] = {}
        for key in ("separator", "on_exhausted", "random_prefix"):
            if key in data:
                kwargs[key] = "" if data[key] is None else str(data[key])
        for key in ("min_length", "max_attempts", "random_token_bytes"):
            if key in data:
                try:
                    kwargs[key] = int(data[key])  # type: ignore[arg-type]
                except (TypeError, ValueError) as exc:
                    raise ValueError(f"{key} must be an integer") from exc
        if "reserved" in data:
            raw_reserved = data["reserved"] or []
            if not isinstance(raw_reserved, list):
                raise ValueError("reserved must be a list of names")
            kwargs["reserved"] = frozenset(str(item).strip().lower() for item in raw_reserved if str(item).strip())

        return NamingPolicy(**kwargs)  # type: ignore[arg-type]


def load_naming_policy(config_path: Path) -> NamingPolicy:
    """Load the naming policy from a YAML file, falling back to defaults."""

    if not config_path.exists():
        logger.debug("No configuration file at %s; using default naming policy", config_path)
        return NamingPolicy()

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping")

    naming_raw = raw.get("naming") or {}
    if not isinstance(naming_raw, dict):
        raise ValueError("The 'naming' section must be a mapping")

    policy = NamingPolicy.from_dict(naming_raw)
    logger.info("Loaded naming policy from %s", config_path)
    return policy


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "roster.yaml").resolve(strict=False)
    return candidate


__all__ = [
    "MAX_DISPLAY_NAME_LENGTH",
    "NamingPolicy",
    "load_naming_policy",
    "resolve_config_path",
]
