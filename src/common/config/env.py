"""Typed environment variable parsing helpers.

Blank values are treated as unset, so an exported-but-empty variable falls
back to the default.
"""

import os
from typing import Callable, Iterable, Optional, TypeVar

T = TypeVar("T")

_TRUTHY = frozenset({"true", "1", "yes", "on"})
_FALSY = frozenset({"false", "0", "no", "off"})


def _read(name: str, required: bool) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        if required:
            raise KeyError(f"Environment variable '{name}' is required but not set.")
        return None
    return value


def _parse(
    name: str,
    default: Optional[T],
    required: bool,
    parser: Callable[[str], T],
    expected: str,
) -> Optional[T]:
    raw = _read(name, required)
    if raw is None:
        return default
    try:
        return parser(raw.strip())
    except ValueError:
        raise ValueError(
            f"Environment variable '{name}' must be {expected}, got '{raw}'."
        ) from None


def _to_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(value)


def get_env_str(name: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    """Get an environment variable as a string."""
    value = _read(name, required)
    return default if value is None else value


def get_env_int(name: str, default: Optional[int] = None, required: bool = False) -> Optional[int]:
    """Get an environment variable as an integer."""
    return _parse(name, default, required, int, "an integer")


def get_env_bool(
    name: str, default: Optional[bool] = None, required: bool = False
) -> Optional[bool]:
    """Get an environment variable as a boolean (true/1/yes/on, false/0/no/off)."""
    return _parse(name, default, required, _to_bool, "a boolean")


def get_env_choice(
    name: str,
    allowed: Iterable[str],
    default: Optional[str] = None,
    required: bool = False,
) -> Optional[str]:
    """Get an environment variable constrained to a closed set of lowercase values."""
    allowed_values = frozenset(choice.lower() for choice in allowed)

    def _choice(value: str) -> str:
        lowered = value.lower()
        if lowered not in allowed_values:
            raise ValueError(value)
        return lowered

    return _parse(name, default, required, _choice, f"one of {sorted(allowed_values)}")
