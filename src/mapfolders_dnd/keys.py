"""Fractional order keys.

A key is a base-62 fraction written without its leading ``0.``: ``"V"`` is
31/62 and ``"0V"`` is 31/3844. Keys are non-empty and never end in ``"0"``,
so plain string comparison agrees with numeric comparison and a new key can
always be found between two distinct keys by adding digits.
"""

from __future__ import annotations

from typing import List, Optional

DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
BASE = len(DIGITS)

# Key used for the first entry of an empty container.
BASELINE_KEY = DIGITS[BASE // 2]

DEFAULT_MAX_KEY_LENGTH = 32
DEFAULT_REBALANCE_HEADROOM = 2

_DIGIT_VALUES = {digit: value for value, digit in enumerate(DIGITS)}


class OrderingError(Exception):
    """Base class for order-key failures."""


class InvalidOrderKeyError(OrderingError, ValueError):
    """Raised when a value is not a well-formed order key."""


class KeySpaceExhaustedError(OrderingError):
    """Raised when no key of the allowed length fits between two bounds."""


def is_valid_key(key: object) -> bool:
    """Return ``True`` when ``key`` is a well-formed order key."""
    if not isinstance(key, str) or not key or key.endswith(DIGITS[0]):
        return False
    return all(char in _DIGIT_VALUES for char in key)


def validate_key(key: object) -> str:
    if not is_valid_key(key):
        raise InvalidOrderKeyError(f"Invalid order key {key!r}")
    return key  # type: ignore[return-value]


def _floor_scaled(key: Optional[str], length: int) -> int:
    """Return ``floor(key * BASE**length)``; ``None`` stands for zero."""
    if key is None:
        return 0
    value = 0
    for char in key[:length].ljust(length, DIGITS[0]):
        value = value * BASE + _DIGIT_VALUES[char]
    return value


def _ceil_scaled(key: Optional[str], length: int) -> int:
    """Return ``ceil(key * BASE**length)``; ``None`` stands for one."""
    if key is None:
        return BASE ** length
    value = _floor_scaled(key, length)
    # Keys never end in zero, so any digits past ``length`` are non-zero.
    if len(key) > length:
        value += 1
    return value


def _encode(value: int, length: int) -> str:
    digits = []
    for _ in range(length):
        value, remainder = divmod(value, BASE)
        digits.append(DIGITS[remainder])
    return "".join(reversed(digits)).rstrip(DIGITS[0])


def keys_between(
    lower: Optional[str],
    upper: Optional[str],
    count: int = 1,
    *,
    max_length: int = DEFAULT_MAX_KEY_LENGTH,
    headroom: int = 0,
) -> List[str]:
    """Return ``count`` evenly spaced keys strictly between two bounds.

    ``lower=None`` means the start of the key space and ``upper=None`` its
    end. The shortest key length with enough room is used, extended by
    ``headroom`` digits (never beyond ``max_length``) so that later
    insertions into the resulting gaps stay short.

    Raises :class:`KeySpaceExhaustedError` when the keys would need more than
    ``max_length`` digits.
    """

    if count < 1:
        raise ValueError(f"count must be positive, got {count}")
    if max_length < 1:
        raise ValueError(f"max_length must be positive, got {max_length}")
    if lower is not None:
        validate_key(lower)
    if upper is not None:
        validate_key(upper)
    if lower is not None and upper is not None and lower >= upper:
        raise InvalidOrderKeyError(f"Lower bound {lower!r} must sort before {upper!r}")

    for length in range(1, max_length + 1):
        if _ceil_scaled(upper, length) - _floor_scaled(lower, length) > count:
            break
    else:
        raise KeySpaceExhaustedError(
            f"No room for {count} key(s) between {lower!r} and {upper!r} "
            f"within {max_length} digits"
        )

    length = min(length + max(0, headroom), max_length)
    low = _floor_scaled(lower, length)
    high = _ceil_scaled(upper, length)
    step = (high - low) // (count + 1)
    return [_encode(low + step * (index + 1), length) for index in range(count)]


def key_between(
    lower: Optional[str],
    upper: Optional[str],
    *,
    max_length: int = DEFAULT_MAX_KEY_LENGTH,
) -> str:
    """Return the shortest evenly placed key strictly between the bounds."""
    return keys_between(lower, upper, 1, max_length=max_length)[0]
