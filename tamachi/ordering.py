"""Lexicographic ordering keys for positioning sentences within a story.

Keys are base-62 fractions in (0, 1): "V" is 31/62, "V8" is 31/62 + 8/62^2.
The alphabet is in ASCII order, so comparing keys as plain strings gives the
same order as comparing the fractions they encode. Keys never end in "0",
which keeps that correspondence exact ("V" and "V0" would be the same
fraction).
"""
from __future__ import annotations

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
BASE = len(ALPHABET)
_DIGITS = {c: i for i, c in enumerate(ALPHABET)}


def _to_int(key: str, width: int) -> int:
    """Read *key* as a *width*-digit base-62 integer (right-padded with zeros)."""
    value = 0
    for c in key.ljust(width, ALPHABET[0]):
        value = value * BASE + _DIGITS[c]
    return value


def _to_key(value: int, width: int) -> str:
    digits = []
    for _ in range(width):
        value, d = divmod(value, BASE)
        digits.append(ALPHABET[d])
    return "".join(reversed(digits)).rstrip(ALPHABET[0])


def _check(key: str, side: str) -> None:
    bad = [c for c in key if c not in _DIGITS]
    if bad:
        raise ValueError(f"{side} key {key!r} has characters outside base-62: {bad!r}")
    # A trailing zero would let two different strings name the same fraction.
    if key.endswith(ALPHABET[0]):
        raise ValueError(f"{side} key {key!r} ends in {ALPHABET[0]!r}")


def allocate_keys(left: str, right: str, n: int) -> list[str]:
    """Return *n* keys strictly between *left* and *right*, evenly spaced.

    An empty *left* means "no left neighbour" (insert at the head), an empty
    *right* means "no right neighbour" (insert at the tail). With both empty
    the keys spread over the whole key space, leaving room on either side.
    Existing keys are never touched.
    """
    if n <= 0:
        raise ValueError(f"key count must be positive, got {n}")
    _check(left, "left")
    _check(right, "right")
    if left and right and left >= right:
        raise ValueError(f"left key {left!r} must sort before right key {right!r}")

    width = max(len(left), len(right), 1)
    while True:
        lo = _to_int(left, width)
        hi = _to_int(right, width) if right else BASE ** width
        if hi - lo > n:
            break
        width += 1

    gap = hi - lo
    return [_to_key(lo + gap * i // (n + 1), width) for i in range(1, n + 1)]
