"""Structural assertions over extracted chart output.

Observed values are normalized before comparison so that a list read off
the page compares equal to a tuple fixture with the same items. Order
always matters, legends included.
"""

from __future__ import annotations

from typing import Any

from ..errors import AssertionMismatch


def normalize(value: Any) -> Any:
    """Convert nested lists/tuples to tuples so equality is structural."""
    if isinstance(value, (list, tuple)):
        return tuple(normalize(v) for v in value)
    return value


def first_difference(observed: Any, expected: Any) -> int | None:
    """Index of the first differing item of two sequences, or None.

    A length mismatch with an equal common prefix reports the length of
    the shorter sequence.
    """
    obs = normalize(observed)
    exp = normalize(expected)
    if not isinstance(obs, tuple) or not isinstance(exp, tuple):
        return None if obs == exp else 0
    for index, (o, e) in enumerate(zip(obs, exp)):
        if o != e:
            return index
    if len(obs) != len(exp):
        return min(len(obs), len(exp))
    return None


def matches(observed: Any, expected: Any) -> bool:
    return normalize(observed) == normalize(expected)


def assert_equal(observed: Any, expected: Any, *, label: str = '') -> None:
    """Raise :class:`AssertionMismatch` unless the values are deep-equal."""
    if matches(observed, expected):
        return
    detail = ''
    index = first_difference(observed, expected)
    if index is not None and isinstance(normalize(expected), tuple):
        obs, exp = normalize(observed), normalize(expected)
        if isinstance(obs, tuple):
            detail = (
                f'first difference at index {index} '
                f'(observed length {len(obs)}, expected length {len(exp)})'
            )
    raise AssertionMismatch(observed, expected, label=label, detail=detail)


def assert_contains(observed: str, fragment: str, *, label: str = '') -> None:
    if fragment not in (observed or ''):
        raise AssertionMismatch(
            observed, fragment, label=label,
            detail=f'expected {fragment!r} to be contained in {observed!r}',
        )


def assert_true(value: Any, *, label: str = '') -> None:
    if value is not True:
        raise AssertionMismatch(value, True, label=label)
