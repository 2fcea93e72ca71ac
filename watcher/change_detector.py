"""
Change detection between two snapshots of producer output.

This module provides:
- Strict structural equality used as the default comparator
- Comparator resolution for callables and objects with an equals method
- Membership and "new items" computation over ordered sequences
"""

import math
from collections.abc import Mapping, Set
from typing import Any, Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")

EqualityFn = Callable[[Any, Any], bool]

_MISSING = object()


def deep_equal(a: Any, b: Any) -> bool:
    """
    Compare two values structurally.

    Types must match exactly, so ``1`` and ``1.0`` or ``1`` and ``True`` are
    different values. Containers are compared recursively and two NaN floats
    are considered equal.
    """
    if a is b:
        return True
    if type(a) is not type(b):
        return False

    if isinstance(a, float):
        if math.isnan(a) and math.isnan(b):
            return True
        return a == b

    if isinstance(a, Mapping):
        if len(a) != len(b):
            return False
        for key, value in a.items():
            # 1 and True hash alike, so look the key up by type as well
            other = next((k for k in b if deep_equal(k, key)), _MISSING)
            if other is _MISSING or not deep_equal(value, b[other]):
                return False
        return True

    if isinstance(a, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))

    if isinstance(a, Set):
        if len(a) != len(b):
            return False
        return (
            all(any(deep_equal(x, y) for y in b) for x in a)
            and all(any(deep_equal(y, x) for x in a) for y in b)
        )

    return a == b


def resolve_comparator(comparator: Optional[Any] = None) -> EqualityFn:
    """
    Turn a comparator capability into a plain equality function.

    Args:
        comparator: None for deep equality, a callable (a, b) -> bool,
            or an object exposing an equals(a, b) method

    Returns:
        Callable comparing two values
    """
    if comparator is None:
        return deep_equal

    equals = getattr(comparator, "equals", None)
    if callable(equals):
        return equals

    if callable(comparator):
        return comparator

    raise TypeError(
        f"comparator must be callable or expose an equals(a, b) method, got {type(comparator).__name__}"
    )


def contains(item: T, items: Sequence[T], comparator: Optional[Any] = None) -> bool:
    """Check whether any element of items is comparator-equal to item."""
    equals = resolve_comparator(comparator)
    for candidate in items:
        if equals(item, candidate):
            return True
    return False


def compute_new(
    previous: Sequence[T],
    latest: Sequence[T],
    comparator: Optional[Any] = None
) -> List[T]:
    """
    Return the items of latest that have no equal in previous.

    The relative order of latest is preserved. Runs in
    O(len(previous) * len(latest)) since the comparator is arbitrary.

    Args:
        previous: Snapshot from the last cycle
        latest: Snapshot from the current cycle
        comparator: Equality capability, see resolve_comparator

    Returns:
        List of newly observed items
    """
    equals = resolve_comparator(comparator)

    if not previous:
        return list(latest)

    new_items = []
    for item in latest:
        if not any(equals(item, candidate) for candidate in previous):
            new_items.append(item)

    return new_items
