"""Binary search for the first commit at which a regression appears."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, TypeVar

from rust_sysroot.errors import BisectError

if TYPE_CHECKING:
	from collections.abc import Callable, Sequence

T = TypeVar("T")


def least_satisfying(sequence: Sequence[T], predicate: Callable[[T], bool]) -> int:
	"""
	Find the index of the least item in ``sequence`` for which ``predicate`` holds.

	The predicate must be monotonic: false for every item before some
	index ``k`` and true from ``k`` on. ``k`` is returned, and equals
	``len(sequence)`` when the predicate never holds. Each item is
	evaluated at most once.

	Args:
	    sequence: Items in search order.
	    predicate: Expensive test, called once per bisection step.

	Returns:
	    The index of the first item satisfying the predicate.

	Raises:
	    BisectError: If the sequence is empty.

	"""
	if not sequence:
		msg = "cannot bisect an empty sequence"
		raise BisectError(msg)

	base = 0
	window = sequence
	while True:
		mid = len(window) >> 1
		head, tail = window[:mid], window[mid:]
		if not tail:
			return base + len(head)
		if predicate(tail[0]):
			window = head
		else:
			base += len(head) + 1
			window = tail[1:]


def estimate_steps(count: int) -> int:
	"""Number of bisection steps needed for ``count`` candidates."""
	if count <= 1:
		return 0
	return math.ceil(math.log2(count))
