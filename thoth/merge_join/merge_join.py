# thoth-merge-join
# Copyright(C) 2022 Red Hat, Inc.
#
# This program is free software: you can redistribute it and / or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program. If not, see <http://www.gnu.org/licenses/>.

"""Merge-join of two iterables sorted by a key.

Both inputs must be non-decreasing in their key; this is not checked and
out-of-order input only produces a logically wrong result. Runs of equal keys
pair up positionally (each side advances one element per match), they are not
expanded into a cross product.
"""

from __future__ import annotations

import copy
import logging
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Iterator, Optional, Tuple, TypeVar

_LOGGER = logging.getLogger("thoth.merge_join")

L = TypeVar("L")
R = TypeVar("R")
K = TypeVar("K")

_DRAINED = object()


class Retention(Enum):
    """How a buffered element is held until it is consumed."""

    REFERENCE = "reference"
    COPY = "copy"


class JoinState(Enum):
    """Lifecycle of a merge-join cursor."""

    PRIMING = "priming"
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


class _Side(Generic[K]):
    """One input of the join: its iterator and the buffered (key, element)."""

    __slots__ = ("_iter", "_key_of", "_retain", "key", "elem", "pulled")

    def __init__(self, source: Iterable[Any], key_of: Callable[[Any], K], retain: Callable[[Any], Any]) -> None:
        self._iter = iter(source)
        self._key_of = key_of
        self._retain = retain
        self.key: Optional[K] = None
        self.elem: Any = None
        self.pulled = 0

    def pull(self) -> bool:
        """Buffer the next element, return False once the source is drained."""
        elem = next(self._iter, _DRAINED)
        if elem is _DRAINED:
            self.key = self.elem = None
            return False
        self.pulled += 1
        # Extracted once, compared as many times as needed.
        key = self._key_of(elem)
        self.elem = self._retain(elem)
        self.key = key
        return True


def _hold(elem: Any) -> Any:
    return elem


_RETAIN = {
    Retention.REFERENCE: _hold,
    Retention.COPY: copy.copy,
}


class MergeJoin(Generic[L, R]):
    """Pull-mode cursor producing ``(left, right)`` pairs with equal keys.

    Use ``next()`` to request the next pair (``None`` marks the end) or iterate
    over the cursor directly. Once exhausted the cursor stays exhausted.
    """

    def __init__(
        self,
        left: Iterable[L],
        right: Iterable[R],
        key_left: Callable[[L], Any],
        key_right: Callable[[R], Any],
        *,
        retention: Retention = Retention.REFERENCE,
    ) -> None:
        """Create the cursor and prime it with the first element of each side."""
        retain = _RETAIN[retention]
        self._left: _Side[Any] = _Side(left, key_left, retain)
        self._right: _Side[Any] = _Side(right, key_right, retain)
        self._matches = 0
        self._advance = False
        self._state = JoinState.PRIMING
        # The right side is not touched when the left one is empty.
        if self._left.pull() and self._right.pull():
            self._state = JoinState.ACTIVE
        else:
            self._exhaust()

    @property
    def state(self) -> JoinState:
        """Current lifecycle state."""
        return self._state

    @property
    def left_pulled(self) -> int:
        """Number of elements pulled from the left source so far."""
        return self._left.pulled

    @property
    def right_pulled(self) -> int:
        """Number of elements pulled from the right source so far."""
        return self._right.pulled

    @property
    def matches(self) -> int:
        """Number of pairs emitted so far."""
        return self._matches

    def _exhaust(self) -> None:
        self._state = JoinState.EXHAUSTED
        _LOGGER.debug(
            "Merge join exhausted after pulling %d left and %d right elements, %d matches",
            self._left.pulled,
            self._right.pulled,
            self._matches,
        )

    def next(self) -> Optional[Tuple[L, R]]:
        """Return the next matched pair, or None when there are no more pairs.

        An exception raised by a source or a key extractor is propagated and
        leaves the cursor exhausted.
        """
        if self._state is JoinState.EXHAUSTED:
            return None
        try:
            return self._step()
        except BaseException:
            self._exhaust()
            raise

    def _step(self) -> Optional[Tuple[L, R]]:
        left, right = self._left, self._right
        if self._advance:
            self._advance = False
            if not (left.pull() and right.pull()):
                self._exhaust()
                return None

        while True:
            if left.key < right.key:
                if not left.pull():
                    break
            elif right.key < left.key:
                if not right.pull():
                    break
            else:
                self._advance = True
                self._matches += 1
                return left.elem, right.elem

        self._exhaust()
        return None

    def __iter__(self) -> Iterator[Tuple[L, R]]:
        return self

    def __next__(self) -> Tuple[L, R]:
        pair = self.next()
        if pair is None:
            raise StopIteration
        return pair


def make_join(
    left: Iterable[L],
    right: Iterable[R],
    key_left: Callable[[L], Any],
    key_right: Callable[[R], Any],
    *,
    retention: Retention = Retention.REFERENCE,
) -> MergeJoin[L, R]:
    """Construct a pull-mode merge join over two key-sorted iterables."""
    return MergeJoin(left, right, key_left, key_right, retention=retention)


def for_each_join(
    left: Iterable[L],
    right: Iterable[R],
    key_left: Callable[[L], Any],
    key_right: Callable[[R], Any],
    on_match: Callable[[L, R], None],
    *,
    retention: Retention = Retention.REFERENCE,
) -> int:
    """Drive the join to completion, calling on_match(left, right) for each match.

    Returns the number of matches.
    """
    cursor = MergeJoin(left, right, key_left, key_right, retention=retention)
    for l_elem, r_elem in cursor:
        on_match(l_elem, r_elem)
    return cursor.matches
