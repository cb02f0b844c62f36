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

"""Lazy set-like operations on sorted iterables."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Iterator, TypeVar, TYPE_CHECKING

if TYPE_CHECKING:
    from _typeshed import SupportsDunderLT

    T = TypeVar("T", bound=SupportsDunderLT)

L = TypeVar("L")
R = TypeVar("R")

_DRAINED = object()


def _identity(value: Any) -> Any:
    return value


def sorted_iter_anti_join(
    left: Iterable[L],
    right: Iterable[R],
    key_left: Callable[[L], Any],
    key_right: Callable[[R], Any],
) -> Iterator[L]:
    """Yield elements of left whose key does not appear on the right.

    Both iterables must be sorted by their key. Each key is extracted once.
    """
    _left = iter(left)
    _right = iter(right)
    r = next(_right, _DRAINED)
    rk = key_right(r) if r is not _DRAINED else None

    for l_elem in _left:
        lk = key_left(l_elem)
        while r is not _DRAINED and rk < lk:
            r = next(_right, _DRAINED)
            if r is not _DRAINED:
                rk = key_right(r)
        if r is _DRAINED:
            yield l_elem
            break
        elif lk != rk:
            yield l_elem

    yield from _left


def sorted_iter_set_difference(source: Iterable[T], dest: Iterable[T]) -> Iterator[T]:
    """Compute the set difference of two sorted iterables."""
    return sorted_iter_anti_join(source, dest, _identity, _identity)
