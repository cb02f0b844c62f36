import itertools
from operator import itemgetter

from thoth.merge_join.lazy_set_ops import sorted_iter_anti_join, sorted_iter_set_difference


def test_set_difference():
    assert list(sorted_iter_set_difference([1, 2, 3, 5, 8], [2, 3, 4, 9])) == [1, 5, 8]


def test_set_difference_empty_dest():
    assert list(sorted_iter_set_difference(["a", "b"], [])) == ["a", "b"]


def test_set_difference_empty_source():
    assert list(sorted_iter_set_difference([], [1, 2])) == []


def test_set_difference_duplicates_removed_together():
    assert list(sorted_iter_set_difference([1, 2, 2, 2, 3], [2])) == [1, 3]


def test_set_difference_is_lazy():
    result = sorted_iter_set_difference(itertools.count(), [0, 2, 4])
    assert list(itertools.islice(result, 5)) == [1, 3, 5, 6, 7]


def test_anti_join_by_key():
    left = [("a", 1), ("b", 2), ("c", 3)]
    right = [{"key": "b"}, {"key": "d"}]
    assert list(sorted_iter_anti_join(left, right, itemgetter(0), itemgetter("key"))) == [("a", 1), ("c", 3)]


def test_anti_join_extracts_keys_once():
    calls = []

    def key(elem):
        calls.append(elem)
        return elem

    assert list(sorted_iter_anti_join([1, 2, 3], [0, 2, 5], key, key)) == [1, 3]
    assert sorted(calls) == [0, 1, 2, 2, 3, 5]
