from datetime import datetime

from conftest import at, make_segment
from services.overlaps import find_overlaps, intervals_overlap, overlap_map


def test_touching_intervals_do_not_overlap():
    assert not intervals_overlap(at(9), at(10), at(10), at(11))
    assert intervals_overlap(at(9), at(10, 1), at(10), at(11))


def test_find_overlaps_sorted_and_excludes_self():
    candidate = make_segment("c", at(9), at(12))
    late = make_segment("late", at(11), at(13), task_id="t2")
    early = make_segment("early", at(8), at(9, 30), task_id="t3")
    apart = make_segment("apart", at(12), at(13), task_id="t4")
    hits = find_overlaps(candidate, [late, candidate, apart, early])
    assert [seg.id for seg in hits] == ["early", "late"]


def test_find_overlaps_ignores_deleted():
    candidate = make_segment("c", at(9), at(12))
    gone = make_segment("gone", at(10), at(11), deleted_at=datetime(2024, 3, 1))
    assert find_overlaps(candidate, [gone]) == []


def test_overlap_map_is_symmetric():
    a = make_segment("a", at(9), at(11))
    b = make_segment("b", at(10), at(12))
    c = make_segment("c", at(10, 30), at(10, 45))
    d = make_segment("d", at(12), at(13))
    result = overlap_map([d, c, b, a])
    assert sorted(result["a"]) == ["b", "c"]
    assert sorted(result["b"]) == ["a", "c"]
    assert sorted(result["c"]) == ["a", "b"]
    assert "d" not in result
