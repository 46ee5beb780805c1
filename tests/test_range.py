import pytest

from exline.exline_datatypes import Range, NO_RANGE, ItemList, CommandError, ErrorCode
from exline.exline_range import skip_range, parse_range, apply_count, select_range


def make_view(n=6, parent=True, pos=0):
    items = [f"item{i}" for i in range(n)]
    if parent:
        items[0] = ".."
    return ItemList(items, pos=pos)


# --- Range ---

def test_range_shapes():
    assert NO_RANGE.is_empty
    assert Range(-1, 3).end == 3 and not Range(-1, 3).is_interval
    assert Range(1, 3).is_interval
    with pytest.raises(ValueError):
        Range(2, -1)
    with pytest.raises(ValueError):
        Range(-2, 1)


# --- select_range ---

def test_interval_skips_parent_dir():
    view = make_view()
    select_range(view, Range(0, 4))
    assert view.selected_indices() == [1, 2, 3, 4]


def test_interval_selects_range_and_replaces_selection():
    view = make_view()
    view.select(5)
    select_range(view, Range(2, 4))
    assert view.selected_indices() == [2, 3, 4]
    assert view.selected_count == 3


def test_sole_parent_dir_is_selected():
    view = make_view()
    select_range(view, Range(0, 0))
    assert view.selected_indices() == [0]


def test_reselecting_same_range_is_idempotent():
    view = make_view()
    select_range(view, Range(2, 4))
    first = set(view.selected_indices())
    select_range(view, Range(2, 4))
    assert set(view.selected_indices()) == first


def test_single_line_selects_when_nothing_selected():
    view = make_view()
    select_range(view, Range(-1, 3))
    assert view.selected_indices() == [3]


def test_single_line_keeps_existing_selection():
    view = make_view()
    view.select(1, 2)
    select_range(view, Range(-1, 3))
    assert view.selected_indices() == [1, 2]
    assert view.user_selection


def test_no_range_selects_cursor():
    view = make_view(pos=2)
    select_range(view, NO_RANGE)
    assert view.selected_indices() == [2]
    assert not view.user_selection


def test_no_range_range_exempt_selects_nothing():
    view = make_view(pos=2)
    select_range(view, NO_RANGE, range_exempt=True)
    assert view.selected_indices() == []


def test_no_range_keeps_user_selection():
    view = make_view(pos=2)
    view.select(4, 5)
    select_range(view, NO_RANGE)
    assert view.selected_indices() == [4, 5]
    assert view.user_selection


def test_user_selection_cleared_when_range_selects():
    view = make_view()
    view.select(1)
    assert view.user_selection
    select_range(view, Range(2, 3))
    assert not view.user_selection


# --- parse_range ---

def test_skip_range():
    assert skip_range("3,5delete") == 3
    assert skip_range("'a,'bdelete") == 5
    assert skip_range("delete") == 0
    assert skip_range("%yank") == 1
    assert skip_range("%,3yank") == 1


@pytest.mark.parametrize("text, expected, offset", [
    ("3,5delete", Range(3, 5), 3),
    ("2delete", Range(-1, 2), 1),
    (".,$yank", Range(2, 9), 3),
    ("%yank", Range(0, 9), 1),
    (".+1,.+3d", Range(3, 5), 7),
    ("$-2,$d", Range(7, 9), 5),
    (",4d", Range(2, 4), 2),
    ("delete", NO_RANGE, 0),
])
def test_parse_range(text, expected, offset):
    view = make_view(10, parent=False, pos=2)
    assert parse_range(text, view) == (expected, offset)


def test_percent_on_empty_list():
    assert parse_range("%d", ItemList()) == (NO_RANGE, 1)


def test_address_past_the_end_is_invalid():
    with pytest.raises(CommandError) as excinfo:
        parse_range("3,20d", make_view(10))
    assert excinfo.value.code is ErrorCode.INVALID_RANGE


def test_backwards_range_is_swapped_on_consent():
    view = make_view(10)
    assert parse_range("5,3d", view, swap_range=lambda: True)[0] == Range(3, 5)
    with pytest.raises(CommandError) as excinfo:
        parse_range("5,3d", view, swap_range=lambda: False)
    assert excinfo.value.message == "Backwards range given"


def test_marks_are_resolved_by_callback():
    view = make_view(10)
    marks = {"a": 1, "b": 4}
    rng, offset = parse_range("'a,'bd", view, resolve_mark=lambda m: marks.get(m, -1))
    assert (rng, offset) == (Range(1, 4), 5)
    with pytest.raises(CommandError) as excinfo:
        parse_range("'zd", view, resolve_mark=lambda m: marks.get(m, -1))
    assert excinfo.value.message == "Trying to use an invalid mark: 'z"


# --- apply_count ---

def test_apply_count():
    view = make_view(10, pos=2)
    assert apply_count(NO_RANGE, 3, view) == Range(2, 4)
    assert apply_count(Range(-1, 6), 3, view) == Range(6, 8)
    assert apply_count(Range(1, 7), 10, view) == Range(7, 9)


def test_zero_count():
    with pytest.raises(CommandError) as excinfo:
        apply_count(NO_RANGE, 0, make_view())
    assert excinfo.value.code is ErrorCode.ZERO_COUNT
