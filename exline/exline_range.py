"""
Command ranges: parsing of the `begin,end` prefix of a command and the
resolution of a parsed range into a selection over an item list.
"""

from typing import Callable, Optional, Tuple

from exline.exline_datatypes import Range, NO_RANGE, ItemList, CommandError, ErrorCode

_DIGITS = "0123456789"
_RANGE_CHARS = _DIGITS + ".$,+-"


def skip_range(text: str, i: int = 0) -> int:
    """Skips range syntax starting at `i` without validating it.

    `%` is a whole range on its own.
    """
    if text.startswith("%", i):
        return i + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "'" and i + 1 < n:
            i += 2
        elif ch in _RANGE_CHARS:
            i += 1
        else:
            break
    return i


def _parse_number(text: str, i: int) -> Tuple[Optional[int], int]:
    j = i
    while j < len(text) and text[j] in _DIGITS:
        j += 1
    if j == i:
        return None, i
    return int(text[i:j]), j


def _parse_address(text: str, i: int, view: ItemList,
                   resolve_mark: Optional[Callable[[str], int]]) -> Tuple[Optional[int], int]:
    """Parses one address; returns (None, i) when there is none at `i`."""
    n = len(text)
    index: Optional[int] = None
    if i < n:
        ch = text[i]
        if ch == ".":
            index, i = view.pos, i + 1
        elif ch == "$":
            index, i = view.last, i + 1
        elif ch == "'" and i + 1 < n:
            mark = text[i + 1]
            index = resolve_mark(mark) if resolve_mark is not None else -1
            if index is None or index < 0:
                raise CommandError(ErrorCode.INVALID_RANGE, f"Trying to use an invalid mark: '{mark}")
            i += 2
        elif ch in _DIGITS:
            index, i = _parse_number(text, i)

    while i < n and text[i] in "+-":
        sign = 1 if text[i] == "+" else -1
        number, i = _parse_number(text, i + 1)
        if index is None:
            index = view.pos
        index += sign * (1 if number is None else number)
    return index, i


def parse_range(text: str, view: ItemList,
                resolve_mark: Optional[Callable[[str], int]] = None,
                swap_range: Optional[Callable[[], bool]] = None) -> Tuple[Range, int]:
    """Parses the range at the start of `text`.

    Returns the range (as 0-based indices) and the offset of the first
    character after it. Raises CommandError(INVALID_RANGE) for addresses
    outside of the list and for backwards ranges that are not swapped.
    """
    if text.startswith("%"):
        if len(view) == 0:
            return NO_RANGE, 1
        return Range(0, view.last), 1

    addresses = []
    index, i = _parse_address(text, 0, view, resolve_mark)
    while i < len(text) and text[i] == ",":
        addresses.append(view.pos if index is None else index)
        index, i = _parse_address(text, i + 1, view, resolve_mark)
    if index is not None or addresses:
        addresses.append(view.pos if index is None else index)

    if not addresses:
        return NO_RANGE, i

    for address in addresses:
        if address < 0 or address > view.last:
            raise CommandError(ErrorCode.INVALID_RANGE)

    if len(addresses) == 1:
        return Range(-1, addresses[0]), i

    begin, end = addresses[-2], addresses[-1]
    if begin > end:
        if swap_range is None or not swap_range():
            raise CommandError(ErrorCode.INVALID_RANGE, "Backwards range given")
        begin, end = end, begin
    return Range(begin, end), i


def apply_count(rng: Range, count: int, view: ItemList) -> Range:
    """Turns a count argument into a range starting at the last line of `rng`."""
    if count == 0:
        raise CommandError(ErrorCode.ZERO_COUNT)
    begin = rng.end if rng.end >= 0 else view.pos
    return Range(begin, min(begin + count - 1, view.last))


def select_range(view: ItemList, rng: Range, range_exempt: bool = False):
    """Turns a command range into a selection of `view`.

    In priority order:
      1. a closed interval replaces the selection with every item in it,
         skipping `..` unless it is the only item of the range;
      2. a single line selects that item when nothing is selected;
      3. no range selects the item under the cursor when nothing is
         selected, unless the command is range exempt;
      4. an existing selection is otherwise left untouched.
    """
    if rng.begin > -1:
        view.clean_selection()
        for index in range(rng.begin, rng.end + 1):
            if view.is_parent_dir(index) and rng.begin != rng.end:
                continue
            view.mark(index)
    elif view.selected_count == 0:
        if rng.end > -1:
            view.clean_selection()
            view.mark(rng.end)
        elif not range_exempt and len(view) > 0:
            view.clean_selection()
            view.mark(view.pos)
    else:
        return

    if view.selected_count > 0:
        view.user_selection = False
