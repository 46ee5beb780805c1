"""
Defines the core data types of the exline command-line engine.

This module provides the enums, value types and the item list model that
the quoting tracker, the splitter, the scope machine, the range resolver and
the runner all share.
"""

from enum import Enum, IntEnum
from dataclasses import dataclass, field
from typing import List, Optional


# =================================================================
# Command classification
# =================================================================

class ArgumentPolicy(Enum):
    """How the trailing text of a command is tokenized relative to `|`."""
    REGULAR = "regular"        # Sub-commands are separated by a `|`.
    EXPRESSION = "expression"  # Accepts expressions with `||`, terminates on `|`.
    UNTIL_END = "until-end"    # Takes the rest of the line including every `|`.


class CommandKind(Enum):
    BUILTIN = "builtin"
    USER = "user"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CommandId:
    """A command name resolved against the command table."""
    kind: CommandKind
    name: str = ""

    @property
    def known(self) -> bool:
        return self.kind is not CommandKind.UNKNOWN


UNKNOWN_COMMAND = CommandId(CommandKind.UNKNOWN)


# =================================================================
# Quoting
# =================================================================

class QuoteState(Enum):
    BEGIN = "begin"
    UNQUOTED = "unquoted"
    SINGLE = "single"
    DOUBLE = "double"
    REGEX = "regex"


class QuoteResult(IntEnum):
    """Outcome of scanning a line up to a position."""
    OUT_OF_ARG = 0
    SKIP_NEXT = 1
    UNQUOTED_IN_ARG = 2
    UNTERMINATED_SINGLE = 3
    UNTERMINATED_DOUBLE = 4
    UNTERMINATED_REGEX = 5


class CmdLineLocation(Enum):
    """Kind of argument text a cursor position sits in."""
    OUT_OF_ARG = "out-of-arg"
    NO_QUOTING = "no-quoting"
    SINGLE_QUOTING = "single-quoting"
    DOUBLE_QUOTING = "double-quoting"
    REGEX_QUOTING = "regex-quoting"


# =================================================================
# Conditional scopes
# =================================================================

class ScopeFrame(Enum):
    SCOPE_GUARD = "scope-guard"    # Command scope marker, prevents mixing of levels.
    BEFORE_MATCH = "before-match"  # No true condition found yet.
    MATCH = "match"                # Processing the branch of a true condition.
    AFTER_MATCH = "after-match"    # Left the branch of the true condition.
    ELSE = "else"                  # Else branch that should be run.
    FINISH = "finish"              # After else branch, only endif is expected.


# =================================================================
# Errors
# =================================================================

class ErrorCode(Enum):
    """Fixed taxonomy of command errors, valued by their status message."""
    LOOP = "Loop in commands"
    NO_MEM = "Unable to allocate enough memory"
    TOO_FEW_ARGS = "Too few arguments"
    TRAILING_CHARS = "Trailing characters"
    INCORRECT_NAME = "Incorrect command name"
    NEED_BANG = "Add bang to force"
    NO_BUILTIN_REDEFINE = "Can't redefine builtin command"
    INVALID_CMD = "Invalid command name"
    NO_BANG_ALLOWED = "No ! is allowed"
    NO_RANGE_ALLOWED = "No range is allowed"
    NO_QMARK_ALLOWED = "No ? is allowed"
    INVALID_RANGE = "Invalid range"
    NO_SUCH_UDF = "No such user defined command"
    UDF_IS_AMBIGUOUS = "Ambiguous use of user-defined command"
    ZERO_COUNT = "Zero count"
    INVALID_ARG = "Invalid argument"
    CUSTOM = "Command failed"

    @property
    def message(self) -> str:
        return self.value


class CommandError(Exception):
    """Raised by the command table and by command handlers.

    `CUSTOM` errors carry the handler's own message; every other code falls
    back to the fixed message of its taxonomy entry. `details` keeps the
    message given by the raiser, if any.
    """
    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.code = code
        self.details = message
        self.message = message or code.message
        super().__init__(self.message)


# =================================================================
# Ranges and the item list
# =================================================================

@dataclass(frozen=True)
class Range:
    """A parsed line range over an item list, as 0-based indices.

    Legal shapes: both -1 (absent), begin -1 with end >= 0 (a single line)
    or both >= 0 (closed inclusive interval).
    """
    begin: int = -1
    end: int = -1

    def __post_init__(self):
        if self.begin < -1 or self.end < -1:
            raise ValueError(f"invalid range bounds: {self.begin}, {self.end}")
        if self.begin >= 0 and self.end < 0:
            raise ValueError("a range with a beginning must have an end")

    @property
    def is_empty(self) -> bool:
        return self.end < 0

    @property
    def is_interval(self) -> bool:
        return self.begin >= 0


NO_RANGE = Range()


class ItemList:
    """An ordered list of items with a cursor and a selection.

    The selection is a flag per item plus a count. `user_selection` tells
    whether the current selection came from an explicit user action (as
    opposed to being derived from a command range).
    """
    def __init__(self, items: Optional[List[str]] = None, pos: int = 0):
        self.items: List[str] = list(items or [])
        self.selected: List[bool] = [False] * len(self.items)
        self.selected_count = 0
        self.user_selection = True
        self.pos = pos if 0 <= pos < len(self.items) else 0

    def __len__(self) -> int:
        return len(self.items)

    def __repr__(self) -> str:
        return f"<ItemList {len(self.items)} items, pos={self.pos}, selected={self.selected_indices()}>"

    @property
    def last(self) -> int:
        return len(self.items) - 1

    def is_parent_dir(self, index: int) -> bool:
        return self.items[index] == ".."

    def set_items(self, items: List[str]):
        """Replaces the items, dropping the selection and clamping the cursor."""
        self.items = list(items)
        self.selected = [False] * len(self.items)
        self.selected_count = 0
        self.pos = min(self.pos, max(len(self.items) - 1, 0))

    def mark(self, index: int):
        """Adds an item to the selection without touching `user_selection`."""
        if not self.selected[index]:
            self.selected[index] = True
            self.selected_count += 1

    def select(self, *indices: int):
        """Selects items on behalf of the user."""
        for index in indices:
            self.mark(index)
        self.user_selection = True

    def clean_selection(self):
        self.selected = [False] * len(self.items)
        self.selected_count = 0

    def selected_indices(self) -> List[int]:
        return [i for i, flag in enumerate(self.selected) if flag]

    def selected_items(self) -> List[str]:
        return [self.items[i] for i in self.selected_indices()]

    @property
    def current(self) -> Optional[str]:
        return self.items[self.pos] if self.items else None


# =================================================================
# Parsed commands
# =================================================================

@dataclass
class CommandInfo:
    """A single command after range, name, bang and arguments are parsed."""
    cmd_id: CommandId
    name: str
    range: Range = NO_RANGE
    bang: bool = False
    qmark: bool = False
    args: str = ""
    argv: List[str] = field(default_factory=list)
    count: Optional[int] = None
    sep: str = " "

    @property
    def begin(self) -> int:
        return self.range.begin

    @property
    def end(self) -> int:
        return self.range.end
