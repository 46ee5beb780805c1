"""
Quoting state of command lines.

`line_pos` is a single left-to-right scan that tells what kind of argument
text a position of a command line falls into. The splitter uses it to find
`|` separators and editing front ends use it (through `cmdline_location`) to
pick the right escaping for text inserted at the cursor.
"""

from typing import List

from exline.exline_datatypes import QuoteState, QuoteResult, CmdLineLocation, CommandError, ErrorCode

# Characters that need a backslash in front of them outside of quotes.
SHELL_SPECIAL_CHARS = " \t\n\\\"'`$&|;()<>[]{}*?!#~"

_UNTERMINATED = {
    QuoteState.SINGLE: QuoteResult.UNTERMINATED_SINGLE,
    QuoteState.DOUBLE: QuoteResult.UNTERMINATED_DOUBLE,
    QuoteState.REGEX: QuoteResult.UNTERMINATED_REGEX,
}

_LOCATIONS = {
    QuoteResult.OUT_OF_ARG: CmdLineLocation.OUT_OF_ARG,
    QuoteResult.SKIP_NEXT: CmdLineLocation.NO_QUOTING,
    QuoteResult.UNQUOTED_IN_ARG: CmdLineLocation.NO_QUOTING,
    QuoteResult.UNTERMINATED_SINGLE: CmdLineLocation.SINGLE_QUOTING,
    QuoteResult.UNTERMINATED_DOUBLE: CmdLineLocation.DOUBLE_QUOTING,
    QuoteResult.UNTERMINATED_REGEX: CmdLineLocation.REGEX_QUOTING,
}


def line_pos(text: str, upto: int, sep: str = " ", regex_quoting: bool = False) -> QuoteResult:
    """Scans `text[:upto]` and reports the quoting state at `upto`.

    `sep` separates fields of the command (a space for most commands, the
    command-supplied delimiter for substitute-like ones). Quotes only open a
    field when `sep` is a space; `/regex/` quoting additionally needs
    `regex_quoting`.
    """
    state = QuoteState.BEGIN
    count = 0
    i = 0
    while i < upto:
        ch = text[i]
        match state:
            case QuoteState.BEGIN:
                if sep == " " and ch == "'":
                    state = QuoteState.SINGLE
                elif sep == " " and ch == '"':
                    state = QuoteState.DOUBLE
                elif sep == " " and ch == "/" and regex_quoting:
                    state = QuoteState.REGEX
                elif ch == "&" and i == upto - 1:
                    pass
                elif ch != sep:
                    state = QuoteState.UNQUOTED
            case QuoteState.UNQUOTED:
                if ch == sep:
                    state = QuoteState.BEGIN
                    count += 1
                elif ch == "'":
                    state = QuoteState.SINGLE
                elif ch == '"':
                    state = QuoteState.DOUBLE
                elif ch == "\\":
                    i += 1
                    if i == upto:
                        return QuoteResult.SKIP_NEXT
            case QuoteState.SINGLE:
                if ch == "'":
                    state = QuoteState.BEGIN
            case QuoteState.DOUBLE | QuoteState.REGEX:
                closer = '"' if state is QuoteState.DOUBLE else "/"
                if ch == closer:
                    state = QuoteState.BEGIN
                elif ch == "\\":
                    i += 1
                    if i == upto:
                        return QuoteResult.SKIP_NEXT
        i += 1

    if state is QuoteState.UNQUOTED:
        if sep == " ":
            # The first field is the command name, not an argument.
            return QuoteResult.UNQUOTED_IN_ARG if count > 0 else QuoteResult.OUT_OF_ARG
        if 0 < count < 3:
            return QuoteResult.UNQUOTED_IN_ARG
    elif state is not QuoteState.BEGIN:
        return _UNTERMINATED[state]
    elif sep != " " and count > 0 and text[upto:upto + 1] != sep:
        return QuoteResult.UNQUOTED_IN_ARG
    return QuoteResult.OUT_OF_ARG


def location_of(result: QuoteResult) -> CmdLineLocation:
    return _LOCATIONS[result]


def cmdline_location(table, cmd: str, pos: int) -> CmdLineLocation:
    """Classifies position `pos` of the single command `cmd`.

    The command table decides the field separator and whether the command
    accepts `/regex/` quoting.
    """
    sep, regex_quoting = table.quoting_for(cmd)
    return location_of(line_pos(cmd, pos, sep, regex_quoting))


def is_separator_position(table, cmd: str, pos: int) -> bool:
    """Whether a `|` at `pos` of `cmd` may end the command.

    It may not inside quotes, right after an unpaired backslash, or inside
    the delimited fields of a custom-separator command (e.g. the pattern of
    `s/a|b/c/`).
    """
    sep, regex_quoting = table.quoting_for(cmd)
    result = line_pos(cmd, pos, sep, regex_quoting)
    if result is QuoteResult.OUT_OF_ARG:
        return True
    return result is QuoteResult.UNQUOTED_IN_ARG and sep == " "


def split_args(args: str) -> List[str]:
    """Splits arguments on blanks, honouring quotes and backslash escapes.

    Raises CommandError(INVALID_ARG) naming the quote left unterminated.
    """
    argv: List[str] = []
    current: List[str] = []
    in_arg = False
    i = 0
    n = len(args)
    while i < n:
        ch = args[i]
        if ch in " \t":
            if in_arg:
                argv.append("".join(current))
                current, in_arg = [], False
        elif ch == "'":
            end = args.find("'", i + 1)
            if end < 0:
                raise CommandError(ErrorCode.INVALID_ARG, "Unterminated single quote")
            current.append(args[i + 1:end])
            in_arg, i = True, end
        elif ch == '"':
            i += 1
            while i < n and args[i] != '"':
                if args[i] == "\\" and i + 1 < n:
                    i += 1
                current.append(args[i])
                i += 1
            if i == n:
                raise CommandError(ErrorCode.INVALID_ARG, "Unterminated double quote")
            in_arg = True
        elif ch == "\\" and i + 1 < n:
            i += 1
            current.append(args[i])
            in_arg = True
        else:
            current.append(ch)
            in_arg = True
        i += 1
    if in_arg:
        argv.append("".join(current))
    return argv


# --------------------------
# Escaping of inserted text
# --------------------------

def shell_like_escape(text: str) -> str:
    return "".join("\\" + ch if ch in SHELL_SPECIAL_CHARS else ch for ch in text)


def escape_for_squotes(text: str) -> str:
    return text.replace("'", "''")


def escape_for_dquotes(text: str) -> str:
    return "".join("\\" + ch if ch in '"\\' else ch for ch in text)


def escape_for_insertion(table, cmd_line: str, pos: int, text: str) -> str:
    """Escapes `text` for insertion into `cmd_line` at cursor position `pos`."""
    match cmdline_location(table, cmd_line, pos):
        case CmdLineLocation.SINGLE_QUOTING:
            return escape_for_squotes(text)
        case CmdLineLocation.DOUBLE_QUOTING:
            return escape_for_dquotes(text)
        case _:
            # Regex quoting reuses the file name escaping.
            return shell_like_escape(text)
