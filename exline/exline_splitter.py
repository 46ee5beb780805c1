"""
Breaking of a command line into `|`-separated sub-commands.
"""

from typing import List

from exline.exline_datatypes import ArgumentPolicy
from exline.exline_commands import CommandTable, skip_to_cmd_name
from exline.exline_quoting import is_separator_position


def break_cmdline(cmdline: str, table: CommandTable) -> List[str]:
    """Splits a command line into sub-commands, in order of appearance.

    Leading blanks and colons of every sub-command are dropped. For commands
    with regular or expression arguments `\\|` stands for a literal `|`,
    other escaped pairs are kept as they are. A `|` outside of quoted
    arguments ends the sub-command, except that expression commands keep a
    `||` (boolean or) that is not followed by a third `|`. A command that
    takes the rest of the line ends the splitting.

    The result is never empty: a line without commands gives `['']`.
    """
    if cmdline == "":
        return [""]

    commands: List[str] = []
    n = len(cmdline)
    # `start` is where the current sub-command begins in the raw line, `i`
    # is the next raw character and `processed` holds the compacted text of
    # the current sub-command.
    start = skip_to_cmd_name(cmdline)
    i = start
    processed: List[str] = []
    policy = table.policy_of(cmdline[start:])

    while start < n:
        if policy is ArgumentPolicy.UNTIL_END:
            commands.append(cmdline[start:])
            break

        ch = cmdline[i] if i < n else ""
        if ch == "\\":
            if cmdline.startswith("|", i + 1):
                processed.append("|")
            else:
                processed.append(cmdline[i:i + 2])
            i += 2
            continue

        if ch == "" or (ch == "|" and _splits_here(table, processed, cmdline, i)):
            if ch == "|" and policy is ArgumentPolicy.EXPRESSION and _is_boolean_or(cmdline, i):
                processed.append("||")
                i += 2
                continue

            commands.append("".join(processed))
            processed = []
            start = skip_to_cmd_name(cmdline, min(i + 1, n))
            i = start
            policy = table.policy_of(cmdline[start:])
            continue

        processed.append(ch)
        i += 1

    return commands or [""]


def _splits_here(table: CommandTable, processed: List[str], cmdline: str, i: int) -> bool:
    text = "".join(processed)
    # The rest of the raw line is needed to read the command's own separator.
    return is_separator_position(table, text + cmdline[i:], len(text))


def _is_boolean_or(cmdline: str, i: int) -> bool:
    return cmdline.startswith("||", i) and not cmdline.startswith("|||", i)


def find_last_command(cmdline: str, table: CommandTable) -> str:
    """Returns the raw text of the last sub-command of a command line.

    Used by completion, so nothing is compacted and a trailing `|` gives an
    empty last command.
    """
    n = len(cmdline)
    start = skip_to_cmd_name(cmdline)
    i = start
    processed: List[str] = []
    while i < n:
        if table.policy_of(cmdline[start:]) is ArgumentPolicy.UNTIL_END:
            break
        ch = cmdline[i]
        if ch == "\\":
            processed.append("|" if cmdline.startswith("|", i + 1) else cmdline[i:i + 2])
            i += 2
        elif ch == "|" and _splits_here(table, processed, cmdline, i):
            if table.policy_of(cmdline[start:]) is ArgumentPolicy.EXPRESSION and _is_boolean_or(cmdline, i):
                processed.append("||")
                i += 2
                continue
            start = skip_to_cmd_name(cmdline, i + 1)
            i = start
            processed = []
        else:
            processed.append(ch)
            i += 1
    return cmdline[start:]
