"""
The command table: builtin command declarations, user-defined commands,
name resolution and parsing of a single command into a `CommandInfo`.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from exline.exline_datatypes import (
    ArgumentPolicy, CommandKind, CommandId, UNKNOWN_COMMAND, CommandInfo,
    CommandError, ErrorCode, ItemList
)
from exline.exline_range import skip_range, parse_range, apply_count
from exline.exline_quoting import split_args

DEFAULT_TABLE_PATH = Path(__file__).parent / "commands.yaml"


def skip_to_cmd_name(text: str, i: int = 0) -> int:
    """Skips whitespace and colons in front of a command."""
    while i < len(text) and (text[i].isspace() or text[i] == ":"):
        i += 1
    return i


def is_valid_user_name(name: str) -> bool:
    return bool(name) and name[0].isalpha() and all(ch.isalnum() or ch == "_" for ch in name)


@dataclass
class CommandSpec:
    """Declaration of a builtin command."""
    name: str
    abbrev: str
    policy: ArgumentPolicy = ArgumentPolicy.REGULAR
    quoting: Optional[str] = None
    range: bool = False
    bang: bool = False
    qmark: bool = False
    select: bool = False
    range_exempt: bool = False
    count: bool = False
    keep_selection: bool = False
    macros: bool = False
    min_args: int = 0
    max_args: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CommandSpec':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"unknown command attributes for {data.get('name')!r}: {sorted(unknown)}")
        values = dict(data)
        values["name"] = str(values["name"])
        values["abbrev"] = str(values.get("abbrev", values["name"]))
        values["policy"] = ArgumentPolicy(values.get("policy", ArgumentPolicy.REGULAR.value))
        if values.get("quoting") not in (None, "regex", "custom-separator"):
            raise ValueError(f"invalid quoting {values['quoting']!r} for {values['name']!r}")
        return cls(**values)

    def matches(self, name: str) -> bool:
        return self.name.startswith(name) and name.startswith(self.abbrev)


def load_command_specs(path: Optional[Path] = None) -> List[CommandSpec]:
    """Reads builtin command declarations from a YAML file."""
    path = Path(path) if path is not None else DEFAULT_TABLE_PATH
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return [CommandSpec.from_dict(entry) for entry in data.get("commands", [])]


class CommandTable:
    """Maps command names to builtin declarations, handlers and user commands."""

    _default_specs: Optional[List[CommandSpec]] = None

    def __init__(self, path: Optional[Path] = None):
        if path is None:
            # Parsed once and cached on the class.
            if CommandTable._default_specs is None:
                CommandTable._default_specs = load_command_specs()
            specs = CommandTable._default_specs
        else:
            specs = load_command_specs(path)
        self.builtins: Dict[str, CommandSpec] = {s.name: s for s in specs}
        self.handlers: Dict[str, Callable] = {}
        self.user_commands: Dict[str, str] = {}

    # --- Registration ---

    def add_builtin(self, spec: CommandSpec, handler: Optional[Callable] = None):
        self.builtins[spec.name] = spec
        if handler is not None:
            self.handlers[spec.name] = handler

    def set_handler(self, name: str, handler: Callable):
        if name not in self.builtins:
            raise KeyError(f"'{name}' is not a builtin command")
        self.handlers[name] = handler

    def define_user_command(self, name: str, action: str, overwrite: bool = False):
        if not is_valid_user_name(name):
            raise CommandError(ErrorCode.INCORRECT_NAME)
        if self._builtin_by_name(name) is not None:
            raise CommandError(ErrorCode.NO_BUILTIN_REDEFINE)
        if name in self.user_commands and not overwrite:
            raise CommandError(ErrorCode.NEED_BANG)
        self.user_commands[name] = action

    def delete_user_command(self, name: str):
        if name not in self.user_commands:
            raise CommandError(ErrorCode.NO_SUCH_UDF)
        del self.user_commands[name]

    # --- Lookup ---

    def _builtin_by_name(self, name: str) -> Optional[CommandSpec]:
        spec = self.builtins.get(name)
        if spec is not None:
            return spec
        for spec in self.builtins.values():
            if spec.matches(name):
                return spec
        return None

    def resolve(self, name: str) -> CommandId:
        """Resolves a (possibly abbreviated) name, raising on failure."""
        spec = self._builtin_by_name(name) if name else None
        if spec is not None:
            return CommandId(CommandKind.BUILTIN, spec.name)
        if name in self.user_commands:
            return CommandId(CommandKind.USER, name)
        candidates = [n for n in self.user_commands if name and n.startswith(name)]
        if len(candidates) == 1:
            return CommandId(CommandKind.USER, candidates[0])
        if len(candidates) > 1:
            raise CommandError(ErrorCode.UDF_IS_AMBIGUOUS)
        raise CommandError(ErrorCode.INVALID_CMD)

    @staticmethod
    def read_name(text: str, i: int) -> Tuple[str, int]:
        """Reads a command name starting at `i` (after blanks)."""
        while i < len(text) and text[i] in " \t":
            i += 1
        if text.startswith("!", i):
            return "!", i + 1
        j = i
        if j < len(text) and text[j].isalpha():
            while j < len(text) and (text[j].isalnum() or text[j] == "_"):
                j += 1
        return text[i:j], j

    def _locate_name(self, cmd: str) -> Tuple[bool, str, int]:
        text_start = skip_to_cmd_name(cmd)
        after_range = skip_range(cmd, text_start)
        name, end = self.read_name(cmd, after_range)
        return after_range > text_start, name, end

    def lookup(self, cmd: str) -> CommandId:
        """Finds the command a command line starts with; never raises."""
        has_range, name, _ = self._locate_name(cmd)
        if not name:
            return CommandId(CommandKind.BUILTIN, "goto") if has_range else UNKNOWN_COMMAND
        try:
            return self.resolve(name)
        except CommandError:
            return UNKNOWN_COMMAND

    def spec(self, cmd_id: CommandId) -> Optional[CommandSpec]:
        if cmd_id.kind is CommandKind.BUILTIN:
            return self.builtins.get(cmd_id.name)
        return None

    def classify(self, cmd_id: CommandId) -> ArgumentPolicy:
        spec = self.spec(cmd_id)
        return spec.policy if spec is not None else ArgumentPolicy.REGULAR

    def policy_of(self, cmd: str) -> ArgumentPolicy:
        return self.classify(self.lookup(cmd))

    def quoting_for(self, cmd: str) -> Tuple[str, bool]:
        """Field separator and regex quoting flag of the command `cmd`."""
        spec = self.spec(self.lookup(cmd))
        if spec is None or spec.quoting is None:
            return " ", False
        if spec.quoting == "regex":
            return " ", True
        _, _, end = self._locate_name(cmd)
        sep = cmd[end] if end < len(cmd) and not cmd[end].isspace() else " "
        return sep, True

    # --- Parsing ---

    def parse(self, cmd: str, view: ItemList,
              resolve_mark: Optional[Callable[[str], int]] = None,
              swap_range: Optional[Callable[[], bool]] = None) -> CommandInfo:
        """Parses one command, validating it against its declaration."""
        start = skip_to_cmd_name(cmd)
        rng, i = parse_range(cmd[start:], view, resolve_mark, swap_range)
        has_range = i > 0
        i += start

        name, i = self.read_name(cmd, i)
        if not name:
            if not has_range:
                raise CommandError(ErrorCode.INVALID_CMD)
            cmd_id = CommandId(CommandKind.BUILTIN, "goto")
        else:
            cmd_id = self.resolve(name)
        spec = self.spec(cmd_id)

        bang = cmd.startswith("!", i)
        if bang:
            i += 1
        qmark = cmd.startswith("?", i)
        if qmark:
            i += 1

        info = CommandInfo(cmd_id=cmd_id, name=cmd_id.name, range=rng, bang=bang, qmark=qmark)
        if spec is None:
            info.args = cmd[i:].strip()
            info.argv = split_args(info.args)
            return info

        if has_range and not spec.range:
            raise CommandError(ErrorCode.NO_RANGE_ALLOWED)
        if bang and not spec.bang:
            raise CommandError(ErrorCode.NO_BANG_ALLOWED)
        if qmark and not spec.qmark:
            raise CommandError(ErrorCode.NO_QMARK_ALLOWED)

        if spec.quoting == "custom-separator":
            info.args = cmd[i:]
            info.sep = info.args[0] if info.args and not info.args[0].isspace() else " "
            info.argv = info.args[1:].split(info.sep) if info.sep != " " else split_args(info.args)
        elif spec.policy is ArgumentPolicy.REGULAR:
            info.args = cmd[i:].lstrip()
            info.argv = split_args(info.args)
        else:
            info.args = cmd[i:].lstrip()
            if spec.min_args > 0 and not info.args.strip():
                raise CommandError(ErrorCode.TOO_FEW_ARGS)
            return info

        if spec.count and len(info.argv) == 1 and info.argv[0].isdigit():
            info.count = int(info.argv[0])
            info.range = apply_count(info.range, info.count, view)
            info.args, info.argv = "", []

        if len(info.argv) < spec.min_args:
            raise CommandError(ErrorCode.TOO_FEW_ARGS)
        if spec.max_args is not None and len(info.argv) > spec.max_args:
            raise CommandError(ErrorCode.TRAILING_CHARS)
        return info
