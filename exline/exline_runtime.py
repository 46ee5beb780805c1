"""
Execution of command lines: host integration, session state, the commands
the engine implements itself and the `CommandRunner` driving all of it.
"""

import re
import inspect
from contextlib import contextmanager
from pathlib import Path
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Literal, Optional, Set, Tuple

from exline.exline_datatypes import CommandInfo, CommandKind, CommandError, ErrorCode, ItemList
from exline.exline_commands import CommandSpec, CommandTable, skip_to_cmd_name
from exline.exline_splitter import break_cmdline
from exline.exline_scope import ConditionalScope
from exline.exline_range import select_range
from exline.exline_eval import Evaluator, EvalError, Value, to_boolean, to_string
from exline.exline_macros import MacroExpander

# ===================================================================
# 1. Host Integration
# ===================================================================


def ex_command(func=None, *, name: Optional[str] = None, **declaration):
    """Marks a host method as the handler of a command.

    Used bare (`@ex_command`) the method handles the builtin command of the
    same name. Keyword arguments declare a new command, with the attributes
    of the builtin table (`range=True`, `policy="until-end"`, ...).
    """
    def mark(f):
        f._ex_command = name or f.__name__
        f._ex_declaration = declaration
        return f

    if func is not None:
        return mark(func)
    return mark


class ExlineHost(ABC):
    """Base class for applications that provide command handlers.

    Handlers are methods marked with `@ex_command`, called with the parsed
    `CommandInfo` and the item list. They return the number of lines worth
    reporting (or None) and raise CommandError on failure.
    """
    def __init__(self):
        # Set by the runner the host is attached to.
        self.runner: Optional['CommandRunner'] = None

    def swap_range(self) -> bool:
        """Asked when a backwards range is given; True swaps it."""
        return True

    def resolve_mark(self, mark: str) -> int:
        """Index of the item `mark` points to, or a negative number."""
        return -1

    def reload_view(self, view: ItemList):
        """Called after a command dropped the selection of `view`."""
        pass

    def emit(self, topics, *message_parts):
        if self.runner is not None:
            self.runner.emit(topics, *message_parts)


# ===================================================================
# 2. Session State
# ===================================================================


@dataclass
class Session:
    """State that lives as long as one interactive session."""
    scope: ConditionalScope = field(default_factory=ConditionalScope)
    # Whether the selection survives the current command.
    keep_selection: bool = False
    variables: Dict[str, Value] = field(default_factory=dict)
    # User commands being expanded, for loop detection.
    running: Set[str] = field(default_factory=set)
    # Command lines currently nested through `execute`, `source` and user commands.
    depth: int = 0


# ===================================================================
# 3. Commands implemented by the engine
# ===================================================================

_LET = re.compile(r"(\$?[A-Za-z_][A-Za-z0-9_]*(?::[A-Za-z_][A-Za-z0-9_]*)?)\s*=(.*)", re.S)


class BuiltinCommands:
    """Handlers of the builtin commands that need no host.

    Every method named `_<command>` becomes the handler of `<command>`.
    """
    def __init__(self, runner: 'CommandRunner'):
        self.runner = runner

    @property
    def evaluator(self) -> Evaluator:
        return self.runner.evaluator

    def _eval_args(self, args: str) -> str:
        try:
            return self.evaluator.eval_arglist(args)
        except EvalError as e:
            raise CommandError(ErrorCode.CUSTOM, str(e)) from e

    def _eval_single(self, text: str) -> Value:
        """Evaluates `text`, which must hold exactly one expression."""
        text = text.strip()
        try:
            value, rest = self.evaluator.evaluate(text)
        except EvalError as e:
            raise CommandError(ErrorCode.CUSTOM, str(e)) from e
        if rest.strip():
            error = EvalError(len(text) - len(rest), rest)
            raise CommandError(ErrorCode.CUSTOM, str(error)) from error
        return value

    # --- Expressions ---

    def _echo(self, cmd: CommandInfo, view: ItemList):
        self.runner.emit("stdout", self._eval_args(cmd.args))
        return 1

    async def _execute(self, cmd: CommandInfo, view: ItemList):
        line = self._eval_args(cmd.args)
        with self.runner.nested():
            return await self.runner._run_line(line)

    def _let(self, cmd: CommandInfo, view: ItemList):
        m = _LET.fullmatch(cmd.args.strip())
        if not m:
            raise CommandError(ErrorCode.CUSTOM, f"Incorrect :let statement: {cmd.args}")
        name, value = m.group(1), self._eval_single(m.group(2))
        if name.startswith("$"):
            self.evaluator.environ[name[1:]] = to_string(value)
        else:
            self.evaluator.variables[name] = value
        return 0

    # --- Conditionals ---

    def _if(self, cmd: CommandInfo, view: ItemList):
        cond = to_boolean(self._eval_single(cmd.args))
        self.runner.session.scope.if_(cond)
        self.runner.preserve_selection()
        return 0

    def _elseif(self, cmd: CommandInfo, view: ItemList):
        cond = to_boolean(self._eval_single(cmd.args))
        if not self.runner.session.scope.elseif(cond):
            raise CommandError(ErrorCode.CUSTOM, "Misplaced :elseif")
        self.runner.preserve_selection()
        return 0

    def _else(self, cmd: CommandInfo, view: ItemList):
        if not self.runner.session.scope.else_():
            raise CommandError(ErrorCode.CUSTOM, "Misplaced :else")
        self.runner.preserve_selection()
        return 0

    def _endif(self, cmd: CommandInfo, view: ItemList):
        if not self.runner.session.scope.endif():
            raise CommandError(ErrorCode.CUSTOM, "Misplaced :endif")
        self.runner.preserve_selection()
        return 0

    # --- User commands and scripts ---

    def _command(self, cmd: CommandInfo, view: ItemList):
        table = self.runner.table
        args = cmd.args.strip()
        if not args:
            if not table.user_commands:
                self.runner.emit("stdout", "No user-defined commands found")
                return 1
            for name, action in sorted(table.user_commands.items()):
                self.runner.emit("stdout", f"{name:<10} {action}")
            return 1

        parts = args.split(None, 1)
        if len(parts) < 2:
            raise CommandError(ErrorCode.TOO_FEW_ARGS)
        table.define_user_command(parts[0], parts[1], overwrite=cmd.bang)
        return 0

    def _delcommand(self, cmd: CommandInfo, view: ItemList):
        table = self.runner.table
        if not cmd.argv:
            if not cmd.bang:
                raise CommandError(ErrorCode.TOO_FEW_ARGS)
            table.user_commands.clear()
            return 0
        table.delete_user_command(cmd.argv[0])
        return 0

    async def _source(self, cmd: CommandInfo, view: ItemList):
        path = Path(cmd.argv[0]).expanduser()
        try:
            source = path.read_text(encoding="utf-8")
        except OSError:
            raise CommandError(ErrorCode.CUSTOM, f"Can't read file: {path}") from None
        with self.runner.nested():
            save_msg, _ = await self.runner._run_script(source)
        return save_msg

    # --- Cursor ---

    def _goto(self, cmd: CommandInfo, view: ItemList):
        if cmd.end >= 0:
            view.pos = cmd.end
        return 0


# ===================================================================
# 4. Execution
# ===================================================================


@dataclass
class ExecutionResult:
    """The structured result of running a command line or a script.

    `value` is the save-message indicator: 1 when a command produced output
    worth keeping on the status bar, -1 after an error, 0 otherwise.
    """
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_line: Optional[int] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats the error message, prefixed with the script line if known."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_line is not None:
            return f"Error on line {self.error_line}: {msg}"
        return msg


MAX_NESTING = 64


def _combine(save_msg: int, ret: int) -> int:
    # The last command that returned something decides.
    if ret == 0:
        return save_msg
    return -1 if ret < 0 else 1


class CommandRunner:
    """Splits, gates, parses and dispatches command lines.

    A runner owns one session: the conditional scope stack, session
    variables and the preserve-selection flag. Messages for the user are
    recorded as side effects (`stdout` and `stderr` topics).
    """

    def __init__(self, view: Optional[ItemList] = None, host: Optional[ExlineHost] = None,
                 table: Optional[CommandTable] = None, evaluator: Optional[Evaluator] = None,
                 expander: Optional[MacroExpander] = None):
        self.view = view if view is not None else ItemList()
        self.host = host if host is not None else ExlineHost()
        self.table = table if table is not None else CommandTable()
        self.session = Session()
        if evaluator is None:
            evaluator = Evaluator(variables=self.session.variables)
        else:
            self.session.variables = evaluator.variables
        self.evaluator = evaluator
        self.expander = expander if expander is not None else MacroExpander(environ=evaluator.environ)
        self.side_effects: List[Dict] = []
        self.errors: List[str] = []

        self._bind_builtins(BuiltinCommands(self))
        self._bind_host_handlers()
        self.session.scope.start()

    def _bind_builtins(self, builtins: BuiltinCommands):
        for name, member in inspect.getmembers(builtins):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                if name[1:] in self.table.builtins:
                    self.table.set_handler(name[1:], member)

    def _bind_host_handlers(self):
        """Binds the host's @ex_command methods into the command table."""
        host = self.host
        host.runner = self
        for _, member in inspect.getmembers(host, callable):
            cmd_name = getattr(member, "_ex_command", None)
            if cmd_name is None:
                continue
            declaration = getattr(member, "_ex_declaration", {})
            if declaration or cmd_name not in self.table.builtins:
                spec = CommandSpec.from_dict({"name": cmd_name, **declaration})
                self.table.add_builtin(spec, member)
            else:
                self.table.set_handler(cmd_name, member)

    # --- Side effects ---

    def emit(self, topics, *message_parts):
        """Records a message for the host application."""
        topics = topics if isinstance(topics, list) else [topics]
        message = " ".join(map(str, message_parts))
        self.side_effects.append({"topics": topics, "message": message})

    def _error(self, message: str, post: bool = True):
        self.errors.append(message)
        if post:
            self.emit("stderr", message)

    def preserve_selection(self):
        """Keeps the selection of the view after the current command."""
        self.session.keep_selection = True

    def _remove_selection(self):
        if self.view.selected_count > 0:
            self.view.clean_selection()
            self.host.reload_view(self.view)

    # --- Entry points ---

    def _start_run(self):
        # Results keep the lists of their own run.
        self.side_effects = []
        self.errors = []

    @contextmanager
    def nested(self):
        """Guards a command line run from inside another command."""
        if self.session.depth >= MAX_NESTING:
            raise CommandError(ErrorCode.LOOP)
        self.session.depth += 1
        try:
            yield
        finally:
            self.session.depth -= 1

    async def exec_commands(self, cmdline: str) -> ExecutionResult:
        """Executes every `|`-separated command of a command line.

        Later commands run even when an earlier one failed.
        """
        self._start_run()
        save_msg = await self._run_line(cmdline)
        return self._result(save_msg)

    async def _run_line(self, cmdline: str) -> int:
        save_msg = 0
        for cmd in break_cmdline(cmdline, self.table):
            save_msg = _combine(save_msg, await self.exec_command(cmd))
        return save_msg

    async def exec_command(self, cmd: str, sub_context: bool = False) -> int:
        """Executes a single command.

        Returns 0 on silent success, a positive number when the command left
        a message worth keeping and -1 on error. In a sub-context (e.g. a
        menu) empty commands and errors leave the selection alone.
        """
        cmd = cmd[skip_to_cmd_name(cmd):]
        if cmd.startswith('"'):
            return 0
        if not cmd:
            if not sub_context:
                self._remove_selection()
            return 0

        cmd_id = self.table.lookup(cmd)
        builtin = cmd_id.name if cmd_id.kind is CommandKind.BUILTIN else None
        if not self.session.scope.should_process(builtin):
            return 0

        self.session.keep_selection = False
        try:
            return await self._dispatch(cmd)
        except CommandError as e:
            match e.code:
                case ErrorCode.INVALID_RANGE | ErrorCode.CUSTOM:
                    # Only the raiser's own message is shown for these.
                    self._error(e.message, post=e.details is not None)
                case _:
                    self._error(e.message)
        except MemoryError:
            self._error(ErrorCode.NO_MEM.message)

        if not sub_context:
            self._remove_selection()
        return -1

    async def _dispatch(self, cmd: str) -> int:
        view = self.view
        info = self.table.parse(cmd, view, self.host.resolve_mark, self.host.swap_range)
        if info.cmd_id.kind is CommandKind.USER:
            return await self._run_user_command(info)

        spec = self.table.spec(info.cmd_id)
        if spec.select:
            select_range(view, info.range, spec.range_exempt)
        if spec.macros:
            info.args = self.expander.expand(info.args, info, view)

        handler = self.table.handlers.get(info.name)
        if handler is None:
            raise CommandError(ErrorCode.CUSTOM, f"Command not available: {info.name}")
        result = handler(info, view)
        if inspect.isawaitable(result):
            result = await result

        if not spec.keep_selection and not self.session.keep_selection:
            self._remove_selection()
        return result or 0

    async def _run_user_command(self, info: CommandInfo) -> int:
        name = info.name
        if name in self.session.running:
            raise CommandError(ErrorCode.LOOP)
        action = self.expander.expand(self.table.user_commands[name], info, self.view)
        self.session.running.add(name)
        try:
            with self.nested():
                save_msg = await self._run_line(action)
        finally:
            self.session.running.discard(name)
        # Errors of the expansion have already been reported.
        return save_msg

    # --- Scripts ---

    @staticmethod
    def script_lines(source: str) -> Iterator[Tuple[int, str]]:
        """Yields (line number, command line) pairs of a script.

        Blank and comment lines are dropped; a line starting with `\\`
        continues the previous one.
        """
        pending: Optional[Tuple[int, str]] = None
        for lineno, line in enumerate(source.splitlines(), 1):
            stripped = line.lstrip()
            if stripped.startswith("\\") and pending is not None:
                pending = (pending[0], pending[1] + stripped[1:])
                continue
            if pending is not None:
                yield pending
                pending = None
            if not stripped or stripped.startswith('"'):
                continue
            pending = (lineno, line)
        if pending is not None:
            yield pending

    async def run_script(self, source: str) -> ExecutionResult:
        """Executes a multi-line script in a scope of its own.

        A missing `endif` at the end of the script is reported and the scope
        stack is unwound to the script's own guard.
        """
        self._start_run()
        save_msg, error_line = await self._run_script(source)
        result = self._result(save_msg)
        result.error_line = error_line
        return result

    async def _run_script(self, source: str) -> Tuple[int, Optional[int]]:
        save_msg = 0
        error_line = None
        self.session.scope.start()
        for lineno, line in self.script_lines(source):
            errors_before = len(self.errors)
            save_msg = _combine(save_msg, await self._run_line(line))
            if error_line is None and len(self.errors) > errors_before:
                error_line = lineno
        if not self.session.scope.finish():
            self._error("Missing :endif")
            save_msg = -1
        return save_msg, error_line

    def close(self) -> ExecutionResult:
        """Ends the session, reporting an unterminated `if`."""
        self._start_run()
        save_msg = 0
        if not self.session.scope.finish():
            self._error("Missing :endif")
            save_msg = -1
        return self._result(save_msg)

    def _result(self, save_msg: int) -> ExecutionResult:
        errors = self.errors
        return ExecutionResult(
            status='error' if errors else 'success',
            value=save_msg,
            error_message=errors[0] if errors else None,
            side_effects=self.side_effects,
        )
