from exline.exline_datatypes import (
    ArgumentPolicy, CommandKind, CommandId, QuoteResult, CmdLineLocation, ScopeFrame,
    ErrorCode, CommandError, Range, ItemList, CommandInfo
)
from exline.exline_quoting import line_pos, cmdline_location, escape_for_insertion
from exline.exline_commands import CommandSpec, CommandTable
from exline.exline_splitter import break_cmdline, find_last_command
from exline.exline_scope import ConditionalScope
from exline.exline_range import parse_range, select_range
from exline.exline_eval import Evaluator, EvalError
from exline.exline_macros import MacroExpander
from exline.exline_runtime import CommandRunner, ExecutionResult, ExlineHost, ex_command
