"""
Conditional (if/elseif/else/endif) processing.

The stack holds one frame per open `if` plus a SCOPE_GUARD for every
execution scope (an interactive session, a sourced script). Conditional
commands only ever touch frames above the nearest guard.
"""

from typing import List, Optional

from exline.exline_datatypes import ScopeFrame


class ScopeStack:
    """A growable stack of frames manipulated strictly at its top."""
    def __init__(self):
        self.frames: List[ScopeFrame] = []

    def __len__(self) -> int:
        return len(self.frames)

    def __repr__(self) -> str:
        return f"<ScopeStack {[f.value for f in self.frames]}>"

    def push(self, frame: ScopeFrame):
        self.frames.append(frame)

    def pop(self) -> ScopeFrame:
        return self.frames.pop()

    def top(self) -> Optional[ScopeFrame]:
        return self.frames[-1] if self.frames else None

    def set_top(self, frame: ScopeFrame):
        self.frames[-1] = frame

    def top_is(self, frame: ScopeFrame) -> bool:
        return bool(self.frames) and self.frames[-1] is frame

    def is_empty(self) -> bool:
        return not self.frames

    def pop_seq(self, frame: ScopeFrame):
        """Pops frames up to and including the nearest `frame` (or everything)."""
        while self.frames:
            if self.frames.pop() is frame:
                break


class ConditionalScope:
    """State machine behind the conditional commands.

    The transition methods return True on success and False when the command
    is misplaced, in which case the stack is left untouched. The runner asks
    `should_process` before dispatching every command.
    """
    def __init__(self):
        self.stack = ScopeStack()
        # Number of `if` statements entered while in a skipped branch.
        self.skipped_nested_ifs = 0

    def at_bottom(self) -> bool:
        return self.stack.is_empty() or self.stack.top_is(ScopeFrame.SCOPE_GUARD)

    def start(self):
        self.stack.push(ScopeFrame.SCOPE_GUARD)

    def finish(self) -> bool:
        """Closes the current scope, returning False if an `endif` is missing."""
        if not self.at_bottom():
            self.stack.pop_seq(ScopeFrame.SCOPE_GUARD)
            self.skipped_nested_ifs = 0
            return False
        if not self.stack.is_empty():
            self.stack.pop()
        return True

    def if_(self, cond: bool):
        self.stack.push(ScopeFrame.MATCH if cond else ScopeFrame.BEFORE_MATCH)

    def elseif(self, cond: bool) -> bool:
        frame = self._open_frame()
        if frame is None:
            return False
        if frame is ScopeFrame.BEFORE_MATCH:
            self.stack.set_top(ScopeFrame.MATCH if cond else ScopeFrame.BEFORE_MATCH)
        else:
            self.stack.set_top(ScopeFrame.AFTER_MATCH)
        return True

    def else_(self) -> bool:
        frame = self._open_frame()
        if frame is None:
            return False
        self.stack.set_top(ScopeFrame.ELSE if frame is ScopeFrame.BEFORE_MATCH else ScopeFrame.FINISH)
        return True

    def endif(self) -> bool:
        if self.at_bottom():
            return False
        self.stack.pop()
        return True

    def _open_frame(self) -> Optional[ScopeFrame]:
        # An if-frame that still accepts elseif/else.
        if self.at_bottom():
            return None
        frame = self.stack.top()
        if frame in (ScopeFrame.ELSE, ScopeFrame.FINISH):
            return None
        return frame

    def in_active_branch(self) -> bool:
        return (self.at_bottom()
                or self.stack.top_is(ScopeFrame.MATCH)
                or self.stack.top_is(ScopeFrame.ELSE))

    def should_process(self, name: Optional[str]) -> bool:
        """Decides whether the next command (builtin `name`) is processed.

        `name` is the builtin command name or None for anything else. Inside a
        skipped branch only conditional commands are looked at: nested `if`s
        are counted so that their own `else`/`endif` are skipped as well.
        """
        if self.in_active_branch():
            return True

        match name:
            case "if":
                self.skipped_nested_ifs += 1
                return False
            case "elseif":
                return self.skipped_nested_ifs == 0
            case "else" | "endif":
                if self.skipped_nested_ifs > 0:
                    if name == "endif":
                        self.skipped_nested_ifs -= 1
                    return False
                return True
        return False
