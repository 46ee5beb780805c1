import pytest

from exline.exline_datatypes import ScopeFrame
from exline.exline_scope import ScopeStack, ConditionalScope


@pytest.fixture
def scope():
    s = ConditionalScope()
    s.start()
    return s


def run(scope, commands):
    """Feeds (name, action) pairs through the gate; returns names that ran."""
    ran = []
    for name, action in commands:
        if scope.should_process(name):
            ran.append(name if action is None else action)
            if name == "if":
                scope.if_(action == "if-true")
            elif name == "elseif":
                assert scope.elseif(action == "elseif-true")
            elif name == "else":
                assert scope.else_()
            elif name == "endif":
                assert scope.endif()
    return ran


# --- ScopeStack ---

def test_stack_basics():
    stack = ScopeStack()
    assert stack.is_empty() and stack.top() is None
    stack.push(ScopeFrame.SCOPE_GUARD)
    stack.push(ScopeFrame.MATCH)
    assert stack.top_is(ScopeFrame.MATCH)
    stack.set_top(ScopeFrame.FINISH)
    assert stack.top() is ScopeFrame.FINISH
    assert len(stack) == 2


def test_pop_seq_stops_at_frame():
    stack = ScopeStack()
    for frame in (ScopeFrame.SCOPE_GUARD, ScopeFrame.MATCH, ScopeFrame.SCOPE_GUARD,
                  ScopeFrame.BEFORE_MATCH, ScopeFrame.ELSE):
        stack.push(frame)
    stack.pop_seq(ScopeFrame.SCOPE_GUARD)
    assert stack.frames == [ScopeFrame.SCOPE_GUARD, ScopeFrame.MATCH]


# --- transitions ---

def test_if_false_else_gates_branches(scope):
    ran = run(scope, [
        ("if", "if-false"),
        (None, "A"),
        ("else", None),
        (None, "B"),
        ("endif", None),
    ])
    assert "A" not in ran
    assert "B" in ran
    assert scope.finish()
    assert scope.stack.is_empty()


def test_if_true_skips_else(scope):
    ran = run(scope, [
        ("if", "if-true"), (None, "A"), ("else", None), (None, "B"), ("endif", None),
    ])
    assert ran == ["if-true", "A", "else", "endif"]


def test_elseif_chain(scope):
    ran = run(scope, [
        ("if", "if-false"), (None, "A"),
        ("elseif", "elseif-false"), (None, "B"),
        ("elseif", "elseif-true"), (None, "C"),
        ("elseif", "elseif-true"), (None, "D"),
        ("else", None), (None, "E"),
        ("endif", None), (None, "after"),
    ])
    assert [x for x in ran if len(x) == 1] == ["C"]
    assert "after" in ran


def test_nested_if_in_skipped_branch(scope):
    ran = run(scope, [
        ("if", "if-false"),
        ("if", "if-true"), (None, "A"), ("else", None), (None, "B"), ("endif", None),
        (None, "C"),
        ("else", None),
        (None, "D"),
        ("endif", None),
    ])
    assert ran == ["if-false", "else", "D", "endif"]
    assert scope.skipped_nested_ifs == 0
    assert scope.at_bottom()


def test_nested_elseif_in_skipped_branch_is_ignored(scope):
    ran = run(scope, [
        ("if", "if-false"),
        ("if", "if-false"), ("elseif", "elseif-true"), (None, "A"), ("endif", None),
        ("elseif", "elseif-true"), (None, "B"),
        ("endif", None),
    ])
    assert "A" not in ran
    assert "B" in ran


def test_misplaced_conditionals_leave_stack_untouched(scope):
    assert not scope.elseif(True)
    assert not scope.else_()
    assert not scope.endif()
    assert scope.stack.frames == [ScopeFrame.SCOPE_GUARD]


def test_else_after_else_is_an_error(scope):
    scope.if_(False)
    assert scope.else_()
    assert not scope.else_()
    assert not scope.elseif(True)
    assert scope.stack.top() is ScopeFrame.ELSE


def test_elseif_after_match_moves_to_after_match(scope):
    scope.if_(True)
    assert scope.elseif(True)
    assert scope.stack.top() is ScopeFrame.AFTER_MATCH
    assert scope.else_()
    assert scope.stack.top() is ScopeFrame.FINISH


def test_missing_endif_unwinds_to_guard():
    scope = ConditionalScope()
    scope.start()
    scope.if_(True)
    scope.start()
    scope.if_(False)
    scope.if_(True)
    assert not scope.finish()
    assert scope.stack.frames == [ScopeFrame.SCOPE_GUARD, ScopeFrame.MATCH]


def test_missing_endif_leaves_stack_empty(scope):
    scope.if_(False)
    assert not scope.finish()
    assert scope.stack.is_empty()


def test_finish_resets_skipped_if_counter(scope):
    scope.if_(False)
    assert not scope.should_process("if")
    assert scope.skipped_nested_ifs == 1
    assert not scope.finish()
    assert scope.skipped_nested_ifs == 0


def test_conditionals_do_not_cross_scope_guard(scope):
    scope.if_(True)
    scope.start()
    assert not scope.endif()
    assert scope.finish()
    assert scope.endif()
