import asyncio

import pytest

from exline import CommandRunner, ExlineHost, ItemList, ArgumentPolicy, ex_command


def assert_ok(res, expected=None):
    assert res.status == "success", f"expected success, got {res}"
    if expected is not None:
        assert res.value == expected, f"expected {expected!r}, got {res.value!r}"


class MyHost(ExlineHost):
    def __init__(self):
        super().__init__()
        self.log = []

    @ex_command
    def yank(self, cmd, view):
        self.log.append(("yank", view.selected_items()))
        self.emit("stdout", f"{view.selected_count} items yanked")
        return 1

    # A new command, declared with the same attributes as the builtin table.
    @ex_command(abbrev="tou", range=True, select=True, min_args=1)
    def touch(self, cmd, view):
        self.log.append(("touch", cmd.argv, view.selected_indices()))

    @ex_command(name="remote", policy="until-end")
    async def remote_call(self, cmd, view):
        await asyncio.sleep(0)
        self.log.append(("remote", cmd.args))
        return 1

    def helper(self):
        """Not a command."""
        return "not bound"


@pytest.mark.asyncio
async def test_host_handler_bound_to_builtin():
    host = MyHost()
    runner = CommandRunner(view=ItemList(["a", "b", "c"]), host=host)
    res = await runner.exec_commands("1,2yank")
    assert_ok(res, 1)
    assert host.log == [("yank", ["b", "c"])]
    assert [e["message"] for e in res.side_effects] == ["2 items yanked"]


@pytest.mark.asyncio
async def test_host_declares_new_commands():
    host = MyHost()
    runner = CommandRunner(view=ItemList(["a", "b", "c"]), host=host)
    assert runner.table.builtins["touch"].range
    assert runner.table.builtins["remote"].policy is ArgumentPolicy.UNTIL_END
    assert "helper" not in runner.table.builtins

    await runner.exec_commands("2tou x")
    assert host.log == [("touch", ["x"], [2])]
    res = await runner.exec_commands("touch")
    assert res.error_message == "Too few arguments"


@pytest.mark.asyncio
async def test_async_handler_is_awaited():
    host = MyHost()
    runner = CommandRunner(host=host)
    res = await runner.exec_commands("remote a | b")
    assert_ok(res, 1)
    assert host.log == [("remote", "a | b")]


@pytest.mark.asyncio
async def test_runners_are_independent():
    first = CommandRunner(host=MyHost())
    second = CommandRunner(host=MyHost())
    await first.exec_commands("if 0")
    res = await second.exec_commands("echo 'visible'")
    assert [e["message"] for e in res.side_effects] == ["visible"]
    assert "touch" not in CommandRunner().table.builtins
