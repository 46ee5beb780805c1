import asyncio
import sys
from pathlib import Path

from exline.exline_datatypes import CommandInfo, ItemList
from exline.exline_runtime import CommandRunner, ExlineHost, ex_command

# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


class ListHost(ExlineHost):
    """Item commands over an in-memory list. Nothing on disk is touched."""
    def __init__(self):
        super().__init__()
        self.register: list = []

    @ex_command
    def delete(self, cmd: CommandInfo, view: ItemList):
        gone = view.selected_indices()
        self.register = view.selected_items()
        view.set_items([item for i, item in enumerate(view.items) if i not in gone])
        self.emit("stdout", f"{len(gone)} items deleted")
        return 1

    @ex_command
    def yank(self, cmd: CommandInfo, view: ItemList):
        self.register = view.selected_items()
        self.emit("stdout", f"{len(self.register)} items yanked")
        return 1

    @ex_command(name="list", abbrev="l", keep_selection=True, max_args=0)
    def list_items(self, cmd: CommandInfo, view: ItemList):
        for i, item in enumerate(view.items):
            cursor = ">" if i == view.pos else " "
            mark = "*" if view.selected[i] else " "
            self.emit("stdout", f"{cursor}{mark}{i:3} {item}")
        return 1


def make_runner(items=None) -> CommandRunner:
    if items is None:
        items = [".."] + sorted(p.name for p in Path.cwd().iterdir())
    return CommandRunner(view=ItemList(items), host=ListHost())


def print_effects(result):
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))


async def run_script_file(file_path: str):
    """Run a command script non-interactively and exit with appropriate status."""
    runner = make_runner()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = await runner.run_script(source)
    print_effects(result)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)

async def main():
    """Run a script file when provided, otherwise start the interactive REPL."""
    if len(sys.argv) > 1:
        arg = sys.argv[1]
        if not arg.startswith("-"):
            await run_script_file(arg)
            return

    print("exline REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = make_runner()

    while True:
        try:
            raw = await ainput(":")
            if raw == "":
                raise EOFError
            line = raw.rstrip("\n")

            if line.strip() == "exit":
                break

            result = await runner.exec_commands(line)
            print_effects(result)
            for effect in result.side_effects:
                if effect.get('topics') == ['stderr']:
                    print(effect.get('message', ''), file=sys.stderr)

        except EOFError:
            print("\nExiting.")
            break

    closing = runner.close()
    if closing.status == 'error':
        print(closing.format_error(), file=sys.stderr)

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
