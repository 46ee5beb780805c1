import importlib.util
import sys
from pathlib import Path
import uuid
import pytest

def _load_repl_module():
    """Dynamically load the top-level exline.py (REPL) as a module with a unique name."""
    repl_path = Path(__file__).resolve().parents[1] / "exline.py"
    mod_name = f"exline_repl_for_test_{uuid.uuid4().hex}"
    spec = importlib.util.spec_from_file_location(mod_name, str(repl_path))
    mod = importlib.util.module_from_spec(spec)
    sys.modules[mod_name] = mod
    assert spec.loader is not None
    spec.loader.exec_module(mod)
    return mod

def _feed(monkeypatch, repl, lines):
    it = iter(lines)

    async def fake_ainput(prompt: str) -> str:
        return next(it)
    monkeypatch.setattr(repl, "ainput", fake_ainput)

@pytest.fixture
def workdir(tmp_path, monkeypatch):
    for name in ("a.txt", "b.txt", "c.txt"):
        (tmp_path / name).write_text("")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "argv", ["exline.py"])
    return tmp_path

@pytest.mark.asyncio
async def test_repl_exit_immediately(monkeypatch, capsys, workdir):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["exit"])

    await repl.main()
    out = capsys.readouterr().out
    assert "exline REPL v0.1" in out
    assert "Type 'exit' or press Ctrl+D to quit." in out

@pytest.mark.asyncio
async def test_repl_prints_side_effects(monkeypatch, capsys, workdir):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, [
        "echo 'hello' 1+2\n",
        "1,2delete|list\n",
        "exit\n",
    ])

    await repl.main()
    out, err = capsys.readouterr()
    assert "hello 3" in out
    assert "2 items deleted" in out
    assert "c.txt" in out
    assert "a.txt" not in out.split("2 items deleted")[1]
    assert err == ""

@pytest.mark.asyncio
async def test_repl_errors_print_to_stderr(monkeypatch, capsys, workdir):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["nosuch", "if 1", "exit"])

    await repl.main()
    out, err = capsys.readouterr()
    assert "exline REPL v0.1" in out
    assert "Invalid command name" in err
    # The unterminated `if` is reported when the session ends.
    assert "Missing :endif" in err

@pytest.mark.asyncio
async def test_repl_eof_quits(monkeypatch, capsys, workdir):
    repl = _load_repl_module()

    async def fake_ainput(prompt: str) -> str:
        raise EOFError
    monkeypatch.setattr(repl, "ainput", fake_ainput)

    await repl.main()
    out = capsys.readouterr().out
    assert "exline REPL v0.1" in out
    assert "Exiting." in out

@pytest.mark.asyncio
async def test_run_script_file(monkeypatch, capsys, workdir):
    repl = _load_repl_module()
    script = workdir / "init.ex"
    script.write_text("if 1\n  echo 'from script'\nendif\n", encoding="utf-8")

    await repl.run_script_file(str(script))
    assert "from script" in capsys.readouterr().out

    bad = workdir / "bad.ex"
    bad.write_text("echo 'x'\nnosuch\n", encoding="utf-8")
    with pytest.raises(SystemExit):
        await repl.run_script_file(str(bad))
    assert "Error on line 2: Invalid command name" in capsys.readouterr().err

@pytest.mark.asyncio
async def test_run_script_file_missing(capsys, workdir):
    repl = _load_repl_module()
    with pytest.raises(SystemExit):
        await repl.run_script_file(str(workdir / "nope.ex"))
    assert "file not found" in capsys.readouterr().err
