"""Tests for CLI functionality."""

import json
import os
import subprocess
import tempfile
from pathlib import Path

import pytest

from fzf_keys import cli

FIXTURES = Path(__file__).parent / "fixtures"
DEFAULT_CONFIG = FIXTURES / "niri-default-config.kdl"


def run_cli(*args, home=None, shell=False):
    env = dict(os.environ)
    env.pop("XDG_CONFIG_HOME", None)
    if home is not None:
        env["HOME"] = str(home)
    command = args[0] if shell else ["fzf-keys", *args]
    return subprocess.run(command, shell=shell, capture_output=True, text=True, env=env)


@pytest.fixture
def home():
    """An empty HOME, so no real settings or niri config is picked up."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def niri_config(home):
    """A niri config with many binds at the default location."""
    config = home / ".config/niri/config.kdl"
    config.parent.mkdir(parents=True)
    binds = "\n".join(f"    Mod+{chr(65 + i)} {{ action{i}; }}" for i in range(26))
    config.write_text(f"binds {{\n{binds}\n}}\n")
    return config


class TestCLI:
    def test_broken_pipe_handled(self, home, niri_config):
        """Piping to head should not raise BrokenPipeError."""
        result = run_cli("fzf-keys | head -5", home=home, shell=True)

        assert result.stdout.count("\n") == 5
        assert "BrokenPipeError" not in result.stderr
        assert "Traceback" not in result.stderr

    def test_broken_pipe_keeps_failure_status(self, home):
        """A closed pipe does not hide that a source failed earlier."""
        config = home / "big.kdl"
        binds = "\n".join(f"    Mod+K{i} {{ spawn \"command-{i}\"; }}" for i in range(5000))
        config.write_text(f"binds {{\n{binds}\n}}\n")
        # a kitty whose config fails to load
        kitty = home / "lib/kitty"
        kitty.mkdir(parents=True)
        (kitty / "__init__.py").write_text("")
        (kitty / "config.py").write_text("def load_config():\n    raise RuntimeError('boom')\n")
        (kitty / "types.py").write_text("Shortcut = mod_to_names = None\n")
        pythonpath = os.pathsep.join(filter(None, [str(home / "lib"), os.environ.get("PYTHONPATH")]))
        env = dict(os.environ, HOME=str(home), PYTHONPATH=pythonpath)
        env.pop("XDG_CONFIG_HOME", None)

        proc = subprocess.Popen(
            ["fzf-keys", "-n", str(config), "-k"],
            stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, env=env,
        )
        first = proc.stdout.readline()
        proc.stdout.close()
        stderr = proc.stderr.read()
        proc.wait()

        assert first == 'niri: Mod+K0 -> spawn "command-0";\n'
        assert proc.returncode == 1
        assert "kitty" in stderr
        assert "Traceback" not in stderr

    def test_default_niri_config(self, home, niri_config):
        result = run_cli(home=home)

        assert result.returncode == 0
        lines = result.stdout.strip().split("\n")
        assert len(lines) == 26
        assert lines[0] == "niri: Mod+A -> action0;"

    def test_niri_config_flag(self, home):
        result = run_cli("-n", str(DEFAULT_CONFIG), home=home)

        assert result.returncode == 0
        lines = result.stdout.strip().split("\n")
        assert len(lines) == 23
        assert "niri: Mod+T [Open a Terminal: alacritty] -> spawn \"alacritty\";" in lines

    def test_output_format_json(self, home):
        result = run_cli("-n", str(DEFAULT_CONFIG), "-f", "json", home=home)

        data = json.loads(result.stdout)
        assert len(data) == 23
        assert data[0]["program"] == "niri"
        assert data[0]["modifiers"] == ["Mod", "Shift"]
        assert data[0]["key"] == "Slash"

    def test_output_format_tsv(self, home):
        result = run_cli("-n", str(DEFAULT_CONFIG), "-f", "tsv", home=home)

        lines = result.stdout.strip().split("\n")
        assert all(line.count("\t") == 3 for line in lines)  # program, combo, desc, action

    def test_empty_binds_is_success(self, home):
        config = home / "empty.kdl"
        config.write_text("")

        result = run_cli("-n", str(config), home=home)

        assert result.returncode == 0
        assert result.stdout == ""

    def test_missing_niri_config(self, home):
        result = run_cli("-n", str(home / "missing.kdl"), home=home)

        assert result.returncode == 1
        assert "not-found" in result.stderr

    def test_parse_error(self, home):
        config = home / "broken.kdl"
        config.write_text("binds {\n    Mod+T { spawn \"x\"; }\n")

        result = run_cli("-n", str(config), home=home)

        assert result.returncode == 1
        assert f"{config}:1:1: parse error" in result.stderr
        assert result.stdout == ""

    def test_failing_source_does_not_hide_others(self, home):
        # kitty is not importable in the test environment
        result = run_cli("-n", str(DEFAULT_CONFIG), "-k", home=home)

        if "kitty" in result.stderr:
            assert result.returncode == 1
        assert result.stdout.count("niri: ") == 23

    def test_conflicts(self, home):
        config = home / "dupes.kdl"
        config.write_text("binds {\n    Mod+T { a; }\n    Mod+Q { b; }\n    mod+t { c; }\n}\n")

        result = run_cli("-n", str(config), "--conflicts", home=home)

        assert result.returncode == 0
        assert "niri: Mod+T is bound 2 times" in result.stdout
        assert "Mod+Q" not in result.stdout

    def test_settings_file(self, home):
        settings = home / "settings.toml"
        settings.write_text(f'format = "tsv"\n\n[niri]\nconfig = "{DEFAULT_CONFIG}"\n')

        result = run_cli("-c", str(settings), home=home)

        assert result.returncode == 0
        assert result.stdout.startswith("niri\tMod+Shift+Slash\t")

    def test_invalid_settings_file(self, home):
        settings = home / "settings.toml"
        settings.write_text('sources = ["emacs"]\n')

        result = run_cli("-c", str(settings), home=home)

        assert result.returncode == 2
        assert "unknown source" in result.stderr

    def test_init_creates_config(self, home):
        """--init creates sample config."""
        result = run_cli("--init", home=home)

        config_path = home / ".config/fzf-keys/config.toml"
        assert config_path.exists()
        assert "Created:" in result.stdout

    def test_init_refuses_to_overwrite(self, home):
        run_cli("--init", home=home)
        result = run_cli("--init", home=home)

        assert result.returncode == 2
        assert "already exists" in result.stderr


class TestSelect:
    @pytest.fixture
    def run_select(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)

        def run_with(choice, *argv):
            shown = []

            def fake_iterfzf(items, **kwargs):
                shown.extend(items)
                assert kwargs["exact"] is True
                return choice(shown)

            monkeypatch.setattr(cli, "iterfzf", fake_iterfzf)
            args = cli.build_parser().parse_args(["-s", *argv])
            return cli.run(args), shown

        return run_with

    def test_selected_line_is_printed(self, run_select, capsys):
        status, shown = run_select(lambda lines: lines[1], "-n", str(DEFAULT_CONFIG))

        assert status == cli.EXIT_OK
        assert len(shown) == 23
        assert capsys.readouterr().out == shown[1] + "\n"

    def test_cancelled_selection(self, run_select, capsys):
        status, _ = run_select(lambda lines: None, "-n", str(DEFAULT_CONFIG))

        assert status == cli.EXIT_NO_SELECTION
        assert capsys.readouterr().out == ""

