"""
Unit tests for chat_engine.cli module.
"""

import io
from unittest.mock import MagicMock, patch

from chat_engine.cli import StreamPrinter, build_parser, main
from chat_engine.client.tags import parse
from chat_engine.core.models import ConversationTurn


def run_cli(tmp_path, *args):
    return main(["--backend", "memory", "--state", str(tmp_path / "state.json"), *args])


class TestParser:
    """Tests for argument parsing."""

    def test_chat_options(self):
        """Test chat subcommand flags."""
        args = build_parser().parse_args(["chat", "--no-stream", "--model", "qwen3"])
        assert args.command == "chat"
        assert args.no_stream is True
        assert args.model == "qwen3"

    def test_import_paths(self):
        """Test import takes several paths and a family."""
        args = build_parser().parse_args(["import", "a.gguf", "b.gguf", "--family", "Qwen"])
        assert [p.name for p in args.paths] == ["a.gguf", "b.gguf"]
        assert args.family == "Qwen"


class TestCommands:
    """Tests for CLI commands against the in-memory backend."""

    def test_no_command_prints_help(self, capsys):
        """Test running without a command shows help."""
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out

    def test_backends(self, tmp_path, capsys):
        """Test backends command lists adapters."""
        assert run_cli(tmp_path, "backends") == 0
        assert "memory" in capsys.readouterr().out

    def test_debug_flag_configures_logging(self, tmp_path):
        """Test --debug is passed through to setup_logging."""
        with patch("chat_engine.cli.setup_logging") as setup:
            run_cli(tmp_path, "--debug", "backends")
            run_cli(tmp_path, "backends")
        assert [c.kwargs for c in setup.call_args_list] == [{"debug": True}, {"debug": False}]

    def test_models_empty(self, tmp_path, capsys):
        """Test models command with an empty catalog."""
        assert run_cli(tmp_path, "models") == 0
        assert "No models found." in capsys.readouterr().out

    def test_select_unknown(self, tmp_path, capsys):
        """Test selecting a model that does not exist."""
        assert run_cli(tmp_path, "select", "ghost") == 1
        assert "Unknown model: ghost" in capsys.readouterr().out

    def test_import(self, tmp_path, capsys):
        """Test import reports successes and failures."""
        good = tmp_path / "m.gguf"
        good.write_bytes(b"\0")
        assert run_cli(tmp_path, "import", str(good), str(tmp_path / "bad.txt"), "--family", "Fam") == 0

        out = capsys.readouterr().out
        assert "Imported: Fam/m.gguf" in out
        assert "Failed:" in out

    def test_chat_session(self, tmp_path, capsys):
        """Test one prompt through the interactive loop."""
        with patch("builtins.input", side_effect=["Hello", "/quit"]):
            assert run_cli(tmp_path, "chat") == 0
        assert "You said: Hello" in capsys.readouterr().out


class TestStreamPrinter:
    """Tests for StreamPrinter class."""

    def make_printer(self, **kwargs):
        controller = MagicMock()
        controller.render.side_effect = lambda turn: parse(turn.assistant)
        out = io.StringIO()
        return StreamPrinter(controller, out=out, **kwargs), out

    def test_prints_growth_only(self):
        """Test only the new suffix is written."""
        printer, out = self.make_printer()
        turn = ConversationTurn("q")
        for text in ["Hel", "Hello", "Hello world"]:
            turn.assistant = text
            printer(turn)
        assert out.getvalue() == "Hello world"

    def test_rewrite_on_replacement(self):
        """Test a replaced text is printed in full on a new line."""
        printer, out = self.make_printer()
        turn = ConversationTurn("q", "Helo")
        printer(turn)
        turn.assistant = "Hello"
        printer(turn)
        assert out.getvalue() == "Helo\nHello"

    def test_reasoning_hidden_by_default(self):
        """Test reasoning is not printed unless asked."""
        printer, out = self.make_printer()
        printer(ConversationTurn("q", "<think>plan</think>Answer"))
        assert out.getvalue() == "Answer"

    def test_reasoning_shown(self):
        """Test reasoning is printed with a prefix when enabled."""
        printer, out = self.make_printer(show_reasoning=True)
        turn = ConversationTurn("q", "<think>plan")
        printer(turn)
        assert out.getvalue() == "plan"
