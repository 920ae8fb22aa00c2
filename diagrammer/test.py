"""Tests for the diagrammer CLI."""

import pytest

from diagrammer import __main__ as cli
from diagrammer.cache import ResultCache
from diagrammer.loop import LoopConfig
from diagrammer.loop.conftest import MISSING_TAILWIND_HTML, VALID_HTML, ScriptedGenerator
from diagrammer.pipeline import create_pipeline
from diagrammer.validation import ValidationConfig


@pytest.fixture
def scripted_pipeline(monkeypatch):
    """Route the generate command to a scripted, structural-only pipeline."""
    generator = ScriptedGenerator()

    def factory(**kwargs):
        return create_pipeline(
            generate=generator,
            validation=ValidationConfig(browser=False, visual=False),
            loop=LoopConfig(max_iterations=3),
            cache=ResultCache(),
            on_retry=kwargs.get("on_retry"),
        )

    monkeypatch.setattr(cli, "create_pipeline", factory)
    return generator


class TestParser:
    """Tests for argument parsing."""

    @pytest.mark.unit
    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 1
        assert "usage:" in capsys.readouterr().out

    @pytest.mark.unit
    def test_generate_arguments(self):
        args = cli.build_parser().parse_args(
            ["generate", "org chart", "-f", "a.txt", "-f", "b.txt", "-n", "2"]
            + ["--no-validation"]
        )
        assert args.instruction == "org chart"
        assert [p.name for p in args.file] == ["a.txt", "b.txt"]
        assert args.max_iterations == 2
        assert args.no_validation is True


class TestGenerateCommand:
    """Tests for the generate command."""

    @pytest.mark.unit
    def test_writes_artifact(self, scripted_pipeline, tmp_path):
        output = tmp_path / "chart.html"

        code = cli.main(["generate", "draw 3 boxes", "-o", str(output)])

        assert code == 0
        assert output.read_text(encoding="utf-8") == VALID_HTML
        assert scripted_pipeline.prompts == ["draw 3 boxes"]

    @pytest.mark.unit
    def test_prints_artifact(self, scripted_pipeline, capsys):
        assert cli.main(["generate", "draw 3 boxes"]) == 0
        assert VALID_HTML in capsys.readouterr().out

    @pytest.mark.unit
    def test_reference_files_read_as_text(self, scripted_pipeline, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("three boxes in a row", encoding="utf-8")

        output = tmp_path / "o.html"
        cli.main(["generate", "draw 3 boxes", "-f", str(notes), "-o", str(output)])

        _, context = scripted_pipeline.calls[0]
        (reference,) = context.request.files
        assert reference.name == "notes.txt"
        assert reference.size == len("three boxes in a row")
        assert reference.content == "three boxes in a row"

    @pytest.mark.unit
    def test_best_effort_still_succeeds(self, monkeypatch, tmp_path):
        """An exhausted budget still writes the last artifact."""
        generator = ScriptedGenerator([MISSING_TAILWIND_HTML])
        monkeypatch.setattr(
            cli,
            "create_pipeline",
            lambda **kwargs: create_pipeline(
                generate=generator,
                validation=ValidationConfig(browser=False, visual=False),
                cache=ResultCache(),
            ),
        )
        output = tmp_path / "chart.html"

        code = cli.main(["generate", "draw 3 boxes", "-n", "2", "-o", str(output)])

        assert code == 0
        assert len(generator.calls) == 2
        assert output.read_text(encoding="utf-8") == MISSING_TAILWIND_HTML

    @pytest.mark.unit
    def test_generation_failure_exit_code(self, monkeypatch):
        generator = ScriptedGenerator([ValueError("prompt rejected")])
        monkeypatch.setattr(
            cli,
            "create_pipeline",
            lambda **kwargs: create_pipeline(
                generate=generator,
                validation=ValidationConfig(browser=False, visual=False),
                cache=ResultCache(),
            ),
        )

        assert cli.main(["generate", "draw 3 boxes"]) == 1

    @pytest.mark.unit
    def test_blank_instruction_rejected(self, scripted_pipeline):
        assert cli.main(["generate", "   "]) == 1
        assert scripted_pipeline.calls == []

    @pytest.mark.unit
    def test_missing_reference_file(self, scripted_pipeline, tmp_path):
        missing = tmp_path / "missing.txt"
        assert cli.main(["generate", "draw 3 boxes", "-f", str(missing)]) == 1


class TestValidateCommand:
    """Tests for the validate command."""

    @pytest.mark.unit
    def test_valid_file(self, tmp_path, capsys):
        path = tmp_path / "chart.html"
        path.write_text(VALID_HTML, encoding="utf-8")

        code = cli.main(["validate", str(path), "-r", "draw 3 boxes", "--no-browser"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Result: valid" in out
        assert "Checks: structural" in out

    @pytest.mark.unit
    def test_invalid_file(self, tmp_path, capsys):
        path = tmp_path / "chart.html"
        path.write_text(MISSING_TAILWIND_HTML, encoding="utf-8")

        code = cli.main(["validate", str(path), "-r", "draw 3 boxes", "--no-browser"])

        out = capsys.readouterr().out
        assert code == 1
        assert "ERROR    [structural] Missing required script" in out
        assert "Result: invalid" in out

    @pytest.mark.unit
    def test_missing_file(self, tmp_path):
        code = cli.main(["validate", str(tmp_path / "nope.html"), "-r", "x"])
        assert code == 1


class TestEnvCommand:
    """Tests for the env command."""

    @pytest.mark.unit
    def test_secrets_are_masked(self, monkeypatch, capsys):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-secret-value")

        assert cli.main(["env", "--category", "llm"]) == 0

        out = capsys.readouterr().out
        assert "sk-secret-value" not in out
        assert "OPENAI_API_KEY" in out
        assert "(set)" in out
        assert "CACHE_TTL_SECONDS" not in out

    @pytest.mark.unit
    def test_lists_all_categories(self, capsys):
        assert cli.main(["env"]) == 0
        out = capsys.readouterr().out
        assert "CACHE_MAX_SIZE" in out
        assert "BROWSER_MAX_CONCURRENCY" in out

    @pytest.mark.unit
    def test_models_command(self, capsys):
        assert cli.main(["models"]) == 0
        out = capsys.readouterr().out
        assert "gpt-4o" in out
        assert "claude-sonnet-4-5" in out
