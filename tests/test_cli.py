"""
Tests for the CLI module.

Tests cover:
- Version and help output
- Config loading and override handling
- Error handling and exit codes
"""

import pandas as pd
import yaml
from click.testing import CliRunner

from tissue_specificity import __version__
from tissue_specificity.cli import main


class TestCLIVersion:
    """Tests for version display."""

    def test_version_option(self):
        runner = CliRunner()
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output
        assert "tissue-specificity" in result.output


class TestCLIHelp:
    """Tests for help display."""

    def test_help_option(self):
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "--config" in result.output
        assert "--output" in result.output
        assert "--threshold" in result.output
        assert "Tau Scoring Pipeline" in result.output


class TestCLIRun:
    """Tests for running the pipeline from the command line."""

    def test_run_with_config(self, pipeline_config_path):
        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(pipeline_config_path), "--quiet"])

        assert result.exit_code == 0, result.output
        assert "Pipeline completed successfully!" in result.output
        assert "Genes reported:" in result.output

    def test_output_override(self, pipeline_config_path, tmp_path):
        out_dir = tmp_path / "override"
        runner = CliRunner()
        result = runner.invoke(
            main, ["-c", str(pipeline_config_path), "-o", str(out_dir), "-q"]
        )

        assert result.exit_code == 0, result.output
        assert (out_dir / "tissue_specificity.csv").exists()
        assert str(out_dir) in result.output

    def test_threshold_override(self, pipeline_config_path, tmp_path):
        out_dir = tmp_path / "high_threshold"
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["-c", str(pipeline_config_path), "-o", str(out_dir), "-t", "1e9", "-q"],
        )

        assert result.exit_code == 0, result.output
        with open(out_dir / "run_metadata.yaml") as f:
            metadata = yaml.safe_load(f)
        assert metadata["options"]["threshold"] == 1e9
        # Nothing exceeds the threshold, so every gene is excluded as undefined
        table = pd.read_csv(out_dir / "tissue_specificity.csv")
        assert len(table) == 0

    def test_negative_threshold_rejected(self, pipeline_config_path):
        runner = CliRunner()
        result = runner.invoke(main, ["-c", str(pipeline_config_path), "-t", "-1"])

        assert result.exit_code != 0


class TestCLIErrors:
    """Tests for error handling and exit codes."""

    def test_missing_config_file(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(tmp_path / "missing.yaml")])

        assert result.exit_code != 0

    def test_config_required(self):
        runner = CliRunner()
        result = runner.invoke(main, [])

        assert result.exit_code != 0
        assert "--config" in result.output

    def test_missing_expression_file(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        with open(config_path, "w") as f:
            yaml.dump(
                {
                    "pipeline": {"output_dir": str(tmp_path / "out")},
                    "data": {"expression_path": str(tmp_path / "missing.tsv")},
                },
                f,
            )

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(config_path), "-q"])

        assert result.exit_code == 1
        assert "Expression file not found" in result.output

    def test_malformed_expression(self, tmp_path):
        expr_path = tmp_path / "bad.tsv"
        expr_path.write_text("gene\tA\tB\ng1\t1\tNA_high\n")
        config_path = tmp_path / "config.yaml"
        with open(config_path, "w") as f:
            yaml.dump(
                {
                    "pipeline": {"output_dir": str(tmp_path / "out")},
                    "data": {"expression_path": str(expr_path)},
                },
                f,
            )

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(config_path), "-q"])

        assert result.exit_code == 1
        assert "Pipeline failed" in result.output
        assert "non-numeric" in result.output

    def test_invalid_config(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        with open(config_path, "w") as f:
            yaml.dump(
                {
                    "data": {"expression_path": "tpm.tsv"},
                    "scoring": {"unmatched_policy": "ignore"},
                },
                f,
            )

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(config_path)])

        assert result.exit_code == 1
        assert "unmatched_policy" in result.output
