"""Tests for the lifeline command-line interface."""

from click.testing import CliRunner

from lifeline import __version__
from lifeline.cli.main import cli


class TestCLI:
    def test_validate_valid_policy(self, fixtures_dir):
        runner = CliRunner()

        result = runner.invoke(cli, ["validate", str(fixtures_dir / "policies" / "payments.yaml")])

        assert result.exit_code == 0
        assert "Policy is valid" in result.output
        assert "payments" in result.output
        assert "Breakers: 2" in result.output

    def test_validate_invalid_policy(self, fixtures_dir):
        runner = CliRunner()

        result = runner.invoke(
            cli, ["validate", str(fixtures_dir / "policies" / "unknown_breaker.yaml")]
        )

        assert result.exit_code == 1
        assert "Validation failed" in result.output

    def test_validate_missing_file(self):
        runner = CliRunner()

        result = runner.invoke(cli, ["validate", "does/not/exist.yaml"])

        assert result.exit_code != 0

    def test_show_prints_tables_and_schedule(self, fixtures_dir):
        runner = CliRunner()

        result = runner.invoke(
            cli,
            ["show", str(fixtures_dir / "policies" / "payments.yaml")],
            env={"COLUMNS": "200"},
        )

        assert result.exit_code == 0
        assert "payment_gateway" in result.output
        assert "send_receipt" in result.output
        # charge: 2 retries starting at 0.5s, doubling
        assert "0.5, 1" in result.output

    def test_show_invalid_policy(self, fixtures_dir):
        runner = CliRunner()

        result = runner.invoke(cli, ["show", str(fixtures_dir / "policies" / "invalid_values.yaml")])

        assert result.exit_code == 1

    def test_version(self):
        runner = CliRunner()

        result = runner.invoke(cli, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output
