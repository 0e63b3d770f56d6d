"""Tests for the init command."""

import logging
from pathlib import Path

from click.testing import CliRunner
import yaml

from fleet_queue.cli import main, setup_logging


class TestInitCommand:
    """Tests for fleet-queue init command."""

    def test_init_creates_config(self, cli_runner: CliRunner, isolated_filesystem: Path):
        """Creates config.yaml in current directory."""
        result = cli_runner.invoke(main, ["init"])

        assert result.exit_code == 0
        assert (isolated_filesystem / "config.yaml").exists()
        assert "Created config file" in result.output

    def test_init_config_content(self, cli_runner: CliRunner, isolated_filesystem: Path):
        """Created config has expected structure."""
        cli_runner.invoke(main, ["init"])

        content = yaml.safe_load((isolated_filesystem / "config.yaml").read_text())

        assert set(content) == {"server", "push", "monitor", "logging"}
        assert content["server"]["token"] == "${FLEET_API_TOKEN}"

    def test_init_no_overwrite_without_confirm(self, cli_runner: CliRunner, isolated_filesystem: Path):
        """Doesn't overwrite without confirmation."""
        config_path = isolated_filesystem / "config.yaml"
        config_path.write_text("# Existing config")

        result = cli_runner.invoke(main, ["init"], input="n\n")

        assert "already exists" in result.output
        assert "# Existing config" in config_path.read_text()

    def test_init_overwrite_with_confirm(self, cli_runner: CliRunner, isolated_filesystem: Path):
        """Overwrites with confirmation."""
        config_path = isolated_filesystem / "config.yaml"
        config_path.write_text("# Existing config")

        result = cli_runner.invoke(main, ["init"], input="y\n")

        assert result.exit_code == 0
        assert "# Existing config" not in config_path.read_text()
        assert "server:" in config_path.read_text()

    def test_init_shows_next_steps(self, cli_runner: CliRunner, isolated_filesystem: Path):
        """Shows helpful next steps."""
        result = cli_runner.invoke(main, ["init"])

        assert "Next steps:" in result.output
        assert "Edit config.yaml" in result.output


class TestInitCommandHelp:
    """Tests for init command help."""

    def test_init_help(self, cli_runner: CliRunner):
        result = cli_runner.invoke(main, ["init", "--help"])

        assert result.exit_code == 0
        assert "Initialize" in result.output


class TestSetupLogging:
    def test_library_loggers_quiet_by_default(self, tmp_path: Path):
        setup_logging("INFO", tmp_path / "logs" / "fleet.log")

        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING
        assert (tmp_path / "logs").is_dir()

    def test_library_loggers_follow_debug(self):
        setup_logging("DEBUG")

        assert logging.getLogger("websockets").level == logging.DEBUG
