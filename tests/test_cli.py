# Tests for replisync.cli
# CLI commands using Click testing

import importlib
from pathlib import Path

import yaml
from click.testing import CliRunner

from replisync.cli import cli
from replisync.sync.checkpoint import FileCheckpointStore


def invoke(config_file: Path, *args: str, **kwargs):
    runner = CliRunner()
    return runner.invoke(cli, ["--config", str(config_file), *args], **kwargs)


def stored_checkpoint(sample_config: dict):
    return FileCheckpointStore(Path(sample_config["checkpoint_path"])).load("todos:todos-remote")


class TestCliGroup:
    """Tests for main CLI group."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Replisync" in result.output
        assert "run" in result.output
        assert "status" in result.output

    def test_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "replisync" in result.output


class TestRunCommand:
    """Tests for run command."""

    def test_missing_config(self, temp_dir: Path):
        result = invoke(temp_dir / "missing.yaml", "run", "--once")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_run_once(self, config_file: Path, sample_config: dict):
        result = invoke(config_file, "run", "--once")

        assert result.exit_code == 0, result.output
        assert "Summary" in result.output
        assert "todos: 1 sent, 1 received, 0 errors" in result.output
        assert stored_checkpoint(sample_config) == 1

    def test_run_once_by_name(self, config_file: Path):
        result = invoke(config_file, "run", "--once", "todos")
        assert result.exit_code == 0, result.output

    def test_unknown_name(self, config_file: Path):
        result = invoke(config_file, "run", "--once", "missing")
        assert result.exit_code == 2
        assert "not found" in result.output

    def test_failing_push_exits_nonzero(self, config_file: Path, handler_module: str, sample_config: dict):
        backend = importlib.import_module(handler_module)
        backend.FAILING["push"] = True

        result = invoke(config_file, "run", "--once")

        assert result.exit_code == 1
        assert "Push handler failed" in result.output
        assert stored_checkpoint(sample_config) is None

    def test_unresolvable_handler(self, config_file: Path, sample_config: dict):
        sample_config["replications"]["todos"]["push"]["handler"] = "replisync_missing_backend:push"
        config_file.write_text(yaml.dump(sample_config), encoding="utf-8")

        result = invoke(config_file, "run", "--once")

        assert result.exit_code == 1
        assert "Cannot import module" in result.output

    def test_collection_name_mismatch(self, config_file: Path, handler_module: str, sample_config: dict):
        sample_config["collection_factory"] = f"{handler_module}:open_renamed"
        config_file.write_text(yaml.dump(sample_config), encoding="utf-8")

        result = invoke(config_file, "run", "--once")

        assert result.exit_code == 1
        assert "returned collection 'todos-copy' for 'todos'" in result.output
        assert stored_checkpoint(sample_config) is None

    def test_replication_without_handlers_is_skipped(self, config_file: Path, sample_config: dict):
        sample_config["replications"]["todos"]["push"]["handler"] = None
        sample_config["replications"]["todos"]["pull"]["handler"] = None
        config_file.write_text(yaml.dump(sample_config), encoding="utf-8")

        result = invoke(config_file, "run", "--once")

        assert "skipping" in result.output
        assert "No replications ran" in result.output


class TestStatusCommand:
    """Tests for status command."""

    def test_status_before_run(self, config_file: Path):
        result = invoke(config_file, "status")
        assert result.exit_code == 0
        assert "todos" in result.output
        assert "none" in result.output

    def test_status_after_run(self, config_file: Path):
        invoke(config_file, "run", "--once")

        result = invoke(config_file, "status")

        assert result.exit_code == 0
        assert "Replications" in result.output
        assert "none" not in result.output


class TestResetCommand:
    """Tests for reset command."""

    def test_reset_by_name(self, config_file: Path, sample_config: dict):
        invoke(config_file, "run", "--once")
        assert stored_checkpoint(sample_config) == 1

        result = invoke(config_file, "reset", "todos", "--yes")

        assert result.exit_code == 0
        assert "Reset checkpoint of todos" in result.output
        assert stored_checkpoint(sample_config) is None

    def test_reset_all(self, config_file: Path, sample_config: dict):
        invoke(config_file, "run", "--once")

        result = invoke(config_file, "reset", "--all", "--yes")

        assert result.exit_code == 0
        assert "Removed 1 checkpoint(s)" in result.output
        assert stored_checkpoint(sample_config) is None

    def test_reset_without_target(self, config_file: Path):
        result = invoke(config_file, "reset", "--yes")
        assert result.exit_code == 2

    def test_reset_declined(self, config_file: Path, sample_config: dict):
        invoke(config_file, "run", "--once")

        result = invoke(config_file, "reset", "todos", input="n\n")

        assert "Reset cancelled" in result.output
        assert stored_checkpoint(sample_config) == 1


class TestConfigCommands:
    """Tests for config subcommands."""

    def test_init_creates_file(self, temp_dir: Path):
        config_path = temp_dir / "new" / "config.yaml"

        result = invoke(config_path, "config", "init")
        assert result.exit_code == 0
        assert config_path.exists()

        result = invoke(config_path, "config", "init")
        assert "already exists" in result.output

    def test_show(self, config_file: Path):
        result = invoke(config_file, "config", "show")
        assert result.exit_code == 0
        assert "Replisync Configuration" in result.output
        assert "todos-remote" in result.output

    def test_validate_valid(self, config_file: Path):
        result = invoke(config_file, "config", "validate")
        assert result.exit_code == 0
        assert "valid" in result.output

    def test_validate_invalid_file_argument(self, config_file: Path, temp_dir: Path):
        bad = temp_dir / "bad.yaml"
        bad.write_text(yaml.dump({"replications": {}}), encoding="utf-8")

        result = invoke(config_file, "config", "validate", str(bad))

        assert result.exit_code == 1
        assert "No replications defined" in result.output
