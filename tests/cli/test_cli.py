# tests/cli/test_cli.py
"""Tests for the conductor CLI."""

import json
from pathlib import Path

import pytest
from click.testing import Result
from typer.testing import CliRunner

from dataconductor.cli import app

# Click 8.2+: result.stdout is stdout only, result.output interleaves stderr
runner = CliRunner()

PIPELINE_YAML = """\
nodes:
  - id: src
    type: source
  - id: t
    type: transform_json
    config:
      expression: '{"v": row["id"]}'
  - id: out
    type: file_destination
    config:
      filename: result.json
edges:
  - {source: src, target: t}
  - {source: t, target: out}
"""


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    (tmp_path / "orders.yaml").write_text(PIPELINE_YAML, encoding="utf-8")
    (tmp_path / "input.json").write_text('[{"id": 1}, {"id": 2}]', encoding="utf-8")
    (tmp_path / "settings.yaml").write_text(f"storage:\n  data_dir: {tmp_path / 'data'}\n", encoding="utf-8")
    return tmp_path


def _invoke(*args: str) -> Result:
    return runner.invoke(app, ["--no-dotenv", *args])


class TestCLIBasics:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "conductor version" in result.output

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("run", "due", "handlers", "serve", "purge"):
            assert command in result.output

    def test_handlers_lists_builtin_types(self) -> None:
        result = _invoke("handlers")

        assert result.exit_code == 0
        assert "NODE TYPES:" in result.output
        assert "transform_json" in result.output
        assert "postgres_destination" in result.output

    def test_missing_env_file_exits(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["--env-file", str(tmp_path / "nope.env"), "handlers"])

        assert result.exit_code == 1


class TestDueCommand:
    def test_never_run_is_due(self) -> None:
        result = _invoke("due", "15")

        assert result.exit_code == 0
        assert result.stdout.strip() == "due"

    def test_not_due_prints_next_time(self) -> None:
        result = _invoke("due", "15", "--last-run", "2024-06-01T11:50:30", "--now", "2024-06-01T12:00:00")

        assert result.exit_code == 1
        assert "not due" in result.stdout
        assert "next due at 2024-06-01T12:05:00+00:00" in result.stdout

    def test_interval_past_datetime_range(self) -> None:
        result = _invoke("due", "99999999999", "--last-run", "2024-06-01T11:00:00", "--now", "2024-06-01T12:00:00")

        assert result.exit_code == 1
        assert "never due within the supported date range" in result.stdout

    def test_cron_due(self) -> None:
        result = _invoke("due", "0 * * * *", "--last-run", "2024-06-01T10:30:00", "--now", "2024-06-01T11:00:01")

        assert result.exit_code == 0

    def test_malformed_schedule_exits_2(self) -> None:
        result = _invoke("due", "sometimes")

        assert result.exit_code == 2


class TestRunCommand:
    def test_run_completes(self, workspace: Path) -> None:
        result = _invoke(
            "run",
            "--pipeline", str(workspace / "orders.yaml"),
            "--input", str(workspace / "input.json"),
            "--settings", str(workspace / "settings.yaml"),
        )  # fmt: skip

        assert result.exit_code == 0, result.output
        assert "(orders): COMPLETED" in result.stdout
        assert "Executing node: t (transform_json)" in result.stdout
        (output,) = (workspace / "data" / "executions").glob("*/result.json")
        assert json.loads(output.read_text(encoding="utf-8")) == [{"v": 1}, {"v": 2}]

    def test_run_json_output_with_debug(self, workspace: Path) -> None:
        result = _invoke(
            "run",
            "-p", str(workspace / "orders.yaml"),
            "-i", str(workspace / "input.json"),
            "-s", str(workspace / "settings.yaml"),
            "--pipeline-id", "orders-manual",
            "--debug",
            "--format", "json",
        )  # fmt: skip

        assert result.exit_code == 0
        record = json.loads(result.stdout)
        assert record["pipeline_id"] == "orders-manual"
        assert record["status"] == "completed"
        assert set(record["outputs"]) == {"src", "t", "out"}
        assert "debugSamples" in record["logs"][-2]["details"]

    def test_failed_run_exits_1(self, workspace: Path) -> None:
        (workspace / "input.json").write_text('[{"no_id": true}]', encoding="utf-8")

        result = _invoke(
            "run",
            "-p", str(workspace / "orders.yaml"),
            "-i", str(workspace / "input.json"),
            "-s", str(workspace / "settings.yaml"),
        )  # fmt: skip

        assert result.exit_code == 1
        assert ": FAILED" in result.stdout
        assert "Field 'id' not found" in result.stdout

    def test_missing_input_file(self, workspace: Path) -> None:
        result = _invoke("run", "-p", str(workspace / "orders.yaml"), "-i", str(workspace / "nope.json"))

        assert result.exit_code == 1
        assert "Input file not found" in result.output

    def test_missing_pipeline_file(self, workspace: Path) -> None:
        result = _invoke("run", "-p", str(workspace / "nope.yaml"))

        assert result.exit_code == 1


class TestPurgeCommand:
    def test_requires_persistent_store(self, workspace: Path) -> None:
        result = _invoke("purge", "--pipeline-id", "orders", "-s", str(workspace / "settings.yaml"), "--yes")

        assert result.exit_code == 1
        assert "persistent store" in result.output

    def test_purges_old_runs_from_sql_store(self, workspace: Path) -> None:
        settings = workspace / "settings.yaml"
        settings.write_text(
            f"storage:\n  data_dir: {workspace / 'data'}\nexecution_store:\n  url: sqlite:///{workspace / 'runs.db'}\n",
            encoding="utf-8",
        )
        run_args = ["run", "-p", str(workspace / "orders.yaml"), "-i", str(workspace / "input.json"), "-s", str(settings)]
        for _ in range(3):
            assert _invoke(*run_args).exit_code == 0

        result = _invoke("purge", "--pipeline-id", "orders", "--keep", "1", "-s", str(settings), "--yes")

        assert result.exit_code == 0
        assert "Purged 2 execution(s) of 'orders'." in result.stdout
        assert len(list((workspace / "data" / "executions").iterdir())) == 1

    def test_declined_confirmation_aborts(self, workspace: Path) -> None:
        settings = workspace / "settings.yaml"
        settings.write_text(f"execution_store:\n  url: sqlite:///{workspace / 'runs.db'}\n", encoding="utf-8")

        result = runner.invoke(app, ["--no-dotenv", "purge", "--pipeline-id", "orders", "-s", str(settings)], input="n\n")

        assert result.exit_code == 1
        assert "Aborted." in result.output
