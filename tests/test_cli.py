"""Tests for the smig command line interface."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from sandbox_migrator.action import ActionResult
from sandbox_migrator.cli import cli
from sandbox_migrator.errors import ProvisioningError
from sandbox_migrator.models import EnvironmentStatus
from sandbox_migrator.provisioner import EnvironmentKind
from sandbox_migrator.sequencer import SequenceResult


class TestNameCommand:
    """Tests for smig name."""

    def test_branch_pattern(self) -> None:
        result = CliRunner().invoke(cli, ["name", "GH-[branch]", "--branch", "feature/new-func"])

        assert result.exit_code == 0
        assert result.output.strip() == "GH-feature-new-func"


class TestVersionsCommand:
    """Tests for smig versions."""

    def test_lists_versions(self, migrations_dir: Path) -> None:
        result = CliRunner().invoke(cli, ["versions", str(migrations_dir)])

        assert result.exit_code == 0
        assert [line.split("\t")[0] for line in result.output.splitlines()] == ["1", "1.0.1", "2"]

    def test_empty_directory(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(cli, ["versions", str(tmp_path)])
        assert "No migrations found" in result.output

    def test_duplicate_versions(self, migrations_dir: Path) -> None:
        (migrations_dir / "1_0_0.js").write_text("")
        result = CliRunner().invoke(cli, ["versions", str(migrations_dir)])

        assert result.exit_code != 0
        assert "equivalent" in result.output


class TestPendingCommand:
    """Tests for smig pending."""

    def test_lists_pending(self, migrations_dir: Path) -> None:
        result = CliRunner().invoke(cli, ["pending", str(migrations_dir), "--current", "1"])

        assert result.exit_code == 0
        assert result.output.splitlines() == ["1.0.1", "2"]

    def test_up_to_date(self, migrations_dir: Path) -> None:
        result = CliRunner().invoke(cli, ["pending", str(migrations_dir), "--current", "2"])
        assert "Up to date at 2" in result.output

    def test_unknown_version(self, migrations_dir: Path) -> None:
        result = CliRunner().invoke(cli, ["pending", str(migrations_dir), "--current", "9"])

        assert result.exit_code != 0
        assert "not matching" in result.output


class TestRunCommand:
    """Tests for smig run."""

    def _write_inputs(self, migrations_dir: Path) -> tuple[Path, Path]:
        config_file = migrations_dir.parent / "smig.yaml"
        config_file.write_text(
            "space_id: space123\nmanagement_api_key: token\nmigrations_dir: migrations\n"
        )
        event_file = migrations_dir.parent / "event.json"
        event_file.write_text(
            json.dumps({"ref": "refs/heads/main", "repository": {"default_branch": "main"}})
        )
        return config_file, event_file

    def test_run(self, migrations_dir: Path) -> None:
        config_file, event_file = self._write_inputs(migrations_dir)
        result_value = ActionResult(
            environment_id="master-2021-02-03-0000",
            environment_url="https://app.contentful.com/spaces/space123/environments/master-2021-02-03-0000",
            kind=EnvironmentKind.CANONICAL,
            readiness=EnvironmentStatus.READY,
            migrations=SequenceResult("master-2021-02-03-0000", "1", "2", applied=["1.0.1", "2"]),
        )

        with patch("sandbox_migrator.cli.execute", AsyncMock(return_value=result_value)):
            result = CliRunner().invoke(
                cli,
                [
                    "run",
                    "--config-file",
                    str(config_file),
                    "--event-name",
                    "push",
                    "--event-path",
                    str(event_file),
                ],
                env={"GITHUB_OUTPUT": ""},
            )

        assert result.exit_code == 0, result.output
        assert "master-2021-02-03-0000 ready" in result.output
        assert "Version: 2" in result.output

    def test_run_failure(self, migrations_dir: Path) -> None:
        config_file, event_file = self._write_inputs(migrations_dir)
        failure = AsyncMock(side_effect=ProvisioningError("quota exceeded", environment_id="x"))

        with patch("sandbox_migrator.cli.execute", failure):
            result = CliRunner().invoke(
                cli,
                [
                    "run",
                    "--config-file",
                    str(config_file),
                    "--event-name",
                    "push",
                    "--event-path",
                    str(event_file),
                ],
                env={"GITHUB_OUTPUT": ""},
            )

        assert result.exit_code == 1
        assert "quota exceeded" in result.output

    def test_unsupported_event(self, migrations_dir: Path) -> None:
        config_file, event_file = self._write_inputs(migrations_dir)

        result = CliRunner().invoke(
            cli,
            [
                "run",
                "--config-file",
                str(config_file),
                "--event-name",
                "schedule",
                "--event-path",
                str(event_file),
            ],
        )

        assert result.exit_code == 1
        assert "Unsupported event" in result.output
