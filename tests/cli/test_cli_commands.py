"""CLI tests for project setup, user administration, and read-only issue commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from civictrack.auth import Actor
from civictrack.cli import cli
from civictrack.core import CIVIC_DIR_NAME, CivicDB, read_config
from tests.cli.conftest import _extract_id
from tests.conftest import PASSWORD, make_payload


def _seed_issue(project: Path, reporter_id: str, title: str, **kwargs: object) -> str:
    with CivicDB.from_project(project) as db:
        return db.create_issue(make_payload(title, **kwargs), actor=Actor(reporter_id, "citizen")).id


class TestInit:
    def test_init_creates_project(self, tmp_path: Path, cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = cli_runner.invoke(cli, ["init", "--prefix", "city"])
        assert result.exit_code == 0
        assert "Initialized .civictrack/" in result.output
        civic_dir = tmp_path / CIVIC_DIR_NAME
        config = read_config(civic_dir)
        assert config["prefix"] == "city"
        assert len(config["secret_key"]) == 64
        assert (civic_dir / "civictrack.db").exists()

    def test_init_twice(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 0
        assert "already exists" in result.output

    def test_commands_outside_project(self, tmp_path: Path, cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = cli_runner.invoke(cli, ["stats"])
        assert result.exit_code == 1
        assert "civictrack init" in result.output


class TestUsers:
    def test_add_user(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["add-user", "Ada Admin", "ada@city.gov", "--role", "admin", "--password", PASSWORD])
        assert result.exit_code == 0, result.output
        assert "Ada Admin <ada@city.gov> [admin]" in result.output
        assert _extract_id(result.output).startswith("usr-")

    def test_add_user_prompts_for_password(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["add-user", "Sam", "sam@city.gov", "--role", "staff"], input=f"{PASSWORD}\n{PASSWORD}\n")
        assert result.exit_code == 0, result.output
        assert "[staff]" in result.output

    def test_add_user_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["add-user", "Ana", "ana@example.com", "--password", PASSWORD, "--ward", "North", "--json"])
        data = json.loads(result.output)
        assert data["role"] == "citizen"
        assert data["ward"] == "North"

    def test_duplicate_email(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        runner.invoke(cli, ["add-user", "Ana", "ana@example.com", "--password", PASSWORD])
        result = runner.invoke(cli, ["add-user", "Ana Again", "ANA@example.com", "--password", PASSWORD])
        assert result.exit_code == 1
        assert "already registered" in result.output

    def test_short_password_json_error(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["add-user", "Ana", "ana@example.com", "--password", "abc", "--json"])
        assert result.exit_code == 1
        assert "password" in json.loads(result.output)["error"]

    def test_users_listing(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        runner.invoke(cli, ["add-user", "Ana", "ana@example.com", "--password", PASSWORD])
        runner.invoke(cli, ["add-user", "Sam", "sam@city.gov", "--role", "staff", "--password", PASSWORD])
        result = runner.invoke(cli, ["users"])
        assert result.exit_code == 0
        assert "2 users" in result.output

        staff_only = runner.invoke(cli, ["users", "--role", "staff", "--json"])
        assert [u["email"] for u in json.loads(staff_only.output)] == ["sam@city.gov"]


class TestIssueCommands:
    def _reporter(self, runner: CliRunner) -> str:
        result = runner.invoke(cli, ["add-user", "Ana", "ana@example.com", "--password", PASSWORD])
        return _extract_id(result.output)

    def test_list_and_filter(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, project = cli_in_project
        reporter = self._reporter(runner)
        pothole = _seed_issue(project, reporter, "Pothole on Main Street", category="Roads", priority="high")
        _seed_issue(project, reporter, "Broken streetlight", category="Lighting")

        result = runner.invoke(cli, ["list"])
        assert result.exit_code == 0
        assert "2 of 2 issues (page 1)" in result.output

        result = runner.invoke(cli, ["list", "--search", "pothole", "--json"])
        data = json.loads(result.output)
        assert data["total"] == 1
        assert data["items"][0]["id"] == pothole
        assert data["items"][0]["location"]["address"] == "1 Main Street"

    def test_list_bad_filter(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["list", "--priority", "urgent"])
        assert result.exit_code == 1
        assert "priority" in result.output

    def test_show(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, project = cli_in_project
        issue_id = _seed_issue(project, self._reporter(runner), "Graffiti on bridge", ward="East")

        result = runner.invoke(cli, ["show", issue_id])
        assert result.exit_code == 0
        assert "Graffiti on bridge" in result.output
        assert "Ward:     East" in result.output
        assert "--- Timeline ---" in result.output

        data = json.loads(runner.invoke(cli, ["show", issue_id, "--json"]).output)
        assert data["status"] == "Pending"
        assert len(data["timeline"]) == 1

    def test_show_missing(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["show", "test-nope"])
        assert result.exit_code == 1
        assert "Not found: test-nope" in result.output

    def test_stats(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, project = cli_in_project
        reporter = self._reporter(runner)
        _seed_issue(project, reporter, "Pothole", priority="critical")
        _seed_issue(project, reporter, "Litter")

        data = json.loads(runner.invoke(cli, ["stats", "--json"]).output)
        assert data["total"] == 2
        assert data["pending"] == 2
        assert data["high_priority_open"] == 1
        assert data["by_category"]["Other"] == 2

        scoped = json.loads(runner.invoke(cli, ["stats", "--owner", reporter, "--json"]).output)
        assert scoped["total"] == 2
        assert "by_category" not in scoped

        text = runner.invoke(cli, ["stats"])
        assert "High priority open: 1" in text.output
