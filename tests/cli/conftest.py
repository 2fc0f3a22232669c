"""Fixtures for CLI interface tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from civictrack.cli import cli
from civictrack.core import CIVIC_DIR_NAME, read_config, write_config


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize a civictrack project in tmp_path and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--prefix", "test"])
    assert result.exit_code == 0
    civic_dir = tmp_path / CIVIC_DIR_NAME
    config = read_config(civic_dir)
    config["bcrypt_rounds"] = 4
    write_config(civic_dir, config)
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


def _extract_id(create_output: str) -> str:
    """Extract an ID from 'Created usr-abc123: Name <email> [role]' output."""
    return create_output.split(":")[0].replace("Created ", "").strip()
