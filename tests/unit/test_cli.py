"""Unit tests for the kubedelta CLI."""

from __future__ import annotations

from pathlib import Path

import yaml
from click.testing import CliRunner

from kubedelta.cli import cli
from tests.fakes import make_deployment


def _write(path: Path, document: object) -> str:
    path.write_text(yaml.safe_dump(document), encoding="utf-8")
    return str(path)


def test_diff_prints_changes(tmp_path: Path) -> None:
    old = _write(tmp_path / "old.yaml", make_deployment(rv=6, replicas=3))
    new = _write(tmp_path / "new.yaml", make_deployment(rv=7, replicas=5))

    result = CliRunner().invoke(
        cli, ["diff", old, new, "--mask", "status", "--mask", "metadata.managedFields", "--context", "0"]
    )

    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == ["-  replicas: 3", "+  replicas: 5"]


def test_diff_of_masked_only_changes_is_empty(tmp_path: Path) -> None:
    old = _write(tmp_path / "old.yaml", make_deployment(rv=5, status_replicas=3))
    new = _write(tmp_path / "new.yaml", make_deployment(rv=6, status_replicas=1))

    result = CliRunner().invoke(cli, ["diff", old, new, "--mask", "status", "--mask", "metadata.managedFields"])

    assert result.exit_code == 0
    assert result.output == ""


def test_diff_without_masks_shows_status(tmp_path: Path) -> None:
    old = _write(tmp_path / "old.yaml", make_deployment(rv=5, status_replicas=3))
    new = _write(tmp_path / "new.yaml", make_deployment(rv=5, status_replicas=1))

    result = CliRunner().invoke(cli, ["diff", old, new])

    assert result.exit_code == 0
    assert "-  readyReplicas: 3" in result.output.splitlines()


def test_invalid_mask_is_a_usage_error(tmp_path: Path) -> None:
    old = _write(tmp_path / "old.yaml", {"a": 1})
    new = _write(tmp_path / "new.yaml", {"a": 2})

    result = CliRunner().invoke(cli, ["diff", old, new, "--mask", "a..b"])

    assert result.exit_code == 2


def test_unparseable_yaml_is_a_usage_error(tmp_path: Path) -> None:
    old = tmp_path / "old.yaml"
    old.write_text("a: [unclosed", encoding="utf-8")
    new = _write(tmp_path / "new.yaml", {"a": 2})

    result = CliRunner().invoke(cli, ["diff", str(old), new])

    assert result.exit_code == 2


def test_missing_file_is_rejected(tmp_path: Path) -> None:
    new = _write(tmp_path / "new.yaml", {"a": 2})
    result = CliRunner().invoke(cli, ["diff", str(tmp_path / "absent.yaml"), new])
    assert result.exit_code == 2
