"""Tests for stowage.cli.app: providers, check and --version."""

from __future__ import annotations

import json
import uuid

import pytest
from typer.testing import CliRunner

from stowage.cli.app import app

runner = CliRunner()


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.delenv("STOWAGE_CONFIG_PATH", raising=False)
    monkeypatch.setenv("STOWAGE_LOG_LEVEL", "WARNING")
    return tmp_path


@pytest.fixture
def config_file(workdir):
    """A storage.toml whose TestRepository lives in a generated package."""
    package = f"repos_{uuid.uuid4().hex}"
    (workdir / package).mkdir()
    (workdir / package / "__init__.py").write_text("")
    (workdir / package / "TestRepository.py").write_text(
        "from stowage.repository import Repository\n\n\nclass TestRepository(Repository):\n    pass\n"
    )
    path = workdir / "storage.toml"
    path.write_text(
        f'repositoriesPath = "{package}"\n\n'
        "[connections.Geo]\n"
        'type = "MongoDB"\n'
        'url = "mongodb://localhost/stowage-test"\n'
        'collection = "storage-test"\n\n'
        "[repositories.TestRepository]\n"
        'connection = "Geo"\n'
    )
    return path


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("stowage ")


class TestProviders:
    def test_json(self):
        result = runner.invoke(app, ["providers", "--json"])

        assert result.exit_code == 0
        rows = {row["type"]: row for row in json.loads(result.output)}
        assert sorted(rows) == ["CouchDB", "FileSystem", "Memory", "MongoDB", "Redis"]
        assert "find_all" not in rows["Redis"]["capabilities"]
        assert "find_all" in rows["Memory"]["capabilities"]
        assert rows["CouchDB"]["class"] == "stowage.providers.couchdb.CouchDBProvider"

    def test_table(self):
        result = runner.invoke(app, ["providers"])
        assert result.exit_code == 0
        assert "MongoDB" in result.output


class TestCheck:
    def test_resolves_repositories(self, config_file):
        result = runner.invoke(app, ["check", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "1 repositories resolved" in result.output

    def test_json(self, config_file):
        result = runner.invoke(app, ["check", str(config_file), "--json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == [
            {"repository": "TestRepository", "connection": "Geo", "type": "MongoDB"}
        ]

    def test_config_path_from_environment(self, config_file, monkeypatch):
        monkeypatch.setenv("STOWAGE_CONFIG_PATH", str(config_file))

        result = runner.invoke(app, ["check", "--json"])

        assert result.exit_code == 0, result.output

    def test_no_config(self, workdir):
        result = runner.invoke(app, ["check"])

        assert result.exit_code == 1
        assert "No configuration file given" in result.output

    def test_missing_file(self, workdir):
        result = runner.invoke(app, ["check", str(workdir / "absent.toml")])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_unknown_connection(self, config_file):
        config_file.write_text(config_file.read_text().replace('connection = "Geo"', 'connection = "Atlas"'))

        result = runner.invoke(app, ["check", str(config_file)])

        assert result.exit_code == 1
        assert "Specified connection 'Atlas' for repository 'TestRepository' is not specified" in result.output

    def test_missing_repository_module(self, config_file):
        config_file.write_text(config_file.read_text().replace("TestRepository]", "Elsewhere]"))

        result = runner.invoke(app, ["check", str(config_file)])

        assert result.exit_code == 1
        assert "Cannot find repository 'Elsewhere'" in result.output
