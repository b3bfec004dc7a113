"""Tests for stowage.config: models, references and file loading."""

import json

import pytest

from stowage.config import ConnectionConfig, StorageConfig, coerce_config, load_config
from stowage.errors import ConfigurationError

TOML = """
repositoriesPath = "app.repositories"

[connections.Geo]
type = "MongoDB"
url = "mongodb://localhost/stowage-test"
collection = "storage-test"

[repositories.TestRepository]
connection = "Geo"
"""

YAML = """
repositories_path: app.repositories
connections:
  Geo:
    type: MongoDB
    url: mongodb://localhost/stowage-test
    collection: storage-test
repositories:
  TestRepository:
    connection: Geo
"""


class TestStorageConfig:
    def test_extra_connection_keys_kept(self, storage_config):
        config = StorageConfig.from_mapping(storage_config)
        assert config.connections["Geo"].model_extra["collection"] == "storage-test"

    def test_connection_sets_name(self, storage_config):
        connection = StorageConfig.from_mapping(storage_config).connection("Geo")
        assert connection["name"] == "Geo"
        assert connection["type"] == "MongoDB"
        assert connection["url"] == "mongodb://localhost/stowage-test"
        assert connection["auto_connect"] is True

    def test_unknown_connection(self, storage_config):
        assert StorageConfig.from_mapping(storage_config).connection("Missing") is None

    def test_camel_case_keys(self):
        config = StorageConfig.from_mapping(
            {
                "repositoriesPath": "app.repos",
                "providersPath": "app.providers",
                "connections": {"Scratch": {"type": "Memory", "autoConnect": False}},
            }
        )
        assert config.repositories_path == "app.repos"
        assert config.providers_path == "app.providers"
        assert config.connections["Scratch"].auto_connect is False

    def test_connection_without_type(self):
        with pytest.raises(ConfigurationError, match="Invalid storage configuration"):
            StorageConfig.from_mapping({"connections": {"Geo": {"url": "mongodb://x/y"}}})

    def test_empty_repository_entry_allowed(self):
        config = StorageConfig.from_mapping({"repositories": {"TestRepository": None}})
        assert config.repositories == {"TestRepository": None}


class TestValidateReferences:
    def test_valid(self, storage_config):
        config = StorageConfig.from_mapping(storage_config)
        assert config.validate_references() is config

    def test_missing_connection_name(self):
        config = StorageConfig.from_mapping({"repositories": {"Users": {}}})
        with pytest.raises(ConfigurationError, match="Configuration for repository 'Users' is missing a provider name"):
            config.validate_references()

    def test_unknown_connection(self, storage_config):
        storage_config["repositories"]["TestRepository"]["connection"] = "Atlas"
        config = StorageConfig.from_mapping(storage_config)
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_references()
        assert str(exc_info.value) == "Specified connection 'Atlas' for repository 'TestRepository' is not specified"


class TestMerged:
    def test_other_wins(self, storage_config):
        base = StorageConfig.from_mapping(storage_config)
        other = StorageConfig.from_mapping(
            {
                "connections": {"Geo": {"type": "Memory"}},
                "repositoriesPath": "app.repos",
            }
        )

        merged = base.merged(other)

        assert merged.connections["Geo"].type == "Memory"
        assert "TestRepository" in merged.repositories
        assert merged.repositories_path == "app.repos"
        assert base.connections["Geo"].type == "MongoDB"

    def test_merge_with_none_copies(self, storage_config):
        base = StorageConfig.from_mapping(storage_config)
        merged = base.merged(None)
        assert merged == base
        assert merged is not base


class TestCoerce:
    def test_passthrough(self):
        config = StorageConfig()
        assert coerce_config(config) is config
        assert coerce_config(None) is None

    def test_mapping(self, storage_config):
        assert isinstance(coerce_config(storage_config), StorageConfig)

    def test_rejects_other_types(self):
        with pytest.raises(ConfigurationError):
            coerce_config(["not", "a", "mapping"])

    def test_connection_config_model(self):
        assert ConnectionConfig(type="Redis", url="redis://x").model_extra == {"url": "redis://x"}


class TestLoadConfig:
    def test_toml(self, tmp_path):
        path = tmp_path / "storage.toml"
        path.write_text(TOML)

        config = load_config(path)

        assert config.repositories_path == "app.repositories"
        assert config.repositories["TestRepository"].connection == "Geo"

    def test_yaml(self, tmp_path):
        path = tmp_path / "storage.yaml"
        path.write_text(YAML)
        assert load_config(path).connections["Geo"].type == "MongoDB"

    def test_json(self, tmp_path, storage_config):
        path = tmp_path / "storage.json"
        path.write_text(json.dumps(storage_config))
        assert load_config(str(path)).connection("Geo")["collection"] == "storage-test"

    def test_missing_file(self, tmp_path):
        path = tmp_path / "absent.toml"
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(path)

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "storage.ini"
        path.write_text("[connections]")
        with pytest.raises(ConfigurationError, match="Unsupported configuration format '.ini'"):
            load_config(path)

    def test_parse_error(self, tmp_path):
        path = tmp_path / "storage.toml"
        path.write_text("[connections.Geo\n")
        with pytest.raises(ConfigurationError, match="Cannot parse configuration file"):
            load_config(path)

    def test_not_a_table(self, tmp_path):
        path = tmp_path / "storage.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="must contain a table"):
            load_config(path)
