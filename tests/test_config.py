"""Tests for configuration loading"""

from pathlib import Path

import pytest
import yaml

from multitier_deploy.config import DEFAULT_TIERS, DeploymentConfig, load_config
from multitier_deploy.errors import ValidationError


def _write(tmp_path, data):
    path = tmp_path / "deploy.yaml"
    with open(path, "w") as f:
        yaml.safe_dump(data, f)
    return path


class TestDefaults:

    def test_builtin_topology(self):
        config = load_config()
        assert config.resource_group == "rg-multitier-prod"
        assert config.location == "francecentral"
        assert config.vnet_prefix == "10.0.0.0/16"
        assert [t.key for t in config.tiers] == ["web", "app", "db"]
        assert [t.subnet_prefix for t in config.tiers] == ["10.0.1.0/24", "10.0.2.0/24", "10.0.3.0/24"]
        assert config.vm_size == "Standard_B1s"
        assert config.vm_image == "Ubuntu2204"
        assert config.wait_timeout == 600

    def test_default_tags(self):
        config = DeploymentConfig()
        assert config.resource_group_tags == {"Environment": "Production", "Tier": "Multi", "Application": "Demo"}
        assert config.vm_tags == {"Environment": "Production"}
        assert [t.tag for t in config.tiers] == ["Web", "App", "Database"]

    def test_public_key_path(self, tmp_path):
        config = DeploymentConfig(ssh_key_path=tmp_path / "id_multi")
        assert config.public_key_path == tmp_path / "id_multi.pub"

    def test_instances_do_not_share_mutables(self):
        a, b = DeploymentConfig(), DeploymentConfig()
        a.resource_group_tags["Owner"] = "ops"
        a.tiers.pop()
        assert "Owner" not in b.resource_group_tags
        assert len(b.tiers) == len(DEFAULT_TIERS) == 3


class TestTierLookup:

    def test_upstream_chain(self):
        config = DeploymentConfig()
        assert config.upstream_of("web") is None
        assert config.upstream_of("app").key == "web"
        assert config.upstream_of("db").key == "app"

    def test_unknown_tier(self):
        with pytest.raises(KeyError):
            DeploymentConfig().tier("cache")


class TestYamlFile:

    def test_overrides_applied(self, tmp_path):
        path = _write(tmp_path, {
            "resource_group": "rg-staging",
            "location": "westeurope",
            "wait_timeout": 300,
            "ssh_key_path": "~/keys/staging",
            "output_dir": str(tmp_path / "artifacts"),
        })
        config = load_config(path)
        assert config.resource_group == "rg-staging"
        assert config.location == "westeurope"
        assert config.wait_timeout == 300
        assert config.ssh_key_path == Path.home() / "keys" / "staging"
        assert config.output_dir == tmp_path / "artifacts"
        assert config.vnet_name == "vnet-multitier"

    def test_tier_overrides_merge_into_defaults(self, tmp_path):
        path = _write(tmp_path, {"tiers": {"db": {"subnet_prefix": "10.0.30.0/24", "vm_name": "vm-db-02"}}})
        config = load_config(path)
        db = config.tier("db")
        assert db.subnet_prefix == "10.0.30.0/24"
        assert db.vm_name == "vm-db-02"
        assert db.nsg_name == "nsg-db"
        assert config.tier("web") == DEFAULT_TIERS[0]

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path).resource_group == "rg-multitier-prod"

    @pytest.mark.parametrize("data", [
        {"resource_groups": "typo"},
        {"tiers": {"cache": {"vm_name": "vm-cache"}}},
        {"tiers": {"web": {"key": "edge"}}},
        ["not", "a", "mapping"],
        {"tiers": ["web"]},
        {"tiers": {"web": ["snet-edge"]}},
        {"tiers": {"db": {"subnet_prefix": 10}}},
        {"resource_group_tags": "Production"},
        {"vm_tags": {"Environment": ["Production"]}},
        {"ssh_key_path": 5},
        {"output_dir": ["out"]},
        {"location": None},
        {"wait_timeout": "300"},
        {"wait_timeout": 0},
        {"wait_timeout": True},
    ])
    def test_invalid_files_rejected(self, tmp_path, data):
        with pytest.raises(ValidationError):
            load_config(_write(tmp_path, data))


class TestEnvironment:

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"resource_group": "rg-from-file", "location": "westeurope"})
        monkeypatch.setenv("MULTITIER_RESOURCE_GROUP", "rg-from-env")
        monkeypatch.setenv("MULTITIER_WAIT_TIMEOUT", "120")

        config = load_config(path)
        assert config.resource_group == "rg-from-env"
        assert config.location == "westeurope"
        assert config.wait_timeout == 120

    def test_empty_env_ignored(self, monkeypatch):
        monkeypatch.setenv("MULTITIER_LOCATION", "")
        assert load_config().location == "francecentral"

    @pytest.mark.parametrize("value", ["ten", "0", "-5"])
    def test_bad_timeout_env_rejected(self, monkeypatch, value):
        monkeypatch.setenv("MULTITIER_WAIT_TIMEOUT", value)
        with pytest.raises(ValidationError, match="MULTITIER_WAIT_TIMEOUT"):
            load_config()
