"""
Deployment configuration.

The defaults reproduce the production topology:

    rg-multitier-prod (francecentral)
      vnet-multitier 10.0.0.0/16
        snet-web 10.0.1.0/24  nsg-web  vm-web-01
        snet-app 10.0.2.0/24  nsg-app  vm-app-01
        snet-db  10.0.3.0/24  nsg-db   vm-db-01

Any value can be overridden from a YAML file or, for the handful of settings
people change per run, from MULTITIER_* environment variables.
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ValidationError

DEFAULT_SSH_KEY_PATH = Path.home() / ".ssh" / "azure_multitier_key"


@dataclass(frozen=True)
class TierConfig:
    """One network segment: its subnet, security group and machine."""

    key: str
    display_name: str
    subnet_name: str
    subnet_prefix: str
    nsg_name: str
    vm_name: str
    tag: str


DEFAULT_TIERS: List[TierConfig] = [
    TierConfig("web", "Web", "snet-web", "10.0.1.0/24", "nsg-web", "vm-web-01", "Web"),
    TierConfig("app", "App", "snet-app", "10.0.2.0/24", "nsg-app", "vm-app-01", "App"),
    TierConfig("db", "DB", "snet-db", "10.0.3.0/24", "nsg-db", "vm-db-01", "Database"),
]


@dataclass
class DeploymentConfig:
    resource_group: str = "rg-multitier-prod"
    location: str = "francecentral"
    vnet_name: str = "vnet-multitier"
    vnet_prefix: str = "10.0.0.0/16"
    tiers: List[TierConfig] = field(default_factory=lambda: list(DEFAULT_TIERS))
    vm_size: str = "Standard_B1s"
    vm_image: str = "Ubuntu2204"
    admin_username: str = "azureuser"
    ssh_key_path: Path = DEFAULT_SSH_KEY_PATH
    wait_timeout: int = 600
    resource_group_tags: Dict[str, str] = field(
        default_factory=lambda: {"Environment": "Production", "Tier": "Multi", "Application": "Demo"}
    )
    vm_tags: Dict[str, str] = field(default_factory=lambda: {"Environment": "Production"})
    output_dir: Path = field(default_factory=Path.cwd)

    @property
    def public_key_path(self) -> Path:
        return self.ssh_key_path.with_name(self.ssh_key_path.name + ".pub")

    def tier(self, key: str) -> TierConfig:
        for tier in self.tiers:
            if tier.key == key:
                return tier
        raise KeyError(f"Unknown tier: {key}")

    def upstream_of(self, key: str) -> Optional[TierConfig]:
        """Return the tier directly in front of `key`, or None for the edge tier."""
        keys = [t.key for t in self.tiers]
        index = keys.index(key)
        return self.tiers[index - 1] if index > 0 else None

    @classmethod
    def from_env(cls, base: Optional["DeploymentConfig"] = None) -> "DeploymentConfig":
        """Apply MULTITIER_* environment overrides on top of `base`."""
        config = base or cls()
        overrides: Dict[str, Any] = {}
        if os.getenv("MULTITIER_RESOURCE_GROUP"):
            overrides["resource_group"] = os.getenv("MULTITIER_RESOURCE_GROUP")
        if os.getenv("MULTITIER_LOCATION"):
            overrides["location"] = os.getenv("MULTITIER_LOCATION")
        if os.getenv("MULTITIER_VM_SIZE"):
            overrides["vm_size"] = os.getenv("MULTITIER_VM_SIZE")
        if os.getenv("MULTITIER_ADMIN_USERNAME"):
            overrides["admin_username"] = os.getenv("MULTITIER_ADMIN_USERNAME")
        if os.getenv("MULTITIER_SSH_KEY_PATH"):
            overrides["ssh_key_path"] = Path(os.getenv("MULTITIER_SSH_KEY_PATH")).expanduser()
        if os.getenv("MULTITIER_WAIT_TIMEOUT"):
            overrides["wait_timeout"] = _env_timeout(os.getenv("MULTITIER_WAIT_TIMEOUT"))
        return replace(config, **overrides) if overrides else config


STRING_SETTINGS = (
    "resource_group", "location", "vnet_name", "vnet_prefix", "vm_size",
    "vm_image", "admin_username", "ssh_key_path", "output_dir",
)
TAG_SETTINGS = ("resource_group_tags", "vm_tags")


def _positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    return value


def _env_timeout(value: str) -> int:
    try:
        timeout = int(value)
    except ValueError:
        raise ValidationError(f"MULTITIER_WAIT_TIMEOUT must be a positive integer, got {value!r}") from None
    return _positive_int("MULTITIER_WAIT_TIMEOUT", timeout)


def _check_types(raw: Dict[str, Any]) -> None:
    """Reject values of the wrong shape before they reach the dataclasses."""
    for name in STRING_SETTINGS:
        if name in raw and not isinstance(raw[name], str):
            raise ValidationError(f"{name} must be a string, got {raw[name]!r}")

    for name in TAG_SETTINGS:
        if name not in raw:
            continue
        tags = raw[name]
        if not isinstance(tags, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in tags.items()
        ):
            raise ValidationError(f"{name} must map tag names to string values, got {tags!r}")

    if "wait_timeout" in raw:
        _positive_int("wait_timeout", raw["wait_timeout"])

    tiers = raw.get("tiers")
    if tiers is None:
        return
    if not isinstance(tiers, dict):
        raise ValidationError(f"tiers must be a mapping of tier name to settings, got {tiers!r}")
    for key, values in tiers.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValidationError(f"Settings for tier {key} must be a mapping, got {values!r}")
        for name, value in values.items():
            if not isinstance(value, str):
                raise ValidationError(f"tiers.{key}.{name} must be a string, got {value!r}")


def _merge_tiers(tiers: List[TierConfig], raw: Dict[str, Any]) -> List[TierConfig]:
    tier_fields = {f.name for f in fields(TierConfig)} - {"key"}
    known = {t.key for t in tiers}
    unknown = set(raw) - known
    if unknown:
        raise ValidationError(f"Unknown tiers in configuration: {sorted(map(str, unknown))}")

    merged = []
    for tier in tiers:
        values = raw.get(tier.key) or {}
        bad = set(values) - tier_fields
        if bad:
            raise ValidationError(f"Unknown settings for tier {tier.key}: {sorted(bad)}")
        merged.append(replace(tier, **values))
    return merged


def load_config(path: Optional[Path] = None) -> DeploymentConfig:
    """
    Build the deployment configuration.

    Starts from the built-in defaults, applies the YAML file at `path` (if
    given), then environment overrides.
    """
    config = DeploymentConfig()

    if path is not None:
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValidationError(f"Configuration file {path} must contain a mapping")

        allowed = {f.name for f in fields(DeploymentConfig)}
        unknown = set(raw) - allowed
        if unknown:
            raise ValidationError(f"Unknown configuration keys: {sorted(map(str, unknown))}")

        _check_types(raw)
        overrides = dict(raw)
        if "tiers" in overrides:
            overrides["tiers"] = _merge_tiers(config.tiers, overrides["tiers"] or {})
        if "ssh_key_path" in overrides:
            overrides["ssh_key_path"] = Path(overrides["ssh_key_path"]).expanduser()
        if "output_dir" in overrides:
            overrides["output_dir"] = Path(overrides["output_dir"]).expanduser()
        config = replace(config, **overrides)

    return DeploymentConfig.from_env(config)
