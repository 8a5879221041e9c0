"""
Virtual network layout and NSG binding.

One VNet holds three /24 subnets, one per tier. Prefix overlap and
containment are checked before deployment by `network.validation`; the
provider rejects anything that slips through.
"""

import logging
from typing import Dict

from ..azure_cli import AzureCLI
from ..config import DeploymentConfig
from ..metrics import METRICS
from .security_groups import SecurityPolicy

logger = logging.getLogger(__name__)


def create_vnet_and_subnets(cli: AzureCLI, config: DeploymentConfig) -> None:
    cli.run(
        "network", "vnet", "create",
        "--resource-group", config.resource_group,
        "--name", config.vnet_name,
        "--address-prefix", config.vnet_prefix,
        "--location", config.location,
    )
    METRICS["resources_created"].labels(resource_type="virtual_network").inc()
    logger.info(f"VNet created: {config.vnet_name} ({config.vnet_prefix})")

    for tier in config.tiers:
        cli.run(
            "network", "vnet", "subnet", "create",
            "--resource-group", config.resource_group,
            "--vnet-name", config.vnet_name,
            "--name", tier.subnet_name,
            "--address-prefix", tier.subnet_prefix,
        )
        METRICS["resources_created"].labels(resource_type="subnet").inc()
        logger.info(f"{tier.display_name} subnet created: {tier.subnet_name} ({tier.subnet_prefix})")


def attach_security_groups(cli: AzureCLI, config: DeploymentConfig, policies: Dict[str, SecurityPolicy]) -> None:
    """Associate each tier's NSG with its subnet; provider errors propagate."""
    for tier in config.tiers:
        policy = policies[tier.key]
        cli.run(
            "network", "vnet", "subnet", "update",
            "--resource-group", config.resource_group,
            "--vnet-name", config.vnet_name,
            "--name", tier.subnet_name,
            "--network-security-group", policy.name,
        )
        logger.info(f"{tier.display_name} NSG attached to {tier.display_name} subnet")
