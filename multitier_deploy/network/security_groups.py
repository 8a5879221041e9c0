"""
Network Security Groups

Declares the inbound rules for each tier and applies them through the
Azure CLI. The model is a whitelist chain:

- web accepts HTTP/HTTPS/SSH from anywhere
- app accepts 8080/SSH/ICMP only from the web subnet, then denies the rest
- db accepts PostgreSQL/MySQL/SSH/ICMP only from the app subnet, then denies the rest

Sources are matched purely on CIDR prefix. Rules are evaluated in ascending
priority order and the first match wins.
"""

import ipaddress
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ..azure_cli import AzureCLI
from ..config import DeploymentConfig, TierConfig
from ..errors import ValidationError
from ..metrics import METRICS

logger = logging.getLogger(__name__)

ANY = "*"
INTERNET = "Internet"
# Placeholder for the subnet prefix of the tier directly upstream.
UPSTREAM = "@upstream"
DENY_ALL_PRIORITY = 4096


class Access(Enum):
    ALLOW = "Allow"
    DENY = "Deny"


class Protocol(Enum):
    TCP = "Tcp"
    ICMP = "Icmp"
    ANY = "*"


DENY_ALL_INBOUND = {
    "name": "Deny-All-Inbound", "priority": DENY_ALL_PRIORITY, "source": ANY, "port": ANY,
    "protocol": "*", "access": "Deny", "description": "Deny all other inbound traffic",
}

# Rule tables per tier, in evaluation order.
TIER_RULES: Dict[str, List[Dict[str, Any]]] = {
    "web": [
        {"name": "Allow-HTTP", "priority": 100, "source": INTERNET, "port": 80,
         "protocol": "Tcp", "access": "Allow", "description": "Allow HTTP from Internet"},
        {"name": "Allow-HTTPS", "priority": 110, "source": INTERNET, "port": 443,
         "protocol": "Tcp", "access": "Allow", "description": "Allow HTTPS from Internet"},
        {"name": "Allow-SSH", "priority": 120, "source": INTERNET, "port": 22,
         "protocol": "Tcp", "access": "Allow", "description": "Allow SSH from Internet"},
    ],
    "app": [
        {"name": "Allow-From-Web", "priority": 100, "source": UPSTREAM, "port": 8080,
         "protocol": "Tcp", "access": "Allow", "description": "Allow App traffic from Web tier"},
        {"name": "Allow-SSH-From-Web", "priority": 110, "source": UPSTREAM, "port": 22,
         "protocol": "Tcp", "access": "Allow", "description": "Allow SSH from Web tier"},
        {"name": "Allow-ICMP-From-Web", "priority": 120, "source": UPSTREAM, "port": ANY,
         "protocol": "Icmp", "access": "Allow", "description": "Allow ICMP from Web tier"},
        DENY_ALL_INBOUND,
    ],
    "db": [
        {"name": "Allow-PostgreSQL-From-App", "priority": 100, "source": UPSTREAM, "port": 5432,
         "protocol": "Tcp", "access": "Allow", "description": "Allow PostgreSQL from App tier"},
        {"name": "Allow-MySQL-From-App", "priority": 110, "source": UPSTREAM, "port": 3306,
         "protocol": "Tcp", "access": "Allow", "description": "Allow MySQL from App tier"},
        {"name": "Allow-SSH-From-App", "priority": 120, "source": UPSTREAM, "port": 22,
         "protocol": "Tcp", "access": "Allow", "description": "Allow SSH from App tier"},
        {"name": "Allow-ICMP-From-App", "priority": 130, "source": UPSTREAM, "port": ANY,
         "protocol": "Icmp", "access": "Allow", "description": "Allow ICMP from App tier"},
        DENY_ALL_INBOUND,
    ],
}


@dataclass(frozen=True)
class SecurityRule:
    """A single inbound NSG rule."""

    name: str
    priority: int
    source_prefix: str
    destination_port: Union[int, str]
    protocol: Protocol
    access: Access
    description: str

    @property
    def is_deny_all(self) -> bool:
        return (
            self.access == Access.DENY
            and self.source_prefix == ANY
            and self.destination_port == ANY
            and self.protocol == Protocol.ANY
        )

    def matches(self, protocol: Protocol, port: Optional[int], source_ip: str) -> bool:
        """
        Check whether inbound traffic hits this rule.

        `Internet` is treated as unrestricted; anything else is matched by
        CIDR containment of `source_ip`.
        """
        if self.protocol != Protocol.ANY and self.protocol != protocol:
            return False
        if self.destination_port != ANY and self.destination_port != port:
            return False
        if self.source_prefix in (ANY, INTERNET):
            return True
        return ipaddress.ip_address(source_ip) in ipaddress.ip_network(self.source_prefix)

    def to_cli_args(self) -> List[str]:
        return [
            "--name", self.name,
            "--priority", str(self.priority),
            "--source-address-prefixes", self.source_prefix,
            "--source-port-ranges", ANY,
            "--destination-address-prefixes", ANY,
            "--destination-port-ranges", str(self.destination_port),
            "--access", self.access.value,
            "--protocol", self.protocol.value,
            "--description", self.description,
        ]


@dataclass
class SecurityPolicy:
    """The NSG attached to one tier's subnet."""

    name: str
    tier: str
    rules: List[SecurityRule] = field(default_factory=list)

    def first_match(self, protocol: Protocol, port: Optional[int], source_ip: str) -> Optional[SecurityRule]:
        for rule in sorted(self.rules, key=lambda r: r.priority):
            if rule.matches(protocol, port, source_ip):
                return rule
        return None

    def allows(self, protocol: Protocol, port: Optional[int], source_ip: str) -> bool:
        """
        Decide whether inbound traffic is admitted.

        Traffic matching no declared rule is treated as denied; the
        provider's built-in default rules are not modelled here.
        """
        rule = self.first_match(protocol, port, source_ip)
        return rule is not None and rule.access == Access.ALLOW


def _resolve_source(source: str, tier: TierConfig, upstream: Optional[TierConfig]) -> str:
    if source != UPSTREAM:
        return source
    if upstream is None:
        raise ValidationError(f"Tier {tier.key} has upstream-only rules but no upstream tier")
    return upstream.subnet_prefix


def build_policy(config: DeploymentConfig, tier: TierConfig) -> SecurityPolicy:
    """Resolve the rule table for `tier` against the configured subnets."""
    if tier.key not in TIER_RULES:
        raise ValidationError(f"No security rules declared for tier {tier.key}")

    upstream = config.upstream_of(tier.key)
    rules = [
        SecurityRule(
            name=entry["name"],
            priority=entry["priority"],
            source_prefix=_resolve_source(entry["source"], tier, upstream),
            destination_port=entry["port"],
            protocol=Protocol(entry["protocol"]),
            access=Access(entry["access"]),
            description=entry["description"],
        )
        for entry in TIER_RULES[tier.key]
    ]
    return SecurityPolicy(name=tier.nsg_name, tier=tier.key, rules=rules)


def build_tier_policies(config: DeploymentConfig) -> Dict[str, SecurityPolicy]:
    """Policies for every configured tier, keyed by tier, in tier order."""
    return {tier.key: build_policy(config, tier) for tier in config.tiers}


def apply_policy(cli: AzureCLI, config: DeploymentConfig, policy: SecurityPolicy) -> None:
    """Create the NSG, then each of its rules in declaration order."""
    cli.run(
        "network", "nsg", "create",
        "--resource-group", config.resource_group,
        "--name", policy.name,
        "--location", config.location,
    )
    METRICS["resources_created"].labels(resource_type="network_security_group").inc()

    for rule in policy.rules:
        cli.run(
            "network", "nsg", "rule", "create",
            "--resource-group", config.resource_group,
            "--nsg-name", policy.name,
            *rule.to_cli_args(),
        )
        METRICS["resources_created"].labels(resource_type="security_rule").inc()

    logger.info(f"{config.tier(policy.tier).display_name} NSG created with rules")
