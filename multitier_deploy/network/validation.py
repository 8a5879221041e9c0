"""
Pre-deployment validation.

Static checks on the declared topology and rule tables, run before any
provider call:
- Subnet prefixes are disjoint and inside the VNet address space
- Rule priorities are unique, ascending and in the provider's range
- Deny-all rules sit at the lowest precedence
- Downstream tiers only admit their upstream tier's CIDR
- Names referenced across resources are consistent
"""

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from itertools import combinations
from typing import Any, Dict, List

from ..config import DeploymentConfig
from .security_groups import Access, SecurityPolicy, build_tier_policies

MIN_PRIORITY = 100
MAX_PRIORITY = 4096
# TEST-NET-3 address standing in for arbitrary Internet traffic.
PUBLIC_SAMPLE_HOST = "203.0.113.10"


def _sample_host(prefix: str) -> str:
    network = ipaddress.ip_network(prefix)
    return str(next(network.hosts(), network.network_address))


class ValidationSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class ValidationResult:
    """Result of a single validation check."""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationReport:
    """Full validation report."""
    passed: bool
    errors: int
    warnings: int
    results: List[ValidationResult]

    def failures(self) -> List[ValidationResult]:
        return [r for r in self.results if not r.passed]


class ConfigValidator:
    """Validates a deployment configuration before anything is created."""

    def __init__(self):
        self.validators = [
            self._validate_cidr_layout,
            self._validate_rule_priorities,
            self._validate_deny_all_placement,
            self._validate_upstream_sources,
            self._validate_name_consistency,
        ]

    def validate_all(self, config: DeploymentConfig) -> ValidationReport:
        """Run all validators on the configuration."""
        results = []
        try:
            policies = build_tier_policies(config)
        except Exception as e:
            results.append(ValidationResult(
                name="rule_tables",
                passed=False,
                severity=ValidationSeverity.ERROR,
                message=f"Could not resolve rule tables: {e}"
            ))
            policies = None

        for validator in self.validators:
            if policies is None and validator != self._validate_cidr_layout:
                continue
            try:
                results.append(validator(config, policies))
            except ValueError as e:
                results.append(ValidationResult(
                    name=validator.__name__.lstrip("_").replace("validate_", ""),
                    passed=False,
                    severity=ValidationSeverity.ERROR,
                    message=f"Validator exception: {e}"
                ))

        errors = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warnings = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        return ValidationReport(
            passed=errors == 0,
            errors=errors,
            warnings=warnings,
            results=results
        )

    def _validate_cidr_layout(self, config: DeploymentConfig, policies) -> ValidationResult:
        """Subnets must not overlap and must sit inside the VNet prefix."""
        vnet = ipaddress.ip_network(config.vnet_prefix)
        subnets = {t.subnet_name: ipaddress.ip_network(t.subnet_prefix) for t in config.tiers}
        issues = []

        for name, net in subnets.items():
            if net.version != vnet.version or not net.subnet_of(vnet):
                issues.append(f"{name} ({net}) is outside {config.vnet_name} ({vnet})")

        for (name_a, net_a), (name_b, net_b) in combinations(subnets.items(), 2):
            if net_a.overlaps(net_b):
                issues.append(f"{name_a} ({net_a}) overlaps {name_b} ({net_b})")

        return ValidationResult(
            name="cidr_layout",
            passed=len(issues) == 0,
            severity=ValidationSeverity.ERROR if issues else ValidationSeverity.INFO,
            message="Subnets are disjoint and inside the VNet" if not issues else f"Issues: {issues}",
            details={"subnet_count": len(subnets)}
        )

    def _validate_rule_priorities(self, config: DeploymentConfig, policies: Dict[str, SecurityPolicy]) -> ValidationResult:
        """Priorities are unique, strictly ascending in declaration order, in range."""
        issues = []
        for policy in policies.values():
            priorities = [r.priority for r in policy.rules]
            for earlier, later in zip(priorities, priorities[1:]):
                if later <= earlier:
                    issues.append(f"{policy.name}: priority {later} follows {earlier}")
            for rule in policy.rules:
                if not MIN_PRIORITY <= rule.priority <= MAX_PRIORITY:
                    issues.append(f"{policy.name}/{rule.name}: priority {rule.priority} out of range")

        return ValidationResult(
            name="rule_priorities",
            passed=len(issues) == 0,
            severity=ValidationSeverity.ERROR if issues else ValidationSeverity.INFO,
            message="Rule priorities are unique and ascending" if not issues else f"Issues: {issues}",
            details={"rule_count": sum(len(p.rules) for p in policies.values())}
        )

    def _validate_deny_all_placement(self, config: DeploymentConfig, policies: Dict[str, SecurityPolicy]) -> ValidationResult:
        """A deny-all must carry the highest priority number in its policy."""
        issues = []
        for policy in policies.values():
            if not policy.rules:
                continue
            highest = max(r.priority for r in policy.rules)
            for rule in policy.rules:
                if rule.is_deny_all and rule.priority != highest:
                    issues.append(f"{policy.name}/{rule.name} shadows rules at priority above {rule.priority}")

        return ValidationResult(
            name="deny_all_placement",
            passed=len(issues) == 0,
            severity=ValidationSeverity.ERROR if issues else ValidationSeverity.INFO,
            message="Deny-all rules are at lowest precedence" if not issues else f"Issues: {issues}"
        )

    def _validate_upstream_sources(self, config: DeploymentConfig, policies: Dict[str, SecurityPolicy]) -> ValidationResult:
        """Downstream tiers may only allow traffic from their upstream subnet."""
        issues = []
        for tier in config.tiers:
            upstream = config.upstream_of(tier.key)
            if upstream is None:
                continue
            for rule in policies[tier.key].rules:
                if rule.access != Access.ALLOW:
                    continue
                if rule.source_prefix != upstream.subnet_prefix:
                    issues.append(
                        f"{tier.nsg_name}/{rule.name} allows {rule.source_prefix}, "
                        f"expected {upstream.subnet_prefix}"
                    )
            if not any(r.is_deny_all for r in policies[tier.key].rules):
                issues.append(f"{tier.nsg_name} has no explicit deny-all rule")

            # Evaluate the policy against a host from every other network.
            outsiders = [(PUBLIC_SAMPLE_HOST, "Internet")] + [
                (_sample_host(other.subnet_prefix), other.subnet_name)
                for other in config.tiers
                if other.key not in (tier.key, upstream.key)
            ]
            for host, origin in outsiders:
                for rule in policies[tier.key].rules:
                    if rule.access != Access.ALLOW:
                        continue
                    port = rule.destination_port if isinstance(rule.destination_port, int) else None
                    if policies[tier.key].allows(rule.protocol, port, host):
                        issues.append(f"{tier.nsg_name} admits {host} ({origin}) via {rule.name}")

        return ValidationResult(
            name="upstream_sources",
            passed=len(issues) == 0,
            severity=ValidationSeverity.ERROR if issues else ValidationSeverity.INFO,
            message="Each tier only admits its upstream tier" if not issues else f"Issues: {issues}"
        )

    def _validate_name_consistency(self, config: DeploymentConfig, policies: Dict[str, SecurityPolicy]) -> ValidationResult:
        """Subnet, NSG and VM names are unique so later references resolve."""
        issues = []
        for attr in ("subnet_name", "nsg_name", "vm_name"):
            names = [getattr(t, attr) for t in config.tiers]
            duplicates = sorted({n for n in names if names.count(n) > 1})
            if duplicates:
                issues.append(f"duplicate {attr}: {duplicates}")

        for tier in config.tiers:
            if policies[tier.key].name != tier.nsg_name:
                issues.append(f"tier {tier.key} binds {policies[tier.key].name}, expected {tier.nsg_name}")
            if any(rule.source_prefix == "" or rule.destination_port == "" for rule in policies[tier.key].rules):
                issues.append(f"{tier.nsg_name} has rules with empty fields")

        return ValidationResult(
            name="name_consistency",
            passed=len(issues) == 0,
            severity=ValidationSeverity.ERROR if issues else ValidationSeverity.INFO,
            message="Resource names are consistent" if not issues else f"Issues: {issues}"
        )


def validate_config(config: DeploymentConfig) -> ValidationReport:
    validator = ConfigValidator()
    return validator.validate_all(config)
