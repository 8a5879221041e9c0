"""
Post-deployment reporting.

Addresses are always queried fresh from the provider; nothing from earlier
steps is cached.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from ..azure_cli import AzureCLI
from ..compute import VMWaitResult
from ..config import DeploymentConfig, TierConfig
from ..logging_config import GREEN, YELLOW, colorize, print_section

logger = logging.getLogger(__name__)

MISSING = "n/a"


@dataclass
class VMInfo:
    """Connection details for one deployed machine."""
    tier: TierConfig
    public_ip: str
    private_ip: str
    admin_username: str
    key_path: Path

    @property
    def ssh_command(self) -> str:
        return f"ssh -i {self.key_path} {self.admin_username}@{self.public_ip or MISSING}"


def query_vm_addresses(cli: AzureCLI, config: DeploymentConfig, tier: TierConfig) -> VMInfo:
    base = ("vm", "show", "-d", "-g", config.resource_group, "-n", tier.vm_name)
    public_ip = cli.query(*base, query="publicIps")
    private_ip = cli.query(*base, query="privateIps")
    return VMInfo(
        tier=tier,
        public_ip=public_ip,
        private_ip=private_ip,
        admin_username=config.admin_username,
        key_path=config.ssh_key_path,
    )


def collect_vm_info(cli: AzureCLI, config: DeploymentConfig, tiers: Iterable[TierConfig]) -> List[VMInfo]:
    return [query_vm_addresses(cli, config, tier) for tier in tiers]


def format_vm_block(info: VMInfo) -> str:
    lines = [
        colorize(f"{info.tier.display_name} Tier VM:", GREEN),
        f"  Name: {info.tier.vm_name}",
        f"  Public IP: {info.public_ip or MISSING}",
        f"  Private IP: {info.private_ip or MISSING}",
        f"  SSH: {info.ssh_command}",
    ]
    return "\n".join(lines)


def ready_tiers(config: DeploymentConfig, wait_results: List[VMWaitResult]) -> List[TierConfig]:
    """Tiers whose VM finished provisioning, in tier order."""
    ready = {r.tier for r in wait_results if r.success}
    return [t for t in config.tiers if t.key in ready]


def report_vms(cli: AzureCLI, config: DeploymentConfig, wait_results: List[VMWaitResult]) -> List[VMInfo]:
    """Print one block per ready VM; failed VMs are skipped with a warning."""
    print_section("VM Information")

    for result in wait_results:
        if not result.success:
            logger.warning(f"Skipping {result.vm_name}: {result.message}")

    infos = collect_vm_info(cli, config, ready_tiers(config, wait_results))
    for info in infos:
        print()
        print(format_vm_block(info))
    return infos


def print_summary(config: DeploymentConfig, infos: List[VMInfo], artifacts: List[Path]) -> None:
    """Closing summary with the created resources and next steps."""
    print_section("Deployment Complete!")
    vm_count = len(infos)
    print(colorize(f"✓ Resource Group: {config.resource_group}", GREEN))
    print(colorize(f"✓ VNet: {config.vnet_name} with {len(config.tiers)} subnets", GREEN))
    print(colorize(f"✓ NSGs: {', '.join(t.display_name for t in config.tiers)} tiers configured", GREEN))
    print(colorize(f"✓ VMs: {vm_count} of {len(config.tiers)} Linux VMs provisioned", GREEN))
    for path in artifacts:
        print(colorize(f"✓ Generated: {path.name}", GREEN))

    print()
    print(colorize("Next Steps:", YELLOW))
    print("1. Review the DEPLOYMENT_GUIDE.md for detailed information")
    print("2. SSH into each VM using the commands above")
    print("3. Run connectivity_tests.sh to verify NSG rules")

    print()
    print(colorize("Quick Test Command:", YELLOW))
    print(f"ssh -i {config.ssh_key_path} {config.admin_username}@<VM_IP>")
