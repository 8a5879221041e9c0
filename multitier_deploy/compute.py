"""
Virtual machine provisioning.

Create requests are issued with `--no-wait` for every tier so the provider
builds the machines in the background, then each machine is waited on in
turn with a bounded timeout. Waits are guarded: a failed or timed-out wait is
recorded and the remaining machines are still checked, so each status is
reported on its own.
"""

import logging
import subprocess
import time
from dataclasses import dataclass
from typing import List

from .azure_cli import AzureCLI
from .config import DeploymentConfig, TierConfig
from .metrics import METRICS
from .resource_group import format_tags

logger = logging.getLogger(__name__)

# Extra time given to the local process on top of the CLI's own timeout.
WAIT_GRACE_SECONDS = 60


@dataclass
class VMWaitResult:
    """Outcome of waiting for one VM."""
    tier: str
    vm_name: str
    success: bool
    duration_s: float
    message: str


class ComputeProvisioner:
    """Creates the tier VMs and waits for them to come up."""

    def __init__(self, cli: AzureCLI, config: DeploymentConfig):
        self.cli = cli
        self.config = config

    def create_vm(self, tier: TierConfig) -> None:
        """Request creation of the tier's VM and return immediately."""
        config = self.config
        logger.info(f"Creating VM: {tier.vm_name} in {tier.subnet_name}...")

        tags = {"Tier": tier.tag}
        tags.update(config.vm_tags)

        self.cli.run(
            "vm", "create",
            "--resource-group", config.resource_group,
            "--name", tier.vm_name,
            "--location", config.location,
            "--vnet-name", config.vnet_name,
            "--subnet", tier.subnet_name,
            "--image", config.vm_image,
            "--size", config.vm_size,
            "--admin-username", config.admin_username,
            "--ssh-key-values", f"@{config.public_key_path}",
            "--public-ip-address", f"{tier.vm_name}-pip",
            "--public-ip-sku", "Standard",
            "--tags", *format_tags(tags),
            "--no-wait",
        )
        METRICS["resources_created"].labels(resource_type="virtual_machine").inc()
        logger.info(f"VM creation initiated: {tier.vm_name}")

    def create_all(self) -> None:
        for tier in self.config.tiers:
            self.create_vm(tier)

    def wait_for(self, tier: TierConfig) -> VMWaitResult:
        """Block until the VM exists or the timeout expires. Never raises on failure."""
        timeout = self.config.wait_timeout
        start = time.monotonic()
        try:
            result = self.cli.run(
                "vm", "wait",
                "--resource-group", self.config.resource_group,
                "--name", tier.vm_name,
                "--created",
                "--timeout", timeout,
                check=False,
                timeout=timeout + WAIT_GRACE_SECONDS,
            )
            success = result.ok
            detail = result.stderr.strip()
        except subprocess.TimeoutExpired:
            success = False
            detail = f"no answer from az after {timeout + WAIT_GRACE_SECONDS}s"
        duration = time.monotonic() - start

        METRICS["vm_wait_duration"].observe(duration)
        METRICS["vm_wait_results"].labels(tier=tier.key, outcome="created" if success else "failed").inc()

        if success:
            logger.info(f"✓ {tier.display_name} VM created successfully")
            message = "created"
        else:
            logger.error(f"✗ {tier.display_name} VM creation failed or timed out")
            message = detail or "creation failed or timed out"

        return VMWaitResult(
            tier=tier.key,
            vm_name=tier.vm_name,
            success=success,
            duration_s=duration,
            message=message,
        )

    def wait_all(self) -> List[VMWaitResult]:
        logger.info("Waiting for all VMs to be created (this may take 5-10 minutes)...")
        results = [self.wait_for(tier) for tier in self.config.tiers]

        if all(r.success for r in results):
            logger.info("All VMs created successfully")
        else:
            failed = [r.vm_name for r in results if not r.success]
            logger.error(f"{len(failed)} VM(s) not ready: {', '.join(failed)}")
        return results
