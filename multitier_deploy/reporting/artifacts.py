"""
Generated deployment artifacts.

Renders two files into the output directory:
- connectivity_tests.sh: ping/SSH probes that exercise the NSG chain
- DEPLOYMENT_GUIDE.md: topology, rule tables, machine addresses and cleanup

Values interpolated into the shell script go through the `shquote` filter so
names and addresses cannot break out of their quoting.
"""

import shlex
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List

from jinja2 import Environment

from ..compute import VMWaitResult
from ..config import DeploymentConfig
from ..network.security_groups import SecurityPolicy
from .reporter import MISSING, VMInfo

TEST_SCRIPT_NAME = "connectivity_tests.sh"
GUIDE_NAME = "DEPLOYMENT_GUIDE.md"
# SSH probes go through at most one jump host, the public edge VM.
MAX_HOPS = 1
SSH_OPTIONS = [
    "StrictHostKeyChecking=no",
    "UserKnownHostsFile=/dev/null",
    "ConnectTimeout=10",
    "LogLevel=ERROR",
]


@dataclass
class ConnectivityCheck:
    """One probe run on `source`, reached through the edge VM in `jumps` when it has no public access."""
    description: str
    source: VMInfo
    jumps: List[VMInfo]
    command: str
    expect_success: bool

    @property
    def ssh_target(self) -> str:
        return f"{self.source.admin_username}@{self.source.private_ip if self.jumps else self.source.public_ip}"

    @property
    def jump_host(self) -> str:
        hop = self.jumps[0]
        return f"{hop.admin_username}@{hop.public_ip}"

    def proxy_command(self, key_path) -> str:
        """`ProxyCommand=...` option value; ssh hands it to a shell, so its words are quoted too."""
        words = ["ssh", "-i", str(key_path)]
        for option in SSH_OPTIONS:
            words += ["-o", option]
        words += ["-W", "%h:%p", self.jump_host]
        return "ProxyCommand=" + " ".join(shlex.quote(w) for w in words)


CONNECTIVITY_TEMPLATE = """#!/bin/bash
# Connectivity tests for {{ resource_group }}
# Generated {{ generated_at }}
#
# Each tier should only be reachable from the tier directly in front of it.

KEY={{ key_path | shquote }}
SSH_OPTS=(-i "$KEY"{% for option in ssh_options %} -o {{ option }}{% endfor %})

PASSED=0
FAILED=0

run_check() {
    local description="$1" expect="$2"
    shift 2
    if "$@" > /dev/null 2>&1; then
        outcome="reachable"
    else
        outcome="blocked"
    fi
    if [ "$outcome" = "$expect" ]; then
        echo "[PASS] $description ($outcome)"
        PASSED=$((PASSED + 1))
    else
        echo "[FAIL] $description (expected $expect, got $outcome)"
        FAILED=$((FAILED + 1))
    fi
}

{% for check in checks %}
run_check {{ check.description | shquote }} {{ "reachable" if check.expect_success else "blocked" }} \\
    ssh "${SSH_OPTS[@]}"{% if check.jumps %} -o {{ check.proxy_command(key_path) | shquote }}{% endif %} {{ check.ssh_target | shquote }} {{ check.command | shquote }}
{% endfor %}
{% for name in skipped %}
echo {{ ("[SKIP] " ~ name ~ " is not available") | shquote }}
{% endfor %}

echo
echo "Passed: $PASSED  Failed: $FAILED"
[ "$FAILED" -eq 0 ]
"""

GUIDE_TEMPLATE = """# Multi-Tier Deployment Guide

Generated {{ generated_at }}.

## Overview

| Setting | Value |
|---------|-------|
| Resource group | `{{ config.resource_group }}` |
| Location | `{{ config.location }}` |
| Virtual network | `{{ config.vnet_name }}` ({{ config.vnet_prefix }}) |
| VM size | `{{ config.vm_size }}` |
| Image | `{{ config.vm_image }}` |
| Admin user | `{{ config.admin_username }}` |

```
Internet
   |
{% for tier in config.tiers %}
[{{ tier.subnet_name }} {{ tier.subnet_prefix }}] {{ tier.vm_name }} ({{ tier.nsg_name }})
{% if not loop.last %}
   |
{% endif %}
{% endfor %}
```

## Subnets

| Tier | Subnet | Prefix | NSG |
|------|--------|--------|-----|
{% for tier in config.tiers %}
| {{ tier.display_name }} | `{{ tier.subnet_name }}` | {{ tier.subnet_prefix }} | `{{ tier.nsg_name }}` |
{% endfor %}

## Network Security Rules
{% for tier in config.tiers %}
{% set policy = policies[tier.key] %}

### {{ policy.name }} ({{ tier.display_name }} tier)

| Priority | Name | Source | Port | Protocol | Access |
|----------|------|--------|------|----------|--------|
{% for rule in policy.rules %}
| {{ rule.priority }} | {{ rule.name }} | {{ rule.source_prefix }} | {{ rule.destination_port }} | {{ rule.protocol.value }} | {{ rule.access.value }} |
{% endfor %}
{% endfor %}

## Virtual Machines

| Tier | Name | Public IP | Private IP | SSH |
|------|------|-----------|------------|-----|
{% for vm in vms %}
| {{ vm.tier.display_name }} | `{{ vm.tier.vm_name }}` | {{ vm.public_ip or missing }} | {{ vm.private_ip or missing }} | `{{ vm.ssh_command }}` |
{% endfor %}
{% if failures %}

The following machines did not finish provisioning and are not listed above:

{% for failure in failures %}
- `{{ failure.vm_name }}`: {{ failure.message }}
{% endfor %}
{% endif %}

## Testing

Run `./{{ test_script }}` from this directory. It connects to the web tier over
its public IP and hops inward with SSH to verify that:

{% for tier in config.tiers %}
{% if not loop.first %}
- {{ tier.display_name }} is reachable from {{ config.tiers[loop.index0 - 1].display_name }}
{% endif %}
{% endfor %}
- tiers are not reachable from further than one hop upstream

## Cleanup

```
az group delete --name {{ config.resource_group }} --yes --no-wait
```
"""


def _shquote(value) -> str:
    return shlex.quote(str(value))


def build_environment() -> Environment:
    env = Environment(trim_blocks=True, lstrip_blocks=True, keep_trailing_newline=True)
    env.filters["shquote"] = _shquote
    return env


def build_connectivity_checks(config: DeploymentConfig, vms: List[VMInfo]) -> List[ConnectivityCheck]:
    """
    Probes for the tier chain.

    For each tier after the first: its upstream neighbour must reach it, and
    the tier two hops upstream must not. Only VMs present in `vms` are used.
    """
    by_tier: Dict[str, VMInfo] = {vm.tier.key: vm for vm in vms}
    chain = [by_tier.get(tier.key) for tier in config.tiers]
    checks: List[ConnectivityCheck] = []

    def reach(index: int):
        """Source VM at `index` plus the hops needed to get there, or None."""
        path = chain[:index + 1]
        if len(path) > MAX_HOPS + 1 or any(vm is None for vm in path):
            return None
        return path[-1], path[:-1]

    for index in range(1, len(chain)):
        target = chain[index]
        if target is None:
            continue

        upstream = reach(index - 1)
        if upstream is not None:
            source, jumps = upstream
            checks.append(ConnectivityCheck(
                description=f"ping {target.tier.display_name} from {source.tier.display_name}",
                source=source,
                jumps=jumps,
                command=f"ping -c 3 -W 2 {target.private_ip}",
                expect_success=True,
            ))
            checks.append(ConnectivityCheck(
                description=f"ssh port on {target.tier.display_name} from {source.tier.display_name}",
                source=source,
                jumps=jumps,
                command=f"nc -z -w 5 {target.private_ip} 22",
                expect_success=True,
            ))

        if index >= 2:
            skipped_hop = reach(index - 2)
            if skipped_hop is not None:
                source, jumps = skipped_hop
                checks.append(ConnectivityCheck(
                    description=f"ping {target.tier.display_name} from {source.tier.display_name}",
                    source=source,
                    jumps=jumps,
                    command=f"ping -c 3 -W 2 {target.private_ip}",
                    expect_success=False,
                ))

    return checks


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def render_connectivity_script(config: DeploymentConfig, vms: List[VMInfo]) -> str:
    present = {vm.tier.key for vm in vms}
    template = build_environment().from_string(CONNECTIVITY_TEMPLATE)
    return template.render(
        resource_group=config.resource_group,
        generated_at=_timestamp(),
        key_path=config.ssh_key_path,
        ssh_options=SSH_OPTIONS,
        checks=build_connectivity_checks(config, vms),
        skipped=[t.vm_name for t in config.tiers if t.key not in present],
    )


def render_deployment_guide(
    config: DeploymentConfig,
    policies: Dict[str, SecurityPolicy],
    vms: List[VMInfo],
    failures: List[VMWaitResult],
) -> str:
    template = build_environment().from_string(GUIDE_TEMPLATE)
    return template.render(
        config=config,
        policies=policies,
        vms=vms,
        failures=failures,
        missing=MISSING,
        test_script=TEST_SCRIPT_NAME,
        generated_at=_timestamp(),
    )


def write_connectivity_script(config: DeploymentConfig, vms: List[VMInfo]) -> Path:
    config.output_dir.mkdir(parents=True, exist_ok=True)
    path = config.output_dir / TEST_SCRIPT_NAME
    with open(path, "w") as f:
        f.write(render_connectivity_script(config, vms))
    path.chmod(0o755)
    return path


def write_deployment_guide(
    config: DeploymentConfig,
    policies: Dict[str, SecurityPolicy],
    vms: List[VMInfo],
    failures: List[VMWaitResult],
) -> Path:
    config.output_dir.mkdir(parents=True, exist_ok=True)
    path = config.output_dir / GUIDE_NAME
    with open(path, "w") as f:
        f.write(render_deployment_guide(config, policies, vms, failures))
    return path
