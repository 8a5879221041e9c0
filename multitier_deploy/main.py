#!/usr/bin/env python3
"""
Multi-tier Deployment - Main Entry Point

Provisions the web/app/db topology end to end:
- Configuration validation and preflight checks
- Resource group, NSGs, VNet and subnets
- NSG binding and VM creation
- Address report, connectivity test script and deployment guide

Running without flags deploys the built-in configuration. Any command that
fails stops the run; VM waits are checked individually and reported.
"""

import argparse
import logging
import sys
from dataclasses import asdict, replace
from pathlib import Path
from typing import List, Optional

import yaml

from .azure_cli import AzureCLI
from .compute import ComputeProvisioner
from .config import DeploymentConfig, load_config
from .diagnostics import DeploymentDiagnostics
from .errors import DeploymentError, ValidationError
from .logging_config import print_section, setup_logging
from .metrics import export_metrics
from .network.security_groups import apply_policy, build_tier_policies
from .network.topology import attach_security_groups, create_vnet_and_subnets
from .network.validation import validate_config
from .preflight import run_preflight
from .reporting.artifacts import write_connectivity_script, write_deployment_guide
from .reporting.reporter import print_summary, report_vms
from .resource_group import ensure_resource_group

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Deploy a secure three-tier network to Azure")
    parser.add_argument("--config", type=Path, help="YAML file overriding the built-in configuration")
    parser.add_argument("--output-dir", type=Path, help="Directory for the generated files")
    parser.add_argument("--dry-run", action="store_true", help="Print the az commands instead of running them")
    parser.add_argument("--metrics-file", type=Path, help="Write Prometheus metrics to this file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Console log level",
    )
    return parser.parse_args(argv)


def print_banner():
    print("=" * 60)
    print("  Azure Multi-Tier Architecture Deployment")
    print("  Secure 3-Tier Setup with NSG Rules")
    print("=" * 60)


def deploy(cli: AzureCLI, config: DeploymentConfig, diagnostics: DeploymentDiagnostics,
           skip_preflight: bool = False) -> int:
    """Run every deployment stage in order. Returns the process exit code."""
    report = validate_config(config)
    for result in report.failures():
        logger.error(f"✗ {result.name}: {result.message}")
    if not report.passed:
        raise ValidationError(f"Configuration validation failed with {report.errors} error(s)")
    diagnostics.log_step("validation", {"checks": len(report.results)})

    if skip_preflight:
        logger.warning("Dry run: skipping preflight checks")
    else:
        run_preflight(cli, config)
        diagnostics.log_step("preflight")

    print_section("Creating Resource Group")
    created = ensure_resource_group(cli, config.resource_group, config.location, config.resource_group_tags)
    if not created:
        diagnostics.log_warning(f"Resource group {config.resource_group} already exists")
    diagnostics.log_step("resource_group", {"name": config.resource_group, "created": created})

    policies = build_tier_policies(config)
    for tier in config.tiers:
        print_section(f"Creating {tier.display_name} Tier NSG")
        apply_policy(cli, config, policies[tier.key])
        diagnostics.log_step("network_security_group", {"name": tier.nsg_name, "rules": len(policies[tier.key].rules)})

    print_section("Creating Virtual Network and Subnets")
    create_vnet_and_subnets(cli, config)
    diagnostics.log_step("virtual_network", {"name": config.vnet_name, "subnets": len(config.tiers)})

    print_section("Attaching NSGs to Subnets")
    attach_security_groups(cli, config, policies)
    diagnostics.log_step("nsg_binding")

    print_section("Creating Virtual Machines")
    compute = ComputeProvisioner(cli, config)
    compute.create_all()
    wait_results = compute.wait_all()
    for result in wait_results:
        if result.success:
            diagnostics.log_step("virtual_machine", asdict(result))
        else:
            diagnostics.log_error(f"{result.vm_name} creation failed or timed out", asdict(result))

    infos = report_vms(cli, config, wait_results)
    failures = [r for r in wait_results if not r.success]
    artifacts = [
        write_connectivity_script(config, infos),
        write_deployment_guide(config, policies, infos, failures),
    ]
    diagnostics.log_step("artifacts", {"files": [str(p) for p in artifacts]})

    print_summary(config, infos, artifacts)

    if failures:
        logger.error(f"Deployment finished with {len(failures)} VM failure(s)")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)
    print_banner()

    try:
        config = load_config(args.config)
    except (DeploymentError, OSError, yaml.YAMLError, ValueError) as e:
        logger.error(f"Could not load configuration: {e}")
        return 1
    if args.output_dir:
        config = replace(config, output_dir=args.output_dir)

    cli = AzureCLI(dry_run=args.dry_run)
    diagnostics = DeploymentDiagnostics()

    try:
        exit_code = deploy(cli, config, diagnostics, skip_preflight=args.dry_run)
    except DeploymentError as e:
        logger.error(str(e))
        diagnostics.log_error(str(e), {"type": type(e).__name__})
        exit_code = 1
    except KeyboardInterrupt:
        logger.error("Interrupted; resources created so far are left in place")
        diagnostics.log_error("interrupted")
        exit_code = 130
    finally:
        diagnostics.generate_report(config.output_dir)
        if args.metrics_file:
            export_metrics(args.metrics_file)

    if exit_code == 0:
        logger.info("Script execution completed successfully!")
    return exit_code


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
