"""Resource group provisioning."""

import logging
from typing import Dict

from .azure_cli import AzureCLI
from .metrics import METRICS

logger = logging.getLogger(__name__)


def format_tags(tags: Dict[str, str]):
    return [f"{key}={value}" for key, value in tags.items()]


def ensure_resource_group(cli: AzureCLI, name: str, location: str, tags: Dict[str, str]) -> bool:
    """
    Create the resource group unless it already exists.

    An existing group is left untouched and only produces a warning, so
    re-running the deployment does not fail at this step. The group is never
    deleted by this tool. Returns True when the group was created.
    """
    exists = cli.run("group", "exists", "-n", name).text.lower()
    if exists == "true":
        logger.warning(f"Resource group {name} already exists")
        return False

    cli.run(
        "group", "create",
        "--name", name,
        "--location", location,
        "--tags", *format_tags(tags),
    )
    METRICS["resources_created"].labels(resource_type="resource_group").inc()
    logger.info(f"Resource group created: {name}")
    return True
