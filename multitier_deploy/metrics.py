# File: metrics.py

from prometheus_client import REGISTRY, Counter, Histogram, write_to_textfile

METRICS = {
    "cli_commands": Counter(
        "multitier_az_commands_total",
        "Azure CLI invocations issued by the deployment",
        ["command", "status"],
    ),
    "resources_created": Counter(
        "multitier_resources_created_total",
        "Resources created during the deployment",
        ["resource_type"],
    ),
    "vm_wait_duration": Histogram(
        "multitier_vm_wait_duration_seconds",
        "Time spent waiting for a VM to finish provisioning",
        buckets=(30, 60, 120, 180, 300, 450, 600, 900),
    ),
    "vm_wait_results": Counter(
        "multitier_vm_wait_results_total",
        "Outcome of VM provisioning waits",
        ["tier", "outcome"],
    ),
}


def export_metrics(path) -> None:
    """Write the current metric values in the Prometheus textfile format."""
    write_to_textfile(str(path), REGISTRY)
