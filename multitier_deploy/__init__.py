"""
Multi-tier Azure network deployment.

Provisions a web/app/db topology (VNet, subnets, NSGs, VMs) through the
Azure CLI and reports connection details for the resulting machines.
"""

__version__ = "1.0.0"
