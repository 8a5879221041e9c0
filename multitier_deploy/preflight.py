"""
Pre-deployment checks.

Any failure here is terminal for the run: there is nothing useful to do
without the CLI, a logged-in session, or a key pair to hand to the VMs.
"""

import logging
import subprocess

from .azure_cli import AzureCLI
from .config import DeploymentConfig
from .errors import PreflightError

logger = logging.getLogger(__name__)

SSH_KEY_COMMENT = "azure-multitier-deployment"


def check_cli(cli: AzureCLI) -> str:
    if not cli.is_installed():
        raise PreflightError("Azure CLI is not installed. Please install it first.")
    version = cli.query("version", query='"azure-cli"')
    logger.info(f"Azure CLI found: {version}")
    return version


def check_login(cli: AzureCLI) -> str:
    if not cli.run("account", "show", check=False).ok:
        raise PreflightError("Not logged in to Azure. Please run 'az login'")
    subscription = cli.query("account", "show", query="name")
    logger.info(f"Logged in to subscription: {subscription}")
    return subscription


def generate_ssh_key(config: DeploymentConfig) -> bool:
    """
    Create the deployment key pair if it does not exist yet.

    The key has no passphrase so the VMs can be reached non-interactively.
    Returns True when a new key was generated.
    """
    key_path = config.ssh_key_path
    if key_path.exists():
        logger.info(f"Using existing SSH key: {key_path}")
        return False

    logger.info("Generating SSH key pair...")
    key_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        subprocess.run(
            ["ssh-keygen", "-t", "rsa", "-b", "4096", "-f", str(key_path), "-N", "", "-C", SSH_KEY_COMMENT],
            capture_output=True,
            text=True,
            check=True
        )
    except FileNotFoundError as e:
        raise PreflightError("ssh-keygen is not available to generate the deployment key") from e
    except subprocess.CalledProcessError as e:
        raise PreflightError(f"ssh-keygen failed: {e.stderr.strip()}") from e

    logger.info(f"SSH key generated at: {key_path}")
    return True


def run_preflight(cli: AzureCLI, config: DeploymentConfig) -> None:
    check_cli(cli)
    check_login(cli)
    generate_ssh_key(config)
