import subprocess
from pathlib import Path

import pytest
import yaml

from multitier_deploy.azure_cli import AzureCLI, CommandResult, command_label
from multitier_deploy.config import DeploymentConfig

TIER_INDEX = {"vm-web-01": 1, "vm-app-01": 2, "vm-db-01": 3}


def fake_vm_show(argv):
    """Answer `az vm show -d` address queries with predictable IPs."""
    name = argv[argv.index("-n") + 1]
    query = argv[argv.index("--query") + 1]
    n = TIER_INDEX.get(name, 9)
    address = f"20.19.0.{n}" if query == "publicIps" else f"10.0.{n}.4"
    return CommandResult(args=argv, returncode=0, stdout=address + "\n")


class RecordingAzureCLI(AzureCLI):
    """
    Stand-in for the provider.

    Records every invocation and answers from `responses`, keyed by command
    label ("group exists", "vm wait", ...). A response may be a string
    (stdout, exit 0), an int (exit status), or a callable taking argv.
    """

    def __init__(self, responses=None, installed=True, failing_vms=()):
        super().__init__(binary="az")
        self.installed = installed
        self.failing_vms = set(failing_vms)
        self.responses = {
            "version": "2.61.0",
            "account show": "Pay-As-You-Go",
            "group exists": "false",
            "vm show": fake_vm_show,
            "vm wait": self._vm_wait,
        }
        self.responses.update(responses or {})

    def is_installed(self) -> bool:
        return self.installed

    def _vm_wait(self, argv):
        name = argv[argv.index("--name") + 1]
        if name in self.failing_vms:
            return CommandResult(args=argv, returncode=1, stderr="ERROR: Wait operation timed-out after 600 seconds")
        return CommandResult(args=argv, returncode=0)

    def _execute(self, argv, timeout):
        response = self.responses.get(command_label(argv[1:]), "")
        if callable(response):
            return response(argv)
        if isinstance(response, int):
            return CommandResult(args=argv, returncode=response, stderr="ERROR: simulated failure")
        return CommandResult(args=argv, returncode=0, stdout=response + "\n")

    def calls(self, label):
        return [argv for argv in self.history if command_label(argv[1:]) == label]

    def labels(self):
        return [command_label(argv[1:]) for argv in self.history]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "MULTITIER_RESOURCE_GROUP",
        "MULTITIER_LOCATION",
        "MULTITIER_VM_SIZE",
        "MULTITIER_ADMIN_USERNAME",
        "MULTITIER_SSH_KEY_PATH",
        "MULTITIER_WAIT_TIMEOUT",
        "NO_COLOR",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path):
    return DeploymentConfig(
        ssh_key_path=tmp_path / ".ssh" / "azure_multitier_key",
        output_dir=tmp_path / "out",
    )


@pytest.fixture
def cli():
    return RecordingAzureCLI()


@pytest.fixture
def config_file(tmp_path):
    """YAML config pointing at a temporary key pair that already exists."""
    key_path = tmp_path / ".ssh" / "azure_multitier_key"
    key_path.parent.mkdir(parents=True)
    key_path.write_text("PRIVATE KEY")
    Path(str(key_path) + ".pub").write_text("ssh-rsa AAAA test")

    path = tmp_path / "deploy.yaml"
    with open(path, "w") as f:
        yaml.safe_dump({"ssh_key_path": str(key_path), "output_dir": str(tmp_path / "out")}, f)
    return path


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=["az"], returncode=returncode, stdout=stdout, stderr=stderr)
