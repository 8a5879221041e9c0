"""Exceptions raised by the deployment steps."""

from typing import List, Optional


class DeploymentError(Exception):
    """Base class for failures that abort a deployment run."""


class PreflightError(DeploymentError):
    """Required tooling or an authenticated session is missing."""


class ValidationError(DeploymentError):
    """The declared topology or rule tables are inconsistent."""


class AzureCLIError(DeploymentError):
    """An `az` invocation exited with a non-zero status."""

    def __init__(self, args: List[str], returncode: int, stderr: Optional[str] = None):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        message = f"Command failed ({returncode}): {' '.join(self.args_list)}"
        if self.stderr:
            message += f"\n{self.stderr}"
        super().__init__(message)
