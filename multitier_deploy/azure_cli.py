"""
Azure CLI runner.

Every provider call goes through `AzureCLI.run`, which shells out to `az`
and returns a `CommandResult`. Unguarded calls (the default) raise
`AzureCLIError` on a non-zero exit status so the deployment stops at the
first failed command. Guarded calls pass `check=False` and inspect the
result themselves.
"""

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import AzureCLIError
from .metrics import METRICS

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one `az` invocation."""

    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def text(self) -> str:
        return self.stdout.strip()


def command_label(args) -> str:
    """`network nsg rule create --name x` -> `network nsg rule create`."""
    words = []
    for arg in args:
        arg = str(arg)
        if arg.startswith("-"):
            break
        words.append(arg)
    return " ".join(words)


@dataclass
class AzureCLI:
    """Thin wrapper around the `az` binary."""

    binary: str = "az"
    dry_run: bool = False
    history: List[List[str]] = field(default_factory=list)

    def is_installed(self) -> bool:
        return shutil.which(self.binary) is not None

    def run(self, *args, check: bool = True, timeout: Optional[float] = None) -> CommandResult:
        argv = [self.binary] + [str(a) for a in args]
        self.history.append(argv)

        if self.dry_run:
            print(f"  $ {shlex.join(argv)}")
            result = CommandResult(args=argv, returncode=0)
        else:
            result = self._execute(argv, timeout)

        METRICS["cli_commands"].labels(
            command=command_label(args), status="ok" if result.ok else "failed"
        ).inc()

        if check and not result.ok:
            raise AzureCLIError(argv, result.returncode, result.stderr)
        return result

    def query(self, *args, query: str) -> str:
        """Run a command with a JMESPath query and return the tsv output."""
        return self.run(*args, "--query", query, "-o", "tsv").text

    def _execute(self, argv: List[str], timeout: Optional[float]) -> CommandResult:
        logger.debug(f"Running: {shlex.join(argv)}")
        completed = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout
        )
        return CommandResult(
            args=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
