"""
Deployment diagnostics.

Collects what happened during a run (completed steps, warnings, errors with
their context) and writes it out as `deployment_report.json` so a failed or
partial deployment can be inspected after the console output is gone.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

REPORT_FILENAME = "deployment_report.json"


class DeploymentDiagnostics:
    """Run-scoped record of deployment events."""

    def __init__(self):
        self.start_time = datetime.now()
        self.steps: List[Dict[str, Any]] = []
        self.errors: List[Dict[str, Any]] = []
        self.warnings: List[Dict[str, Any]] = []

    def log_step(self, step: str, context: Optional[Dict[str, Any]] = None):
        self.steps.append({
            'timestamp': datetime.now().isoformat(),
            'step': step,
            'context': context or {}
        })

    def log_error(self, error_msg: str, context: Optional[Dict[str, Any]] = None):
        """Record an error; the console line is emitted by the caller."""
        self.errors.append({
            'timestamp': datetime.now().isoformat(),
            'error': error_msg,
            'context': context or {}
        })
        if context:
            logger.debug(f"Context: {json.dumps(context, indent=2, default=str)}")

    def log_warning(self, warning_msg: str, context: Optional[Dict[str, Any]] = None):
        self.warnings.append({
            'timestamp': datetime.now().isoformat(),
            'warning': warning_msg,
            'context': context or {}
        })

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def generate_report(self, output_dir: Path) -> Dict[str, Any]:
        """Write the JSON report into `output_dir` and return its content."""
        report = {
            'start_time': self.start_time.isoformat(),
            'end_time': datetime.now().isoformat(),
            'succeeded': self.succeeded,
            'steps': self.steps,
            'errors': self.errors,
            'warnings': self.warnings,
            'total_errors': len(self.errors),
            'total_warnings': len(self.warnings)
        }

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        report_path = output_dir / REPORT_FILENAME
        with open(report_path, 'w') as f:
            json.dump(report, f, indent=2, default=str)

        logger.debug(f"Diagnostic report saved to: {report_path}")
        return report
