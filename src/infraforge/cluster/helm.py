"""
Helm release removal.

Component Applications install Helm releases through ArgoCD; when a
component is removed the release is uninstalled directly so nothing is
left behind if ArgoCD pruning lags.
"""

from __future__ import annotations

import logging
import subprocess

from infraforge.contracts.timeouts import HELM_COMMAND_TIMEOUT_S
from infraforge.errors import TransientError

logger = logging.getLogger(__name__)


class HelmClient:
    """Thin wrapper over the helm CLI."""

    def __init__(self, helm: str = "helm", timeout: int = HELM_COMMAND_TIMEOUT_S):
        self.helm = helm
        self.timeout = timeout

    def uninstall(self, release: str, namespace: str) -> bool:
        """
        Uninstall a release.

        Returns:
            True if a release was removed, False if it did not exist

        Raises:
            TransientError: helm failed for any other reason
        """
        cmd = [self.helm, "uninstall", release, "--namespace", namespace]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TransientError(f"helm uninstall {release} failed: {e}") from e

        if result.returncode == 0:
            logger.info(f"Uninstalled Helm release {release} from {namespace}")
            return True

        output = (result.stderr or result.stdout).strip()
        if "not found" in output.lower():
            logger.debug(f"Helm release {release} not found in {namespace}")
            return False
        raise TransientError(f"helm uninstall {release} failed: {output}")
