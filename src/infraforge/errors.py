"""
Error taxonomy for claim reconciliation.

The reconciler decides what happens to a claim's phase purely from the
class of error a step raises:

- NotFoundError: the object does not exist; callers treat it as "needs creation"
- ConflictError: optimistic-concurrency revision mismatch; retried locally
- TransientError: network or push race; phase unchanged, timed requeue
- PermanentError: malformed spec; phase becomes Failed
- PartialInstallError: some children failed while siblings succeeded
"""

from __future__ import annotations

from typing import List, Optional


class InfraforgeError(Exception):
    """Base class for all operator errors."""


class NotFoundError(InfraforgeError):
    """Requested object does not exist."""


class ConflictError(InfraforgeError):
    """Write rejected because the object changed since it was read."""


class TransientError(InfraforgeError):
    """Temporary failure expected to clear on a later attempt."""


class PublishError(TransientError):
    """GitOps publish failed."""

    def __init__(self, message: str, repo_url: Optional[str] = None):
        super().__init__(message)
        self.repo_url = repo_url


class CloneError(PublishError):
    """Cloning the target branch failed."""


class CommitError(PublishError):
    """Staging or committing generated files failed."""


class PushError(PublishError):
    """Pushing the commit failed (including non-fast-forward rejection)."""


class PermanentError(InfraforgeError):
    """Failure that retrying the same spec will not fix."""


class UnsupportedComponentError(PermanentError):
    """Component type has no known chart."""

    def __init__(self, component_type: str):
        super().__init__(f"unsupported component type: {component_type}")
        self.component_type = component_type


class PartialInstallError(InfraforgeError):
    """One or more children failed to project while others succeeded."""

    def __init__(self, failed: List[str], total: int):
        super().__init__(
            f"{len(failed)} of {total} children failed to project: {', '.join(failed)}"
        )
        self.failed = failed
        self.total = total


class InstallError(InfraforgeError):
    """Infrastructure operator installation failed."""


class ClusterError(InfraforgeError):
    """Unclassified cluster API failure."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class GitHostError(InfraforgeError):
    """Git hosting API returned an unexpected response."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ChartSourceError(InfraforgeError):
    """Chart files could not be loaded from the configured source."""


class ReconcileError(InfraforgeError):
    """A reconciliation pass failed and should be retried with backoff."""
