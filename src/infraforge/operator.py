"""
kopf handlers for the claim kinds.

Run with:
    kopf run -m infraforge.operator
or through `infraforge controller`.

kopf serializes handlers per object, so passes for the same claim never
overlap while different claims progress in kopf's executor. Every event
(create, update, resume, delete, periodic resync) runs the same
idempotent reconciliation pass; its Result is translated back to kopf:

- requeue      -> kopf.TemporaryError(delay=requeue_after)
- ReconcileError -> kopf.TemporaryError(delay=RECONCILE_ERROR_BACKOFF_S)
- done         -> a summary dict stored by kopf
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import kopf

from infraforge.cluster.api import KubernetesClusterAPI
from infraforge.cluster.helm import HelmClient
from infraforge.config import get_config
from infraforge.contracts.k8s import CLAIM_KINDS, ResourceKind
from infraforge.contracts.timeouts import RECONCILE_ERROR_BACKOFF_S, RESYNC_INTERVAL_S
from infraforge.errors import ReconcileError
from infraforge.logger import configure_logging
from infraforge.reconcile.engine import ClaimReconciler, ClaimRef
from infraforge.reconcile.observer import build_observer
from infraforge.reconcile.strategies import build_reconcilers

logger = logging.getLogger(__name__)

_reconcilers: Optional[Dict[str, ClaimReconciler]] = None
_observer = None


def get_reconcilers() -> Dict[str, ClaimReconciler]:
    """Reconcilers wired to the live cluster, built on first use."""
    global _reconcilers, _observer
    if _reconcilers is None:
        config = get_config()
        _observer = build_observer(config.metrics_enabled)
        _reconcilers = build_reconcilers(
            config,
            KubernetesClusterAPI(kubeconfig=config.kubeconfig),
            helm=HelmClient(),
            observer=_observer,
        )
    return _reconcilers


def set_reconcilers(reconcilers: Optional[Dict[str, ClaimReconciler]]) -> None:
    """Replace the reconciler registry (for testing)."""
    global _reconcilers
    _reconcilers = reconcilers


def dispatch(kind: str, name: str, namespace: Optional[str]) -> Dict[str, Any]:
    """Run one pass for a claim and translate the outcome for kopf."""
    reconciler = get_reconcilers()[kind]
    ref = ClaimRef(kind=kind, name=name, namespace=namespace)
    try:
        result = reconciler.reconcile(ref)
    except ReconcileError as e:
        raise kopf.TemporaryError(str(e), delay=RECONCILE_ERROR_BACKOFF_S) from e

    if not result.done:
        raise kopf.TemporaryError(
            f"{kind} {ref.key} requeued (phase {result.phase})",
            delay=result.requeue_after,
        )
    return {"phase": result.phase}


# =============================================================================
# Lifecycle
# =============================================================================


@kopf.on.startup()
def configure(**_: Any) -> None:
    config = get_config()
    configure_logging(config.log_level, config.log_format)
    logger.info("infraforge operator starting")


@kopf.on.cleanup()
def shutdown(**_: Any) -> None:
    if _observer is not None and hasattr(_observer, "shutdown"):
        _observer.shutdown()
    logger.info("infraforge operator stopped")


# =============================================================================
# Claim handlers
# =============================================================================


def _register(resource: ResourceKind) -> None:
    kind = resource.kind

    def reconcile_claim(name: str, namespace: Optional[str], **_: Any) -> Dict[str, Any]:
        return dispatch(kind, name, namespace)

    reconcile_claim.__name__ = f"reconcile_{resource.plural}"
    args = (resource.group, resource.version, resource.plural)

    kopf.on.create(*args, id=f"{kind}-create")(reconcile_claim)
    kopf.on.update(*args, id=f"{kind}-update")(reconcile_claim)
    kopf.on.resume(*args, id=f"{kind}-resume")(reconcile_claim)
    kopf.on.delete(*args, id=f"{kind}-delete", optional=True)(reconcile_claim)
    kopf.timer(*args, id=f"{kind}-resync", interval=RESYNC_INTERVAL_S, idle=RESYNC_INTERVAL_S)(
        reconcile_claim
    )


for _resource in CLAIM_KINDS.values():
    _register(_resource)
