"""Claim reconciliation: the generic engine, per-kind strategies and observers."""

from infraforge.reconcile.engine import (
    ClaimReconciler,
    ClaimRef,
    ClaimStrategy,
    PassContext,
    Result,
    Step,
)
from infraforge.reconcile.optimistic import optimistic_update

__all__ = [
    "ClaimReconciler",
    "ClaimRef",
    "ClaimStrategy",
    "PassContext",
    "Result",
    "Step",
    "optimistic_update",
]
