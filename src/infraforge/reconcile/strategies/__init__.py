"""
Per-kind strategy records and the wiring that turns them into reconcilers.

Usage:
    reconcilers = build_reconcilers(config, cluster)
    reconcilers["ApplicationClaim"].reconcile(ClaimRef("ApplicationClaim", "shop", "team-a"))
"""

from __future__ import annotations

from typing import Dict, Optional

from infraforge.cd.operators import OperatorInstaller
from infraforge.cd.projector import Projector
from infraforge.cluster.api import ClusterAPI
from infraforge.cluster.helm import HelmClient
from infraforge.config import InfraforgeConfig
from infraforge.gitops.publisher import GitPublisher
from infraforge.reconcile.engine import ClaimReconciler
from infraforge.reconcile.observer import ReconcileObserver
from infraforge.reconcile.strategies.application import (
    ApplicationClaimSteps,
    application_claim_strategy,
)
from infraforge.reconcile.strategies.bootstrap import (
    BootstrapSteps,
    GiteaFactory,
    bootstrap_strategy,
    default_gitea_factory,
)
from infraforge.reconcile.strategies.platform import (
    PLATFORM_APPLICATION_CLAIM_FLAVOR,
    PLATFORM_CLAIM_FLAVOR,
    platform_strategy,
)


def build_reconcilers(
    config: InfraforgeConfig,
    cluster: ClusterAPI,
    publisher: Optional[GitPublisher] = None,
    gitea_factory: Optional[GiteaFactory] = None,
    helm: Optional[HelmClient] = None,
    observer: Optional[ReconcileObserver] = None,
) -> Dict[str, ClaimReconciler]:
    """One reconciler per claim kind, keyed by kind name."""
    if publisher is None:
        publisher = GitPublisher(username=config.gitea_username, token=config.gitea_token)
    if gitea_factory is None:
        gitea_factory = default_gitea_factory(config)

    projector = Projector(cluster)
    installer = OperatorInstaller(
        projector, namespace=config.argocd_namespace, server=config.destination_server
    )
    strategies = [
        application_claim_strategy(ApplicationClaimSteps(cluster, projector, installer, helm)),
        platform_strategy(PLATFORM_CLAIM_FLAVOR, publisher),
        platform_strategy(PLATFORM_APPLICATION_CLAIM_FLAVOR, publisher),
        bootstrap_strategy(BootstrapSteps(gitea_factory, publisher)),
    ]
    return {
        strategy.kind: ClaimReconciler(strategy, cluster, config, observer=observer)
        for strategy in strategies
    }


__all__ = ["build_reconcilers"]
