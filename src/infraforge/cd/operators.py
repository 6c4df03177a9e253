"""
Operator installer.

Components such as postgresql are backed by a cluster-wide operator.
Before a component is projected, the installer makes sure an ArgoCD
Application for its operator exists. It never waits for the operator
to become ready.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Set

from infraforge.cd.objects import (
    DesiredApplication,
    Destination,
    HelmSource,
    Source,
    SyncPolicy,
)
from infraforge.cd.projector import Projector
from infraforge.contracts.k8s import ARGO_APPLICATION, ARGOCD_NAMESPACE, IN_CLUSTER_SERVER, Label
from infraforge.errors import InfraforgeError, InstallError
from infraforge.models.claims import ComponentSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperatorInfo:
    name: str
    namespace: str
    helm_repo: str
    helm_chart: str
    version: str


OPERATOR_REGISTRY: Dict[str, OperatorInfo] = {
    "postgresql": OperatorInfo(
        name="cloudnative-pg",
        namespace="cnpg-system",
        helm_repo="https://cloudnative-pg.github.io/charts",
        helm_chart="cloudnative-pg",
        version="0.20.0",
    ),
    "redis": OperatorInfo(
        name="redis-operator",
        namespace="redis-operator",
        helm_repo="https://spotahome.github.io/redis-operator",
        helm_chart="redis-operator",
        version="3.2.9",
    ),
    "rabbitmq": OperatorInfo(
        name="rabbitmq-cluster-operator",
        namespace="rabbitmq-system",
        helm_repo="https://charts.bitnami.com/bitnami",
        helm_chart="rabbitmq-cluster-operator",
        version="4.0.0",
    ),
    "mongodb": OperatorInfo(
        name="mongodb-community-operator",
        namespace="mongodb",
        helm_repo="https://mongodb.github.io/helm-charts",
        helm_chart="community-operator",
        version="0.9.0",
    ),
    "elasticsearch": OperatorInfo(
        name="elastic-operator",
        namespace="elastic-system",
        helm_repo="https://helm.elastic.co",
        helm_chart="eck-operator",
        version="2.11.0",
    ),
}


def required_operators(components: Iterable[ComponentSpec]) -> Set[str]:
    """Operator names needed by the enabled components; types without one are skipped."""
    names = set()
    for component in components:
        if not component.enabled:
            continue
        info = OPERATOR_REGISTRY.get(component.type)
        if info is not None:
            names.add(info.name)
    return names


def operators_by_name() -> Dict[str, OperatorInfo]:
    return {info.name: info for info in OPERATOR_REGISTRY.values()}


def desired_operator_application(
    info: OperatorInfo,
    namespace: str = ARGOCD_NAMESPACE,
    server: str = IN_CLUSTER_SERVER,
) -> DesiredApplication:
    return DesiredApplication(
        name=info.name,
        namespace=namespace,
        project="default",
        sources=[
            Source(
                repo_url=info.helm_repo,
                chart=info.helm_chart,
                target_revision=info.version,
                helm=HelmSource(release_name=info.name),
            )
        ],
        destination=Destination(namespace=info.namespace, server=server),
        sync_policy=SyncPolicy(
            allow_empty=None,
            sync_options=["CreateNamespace=true", "ServerSideApply=true"],
        ),
        labels={
            Label.MANAGED.value: "true",
            Label.OPERATOR.value: "true",
            Label.TYPE.value: info.name,
        },
    )


class OperatorInstaller:
    def __init__(self, projector: Projector, namespace: str = ARGOCD_NAMESPACE,
                 server: str = IN_CLUSTER_SERVER):
        self.projector = projector
        self.namespace = namespace
        self.server = server

    def ensure_installed(self, info: OperatorInfo) -> bool:
        """
        Project the operator's Application unless one already exists.

        Returns:
            True if the Application was created by this call

        Raises:
            InstallError: the existence check or creation failed
        """
        try:
            if self.projector.exists(ARGO_APPLICATION, info.name, self.namespace):
                logger.debug(f"Operator {info.name} already installed")
                return False
            self.projector.upsert(desired_operator_application(info, self.namespace, self.server))
        except InfraforgeError as e:
            raise InstallError(f"failed to install operator {info.name}: {e}") from e

        logger.info(f"Installed operator {info.name} into {info.namespace}")
        return True

    def ensure_for_components(self, components: Iterable[ComponentSpec]) -> Set[str]:
        """Install every operator the enabled components need; returns newly created names."""
        registry = operators_by_name()
        created = set()
        for name in sorted(required_operators(components)):
            if self.ensure_installed(registry[name]):
                created.add(name)
        return created
