"""
Continuous-deployment projector.

Projects desired objects into the cluster with whole-object upsert:
get, then create on NotFound or replace carrying the live
resourceVersion. Upserting the same desired object twice leaves the
cluster object's spec unchanged.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from infraforge.cluster.api import ClusterAPI
from infraforge.cd.objects import DesiredObject
from infraforge.contracts.k8s import ResourceKind
from infraforge.errors import NotFoundError
from infraforge.generators.manifests import render_manifest

logger = logging.getLogger(__name__)


class Projector:
    def __init__(self, cluster: ClusterAPI):
        self.cluster = cluster

    def upsert(self, desired: DesiredObject) -> Optional[str]:
        """Create or replace desired; returns the resulting resourceVersion."""
        kind = desired.resource_kind
        body = render_manifest(desired)
        try:
            existing = self.cluster.get(kind, desired.name, desired.namespace)
        except NotFoundError:
            logger.info(f"Creating {kind.kind} {desired.namespace}/{desired.name}")
            created = self.cluster.create(kind, body, desired.namespace)
            return created.get("metadata", {}).get("resourceVersion")

        body["metadata"]["resourceVersion"] = existing.get("metadata", {}).get("resourceVersion")
        logger.debug(f"Replacing {kind.kind} {desired.namespace}/{desired.name}")
        replaced = self.cluster.replace(kind, desired.name, body, desired.namespace)
        return replaced.get("metadata", {}).get("resourceVersion")

    def delete(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> bool:
        """Delete an object; returns False if it was already gone."""
        try:
            self.cluster.delete(kind, name, namespace)
        except NotFoundError:
            return False
        logger.info(f"Deleted {kind.kind} {namespace}/{name}")
        return True

    def exists(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> bool:
        try:
            self.cluster.get(kind, name, namespace)
        except NotFoundError:
            return False
        return True

    def list_owned(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        labels: Mapping[str, str],
    ) -> List[Dict[str, Any]]:
        return self.cluster.list(kind, namespace, labels)
