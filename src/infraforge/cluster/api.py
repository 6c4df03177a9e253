"""
Cluster API collaborator.

ClusterAPI is the narrow interface the reconcilers and projector use;
KubernetesClusterAPI implements it over the kubernetes client's
CustomObjectsApi and CoreV1Api. ApiException is mapped onto the
operator's error taxonomy:

- 404 -> NotFoundError
- 409 -> ConflictError
- 429 and 5xx -> TransientError
- anything else -> ClusterError
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from infraforge.contracts.k8s import ResourceKind
from infraforge.errors import ClusterError, ConflictError, NotFoundError, TransientError

logger = logging.getLogger(__name__)

# Events for cluster-scoped objects are recorded here
EVENT_FALLBACK_NAMESPACE = "default"


class ClusterAPI(Protocol):
    def get(self, kind: ResourceKind, name: str, namespace: Optional[str] = None) -> Dict[str, Any]: ...

    def create(self, kind: ResourceKind, body: Dict[str, Any],
               namespace: Optional[str] = None) -> Dict[str, Any]: ...

    def replace(self, kind: ResourceKind, name: str, body: Dict[str, Any],
                namespace: Optional[str] = None) -> Dict[str, Any]: ...

    def replace_status(self, kind: ResourceKind, name: str, body: Dict[str, Any],
                       namespace: Optional[str] = None) -> Dict[str, Any]: ...

    def delete(self, kind: ResourceKind, name: str, namespace: Optional[str] = None,
               grace_period_seconds: Optional[int] = None) -> None: ...

    def list(self, kind: ResourceKind, namespace: Optional[str] = None,
             label_selector: Optional[Mapping[str, str]] = None) -> List[Dict[str, Any]]: ...

    def ensure_namespace(self, name: str, labels: Mapping[str, str]) -> None: ...

    def emit_event(self, obj: Dict[str, Any], reason: str, message: str,
                   event_type: str = "Normal") -> None: ...


def format_selector(labels: Optional[Mapping[str, str]]) -> Optional[str]:
    if not labels:
        return None
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def map_api_exception(e: ApiException, what: str) -> Exception:
    """Translate an ApiException into the operator error taxonomy."""
    status = e.status or 0
    message = f"{what}: {e.reason or e}"
    if status == 404:
        return NotFoundError(message)
    if status == 409:
        return ConflictError(message)
    if status == 429 or status >= 500:
        return TransientError(message)
    return ClusterError(message, status=status)


def load_kube_client_config(kubeconfig: Optional[str] = None) -> None:
    """Load explicit kubeconfig, else in-cluster config, else the default kubeconfig."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


class KubernetesClusterAPI:
    """ClusterAPI backed by the kubernetes Python client."""

    def __init__(
        self,
        kubeconfig: Optional[str] = None,
        custom_api: Optional[client.CustomObjectsApi] = None,
        core_api: Optional[client.CoreV1Api] = None,
        component: str = "infraforge-operator",
    ):
        if custom_api is None or core_api is None:
            load_kube_client_config(kubeconfig)
        self.custom_api = custom_api or client.CustomObjectsApi()
        self.core_api = core_api or client.CoreV1Api()
        self.component = component

    def _call(self, what: str, fn, **kwargs):
        try:
            return fn(**kwargs)
        except ApiException as e:
            raise map_api_exception(e, what) from e

    def get(self, kind: ResourceKind, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        what = f"get {kind.kind} {name}"
        if kind.namespaced:
            return self._call(
                what, self.custom_api.get_namespaced_custom_object,
                group=kind.group, version=kind.version, plural=kind.plural,
                namespace=namespace, name=name,
            )
        return self._call(
            what, self.custom_api.get_cluster_custom_object,
            group=kind.group, version=kind.version, plural=kind.plural, name=name,
        )

    def create(self, kind: ResourceKind, body: Dict[str, Any],
               namespace: Optional[str] = None) -> Dict[str, Any]:
        what = f"create {kind.kind} {body.get('metadata', {}).get('name')}"
        if kind.namespaced:
            return self._call(
                what, self.custom_api.create_namespaced_custom_object,
                group=kind.group, version=kind.version, plural=kind.plural,
                namespace=namespace, body=body,
            )
        return self._call(
            what, self.custom_api.create_cluster_custom_object,
            group=kind.group, version=kind.version, plural=kind.plural, body=body,
        )

    def replace(self, kind: ResourceKind, name: str, body: Dict[str, Any],
                namespace: Optional[str] = None) -> Dict[str, Any]:
        what = f"replace {kind.kind} {name}"
        if kind.namespaced:
            return self._call(
                what, self.custom_api.replace_namespaced_custom_object,
                group=kind.group, version=kind.version, plural=kind.plural,
                namespace=namespace, name=name, body=body,
            )
        return self._call(
            what, self.custom_api.replace_cluster_custom_object,
            group=kind.group, version=kind.version, plural=kind.plural, name=name, body=body,
        )

    def replace_status(self, kind: ResourceKind, name: str, body: Dict[str, Any],
                       namespace: Optional[str] = None) -> Dict[str, Any]:
        what = f"replace status of {kind.kind} {name}"
        if kind.namespaced:
            return self._call(
                what, self.custom_api.replace_namespaced_custom_object_status,
                group=kind.group, version=kind.version, plural=kind.plural,
                namespace=namespace, name=name, body=body,
            )
        return self._call(
            what, self.custom_api.replace_cluster_custom_object_status,
            group=kind.group, version=kind.version, plural=kind.plural, name=name, body=body,
        )

    def delete(self, kind: ResourceKind, name: str, namespace: Optional[str] = None,
               grace_period_seconds: Optional[int] = None) -> None:
        what = f"delete {kind.kind} {name}"
        extra: Dict[str, Any] = {}
        if grace_period_seconds is not None:
            extra["grace_period_seconds"] = grace_period_seconds
        if kind.namespaced:
            self._call(
                what, self.custom_api.delete_namespaced_custom_object,
                group=kind.group, version=kind.version, plural=kind.plural,
                namespace=namespace, name=name, **extra,
            )
        else:
            self._call(
                what, self.custom_api.delete_cluster_custom_object,
                group=kind.group, version=kind.version, plural=kind.plural, name=name, **extra,
            )

    def list(self, kind: ResourceKind, namespace: Optional[str] = None,
             label_selector: Optional[Mapping[str, str]] = None) -> List[Dict[str, Any]]:
        what = f"list {kind.kind}"
        extra: Dict[str, Any] = {}
        selector = format_selector(label_selector)
        if selector:
            extra["label_selector"] = selector
        if kind.namespaced and namespace:
            result = self._call(
                what, self.custom_api.list_namespaced_custom_object,
                group=kind.group, version=kind.version, plural=kind.plural,
                namespace=namespace, **extra,
            )
        else:
            result = self._call(
                what, self.custom_api.list_cluster_custom_object,
                group=kind.group, version=kind.version, plural=kind.plural, **extra,
            )
        return list(result.get("items", []))

    def ensure_namespace(self, name: str, labels: Mapping[str, str]) -> None:
        """Create the namespace, or merge labels into an existing one."""
        try:
            self.core_api.read_namespace(name=name)
        except ApiException as e:
            if e.status != 404:
                raise map_api_exception(e, f"read namespace {name}") from e
            body = {"metadata": {"name": name, "labels": dict(labels)}}
            try:
                self.core_api.create_namespace(body=body)
                logger.info(f"Created namespace {name}")
                return
            except ApiException as create_error:
                if create_error.status != 409:
                    raise map_api_exception(create_error, f"create namespace {name}") from create_error

        self._call(
            f"label namespace {name}", self.core_api.patch_namespace,
            name=name, body={"metadata": {"labels": dict(labels)}},
        )

    def emit_event(self, obj: Dict[str, Any], reason: str, message: str,
                   event_type: str = "Normal") -> None:
        """Record a core/v1 Event against obj. Failures are logged, not raised."""
        metadata = obj.get("metadata", {})
        namespace = metadata.get("namespace") or EVENT_FALLBACK_NAMESPACE
        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = {
            "metadata": {
                "generateName": f"{metadata.get('name', 'claim')}.",
                "namespace": namespace,
            },
            "involvedObject": {
                "apiVersion": obj.get("apiVersion"),
                "kind": obj.get("kind"),
                "name": metadata.get("name"),
                "namespace": metadata.get("namespace"),
                "uid": metadata.get("uid"),
            },
            "reason": reason,
            "message": message,
            "type": event_type,
            "source": {"component": self.component},
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }
        try:
            self.core_api.create_namespaced_event(namespace=namespace, body=body)
        except ApiException as e:
            logger.warning(f"Failed to emit event {reason} for {metadata.get('name')}: {e.reason}")
