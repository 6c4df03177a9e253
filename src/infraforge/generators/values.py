"""
Helm values rendering.

Turns claim children (applications, components, platform services) plus
the sizing policy into Helm values. Every renderer is pure: the same
input always produces byte-identical YAML, so republishing an unchanged
claim is a Git no-op.

Merge rule: caller-supplied custom values always win. Nested maps are
merged recursively; any other value (including lists) is replaced.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Mapping, Optional

import yaml

from infraforge.contracts.k8s import Label
from infraforge.models.claims import ApplicationSpec, ComponentSpec, PlatformServiceSpec
from infraforge.naming import component_secret_name
from infraforge.sizing import Sizing, service_resources, size_component

DEFAULT_CHART_NAME = "microservice"
DEFAULT_CHART_VERSION = "1.0.0"
DEFAULT_PULL_SECRET = "ghcr-pull-secret"


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge override into a copy of base.

    Nested dicts are merged key by key; every other value in override
    replaces the one in base.
    """
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def to_yaml(data: Any) -> str:
    """Dump data as block-style YAML with sorted keys."""
    return yaml.safe_dump(data, sort_keys=True, default_flow_style=False)


# =============================================================================
# Applications
# =============================================================================


def _env_entries(app: ApplicationSpec) -> List[Dict[str, Any]]:
    entries = []
    for env in app.env:
        entry: Dict[str, Any] = {"name": env.name}
        if env.value is not None:
            entry["value"] = env.value
        elif env.value_from is not None:
            entry["valueFrom"] = env.value_from.to_wire()
        entries.append(entry)
    return entries


def application_overrides(app: ApplicationSpec) -> Dict[str, Any]:
    """Values set explicitly on the application spec."""
    values: Dict[str, Any] = {"fullnameOverride": app.name}

    if app.image.repository:
        image: Dict[str, Any] = {"repository": app.image.repository}
        tag = app.image.tag or app.version
        if tag:
            image["tag"] = tag
        if app.image.pull_policy:
            image["pullPolicy"] = app.image.pull_policy
        values["image"] = image

    secrets = app.image.pull_secrets or [DEFAULT_PULL_SECRET]
    values["imagePullSecrets"] = [{"name": name} for name in secrets]

    if app.replicas > 0:
        values["replicaCount"] = app.replicas

    if not app.resources.is_empty():
        values["resources"] = app.resources.to_wire()

    if app.ports:
        values["service"] = {
            "type": "ClusterIP",
            "port": app.ports[0].port,
            "targetPort": app.ports[0].port,
            "ports": [p.to_wire() for p in app.ports],
        }

    if app.health_check is not None:
        probe: Dict[str, Any] = {
            "httpGet": {
                "path": app.health_check.path,
                "port": app.health_check.port or (app.ports[0].port if app.ports else "http"),
            },
        }
        if app.health_check.initial_delay_seconds is not None:
            probe["initialDelaySeconds"] = app.health_check.initial_delay_seconds
        if app.health_check.period_seconds is not None:
            probe["periodSeconds"] = app.health_check.period_seconds
        values["livenessProbe"] = probe
        values["readinessProbe"] = copy.deepcopy(probe)

    if app.ingress is not None and app.ingress.enabled:
        ingress: Dict[str, Any] = {"enabled": True}
        if app.ingress.host:
            ingress["host"] = app.ingress.host
        if app.ingress.path:
            ingress["path"] = app.ingress.path
        if app.ingress.tls:
            ingress["tls"] = True
        if app.ingress.annotations:
            ingress["annotations"] = dict(app.ingress.annotations)
        values["ingress"] = ingress

    if app.env:
        values["env"] = _env_entries(app)

    if app.autoscaling is not None and app.autoscaling.enabled:
        values["autoscaling"] = app.autoscaling.to_wire()

    return values


def application_values(
    app: ApplicationSpec,
    sizing: Optional[Sizing] = None,
    labels: Optional[Mapping[str, str]] = None,
    custom: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build the values map for an application.

    Replica count: explicit replicas win, otherwise the sizing tier's
    replicas, otherwise 1. Explicit resources are merged over the sizing.
    Custom values (the spec's own values unless given) are merged last
    and win.
    """
    values: Dict[str, Any] = {}
    if sizing is not None:
        values["replicaCount"] = max(sizing.replicas, 1)
        values["resources"] = sizing.resources_dict()
    else:
        values["replicaCount"] = 1

    values = deep_merge(values, application_overrides(app))
    if labels:
        values["labels"] = dict(labels)
    return deep_merge(values, app.values if custom is None else custom)


def render_values(
    app: ApplicationSpec,
    sizing: Optional[Sizing] = None,
    labels: Optional[Mapping[str, str]] = None,
    custom: Optional[Mapping[str, Any]] = None,
) -> str:
    """Render application values as YAML."""
    return to_yaml(application_values(app, sizing, labels, custom))


def chart_name(app: ApplicationSpec) -> str:
    return app.chart.name or DEFAULT_CHART_NAME


def chart_version(app: ApplicationSpec) -> str:
    return app.chart.version or DEFAULT_CHART_VERSION


def app_config_json(app: ApplicationSpec, values_yaml: str) -> str:
    """config.json written next to an application's values.yaml."""
    config = {
        "name": app.name,
        "chart": chart_name(app),
        "version": chart_version(app),
        "values": values_yaml,
    }
    return json.dumps(config, sort_keys=True)


# =============================================================================
# Components (ApplicationClaim)
# =============================================================================

_COMPONENT_PORTS = {
    "postgresql": 5432,
    "redis": 6379,
    "rabbitmq": 5672,
    "mongodb": 27017,
    "kafka": 9092,
    "elasticsearch": 9200,
}

_PERSISTENT_TYPES = {"postgresql", "redis", "rabbitmq", "mongodb"}


def component_values(
    environment: str,
    component: ComponentSpec,
    claim_name: str,
    team: str,
) -> Dict[str, Any]:
    """
    Build Bitnami-style values for an infrastructure component.

    Sizing comes from the environment tier with the component's size hint
    applied; the component's free-form config is merged last and wins.
    """
    sizing = size_component(environment, component.type, component.size)
    values: Dict[str, Any] = {
        "fullnameOverride": component.name,
        "replicaCount": sizing.replicas,
        "resources": sizing.resources_dict(),
        "metrics": {"enabled": True, "serviceMonitor": {"enabled": True}},
        "commonLabels": {
            Label.MANAGED.value: "true",
            Label.CLAIM.value: claim_name,
            Label.TEAM.value: team,
            Label.COMPONENT.value: component.type,
        },
    }

    if component.version:
        values["image"] = {"tag": component.version}

    if component.type in ("postgresql", "mongodb"):
        values["auth"] = {
            "enabled": True,
            "database": component.name,
            "username": component.name,
            "existingSecret": component_secret_name(claim_name, component.name),
        }

    if component.type == "redis" and sizing.replicas > 1:
        values["architecture"] = "replication"
        values["master"] = {
            "persistence": {"enabled": True, "size": sizing.persistence_size},
        }
        values["replica"] = {
            "replicaCount": sizing.replicas - 1,
            "persistence": {"enabled": True, "size": sizing.persistence_size},
        }
    elif component.type in _PERSISTENT_TYPES:
        values["persistence"] = {"enabled": True, "size": sizing.persistence_size}

    if sizing.backup:
        values["backup"] = {"enabled": True}

    return deep_merge(values, component.config)


def render_component_values(
    environment: str,
    component: ComponentSpec,
    claim_name: str,
    team: str,
) -> str:
    return to_yaml(component_values(environment, component, claim_name, team))


def component_port(component_type: str) -> Optional[int]:
    return _COMPONENT_PORTS.get(component_type)


# =============================================================================
# Platform services
# =============================================================================


def platform_service_values(service: PlatformServiceSpec) -> Dict[str, Any]:
    """Values for a PlatformClaim service: size, HA, backup, monitoring, version."""
    values: Dict[str, Any] = {"resources": service_resources(service.size)}

    if service.high_availability:
        values["replicaCount"] = 3
        values["podDisruptionBudget"] = {
            "enabled": True,
            "minAvailable": 2,
            "maxUnavailable": 1,
        }

    if service.backup is not None and service.backup.enabled:
        values["backup"] = {
            "enabled": True,
            "schedule": service.backup.schedule,
            "retention": service.backup.retention,
            "storageClass": service.backup.storage_class,
        }

    if service.monitoring:
        values["metrics"] = {"enabled": True, "serviceMonitor": {"enabled": True}}

    if service.version:
        values["image"] = {"tag": service.version}

    return deep_merge(values, service.values)


def render_platform_values(service: PlatformServiceSpec) -> str:
    return to_yaml(platform_service_values(service))


_PLATFORM_APP_DEFAULTS = {
    "postgresql": {
        "version": "15",
        "storage": "1Gi",
        "requests": {"cpu": "100m", "memory": "256Mi"},
        "limits": {"cpu": "200m", "memory": "512Mi"},
    },
    "redis": {
        "version": "7.0",
        "storage": "500Mi",
        "requests": {"cpu": "50m", "memory": "64Mi"},
        "limits": {"cpu": "100m", "memory": "128Mi"},
    },
}


def platform_application_values(service: PlatformServiceSpec, storage_class: str) -> Dict[str, Any]:
    """
    Values for a PlatformApplicationClaim service.

    Known types get a nested block keyed by the type (storage and
    resources) for the platform's own charts. Custom values are deep
    merged over the defaults.
    """
    values: Dict[str, Any] = {
        "name": service.name,
        "type": service.type,
    }

    defaults = _PLATFORM_APP_DEFAULTS.get(service.type)
    if defaults is not None:
        values["version"] = service.version or defaults["version"]
        storage: Dict[str, Any] = {"size": defaults["storage"], "storageClass": storage_class}
        if service.type == "redis":
            storage["enabled"] = True
        values[service.type] = {
            "storage": storage,
            "resources": {
                "requests": dict(defaults["requests"]),
                "limits": dict(defaults["limits"]),
            },
        }
    elif service.version:
        values["version"] = service.version

    return deep_merge(values, service.values)


def render_platform_application_values(service: PlatformServiceSpec, storage_class: str) -> str:
    return to_yaml(platform_application_values(service, storage_class))
