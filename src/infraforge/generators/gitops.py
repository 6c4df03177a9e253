"""
GitOps file trees.

A FileTree maps repository-relative paths to file contents. Trees are
built deterministically from a claim spec; the publisher writes them in a
single commit.

Layouts inside the voltran repository:

    appsets/<clusterType>/apps/<env>-appset.yaml
    appsets/<clusterType>/platform/<env>-platform-appset.yaml
    environments/<clusterType>/<env>/applications/<app>/values.yaml
    environments/<clusterType>/<env>/applications/<app>/config.json
    environments/<clusterType>/<env>/platform/<service>/values.yaml
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List

from infraforge.config import InfraforgeConfig
from infraforge.generators.manifests import manifest_yaml
from infraforge.generators.objects import (
    TENANT_APP_TYPES,
    apps_application_set,
    platform_app_claim_application_set,
    platform_application_set,
    tenant_application_set,
    tenant_project,
)
from infraforge.generators.values import (
    app_config_json,
    render_platform_application_values,
    render_platform_values,
    render_values,
    to_yaml,
)
from infraforge.models.claims import (
    ApplicationClaimSpec,
    PlatformApplicationClaimSpec,
    PlatformClaimSpec,
    TenantSpec,
)
from infraforge.sizing import resource_profile, size_component

logger = logging.getLogger(__name__)

FileTree = Dict[str, str]


@dataclass(frozen=True)
class Layout:
    """Where a claim kind's ApplicationSet and per-child values live."""
    appset_dir: str
    appset_suffix: str
    children_dir: str

    def appset_path(self, cluster_type: str, environment: str) -> str:
        return f"appsets/{cluster_type}/{self.appset_dir}/{environment}-{self.appset_suffix}.yaml"

    def child_dir(self, cluster_type: str, environment: str, child: str) -> str:
        return f"environments/{cluster_type}/{environment}/{self.children_dir}/{child}"


APPS_LAYOUT = Layout(appset_dir="apps", appset_suffix="appset", children_dir="applications")
PLATFORM_LAYOUT = Layout(appset_dir="platform", appset_suffix="platform-appset", children_dir="platform")


def application_claim_tree(spec: ApplicationClaimSpec, config: InfraforgeConfig) -> FileTree:
    """ApplicationSet plus values.yaml and config.json per enabled application."""
    ct, env = spec.cluster_type, spec.environment
    sizing = size_component(env, "application")
    files: FileTree = {}
    values_by_app: Dict[str, str] = {}

    for app in spec.enabled_applications():
        values = render_values(app, sizing)
        values_by_app[app.name] = values
        child = APPS_LAYOUT.child_dir(ct, env, app.name)
        files[f"{child}/values.yaml"] = values
        files[f"{child}/config.json"] = app_config_json(app, values)

    appset = apps_application_set(spec, values_by_app, config)
    files[APPS_LAYOUT.appset_path(ct, env)] = manifest_yaml(appset)
    return files


def platform_claim_tree(spec: PlatformClaimSpec, config: InfraforgeConfig) -> FileTree:
    ct, env = spec.cluster_type, spec.environment
    files: FileTree = {
        PLATFORM_LAYOUT.appset_path(ct, env): manifest_yaml(platform_application_set(spec, config)),
    }
    for service in spec.enabled_services():
        child = PLATFORM_LAYOUT.child_dir(ct, env, service.name)
        files[f"{child}/values.yaml"] = render_platform_values(service)
    return files


def platform_application_claim_tree(
    spec: PlatformApplicationClaimSpec,
    config: InfraforgeConfig,
) -> FileTree:
    ct, env = spec.cluster_type, spec.environment
    files: FileTree = {
        PLATFORM_LAYOUT.appset_path(ct, env): manifest_yaml(
            platform_app_claim_application_set(spec, config)
        ),
    }
    for service in spec.enabled_services():
        child = PLATFORM_LAYOUT.child_dir(ct, env, service.name)
        files[f"{child}/values.yaml"] = render_platform_application_values(
            service, spec.storage_class
        )
    return files


def platform_removals(spec: PlatformClaimSpec) -> List[str]:
    """Values directories of disabled services, removed in the publish commit."""
    return [
        PLATFORM_LAYOUT.child_dir(spec.cluster_type, spec.environment, s.name)
        for s in spec.disabled_services()
    ]


def platform_cleanup_paths(spec: PlatformClaimSpec) -> List[str]:
    """Everything a platform claim ever published: the appset and all service dirs."""
    ct, env = spec.cluster_type, spec.environment
    paths = [PLATFORM_LAYOUT.appset_path(ct, env)]
    paths.extend(PLATFORM_LAYOUT.child_dir(ct, env, s.name) for s in spec.services)
    return paths


# =============================================================================
# Tenant tree (InfraForge kind)
# =============================================================================


def _business_app_files(tenant: TenantSpec, name: str, profile_name: str) -> FileTree:
    env = tenant.environment
    profile = resource_profile(profile_name)
    chart = {
        "apiVersion": "v2",
        "name": name,
        "description": f"{name} application for {tenant.tenant}-{env}",
        "type": "application",
        "version": "0.1.0",
    }
    values = {
        "nameOverride": name,
        "fullnameOverride": name,
        "tenant": tenant.tenant,
        "environment": env,
        "namespace": f"{tenant.tenant}-{env}",
        "image": {"repository": "nginx", "pullPolicy": "IfNotPresent", "tag": "1.25-alpine"},
        "service": {"type": "ClusterIP", "port": 80},
        "ingress": {
            "enabled": True,
            "className": "nginx",
            "host": f"{name}.{tenant.tenant}.local",
            "tls": False,
        },
        "replicaCount": profile.replicas,
        "resources": {
            "limits": profile.limits.to_dict(),
            "requests": profile.requests.to_dict(),
        },
    }
    if profile.autoscaling:
        values["autoscaling"] = dict(profile.autoscaling)

    base = f"apps/{env}/business-apps/{name}"
    return {
        f"{base}/Chart.yaml": to_yaml(chart),
        f"{base}/values.yaml": to_yaml(values),
    }


def tenant_tree(
    tenant: TenantSpec,
    config: InfraforgeConfig,
    repo_url: str,
    branch: str,
) -> FileTree:
    """
    Render the tenant tree: project, one git-directory ApplicationSet per
    app type and a Helm chart skeleton per enabled business application.
    """
    env = tenant.environment
    files: FileTree = {
        f"argocd/{env}/project.yaml": manifest_yaml(tenant_project(env, config)),
    }
    for app_type in TENANT_APP_TYPES:
        appset = tenant_application_set(tenant.tenant, env, app_type, repo_url, branch, config)
        files[f"appsets/{env}/{app_type}-appset.yaml"] = manifest_yaml(appset)

    for item in tenant.business:
        if not item.enabled:
            continue
        logger.debug(f"Rendering business app {item.name} for {tenant.tenant}-{env}")
        files.update(_business_app_files(tenant, item.name, item.profile or "dev"))

    for item in tenant.platform:
        if not item.enabled:
            continue
        profile = resource_profile(item.profile)
        values = {
            "fullnameOverride": item.name,
            "replicaCount": profile.replicas,
            "resources": {
                "limits": profile.limits.to_dict(),
                "requests": profile.requests.to_dict(),
            },
        }
        files[f"apps/{env}/platform-apps/{item.name}/values.yaml"] = to_yaml(values)

    return files
