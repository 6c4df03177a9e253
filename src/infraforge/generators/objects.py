"""
Build desired continuous-deployment objects from claims.

Every builder is a pure function of (claim, child, config): names come
from infraforge.naming, labels from ownership_labels, so repeated passes
address and render the same objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from infraforge.cd.objects import (
    ApplicationTemplate,
    DesiredApplication,
    DesiredApplicationSet,
    DesiredProject,
    Destination,
    GitDirectoryGenerator,
    HelmSource,
    ListGenerator,
    ProjectRole,
    RetryPolicy,
    Source,
    SyncPolicy,
    SyncWindow,
)
from infraforge.config import InfraforgeConfig
from infraforge.contracts.k8s import ARGOCD_RESOURCES_FINALIZER, Label
from infraforge.errors import UnsupportedComponentError
from infraforge.generators.values import (
    chart_name,
    chart_version,
    render_component_values,
    render_values,
)
from infraforge.models.claims import (
    ApplicationClaimSpec,
    ApplicationSpec,
    ComponentSpec,
    PlatformApplicationClaimSpec,
    PlatformClaimSpec,
)
from infraforge.naming import (
    application_name,
    component_application_name,
    normalize_k8s_name,
    project_name,
    umbrella_application_name,
)
from infraforge.sizing import size_component

APP_OF_APPS = "app-of-apps"
PLATFORM = "platform"

# Applications carry the full retry policy; component and platform sets do not
APP_SYNC_POLICY = SyncPolicy(
    allow_empty=False,
    sync_options=[
        "CreateNamespace=true",
        "PrunePropagationPolicy=foreground",
        "PruneLast=true",
    ],
    retry=RetryPolicy(),
)
COMPONENT_SYNC_POLICY = SyncPolicy(
    allow_empty=None,
    sync_options=["CreateNamespace=true", "ServerSideApply=true"],
)
DEFAULT_SYNC_POLICY = SyncPolicy(allow_empty=None)


@dataclass(frozen=True)
class ComponentChart:
    repo_url: str
    chart: str
    version: str


BITNAMI_REPO = "https://charts.bitnami.com/bitnami"
ELASTIC_REPO = "https://helm.elastic.co"

COMPONENT_CHARTS: Dict[str, ComponentChart] = {
    "postgresql": ComponentChart(BITNAMI_REPO, "postgresql", "13.2.0"),
    "redis": ComponentChart(BITNAMI_REPO, "redis", "18.4.0"),
    "mongodb": ComponentChart(BITNAMI_REPO, "mongodb", "14.3.0"),
    "elasticsearch": ComponentChart(ELASTIC_REPO, "elasticsearch", "8.5.1"),
    "kafka": ComponentChart(BITNAMI_REPO, "kafka", "26.4.0"),
    "rabbitmq": ComponentChart(BITNAMI_REPO, "rabbitmq", "12.5.0"),
}


def component_chart(component_type: str) -> ComponentChart:
    """Chart for a component type; raises UnsupportedComponentError if unknown."""
    try:
        return COMPONENT_CHARTS[component_type]
    except KeyError:
        raise UnsupportedComponentError(component_type) from None


def validate_components(components: Iterable[ComponentSpec]) -> None:
    """Reject unknown component types before any side effect happens."""
    for component in components:
        component_chart(component.type)


def ownership_labels(
    claim_name: str,
    team: str,
    environment: str,
    claim_namespace: Optional[str] = None,
) -> Dict[str, str]:
    labels = {
        Label.MANAGED.value: "true",
        Label.TEAM.value: normalize_k8s_name(team),
        Label.ENV.value: environment,
        Label.CLAIM.value: claim_name,
    }
    if claim_namespace:
        labels[Label.CLAIM_NAMESPACE.value] = claim_namespace
    return labels


def owned_selector(claim_name: str, claim_namespace: Optional[str] = None) -> Dict[str, str]:
    """Label selector matching every Application projected for a claim."""
    selector = {Label.MANAGED.value: "true", Label.CLAIM.value: claim_name}
    if claim_namespace:
        selector[Label.CLAIM_NAMESPACE.value] = claim_namespace
    return selector


# =============================================================================
# ApplicationClaim
# =============================================================================


def desired_project(
    claim_name: str,
    spec: ApplicationClaimSpec,
    namespace: str,
    config: InfraforgeConfig,
    claim_namespace: Optional[str] = None,
) -> DesiredProject:
    team = spec.owner.team
    name = project_name(team, spec.environment)
    labels = ownership_labels(claim_name, team, spec.environment, claim_namespace)
    return DesiredProject(
        name=name,
        namespace=config.argocd_namespace,
        description=f"Project for {team} team in {spec.environment} environment",
        destinations=[Destination(namespace=namespace, server=config.destination_server)],
        roles=[
            ProjectRole(
                name="admin",
                policies=[f"p, proj:{name}:admin, applications, *, {name}/*, allow"],
                groups=[team],
            )
        ],
        labels=labels,
    )


def desired_application(
    claim_name: str,
    spec: ApplicationClaimSpec,
    namespace: str,
    app: ApplicationSpec,
    config: InfraforgeConfig,
    claim_namespace: Optional[str] = None,
) -> DesiredApplication:
    """Application for one enabled application, with sized inline values."""
    team = normalize_k8s_name(spec.owner.team)
    labels = ownership_labels(claim_name, spec.owner.team, spec.environment, claim_namespace)
    labels[Label.APPLICATION.value] = app.name

    sizing = size_component(spec.environment, "application")
    source = Source(
        repo_url=app.repository or config.git_repo_url,
        path=f"teams/{team}/environments/{spec.environment}/applications/{app.name}",
        target_revision=app.version or "HEAD",
        helm=HelmSource(
            value_files=["values.yaml", f"values-{spec.environment}.yaml"],
            values=render_values(app, sizing),
        ),
    )
    return DesiredApplication(
        name=application_name(namespace, app.name),
        namespace=config.argocd_namespace,
        project=project_name(spec.owner.team, spec.environment),
        sources=[source],
        destination=Destination(namespace=namespace, server=config.destination_server),
        sync_policy=APP_SYNC_POLICY,
        labels=labels,
        finalizers=[ARGOCD_RESOURCES_FINALIZER],
        revision_history_limit=10,
    )


def desired_component_application(
    claim_name: str,
    spec: ApplicationClaimSpec,
    namespace: str,
    component: ComponentSpec,
    config: InfraforgeConfig,
    claim_namespace: Optional[str] = None,
) -> DesiredApplication:
    """Application installing an infrastructure component chart."""
    chart = component_chart(component.type)
    labels = ownership_labels(claim_name, spec.owner.team, spec.environment, claim_namespace)
    labels[Label.COMPONENT.value] = component.type
    labels[Label.INSTANCE.value] = component.name

    source = Source(
        repo_url=chart.repo_url,
        chart=chart.chart,
        target_revision=chart.version,
        helm=HelmSource(
            release_name=component.name,
            values=render_component_values(
                spec.environment, component, claim_name, spec.owner.team
            ),
        ),
    )
    return DesiredApplication(
        name=component_application_name(namespace, component.type, component.name),
        namespace=config.argocd_namespace,
        project=project_name(spec.owner.team, spec.environment),
        sources=[source],
        destination=Destination(namespace=namespace, server=config.destination_server),
        sync_policy=COMPONENT_SYNC_POLICY,
        labels=labels,
        finalizers=[ARGOCD_RESOURCES_FINALIZER],
    )


def desired_umbrella(
    claim_name: str,
    spec: ApplicationClaimSpec,
    namespace: str,
    config: InfraforgeConfig,
    claim_namespace: Optional[str] = None,
) -> DesiredApplication:
    """App-of-apps Application pointing at the team's environment directory."""
    team = normalize_k8s_name(spec.owner.team)
    labels = ownership_labels(claim_name, spec.owner.team, spec.environment, claim_namespace)
    labels[Label.TYPE.value] = APP_OF_APPS

    source = Source(
        repo_url=config.git_repo_url,
        path=f"teams/{team}/environments/{spec.environment}/app-of-apps",
        target_revision="HEAD",
        directory_recurse=True,
    )
    return DesiredApplication(
        name=umbrella_application_name(namespace),
        namespace=config.argocd_namespace,
        project=project_name(spec.owner.team, spec.environment),
        sources=[source],
        destination=Destination(namespace=config.argocd_namespace, server=config.destination_server),
        sync_policy=DEFAULT_SYNC_POLICY,
        labels=labels,
        finalizers=[ARGOCD_RESOURCES_FINALIZER],
    )


def apps_application_set(
    spec: ApplicationClaimSpec,
    values_by_app: Mapping[str, str],
    config: InfraforgeConfig,
) -> DesiredApplicationSet:
    """
    GitOps ApplicationSet for an ApplicationClaim's enabled applications.

    Each list element carries the chart, chart version and rendered values
    of one application.
    """
    elements: List[Dict[str, str]] = []
    for app in spec.enabled_applications():
        elements.append({
            "name": app.name,
            "chart": chart_name(app),
            "version": chart_version(app),
            "values": values_by_app.get(app.name, ""),
        })

    template = ApplicationTemplate(
        name=f"{{{{name}}}}-{spec.environment}",
        project="default",
        sources=[
            Source(
                repo_url=config.chartmuseum_url,
                chart="{{chart}}",
                target_revision="{{version}}",
                helm=HelmSource(values="{{values}}"),
            )
        ],
        destination=Destination(namespace=spec.environment, server=config.destination_server),
        sync_policy=DEFAULT_SYNC_POLICY,
        labels={
            Label.APPLICATION.value: "{{name}}",
            Label.ENV.value: spec.environment,
        },
    )
    return DesiredApplicationSet(
        name=f"{spec.environment}-apps",
        namespace=config.argocd_namespace,
        generator=ListGenerator(elements=elements),
        template=template,
        labels={
            Label.ENVIRONMENT.value: spec.environment,
            Label.CLUSTER.value: spec.cluster_type,
        },
    )


# =============================================================================
# PlatformClaim / PlatformApplicationClaim
# =============================================================================


def _platform_labels(spec: PlatformClaimSpec) -> Dict[str, str]:
    return {
        Label.ENVIRONMENT.value: spec.environment,
        Label.CLUSTER.value: spec.cluster_type,
        Label.TYPE.value: PLATFORM,
    }


def platform_application_set(
    spec: PlatformClaimSpec,
    config: InfraforgeConfig,
) -> DesiredApplicationSet:
    """ApplicationSet for a PlatformClaim; charts come from the charts repo by path."""
    elements = [
        {"service": s.name, "chart": s.chart_name, "environment": spec.environment}
        for s in spec.enabled_services()
    ]
    values_file = (
        f"../../{config.voltran_repo}/environments/{spec.cluster_type}/"
        f"{spec.environment}/platform/{{{{service}}}}/values.yaml"
    )
    template = ApplicationTemplate(
        name="{{service}}-{{environment}}",
        project="default",
        sources=[
            Source(
                repo_url=f"{config.gitea_url}/{config.gitea_org}/{config.charts_repo}",
                path="{{chart}}",
                target_revision=config.git_branch,
                helm=HelmSource(value_files=[values_file]),
            )
        ],
        destination=Destination(namespace=spec.environment, server=config.destination_server),
        sync_policy=DEFAULT_SYNC_POLICY,
        labels={
            Label.SERVICE.value: "{{service}}",
            Label.ENV.value: "{{environment}}",
            Label.TYPE.value: PLATFORM,
        },
    )
    return DesiredApplicationSet(
        name=f"{spec.environment}-platform",
        namespace=config.argocd_namespace,
        generator=ListGenerator(elements=elements),
        template=template,
        labels=_platform_labels(spec),
    )


def platform_app_claim_application_set(
    spec: PlatformApplicationClaimSpec,
    config: InfraforgeConfig,
) -> DesiredApplicationSet:
    """
    ApplicationSet for a PlatformApplicationClaim.

    Uses two sources: the chart from the chart museum and the voltran
    repository as the "values" ref holding per-service values files.
    """
    gitea_url = (spec.gitea_url or config.gitea_url).rstrip("/")
    org = spec.organization or config.gitea_org
    elements = [{"name": s.name, "chart": s.chart_name} for s in spec.enabled_services()]

    template = ApplicationTemplate(
        name=f"{{{{name}}}}-{spec.environment}",
        project="default",
        sources=[
            Source(
                repo_url=config.chartmuseum_url,
                chart="{{chart}}",
                target_revision="*",
                helm=HelmSource(value_files=[
                    f"$values/environments/{spec.cluster_type}/{spec.environment}"
                    f"/platform/{{{{name}}}}/values.yaml"
                ]),
            ),
            Source(
                repo_url=f"{gitea_url}/{org}/{config.voltran_repo}.git",
                target_revision=config.git_branch,
                ref="values",
            ),
        ],
        destination=Destination(
            namespace=f"{spec.environment}-platform", server=config.destination_server
        ),
        sync_policy=DEFAULT_SYNC_POLICY,
        labels={
            Label.SERVICE.value: "{{name}}",
            Label.ENV.value: spec.environment,
            Label.TYPE.value: PLATFORM,
        },
    )
    return DesiredApplicationSet(
        name=f"{spec.environment}-platform",
        namespace=config.argocd_namespace,
        generator=ListGenerator(elements=elements),
        template=template,
        labels=_platform_labels(spec),
    )


# =============================================================================
# Root apps (bootstrap)
# =============================================================================


def root_application(
    name: str,
    repo_url: str,
    path: str,
    branch: str,
    config: InfraforgeConfig,
) -> DesiredApplication:
    """App-of-apps root Application recursing into an appsets directory."""
    return DesiredApplication(
        name=name,
        namespace=config.argocd_namespace,
        project="default",
        sources=[
            Source(repo_url=repo_url, path=path, target_revision=branch, directory_recurse=True)
        ],
        destination=Destination(namespace=config.argocd_namespace, server=config.destination_server),
        sync_policy=SyncPolicy(
            allow_empty=False,
            sync_options=["CreateNamespace=true"],
            retry=RetryPolicy(),
        ),
        finalizers=[ARGOCD_RESOURCES_FINALIZER],
    )


# =============================================================================
# Tenant documents (InfraForge kind)
# =============================================================================

TENANT_APP_TYPES = ("business", "platform", "operator")


def tenant_project(environment: str, config: InfraforgeConfig) -> DesiredProject:
    """
    AppProject for a tenant environment.

    Production restricts developers to read access plus syncs inside a
    weekday window.
    """
    name = f"infraforge-{environment}"
    admin = ProjectRole(
        name="admin",
        policies=[f"p, proj:{name}:admin, applications, *, {name}/*, allow"],
    )
    if environment == "prod":
        developer = ProjectRole(
            name="developer",
            policies=[
                f"p, proj:{name}:developer, applications, get, {name}/*, allow",
                f"p, proj:{name}:developer, applications, sync, {name}/*, allow",
            ],
        )
        windows = [SyncWindow(kind="allow", schedule="0 6 * * 1-5", duration="8h")]
    else:
        developer = ProjectRole(
            name="developer",
            policies=[f"p, proj:{name}:developer, applications, *, {name}/*, allow"],
        )
        windows = []

    return DesiredProject(
        name=name,
        namespace=config.argocd_namespace,
        description=f"InfraForge {environment.capitalize()} Environment",
        destinations=[Destination(namespace="*", server=config.destination_server)],
        roles=[admin, developer],
        sync_windows=windows,
    )


def tenant_application_set(
    tenant: str,
    environment: str,
    app_type: str,
    repo_url: str,
    branch: str,
    config: InfraforgeConfig,
) -> DesiredApplicationSet:
    """Git-directory ApplicationSet for one tenant app type."""
    if app_type == "business":
        path = f"manifests/platform-cluster/apps/{environment}/business-apps/*"
        namespace = f"{tenant}-{environment}"
    elif app_type == "platform":
        path = f"manifests/platform-cluster/apps/{environment}/platform-apps/*"
        namespace = "{{.path.basename}}"
    elif app_type == "operator":
        path = f"manifests/platform-cluster/operators/{environment}/*"
        namespace = "infraforge-operators"
    else:
        raise ValueError(f"Unknown tenant app type: {app_type}")

    template = ApplicationTemplate(
        name=f"{environment}-{app_type}-{{{{.path.basename}}}}",
        namespace=config.argocd_namespace,
        project=f"infraforge-{environment}",
        sources=[Source(repo_url=repo_url, target_revision=branch, path="{{.path.path}}")],
        destination=Destination(namespace=namespace, server=config.destination_server),
        sync_policy=DEFAULT_SYNC_POLICY,
    )
    return DesiredApplicationSet(
        name=f"{environment}-{app_type}-appset",
        namespace=config.argocd_namespace,
        generator=GitDirectoryGenerator(repo_url=repo_url, revision=branch, directories=[path]),
        template=template,
    )
