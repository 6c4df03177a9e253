"""
ApplicationClaim strategy.

Projects a project, one Application per enabled application and
component, and an umbrella app-of-apps straight into the cluster, then
prunes owned Applications the spec no longer asks for. A child that fails
to project is recorded in its status entry while its siblings carry on.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Set

from infraforge.cd.operators import OperatorInstaller
from infraforge.cd.projector import Projector
from infraforge.cluster.api import ClusterAPI
from infraforge.cluster.helm import HelmClient
from infraforge.contracts.k8s import APPLICATION_CLAIM, ARGO_APPLICATION, Label
from infraforge.errors import InfraforgeError, InstallError
from infraforge.generators.objects import (
    desired_application,
    desired_component_application,
    desired_project,
    desired_umbrella,
    owned_selector,
    validate_components,
)
from infraforge.generators.values import component_port
from infraforge.models.claims import ApplicationClaimSpec
from infraforge.models.status import (
    ApplicationClaimStatus,
    ApplicationStatus,
    ComponentStatus,
    Phase,
)
from infraforge.naming import component_secret_name, normalize_k8s_name
from infraforge.reconcile.engine import ClaimStrategy, PassContext, Step
from infraforge.sizing import size_component

logger = logging.getLogger(__name__)


class ApplicationClaimSteps:
    """Steps and cleanup for ApplicationClaim, bound to their collaborators."""

    def __init__(
        self,
        cluster: ClusterAPI,
        projector: Projector,
        installer: OperatorInstaller,
        helm: Optional[HelmClient] = None,
    ):
        self.cluster = cluster
        self.projector = projector
        self.installer = installer
        self.helm = helm

    def validate(self, ctx: PassContext) -> None:
        validate_components(ctx.spec.enabled_components())

    def ensure_namespace(self, ctx: PassContext) -> None:
        spec: ApplicationClaimSpec = ctx.spec
        self.cluster.ensure_namespace(ctx.target_namespace, {
            Label.MANAGED.value: "true",
            Label.TEAM.value: normalize_k8s_name(spec.owner.team),
            Label.ENV.value: spec.environment,
        })

    def ensure_project(self, ctx: PassContext) -> None:
        self.projector.upsert(
            desired_project(
                ctx.name, ctx.spec, ctx.target_namespace, ctx.config, ctx.ref.namespace
            )
        )

    def project_applications(self, ctx: PassContext) -> None:
        spec: ApplicationClaimSpec = ctx.spec
        status: ApplicationClaimStatus = ctx.status
        replicas = size_component(spec.environment, "application").replicas

        for app in spec.enabled_applications():
            ctx.total_children += 1
            entry = ApplicationStatus(
                name=app.name,
                version=app.version,
                replicas=app.replicas or replicas,
            )
            try:
                self.projector.upsert(
                    desired_application(
                        ctx.name, spec, ctx.target_namespace, app, ctx.config, ctx.ref.namespace
                    )
                )
            except InfraforgeError as e:
                logger.warning(f"Failed to project application {app.name} for {ctx.ref.key}: {e}")
                entry.message = f"failed to project application: {e}"
                ctx.child_failed(app.name)
            else:
                entry.ready = True
                entry.message = "Application projected"
            status.applications.append(entry)

        status.applications_ready = all(a.ready for a in status.applications)

    def project_components(self, ctx: PassContext) -> None:
        spec: ApplicationClaimSpec = ctx.spec
        status: ApplicationClaimStatus = ctx.status
        components = spec.enabled_components()

        if components:
            ctx.total_children += 1
        try:
            self.installer.ensure_for_components(components)
        except InstallError as e:
            # Components are still projected; they sync once the operator lands
            logger.warning(f"Operator installation for {ctx.ref.key} failed: {e}")
            ctx.child_failed("operators")

        for component in components:
            ctx.total_children += 1
            entry = ComponentStatus(
                name=component.name,
                type=component.type,
                secret_name=component_secret_name(ctx.name, component.name),
            )
            try:
                self.projector.upsert(
                    desired_component_application(
                        ctx.name, spec, ctx.target_namespace, component, ctx.config, ctx.ref.namespace
                    )
                )
            except InfraforgeError as e:
                logger.warning(
                    f"Failed to project component {component.name} for {ctx.ref.key}: {e}"
                )
                entry.message = f"failed to project component: {e}"
                ctx.child_failed(component.name)
            else:
                entry.ready = True
                entry.message = "Component projected"
                port = component_port(component.type)
                if port:
                    entry.connection_string = (
                        f"{component.name}.{ctx.target_namespace}.svc.cluster.local:{port}"
                    )
            status.components.append(entry)

        status.components_ready = all(c.ready for c in status.components)

    def project_umbrella(self, ctx: PassContext) -> None:
        self.projector.upsert(
            desired_umbrella(
                ctx.name, ctx.spec, ctx.target_namespace, ctx.config, ctx.ref.namespace
            )
        )

    def prune(self, ctx: PassContext) -> None:
        """Delete owned Applications whose child was removed or disabled."""
        spec: ApplicationClaimSpec = ctx.spec
        desired: Set[str] = {
            desired_application(ctx.name, spec, ctx.target_namespace, app, ctx.config).name
            for app in spec.enabled_applications()
        }
        desired.update(
            desired_component_application(ctx.name, spec, ctx.target_namespace, c, ctx.config).name
            for c in spec.enabled_components()
        )
        desired.add(desired_umbrella(ctx.name, spec, ctx.target_namespace, ctx.config).name)

        for obj in self._owned(ctx):
            name = obj["metadata"]["name"]
            if name in desired:
                continue
            logger.info(f"Pruning {name}: no longer desired by {ctx.ref.key}")
            self._remove_child(ctx, obj)

    def cleanup(self, ctx: PassContext) -> None:
        """Remove every Application the claim owns and their Helm releases."""
        for obj in self._owned(ctx):
            self._remove_child(ctx, obj)

    def _owned(self, ctx: PassContext):
        return self.projector.list_owned(
            ARGO_APPLICATION,
            ctx.config.argocd_namespace,
            owned_selector(ctx.name, ctx.ref.namespace),
        )

    def _remove_child(self, ctx: PassContext, obj: Dict[str, Any]) -> None:
        metadata = obj.get("metadata", {})
        self.projector.delete(ARGO_APPLICATION, metadata["name"], ctx.config.argocd_namespace)

        labels = metadata.get("labels") or {}
        if self.helm is None or not labels.get(Label.COMPONENT.value):
            return
        release = projected_release_name(obj)
        if release:
            namespace = obj.get("spec", {}).get("destination", {}).get("namespace") \
                or ctx.target_namespace
            self.helm.uninstall(release, namespace)


def projected_release_name(obj: Dict[str, Any]) -> Optional[str]:
    """Helm release ArgoCD installs for a component Application."""
    spec = obj.get("spec", {})
    sources = spec.get("sources") or [spec.get("source") or {}]
    for source in sources:
        release = (source.get("helm") or {}).get("releaseName")
        if release:
            return release
    return (obj.get("metadata", {}).get("labels") or {}).get(Label.INSTANCE.value)


def application_claim_strategy(steps: ApplicationClaimSteps) -> ClaimStrategy:
    return ClaimStrategy(
        resource=APPLICATION_CLAIM,
        spec_model=ApplicationClaimSpec,
        status_model=ApplicationClaimStatus,
        active_phase=Phase.PROVISIONING,
        ready_message="All applications and components provisioned",
        steps=[
            Step("validate", steps.validate),
            Step("ensure_namespace", steps.ensure_namespace, failure="failed to ensure namespace"),
            Step("ensure_project", steps.ensure_project, failure="failed to ensure project"),
            Step("project_applications", steps.project_applications),
            Step("project_components", steps.project_components),
            Step("project_umbrella", steps.project_umbrella, failure="failed to project umbrella"),
            Step("prune", steps.prune, failure="failed to prune removed children"),
        ],
        cleanup=steps.cleanup,
    )
