"""
PlatformClaim and PlatformApplicationClaim strategies.

Both kinds share one step list: render the service values and the
ApplicationSet into a file tree, then publish it to the voltran repository
in a single commit that also drops the values of disabled services. What
differs between the kinds (tree builder, repository coordinates, service
namespace) lives in a PlatformFlavor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List

from infraforge.config import InfraforgeConfig
from infraforge.contracts.k8s import PLATFORM_APPLICATION_CLAIM, PLATFORM_CLAIM, ResourceKind
from infraforge.generators.gitops import (
    FileTree,
    platform_application_claim_tree,
    platform_claim_tree,
    platform_cleanup_paths,
    platform_removals,
)
from infraforge.gitops.publisher import GitPublisher
from infraforge.models.claims import (
    PlatformApplicationClaimSpec,
    PlatformClaimSpec,
)
from infraforge.models.status import Phase, PlatformClaimStatus, ServiceStatus
from infraforge.reconcile.engine import ClaimStrategy, PassContext, Step

logger = logging.getLogger(__name__)

AUTHOR_NAME = "Platform Operator"
AUTHOR_EMAIL = "operator@platform.local"


def _config_repo_url(spec: PlatformClaimSpec, config: InfraforgeConfig) -> str:
    return f"{config.gitea_url}/{config.gitea_org}/{config.voltran_repo}.git"


def _claim_repo_url(spec: PlatformApplicationClaimSpec, config: InfraforgeConfig) -> str:
    gitea_url = (spec.gitea_url or config.gitea_url).rstrip("/")
    org = spec.organization or config.gitea_org
    return f"{gitea_url}/{org}/{config.voltran_repo}.git"


@dataclass(frozen=True)
class PlatformFlavor:
    resource: ResourceKind
    spec_model: type
    build_tree: Callable[..., FileTree]
    repo_url: Callable[..., str]
    service_namespace: Callable[[PlatformClaimSpec], str]


PLATFORM_CLAIM_FLAVOR = PlatformFlavor(
    resource=PLATFORM_CLAIM,
    spec_model=PlatformClaimSpec,
    build_tree=platform_claim_tree,
    repo_url=_config_repo_url,
    service_namespace=lambda spec: spec.environment,
)

PLATFORM_APPLICATION_CLAIM_FLAVOR = PlatformFlavor(
    resource=PLATFORM_APPLICATION_CLAIM,
    spec_model=PlatformApplicationClaimSpec,
    build_tree=platform_application_claim_tree,
    repo_url=_claim_repo_url,
    service_namespace=lambda spec: f"{spec.environment}-platform",
)


def update_message(environment: str) -> str:
    return f"Update {environment} environment platform services by operator"


def removal_message(environment: str) -> str:
    return f"Remove {environment} environment platform services by operator"


class PlatformClaimSteps:
    """Render and publish steps for one platform flavor."""

    def __init__(self, flavor: PlatformFlavor, publisher: GitPublisher):
        self.flavor = flavor
        self.publisher = publisher

    def render(self, ctx: PassContext) -> None:
        ctx.artifacts["files"] = self.flavor.build_tree(ctx.spec, ctx.config)
        ctx.artifacts["remove"] = platform_removals(ctx.spec)

    def publish(self, ctx: PassContext) -> None:
        spec: PlatformClaimSpec = ctx.spec
        status: PlatformClaimStatus = ctx.status

        result = self.publisher.publish(
            self.flavor.repo_url(spec, ctx.config),
            ctx.config.git_branch,
            ctx.artifacts["files"],
            update_message(spec.environment),
            AUTHOR_NAME,
            AUTHOR_EMAIL,
            remove=ctx.artifacts["remove"],
        )

        namespace = self.flavor.service_namespace(spec)
        services: List[ServiceStatus] = []
        for service in spec.enabled_services():
            services.append(ServiceStatus(
                name=service.name,
                type=service.type,
                version=service.version,
                endpoint=f"{service.name}.{namespace}.svc.cluster.local",
                ready=True,
                message="Published to GitOps repository",
            ))
        status.services = services
        status.services_ready = True

        count = len(services)
        if result.committed:
            ctx.message = f"Published {count} platform service(s) at {result.sha[:8]}"
        else:
            ctx.message = f"{count} platform service(s) already up to date"

    def cleanup(self, ctx: PassContext) -> None:
        spec: PlatformClaimSpec = ctx.spec
        self.publisher.publish(
            self.flavor.repo_url(spec, ctx.config),
            ctx.config.git_branch,
            {},
            removal_message(spec.environment),
            AUTHOR_NAME,
            AUTHOR_EMAIL,
            remove=platform_cleanup_paths(spec),
        )
        logger.info(f"Removed platform services of {ctx.ref.key} from the GitOps repository")


def platform_strategy(flavor: PlatformFlavor, publisher: GitPublisher) -> ClaimStrategy:
    steps = PlatformClaimSteps(flavor, publisher)
    return ClaimStrategy(
        resource=flavor.resource,
        spec_model=flavor.spec_model,
        status_model=PlatformClaimStatus,
        active_phase=Phase.PROVISIONING,
        ready_message="Platform services published",
        steps=[
            Step("render", steps.render, failure="failed to render platform services"),
            Step("publish", steps.publish, failure="failed to publish platform services"),
        ],
        cleanup=steps.cleanup,
    )
