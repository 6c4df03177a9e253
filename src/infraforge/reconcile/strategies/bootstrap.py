"""
BootstrapClaim strategy.

Creates the organization and the charts and voltran repositories on the
Git host, uploads the charts, pushes the initial GitOps structure and,
best effort, the ArgoCD setup manifests. Progress flags are checkpointed
to status as each stage completes so a resumed pass shows how far the
previous one got.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict

from infraforge.config import InfraforgeConfig
from infraforge.contracts.k8s import BOOTSTRAP_CLAIM
from infraforge.generators.bootstrap import argocd_setup_tree, charts_placeholder, voltran_tree
from infraforge.gitops.charts import select_chart_source
from infraforge.gitops.gitea import CreateRepoOptions, GiteaClient
from infraforge.gitops.publisher import GitPublisher
from infraforge.models.claims import BootstrapClaimSpec
from infraforge.models.status import BootstrapClaimStatus, Phase
from infraforge.reconcile.engine import ClaimStrategy, PassContext, Step
from infraforge.reconcile.strategies.platform import AUTHOR_EMAIL, AUTHOR_NAME

logger = logging.getLogger(__name__)

GiteaFactory = Callable[[str], GiteaClient]


def default_gitea_factory(config: InfraforgeConfig) -> GiteaFactory:
    def build(base_url: str) -> GiteaClient:
        return GiteaClient(
            base_url,
            token=config.gitea_token,
            username=config.gitea_username,
            timeout=config.http_timeout_seconds,
        )
    return build


class BootstrapSteps:
    def __init__(self, gitea_factory: GiteaFactory, publisher: GitPublisher):
        self.gitea_factory = gitea_factory
        self.publisher = publisher

    def _gitea(self, ctx: PassContext) -> GiteaClient:
        client = ctx.artifacts.get("gitea")
        if client is None:
            client = ctx.artifacts["gitea"] = self.gitea_factory(ctx.spec.gitea_url)
        return client

    def create_organization(self, ctx: PassContext) -> None:
        spec: BootstrapClaimSpec = ctx.spec
        self._gitea(ctx).create_organization(
            spec.organization, description=f"Platform organization {spec.organization}"
        )

    def create_repositories(self, ctx: PassContext) -> None:
        spec: BootstrapClaimSpec = ctx.spec
        gitea = self._gitea(ctx)
        urls: Dict[str, str] = {}
        for name in (spec.repositories.charts, spec.repositories.voltran):
            repo = gitea.create_repository(spec.organization, CreateRepoOptions(
                name=name,
                description=f"Platform {name} repository",
                default_branch=spec.git_ops.branch,
            ))
            urls[name] = repo.clone_url

        def mark(status: BootstrapClaimStatus) -> None:
            status.repositories_created = True
            status.repository_urls = dict(urls)

        ctx.checkpoint(mark)

    def load_charts(self, ctx: PassContext) -> None:
        spec: BootstrapClaimSpec = ctx.spec
        source = select_chart_source(spec.charts_repository, ctx.config.charts_path)
        files = {}
        if source is not None:
            logger.info(f"Loading charts for {ctx.ref.key} from {source.describe()}")
            files = source.load()
        if not files:
            logger.info(f"No charts found for {ctx.ref.key}, uploading placeholder")
            files = charts_placeholder()
        ctx.artifacts["charts"] = files

    def push_charts(self, ctx: PassContext) -> None:
        spec: BootstrapClaimSpec = ctx.spec
        self.publisher.publish(
            ctx.status.repository_urls[spec.repositories.charts],
            spec.git_ops.branch,
            ctx.artifacts["charts"],
            "Initial charts upload by operator",
            AUTHOR_NAME,
            AUTHOR_EMAIL,
        )

        def mark(status: BootstrapClaimStatus) -> None:
            status.charts_uploaded = True

        ctx.checkpoint(mark)

    def push_gitops_structure(self, ctx: PassContext) -> None:
        spec: BootstrapClaimSpec = ctx.spec
        self.publisher.publish(
            ctx.status.repository_urls[spec.repositories.voltran],
            spec.git_ops.branch,
            voltran_tree(spec, ctx.config),
            "Initial GitOps structure by operator",
            AUTHOR_NAME,
            AUTHOR_EMAIL,
        )

        def mark(status: BootstrapClaimStatus) -> None:
            status.root_app_generated = True

        ctx.checkpoint(mark)

    def push_argocd_setup(self, ctx: PassContext) -> None:
        spec: BootstrapClaimSpec = ctx.spec
        self.publisher.publish(
            ctx.status.repository_urls[spec.repositories.voltran],
            spec.git_ops.branch,
            argocd_setup_tree(spec, ctx.config.gitea_username),
            "Add ArgoCD setup manifests",
            AUTHOR_NAME,
            AUTHOR_EMAIL,
        )

    def cleanup(self, ctx: PassContext) -> None:
        # Repositories hold user data and outlive the claim
        logger.info(f"BootstrapClaim {ctx.ref.key} deleted; Git host resources are kept")


def bootstrap_strategy(steps: BootstrapSteps) -> ClaimStrategy:
    return ClaimStrategy(
        resource=BOOTSTRAP_CLAIM,
        spec_model=BootstrapClaimSpec,
        status_model=BootstrapClaimStatus,
        active_phase=Phase.BOOTSTRAPPING,
        ready_message="Bootstrap completed successfully",
        fail_on_transient=True,
        steps=[
            Step("create_organization", steps.create_organization,
                 failure="failed to create organization"),
            Step("create_repositories", steps.create_repositories,
                 failure="failed to create repository"),
            Step("load_charts", steps.load_charts, failure="failed to load charts"),
            Step("push_charts", steps.push_charts, failure="failed to push charts"),
            Step("push_gitops_structure", steps.push_gitops_structure,
                 failure="failed to push GitOps structure"),
            Step("push_argocd_setup", steps.push_argocd_setup,
                 failure="failed to push ArgoCD setup", best_effort=True),
        ],
        cleanup=steps.cleanup,
    )
