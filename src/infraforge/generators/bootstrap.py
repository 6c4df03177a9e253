"""
Bootstrap file trees: the voltran skeleton, its root apps and the
ArgoCD setup manifests an administrator applies once.
"""

from __future__ import annotations

from typing import Dict

from infraforge.config import InfraforgeConfig
from infraforge.generators.gitops import APPS_LAYOUT, PLATFORM_LAYOUT, FileTree
from infraforge.generators.manifests import manifest_yaml
from infraforge.generators.objects import root_application
from infraforge.generators.values import to_yaml
from infraforge.models.claims import BootstrapClaimSpec

CHARTS_README = (
    "# Charts Repository\n\n"
    "This repository contains application Helm charts managed by the platform operator.\n"
)

VOLTRAN_README = """# Voltran - GitOps Configuration Repository

This repository contains the GitOps configuration managed by the platform operator.

## Structure

- root-apps/: ArgoCD root applications
- appsets/: ApplicationSet definitions (apps & platform separated)
- environments/: Environment-specific values (applications & platform separated)

## Cluster Type: {cluster_type}
"""

# Credentials are never committed; administrators replace these before applying
TOKEN_PLACEHOLDER = "GITEA_TOKEN"
GITHUB_TOKEN_PLACEHOLDER = "GITHUB_TOKEN"


def charts_placeholder() -> FileTree:
    """Charts tree used when no chart source yields any files."""
    return {"README.md": CHARTS_README}


def voltran_tree(spec: BootstrapClaimSpec, config: InfraforgeConfig) -> FileTree:
    """
    Initial voltran layout: README, the apps and platform root apps for
    the cluster type, and .gitkeep placeholders for every directory later
    claims publish into.
    """
    ct = spec.git_ops.cluster_type
    branch = spec.git_ops.branch
    repo_url = f"{spec.gitea_url}/{spec.organization}/{spec.repositories.voltran}"

    files: FileTree = {"README.md": VOLTRAN_README.format(cluster_type=ct)}

    for layout, suffix in ((APPS_LAYOUT, "apps"), (PLATFORM_LAYOUT, "platform")):
        root = root_application(
            name=f"{ct}-{suffix}-root",
            repo_url=repo_url,
            path=f"appsets/{ct}/{layout.appset_dir}",
            branch=branch,
            config=config,
        )
        files[f"root-apps/{ct}/{ct}-{suffix}-rootapp.yaml"] = manifest_yaml(root)
        files[f"appsets/{ct}/{layout.appset_dir}/.gitkeep"] = ""

    for env in spec.git_ops.environments:
        for layout in (APPS_LAYOUT, PLATFORM_LAYOUT):
            files[f"environments/{ct}/{env}/{layout.children_dir}/.gitkeep"] = ""

    return files


def _with_header(header: str, document: Dict) -> str:
    lines = "".join(f"# {line}\n" for line in header.splitlines())
    return lines + to_yaml(document)


def argocd_setup_tree(spec: BootstrapClaimSpec, username: str) -> FileTree:
    """Secrets and instructions letting ArgoCD read the generated repositories."""
    ct = spec.git_ops.cluster_type
    voltran_url = f"{spec.gitea_url}/{spec.organization}/{spec.repositories.voltran}"

    repo_secret = {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": "gitea-repo",
            "namespace": "argocd",
            "labels": {"argocd.argoproj.io/secret-type": "repository"},
        },
        "type": "Opaque",
        "stringData": {
            "type": "git",
            "url": voltran_url,
            "username": username,
            "password": TOKEN_PLACEHOLDER,
        },
    }
    oci_secret = {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": "helm-oci-creds",
            "namespace": "argocd",
            "labels": {"argocd.argoproj.io/secret-type": "repository"},
        },
        "type": "Opaque",
        "stringData": {
            "type": "helm",
            "url": "oci://ghcr.io/infraforge",
            "username": "infraforge",
            "password": GITHUB_TOKEN_PLACEHOLDER,
            "enableOCI": "true",
        },
    }
    readme = (
        "# ArgoCD Setup Manifests\n\n"
        "Replace the token placeholders, then apply:\n\n"
        "    kubectl apply -f argocd-setup/\n\n"
        f"The root apps are already generated in root-apps/{ct}/.\n"
    )
    return {
        "argocd-setup/01-repo-secret.yaml": _with_header(
            "ArgoCD Repository Secret for Gitea\n"
            f"Replace {TOKEN_PLACEHOLDER} with a Gitea access token",
            repo_secret,
        ),
        "argocd-setup/02-helm-oci-secret.yaml": _with_header(
            "ArgoCD Helm OCI Registry Credentials\n"
            f"Replace {GITHUB_TOKEN_PLACEHOLDER} with a GitHub token",
            oci_secret,
        ),
        "argocd-setup/README.md": readme,
    }
