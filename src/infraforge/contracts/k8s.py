"""
Kubernetes and ArgoCD contract constants.

Single source of truth for API groups, resource kinds, label keys and
finalizer names used by the operator and its generated manifests.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# =============================================================================
# Claim API
# =============================================================================

CLAIM_GROUP = "platform.infraforge.io"
CLAIM_VERSION = "v1"
CLAIM_API_VERSION = f"{CLAIM_GROUP}/{CLAIM_VERSION}"

# Finalizer attached to every claim on first reconciliation
CLAIM_FINALIZER = "platform.infraforge.io/finalizer"

# =============================================================================
# ArgoCD
# =============================================================================

ARGOCD_GROUP = "argoproj.io"
ARGOCD_VERSION = "v1alpha1"
ARGOCD_API_VERSION = f"{ARGOCD_GROUP}/{ARGOCD_VERSION}"
ARGOCD_NAMESPACE = "argocd"
ARGOCD_RESOURCES_FINALIZER = "resources-finalizer.argocd.argoproj.io"

IN_CLUSTER_SERVER = "https://kubernetes.default.svc"
CHARTMUSEUM_URL = "http://chartmuseum.chartmuseum.svc.cluster.local:8080"
DEFAULT_CONFIG_REPO_URL = "https://github.com/infraforge/platform-configs"
DEFAULT_GITEA_URL = "http://gitea.gitea.svc.cluster.local:3000"

# =============================================================================
# Labels
# =============================================================================

LABEL_PREFIX = "platform.infraforge.io"


class Label(str, Enum):
    """Ownership and classification label keys."""
    MANAGED = f"{LABEL_PREFIX}/managed"
    TEAM = f"{LABEL_PREFIX}/team"
    ENV = f"{LABEL_PREFIX}/env"
    ENVIRONMENT = f"{LABEL_PREFIX}/environment"
    CLAIM = f"{LABEL_PREFIX}/claim"
    CLAIM_NAMESPACE = f"{LABEL_PREFIX}/claim-namespace"
    APPLICATION = f"{LABEL_PREFIX}/application"
    COMPONENT = f"{LABEL_PREFIX}/component"
    INSTANCE = f"{LABEL_PREFIX}/instance"
    TYPE = f"{LABEL_PREFIX}/type"
    OPERATOR = f"{LABEL_PREFIX}/operator"
    CLUSTER = f"{LABEL_PREFIX}/cluster"
    SERVICE = f"{LABEL_PREFIX}/service"


# =============================================================================
# Resource kinds
# =============================================================================


@dataclass(frozen=True)
class ResourceKind:
    """Addressing information for a custom resource."""
    group: str
    version: str
    plural: str
    kind: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


APPLICATION_CLAIM = ResourceKind(CLAIM_GROUP, CLAIM_VERSION, "applicationclaims", "ApplicationClaim")
PLATFORM_CLAIM = ResourceKind(CLAIM_GROUP, CLAIM_VERSION, "platformclaims", "PlatformClaim")
PLATFORM_APPLICATION_CLAIM = ResourceKind(
    CLAIM_GROUP, CLAIM_VERSION, "platformapplicationclaims", "PlatformApplicationClaim"
)
BOOTSTRAP_CLAIM = ResourceKind(
    CLAIM_GROUP, CLAIM_VERSION, "bootstrapclaims", "BootstrapClaim", namespaced=False
)

ARGO_APPLICATION = ResourceKind(ARGOCD_GROUP, ARGOCD_VERSION, "applications", "Application")
ARGO_APPLICATION_SET = ResourceKind(ARGOCD_GROUP, ARGOCD_VERSION, "applicationsets", "ApplicationSet")
ARGO_PROJECT = ResourceKind(ARGOCD_GROUP, ARGOCD_VERSION, "appprojects", "AppProject")

CLAIM_KINDS = {
    rk.kind: rk
    for rk in (APPLICATION_CLAIM, PLATFORM_CLAIM, PLATFORM_APPLICATION_CLAIM, BOOTSTRAP_CLAIM)
}

ARGO_KINDS = {
    rk.kind: rk for rk in (ARGO_APPLICATION, ARGO_APPLICATION_SET, ARGO_PROJECT)
}
