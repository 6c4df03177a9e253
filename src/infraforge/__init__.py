"""
infraforge - Multi-tenant platform provisioning through declarative claims.

Teams submit claim resources to the cluster; the operator reconciles each
claim into continuous-deployment objects (ArgoCD projects, Applications,
ApplicationSets) and GitOps commits, reporting progress on the claim's
status.

Claim kinds (platform.infraforge.io/v1):
- ApplicationClaim: applications plus infrastructure components
- PlatformClaim / PlatformApplicationClaim: platform services via GitOps
- BootstrapClaim: one-time Git organization and repository setup

Example usage:
    from infraforge.config import get_config
    from infraforge.reconcile import ClaimRef
    from infraforge.reconcile.strategies import build_reconcilers

    reconcilers = build_reconcilers(get_config(), cluster)
    result = reconcilers["PlatformClaim"].reconcile(ClaimRef("PlatformClaim", "core", "team-a"))
"""

__version__ = "0.1.0"
