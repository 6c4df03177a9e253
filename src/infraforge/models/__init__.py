"""Claim spec and status models."""

from infraforge.models.claims import (
    ApplicationClaimSpec,
    ApplicationSpec,
    BootstrapClaimSpec,
    ComponentSpec,
    ComponentType,
    PlatformApplicationClaimSpec,
    PlatformClaimSpec,
    PlatformServiceSpec,
    SizeHint,
    TenantSpec,
)
from infraforge.models.status import (
    ApplicationClaimStatus,
    BootstrapClaimStatus,
    ClaimStatus,
    Phase,
    PlatformClaimStatus,
)

__all__ = [
    "ApplicationClaimSpec",
    "ApplicationClaimStatus",
    "ApplicationSpec",
    "BootstrapClaimSpec",
    "BootstrapClaimStatus",
    "ClaimStatus",
    "ComponentSpec",
    "ComponentType",
    "Phase",
    "PlatformApplicationClaimSpec",
    "PlatformClaimSpec",
    "PlatformClaimStatus",
    "PlatformServiceSpec",
    "SizeHint",
    "TenantSpec",
]
