"""
Resource sizing policy.

Pure lookup tables mapping (environment, component type, size hint) to
resource requests/limits, replica counts and persistence sizes.

Environment tiers, lowest cost first:
- dev: anything not recognised below
- staging: staging, standard, uat
- prod: prod, production

A size hint (small/medium/large) overrides the computed requests and
limits but never the replica count.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Tier(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


_TIER_ALIASES = {
    "prod": Tier.PROD,
    "production": Tier.PROD,
    "staging": Tier.STAGING,
    "standard": Tier.STAGING,
    "uat": Tier.STAGING,
}


def tier_for(environment: Optional[str]) -> Tier:
    """Map an environment name onto a sizing tier; unknown names are dev."""
    if not environment:
        return Tier.DEV
    return _TIER_ALIASES.get(environment.lower(), Tier.DEV)


@dataclass(frozen=True)
class Resources:
    cpu: str
    memory: str

    def to_dict(self) -> Dict[str, str]:
        return {"cpu": self.cpu, "memory": self.memory}


@dataclass(frozen=True)
class Sizing:
    """Computed sizing for one component or application."""
    requests: Resources
    limits: Resources
    replicas: int
    persistence_size: str
    backup: bool = False

    def resources_dict(self) -> Dict[str, Dict[str, str]]:
        return {"requests": self.requests.to_dict(), "limits": self.limits.to_dict()}


_TIER_TABLE = {
    Tier.PROD: (3, Resources("500m", "1Gi"), Resources("1000m", "2Gi")),
    Tier.STAGING: (2, Resources("250m", "512Mi"), Resources("500m", "1Gi")),
    Tier.DEV: (1, Resources("100m", "256Mi"), Resources("250m", "512Mi")),
}

_SIZE_OVERRIDES = {
    "large": (Resources("1000m", "2Gi"), Resources("2000m", "4Gi")),
    "small": (Resources("50m", "128Mi"), Resources("100m", "256Mi")),
}

_PERSISTENCE = {
    Tier.PROD: "20Gi",
    Tier.STAGING: "20Gi",
    Tier.DEV: "10Gi",
}

# Per-type persistence where the tier default does not apply
_PERSISTENCE_BY_TYPE = {
    (Tier.PROD, "postgresql"): "100Gi",
    (Tier.PROD, "redis"): "10Gi",
}


def size_component(
    environment: Optional[str],
    component_type: str,
    size_hint: Optional[str] = None,
) -> Sizing:
    """
    Compute sizing for a component in an environment.

    Args:
        environment: Environment name (dev, staging, production, ...)
        component_type: Component type, e.g. postgresql
        size_hint: Optional small/medium/large override for requests/limits

    Returns:
        Sizing with requests, limits, replicas and persistence size
    """
    tier = tier_for(environment)
    replicas, requests, limits = _TIER_TABLE[tier]

    hint = getattr(size_hint, "value", size_hint)
    if hint in _SIZE_OVERRIDES:
        requests, limits = _SIZE_OVERRIDES[hint]

    persistence = _PERSISTENCE_BY_TYPE.get((tier, component_type), _PERSISTENCE[tier])

    return Sizing(
        requests=requests,
        limits=limits,
        replicas=replicas,
        persistence_size=persistence,
        backup=tier is Tier.PROD and component_type == "postgresql",
    )


# =============================================================================
# Platform service sizing (size hint only)
# =============================================================================

_SERVICE_SIZES = {
    "large": (Resources("2000m", "4Gi"), Resources("4000m", "8Gi")),
    "small": (Resources("100m", "256Mi"), Resources("200m", "512Mi")),
    "medium": (Resources("500m", "1Gi"), Resources("1000m", "2Gi")),
}


def service_resources(size_hint: Optional[str]) -> Dict[str, Dict[str, str]]:
    """Resources for a platform service; unset or unknown hints are medium."""
    hint = getattr(size_hint, "value", size_hint)
    requests, limits = _SERVICE_SIZES.get(hint or "medium", _SERVICE_SIZES["medium"])
    return {"requests": requests.to_dict(), "limits": limits.to_dict()}


# =============================================================================
# Generator profiles (tenant pipeline)
# =============================================================================


@dataclass(frozen=True)
class Profile:
    replicas: int
    limits: Resources
    requests: Resources
    autoscaling: Dict[str, Any] = field(default_factory=dict)


_PROFILES = {
    "production": Profile(
        replicas=3,
        limits=Resources("500m", "512Mi"),
        requests=Resources("250m", "256Mi"),
        autoscaling={
            "enabled": True,
            "minReplicas": 3,
            "maxReplicas": 10,
            "targetCPUUtilizationPercentage": 80,
        },
    ),
    "standard": Profile(
        replicas=2,
        limits=Resources("200m", "256Mi"),
        requests=Resources("100m", "128Mi"),
    ),
    "dev": Profile(
        replicas=1,
        limits=Resources("100m", "128Mi"),
        requests=Resources("50m", "64Mi"),
    ),
}


def resource_profile(name: Optional[str]) -> Profile:
    """Look up a generator profile; an unset or unknown profile is dev."""
    return _PROFILES.get(name or "dev", _PROFILES["dev"])

