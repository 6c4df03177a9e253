"""
Pydantic models for the claim custom resources.

These models provide Python type safety and validation for the spec of
the four claim kinds served under platform.infraforge.io/v1:
ApplicationClaim, PlatformClaim, PlatformApplicationClaim and
BootstrapClaim. Field aliases match the camelCase wire format.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator


# Child and environment names become object names and GitOps paths
DNS_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


def dns_label(value: str) -> str:
    """Reject values that are not RFC 1123 labels."""
    if len(value) > 63 or not DNS_LABEL.match(value):
        raise ValueError(
            f"{value!r} must be a lowercase RFC 1123 label "
            "(a-z, 0-9 and '-', at most 63 characters)"
        )
    return value


DnsLabel = Annotated[str, AfterValidator(dns_label)]


class WireModel(BaseModel):
    """Base for models exchanged with the cluster in camelCase."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ComponentType(str, Enum):
    """Infrastructure component types with known charts."""
    POSTGRESQL = "postgresql"
    REDIS = "redis"
    MONGODB = "mongodb"
    KAFKA = "kafka"
    RABBITMQ = "rabbitmq"
    ELASTICSEARCH = "elasticsearch"


class SizeHint(str, Enum):
    """Coarse size hint overriding computed resources."""
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


# =============================================================================
# Shared
# =============================================================================


class OwnerSpec(WireModel):
    """Owning team and contact channels."""
    team: str = Field(..., description="Owning team")
    email: Optional[str] = None
    slack: Optional[str] = None


class ChartSpec(WireModel):
    """Helm chart reference."""
    name: Optional[str] = None
    source: Optional[str] = None
    repository: Optional[str] = None
    version: Optional[str] = None


class ResourceList(WireModel):
    cpu: Optional[str] = None
    memory: Optional[str] = None


class ResourceRequirements(WireModel):
    requests: ResourceList = Field(default_factory=ResourceList)
    limits: ResourceList = Field(default_factory=ResourceList)

    def is_empty(self) -> bool:
        return not (self.requests.cpu or self.requests.memory
                    or self.limits.cpu or self.limits.memory)


# =============================================================================
# ApplicationClaim
# =============================================================================


class ImageSpec(WireModel):
    repository: Optional[str] = None
    tag: Optional[str] = None
    pull_policy: Optional[str] = Field(None, alias="pullPolicy")
    pull_secrets: List[str] = Field(default_factory=list, alias="pullSecrets")


class PortSpec(WireModel):
    name: str
    port: int = Field(..., ge=1, le=65535)
    protocol: str = "TCP"


class HealthCheckSpec(WireModel):
    path: str = "/health"
    port: Optional[int] = None
    initial_delay_seconds: Optional[int] = Field(None, alias="initialDelaySeconds")
    period_seconds: Optional[int] = Field(None, alias="periodSeconds")


class KeyRef(WireModel):
    name: str
    key: str


class EnvVarSource(WireModel):
    secret_key_ref: Optional[KeyRef] = Field(None, alias="secretKeyRef")
    config_map_key_ref: Optional[KeyRef] = Field(None, alias="configMapKeyRef")


class EnvVar(WireModel):
    """Environment variable, literal or referenced from a Secret/ConfigMap."""
    name: str
    value: Optional[str] = None
    value_from: Optional[EnvVarSource] = Field(None, alias="valueFrom")


class AutoscalingSpec(WireModel):
    enabled: bool = False
    min_replicas: Optional[int] = Field(None, alias="minReplicas")
    max_replicas: Optional[int] = Field(None, alias="maxReplicas")
    target_cpu: Optional[int] = Field(None, alias="targetCPUUtilizationPercentage")
    target_memory: Optional[int] = Field(None, alias="targetMemoryUtilizationPercentage")


class IngressSpec(WireModel):
    enabled: bool = False
    host: Optional[str] = None
    path: Optional[str] = None
    tls: bool = False
    annotations: Dict[str, str] = Field(default_factory=dict)


class ApplicationSpec(WireModel):
    """One application deployed by an ApplicationClaim."""
    name: DnsLabel = Field(..., description="Application name")
    enabled: bool = True
    version: Optional[str] = Field(None, description="Git revision or release")
    repository: Optional[str] = Field(None, description="Source repository URL")
    chart: ChartSpec = Field(default_factory=ChartSpec)
    image: ImageSpec = Field(default_factory=ImageSpec)
    replicas: int = Field(0, ge=0)
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    ports: List[PortSpec] = Field(default_factory=list)
    health_check: Optional[HealthCheckSpec] = Field(None, alias="healthCheck")
    env: List[EnvVar] = Field(default_factory=list)
    autoscaling: Optional[AutoscalingSpec] = None
    ingress: Optional[IngressSpec] = None
    values: Dict[str, Any] = Field(default_factory=dict, description="Custom Helm values")

    @field_validator("replicas", mode="before")
    @classmethod
    def none_replicas_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class ComponentSpec(WireModel):
    """Infrastructure component (database, cache, queue) for an ApplicationClaim."""
    type: str = Field(..., description="Component type, e.g. postgresql")
    name: DnsLabel = Field(..., description="Instance name")
    version: Optional[str] = None
    size: Optional[SizeHint] = None
    config: Dict[str, Any] = Field(default_factory=dict, description="Custom Helm values")
    enabled: bool = True


class ApplicationClaimSpec(WireModel):
    """ApplicationClaim spec."""
    environment: DnsLabel
    cluster_type: str = Field("nonprod", alias="clusterType")
    namespace: Optional[str] = None
    owner: OwnerSpec
    gitea_url: Optional[str] = Field(None, alias="giteaURL")
    organization: Optional[str] = None
    applications: List[ApplicationSpec] = Field(default_factory=list)
    components: List[ComponentSpec] = Field(default_factory=list)

    def enabled_applications(self) -> List[ApplicationSpec]:
        return [a for a in self.applications if a.enabled]

    def enabled_components(self) -> List[ComponentSpec]:
        return [c for c in self.components if c.enabled]


# =============================================================================
# PlatformClaim / PlatformApplicationClaim
# =============================================================================


class BackupSpec(WireModel):
    enabled: bool = False
    schedule: Optional[str] = None
    retention: Optional[str] = None
    storage_class: Optional[str] = Field(None, alias="storageClass")


class PlatformServiceSpec(WireModel):
    """Platform service (database, queue, cache) managed through GitOps."""
    name: DnsLabel
    type: str
    version: Optional[str] = None
    chart: ChartSpec = Field(default_factory=ChartSpec)
    values: Dict[str, Any] = Field(default_factory=dict)
    size: Optional[SizeHint] = None
    high_availability: bool = Field(False, alias="highAvailability")
    backup: Optional[BackupSpec] = None
    monitoring: bool = False
    enabled: bool = True

    @property
    def chart_name(self) -> str:
        return self.chart.name or self.type


class PlatformClaimSpec(WireModel):
    """PlatformClaim spec."""
    environment: DnsLabel
    cluster_type: str = Field("nonprod", alias="clusterType")
    namespace: Optional[str] = None
    owner: Optional[OwnerSpec] = None
    services: List[PlatformServiceSpec] = Field(default_factory=list)

    def enabled_services(self) -> List[PlatformServiceSpec]:
        return [s for s in self.services if s.enabled]

    def disabled_services(self) -> List[PlatformServiceSpec]:
        return [s for s in self.services if not s.enabled]


class PlatformApplicationClaimSpec(PlatformClaimSpec):
    """PlatformApplicationClaim spec; adds the Git host coordinates."""
    gitea_url: Optional[str] = Field(None, alias="giteaURL")
    organization: Optional[str] = None
    storage_class: str = Field("standard", alias="storageClass")


# =============================================================================
# BootstrapClaim
# =============================================================================

DEFAULT_ENVIRONMENTS = ["dev", "qa", "sandbox", "staging", "prod"]


class RepositoriesSpec(WireModel):
    charts: str = "charts"
    voltran: str = "voltran"


class GitOpsSpec(WireModel):
    branch: str = "main"
    environments: List[DnsLabel] = Field(default_factory=lambda: list(DEFAULT_ENVIRONMENTS))
    cluster_type: str = Field("nonprod", alias="clusterType")

    @field_validator("environments")
    @classmethod
    def default_when_empty(cls, v: List[str]) -> List[str]:
        return v or list(DEFAULT_ENVIRONMENTS)


class ChartsRepositoryType(str, Enum):
    GIT = "git"
    OCI = "oci"


class ChartsRepositorySpec(WireModel):
    url: str
    type: ChartsRepositoryType = ChartsRepositoryType.GIT
    branch: str = "main"
    path: Optional[str] = None
    version: Optional[str] = None


class BootstrapClaimSpec(WireModel):
    """BootstrapClaim spec (cluster-scoped)."""
    gitea_url: str = Field(..., alias="giteaURL")
    organization: str
    repositories: RepositoriesSpec = Field(default_factory=RepositoriesSpec)
    git_ops: GitOpsSpec = Field(default_factory=GitOpsSpec, alias="gitOps")
    charts_repository: Optional[ChartsRepositorySpec] = Field(None, alias="chartsRepository")

    @field_validator("gitea_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# =============================================================================
# Tenant document (InfraForge kind, pipeline only)
# =============================================================================


class TenantServiceItem(WireModel):
    name: DnsLabel
    enabled: bool = False
    profile: Optional[str] = None


class TenantSpec(WireModel):
    """Legacy tenant document rendered by the pipeline command."""
    tenant: str
    environment: DnsLabel
    business: List[TenantServiceItem] = Field(default_factory=list)
    platform: List[TenantServiceItem] = Field(default_factory=list)
    operators: List[TenantServiceItem] = Field(default_factory=list)
