"""
Desired continuous-deployment objects.

DesiredObject is a tagged union of DesiredProject, DesiredApplication and
DesiredApplicationSet. Builders in infraforge.generators.objects produce
them; infraforge.generators.manifests renders them into argoproj.io
manifests; the Projector upserts them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Union

from infraforge.contracts.k8s import ARGO_KINDS, ARGOCD_NAMESPACE, IN_CLUSTER_SERVER, ResourceKind


@dataclass(frozen=True)
class RetryPolicy:
    limit: int = 5
    duration: str = "5s"
    factor: int = 2
    max_duration: str = "3m"


@dataclass(frozen=True)
class SyncPolicy:
    """Automated sync settings; allow_empty None omits the field."""
    prune: bool = True
    self_heal: bool = True
    allow_empty: Optional[bool] = False
    sync_options: List[str] = field(default_factory=lambda: ["CreateNamespace=true"])
    retry: Optional[RetryPolicy] = None


@dataclass(frozen=True)
class HelmSource:
    release_name: Optional[str] = None
    value_files: List[str] = field(default_factory=list)
    values: Optional[str] = None


@dataclass(frozen=True)
class Source:
    """One Application source: a Git path or a Helm chart."""
    repo_url: str
    target_revision: str = "HEAD"
    path: Optional[str] = None
    chart: Optional[str] = None
    helm: Optional[HelmSource] = None
    directory_recurse: bool = False
    ref: Optional[str] = None


@dataclass(frozen=True)
class Destination:
    namespace: str
    server: str = IN_CLUSTER_SERVER


@dataclass(frozen=True)
class ProjectRole:
    name: str
    policies: List[str]
    groups: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SyncWindow:
    kind: str
    schedule: str
    duration: str
    applications: List[str] = field(default_factory=lambda: ["*"])
    manual_sync: bool = True


@dataclass
class DesiredProject:
    name: str
    description: str
    destinations: List[Destination]
    namespace: str = ARGOCD_NAMESPACE
    source_repos: List[str] = field(default_factory=lambda: ["*"])
    roles: List[ProjectRole] = field(default_factory=list)
    sync_windows: List[SyncWindow] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)

    kind: ClassVar[str] = "AppProject"

    @property
    def resource_kind(self) -> ResourceKind:
        return ARGO_KINDS[self.kind]


@dataclass
class DesiredApplication:
    name: str
    project: str
    sources: List[Source]
    destination: Destination
    sync_policy: SyncPolicy = field(default_factory=SyncPolicy)
    namespace: str = ARGOCD_NAMESPACE
    labels: Dict[str, str] = field(default_factory=dict)
    finalizers: List[str] = field(default_factory=list)
    revision_history_limit: Optional[int] = None

    kind: ClassVar[str] = "Application"

    @property
    def resource_kind(self) -> ResourceKind:
        return ARGO_KINDS[self.kind]


@dataclass(frozen=True)
class ListGenerator:
    elements: List[Dict[str, Any]]


@dataclass(frozen=True)
class GitDirectoryGenerator:
    repo_url: str
    revision: str
    directories: List[str]


@dataclass(frozen=True)
class ApplicationTemplate:
    """Application template stamped out per generator element."""
    name: str
    project: str
    sources: List[Source]
    destination: Destination
    sync_policy: SyncPolicy = field(default_factory=SyncPolicy)
    labels: Dict[str, str] = field(default_factory=dict)
    namespace: Optional[str] = None


@dataclass
class DesiredApplicationSet:
    name: str
    generator: Union[ListGenerator, GitDirectoryGenerator]
    template: ApplicationTemplate
    namespace: str = ARGOCD_NAMESPACE
    labels: Dict[str, str] = field(default_factory=dict)

    kind: ClassVar[str] = "ApplicationSet"

    @property
    def go_template(self) -> bool:
        return isinstance(self.generator, GitDirectoryGenerator)

    @property
    def resource_kind(self) -> ResourceKind:
        return ARGO_KINDS[self.kind]


DesiredObject = Union[DesiredProject, DesiredApplication, DesiredApplicationSet]
