"""
Pytest configuration and fixtures for infraforge tests.

The fakes below stand in for the cluster, the Git host, the publisher and
helm so reconciliation passes run fully in memory.
"""

from __future__ import annotations

import copy
import hashlib
import itertools
from typing import Any, Dict, Generator, List, Mapping, Optional, Tuple

import pytest

from infraforge.config import InfraforgeConfig, reset_config
from infraforge.contracts.k8s import CLAIM_API_VERSION, ResourceKind
from infraforge.errors import ConflictError, NotFoundError
from infraforge.gitops.gitea import CreateRepoOptions, Repository
from infraforge.gitops.publisher import PublishResult


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_config(monkeypatch) -> Generator[None, None, None]:
    """Isolate every test from INFRAFORGE_* variables and the config singleton."""
    import os

    for key in list(os.environ):
        if key.startswith("INFRAFORGE_") or key.startswith("KRATIX_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config() -> InfraforgeConfig:
    """Configuration with instant cleanup retries."""
    return InfraforgeConfig(
        gitea_url="http://gitea.test:3000",
        gitea_token="s3cr3t",
        cleanup_retry_delay_s=0,
    )


# ============================================================================
# Fake Cluster
# ============================================================================


Key = Tuple[str, Optional[str], str]


class FakeClusterAPI:
    """
    In-memory ClusterAPI.

    Tracks resourceVersion, rejects stale writes with ConflictError,
    honours finalizers on delete and can inject conflicts or failures.
    """

    def __init__(self):
        self.objects: Dict[Key, Dict[str, Any]] = {}
        self.namespaces: Dict[str, Dict[str, str]] = {}
        self.events: List[Dict[str, Any]] = []
        self.deleted: List[Key] = []
        self.calls: List[Tuple[str, str, Optional[str], str]] = []
        self.conflicts: int = 0
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self._rv = itertools.count(1)

    # helpers ---------------------------------------------------------------

    @staticmethod
    def _key(kind: ResourceKind, name: str, namespace: Optional[str]) -> Key:
        return (kind.plural, namespace if kind.namespaced else None, name)

    def _next_rv(self) -> str:
        return str(next(self._rv))

    def _maybe_fail(self, op: str, name: str) -> None:
        error = self.failures.get((op, name))
        if error is not None:
            raise error

    def _maybe_conflict(self) -> None:
        if self.conflicts > 0:
            self.conflicts -= 1
            raise ConflictError("injected conflict")

    def _check_version(self, stored: Dict[str, Any], body: Dict[str, Any]) -> None:
        wanted = body.get("metadata", {}).get("resourceVersion")
        if wanted is not None and wanted != stored["metadata"]["resourceVersion"]:
            raise ConflictError("stale resourceVersion")

    def add(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Seed an object without going through create()."""
        obj = copy.deepcopy(body)
        obj.setdefault("apiVersion", kind.api_version)
        obj.setdefault("kind", kind.kind)
        metadata = obj.setdefault("metadata", {})
        metadata["resourceVersion"] = self._next_rv()
        metadata.setdefault("uid", f"uid-{metadata['name']}")
        self.objects[self._key(kind, metadata["name"], metadata.get("namespace"))] = obj
        return copy.deepcopy(obj)

    def stored(self, kind: ResourceKind, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        return self.objects[self._key(kind, name, namespace)]

    def exists(self, kind: ResourceKind, name: str, namespace: Optional[str] = None) -> bool:
        return self._key(kind, name, namespace) in self.objects

    def names(self, kind: ResourceKind) -> List[str]:
        return sorted(k[2] for k in self.objects if k[0] == kind.plural)

    # ClusterAPI ------------------------------------------------------------

    def get(self, kind, name, namespace=None):
        self.calls.append(("get", kind.kind, namespace, name))
        self._maybe_fail("get", name)
        try:
            return copy.deepcopy(self.objects[self._key(kind, name, namespace)])
        except KeyError:
            raise NotFoundError(f"{kind.kind} {name} not found") from None

    def create(self, kind, body, namespace=None):
        name = body["metadata"]["name"]
        self.calls.append(("create", kind.kind, namespace, name))
        self._maybe_fail("create", name)
        key = self._key(kind, name, namespace)
        if key in self.objects:
            raise ConflictError(f"{kind.kind} {name} already exists")
        obj = copy.deepcopy(body)
        obj["metadata"]["resourceVersion"] = self._next_rv()
        obj["metadata"].setdefault("uid", f"uid-{name}")
        self.objects[key] = obj
        return copy.deepcopy(obj)

    def replace(self, kind, name, body, namespace=None):
        self.calls.append(("replace", kind.kind, namespace, name))
        self._maybe_fail("replace", name)
        key = self._key(kind, name, namespace)
        if key not in self.objects:
            raise NotFoundError(f"{kind.kind} {name} not found")
        stored = self.objects[key]
        self._maybe_conflict()
        self._check_version(stored, body)

        obj = copy.deepcopy(body)
        # The main resource endpoint never changes status
        if "status" in stored:
            obj["status"] = copy.deepcopy(stored["status"])
        else:
            obj.pop("status", None)
        obj["metadata"]["resourceVersion"] = self._next_rv()
        if stored["metadata"].get("deletionTimestamp"):
            obj["metadata"]["deletionTimestamp"] = stored["metadata"]["deletionTimestamp"]
            if not obj["metadata"].get("finalizers"):
                del self.objects[key]
                self.deleted.append(key)
                return copy.deepcopy(obj)
        self.objects[key] = obj
        return copy.deepcopy(obj)

    def replace_status(self, kind, name, body, namespace=None):
        self.calls.append(("replace_status", kind.kind, namespace, name))
        key = self._key(kind, name, namespace)
        if key not in self.objects:
            raise NotFoundError(f"{kind.kind} {name} not found")
        stored = self.objects[key]
        self._maybe_conflict()
        self._check_version(stored, body)
        stored["status"] = copy.deepcopy(body.get("status", {}))
        stored["metadata"]["resourceVersion"] = self._next_rv()
        return copy.deepcopy(stored)

    def delete(self, kind, name, namespace=None, grace_period_seconds=None):
        self.calls.append(("delete", kind.kind, namespace, name))
        self._maybe_fail("delete", name)
        key = self._key(kind, name, namespace)
        if key not in self.objects:
            raise NotFoundError(f"{kind.kind} {name} not found")
        stored = self.objects[key]
        if stored["metadata"].get("finalizers"):
            stored["metadata"]["deletionTimestamp"] = "2026-01-01T00:00:00Z"
            stored["metadata"]["resourceVersion"] = self._next_rv()
            return
        del self.objects[key]
        self.deleted.append(key)

    def list(self, kind, namespace=None, label_selector=None):
        self.calls.append(("list", kind.kind, namespace, ""))
        wanted = dict(label_selector or {})
        items = []
        for (plural, ns, _), obj in sorted(self.objects.items(), key=lambda kv: str(kv[0])):
            if plural != kind.plural:
                continue
            if namespace is not None and kind.namespaced and ns != namespace:
                continue
            labels = obj.get("metadata", {}).get("labels") or {}
            if all(labels.get(k) == v for k, v in wanted.items()):
                items.append(copy.deepcopy(obj))
        return items

    def ensure_namespace(self, name, labels):
        self.calls.append(("ensure_namespace", "Namespace", None, name))
        self._maybe_fail("ensure_namespace", name)
        self.namespaces.setdefault(name, {}).update(labels)

    def emit_event(self, obj, reason, message, event_type="Normal"):
        self.events.append({
            "name": obj.get("metadata", {}).get("name"),
            "reason": reason,
            "message": message,
            "type": event_type,
        })


@pytest.fixture
def cluster() -> FakeClusterAPI:
    return FakeClusterAPI()


# ============================================================================
# Fake Git host, publisher and helm
# ============================================================================


class FakePublisher:
    """Publisher keeping one in-memory tree per repository URL."""

    def __init__(self):
        self.repos: Dict[str, Dict[str, str]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    def publish(self, repo_url, branch, files, message, author_name, author_email, remove=()):
        self.calls.append({
            "repo_url": repo_url,
            "branch": branch,
            "files": dict(files),
            "message": message,
            "author": f"{author_name} <{author_email}>",
            "remove": list(remove),
        })
        if self.error is not None:
            raise self.error

        tree = self.repos.setdefault(repo_url, {})
        before = dict(tree)
        tree.update(files)
        for path in remove:
            prefix = path.rstrip("/") + "/"
            for existing in [p for p in tree if p == path or p.startswith(prefix)]:
                del tree[existing]

        if tree == before:
            return PublishResult(committed=False)
        digest = hashlib.sha1(repr(sorted(tree.items())).encode()).hexdigest()
        return PublishResult(committed=True, sha=digest)


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


class FakeGitea:
    """Git host recording organizations and repositories."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")
        self.organizations: List[str] = []
        self.repositories: Dict[str, CreateRepoOptions] = {}
        self.org_error: Optional[Exception] = None
        self.repo_errors: Dict[str, Exception] = {}

    def create_organization(self, name: str, description: str = "") -> None:
        if self.org_error is not None:
            raise self.org_error
        if name not in self.organizations:
            self.organizations.append(name)

    def create_repository(self, org: str, options: CreateRepoOptions) -> Repository:
        if options.name in self.repo_errors:
            raise self.repo_errors[options.name]
        self.repositories.setdefault(f"{org}/{options.name}", options)
        return Repository(
            name=options.name,
            full_name=f"{org}/{options.name}",
            clone_url=f"{self.base_url}/{org}/{options.name}.git",
        )


@pytest.fixture
def gitea() -> FakeGitea:
    return FakeGitea("http://gitea.test:3000")


class FakeHelm:
    def __init__(self):
        self.uninstalled: List[Tuple[str, str]] = []

    def uninstall(self, release: str, namespace: str) -> bool:
        self.uninstalled.append((release, namespace))
        return True


@pytest.fixture
def helm() -> FakeHelm:
    return FakeHelm()


# ============================================================================
# Sample Claims
# ============================================================================


def claim_object(kind: str, name: str, spec: Mapping[str, Any],
                 namespace: Optional[str] = "team-a", **metadata: Any) -> Dict[str, Any]:
    meta: Dict[str, Any] = {"name": name}
    if namespace is not None:
        meta["namespace"] = namespace
    meta.update(metadata)
    return {
        "apiVersion": CLAIM_API_VERSION,
        "kind": kind,
        "metadata": meta,
        "spec": copy.deepcopy(dict(spec)),
    }


@pytest.fixture
def application_claim_spec() -> Dict[str, Any]:
    """Production ApplicationClaim with one application and a postgresql component."""
    return {
        "environment": "prod",
        "clusterType": "prod",
        "namespace": "shop-prod",
        "owner": {"team": "Team A", "email": "team-a@example.com"},
        "applications": [
            {
                "name": "web",
                "version": "v1.2.0",
                "repository": "https://git.example.com/team-a/web",
                "image": {"repository": "ghcr.io/team-a/web", "tag": "1.2.0"},
                "ports": [{"name": "http", "port": 8080}],
            }
        ],
        "components": [
            {"type": "postgresql", "name": "db"},
        ],
    }


@pytest.fixture
def platform_claim_spec() -> Dict[str, Any]:
    return {
        "environment": "dev",
        "clusterType": "nonprod",
        "services": [
            {"name": "orders-db", "type": "postgresql", "version": "15.4", "size": "small"},
            {"name": "cache", "type": "redis", "highAvailability": True},
        ],
    }


@pytest.fixture
def bootstrap_claim_spec() -> Dict[str, Any]:
    return {
        "giteaURL": "http://gitea.test:3000/",
        "organization": "acme",
        "gitOps": {"branch": "main", "environments": ["dev", "prod"], "clusterType": "nonprod"},
    }


# ============================================================================
# Reconcilers
# ============================================================================


@pytest.fixture
def reconcilers(config, cluster, publisher, gitea, helm):
    """Reconcilers for every claim kind wired to the in-memory fakes."""
    from infraforge.reconcile.strategies import build_reconcilers

    return build_reconcilers(
        config,
        cluster,
        publisher=publisher,
        gitea_factory=lambda base_url: gitea,
        helm=helm,
    )
