"""
Tests for the kubernetes-backed ClusterAPI and helm wrapper.
"""

import subprocess
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException

from infraforge.cluster.api import KubernetesClusterAPI, format_selector, map_api_exception
from infraforge.cluster.helm import HelmClient
from infraforge.contracts.k8s import ARGO_APPLICATION, BOOTSTRAP_CLAIM
from infraforge.errors import (
    ClusterError,
    ConflictError,
    NotFoundError,
    TransientError,
)


@pytest.fixture
def custom_api():
    return MagicMock()


@pytest.fixture
def core_api():
    return MagicMock()


@pytest.fixture
def api(custom_api, core_api):
    return KubernetesClusterAPI(custom_api=custom_api, core_api=core_api)


class TestErrorMapping:
    @pytest.mark.parametrize("status,error", [
        (404, NotFoundError),
        (409, ConflictError),
        (429, TransientError),
        (503, TransientError),
        (403, ClusterError),
    ])
    def test_map_api_exception(self, status, error):
        mapped = map_api_exception(ApiException(status=status, reason="nope"), "get thing")
        assert isinstance(mapped, error)
        assert "get thing: nope" in str(mapped)

    def test_cluster_error_keeps_status(self):
        assert map_api_exception(ApiException(status=400), "x").status == 400

    def test_get_not_found(self, api, custom_api):
        custom_api.get_namespaced_custom_object.side_effect = ApiException(status=404)
        with pytest.raises(NotFoundError):
            api.get(ARGO_APPLICATION, "web", "argocd")


class TestScope:
    def test_namespaced_calls(self, api, custom_api):
        custom_api.get_namespaced_custom_object.return_value = {"metadata": {"name": "web"}}
        assert api.get(ARGO_APPLICATION, "web", "argocd")["metadata"]["name"] == "web"
        custom_api.get_namespaced_custom_object.assert_called_once_with(
            group="argoproj.io", version="v1alpha1", plural="applications",
            namespace="argocd", name="web",
        )

    def test_cluster_scoped_calls(self, api, custom_api):
        """BootstrapClaim is cluster-scoped and uses the cluster endpoints."""
        api.replace_status(BOOTSTRAP_CLAIM, "acme", {"status": {}})
        custom_api.replace_cluster_custom_object_status.assert_called_once()
        custom_api.replace_namespaced_custom_object_status.assert_not_called()

    def test_list_with_selector(self, api, custom_api):
        custom_api.list_namespaced_custom_object.return_value = {"items": [{"a": 1}]}
        items = api.list(ARGO_APPLICATION, "argocd", {"b": "2", "a": "1"})
        assert items == [{"a": 1}]
        kwargs = custom_api.list_namespaced_custom_object.call_args.kwargs
        assert kwargs["label_selector"] == "a=1,b=2"

    def test_format_selector_empty(self):
        assert format_selector({}) is None


class TestNamespaces:
    def test_creates_missing_namespace(self, api, core_api):
        core_api.read_namespace.side_effect = ApiException(status=404)
        api.ensure_namespace("shop-prod", {"team": "team-a"})
        body = core_api.create_namespace.call_args.kwargs["body"]
        assert body == {"metadata": {"name": "shop-prod", "labels": {"team": "team-a"}}}
        core_api.patch_namespace.assert_not_called()

    def test_existing_namespace_is_labeled(self, api, core_api):
        api.ensure_namespace("shop-prod", {"team": "team-a"})
        core_api.create_namespace.assert_not_called()
        core_api.patch_namespace.assert_called_once_with(
            name="shop-prod", body={"metadata": {"labels": {"team": "team-a"}}},
        )

    def test_read_failure_is_mapped(self, api, core_api):
        core_api.read_namespace.side_effect = ApiException(status=500)
        with pytest.raises(TransientError):
            api.ensure_namespace("shop-prod", {})


class TestEvents:
    def test_event_body(self, api, core_api):
        obj = {"apiVersion": "v1", "kind": "PlatformClaim",
               "metadata": {"name": "core", "namespace": "team-a", "uid": "u1"}}
        api.emit_event(obj, "CleanupAbandoned", "gave up", "Warning")
        kwargs = core_api.create_namespaced_event.call_args.kwargs
        assert kwargs["namespace"] == "team-a"
        assert kwargs["body"]["reason"] == "CleanupAbandoned"
        assert kwargs["body"]["type"] == "Warning"
        assert kwargs["body"]["involvedObject"]["uid"] == "u1"

    def test_cluster_scoped_events_use_default_namespace(self, api, core_api):
        api.emit_event({"metadata": {"name": "acme"}}, "Ready", "done")
        assert core_api.create_namespaced_event.call_args.kwargs["namespace"] == "default"

    def test_event_failures_are_not_raised(self, api, core_api):
        core_api.create_namespaced_event.side_effect = ApiException(status=403)
        api.emit_event({"metadata": {"name": "x"}}, "Ready", "done")


class TestHelmClient:
    def _result(self, returncode, stderr=""):
        return subprocess.CompletedProcess(args=[], returncode=returncode, stdout="", stderr=stderr)

    def test_uninstall(self):
        with patch("infraforge.cluster.helm.subprocess.run", return_value=self._result(0)) as run:
            assert HelmClient().uninstall("shop-db", "shop-prod") is True
        assert run.call_args.args[0] == ["helm", "uninstall", "shop-db", "--namespace", "shop-prod"]

    def test_missing_release(self):
        result = self._result(1, "Error: uninstall: Release not loaded: shop-db: release: not found")
        with patch("infraforge.cluster.helm.subprocess.run", return_value=result):
            assert HelmClient().uninstall("shop-db", "shop-prod") is False

    def test_other_failure_is_transient(self):
        with patch("infraforge.cluster.helm.subprocess.run", return_value=self._result(1, "boom")):
            with pytest.raises(TransientError, match="boom"):
                HelmClient().uninstall("shop-db", "shop-prod")

    def test_missing_binary(self):
        with patch("infraforge.cluster.helm.subprocess.run", side_effect=FileNotFoundError("helm")):
            with pytest.raises(TransientError):
                HelmClient().uninstall("shop-db", "shop-prod")
