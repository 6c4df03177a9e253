"""
Tests for desired-object builders and manifest rendering.
"""

import pytest
import yaml

from infraforge.cd.objects import (
    ApplicationTemplate,
    DesiredApplicationSet,
    Destination,
    GitDirectoryGenerator,
    ListGenerator,
    Source,
)
from infraforge.errors import UnsupportedComponentError
from infraforge.generators.manifests import manifest_yaml, render_manifest
from infraforge.generators.objects import (
    apps_application_set,
    component_chart,
    desired_application,
    desired_component_application,
    desired_project,
    desired_umbrella,
    owned_selector,
    platform_app_claim_application_set,
    platform_application_set,
    root_application,
    tenant_application_set,
    tenant_project,
    validate_components,
)
from infraforge.models.claims import (
    ApplicationClaimSpec,
    ComponentSpec,
    PlatformApplicationClaimSpec,
    PlatformClaimSpec,
)
from infraforge.naming import normalize_k8s_name


@pytest.fixture
def app_spec(application_claim_spec):
    return ApplicationClaimSpec.model_validate(application_claim_spec)


class TestNaming:
    @pytest.mark.parametrize("raw,expected", [
        ("Platform Team_A", "platform-team-a"),
        ("--Ops!!--", "ops"),
        ("already-fine", "already-fine"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_k8s_name(raw) == expected


class TestApplicationClaimObjects:
    def test_project(self, app_spec, config):
        """The project is named after the normalized team and environment."""
        project = render_manifest(desired_project("shop", app_spec, "shop-prod", config))
        assert project["kind"] == "AppProject"
        assert project["metadata"]["name"] == "team-a-prod"
        assert project["metadata"]["namespace"] == "argocd"
        assert project["spec"]["destinations"] == [
            {"server": "https://kubernetes.default.svc", "namespace": "shop-prod"}
        ]
        assert project["spec"]["roles"][0]["groups"] == ["Team A"]

    def test_application(self, app_spec, config):
        """Applications carry ownership labels, the retry policy and sized values."""
        app = desired_application("shop", app_spec, "shop-prod", app_spec.applications[0], config)
        manifest = render_manifest(app)

        assert manifest["apiVersion"] == "argoproj.io/v1alpha1"
        assert manifest["metadata"]["name"] == "shop-prod-web"
        labels = manifest["metadata"]["labels"]
        assert labels["platform.infraforge.io/managed"] == "true"
        assert labels["platform.infraforge.io/team"] == "team-a"
        assert labels["platform.infraforge.io/env"] == "prod"
        assert labels["platform.infraforge.io/claim"] == "shop"
        assert labels["platform.infraforge.io/application"] == "web"
        assert manifest["metadata"]["finalizers"] == ["resources-finalizer.argocd.argoproj.io"]

        spec = manifest["spec"]
        assert spec["project"] == "team-a-prod"
        assert spec["source"]["repoURL"] == "https://git.example.com/team-a/web"
        assert spec["source"]["targetRevision"] == "v1.2.0"
        assert spec["source"]["helm"]["valueFiles"] == ["values.yaml", "values-prod.yaml"]
        assert yaml.safe_load(spec["source"]["helm"]["values"])["replicaCount"] == 3
        assert spec["syncPolicy"]["automated"] == {"prune": True, "selfHeal": True, "allowEmpty": False}
        assert spec["syncPolicy"]["retry"] == {
            "limit": 5,
            "backoff": {"duration": "5s", "factor": 2, "maxDuration": "3m"},
        }
        assert spec["revisionHistoryLimit"] == 10

    def test_claim_namespace_label_scopes_ownership(self, app_spec, config):
        """The claim namespace is part of the ownership labels and the owned selector."""
        app = desired_application(
            "shop", app_spec, "shop-prod", app_spec.applications[0], config, "team-b"
        )
        labels = render_manifest(app)["metadata"]["labels"]
        selector = owned_selector("shop", "team-b")

        assert labels["platform.infraforge.io/claim-namespace"] == "team-b"
        assert all(labels[k] == v for k, v in selector.items())
        assert owned_selector("shop", "team-a")["platform.infraforge.io/claim-namespace"] == "team-a"

    def test_component_application(self, app_spec, config):
        component = app_spec.components[0]
        manifest = render_manifest(
            desired_component_application("shop", app_spec, "shop-prod", component, config)
        )
        assert manifest["metadata"]["name"] == "shop-prod-postgresql-db"
        assert manifest["metadata"]["labels"]["platform.infraforge.io/component"] == "postgresql"
        assert manifest["metadata"]["labels"]["platform.infraforge.io/instance"] == "db"
        source = manifest["spec"]["source"]
        assert source["chart"] == "postgresql"
        assert source["repoURL"] == "https://charts.bitnami.com/bitnami"
        assert source["helm"]["releaseName"] == "db"
        assert manifest["spec"]["syncPolicy"]["syncOptions"] == [
            "CreateNamespace=true", "ServerSideApply=true",
        ]

    def test_umbrella(self, app_spec, config):
        manifest = render_manifest(desired_umbrella("shop", app_spec, "shop-prod", config))
        assert manifest["metadata"]["name"] == "shop-prod-umbrella"
        assert manifest["metadata"]["labels"]["platform.infraforge.io/type"] == "app-of-apps"
        assert manifest["spec"]["source"]["directory"] == {"recurse": True}
        assert manifest["spec"]["destination"]["namespace"] == "argocd"

    def test_unsupported_component(self):
        """Unknown component types are rejected up front."""
        with pytest.raises(UnsupportedComponentError, match="cassandra"):
            validate_components([ComponentSpec(type="cassandra", name="c")])

    def test_component_chart_table(self):
        assert component_chart("elasticsearch").repo_url == "https://helm.elastic.co"
        assert component_chart("kafka").version == "26.4.0"

    def test_apps_application_set(self, app_spec, config):
        """The apps ApplicationSet lists each enabled app with chart and values."""
        manifest = render_manifest(apps_application_set(app_spec, {"web": "a: 1\n"}, config))
        elements = manifest["spec"]["generators"][0]["list"]["elements"]
        assert elements == [{"name": "web", "chart": "microservice", "version": "1.0.0", "values": "a: 1\n"}]
        assert manifest["metadata"]["name"] == "prod-apps"
        assert "goTemplate" not in manifest["spec"]


class TestPlatformObjects:
    def test_empty_services_render_empty_elements(self, config):
        """A claim without services yields a valid, empty list generator."""
        spec = PlatformClaimSpec(environment="dev")
        manifest = render_manifest(platform_application_set(spec, config))
        assert manifest["spec"]["generators"] == [{"list": {"elements": []}}]

    def test_platform_claim_values_path(self, config, platform_claim_spec):
        spec = PlatformClaimSpec.model_validate(platform_claim_spec)
        manifest = render_manifest(platform_application_set(spec, config))
        source = manifest["spec"]["template"]["spec"]["source"]
        assert source["repoURL"] == "http://gitea.test:3000/platform/charts"
        assert source["helm"]["valueFiles"] == [
            "../../voltran/environments/nonprod/dev/platform/{{service}}/values.yaml"
        ]
        elements = manifest["spec"]["generators"][0]["list"]["elements"]
        assert [e["service"] for e in elements] == ["orders-db", "cache"]

    def test_platform_application_claim_uses_two_sources(self, config):
        spec = PlatformApplicationClaimSpec.model_validate({
            "environment": "qa",
            "giteaURL": "http://git.other:3000/",
            "organization": "acme",
            "services": [{"name": "db", "type": "postgresql"}],
        })
        manifest = render_manifest(platform_app_claim_application_set(spec, config))
        sources = manifest["spec"]["template"]["spec"]["sources"]
        assert len(sources) == 2
        assert sources[0]["helm"]["valueFiles"] == [
            "$values/environments/nonprod/qa/platform/{{name}}/values.yaml"
        ]
        assert sources[1] == {
            "repoURL": "http://git.other:3000/acme/voltran.git",
            "targetRevision": "main",
            "ref": "values",
        }
        assert manifest["spec"]["template"]["spec"]["destination"]["namespace"] == "qa-platform"


class TestRootAndTenantObjects:
    def test_root_application(self, config):
        manifest = render_manifest(
            root_application("nonprod-apps-root", "http://g/acme/voltran", "appsets/nonprod/apps", "main", config)
        )
        assert manifest["spec"]["source"]["path"] == "appsets/nonprod/apps"
        assert manifest["spec"]["source"]["directory"] == {"recurse": True}
        assert manifest["spec"]["syncPolicy"]["syncOptions"] == ["CreateNamespace=true"]

    def test_prod_project_has_sync_window(self, config):
        manifest = render_manifest(tenant_project("prod", config))
        assert manifest["spec"]["syncWindows"][0]["schedule"] == "0 6 * * 1-5"
        assert "syncWindows" not in render_manifest(tenant_project("dev", config))["spec"]

    def test_git_generator_enables_go_template(self, config):
        appset = tenant_application_set("acme", "dev", "business", "http://g/r", "main", config)
        manifest = render_manifest(appset)
        assert manifest["spec"]["goTemplate"] is True
        git = manifest["spec"]["generators"][0]["git"]
        assert git["directories"] == [{"path": "manifests/platform-cluster/apps/dev/business-apps/*"}]
        assert manifest["spec"]["template"]["spec"]["destination"]["namespace"] == "acme-dev"

    def test_unknown_tenant_app_type(self, config):
        with pytest.raises(ValueError):
            tenant_application_set("acme", "dev", "misc", "http://g/r", "main", config)


class TestRendering:
    def test_yaml_is_deterministic(self, app_spec, config):
        """Rendering the same object twice is byte-identical."""
        first = manifest_yaml(desired_project("shop", app_spec, "shop-prod", config))
        second = manifest_yaml(desired_project("shop", app_spec, "shop-prod", config))
        assert first == second

    def test_unknown_generator_rejected(self):
        template = ApplicationTemplate(
            name="x", project="default",
            sources=[Source(repo_url="http://r")], destination=Destination(namespace="n"),
        )
        appset = DesiredApplicationSet(name="x", generator=object(), template=template)
        with pytest.raises(TypeError):
            render_manifest(appset)

    def test_list_and_git_generators(self):
        template = ApplicationTemplate(
            name="x", project="default",
            sources=[Source(repo_url="http://r")], destination=Destination(namespace="n"),
        )
        listed = render_manifest(DesiredApplicationSet("a", ListGenerator([{"k": "v"}]), template))
        git = render_manifest(DesiredApplicationSet("b", GitDirectoryGenerator("http://r", "main", ["*"]), template))
        assert "list" in listed["spec"]["generators"][0]
        assert "git" in git["spec"]["generators"][0]
