"""
Tests for claim spec and status models.
"""

import pytest
from pydantic import ValidationError

from infraforge.models import (
    ApplicationClaimSpec,
    ApplicationClaimStatus,
    BootstrapClaimSpec,
    BootstrapClaimStatus,
    ClaimStatus,
    Phase,
    PlatformClaimSpec,
    PlatformClaimStatus,
)
from infraforge.models.claims import DEFAULT_ENVIRONMENTS
from infraforge.models.status import ApplicationStatus, ComponentStatus, ServiceStatus


class TestApplicationClaimSpec:
    """Test ApplicationClaimSpec model."""

    def test_wire_format(self, application_claim_spec):
        """camelCase wire fields parse into snake_case attributes."""
        spec = ApplicationClaimSpec.model_validate(application_claim_spec)
        assert spec.cluster_type == "prod"
        assert spec.owner.team == "Team A"
        assert spec.applications[0].ports[0].port == 8080
        assert spec.components[0].type == "postgresql"

    def test_requires_owner(self):
        """An ApplicationClaim without an owner is invalid."""
        with pytest.raises(ValidationError):
            ApplicationClaimSpec.model_validate({"environment": "dev"})

    def test_enabled_filters(self, application_claim_spec):
        application_claim_spec["applications"].append({"name": "old", "enabled": False})
        application_claim_spec["components"].append({"type": "redis", "name": "c", "enabled": False})
        spec = ApplicationClaimSpec.model_validate(application_claim_spec)
        assert [a.name for a in spec.enabled_applications()] == ["web"]
        assert [c.name for c in spec.enabled_components()] == ["db"]

    def test_invalid_port(self):
        with pytest.raises(ValidationError):
            ApplicationClaimSpec.model_validate({
                "environment": "dev",
                "owner": {"team": "a"},
                "applications": [{"name": "web", "ports": [{"name": "http", "port": 70000}]}],
            })

    def test_unknown_size_hint_rejected(self):
        with pytest.raises(ValidationError):
            ApplicationClaimSpec.model_validate({
                "environment": "dev",
                "owner": {"team": "a"},
                "components": [{"type": "redis", "name": "c", "size": "huge"}],
            })

    @pytest.mark.parametrize("name", ["../../escaped", "Web", "web_app", "-web", "a" * 64])
    def test_child_names_must_be_dns_labels(self, application_claim_spec, name):
        """Child names end up in object names and paths, so only RFC 1123 labels pass."""
        application_claim_spec["applications"][0]["name"] = name
        with pytest.raises(ValidationError, match="RFC 1123 label"):
            ApplicationClaimSpec.model_validate(application_claim_spec)

    def test_component_name_checked(self, application_claim_spec):
        application_claim_spec["components"][0]["name"] = "db/../x"
        with pytest.raises(ValidationError):
            ApplicationClaimSpec.model_validate(application_claim_spec)


class TestPlatformClaimSpec:
    def test_defaults(self):
        spec = PlatformClaimSpec(environment="dev")
        assert spec.cluster_type == "nonprod"
        assert spec.services == []

    def test_enabled_and_disabled(self, platform_claim_spec):
        platform_claim_spec["services"][0]["enabled"] = False
        spec = PlatformClaimSpec.model_validate(platform_claim_spec)
        assert [s.name for s in spec.enabled_services()] == ["cache"]
        assert [s.name for s in spec.disabled_services()] == ["orders-db"]

    def test_chart_name_defaults_to_type(self, platform_claim_spec):
        spec = PlatformClaimSpec.model_validate(platform_claim_spec)
        assert spec.services[1].chart_name == "redis"

    def test_service_name_checked(self, platform_claim_spec):
        platform_claim_spec["services"][0]["name"] = "../../../escaped"
        with pytest.raises(ValidationError, match="RFC 1123 label"):
            PlatformClaimSpec.model_validate(platform_claim_spec)

    def test_environment_checked(self):
        with pytest.raises(ValidationError):
            PlatformClaimSpec(environment="../prod")


class TestBootstrapClaimSpec:
    def test_trailing_slash_stripped(self, bootstrap_claim_spec):
        spec = BootstrapClaimSpec.model_validate(bootstrap_claim_spec)
        assert spec.gitea_url == "http://gitea.test:3000"
        assert spec.repositories.charts == "charts"
        assert spec.git_ops.environments == ["dev", "prod"]

    def test_empty_environments_use_defaults(self):
        spec = BootstrapClaimSpec.model_validate({
            "giteaURL": "http://g", "organization": "acme", "gitOps": {"environments": []},
        })
        assert spec.git_ops.environments == DEFAULT_ENVIRONMENTS


class TestClaimStatus:
    def test_empty_phase_is_unset(self):
        assert ClaimStatus.model_validate({"phase": ""}).phase is None

    def test_wire_round_trip_uses_aliases(self):
        status = BootstrapClaimStatus(
            phase=Phase.READY, repositories_created=True,
            repository_urls={"charts": "http://g/acme/charts.git"},
        )
        wire = status.to_wire()
        assert wire["phase"] == "Ready"
        assert wire["repositoriesCreated"] is True
        assert wire["repositoryURLs"] == {"charts": "http://g/acme/charts.git"}
        assert "message" not in wire

    def test_set_condition_moves_time_only_on_flip(self):
        """Re-asserting the same status keeps lastTransitionTime."""
        status = ClaimStatus()
        status.set_condition("Ready", False, "Provisioning")
        first = status.conditions[0].last_transition_time
        status.conditions[0].last_transition_time = "2000-01-01T00:00:00Z"

        status.set_condition("Ready", False, "StillProvisioning", "busy")
        assert len(status.conditions) == 1
        assert status.conditions[0].last_transition_time == "2000-01-01T00:00:00Z"
        assert status.conditions[0].reason == "StillProvisioning"

        status.set_condition("Ready", True, "Ready")
        assert status.conditions[0].status == "True"
        assert status.conditions[0].last_transition_time != "2000-01-01T00:00:00Z"
        assert first is not None

    def test_application_children_reset_and_adopt(self):
        """Child arrays are rebuilt per pass, never appended across passes."""
        live = ApplicationClaimStatus(
            applications=[ApplicationStatus(name="old")],
            components=[ComponentStatus(name="db", type="postgresql")],
            applications_ready=True,
        )
        collected = ApplicationClaimStatus()
        collected.reset_children()
        collected.applications.append(ApplicationStatus(name="web", ready=True))

        live.adopt_children(collected)
        assert [a.name for a in live.applications] == ["web"]
        assert live.components == []
        assert live.applications_ready is False

    def test_platform_children(self):
        status = PlatformClaimStatus(services=[ServiceStatus(name="a", type="redis")], services_ready=True)
        status.reset_children()
        assert status.services == []
        assert status.services_ready is False
