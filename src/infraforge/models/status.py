"""
Pydantic models for claim status subresources.

All claim kinds share ClaimStatus (phase, ready flag, message, conditions,
lastUpdated); each kind adds its own per-child arrays and progress flags.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from infraforge.models.claims import WireModel


class Phase(str, Enum):
    """Claim lifecycle phase."""
    PENDING = "Pending"
    PROVISIONING = "Provisioning"
    BOOTSTRAPPING = "Bootstrapping"
    READY = "Ready"
    FAILED = "Failed"


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class Condition(WireModel):
    type: str
    status: str
    reason: Optional[str] = None
    message: Optional[str] = None
    last_transition_time: Optional[str] = Field(None, alias="lastTransitionTime")


class ClaimStatus(WireModel):
    """Status fields shared by every claim kind."""
    phase: Optional[Phase] = None
    ready: bool = False
    message: Optional[str] = None
    conditions: List[Condition] = Field(default_factory=list)
    last_updated: Optional[str] = Field(None, alias="lastUpdated")

    @field_validator("phase", mode="before")
    @classmethod
    def empty_phase_is_unset(cls, v):
        return v or None

    def set_condition(self, type_: str, status: bool, reason: str,
                      message: Optional[str] = None) -> None:
        """Upsert a condition; the transition time only moves when status flips."""
        value = "True" if status else "False"
        for condition in self.conditions:
            if condition.type == type_:
                if condition.status != value:
                    condition.last_transition_time = utc_now()
                condition.status = value
                condition.reason = reason
                condition.message = message
                return
        self.conditions.append(
            Condition(
                type=type_,
                status=value,
                reason=reason,
                message=message,
                last_transition_time=utc_now(),
            )
        )

    def reset_children(self) -> None:
        """Clear per-child arrays at the start of a provisioning pass."""

    def adopt_children(self, other: ClaimStatus) -> None:
        """Replace per-child arrays wholesale with those collected in other."""


class ApplicationStatus(WireModel):
    name: str
    ready: bool = False
    version: Optional[str] = None
    replicas: Optional[int] = None
    available_replicas: Optional[int] = Field(None, alias="availableReplicas")
    endpoints: List[str] = Field(default_factory=list)
    message: Optional[str] = None


class ComponentStatus(WireModel):
    name: str
    type: str
    ready: bool = False
    connection_string: Optional[str] = Field(None, alias="connectionString")
    secret_name: Optional[str] = Field(None, alias="secretName")
    message: Optional[str] = None


class ServiceStatus(WireModel):
    name: str
    type: str
    ready: bool = False
    version: Optional[str] = None
    endpoint: Optional[str] = None
    secret_name: Optional[str] = Field(None, alias="secretName")
    message: Optional[str] = None


class ApplicationClaimStatus(ClaimStatus):
    applications_ready: bool = Field(False, alias="applicationsReady")
    components_ready: bool = Field(False, alias="componentsReady")
    applications: List[ApplicationStatus] = Field(default_factory=list)
    components: List[ComponentStatus] = Field(default_factory=list)

    def reset_children(self) -> None:
        self.applications = []
        self.components = []
        self.applications_ready = False
        self.components_ready = False

    def adopt_children(self, other: ClaimStatus) -> None:
        self.applications = list(other.applications)
        self.components = list(other.components)
        self.applications_ready = other.applications_ready
        self.components_ready = other.components_ready


class PlatformClaimStatus(ClaimStatus):
    services_ready: bool = Field(False, alias="servicesReady")
    services: List[ServiceStatus] = Field(default_factory=list)

    def reset_children(self) -> None:
        self.services = []
        self.services_ready = False

    def adopt_children(self, other: ClaimStatus) -> None:
        self.services = list(other.services)
        self.services_ready = other.services_ready


class BootstrapClaimStatus(ClaimStatus):
    repositories_created: bool = Field(False, alias="repositoriesCreated")
    charts_uploaded: bool = Field(False, alias="chartsUploaded")
    root_app_generated: bool = Field(False, alias="rootAppGenerated")
    repository_urls: Dict[str, str] = Field(default_factory=dict, alias="repositoryURLs")
