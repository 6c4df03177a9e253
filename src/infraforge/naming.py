"""
Deterministic names for generated objects.

Every name is derived purely from the claim and child identifiers so
that repeated reconciliation passes address the same objects.
"""

from __future__ import annotations

import re

_INVALID_CHARS = re.compile(r"[^a-z0-9-]")


def normalize_k8s_name(name: str) -> str:
    """
    Convert a free-form name into a valid Kubernetes resource name.

    Lowercases, turns spaces and underscores into dashes, drops anything
    outside [a-z0-9-] and trims leading/trailing dashes.

    Example:
        >>> normalize_k8s_name("Platform Team_A")
        'platform-team-a'
    """
    name = name.lower().replace(" ", "-").replace("_", "-")
    name = _INVALID_CHARS.sub("", name)
    return name.strip("-")


def project_name(team: str, environment: str) -> str:
    return f"{normalize_k8s_name(team)}-{environment}"


def application_name(namespace: str, app: str) -> str:
    return f"{namespace}-{app}"


def component_application_name(namespace: str, component_type: str, component: str) -> str:
    return f"{namespace}-{component_type}-{component}"


def umbrella_application_name(namespace: str) -> str:
    return f"{namespace}-umbrella"


def component_secret_name(claim: str, component: str) -> str:
    return f"{claim}-{component}-secret"
