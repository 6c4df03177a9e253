"""
Centralized configuration for the platform operator.

Uses Pydantic BaseSettings for environment variable integration
and validation. All configurable values should be defined here.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (INFRAFORGE_*)
3. .env file
4. Default values

Example:
    from infraforge.config import get_config

    config = get_config()
    print(config.gitea_url)  # From INFRAFORGE_GITEA_URL or default

    # Override at runtime
    config = get_config(git_branch="develop")
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from infraforge.contracts.k8s import (
    ARGOCD_NAMESPACE,
    CHARTMUSEUM_URL,
    DEFAULT_CONFIG_REPO_URL,
    DEFAULT_GITEA_URL,
    IN_CLUSTER_SERVER,
)
from infraforge.contracts.timeouts import (
    CLEANUP_MAX_ATTEMPTS,
    CLEANUP_RETRY_DELAY_S,
    HTTP_CLIENT_TIMEOUT_S,
    PARTIAL_INSTALL_REQUEUE_DELAY_S,
    PUBLISH_REQUEUE_DELAY_S,
    STATUS_UPDATE_MAX_ATTEMPTS,
)


class InfraforgeConfig(BaseSettings):
    """
    Central configuration for the operator.

    All settings can be overridden via environment variables
    prefixed with INFRAFORGE_.

    Example:
        export INFRAFORGE_GITEA_TOKEN=s3cr3t
        export INFRAFORGE_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="INFRAFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Git hosting
    gitea_url: str = Field(
        default=DEFAULT_GITEA_URL,
        description="Base URL of the Gitea server",
    )
    gitea_username: str = Field(
        default="platform",
        description="Gitea user used for API calls and pushes",
    )
    gitea_token: Optional[str] = Field(
        default=None,
        description="Gitea access token",
    )
    gitea_org: str = Field(
        default="platform",
        description="Organization holding the GitOps repositories",
    )
    voltran_repo: str = Field(
        default="voltran",
        description="GitOps configuration repository name",
    )
    charts_repo: str = Field(
        default="charts",
        description="Helm charts repository name",
    )
    git_branch: str = Field(
        default="main",
        description="Branch generated files are pushed to",
    )
    charts_path: Optional[str] = Field(
        default=None,
        description="Local directory with embedded charts for bootstrap",
    )
    git_repo_url: str = Field(
        default=DEFAULT_CONFIG_REPO_URL,
        description="Fallback repository for application sources",
    )
    http_timeout_seconds: float = Field(
        default=HTTP_CLIENT_TIMEOUT_S,
        gt=0,
        description="Timeout for Git hosting API calls",
    )

    # Continuous deployment
    argocd_namespace: str = Field(
        default=ARGOCD_NAMESPACE,
        description="Namespace holding ArgoCD objects",
    )
    destination_server: str = Field(
        default=IN_CLUSTER_SERVER,
        description="Destination cluster API server for Applications",
    )
    chartmuseum_url: str = Field(
        default=CHARTMUSEUM_URL,
        description="Chart repository used by generated ApplicationSets",
    )

    # Reconciliation
    status_max_attempts: int = Field(
        default=STATUS_UPDATE_MAX_ATTEMPTS,
        ge=1,
        description="Attempts for an optimistic status update",
    )
    cleanup_max_attempts: int = Field(
        default=CLEANUP_MAX_ATTEMPTS,
        ge=1,
        description="Cleanup attempts before the finalizer is removed anyway",
    )
    cleanup_retry_delay_s: float = Field(
        default=CLEANUP_RETRY_DELAY_S,
        ge=0,
        description="Initial delay between cleanup attempts",
    )
    publish_requeue_s: float = Field(
        default=PUBLISH_REQUEUE_DELAY_S,
        ge=0,
        description="Requeue delay after a failed Git publish",
    )
    partial_requeue_s: float = Field(
        default=PARTIAL_INSTALL_REQUEUE_DELAY_S,
        ge=0,
        description="Requeue delay after a partially failed pass",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level for the operator",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format (json for Loki, text for console)",
    )

    # Metrics
    metrics_enabled: bool = Field(
        default=False,
        description="Record reconciliation metrics through OpenTelemetry",
    )

    # Kubernetes
    kubeconfig: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file (auto-detected if not set)",
    )

    @field_validator("gitea_url", "chartmuseum_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """URLs are joined with '/' so a trailing slash would double up."""
        return v.rstrip("/")

    @field_validator("charts_path")
    @classmethod
    def expand_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand ~ and environment variables in paths."""
        if v is None:
            return v
        return os.path.expanduser(os.path.expandvars(v))


# Global singleton
_config: Optional[InfraforgeConfig] = None


def get_config(**overrides) -> InfraforgeConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.

    Args:
        **overrides: Override any config values

    Returns:
        InfraforgeConfig instance
    """
    global _config

    if overrides or _config is None:
        _config = InfraforgeConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
