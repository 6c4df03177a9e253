"""
Gitea API client.

Creates the organization and repositories a BootstrapClaim asks for.
Both operations are idempotent: "already exists" responses are treated
as success and, for repositories, resolved with a follow-up GET.
"""

from __future__ import annotations

import json
import logging
import time as time_module
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from infraforge.contracts.timeouts import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BACKOFF,
    DEFAULT_RETRY_DELAY_S,
    HTTP_CLIENT_TIMEOUT_S,
    RETRYABLE_HTTP_STATUS_CODES,
)
from infraforge.errors import GitHostError, TransientError

logger = logging.getLogger(__name__)


@dataclass
class CreateRepoOptions:
    name: str
    description: str = ""
    private: bool = False
    auto_init: bool = True
    default_branch: str = "main"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "private": self.private,
            "auto_init": self.auto_init,
            "default_branch": self.default_branch,
        }


@dataclass
class Repository:
    name: str
    full_name: str
    clone_url: str
    html_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Repository":
        return cls(
            name=data["name"],
            full_name=data.get("full_name", data["name"]),
            clone_url=data.get("clone_url", ""),
            html_url=data.get("html_url"),
        )


class GiteaClient:
    """
    Minimal Gitea REST client.

    Authenticates with "Authorization: token <tok>" when a token is set,
    otherwise with basic auth. 429 and 5xx responses as well as
    connection errors are retried with exponential backoff.

    Example:
        client = GiteaClient("http://gitea:3000", token="...")
        client.create_organization("platform", "Platform organization")
        repo = client.create_repository("platform", CreateRepoOptions(name="charts"))
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = HTTP_CLIENT_TIMEOUT_S,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time_module.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.username = username
        self.password = password
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport
        self._sleep = sleep

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def _get_auth(self) -> Optional[tuple]:
        if self.token or not self.username:
            return None
        return (self.username, self.password or "")

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._get_headers(),
            auth=self._get_auth(),
            transport=self._transport,
        )

    def _request_with_retry(
        self,
        client: httpx.Client,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """
        Execute an HTTP request, retrying transient failures.

        Raises:
            TransientError: If retries are exhausted on connection failure
        """
        delay = DEFAULT_RETRY_DELAY_S

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < self.max_retries:
                    logger.warning(
                        f"Gitea request {method} {url} failed: {e}, "
                        f"retrying in {delay:.1f}s ({attempt + 1}/{self.max_retries + 1})"
                    )
                    self._sleep(delay)
                    delay *= DEFAULT_RETRY_BACKOFF
                    continue
                raise TransientError(f"Gitea request {method} {url} failed: {e}") from e

            if response.status_code in RETRYABLE_HTTP_STATUS_CODES and attempt < self.max_retries:
                logger.warning(
                    f"Gitea returned {response.status_code} for {method} {url}, "
                    f"retrying in {delay:.1f}s ({attempt + 1}/{self.max_retries + 1})"
                )
                self._sleep(delay)
                delay *= DEFAULT_RETRY_BACKOFF
                continue

            return response

        raise RuntimeError("Unexpected retry loop exit")

    @staticmethod
    def _format_error(response: httpx.Response) -> str:
        try:
            message = response.json().get("message", response.text)
        except (json.JSONDecodeError, ValueError, AttributeError):
            message = response.text
        return f"HTTP {response.status_code}: {message}"

    def clone_url(self, org: str, repo: str) -> str:
        return f"{self.base_url}/{org}/{repo}.git"

    def create_organization(self, name: str, description: str = "") -> None:
        """Create an organization; an existing one (422) is fine."""
        payload = {"username": name, "description": description, "visibility": "public"}
        with self._client() as client:
            response = self._request_with_retry(client, "POST", "/api/v1/orgs", json=payload)

        if response.status_code == 201:
            logger.info(f"Created Gitea organization {name}")
            return
        if response.status_code == 422:
            logger.debug(f"Gitea organization {name} already exists")
            return
        raise GitHostError(
            f"failed to create organization {name}: {self._format_error(response)}",
            status=response.status_code,
        )

    def get_repository(self, org: str, name: str) -> Repository:
        with self._client() as client:
            response = self._request_with_retry(client, "GET", f"/api/v1/repos/{org}/{name}")
        if response.status_code != 200:
            raise GitHostError(
                f"failed to get repository {org}/{name}: {self._format_error(response)}",
                status=response.status_code,
            )
        return self._with_clone_url(org, Repository.from_api(response.json()))

    def create_repository(self, org: str, options: CreateRepoOptions) -> Repository:
        """Create a repository in org, or return it if it already exists (409/422)."""
        with self._client() as client:
            response = self._request_with_retry(
                client, "POST", f"/api/v1/orgs/{org}/repos", json=options.to_payload()
            )

        if response.status_code == 201:
            logger.info(f"Created Gitea repository {org}/{options.name}")
            return self._with_clone_url(org, Repository.from_api(response.json()))
        if response.status_code in (409, 422):
            logger.debug(f"Gitea repository {org}/{options.name} already exists")
            return self.get_repository(org, options.name)
        raise GitHostError(
            f"failed to create repository {options.name}: {self._format_error(response)}",
            status=response.status_code,
        )

    def _with_clone_url(self, org: str, repo: Repository) -> Repository:
        # In-cluster clients reach Gitea through base_url, not the advertised URL
        repo.clone_url = self.clone_url(org, repo.name)
        return repo
