"""
GitOps publisher.

Publishes a file tree to a Git repository as one atomic unit:
clone, write, remove, stage, commit, push. A tree identical to the
branch head is a successful no-op, so republishing an unchanged claim
never produces an empty commit.

Uses the git CLI through subprocess; the working copy lives in a
temporary directory removed on every exit path.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Mapping, Optional, Type
from urllib.parse import quote, urlsplit, urlunsplit

from infraforge.contracts.timeouts import GIT_COMMAND_TIMEOUT_S
from infraforge.errors import CloneError, CommitError, PublishError, PushError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishResult:
    committed: bool
    sha: Optional[str] = None


def inject_credentials(repo_url: str, username: Optional[str], token: Optional[str]) -> str:
    """Embed basic-auth credentials into an HTTP(S) URL; other URLs are returned unchanged."""
    if not token:
        return repo_url
    parts = urlsplit(repo_url)
    if parts.scheme not in ("http", "https"):
        return repo_url
    user = quote(username or "git", safe="")
    netloc = f"{user}:{quote(token, safe='')}@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def safe_relative_path(path: str) -> PurePosixPath:
    """Relative path of a generated file; refuses absolute or parent-escaping paths."""
    rel = PurePosixPath(path)
    if rel.is_absolute() or ".." in rel.parts or not rel.parts:
        raise CommitError(f"refusing to write outside the repository: {path}")
    return rel


class GitPublisher:
    """
    Publish file trees to Git repositories.

    Example:
        publisher = GitPublisher(username="platform", token="...")
        result = publisher.publish(
            "http://gitea:3000/platform/voltran.git", "main",
            {"appsets/nonprod/apps/dev-appset.yaml": "..."},
            "Update dev applications", "Platform Operator", "operator@platform.local",
        )
    """

    def __init__(
        self,
        username: Optional[str] = None,
        token: Optional[str] = None,
        timeout: int = GIT_COMMAND_TIMEOUT_S,
        git: str = "git",
    ):
        self.username = username
        self.token = token
        self.timeout = timeout
        self.git = git

    def _redact(self, text: str) -> str:
        if self.token:
            return text.replace(self.token, "***")
        return text

    def _run(
        self,
        args: List[str],
        cwd: Optional[str],
        error_cls: Type[PublishError],
        repo_url: str,
    ) -> str:
        cmd = [self.git, *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise error_cls(f"git {args[0]} failed: {self._redact(str(e))}", repo_url) from e

        if result.returncode != 0:
            detail = self._redact((result.stderr or result.stdout).strip())
            raise error_cls(f"git {args[0]} failed: {detail}", repo_url)
        return result.stdout

    def publish(
        self,
        repo_url: str,
        branch: str,
        files: Mapping[str, str],
        message: str,
        author_name: str,
        author_email: str,
        remove: Iterable[str] = (),
    ) -> PublishResult:
        """
        Commit files (and removals) to branch and push.

        Returns:
            PublishResult(committed=False) when the tree was already up to date

        Raises:
            CloneError, CommitError, PushError
        """
        url = inject_credentials(repo_url, self.username, self.token)

        with tempfile.TemporaryDirectory(prefix="infraforge-publish-") as tmp:
            workdir = os.path.join(tmp, "repo")
            self._run(
                ["clone", "--depth", "1", "--branch", branch, url, workdir],
                None, CloneError, repo_url,
            )

            root = Path(workdir)
            for path, content in files.items():
                target = root / safe_relative_path(path)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")

            for path in remove:
                target = root / safe_relative_path(path)
                if target.is_dir():
                    shutil.rmtree(target)
                elif target.exists():
                    target.unlink()

            self._run(["add", "-A"], workdir, CommitError, repo_url)
            status = self._run(["status", "--porcelain"], workdir, CommitError, repo_url)
            if not status.strip():
                logger.info(f"No changes to publish to {repo_url}@{branch}")
                return PublishResult(committed=False)

            self._run(
                [
                    "-c", f"user.name={author_name}",
                    "-c", f"user.email={author_email}",
                    "commit", "-m", message,
                    "--author", f"{author_name} <{author_email}>",
                ],
                workdir, CommitError, repo_url,
            )
            sha = self._run(["rev-parse", "HEAD"], workdir, CommitError, repo_url).strip()
            self._run(["push", "origin", f"HEAD:{branch}"], workdir, PushError, repo_url)

        logger.info(f"Published {sha[:8]} to {repo_url}@{branch}: {message}")
        return PublishResult(committed=True, sha=sha)
