"""
Chart sources for bootstrap.

Each source loads a chart tree as {relative path: text}. Resolution
priority: an embedded directory (when configured and present), then a
Git repository, then an OCI registry.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from infraforge.contracts.timeouts import GIT_COMMAND_TIMEOUT_S, HELM_COMMAND_TIMEOUT_S
from infraforge.errors import ChartSourceError
from infraforge.models.claims import ChartsRepositorySpec, ChartsRepositoryType

logger = logging.getLogger(__name__)


def read_tree(root: Path) -> Dict[str, str]:
    """Read every text file under root, skipping .git and undecodable files."""
    files: Dict[str, str] = {}
    if not root.is_dir():
        return files
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        rel = path.relative_to(root)
        if ".git" in rel.parts:
            continue
        try:
            files[rel.as_posix()] = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.debug(f"Skipping binary chart file {rel}")
    return files


def _run(cmd: List[str], timeout: int, what: str) -> None:
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ChartSourceError(f"{what} failed: {e}") from e
    if result.returncode != 0:
        raise ChartSourceError(f"{what} failed: {(result.stderr or result.stdout).strip()}")


class EmbeddedChartSource:
    """Charts shipped with the operator image."""

    def __init__(self, path: str):
        self.path = path

    def describe(self) -> str:
        return f"embedded:{self.path}"

    def load(self) -> Dict[str, str]:
        return read_tree(Path(self.path))


class GitChartSource:
    """Charts cloned from a Git repository (depth 1), optionally a sub-path."""

    def __init__(self, url: str, branch: str = "main", path: Optional[str] = None,
                 git: str = "git", timeout: int = GIT_COMMAND_TIMEOUT_S):
        self.url = url
        self.branch = branch
        self.path = path
        self.git = git
        self.timeout = timeout

    def describe(self) -> str:
        return f"git:{self.url}@{self.branch}"

    def load(self) -> Dict[str, str]:
        with tempfile.TemporaryDirectory(prefix="infraforge-charts-") as tmp:
            workdir = os.path.join(tmp, "charts")
            _run(
                [self.git, "clone", "--depth", "1", "--branch", self.branch, self.url, workdir],
                self.timeout,
                f"cloning charts from {self.url}",
            )
            root = Path(workdir)
            if self.path:
                root = root / self.path.strip("/")
            return read_tree(root)


class OCIChartSource:
    """Chart pulled from an OCI registry with helm pull --untar."""

    def __init__(self, url: str, version: Optional[str] = None,
                 helm: str = "helm", timeout: int = HELM_COMMAND_TIMEOUT_S):
        self.url = url
        self.version = version
        self.helm = helm
        self.timeout = timeout

    def describe(self) -> str:
        return f"oci:{self.url}"

    def load(self) -> Dict[str, str]:
        with tempfile.TemporaryDirectory(prefix="infraforge-oci-") as tmp:
            cmd = [self.helm, "pull", self.url, "--untar", "--untardir", tmp]
            if self.version:
                cmd.extend(["--version", self.version])
            _run(cmd, self.timeout, f"pulling chart {self.url}")
            return read_tree(Path(tmp))


def select_chart_source(
    repository: Optional[ChartsRepositorySpec],
    embedded_path: Optional[str] = None,
):
    """Pick the highest-priority available chart source, or None."""
    if embedded_path and Path(embedded_path).is_dir():
        return EmbeddedChartSource(embedded_path)
    if repository is None:
        return None
    if repository.type == ChartsRepositoryType.OCI:
        return OCIChartSource(repository.url, repository.version)
    return GitChartSource(repository.url, repository.branch, repository.path)
