"""
infraforge CLI - Pipeline commands (pipeline, render).

`pipeline` runs as a promise pipeline stage: it reads one claim document,
renders the GitOps tree the claim would publish and writes it, together
with a metadata.yaml, into the output directory. `render` does the same
for a local file without any side effect beyond the optional output
directory.
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import click
import yaml
from pydantic import ValidationError

from infraforge.config import InfraforgeConfig, get_config
from infraforge.contracts.k8s import (
    APPLICATION_CLAIM,
    BOOTSTRAP_CLAIM,
    PLATFORM_APPLICATION_CLAIM,
    PLATFORM_CLAIM,
)
from infraforge.errors import InfraforgeError
from infraforge.generators.bootstrap import argocd_setup_tree, voltran_tree
from infraforge.generators.gitops import (
    FileTree,
    application_claim_tree,
    platform_application_claim_tree,
    platform_claim_tree,
    tenant_tree,
)
from infraforge.generators.objects import validate_components
from infraforge.generators.values import to_yaml
from infraforge.gitops.publisher import safe_relative_path
from infraforge.logger import configure_logging
from infraforge.models.claims import (
    ApplicationClaimSpec,
    BootstrapClaimSpec,
    PlatformApplicationClaimSpec,
    PlatformClaimSpec,
    TenantSpec,
)
from infraforge.naming import normalize_k8s_name

logger = logging.getLogger(__name__)

TENANT_KIND = "InfraForge"
DEFAULT_INPUT_PATH = "/kratix/input/object.yaml"
DEFAULT_OUTPUT_PATH = "/kratix/output"


class UnknownKindError(InfraforgeError):
    """Document kind has no renderer."""


@dataclass
class RenderedDocument:
    files: FileTree
    tenant: str
    environment: str

    def metadata(self) -> Dict[str, Any]:
        tenant = normalize_k8s_name(self.tenant)
        return {
            "name": f"{tenant}-{self.environment}",
            "labels": {
                "tenant": tenant,
                "environment": self.environment,
                "managed-by": "infraforge",
            },
        }


def render_document(document: Mapping[str, Any], config: InfraforgeConfig) -> RenderedDocument:
    """
    Render the GitOps tree for a claim or tenant document.

    Raises:
        UnknownKindError: kind is not one of the claim kinds or InfraForge
        pydantic.ValidationError: the spec does not parse
        UnsupportedComponentError: an ApplicationClaim names an unknown component
    """
    kind = document.get("kind")
    name = (document.get("metadata") or {}).get("name") or "unnamed"
    raw = document.get("spec") or {}

    if kind == APPLICATION_CLAIM.kind:
        spec = ApplicationClaimSpec.model_validate(raw)
        validate_components(spec.enabled_components())
        return RenderedDocument(
            application_claim_tree(spec, config), spec.owner.team, spec.environment
        )
    if kind == PLATFORM_CLAIM.kind:
        spec = PlatformClaimSpec.model_validate(raw)
        tenant = spec.owner.team if spec.owner else name
        return RenderedDocument(platform_claim_tree(spec, config), tenant, spec.environment)
    if kind == PLATFORM_APPLICATION_CLAIM.kind:
        spec = PlatformApplicationClaimSpec.model_validate(raw)
        tenant = spec.owner.team if spec.owner else name
        return RenderedDocument(
            platform_application_claim_tree(spec, config), tenant, spec.environment
        )
    if kind == BOOTSTRAP_CLAIM.kind:
        spec = BootstrapClaimSpec.model_validate(raw)
        files = voltran_tree(spec, config)
        files.update(argocd_setup_tree(spec, config.gitea_username))
        return RenderedDocument(files, spec.organization, spec.git_ops.cluster_type)
    if kind == TENANT_KIND:
        spec = TenantSpec.model_validate(raw)
        files = tenant_tree(spec, config, config.git_repo_url, config.git_branch)
        return RenderedDocument(files, spec.tenant, spec.environment)

    raise UnknownKindError(f"unsupported kind: {kind}")


def load_document(path: str) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        document = yaml.safe_load(f)
    if not isinstance(document, dict):
        raise UnknownKindError(f"{path} does not contain a YAML mapping")
    return document


def write_tree(output: Path, files: Mapping[str, str]) -> None:
    # Check every path before anything is written
    targets = [(output / safe_relative_path(rel), content) for rel, content in sorted(files.items())]
    for target, content in targets:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")


@click.command()
@click.option(
    "--input", "input_path",
    envvar="KRATIX_INPUT_PATH",
    default=DEFAULT_INPUT_PATH,
    show_default=True,
    help="Claim document to render",
)
@click.option(
    "--output", "output_path",
    envvar="KRATIX_OUTPUT_PATH",
    default=DEFAULT_OUTPUT_PATH,
    show_default=True,
    help="Directory receiving the rendered tree",
)
def pipeline(input_path: str, output_path: str):
    """Render a claim document into the pipeline output directory."""
    config = get_config()
    configure_logging(config.log_level, config.log_format)

    try:
        document = load_document(input_path)
        rendered = render_document(document, config)
        output = Path(output_path)
        write_tree(output, rendered.files)
        (output / "metadata.yaml").write_text(to_yaml(rendered.metadata()), encoding="utf-8")
    except (OSError, yaml.YAMLError, ValidationError, InfraforgeError) as e:
        logger.error(f"Pipeline failed for {input_path}: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    logger.info(f"Rendered {len(rendered.files)} file(s) from {input_path} into {output_path}")
    click.echo(f"Rendered {len(rendered.files)} file(s) to {output_path}")


@click.command()
@click.argument("claim_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", "output_path", type=click.Path(file_okay=False),
              help="Write the tree here instead of printing it")
def render(claim_file: str, output_path: Optional[str]):
    """Show the GitOps tree a claim would publish."""
    config = get_config()

    try:
        rendered = render_document(load_document(claim_file), config)
    except (OSError, yaml.YAMLError, ValidationError, InfraforgeError) as e:
        raise click.ClickException(str(e))

    if output_path:
        write_tree(Path(output_path), rendered.files)
        click.echo(f"Wrote {len(rendered.files)} file(s) to {output_path}")
        return

    for rel, content in sorted(rendered.files.items()):
        click.echo(f"--- {rel}")
        click.echo(content, nl=not content.endswith("\n"))
