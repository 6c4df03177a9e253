"""infraforge CLI - Core commands (controller)."""

import os
import shutil
import subprocess
from typing import Optional

import click

from infraforge.config import get_config
from infraforge.logger import configure_logging


@click.command()
@click.option("--kubeconfig", envvar="KUBECONFIG", help="Path to kubeconfig")
@click.option("--namespace", default="", help="Namespace to watch (empty for all)")
@click.option("--verbose/--quiet", default=True, help="Pass --verbose to kopf")
def controller(kubeconfig: Optional[str], namespace: str, verbose: bool):
    """Run the claim operator (kopf) against the current cluster."""
    config = get_config()
    configure_logging(config.log_level, "text")

    click.echo("Starting infraforge controller...")
    click.echo(f"  kubeconfig: {kubeconfig or 'in-cluster'}")
    click.echo(f"  namespace: {namespace or 'all'}")

    if not shutil.which("kopf"):
        raise click.ClickException(
            "kopf not found in PATH.\n"
            "Install with: pip install kopf\n"
            "Or ensure kopf is in your PATH."
        )

    cmd = ["kopf", "run", "-m", "infraforge.operator"]
    if verbose:
        cmd.append("--verbose")
    if namespace:
        cmd.extend(["--namespace", namespace])
    else:
        cmd.append("--all-namespaces")

    env = dict(os.environ)
    if kubeconfig:
        env["KUBECONFIG"] = kubeconfig
        env["INFRAFORGE_KUBECONFIG"] = kubeconfig

    click.echo(f"  Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd, env=env)
    except FileNotFoundError:
        raise click.ClickException(
            "kopf executable not found.\n"
            "Install with: pip install kopf\n"
            "Or ensure kopf is accessible in your PATH."
        )
    if result.returncode != 0:
        raise click.ClickException(
            f"Controller exited with error.\n"
            f"Exit code: {result.returncode}\n"
            f"Command: {' '.join(cmd)}"
        )
