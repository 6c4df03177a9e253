"""
infraforge CLI - Run the claim operator and render claims.

Commands:
    infraforge controller   Run the kopf operator for the claim kinds
    infraforge pipeline     Render a claim document into a pipeline output dir
    infraforge render       Show the GitOps tree a claim would publish
"""

import click

from .core import controller
from .pipeline import pipeline, render


@click.group()
@click.version_option(package_name="infraforge")
def main():
    """infraforge - Multi-tenant platform provisioning through claims."""
    pass


main.add_command(controller)
main.add_command(pipeline)
main.add_command(render)


if __name__ == "__main__":
    main()
