"""Shared helpers for CronCat command line scripts.

.. note::
    Scripts import this module as ``from scripts.croncat.script_utils import ...``.
    Run them from the repository root, e.g. ``poetry run python scripts/croncat/deploy.py``.
"""

import sys

from rich.console import Console

from croncat_deploy.config import DeployConfig
from croncat_deploy.network import Network

console = Console()


def resolve_networks_or_exit(config: DeployConfig, chain_name: str | None) -> list[Network]:
    """Networks for this run, exit with an error message for an unknown chain name."""
    try:
        networks = config.resolve_networks(chain_name)
    except ValueError as e:
        console.print(f"Error: {e}", style="bold red", markup=False)
        sys.exit(1)

    if not networks:
        console.print("[bold red]Error:[/bold red] No networks configured, set SUPPORTED_NETWORKS or give a chain name")
        sys.exit(1)

    return networks


def get_positional_args() -> list[str]:
    return [a for a in sys.argv[1:] if not a.startswith("-")]


def report_bootstrap_failures(errors: dict[str, Exception]):
    for chain_name, error in sorted(errors.items()):
        console.print(f"{chain_name}: could not open session: {error}", style="red", markup=False)
