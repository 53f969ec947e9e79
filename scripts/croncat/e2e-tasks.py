"""Create one task per sample interval and boundary, then remove them all.

Checks the tasks contract accepts every interval and boundary variant.
Rejections are listed in the report, they do not stop the sweep.

Environment variables
---------------------

- ``SEED_PHRASE``: mnemonic used for deployment (required)
- ``SUPPORTED_NETWORKS``: chains checked when no chain is given
- ``WASM_BUILD_FOLDER``: deployment output folder, default ``artifacts``
- ``LOG_LEVEL``: logging level, default ``info``

Usage::

    SEED_PHRASE="..." poetry run python scripts/croncat/e2e-tasks.py junotestnet
"""

from croncat_deploy.config import DeployConfig
from croncat_deploy.orchestrator import close_sessions, open_network_sessions, validate_networks
from croncat_deploy.utils import setup_console_logging
from scripts.croncat.script_utils import console, get_positional_args, report_bootstrap_failures, resolve_networks_or_exit


def main():
    setup_console_logging()

    args = get_positional_args()
    config = DeployConfig.from_env()
    networks = resolve_networks_or_exit(config, args[0] if args else None)

    opened = open_network_sessions(config, networks)
    report_bootstrap_failures(opened.errors)

    try:
        outcome = validate_networks(config, opened.results, task_variants=True)
    finally:
        close_sessions(opened.results)

    for chain_name, report in sorted(outcome.results.items()):
        console.print(f"\n[bold cyan]{chain_name} task variants[/bold cyan]")
        console.print(report.format_table(), markup=False, highlight=False)

    for chain_name, error in sorted(outcome.errors.items()):
        console.print(f"\n{chain_name} task variants ERROR: {error}", style="bold red", markup=False)


if __name__ == "__main__":
    main()
