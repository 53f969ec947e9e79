"""Run the CronCat lifecycle scenario against deployed contracts.

Agents register, get nominated, execute tasks, withdraw rewards and unregister.
User tasks are removed at the end. See :py:mod:`croncat_deploy.validator`.

Reads the factory address from ``<WASM_BUILD_FOLDER>/<chain_name>-deployed_contracts.json``,
so run ``deploy.py`` first.

Exits with status 1 if any step failed on any network.

Environment variables
---------------------

- ``SEED_PHRASE``: mnemonic used for deployment (required)
- ``SUPPORTED_NETWORKS``: chains checked when no chain is given
- ``WASM_BUILD_FOLDER``: deployment output folder, default ``artifacts``
- ``LOG_LEVEL``: logging level, default ``info``

Usage::

    SEED_PHRASE="..." poetry run python scripts/croncat/e2e.py junotestnet
"""

import sys

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
    if not opened.results:
        sys.exit(1)

    try:
        outcome = validate_networks(config, opened.results)
    finally:
        close_sessions(opened.results)

    passed = not outcome.errors
    for chain_name, report in sorted(outcome.results.items()):
        console.print(f"\n[bold cyan]{chain_name} end to end checks[/bold cyan]")
        console.print(report.format_table(), markup=False, highlight=False)
        passed = passed and report.is_passed()

    for chain_name, error in sorted(outcome.errors.items()):
        console.print(f"\n{chain_name} end to end ERROR: {error}", style="bold red", markup=False)

    if not passed:
        sys.exit(1)


if __name__ == "__main__":
    main()
