"""Deploy CronCat contracts to one or all supported networks.

For each network, in parallel:

1. derive participant accounts and race RPC endpoints
2. top up treasury and agent accounts from the deployer
3. deploy factory, manager, tasks, agents and query modules
4. write ``<WASM_BUILD_FOLDER>/<chain_name>-deployed_contracts.json``

After all networks finish, ``<WASM_BUILD_FOLDER>/deployed_factories.json`` lists
the factory of every network that got one.

Environment variables
---------------------

- ``SEED_PHRASE``: mnemonic of the deployer and all other participant accounts (required)
- ``SUPPORTED_NETWORKS``: comma separated chain names deployed to when no chain is given
- ``PAUSE_ADMIN_<CHAIN_NAME>``: pause admin address per chain, defaults to the deployer
- ``WASM_BUILD_FOLDER``: folder with ``croncat_*.wasm`` and ``checksums.txt``, default ``artifacts``
- ``FUND_AMOUNT``: target balance of each participant account, default ``5000000``
- ``PREFIX``, ``DENOM``, ``RPC_ENDPOINT``: override chain registry values
- ``LOG_LEVEL``: logging level, default ``info``

The chain's command line binary (``junod``, ``starsd``...) must be in ``PATH``.

Usage::

    SEED_PHRASE="..." poetry run python scripts/croncat/deploy.py

    # One network
    SEED_PHRASE="..." poetry run python scripts/croncat/deploy.py junotestnet
"""

from tabulate import tabulate

from croncat_deploy.config import DeployConfig
from croncat_deploy.orchestrator import close_sessions, deploy_networks, open_network_sessions
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
        console.print("No network sessions could be opened", style="bold red")
        return

    try:
        outcome = deploy_networks(config, opened.results, progress=True)
    finally:
        close_sessions(opened.results)

    for chain_name, deployment in sorted(outcome.results.items()):
        console.print(f"\n[bold cyan]{chain_name} deployed contracts[/bold cyan]")
        console.print(tabulate([a.to_json() for a in deployment.artifacts], headers="keys", tablefmt="fancy_grid"), markup=False, highlight=False)

    for chain_name, error in sorted(outcome.errors.items()):
        console.print(f"\n{chain_name} deployment ERROR: {error}", style="bold red", markup=False)

    console.print("\n[bold green]Done![/bold green]")


if __name__ == "__main__":
    main()
