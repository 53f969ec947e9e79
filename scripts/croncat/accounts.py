"""Display participant accounts and balances.

Environment variables
---------------------

- ``SEED_PHRASE``: mnemonic the accounts are derived from (required)
- ``SUPPORTED_NETWORKS``: chains listed when no chain is given
- ``PAUSE_ADMIN_<CHAIN_NAME>``: pause admin address per chain
- ``LOG_LEVEL``: logging level, default ``warning``

Usage::

    SEED_PHRASE="..." poetry run python scripts/croncat/accounts.py
    SEED_PHRASE="..." poetry run python scripts/croncat/accounts.py junotestnet
"""

from croncat_deploy.config import DeployConfig
from croncat_deploy.orchestrator import close_sessions, open_network_sessions
from croncat_deploy.session import list_accounts
from croncat_deploy.utils import setup_console_logging
from scripts.croncat.script_utils import console, get_positional_args, report_bootstrap_failures, resolve_networks_or_exit


def main():
    setup_console_logging(default_log_level="warning")

    args = get_positional_args()
    config = DeployConfig.from_env()
    networks = resolve_networks_or_exit(config, args[0] if args else None)

    opened = open_network_sessions(config, networks)
    report_bootstrap_failures(opened.errors)

    try:
        for chain_name, session in sorted(opened.results.items()):
            console.print(list_accounts(session), markup=False, highlight=False)
    finally:
        close_sessions(opened.results)


if __name__ == "__main__":
    main()
