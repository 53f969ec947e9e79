"""Allow an agent address to register on a CronCat deployment.

The agents contract is deployed with public registration off, so new agents
must be whitelisted through the factory. The network is picked from the
address prefix unless given explicitly.

Environment variables
---------------------

- ``SEED_PHRASE``: mnemonic of the factory owner (required)
- ``WASM_BUILD_FOLDER``: deployment output folder, default ``artifacts``
- ``LOG_LEVEL``: logging level, default ``info``

Usage::

    SEED_PHRASE="..." poetry run python scripts/croncat/whitelist.py stars1b4kls73st8k5flxkwjyr4dfa3rwqtfary7ku86

    SEED_PHRASE="..." poetry run python scripts/croncat/whitelist.py stars1b4kls73st8k5flxkwjyr4dfa3rwqtfary7ku86 stargazetestnet
"""

import sys

from croncat_deploy.config import DeployConfig
from croncat_deploy.errors import CroncatDeployError
from croncat_deploy.network import SUPPORTED_NETWORKS, get_network_for_address
from croncat_deploy.orchestrator import close_sessions, open_network_sessions, whitelist_agent
from croncat_deploy.utils import setup_console_logging
from scripts.croncat.script_utils import console, get_positional_args, report_bootstrap_failures, resolve_networks_or_exit


def main():
    setup_console_logging()

    args = get_positional_args()
    if not args:
        console.print("Must specify an address to whitelist, e.g. whitelist.py stars1v406awlqrx7tftjqsgsvy4pjcrnjraple3puf2", style="red", markup=False)
        sys.exit(1)

    agent_address = args[0]
    config = DeployConfig.from_env()

    if len(args) > 1:
        networks = resolve_networks_or_exit(config, args[1])
    else:
        network = get_network_for_address(agent_address, list(SUPPORTED_NETWORKS.values()))
        if network is None:
            console.print(f"No supported network uses the prefix of {agent_address}", style="red", markup=False)
            sys.exit(1)
        networks = [config.apply_overrides(network)]

    console.print(f"Adding {agent_address} to whitelisted agents on {networks[0].pretty_name}")

    opened = open_network_sessions(config, networks)
    report_bootstrap_failures(opened.errors)
    if not opened.results:
        sys.exit(1)

    session = next(iter(opened.results.values()))
    try:
        result = whitelist_agent(config, session, agent_address)
        console.print(f"Agents Add to Whitelist on {session.network.pretty_name} [bold green]SUCCESS[/bold green], tx {result.txhash}")
    except CroncatDeployError as e:
        console.print(f"Agents Add to Whitelist on {session.network.pretty_name} ERROR: {e}", style="red", markup=False)
    finally:
        close_sessions(opened.results)


if __name__ == "__main__":
    main()
