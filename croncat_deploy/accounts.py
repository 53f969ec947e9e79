"""Participant accounts derived from one seed phrase.

Each role gets a fixed BIP-44 account index, so addresses are stable across runs:

=========== ===================================
Role        Derivation path
=========== ===================================
deployer    ``m/44'/118'/0'/0/0``
treasury    ``m/44'/118'/0'/0/1``
agent1      ``m/44'/118'/0'/0/2``
...         ...
agent5      ``m/44'/118'/0'/0/6``
=========== ===================================

Keys are imported into a ``test`` backend keyring under the role name
with ``<daemon> keys add <role> --recover --index <n>``, replacing a key of the
same name left by an earlier run in a reused keyring home. Signing
commands refer to them by address.

``pause_admin`` is not derived. It is usually a multisig configured per network.
"""

import logging

from croncat_deploy.client import KEYRING_BACKEND, ChainCli
from croncat_deploy.errors import ChainCommandFailed, WalletDerivationFailed

logger = logging.getLogger(__name__)

#: Signing roles in derivation index order
ACCOUNT_ROLES = ("deployer", "treasury", "agent1", "agent2", "agent3", "agent4", "agent5")

#: Cosmos coin type
COIN_TYPE = 118

#: Role name for the contract pause admin
PAUSE_ADMIN_ROLE = "pause_admin"


def get_derivation_path(index: int) -> str:
    return f"m/44'/{COIN_TYPE}'/0'/0/{index}"


def remove_existing_key(cli: ChainCli, role: str, keyring_args: list[str]):
    """Delete a key left in a reused keyring home by an earlier run.

    ``keys add`` asks for confirmation before overwriting an existing name,
    and would read the mnemonic on stdin as the answer.
    """
    try:
        cli.exec(["keys", "delete", role, "-y"] + keyring_args, json_output=False)
    except ChainCommandFailed as e:
        if "key not found" not in str(e):
            raise
    else:
        logger.debug("Removed existing %s key from keyring", role)


def derive_account(cli: ChainCli, seed_phrase: str, role: str, index: int, prefix: str) -> str:
    """Import one role key into the keyring.

    :return:
        Bech32 address

    :raise WalletDerivationFailed:
        Binary rejected the mnemonic, or the address has the wrong prefix
    """
    keyring_args = ["--keyring-backend", KEYRING_BACKEND] + cli.get_home_args()
    try:
        remove_existing_key(cli, role, keyring_args)
        cli.exec(
            ["keys", "add", role, "--recover", "--index", str(index), "--coin-type", str(COIN_TYPE)] + keyring_args,
            stdin_data=seed_phrase.strip() + "\n",
            json_output=False,
        )
        address = cli.exec(["keys", "show", role, "--address"] + keyring_args, json_output=False)
    except ChainCommandFailed as e:
        # Output never includes the mnemonic, it goes through stdin only
        raise WalletDerivationFailed(f"Could not derive {role} at {get_derivation_path(index)}: {e}") from e

    if not address.startswith(prefix + "1"):
        raise WalletDerivationFailed(f"Derived {role} address {address} does not have prefix {prefix}")

    return address


def derive_accounts(
    cli: ChainCli,
    seed_phrase: str | None,
    prefix: str,
    pause_admin: str | None = None,
    roles=ACCOUNT_ROLES,
) -> dict[str, str]:
    """Derive all participant accounts.

    :param pause_admin:
        Configured pause admin address, deployer is used when unset

    :return:
        Role name -> address, including ``pause_admin``

    :raise WalletDerivationFailed:
        Missing seed phrase or any role failed
    """
    if not seed_phrase:
        raise WalletDerivationFailed("SEED_PHRASE is not set")

    accounts = {}
    for index, role in enumerate(roles):
        accounts[role] = derive_account(cli, seed_phrase, role, index, prefix)

    accounts[PAUSE_ADMIN_ROLE] = pause_admin or accounts["deployer"]
    logger.info("Derived %d accounts with prefix %s, deployer is %s", len(accounts), prefix, accounts["deployer"])
    return accounts
