"""Network session: everything needed to transact on one chain.

Opening a session

1. derives participant accounts from the seed phrase
2. races the candidate RPC endpoints
3. binds signing and query clients to the winning endpoint

Sessions are passed explicitly to every component. One session per network,
several networks can be opened in parallel with :py:func:`open_sessions`.
"""

import logging
import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

from tabulate import tabulate

from croncat_deploy.accounts import PAUSE_ADMIN_ROLE, derive_accounts
from croncat_deploy.client import ChainCli, WasmQueryClient, WasmSigningClient
from croncat_deploy.endpoint import select_live_endpoint
from croncat_deploy.errors import BootstrapError, ChainCommandFailed, ClientConnectFailed
from croncat_deploy.network import Network

logger = logging.getLogger(__name__)


@dataclass
class NetworkSession:
    """Connection to one network with participant accounts."""

    network: Network

    #: Winning RPC endpoint
    endpoint: str

    #: Signs with keys in the keyring
    client: WasmSigningClient

    #: Read-only access against the same endpoint
    querier: WasmQueryClient

    #: Role -> address, see :py:mod:`croncat_deploy.accounts`
    accounts: dict[str, str]

    #: Keyring directory holding the signing keys
    home: Path | None = None

    #: Delete ``home`` on close
    owns_home: bool = False

    def __repr__(self):
        return f"<NetworkSession {self.network.chain_name} at {self.endpoint}>"

    @property
    def chain_name(self) -> str:
        return self.network.chain_name

    @property
    def fee_denom(self) -> str:
        return self.network.fee_denom

    @property
    def deployer(self) -> str:
        return self.accounts["deployer"]

    @property
    def pause_admin(self) -> str:
        return self.accounts[PAUSE_ADMIN_ROLE]

    def get_address(self, role: str) -> str:
        return self.accounts[role]

    def get_balance(self, address: str) -> int:
        """Balance in the fee denom."""
        return self.querier.get_balance(address, self.fee_denom)

    def close(self):
        """Remove the throwaway keyring."""
        if self.owns_home and self.home is not None and self.home.exists():
            shutil.rmtree(self.home, ignore_errors=True)
            logger.debug("Removed keyring home %s", self.home)


def open_session(
    network: Network,
    seed_phrase: str | None,
    pause_admin: str | None = None,
    home: Path | None = None,
    probe_timeout: float | None = None,
) -> NetworkSession:
    """Open a session on one network.

    :param pause_admin:
        Configured pause admin address, falls back to the deployer

    :param home:
        Keyring directory to use. A temporary one is created and removed on
        :py:meth:`NetworkSession.close` when not given.

    :raise BootstrapError:
        One of :py:class:`~croncat_deploy.errors.WalletDerivationFailed`,
        :py:class:`~croncat_deploy.errors.NoLiveEndpoint` or
        :py:class:`~croncat_deploy.errors.ClientConnectFailed`
    """
    owns_home = home is None
    if owns_home:
        home = Path(tempfile.mkdtemp(prefix=f"croncat-{network.chain_name}-"))
    else:
        home.mkdir(parents=True, exist_ok=True)

    try:
        key_cli = ChainCli(network.daemon_name, home=home)
        accounts = derive_accounts(key_cli, seed_phrase, network.bech32_prefix, pause_admin=pause_admin)

        probe_kwargs = {}
        if probe_timeout is not None:
            probe_kwargs["timeout"] = probe_timeout
        endpoint = select_live_endpoint(network.rpc_endpoints, **probe_kwargs)

        cli = ChainCli(network.daemon_name, chain_id=network.chain_id, node=endpoint, home=home)
        querier = WasmQueryClient(cli)
        try:
            chain_id = querier.get_chain_id()
        except ChainCommandFailed as e:
            raise ClientConnectFailed(f"Could not connect {network.daemon_name} to {endpoint}: {e}") from e

        if chain_id != network.chain_id:
            raise ClientConnectFailed(f"Endpoint {endpoint} serves chain {chain_id}, expected {network.chain_id}")

        client = WasmSigningClient(cli, querier, network)
    except BootstrapError:
        if owns_home:
            shutil.rmtree(home, ignore_errors=True)
        raise

    logger.info("Opened session on %s using %s", network.pretty_name, endpoint)

    return NetworkSession(
        network=network,
        endpoint=endpoint,
        client=client,
        querier=querier,
        accounts=accounts,
        home=home,
        owns_home=owns_home,
    )


def open_sessions(
    networks: list[Network],
    seed_phrase: str | None,
    pause_admins: dict[str, str] | None = None,
    home_root: Path | None = None,
) -> tuple[dict[str, NetworkSession], dict[str, BootstrapError]]:
    """Open sessions on several networks in parallel.

    A network that fails to bootstrap is logged and left out.

    :param home_root:
        Parent folder for per-network keyrings, temporary ones are used when not given

    :return:
        Tuple (chain name -> session, chain name -> bootstrap error)
    """
    pause_admins = pause_admins or {}
    sessions = {}
    failures = {}

    if not networks:
        return sessions, failures

    def _open(network: Network) -> NetworkSession:
        threading.current_thread().name = f"session-{network.chain_name}"
        home = home_root / network.chain_name if home_root else None
        return open_session(network, seed_phrase, pause_admin=pause_admins.get(network.chain_name), home=home)

    with ThreadPoolExecutor(max_workers=len(networks), thread_name_prefix="session") as executor:
        futures = {executor.submit(_open, n): n for n in networks}
        for future in as_completed(futures):
            network = futures[future]
            try:
                sessions[network.chain_name] = future.result()
            except BootstrapError as e:
                logger.error("Failed to open session on %s: %s", network.pretty_name, e)
                failures[network.chain_name] = e

    return sessions, failures


def get_account_balances(session: NetworkSession) -> list[dict]:
    """Balance of every participant account in the fee denom.

    :return:
        Rows with ``id``, ``address``, ``amount``, ``denom`` and ``note``
    """
    rows = []
    for role, address in session.accounts.items():
        amount = session.get_balance(address)
        note = ""
        if role == "deployer" and amount == 0:
            note = "Needs funds! All other accounts rely on this one!"
        rows.append(
            {
                "id": role,
                "address": address,
                "amount": amount,
                "denom": session.fee_denom,
                "note": note,
            }
        )
    return rows


def list_accounts(session: NetworkSession) -> str:
    """Format participant accounts and balances as a table."""
    rows = get_account_balances(session)
    table = tabulate(rows, headers="keys", tablefmt="fancy_grid")
    return f"{session.network.pretty_name} accounts\n{table}"
