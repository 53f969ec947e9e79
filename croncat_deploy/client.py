"""CosmWasm chain client driving the chain command line binary.

Every wasmd based chain ships a daemon binary (``junod``, ``starsd``, ``osmosisd``...)
that can sign, broadcast and query against a remote Tendermint RPC node.
We run it as a subprocess and read its JSON output.

- :py:class:`ChainCli` runs one command and parses output
- :py:class:`WasmQueryClient` read-only queries: contract state, balances, transactions
- :py:class:`WasmSigningClient` upload, instantiate, execute, bank send

Transactions are broadcast in ``sync`` mode, which only runs ``CheckTx``.
We then poll ``query tx`` until the transaction is indexed; see :py:func:`wait_for_tx`.

Signing keys live in a throwaway ``test`` backend keyring, see :py:mod:`croncat_deploy.accounts`.
"""

import json
import logging
import time
from pathlib import Path
from shutil import which
from subprocess import DEVNULL, PIPE, TimeoutExpired

import psutil

from croncat_deploy.errors import ChainCommandFailed, TimedOut, TransactionRejected
from croncat_deploy.network import Network
from croncat_deploy.tx import TxResult, extract_code_id, extract_instantiated_address

logger = logging.getLogger(__name__)

#: Kill the chain binary unless it completes in 2 minutes
DEFAULT_TIMEOUT = 2 * 60

#: How long to wait for a broadcast transaction to be indexed
DEFAULT_TX_TIMEOUT = 90.0

#: Seconds between ``query tx`` polls
DEFAULT_TX_POLL_INTERVAL = 2.0

#: Applied on top of simulated gas when gas is ``auto``
DEFAULT_GAS_ADJUSTMENT = 1.4

#: Keyring backend that stores keys unencrypted in the keyring home
KEYRING_BACKEND = "test"

#: Error text chain binaries print when a transaction is not indexed yet
TX_NOT_FOUND_MARKERS = ("not found", "NotFound")

#: ``{"denom": ..., "amount": ...}`` as in CosmWasm JSON
Coin = dict


def coins(amount: int, denom: str) -> list[Coin]:
    """Single coin list, amount as string the way CosmWasm ``Uint128`` serialises."""
    return [{"denom": denom, "amount": str(amount)}]


def format_coins(funds: list[Coin]) -> str:
    """Format coins for the command line, e.g. ``60000ujunox``."""
    return ",".join(f"{c['amount']}{c['denom']}" for c in funds)


def parse_json_output(stdout: str, stderr: str) -> dict | list:
    """Parse JSON from chain binary output.

    Older Cosmos SDK versions print some commands (``status``, ``keys add``)
    to stderr, so we fall back to it when stdout is empty.

    :raise ChainCommandFailed:
        Neither stream contains JSON.
    """
    for output in (stdout, stderr):
        output = output.strip()
        if not output:
            continue
        try:
            return json.loads(output)
        except json.JSONDecodeError:
            # Warnings before the payload, take the last line
            last_line = output.splitlines()[-1]
            try:
                return json.loads(last_line)
            except json.JSONDecodeError:
                continue
    raise ChainCommandFailed(f"Could not parse JSON from chain binary output:\n{stdout}\n{stderr}")


class ChainCli:
    """Run a chain daemon binary.

    :param daemon:
        Binary name or path, e.g. ``junod``

    :param node:
        Tendermint RPC URL added as ``--node`` for commands that talk to the chain

    :param home:
        Keyring home directory
    """

    def __init__(
        self,
        daemon: str,
        chain_id: str | None = None,
        node: str | None = None,
        home: Path | None = None,
        timeout=DEFAULT_TIMEOUT,
    ):
        self.daemon = daemon
        self.chain_id = chain_id
        self.node = node
        self.home = home
        self.timeout = timeout

    def __repr__(self):
        return f"<ChainCli {self.daemon} node:{self.node}>"

    def get_binary(self) -> str:
        """Resolve the daemon binary.

        :raise ChainCommandFailed:
            Binary not installed.
        """
        binary = which(self.daemon)
        if binary is None:
            raise ChainCommandFailed(f"Chain binary {self.daemon} not found in PATH")
        return binary

    def get_home_args(self) -> list[str]:
        if self.home is None:
            return []
        return ["--home", str(self.home)]

    def get_node_args(self) -> list[str]:
        if self.node is None:
            return []
        return ["--node", self.node]

    def exec(
        self,
        args: list[str],
        stdin_data: str | None = None,
        json_output=True,
        timeout: float | None = None,
    ) -> dict | list | str:
        """Execute one command.

        :param args:
            Arguments after the binary name

        :param stdin_data:
            Fed to the process, e.g. a mnemonic. Never logged.

        :param json_output:
            Parse output as JSON, otherwise return stripped stdout

        :raise ChainCommandFailed:
            Non-zero exit, timeout or unparseable output.
        """
        cmd_line = [self.get_binary()] + args

        for x in cmd_line:
            assert type(x) == str, f"Got non-string in command line: {x} in {cmd_line}"

        printable = " ".join(cmd_line)
        logger.debug("Running %s", printable)

        proc = psutil.Popen(
            cmd_line,
            stdin=PIPE if stdin_data is not None else DEVNULL,
            stdout=PIPE,
            stderr=PIPE,
        )

        try:
            stdout, stderr = proc.communicate(
                input=stdin_data.encode("utf-8") if stdin_data is not None else None,
                timeout=timeout or self.timeout,
            )
        except TimeoutExpired as e:
            proc.kill()
            proc.communicate()
            raise ChainCommandFailed(f"{self.daemon} did not complete in {timeout or self.timeout}s: {printable}") from e

        stdout = stdout.decode("utf-8", errors="replace")
        stderr = stderr.decode("utf-8", errors="replace")

        if proc.returncode != 0:
            raise ChainCommandFailed(f"{self.daemon} return code {proc.returncode} when running: {printable}\nOutput is:\n{stdout}{stderr}")

        if json_output:
            return parse_json_output(stdout, stderr)

        return stdout.strip()


class WasmQueryClient:
    """Read-only chain access through one RPC node."""

    def __init__(self, cli: ChainCli):
        assert cli.node, "Query client needs a node"
        self.cli = cli

    def __repr__(self):
        return f"<WasmQueryClient {self.cli.node}>"

    def _query(self, args: list[str]) -> dict | list:
        return self.cli.exec(["query"] + args + self.cli.get_node_args() + ["--output", "json"])

    def get_node_status(self) -> dict:
        """Tendermint node status.

        Key casing differs between SDK versions (``sync_info`` vs ``SyncInfo``).
        """
        return self.cli.exec(["status"] + self.cli.get_node_args())

    def get_chain_id(self) -> str:
        status = self.get_node_status()
        node_info = status.get("node_info") or status.get("NodeInfo") or {}
        return node_info.get("network", "")

    def get_latest_block_height(self) -> int:
        status = self.get_node_status()
        sync_info = status.get("sync_info") or status.get("SyncInfo") or {}
        return int(sync_info["latest_block_height"])

    def query_contract_smart(self, contract_addr: str, msg: dict):
        """Smart query a contract.

        :return:
            Decoded ``data`` field of the response
        """
        result = self._query(["wasm", "contract-state", "smart", contract_addr, json.dumps(msg)])
        return result.get("data")

    def get_balance(self, address: str, denom: str) -> int:
        """Bank balance of one denom, 0 if the account holds none."""
        result = self._query(["bank", "balances", address])
        for coin in result.get("balances", []):
            if coin["denom"] == denom:
                return int(coin["amount"])
        return 0

    def get_tx(self, txhash: str) -> TxResult | None:
        """Look up a transaction.

        :return:
            ``None`` if the node has not indexed the transaction yet
        """
        try:
            data = self._query(["tx", txhash])
        except ChainCommandFailed as e:
            if any(m in str(e) for m in TX_NOT_FOUND_MARKERS):
                return None
            raise
        return TxResult.from_json(data)


def wait_for_tx(
    querier: WasmQueryClient,
    txhash: str,
    timeout=DEFAULT_TX_TIMEOUT,
    poll_interval=DEFAULT_TX_POLL_INTERVAL,
) -> TxResult:
    """Poll until a broadcast transaction is indexed.

    Not found means not yet indexed and we keep polling.
    A found transaction with non-zero code is fatal.

    :raise TransactionRejected:
        Transaction was included but failed.

    :raise TimedOut:
        Transaction was not indexed within ``timeout`` seconds.
    """
    started = time.time()
    attempt = 0
    while True:
        attempt += 1
        result = querier.get_tx(txhash)
        if result is not None:
            logger.debug("Tx %s indexed at height %d after %d polls", txhash, result.height, attempt)
            result.assert_success()
            return result

        if time.time() - started >= timeout:
            raise TimedOut(f"Transaction {txhash} not indexed after {timeout}s")

        time.sleep(poll_interval)


class WasmSigningClient:
    """Sign and broadcast CosmWasm transactions.

    Transactions from one client must be sent one at a time:
    each call waits until its transaction is indexed,
    so the next one picks up the right account sequence.

    :param gas_adjustment:
        Multiplier for simulated gas when a call does not give a gas limit.
    """

    def __init__(
        self,
        cli: ChainCli,
        querier: WasmQueryClient,
        network: Network,
        gas_adjustment=DEFAULT_GAS_ADJUSTMENT,
        tx_timeout=DEFAULT_TX_TIMEOUT,
        tx_poll_interval=DEFAULT_TX_POLL_INTERVAL,
    ):
        assert cli.chain_id, "Signing client needs a chain id"
        self.cli = cli
        self.querier = querier
        self.network = network
        self.gas_adjustment = gas_adjustment
        self.tx_timeout = tx_timeout
        self.tx_poll_interval = tx_poll_interval

    def __repr__(self):
        return f"<WasmSigningClient {self.network.chain_name} {self.cli.node}>"

    def get_tx_args(self, sender: str, gas: int | None = None, funds: list[Coin] | None = None) -> list[str]:
        """Common flags for a transaction command."""
        args = [
            "--from",
            sender,
            "--chain-id",
            self.cli.chain_id,
            "--keyring-backend",
            KEYRING_BACKEND,
            "--gas-prices",
            self.network.get_gas_price_string(),
            "--broadcast-mode",
            "sync",
            "--output",
            "json",
            "--yes",
        ]
        if gas:
            args += ["--gas", str(gas)]
        else:
            args += ["--gas", "auto", "--gas-adjustment", str(self.gas_adjustment)]
        if funds:
            args += ["--amount", format_coins(funds)]
        return args + self.cli.get_node_args() + self.cli.get_home_args()

    def broadcast(self, args: list[str], sender: str, gas: int | None = None, funds: list[Coin] | None = None) -> TxResult:
        """Sign, broadcast and wait for inclusion.

        :raise TransactionRejected:
            ``CheckTx`` or block execution failed
        """
        data = self.cli.exec(["tx"] + args + self.get_tx_args(sender, gas=gas, funds=funds))
        check = TxResult.from_json(data)
        if check.code != 0:
            raise TransactionRejected(check.txhash, check.code, check.raw_log, check.codespace)
        return wait_for_tx(self.querier, check.txhash, self.tx_timeout, self.tx_poll_interval)

    def upload(self, sender: str, wasm_path: Path, gas: int | None = None) -> tuple[int, TxResult]:
        """Store wasm bytecode.

        :return:
            Tuple (code id, tx result)
        """
        assert wasm_path.exists(), f"Wasm file missing: {wasm_path}"
        result = self.broadcast(["wasm", "store", str(wasm_path)], sender, gas=gas)
        return extract_code_id(result.events), result

    def instantiate(
        self,
        sender: str,
        code_id: int,
        msg: dict,
        label: str,
        admin: str | None = None,
        funds: list[Coin] | None = None,
        gas: int | None = None,
    ) -> tuple[str, TxResult]:
        """Instantiate a stored contract.

        :return:
            Tuple (contract address, tx result)
        """
        args = ["wasm", "instantiate", str(code_id), json.dumps(msg), "--label", label]
        if admin:
            args += ["--admin", admin]
        else:
            args += ["--no-admin"]
        result = self.broadcast(args, sender, gas=gas, funds=funds)
        return extract_instantiated_address(result.events), result

    def execute(
        self,
        sender: str,
        contract_addr: str,
        msg: dict,
        funds: list[Coin] | None = None,
        gas: int | None = None,
    ) -> TxResult:
        """Execute a contract message."""
        return self.broadcast(["wasm", "execute", contract_addr, json.dumps(msg)], sender, gas=gas, funds=funds)

    def send_tokens(self, sender: str, recipient: str, amount: int, denom: str) -> TxResult:
        """Bank transfer."""
        return self.broadcast(["bank", "send", sender, recipient, f"{amount}{denom}"], sender)

    def get_balance(self, address: str, denom: str) -> int:
        return self.querier.get_balance(address, denom)
