"""Transaction results and event parsing.

Chain binaries report transaction results as a ``TxResponse`` JSON document.
Events appear in two places depending on the Cosmos SDK version:

- ``logs[n].events``, one list per message, where events of the same type are merged
  and their attributes concatenated (SDK 0.45 - 0.47)

- top level ``events`` with one entry per emitted event (SDK 0.47+, where ``logs`` is empty)

:py:func:`get_events` prefers ``logs`` and falls back to the top level list.
"""

import base64
import json
import logging
from dataclasses import dataclass, field

from croncat_deploy.errors import AddressResolutionFailed, TransactionRejected

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TxResult:
    """Outcome of one broadcast transaction."""

    #: Transaction hash, upper case hex
    txhash: str

    #: Block height the transaction landed in, 0 for not yet included
    height: int

    #: ABCI result code, 0 is success
    code: int

    #: Chain rejection message or JSON log
    raw_log: str = ""

    #: Module that produced a non-zero code
    codespace: str = ""

    #: Flattened event list ``[{"type": ..., "attributes": [{"key": ..., "value": ...}]}]``
    events: list[dict] = field(default_factory=list)

    gas_used: int = 0

    gas_wanted: int = 0

    @classmethod
    def from_json(cls, data: dict) -> "TxResult":
        """Parse ``TxResponse`` JSON as printed by ``<daemon> query tx`` or ``<daemon> tx ... -o json``."""
        if "tx_response" in data:
            data = data["tx_response"]

        return cls(
            txhash=data.get("txhash", ""),
            height=int(data.get("height") or 0),
            code=int(data.get("code") or 0),
            raw_log=data.get("raw_log", ""),
            codespace=data.get("codespace", ""),
            events=get_events(data),
            gas_used=int(data.get("gas_used") or 0),
            gas_wanted=int(data.get("gas_wanted") or 0),
        )

    def is_success(self) -> bool:
        return self.code == 0

    def assert_success(self):
        """Raise if the chain rejected the transaction.

        :raise TransactionRejected:
            Non-zero result code.
        """
        if self.code != 0:
            raise TransactionRejected(self.txhash, self.code, self.raw_log, self.codespace)


def get_events(data: dict) -> list[dict]:
    """Extract event list from ``TxResponse`` JSON."""
    events = []
    for log in data.get("logs") or []:
        events.extend(log.get("events") or [])
    if events:
        return events
    return list(data.get("events") or [])


def get_event_attributes(events: list[dict], event_type: str, key: str) -> list[str]:
    """All values of one attribute key across events of one type, in order."""
    values = []
    for event in events:
        if event.get("type") != event_type:
            continue
        for attr in event.get("attributes", []):
            if attr.get("key") == key:
                values.append(attr.get("value"))
    return values


def extract_instantiated_address(events: list[dict]) -> str:
    """Get the contract address created by an instantiate transaction.

    Reads ``_contract_address`` from the first ``instantiate`` event only.
    A factory deploy that triggers nested instantiations would otherwise
    yield several candidates.

    :raise AddressResolutionFailed:
        No ``instantiate`` event, no address attribute, or more than one distinct
        address in the first event.
    """
    for event in events:
        if event.get("type") != "instantiate":
            continue

        addresses = []
        for attr in event.get("attributes", []):
            if attr.get("key") == "_contract_address" and attr.get("value") not in addresses:
                addresses.append(attr.get("value"))

        if len(addresses) == 1:
            return addresses[0]

        if not addresses:
            raise AddressResolutionFailed("instantiate event carries no _contract_address attribute")

        raise AddressResolutionFailed(f"Ambiguous instantiate event, got {len(addresses)} contract addresses: {addresses}")

    raise AddressResolutionFailed("Transaction has no instantiate event")


def extract_code_id(events: list[dict]) -> int:
    """Get the code id from a ``store_code`` transaction.

    :raise AddressResolutionFailed:
        No ``store_code`` event with a ``code_id``.
    """
    code_ids = get_event_attributes(events, "store_code", "code_id")
    if not code_ids:
        raise AddressResolutionFailed("Transaction has no store_code event with code_id")
    return int(code_ids[0])


def encode_json_base64(msg: dict | None) -> str:
    """Encode a nested contract message the way CosmWasm ``Binary`` expects."""
    return base64.b64encode(json.dumps(msg, separators=(",", ":")).encode("utf-8")).decode("ascii")


def decode_json_base64(data: str) -> dict:
    return json.loads(base64.b64decode(data))
