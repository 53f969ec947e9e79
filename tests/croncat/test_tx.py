"""Transaction result and event parsing."""

import pytest

from croncat_deploy.errors import AddressResolutionFailed, TransactionRejected
from croncat_deploy.tx import (
    TxResult,
    decode_json_base64,
    encode_json_base64,
    extract_code_id,
    extract_instantiated_address,
    get_event_attributes,
)


def _attrs(**kwargs) -> list[dict]:
    return [{"key": k, "value": v} for k, v in kwargs.items()]


def test_parse_logs_events():
    """SDK 0.45 style, events per message log."""
    data = {
        "height": "123",
        "txhash": "ABCD",
        "code": 0,
        "gas_used": "100",
        "gas_wanted": "200",
        "logs": [{"msg_index": 0, "events": [{"type": "store_code", "attributes": _attrs(code_id="42")}]}],
        "events": [{"type": "tx", "attributes": []}],
    }
    result = TxResult.from_json(data)
    assert result.height == 123
    assert result.gas_used == 100
    assert result.is_success()
    assert extract_code_id(result.events) == 42


def test_parse_top_level_events():
    """SDK 0.47+, logs empty and events at top level, wrapped in tx_response."""
    data = {
        "tx_response": {
            "height": "7",
            "txhash": "EF01",
            "code": 0,
            "logs": [],
            "events": [
                {"type": "message", "attributes": _attrs(action="/cosmwasm.wasm.v1.MsgExecuteContract")},
                {"type": "instantiate", "attributes": _attrs(_contract_address="juno1new", code_id="9")},
            ],
        }
    }
    result = TxResult.from_json(data)
    assert result.txhash == "EF01"
    assert extract_instantiated_address(result.events) == "juno1new"


def test_rejected_result():
    result = TxResult.from_json({"txhash": "FF", "code": 11, "codespace": "sdk", "raw_log": "out of gas"})
    assert not result.is_success()
    with pytest.raises(TransactionRejected) as exc_info:
        result.assert_success()
    assert exc_info.value.code == 11
    assert exc_info.value.raw_log == "out of gas"


def test_instantiated_address_uses_first_event():
    """Nested instantiations emit more instantiate events, only the first counts."""
    events = [
        {"type": "instantiate", "attributes": _attrs(_contract_address="juno1outer", code_id="3")},
        {"type": "instantiate", "attributes": _attrs(_contract_address="juno1inner", code_id="4")},
    ]
    assert extract_instantiated_address(events) == "juno1outer"


def test_instantiated_address_ambiguous():
    """Merged log events concatenate attributes of several instantiations."""
    events = [
        {
            "type": "instantiate",
            "attributes": [
                {"key": "_contract_address", "value": "juno1first"},
                {"key": "code_id", "value": "3"},
                {"key": "_contract_address", "value": "juno1second"},
                {"key": "code_id", "value": "4"},
            ],
        }
    ]
    with pytest.raises(AddressResolutionFailed, match="Ambiguous"):
        extract_instantiated_address(events)


def test_instantiated_address_missing():
    with pytest.raises(AddressResolutionFailed):
        extract_instantiated_address([{"type": "wasm", "attributes": _attrs(_contract_address="juno1x")}])

    with pytest.raises(AddressResolutionFailed):
        extract_instantiated_address([{"type": "instantiate", "attributes": _attrs(code_id="1")}])


def test_code_id_missing():
    with pytest.raises(AddressResolutionFailed):
        extract_code_id([])


def test_event_attributes():
    events = [
        {"type": "wasm", "attributes": _attrs(action="create_task", task_hash="juno:abc")},
        {"type": "transfer", "attributes": _attrs(task_hash="ignored")},
        {"type": "wasm", "attributes": _attrs(task_hash="juno:def")},
    ]
    assert get_event_attributes(events, "wasm", "task_hash") == ["juno:abc", "juno:def"]


def test_json_base64():
    encoded = encode_json_base64({"tick": {}})
    assert encoded == "eyJ0aWNrIjp7fX0="
    assert decode_json_base64(encoded) == {"tick": {}}
