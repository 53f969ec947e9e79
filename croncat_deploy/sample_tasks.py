"""Sample CronCat task definitions.

Builders for the tasks the lifecycle scenario creates, plus interval and
boundary sets for sweeping task variants on a fresh deployment.

A task looks like::

    {
        "actions": [{"msg": {"bank": {"send": {...}}}, "gas_limit": 75000}],
        "boundary": None,
        "cw20": None,
        "interval": {"block": 1},
        "stop_on_fail": False,
        "queries": None,
        "transforms": None,
    }
"""

import time

from croncat_deploy.client import coins
from croncat_deploy.tx import encode_json_base64

#: Gas limit for each sample action
ACTION_GAS_LIMIT = 75_000

#: Interval variants the tasks contract accepts
INTERVALS = [
    "once",
    "immediate",
    {"block": 1},
    {"block": 2},
    {"block": 5},
    {"cron": "* * * * * *"},
    {"cron": "1 * * * * *"},
    {"cron": "* 0 * * * *"},
]

#: Nanoseconds in a second
NANOS = 1_000_000_000

#: Width of the bounded windows in sample boundaries
BOUNDARY_BLOCKS = 100
BOUNDARY_SECONDS = 60


def build_task(actions: list[dict], interval="once", boundary: dict | None = None, stop_on_fail=False) -> dict:
    return {
        "actions": actions,
        "boundary": boundary,
        "cw20": None,
        "interval": interval,
        "stop_on_fail": stop_on_fail,
        "queries": None,
        "transforms": None,
    }


def build_wasm_execute_action(contract_addr: str, msg: dict, gas_limit=ACTION_GAS_LIMIT) -> dict:
    return {
        "msg": {
            "wasm": {
                "execute": {
                    "contract_addr": contract_addr,
                    "msg": encode_json_base64(msg),
                    "funds": [],
                }
            }
        },
        "gas_limit": gas_limit,
    }


def build_bank_send_action(to_address: str, amount: int, denom: str, gas_limit=ACTION_GAS_LIMIT) -> dict:
    return {
        "msg": {
            "bank": {
                "send": {
                    "to_address": to_address,
                    "amount": coins(amount, denom),
                }
            }
        },
        "gas_limit": gas_limit,
    }


def build_tick_task(agents_addr: str) -> dict:
    """Recurring ``tick`` on the agents contract, every block.

    Keeps agent nomination moving. Created by the factory so
    cleanup sweeps can tell it apart from user tasks.
    """
    return build_task([build_wasm_execute_action(agents_addr, {"tick": {}})], interval={"block": 1}, stop_on_fail=True)


def build_bank_send_task(to_address: str, amount: int, denom: str) -> dict:
    """Every block, send a tiny amount to ``to_address``."""
    return build_task([build_bank_send_action(to_address, amount, denom)], interval={"block": 1}, stop_on_fail=False)


def build_boundaries(current_height: int, now_ns: int | None = None) -> list[dict]:
    """Height and time boundary variants around the current chain position.

    :param now_ns:
        Current time in nanoseconds, defaults to the local clock
    """
    if now_ns is None:
        now_ns = time.time_ns()
    # Uint64 and Timestamp are JSON strings on the contract side
    start_height = str(current_height)
    end_height = str(current_height + BOUNDARY_BLOCKS)
    start_ns = str(now_ns)
    end_ns = str(now_ns + BOUNDARY_SECONDS * NANOS)
    return [
        {"height": {"start": None, "end": None}},
        {"height": {"start": start_height, "end": None}},
        {"height": {"start": start_height, "end": end_height}},
        {"height": {"start": None, "end": end_height}},
        {"time": {"start": None, "end": None}},
        {"time": {"start": start_ns, "end": None}},
        {"time": {"start": start_ns, "end": end_ns}},
        {"time": {"start": None, "end": end_ns}},
    ]


def generate_task_variants(
    to_address: str,
    amount: int,
    denom: str,
    current_height: int,
    now_ns: int | None = None,
) -> list[dict]:
    """One bank send task per interval, then one per boundary.

    Boundary variants use a one block interval.
    """
    action = build_bank_send_action(to_address, amount, denom)
    tasks = [build_task([action], interval=interval) for interval in INTERVALS]
    tasks += [build_task([action], interval={"block": 1}, boundary=b) for b in build_boundaries(current_height, now_ns)]
    return tasks
