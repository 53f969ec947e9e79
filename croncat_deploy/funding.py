"""Top up participant accounts from the deployer.

Agents and the treasury need gas money before the lifecycle scenario can run.
The deployer tops every other account up to a target balance.
"""

import logging
from dataclasses import dataclass

from croncat_deploy.errors import InsufficientDeployerFunds
from croncat_deploy.session import NetworkSession

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class FundingTransfer:
    """One transfer made by :py:func:`equalize_balances`."""

    role: str
    address: str
    amount: int
    denom: str
    txhash: str


def get_funding_deficits(session: NetworkSession, balances: dict[str, int], target_amount: int) -> dict[str, int]:
    """How much each non-deployer account is missing.

    Roles that share the deployer address (pause admin fallback) are skipped.

    :param balances:
        Address -> balance

    :return:
        Role -> missing amount, only roles below target
    """
    deficits = {}
    seen = {session.deployer}
    for role, address in session.accounts.items():
        if address in seen:
            continue
        seen.add(address)
        balance = balances[address]
        if balance < target_amount:
            deficits[role] = target_amount - balance
    return deficits


def equalize_balances(session: NetworkSession, target_amount: int) -> list[FundingTransfer]:
    """Bring every participant account up to ``target_amount``.

    - Fails fast if the deployer could not top up every other account from zero
    - Transfers are sent one at a time from the deployer, they share its account sequence
    - Accounts at or above target are left alone, so re-runs are no-ops

    :param target_amount:
        Target balance in the fee denom, e.g. ``5_000_000``

    :return:
        Transfers performed, empty if nobody needed funds

    :raise InsufficientDeployerFunds:
        Deployer balance below ``target_amount * (accounts - 1)``
    """
    denom = session.fee_denom
    unique_addresses = list(dict.fromkeys(session.accounts.values()))
    balances = {address: session.get_balance(address) for address in unique_addresses}

    deployer_balance = balances[session.deployer]
    required = target_amount * (len(unique_addresses) - 1)
    if deployer_balance < required:
        raise InsufficientDeployerFunds(deployer_balance, required, denom)

    deficits = get_funding_deficits(session, balances, target_amount)
    if not deficits:
        logger.info("All %s accounts hold at least %d%s", session.chain_name, target_amount, denom)
        return []

    transfers = []
    for role, amount in deficits.items():
        address = session.get_address(role)
        logger.info("Funding %s %s with %d%s", role, address, amount, denom)
        result = session.client.send_tokens(session.deployer, address, amount, denom)
        transfers.append(FundingTransfer(role=role, address=address, amount=amount, denom=denom, txhash=result.txhash))

    return transfers
