"""Error taxonomy for CronCat deployment and validation.

All errors raised by this package derive from :py:class:`CroncatDeployError`,
so a per-network worker can catch one base class and keep other networks going.

- :py:class:`BootstrapError` - the network session could not be opened
- :py:class:`FundingError` - participant accounts could not be topped up
- :py:class:`DeploymentError` - a deployment pipeline stage failed
- :py:class:`RegistryQueryError` - factory registry read failed after retries
- :py:class:`ValidatorAssertionFailure` - observed on-chain state differs from the expected one
- :py:class:`TimedOut` - a bounded poll ran out of time
"""


class CroncatDeployError(Exception):
    """Base class for all errors in this package."""


class BootstrapError(CroncatDeployError):
    """Opening a network session failed."""


class NoLiveEndpoint(BootstrapError):
    """None of the candidate RPC endpoints answered the probe."""


class WalletDerivationFailed(BootstrapError):
    """Could not derive the participant accounts from the seed phrase."""


class ClientConnectFailed(BootstrapError):
    """Chain client could not be constructed against the selected endpoint."""


class ChainCommandFailed(CroncatDeployError):
    """The chain command line binary exited with an error or produced unparseable output."""


class FundingError(CroncatDeployError):
    """Account funding failed."""


class InsufficientDeployerFunds(FundingError):
    """Deployer cannot cover topping up every other account."""

    def __init__(self, balance: int, required: int, denom: str):
        self.balance = balance
        self.required = required
        self.denom = denom
        super().__init__(f"Deployer holds {balance}{denom}, needs at least {required}{denom} to fund the other accounts")


class DeploymentError(CroncatDeployError):
    """A deployment stage failed.

    :param stage:
        Name of the pipeline stage, e.g. ``manager``.
    """

    def __init__(self, message: str, stage: str | None = None):
        self.stage = stage
        super().__init__(message)


class AddressResolutionFailed(DeploymentError):
    """Could not pick exactly one instantiated contract address from transaction events."""


class TransactionRejected(DeploymentError):
    """Chain accepted the transaction for processing but it failed with non-zero code.

    :param raw_log:
        Rejection message as reported by the chain, kept verbatim for logs.
    """

    def __init__(self, txhash: str | None, code: int, raw_log: str, codespace: str | None = None):
        self.txhash = txhash
        self.code = code
        self.raw_log = raw_log
        self.codespace = codespace
        super().__init__(f"Transaction {txhash} rejected with code {code} ({codespace}): {raw_log}")


class RegistryQueryError(CroncatDeployError):
    """Factory registry query failed after all retries."""


class ValidatorAssertionFailure(CroncatDeployError):
    """Lifecycle scenario observed an unexpected state."""


class TimedOut(CroncatDeployError):
    """A bounded poll did not reach the expected state in time.

    :param last_observed:
        The last value seen before giving up, for diagnostics.
    """

    def __init__(self, message: str, last_observed=None):
        self.last_observed = last_observed
        super().__init__(message)
