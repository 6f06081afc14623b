"""Error taxonomy for the provisioning engine."""


class ProvisionerError(Exception):
    pass


class ConfigError(ProvisionerError):
    pass


class InvalidMnemonic(ProvisionerError, ValueError):
    pass


class InvalidQuantity(ProvisionerError, ValueError):
    pass


class MalformedPublicKey(ProvisionerError, ValueError):
    pass


class AccountNotFound(ProvisionerError):
    """The address has never been funded. Balance lookups treat this as zero."""

    def __init__(self, address: str):
        super().__init__(f"Account not found: {address}")
        self.address = address


class NoAssetsFound(ProvisionerError):
    def __init__(self, address: str, mpt_issuance_id: str | None = None):
        msg = f"No assets found for {address}"
        if mpt_issuance_id:
            msg += f" (issuance {mpt_issuance_id})"
        super().__init__(msg)
        self.address = address
        self.mpt_issuance_id = mpt_issuance_id


class SubmissionFailed(ProvisionerError):
    """A ledger transaction for an operation group did not land.

    `wallets_confirmed` counts the wallets of the failing group that were
    already committed by an earlier batch of the same group; `confirmations`
    holds those batches.
    """

    def __init__(
        self,
        reason: str,
        *,
        group_index: int | None = None,
        tx_hash: str | None = None,
        wallets_confirmed: int = 0,
        confirmations: list | None = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.group_index = group_index
        self.tx_hash = tx_hash
        self.wallets_confirmed = wallets_confirmed
        self.confirmations = list(confirmations or [])

    def __str__(self) -> str:
        where = f"group {self.group_index}: " if self.group_index is not None else ""
        return f"{where}{self.reason}"
