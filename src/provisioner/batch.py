"""Batched distribution of MPT allotments to freshly provisioned wallets.

Wallets are generated up front and split into groups of `batch_size`.
Groups are submitted one after the other; results accumulate across all
groups and the first failed submission stops the run. Groups that already
landed stay on the ledger, so their mnemonics are always returned.
"""

import asyncio
import logging
import math
from collections.abc import Callable

from provisioner import keys
from provisioner.config import Settings
from provisioner.errors import InvalidQuantity, SubmissionFailed
from provisioner.fees import price_for, split_fee
from provisioner.keys import Signer
from provisioner.models import (
    DistributionResult,
    FeeTransfer,
    GasFunding,
    GroupConfirmation,
    OperationGroup,
    TokenMint,
    WalletSlot,
)
from provisioner.session import LedgerSession
from provisioner.submitter import TransactionSubmitter

log = logging.getLogger("provisioner.batch")

SessionFactory = Callable[[Signer, Settings], LedgerSession]
WalletFactory = Callable[[], tuple[str, Signer]]


def partition(wallet_count: int, batch_size: int) -> list[range]:
    """ceil(N / B) consecutive index ranges; all of size B except maybe the last."""
    if wallet_count <= 0:
        raise InvalidQuantity(f"Wallet count must be positive, got {wallet_count}")
    if batch_size <= 0:
        raise InvalidQuantity(f"Batch size must be positive, got {batch_size}")
    return [
        range(g * batch_size, min((g + 1) * batch_size, wallet_count))
        for g in range(math.ceil(wallet_count / batch_size))
    ]


def _check_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidQuantity(f"{name} must be a positive integer, got {value!r}")


class BatchDistributionPlanner:
    def __init__(
        self,
        settings: Settings,
        *,
        session_factory: SessionFactory | None = None,
        submitter: TransactionSubmitter | None = None,
        wallet_factory: WalletFactory = keys.new_wallet,
    ):
        self.settings = settings
        self.session_factory = session_factory or (lambda signer, s: LedgerSession.open(signer, s))
        self.submitter = submitter or TransactionSubmitter(settings)
        self.wallet_factory = wallet_factory

    @property
    def batch_size(self) -> int:
        return self.settings.batch_size

    def plan(self, wallet_count: int, tokens_per_wallet: int) -> list[OperationGroup]:
        """Generate every wallet and build every group without touching the ledger."""
        _check_positive("wallet_count", wallet_count)
        _check_positive("tokens_per_wallet", tokens_per_wallet)
        s = self.settings

        bounds = partition(wallet_count, self.batch_size)
        total_fee = price_for(tokens_per_wallet * wallet_count, unit_rate=s.unit_rate)
        shares = split_fee(total_fee, bounds, wallet_count)
        mint_amount = tokens_per_wallet * s.token_multiplier
        log.info("Planning %s wallets in %s groups, fee %s drops, %s units each",
                 wallet_count, len(bounds), total_fee, mint_amount)

        groups = []
        for g, (r, share) in enumerate(zip(bounds, shares)):
            group = OperationGroup(
                index=g,
                start=r.start,
                end=r.stop,
                fee=FeeTransfer(destination=s.treasury_address, drops=share) if share else None,
            )
            for i in r:
                mnemonic, signer = self.wallet_factory()
                group.slots.append(
                    WalletSlot(
                        index=i,
                        mnemonic=mnemonic,
                        signer=signer,
                        funding=GasFunding(destination=signer.address, drops=s.gas_funding_drops),
                        mint=TokenMint(holder=signer, amount=mint_amount),
                    )
                )
            groups.append(group)
        return groups

    async def distribute(
        self,
        wallet_count: int,
        oem_signer: Signer,
        tokens_per_wallet: int,
        *,
        cancel: asyncio.Event | None = None,
    ) -> DistributionResult:
        self.settings.require_distribution()
        groups = self.plan(wallet_count, tokens_per_wallet)
        session = self.session_factory(oem_signer, self.settings)

        result = DistributionResult(groups=len(groups))
        for group in groups:
            if cancel is not None and cancel.is_set():
                log.warning(f"Distribution cancelled before group {group.index + 1}/{len(groups)}")
                result.cancelled = True
                break
            try:
                confirmation = await self.submitter.submit(session, group)
            except SubmissionFailed as e:
                e.group_index = group.index
                result.failed_group = group.index
                result.error = e
                result.mnemonics.extend(group.mnemonics[:e.wallets_confirmed])
                if e.confirmations:
                    result.confirmations.append(GroupConfirmation(group.index, e.confirmations))
                log.error(f"Distribution stopped at group {group.index + 1}/{len(groups)}: {e.reason} "
                          f"({len(result.mnemonics)} wallets provisioned)")
                break
            except Exception as e:
                # Earlier groups are on the ledger; their mnemonics go back with the error.
                log.exception(f"Distribution aborted at group {group.index + 1}/{len(groups)} "
                              f"({len(result.mnemonics)} wallets provisioned)")
                result.failed_group = group.index
                result.error = e
                break
            result.confirmations.append(confirmation)
            result.mnemonics.extend(group.mnemonics)

        log.info(f"Distribution done: {len(result.mnemonics)}/{wallet_count} wallets provisioned")
        return result
