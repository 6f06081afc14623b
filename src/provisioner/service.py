"""Inbound OEM operations.

Each call opens its own ledger session; nothing is kept between calls and
no credentials are stored.
"""

import asyncio
import logging
from collections.abc import Callable
from decimal import Decimal

from provisioner import keys
from provisioner.batch import BatchDistributionPlanner
from provisioner.config import Settings
from provisioner.keys import Signer
from provisioner.models import DistributionResult, OemWallet, TokenData
from provisioner.query import QueryService
from provisioner.session import LedgerSession

log = logging.getLogger("provisioner.service")


class OemService:
    def __init__(
        self,
        settings: Settings,
        *,
        session_factory: Callable[[Signer | None, Settings], LedgerSession] | None = None,
        planner: BatchDistributionPlanner | None = None,
    ):
        self.settings = settings
        self.session_factory = session_factory or (lambda signer, s: LedgerSession.open(signer, s))
        self.planner = planner or BatchDistributionPlanner(settings, session_factory=self.session_factory)

    def create_oem_wallet(self) -> OemWallet:
        mnemonic, signer = keys.new_wallet()
        log.info(f"Created OEM wallet {signer.address}")
        return OemWallet(mnemonic=mnemonic, signer=signer)

    def login_oem(self, mnemonic: str) -> Signer:
        signer = keys.derive(mnemonic)
        log.info(f"OEM login {signer.address}")
        return signer

    async def create_consumable_wallets(
        self,
        wallet_count: int,
        oem_signer: Signer,
        tokens_per_wallet: int,
        *,
        cancel: asyncio.Event | None = None,
    ) -> DistributionResult:
        log.info(f"OEM {oem_signer.address} requested {wallet_count} wallets x {tokens_per_wallet} tokens")
        return await self.planner.distribute(wallet_count, oem_signer, tokens_per_wallet, cancel=cancel)

    async def get_wallet_balance(self, public_key: str) -> Decimal:
        return await QueryService(self.session_factory(None, self.settings)).get_balance(public_key)

    async def get_token_data(self, wallet_address: str, mpt_issuance_id: str | None = None) -> TokenData:
        query = QueryService(self.session_factory(None, self.settings))
        return await query.get_token_data(wallet_address, mpt_issuance_id)
