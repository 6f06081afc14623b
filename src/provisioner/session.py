import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import httpx
from xrpl.asyncio.clients import AsyncJsonRpcClient
from xrpl.asyncio.transaction import autofill_and_sign, submit_and_wait
from xrpl.core.addresscodec import decode_classic_address
from xrpl.models import Response, Transaction
from xrpl.models.requests import AccountInfo, AccountObjects, Ledger, LedgerEntry, Tx
from xrpl.models.requests.request import Request

from provisioner.config import Settings
from provisioner.errors import AccountNotFound
from provisioner.keys import Signer

log = logging.getLogger("provisioner.session")

# Errors worth another attempt on a read: nothing was written to the ledger.
TRANSIENT = (httpx.HTTPError, TimeoutError, OSError)


class LedgerSession:
    """Ledger handle bound to one identity.

    The bound signer is the fee payer, the Batch account and the MPT issuer
    for everything built in this session. A session without a signer is
    read-only. Sessions are cheap: build one per request and never share
    it between requests.
    """

    def __init__(self, client: AsyncJsonRpcClient, signer: Signer | None, settings: Settings):
        self.client = client
        self.signer = signer
        self.settings = settings

    @classmethod
    def open(cls, signer: Signer | None, settings: Settings, *, client: AsyncJsonRpcClient | None = None) -> "LedgerSession":
        return cls(client or AsyncJsonRpcClient(settings.rpc_url), signer, settings)

    @property
    def address(self) -> str:
        if self.signer is None:
            raise RuntimeError("Read-only session has no identity")
        return self.signer.address

    @property
    def treasury_address(self) -> str:
        return self.settings.treasury_address

    @property
    def mpt_issuance_id(self) -> str:
        return self.settings.mpt_issuance_id

    # ============================================== #
    # ================ RPC plumbing ================ #
    # ============================================== #

    async def _rpc(self, req: Request, *, t: float | None = None) -> Response:
        return await asyncio.wait_for(self.client.request(req), timeout=t or self.settings.rpc_timeout)

    async def read(self, req: Request) -> Response:
        """Idempotent request with bounded exponential backoff."""
        s = self.settings
        attempts = max(1, s.retry_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return await self._rpc(req)
            except TRANSIENT as e:
                if attempt == attempts:
                    log.error(f"{req.method} failed after {attempts} attempts: {e.__class__.__name__}")
                    raise
                delay = min(s.retry_base_delay * 2 ** (attempt - 1), s.retry_max_delay)
                log.info(f"{req.method} failed (attempt {attempt}/{attempts}): {e.__class__.__name__} - retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    # ============================================== #
    # ================= Ledger state =============== #
    # ============================================== #

    async def account_info(self, address: str, *, ledger_index: str = "validated") -> dict[str, Any]:
        r = await self.read(AccountInfo(account=address, ledger_index=ledger_index))
        if not r.is_successful():
            if r.result.get("error") == "actNotFound":
                raise AccountNotFound(address)
            raise RuntimeError(f"account_info {address}: {r.result.get('error_message') or r.result.get('error')}")
        return r.result["account_data"]

    async def next_sequence(self) -> int:
        data = await self.account_info(self.address, ledger_index="current")
        return int(data["Sequence"])

    async def open_ledger_index(self) -> int:
        r = await self.read(Ledger(ledger_index="current"))
        res = r.result
        return int(res.get("ledger_current_index") or res["ledger_index"])

    async def latest_validated_ledger(self) -> int:
        r = await self.read(Ledger(ledger_index="validated"))
        return int(r.result["ledger_index"])

    async def account_objects(self, address: str, *, object_type: Any = None) -> list[dict[str, Any]]:
        objects: list[dict[str, Any]] = []
        marker = None
        while True:
            r = await self.read(AccountObjects(account=address, ledger_index="validated", type=object_type, marker=marker))
            if not r.is_successful():
                if r.result.get("error") == "actNotFound":
                    raise AccountNotFound(address)
                raise RuntimeError(f"account_objects {address}: {r.result.get('error')}")
            objects.extend(r.result.get("account_objects", []))
            marker = r.result.get("marker")
            if not marker:
                return objects

    async def ledger_entry(self, **selector: Any) -> dict[str, Any] | None:
        r = await self.read(LedgerEntry(ledger_index="validated", **selector))
        if not r.is_successful():
            if r.result.get("error") == "entryNotFound":
                return None
            raise RuntimeError(f"ledger_entry {selector}: {r.result.get('error')}")
        return r.result.get("node")

    async def tx_status(self, tx_hash: str) -> dict[str, Any] | None:
        """Tx lookup; None while the ledger doesn't know the transaction."""
        r = await self.read(Tx(transaction=tx_hash))
        if r.is_successful():
            return r.result
        if r.result.get("error") != "txnNotFound":
            log.warning(f"tx {tx_hash} lookup error: {r.result.get('error')}")
        return None

    # ============================================== #
    # ============== Signing & submit ============== #
    # ============================================== #

    def batch_signers(self, batch: Transaction, holders: Sequence[Signer]) -> list:
        """BatchSigner entries for every holder with an inner txn in `batch`."""
        from xrpl.transaction import sign_multiaccount_batch

        signers = []
        for holder in holders:
            signed = sign_multiaccount_batch(holder._signing_wallet, batch)
            signers.extend(signed.batch_signers or [])
        # rippled expects BatchSigners ordered by account ID
        return sorted(signers, key=lambda s: decode_classic_address(s.account))

    async def sign(self, txn: Transaction) -> Transaction:
        return await autofill_and_sign(txn, self.client, self.signer._signing_wallet)

    async def submit_and_wait(self, signed: Transaction) -> dict[str, Any]:
        resp = await submit_and_wait(signed, self.client)
        return resp.result
