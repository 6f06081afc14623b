from decimal import Decimal

import httpx
import pytest
from xrpl.asyncio.transaction import XRPLReliableSubmissionException
from xrpl.models.response import Response, ResponseStatus

from provisioner import keys
from provisioner.config import Settings

TREASURY = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"
MPT_ID = "00000001" + "AB" * 20
ABANDON = " ".join(["abandon"] * 11 + ["about"])


@pytest.fixture
def settings() -> Settings:
    return Settings(
        rpc_url="http://localhost:5005",
        treasury_address=TREASURY,
        mpt_issuance_id=MPT_ID,
        unit_rate=Decimal("0.0000001"),
        retry_base_delay=0,
        retry_max_delay=0,
        submit_timeout=1,
    )


@pytest.fixture
def oem():
    return keys.derive(ABANDON)


class FakeSigned:
    def __init__(self, txn, n: int):
        self.txn = txn
        self._hash = f"{n:064X}"

    def get_hash(self) -> str:
        return self._hash


class FakeSession:
    """Stands in for LedgerSession. `outcomes` is consumed one per submitted batch:
    an engine result code, "expired" for a batch that never made it in,
    "rpc_down" when the submit call and every later lookup fail, or
    "lookup_down" for a batch that validates before lookups start failing."""

    def __init__(self, signer, settings, outcomes=()):
        self.signer = signer
        self.settings = settings
        self.outcomes = list(outcomes)
        self.sequence = 10
        self.ledger = 100
        self.validated = 99
        self.signed: list = []
        self.lost: set[str] = set()
        self.holders_seen: list = []
        self.rpc_down = False

    @property
    def address(self):
        return self.signer.address

    @property
    def mpt_issuance_id(self):
        return self.settings.mpt_issuance_id

    @property
    def treasury_address(self):
        return self.settings.treasury_address

    async def next_sequence(self):
        return self.sequence

    async def open_ledger_index(self):
        return self.ledger

    async def latest_validated_ledger(self):
        self._check_rpc()
        return self.validated

    def _check_rpc(self):
        if self.rpc_down:
            raise httpx.ConnectError("rpc down")

    def batch_signers(self, batch, holders):
        self.holders_seen.append(list(holders))
        return []

    async def sign(self, txn):
        self.signed.append(txn)
        return FakeSigned(txn, len(self.signed))

    async def submit_and_wait(self, signed):
        outcome = self.outcomes.pop(0) if self.outcomes else "tesSUCCESS"
        batch = signed.txn
        if outcome == "rpc_down":
            self.rpc_down = True
            raise XRPLReliableSubmissionException("Transaction failed to get included in a ledger")
        if outcome == "lookup_down":
            self.rpc_down = True
            outcome = "tesSUCCESS"
        if outcome == "expired":
            self.lost.add(signed.get_hash())
            self.ledger += 2
            self.validated = batch.last_ledger_sequence + 1
            raise XRPLReliableSubmissionException("Transaction failed to get included in a ledger")
        self.sequence += len(batch.raw_transactions) + 1
        self.ledger += 1
        self.validated = self.ledger
        return {
            "hash": signed.get_hash(),
            "validated": True,
            "ledger_index": self.ledger,
            "meta": {"TransactionResult": outcome},
        }

    async def tx_status(self, tx_hash):
        self._check_rpc()
        if tx_hash in self.lost:
            return None
        return {"validated": True, "meta": {"TransactionResult": "tesSUCCESS"}}


def ok(result: dict) -> Response:
    return Response(status=ResponseStatus.SUCCESS, result=result)


def err(code: str) -> Response:
    return Response(status=ResponseStatus.ERROR, result={"error": code})


class FakeClient:
    """AsyncJsonRpcClient stand-in; one handler per request method."""

    def __init__(self, **handlers):
        self.handlers = handlers
        self.requests = []

    async def request(self, req):
        self.requests.append(req)
        return self.handlers[req.method.value](req)
