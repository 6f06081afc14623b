import asyncio
import logging
from dataclasses import dataclass, field

import httpx
from xrpl import XRPLException
from xrpl.asyncio.transaction import XRPLReliableSubmissionException

import provisioner.constants as C
from provisioner import txn_factory
from provisioner.config import Settings
from provisioner.errors import AccountNotFound, SubmissionFailed
from provisioner.keys import Signer
from provisioner.models import Confirmation, GroupConfirmation, Operation, OperationGroup
from provisioner.session import LedgerSession
from provisioner.txn_factory import RenderContext

log = logging.getLogger("provisioner.submit")

NETWORK_ERRORS = (httpx.HTTPError, TimeoutError, OSError)


@dataclass(slots=True)
class Chunk:
    """Operations that go out together in one Batch transaction."""

    operations: list[Operation] = field(default_factory=list)
    holders: list[Signer] = field(default_factory=list)
    wallets: int = 0
    size: int = 0  # inner transactions once rendered


def pack(group: OperationGroup, limit: int) -> list[Chunk]:
    """Pack a group into Batches of at most `limit` inner transactions.

    The fee transfer rides in the first Batch and a wallet's operations are
    never split across Batches. A group larger than one Batch is therefore
    atomic per Batch, not as a whole: when a later Batch fails, wallets from
    the Batches before it are already on the ledger and are reported through
    `SubmissionFailed.wallets_confirmed`.
    """
    chunks: list[Chunk] = []
    current = Chunk()
    if group.fee:
        current.operations.append(group.fee)
        current.size += txn_factory.inner_count(group.fee)

    for slot in group.slots:
        n = sum(txn_factory.inner_count(op) for op in slot.operations)
        if current.size + n > limit:
            if not current.wallets:
                raise ValueError(f"Wallet {slot.index} needs {current.size + n} inner txns, ledger allows {limit}")
            chunks.append(current)
            current = Chunk()
        current.operations.extend(slot.operations)
        current.holders.append(slot.signer)
        current.wallets += 1
        current.size += n

    if current.wallets:
        chunks.append(current)
    return chunks


class _Resendable(Exception):
    """The Batch provably never made it into a ledger; rebuilding it is safe."""

    def __init__(self, reason: str, tx_hash: str | None = None):
        super().__init__(reason)
        self.tx_hash = tx_hash


def _engine_result(result: dict) -> str | None:
    meta = result.get("meta")
    return meta.get("TransactionResult") if isinstance(meta, dict) else None


class TransactionSubmitter:
    """Signs, sends and confirms operation groups.

    Every Batch is all-or-nothing on the ledger. A Batch is only rebuilt and
    resent when the ledger shows it cannot land any more (expired) or when it
    failed before broadcast; anything else surfaces as SubmissionFailed.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    async def submit(self, session: LedgerSession, group: OperationGroup) -> GroupConfirmation:
        chunks = pack(group, self.settings.max_batch_transactions)
        log.info(f"Group {group.index}: {group.size} wallets in {len(chunks)} batch(es)")

        confirmed = GroupConfirmation(group_index=group.index)
        wallets_done = 0
        for n, chunk in enumerate(chunks):
            try:
                conf = await self._submit_with_retry(session, chunk)
            except SubmissionFailed as e:
                e.group_index = group.index
                e.wallets_confirmed = wallets_done
                e.confirmations = list(confirmed.confirmations)
                log.error(f"Group {group.index} batch {n + 1}/{len(chunks)} failed: {e.reason}")
                raise
            confirmed.confirmations.append(conf)
            wallets_done += chunk.wallets
            log.info(f"Group {group.index} batch {n + 1}/{len(chunks)} validated in {conf.ledger_index}: {conf.tx_hash}")
        return confirmed

    async def _submit_with_retry(self, session: LedgerSession, chunk: Chunk) -> Confirmation:
        s = self.settings
        attempts = max(1, s.retry_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return await self._submit_chunk(session, chunk)
            except _Resendable as e:
                if attempt == attempts:
                    raise SubmissionFailed(f"{e} (gave up after {attempts} attempts)", tx_hash=e.tx_hash) from e
                delay = min(s.retry_base_delay * 2 ** (attempt - 1), s.retry_max_delay)
                log.warning(f"Batch not applied ({e}), rebuilding in {delay:.1f}s [{attempt}/{attempts}]")
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    async def _submit_chunk(self, session: LedgerSession, chunk: Chunk) -> Confirmation:
        try:
            sequence = await session.next_sequence()
            # New accounts start at the sequence of the ledger that creates them,
            # so the Batch has to land in exactly this ledger.
            ledger_index = await session.open_ledger_index()

            ctx = RenderContext.build(
                account=session.address,
                mpt_issuance_id=session.mpt_issuance_id,
                first_sequence=sequence + 1,
                holder_sequence=ledger_index,
            )
            inner = txn_factory.render(chunk.operations, ctx)
            batch = txn_factory.build_batch(session.address, inner, sequence=sequence, last_ledger_sequence=ledger_index)
            if chunk.holders:
                signers = session.batch_signers(batch, chunk.holders)
                batch = txn_factory.build_batch(
                    session.address, inner,
                    sequence=sequence, last_ledger_sequence=ledger_index, batch_signers=signers,
                )
            signed = await session.sign(batch)
        except NETWORK_ERRORS as e:
            raise _Resendable(f"not broadcast: {e.__class__.__name__}") from e
        except (AccountNotFound, RuntimeError, XRPLException) as e:
            raise SubmissionFailed(f"could not build batch: {e}") from e

        tx_hash = signed.get_hash()
        log.debug("Submitting batch %s (%s inner, LastLedgerSequence %s)", tx_hash, len(inner), ledger_index)
        try:
            result = await session.submit_and_wait(signed)
        except (XRPLReliableSubmissionException, *NETWORK_ERRORS) as e:
            log.warning(f"Batch {tx_hash} outcome unclear ({e}), checking ledger")
            result = await self._reconcile(session, tx_hash, ledger_index)

        engine_result = _engine_result(result)
        if not result.get("validated") or engine_result != C.TES_SUCCESS:
            raise SubmissionFailed(f"batch result {engine_result}", tx_hash=tx_hash)

        first_inner = txn_factory.inner_txn_hash(inner[0])
        try:
            inner_status = await session.tx_status(first_inner)
        except NETWORK_ERRORS as e:
            raise SubmissionFailed(f"outcome unknown: inner lookup failed ({e.__class__.__name__})", tx_hash=tx_hash) from e
        if not inner_status or _engine_result(inner_status) != C.TES_SUCCESS:
            raise SubmissionFailed("batch validated but its inner transactions were not applied", tx_hash=tx_hash)

        return Confirmation(
            tx_hash=tx_hash,
            ledger_index=result.get("ledger_index"),
            engine_result=engine_result,
            wallets=chunk.wallets,
        )

    async def _reconcile(self, session: LedgerSession, tx_hash: str, last_ledger_sequence: int) -> dict:
        """Block until the Batch is validated or provably expired."""
        try:
            async with asyncio.timeout(self.settings.submit_timeout):
                while True:
                    status = await session.tx_status(tx_hash)
                    if status and status.get("validated"):
                        return status
                    if await session.latest_validated_ledger() > last_ledger_sequence:
                        raise _Resendable(f"expired past ledger {last_ledger_sequence}", tx_hash)
                    await asyncio.sleep(C.POLL_INTERVAL)
        except TimeoutError:
            raise SubmissionFailed(f"outcome unknown after {self.settings.submit_timeout}s", tx_hash=tx_hash) from None
        except NETWORK_ERRORS as e:
            raise SubmissionFailed(f"outcome unknown: {e.__class__.__name__} while checking ledger", tx_hash=tx_hash) from e
