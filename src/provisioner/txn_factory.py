import hashlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from itertools import count

from xrpl.core.binarycodec import encode
from xrpl.models.amounts import MPTAmount
from xrpl.models.transactions import MPTokenAuthorize, Payment, Transaction
from xrpl.models.transactions.batch import Batch, BatchFlag
from xrpl.models.transactions.transaction import TransactionFlag

from provisioner.constants import OpKind
from provisioner.models import FeeTransfer, GasFunding, Operation, TokenMint

log = logging.getLogger("provisioner.txn")


@dataclass(slots=True)
class RenderContext:
    """What a renderer needs beyond the operation itself.

    `account` is the session identity (fee payer, issuer, batch account).
    OEM inner transactions draw consecutive sequences from `next_sequence`;
    holder transactions use `holder_sequence`, the index of the ledger that
    creates the holder account.
    """

    account: str
    mpt_issuance_id: str
    next_sequence: Callable[[], int]
    holder_sequence: int

    @classmethod
    def build(cls, *, account: str, mpt_issuance_id: str, first_sequence: int, holder_sequence: int) -> "RenderContext":
        seqs = count(first_sequence)
        return cls(
            account=account,
            mpt_issuance_id=mpt_issuance_id,
            next_sequence=lambda: next(seqs),
            holder_sequence=holder_sequence,
        )


@dataclass
class OpSpec:
    inner: int
    render: Callable[[Operation, RenderContext], list[Transaction]]


REGISTRY: dict[OpKind, OpSpec] = {}


def register_op(kind: OpKind, *, inner: int):
    """
    Decorator to register the renderer of an operation kind along with the
    number of inner Batch transactions it produces.
    """
    def wrap(fn: Callable[[Operation, RenderContext], list[Transaction]]):
        REGISTRY[kind] = OpSpec(inner=inner, render=fn)
        return fn
    return wrap


def _inner(model_cls: type[Transaction], **fields) -> Transaction:
    # ALL inner txns must have: fee="0", signing_pub_key="", TF_INNER_BATCH_TXN flag
    return model_cls(
        fee="0",
        signing_pub_key="",
        flags=TransactionFlag.TF_INNER_BATCH_TXN,
        **fields,
    )


@register_op(OpKind.FEE_TRANSFER, inner=1)
def _render_fee_transfer(op: FeeTransfer, ctx: RenderContext) -> list[Transaction]:
    return [
        _inner(
            Payment,
            account=ctx.account,
            destination=op.destination,
            amount=str(op.drops),
            sequence=ctx.next_sequence(),
        )
    ]


@register_op(OpKind.GAS_FUNDING, inner=1)
def _render_gas_funding(op: GasFunding, ctx: RenderContext) -> list[Transaction]:
    return [
        _inner(
            Payment,
            account=ctx.account,
            destination=op.destination,
            amount=str(op.drops),
            sequence=ctx.next_sequence(),
        )
    ]


@register_op(OpKind.TOKEN_MINT, inner=2)
def _render_token_mint(op: TokenMint, ctx: RenderContext) -> list[Transaction]:
    """Holder opts in to the issuance, then the issuer pays it the tokens."""
    authorize = _inner(
        MPTokenAuthorize,
        account=op.holder.address,
        mptoken_issuance_id=ctx.mpt_issuance_id,
        sequence=ctx.holder_sequence,
    )
    payment = _inner(
        Payment,
        account=ctx.account,
        destination=op.holder.address,
        amount=MPTAmount(mpt_issuance_id=ctx.mpt_issuance_id, value=str(op.amount)),
        sequence=ctx.next_sequence(),
    )
    return [authorize, payment]


def inner_count(op: Operation) -> int:
    return _spec(op).inner


def _spec(op: Operation) -> OpSpec:
    spec = REGISTRY.get(op.kind)
    if not spec:
        raise ValueError(f"Unsupported operation: {op.kind!r}")
    return spec


def render(ops: Sequence[Operation], ctx: RenderContext) -> list[Transaction]:
    inner: list[Transaction] = []
    for op in ops:
        inner.extend(_spec(op).render(op, ctx))
    log.debug("Rendered %s operations into %s inner txns", len(ops), len(inner))
    return inner


def build_batch(
    account: str,
    inner: Sequence[Transaction],
    *,
    sequence: int,
    last_ledger_sequence: int,
    batch_signers: Sequence | None = None,
) -> Batch:
    return Batch(
        account=account,
        flags=BatchFlag.TF_ALL_OR_NOTHING,
        raw_transactions=list(inner),
        sequence=sequence,
        last_ledger_sequence=last_ledger_sequence,
        batch_signers=list(batch_signers) if batch_signers else None,
    )


def _sha512half(b: bytes) -> bytes:
    return hashlib.sha512(b).digest()[:32]


def _txid_from_signed_blob_hex(signed_blob_hex: str) -> str:
    # XRPL txid = SHA512Half(0x54584E00 || signed_bytes)
    return _sha512half(bytes.fromhex("54584E00") + bytes.fromhex(signed_blob_hex)).hex().upper()


def inner_txn_hash(txn: Transaction) -> str:
    return _txid_from_signed_blob_hex(encode(txn.to_xrpl()))
