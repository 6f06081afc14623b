"""Domain records for provisioning and distribution.

NOTE: Operations are ledger-agnostic here; txn_factory renders them to XRPL.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import ClassVar

from provisioner.constants import OpKind
from provisioner.keys import Signer


@dataclass(frozen=True, slots=True)
class FeeTransfer:
    kind: ClassVar[OpKind] = OpKind.FEE_TRANSFER
    destination: str
    drops: int


@dataclass(frozen=True, slots=True)
class GasFunding:
    kind: ClassVar[OpKind] = OpKind.GAS_FUNDING
    destination: str
    drops: int


@dataclass(frozen=True, slots=True)
class TokenMint:
    kind: ClassVar[OpKind] = OpKind.TOKEN_MINT
    holder: Signer
    amount: int  # MPT units, already scaled by the token multiplier


Operation = FeeTransfer | GasFunding | TokenMint


@dataclass(frozen=True, slots=True)
class OemWallet:
    mnemonic: str = field(repr=False)
    signer: Signer


@dataclass(frozen=True, slots=True)
class WalletSlot:
    """One wallet being provisioned and the operations that provision it."""

    index: int
    mnemonic: str = field(repr=False)
    signer: Signer
    funding: GasFunding
    mint: TokenMint

    @property
    def operations(self) -> list[Operation]:
        # The account has to exist before it can hold the token.
        return [self.funding, self.mint]


@dataclass(slots=True)
class OperationGroup:
    index: int
    start: int
    end: int
    fee: FeeTransfer | None = None
    slots: list[WalletSlot] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.slots)

    @property
    def mnemonics(self) -> list[str]:
        return [s.mnemonic for s in self.slots]

    @property
    def operations(self) -> list[Operation]:
        ops: list[Operation] = [self.fee] if self.fee else []
        for slot in self.slots:
            ops.extend(slot.operations)
        return ops

    def count(self, kind: OpKind) -> int:
        return sum(1 for op in self.operations if op.kind == kind)


@dataclass(frozen=True, slots=True)
class Confirmation:
    """A validated ledger transaction carrying part (or all) of a group."""

    tx_hash: str
    ledger_index: int | None
    engine_result: str
    wallets: int


@dataclass(slots=True)
class GroupConfirmation:
    group_index: int
    confirmations: list[Confirmation] = field(default_factory=list)

    @property
    def tx_hashes(self) -> list[str]:
        return [c.tx_hash for c in self.confirmations]


@dataclass(slots=True)
class DistributionResult:
    mnemonics: list[str] = field(default_factory=list, repr=False)
    confirmations: list[GroupConfirmation] = field(default_factory=list)
    groups: int = 0
    failed_group: int | None = None
    error: Exception | None = None
    cancelled: bool = False

    @property
    def complete(self) -> bool:
        return self.error is None and not self.cancelled


@dataclass(frozen=True, slots=True)
class TokenData:
    mpt_issuance_id: str
    name: str | None
    symbol: str | None
    metadata_uri: str | None
    balance: Decimal
