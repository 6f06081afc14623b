from decimal import Decimal
from enum import StrEnum
from typing import Final


class OpKind(StrEnum):
    FEE_TRANSFER = "FeeTransfer"
    TOKEN_MINT   = "TokenMint"
    GAS_FUNDING  = "GasFunding"


# Wallets per operation group.
BATCH_SIZE: Final = 7
# XRPL Batch carries at most 8 inner transactions.
MAX_BATCH_TRANSACTIONS: Final = 8

UNIT_RATE: Final = Decimal("0.0000001")  # XRP per token
XRP_DECIMALS: Final = 6                  # 1 XRP = 10**6 drops
TOKEN_MULTIPLIER: Final = 1000
GAS_FUNDING_DROPS: Final = 1_000_000

RPC_TIMEOUT = 2.0
SUBMIT_TIMEOUT = 20
POLL_INTERVAL = 0.5
RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 0.5
RETRY_MAX_DELAY = 4.0

TES_SUCCESS: Final = "tesSUCCESS"

__all__ = [
    "BATCH_SIZE",
    "GAS_FUNDING_DROPS",
    "MAX_BATCH_TRANSACTIONS",
    "POLL_INTERVAL",
    "RETRY_ATTEMPTS",
    "RETRY_BASE_DELAY",
    "RETRY_MAX_DELAY",
    "RPC_TIMEOUT",
    "SUBMIT_TIMEOUT",
    "TES_SUCCESS",
    "TOKEN_MULTIPLIER",
    "UNIT_RATE",
    "XRP_DECIMALS",

    ######
    "OpKind",
]
