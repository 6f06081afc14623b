"""Distribution fee pricing.

Fees are linear in the number of tokens distributed and always rounded up
to a whole drop. All arithmetic is Decimal so there is no float residue.
"""

from collections.abc import Sequence
from decimal import ROUND_CEILING, Decimal, localcontext

from provisioner.constants import UNIT_RATE, XRP_DECIMALS
from provisioner.errors import InvalidQuantity


def price_for(quantity: int, *, unit_rate: Decimal = UNIT_RATE, decimals: int = XRP_DECIMALS) -> int:
    """Fee in drops for distributing `quantity` tokens.

    Args:
        quantity: Number of whole tokens. Must be non-negative.
        unit_rate: XRP charged per token.
        decimals: Decimal exponent of the native currency (drops per XRP).

    Returns:
        ceil(quantity * unit_rate * 10**decimals)
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity(f"Token quantity must be an integer, got {quantity!r}")
    if quantity < 0:
        raise InvalidQuantity(f"Token quantity can't be negative: {quantity}")
    with localcontext() as ctx:
        ctx.prec = max(28, len(str(quantity)) + 16)
        exact = Decimal(quantity) * Decimal(unit_rate) * (Decimal(10) ** decimals)
        return int(exact.to_integral_value(rounding=ROUND_CEILING))


def split_fee(total: int, bounds: Sequence[range], wallet_count: int) -> list[int]:
    """Split a once-computed fee across groups in proportion to their size.

    Each group pays ceil(total * end / N) - ceil(total * start / N), so the
    shares telescope to exactly `total`.
    """
    if total < 0:
        raise InvalidQuantity(f"Fee can't be negative: {total}")
    if wallet_count <= 0:
        raise InvalidQuantity(f"Wallet count must be positive: {wallet_count}")

    def upto(i: int) -> int:
        return -(-total * i // wallet_count)

    return [upto(r.stop) - upto(r.start) for r in bounds]
