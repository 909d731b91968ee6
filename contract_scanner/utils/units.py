from decimal import Context, Decimal, ROUND_HALF_EVEN

WEI_PER_ETHER = 10 ** 18

# 80 significant digits holds any uint256 wei amount exactly.
_CTX = Context(prec=80, rounding=ROUND_HALF_EVEN)


def to_display_unit(wei: int) -> Decimal:
    """Smallest-denomination integer (wei) -> ether as a Decimal."""
    return _CTX.divide(Decimal(int(wei)), Decimal(WEI_PER_ETHER))
