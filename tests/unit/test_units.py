from decimal import Context, Decimal

from contract_scanner.utils.units import WEI_PER_ETHER, to_display_unit


def test_one_ether_is_exactly_one() -> None:
    assert to_display_unit(WEI_PER_ETHER) == Decimal("1")


def test_single_wei_keeps_precision() -> None:
    assert to_display_unit(1) == Decimal("1E-18")


def test_max_uint256_is_exact() -> None:
    wei = 2 ** 256 - 1
    assert to_display_unit(wei) == Decimal("115792089237316195423570985008687907853269984665640564039457.584007913129639935")
    assert Context(prec=80).multiply(to_display_unit(wei), Decimal(WEI_PER_ETHER)) == Decimal(wei)


def test_zero() -> None:
    assert to_display_unit(0) == 0
