# bazaar/utils/money.py

from decimal import Decimal, ROUND_HALF_UP

Money = Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))

def round_money(x) -> Money:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)

def to_string_money(x) -> str:
    return str(round_money(x))

def clamp_zero(x) -> Money:
    x = round_money(x)
    return x if x > 0 else ZERO

def add(a, b) -> Money:
    return round_money(D(a) + D(b))

def subtract(a, b, clamp: bool = False) -> Money:
    """a - b; with clamp=True the result never goes below zero (payable amounts)."""
    out = round_money(D(a) - D(b))
    return clamp_zero(out) if clamp else out

def multiply(amount, factor) -> Money:
    return round_money(D(amount) * D(factor))

def percentage_of(amount, percent) -> Money:
    # half-up to the cent: 333.33 * 15% -> 50.00
    return round_money(D(amount) * D(percent) / HUNDRED)

def sum_of(values) -> Money:
    return round_money(sum((D(v) for v in values), Decimal("0")))
