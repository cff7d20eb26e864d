"""Opinion Price Model.

Deterministic pricing of an opinion from its cumulative buy/sell counts.

Key formulas:
    Net demand:   n = times_purchased - times_sold
    Multiplier:   m = 1.001^n                    if n >= 0
                  m = max(0.1, 0.999^|n|)        if n < 0
    Price:        p = round2(max(base * 0.5, base * min(m, ceiling)))

Where:
    base    = reference price fixed when the opinion was first seen
    ceiling = explicit cap on the growth multiplier (1.001^n is otherwise
              unbounded and overflows a float near n = 710,000)
    round2  = round half up to the cent
"""

import hashlib
import math
from decimal import Decimal, ROUND_HALF_UP

DEFAULT_BASE_PRICE = 10.0
DEFAULT_CEILING_MULTIPLIER = 1000.0

BUY_GROWTH = 1.001
SELL_DECAY = 0.999
MIN_MULTIPLIER = 0.1
FLOOR_RATIO = 0.5

_CENT = Decimal("0.01")


def round2(value: float) -> float:
    """Round to 2 decimal places, half up.

    Goes through the shortest repr of the float so that 10.005 rounds to
    10.01 rather than to the binary neighbour below it.
    """
    return float(Decimal(repr(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def multiplier(
    times_purchased: int,
    times_sold: int,
    ceiling_multiplier: float = DEFAULT_CEILING_MULTIPLIER,
) -> float:
    """Compute the demand multiplier applied to the base price.

    Args:
        times_purchased: Cumulative shares bought.
        times_sold: Cumulative shares sold.
        ceiling_multiplier: Upper bound for sustained positive demand.

    Returns:
        The multiplier, in [MIN_MULTIPLIER, ceiling_multiplier].
    """
    net_demand = times_purchased - times_sold
    if net_demand >= 0:
        # Compare in log space so huge counts never overflow.
        if net_demand * math.log(BUY_GROWTH) >= math.log(ceiling_multiplier):
            return ceiling_multiplier
        return min(ceiling_multiplier, BUY_GROWTH ** net_demand)
    return max(MIN_MULTIPLIER, SELL_DECAY ** abs(net_demand))


def price(
    times_purchased: int,
    times_sold: int,
    base_price: float = DEFAULT_BASE_PRICE,
    ceiling_multiplier: float = DEFAULT_CEILING_MULTIPLIER,
) -> float:
    """Price an opinion from its counters.

    Pure function of its inputs. Callers must pass finite, non-negative
    integer counts and a positive base price.

    Args:
        times_purchased: Cumulative shares bought.
        times_sold: Cumulative shares sold.
        base_price: Reference price set at creation.
        ceiling_multiplier: Upper bound on the growth multiplier.

    Returns:
        Price in currency units, never below base_price * 0.5.
    """
    m = multiplier(times_purchased, times_sold, ceiling_multiplier)
    return round2(max(base_price * FLOOR_RATIO, base_price * m))


def quote_price(
    times_purchased: int,
    times_sold: int,
    action: str,
    quantity: int,
    base_price: float = DEFAULT_BASE_PRICE,
    ceiling_multiplier: float = DEFAULT_CEILING_MULTIPLIER,
) -> float:
    """Price an opinion would have right after a trade of `quantity` shares."""
    if action == "buy":
        times_purchased += quantity
    elif action == "sell":
        times_sold += quantity
    else:
        raise ValueError(f"Unknown action {action!r}")
    return price(times_purchased, times_sold, base_price, ceiling_multiplier)


def trade_amount(unit_price: float, quantity: int) -> float:
    """Currency amount moved by a trade: round2(price * quantity)."""
    return round2(unit_price * quantity)


def asset_id_for(text: str) -> str:
    """Derive the stable asset id of an opinion from its text.

    Content-addressed: the same (whitespace-trimmed) text always maps to the
    same id, so concurrent first references converge on one record.
    """
    normalized = text.strip()
    if not normalized:
        raise ValueError("Opinion text must be non-empty")
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:32]
