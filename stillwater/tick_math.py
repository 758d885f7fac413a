"""
Price / Tick Converter
======================

Pure conversions between tick indices, prices and sqrt-prices, plus the
range predicates every other component builds on.

FORMULAS (Uniswap V3 Whitepaper §6.1):
──────────────────────────────────────
  p(i)  = 1.0001^i
  √p(i) = 1.0001^(i/2) = exp(i/2 · ln 1.0001)
  i(p)  = round(ln p / ln 1.0001)

All arithmetic is decimal, evaluated under MATH_CONTEXT through
``decimal.localcontext`` so the caller's context is left untouched.
"""

from decimal import ROUND_HALF_EVEN, Context, Decimal, localcontext
from typing import Optional

from stillwater.models import INT32_MAX, INT32_MIN, NumberLike, to_decimal

# ── Named Constants ──────────────────────────────────────────────────────

MATH_CONTEXT = Context(prec=40, rounding=ROUND_HALF_EVEN)

LN_TICK_BASE = Decimal("0.00009999500033330834")  # ln(1.0001)
HALF = Decimal("0.5")
HUNDRED = Decimal(100)

# exp() beyond |100| is far outside the valid tick domain (±887272 ticks
# gives |exponent| ≈ 44); clamp instead of overflowing.
MAX_EXPONENT = Decimal(100)
SQRT_PRICE_CEILING = Decimal("1000000")
SQRT_PRICE_FLOOR = Decimal("0.000001")


# ── Conversions ──────────────────────────────────────────────────────────


def tick_to_sqrt_price(tick: int) -> Decimal:
    """
    √p at a tick: exp(tick/2 · ln 1.0001).

    Ticks whose exponent exceeds ±100 are clamped to 1e6 (tick > 0) or
    1e-6 (tick ≤ 0). That is an approximation at absurd ticks, not an error.
    """
    with localcontext(MATH_CONTEXT):
        exponent = Decimal(tick) * HALF * LN_TICK_BASE
        if abs(exponent) > MAX_EXPONENT:
            return SQRT_PRICE_CEILING if tick > 0 else SQRT_PRICE_FLOOR
        return exponent.exp()


def tick_to_price(tick: int) -> Decimal:
    """p(i) = (√p(i))²."""
    sqrt_price = tick_to_sqrt_price(tick)
    with localcontext(MATH_CONTEXT):
        return sqrt_price * sqrt_price


def _nearest_tick(price: Decimal) -> Optional[int]:
    if not price.is_finite() or price <= 0:
        return None
    with localcontext(MATH_CONTEXT):
        raw = price.ln() / LN_TICK_BASE
        tick = int(raw.to_integral_value(rounding=ROUND_HALF_EVEN))
    if not INT32_MIN <= tick <= INT32_MAX:
        return None
    return tick


def price_to_tick(price: NumberLike) -> int:
    """
    Nearest tick for a price: round(ln p / ln 1.0001), half-even.

    Non-positive prices have no tick and map to 0; so does a result that
    does not fit a signed 32-bit tick.
    """
    tick = _nearest_tick(to_decimal(price))
    return 0 if tick is None else tick


def has_tick(price: NumberLike) -> bool:
    """True when price is positive and its nearest tick fits int32."""
    return _nearest_tick(to_decimal(price)) is not None


# ── Range Predicates ─────────────────────────────────────────────────────


def is_in_range(current_tick: int, tick_lower: int, tick_upper: int) -> bool:
    """Half-open: lower ≤ tick < upper. A tick sitting on the upper bound is out."""
    return tick_lower <= current_tick < tick_upper


def distance_to_range_edge(current_tick: int, tick_lower: int, tick_upper: int) -> int:
    """Ticks to the nearer edge while in range; 0 once out of range on either side."""
    if not is_in_range(current_tick, tick_lower, tick_upper):
        return 0
    return min(current_tick - tick_lower, tick_upper - current_tick)


def range_width_percent(tick_lower: int, tick_upper: int) -> Decimal:
    """
    Price width of a range relative to its lower bound.

    Formula: (p(upper) − p(lower)) / p(lower) × 100
    """
    price_lower = tick_to_price(tick_lower)
    price_upper = tick_to_price(tick_upper)
    if price_lower.is_zero():
        return Decimal(0)
    with localcontext(MATH_CONTEXT):
        return (price_upper - price_lower) / price_lower * HUNDRED
