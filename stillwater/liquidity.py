"""
Liquidity Valuer
================

Turns a position's liquidity L and tick range into token balances, and a
token balance into a single token1-denominated value.

FORMULAS (Uniswap V3 Whitepaper §6.2, eq. 6.29 / 6.30):
────────────────────────────────────────────────────────
  Below range (P < Pa):  x = L·(√Pb − √Pa) / (√Pa·√Pb),   y = 0
  Above range (P ≥ Pb):  x = 0,                           y = L·(√Pb − √Pa)
  In range:              x = L·(√Pb − √P)  / (√P·√Pb),    y = L·(√P − √Pa)

x is token0, y is token1, amounts are in raw (undecimalized) token units.
"""

from decimal import Decimal, localcontext
from typing import Tuple, Union

from stillwater.models import NumberLike, Position, to_decimal
from stillwater.tick_math import MATH_CONTEXT, tick_to_sqrt_price

ZERO = Decimal(0)


def token_amounts_from_liquidity(
    liquidity: Union[int, Decimal],
    current_tick: int,
    tick_lower: int,
    tick_upper: int,
) -> Tuple[Decimal, Decimal]:
    """(amount0, amount1) held by liquidity L over [tick_lower, tick_upper) at current_tick."""
    liquidity = to_decimal(liquidity)
    if liquidity.is_zero():
        return ZERO, ZERO

    sqrt_lower = tick_to_sqrt_price(tick_lower)
    sqrt_upper = tick_to_sqrt_price(tick_upper)

    with localcontext(MATH_CONTEXT):
        if current_tick < tick_lower:
            amount0 = liquidity * (sqrt_upper - sqrt_lower) / (sqrt_lower * sqrt_upper)
            return amount0, ZERO

        if current_tick >= tick_upper:
            return ZERO, liquidity * (sqrt_upper - sqrt_lower)

        sqrt_price = tick_to_sqrt_price(current_tick)
        amount0 = liquidity * (sqrt_upper - sqrt_price) / (sqrt_price * sqrt_upper)
        amount1 = liquidity * (sqrt_price - sqrt_lower)
        return amount0, amount1


def position_value(amount0: NumberLike, amount1: NumberLike, price: NumberLike) -> Decimal:
    """Value in token1 terms: amount0 · price + amount1. A zero price leaves amount1."""
    with localcontext(MATH_CONTEXT):
        return to_decimal(amount0) * to_decimal(price) + to_decimal(amount1)


def position_composition(position: Position, current_tick: int) -> Tuple[Decimal, Decimal]:
    """Token balances of a Position record at current_tick."""
    return token_amounts_from_liquidity(
        position.liquidity, current_tick, position.tick_lower, position.tick_upper
    )
