"""
P&L Engine
==========

Fee income, impermanent loss and net P&L for a single position.

Both estimates are deliberately simple:

  • Fees assume every supplied swap happened while the position was in range
    and that the position owns a fixed share of the pool:
        fees = Σ(|amount0| + |amount1|) × FEE_RATE × ASSUMED_POOL_SHARE

  • Impermanent loss compares the position at the current price against
    holding the tokens it held at the initial price, both valued at the
    current price (token1 terms):
        IL = max(0, (V_hodl − V_current) / V_hodl)
    Fee income is not netted into IL.
"""

from decimal import Decimal, localcontext
from typing import Iterable

from stillwater.liquidity import position_value, token_amounts_from_liquidity
from stillwater.models import NumberLike, Position, PositionPnL, Swap, to_decimal
from stillwater.tick_math import MATH_CONTEXT, has_tick, price_to_tick

# ── Named Constants ──────────────────────────────────────────────────────

FEE_RATE = Decimal("0.003")             # 0.30% fee tier
ASSUMED_POOL_SHARE = Decimal("0.01")    # position owns 1% of in-range liquidity
PRICE_TOLERANCE = Decimal("0.000001")   # price moves below this count as "no move"

ZERO = Decimal(0)


def fees_earned(position: Position, swaps: Iterable[Swap]) -> Decimal:
    """Volume-proportional fee estimate; an empty swap list earns nothing."""
    total_volume = sum((swap.volume for swap in swaps), 0)
    if total_volume == 0:
        return ZERO
    with localcontext(MATH_CONTEXT):
        return Decimal(total_volume) * FEE_RATE * ASSUMED_POOL_SHARE


def impermanent_loss(
    position: Position, initial_price: NumberLike, current_price: NumberLike
) -> Decimal:
    """
    Impermanent loss as a non-negative fraction of the HODL value.

    Steps:
      1. Degenerate inputs (non-positive price, a price with no int32 tick,
         no price move, no liquidity) → 0
      2. initial/current price → tick
      3. (x0, y0) at the initial tick, (x, y) at the current tick, same L and range
      4. V_hodl = x0·P + y0, V_current = x·P + y, P = current price
      5. IL = max(0, (V_hodl − V_current) / V_hodl)
    """
    initial_price = to_decimal(initial_price)
    current_price = to_decimal(current_price)

    if not (has_tick(initial_price) and has_tick(current_price)):
        return ZERO
    if abs(current_price - initial_price) < PRICE_TOLERANCE:
        return ZERO
    if position.liquidity == 0:
        return ZERO

    initial_tick = price_to_tick(initial_price)
    current_tick = price_to_tick(current_price)

    x0, y0 = token_amounts_from_liquidity(
        position.liquidity, initial_tick, position.tick_lower, position.tick_upper
    )
    x, y = token_amounts_from_liquidity(
        position.liquidity, current_tick, position.tick_lower, position.tick_upper
    )

    hodl_value = position_value(x0, y0, current_price)
    current_value = position_value(x, y, current_price)
    if hodl_value.is_zero():
        return ZERO

    with localcontext(MATH_CONTEXT):
        il = (hodl_value - current_value) / hodl_value
    return max(ZERO, il)


def net_pnl(fees: NumberLike, il: NumberLike, gas: NumberLike) -> Decimal:
    """fees − il − gas. Units are the caller's business."""
    with localcontext(MATH_CONTEXT):
        return to_decimal(fees) - to_decimal(il) - to_decimal(gas)


def position_pnl(
    position: Position,
    swaps: Iterable[Swap],
    initial_price: NumberLike,
    current_price: NumberLike,
    gas_spent: NumberLike,
) -> PositionPnL:
    """Compose fees, IL and gas into one PositionPnL record."""
    fees = fees_earned(position, swaps)
    il = impermanent_loss(position, initial_price, current_price)
    gas = to_decimal(gas_spent)
    return PositionPnL(
        fees_earned=fees,
        impermanent_loss=il,
        gas_spent=gas,
        net_pnl=net_pnl(fees, il, gas),
    )
