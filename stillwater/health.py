"""
Health Classifier
=================

Maps (position, current tick, P&L) to exactly one HealthStatus.

RULES (first match wins):
─────────────────────────
  CRITICAL  tick outside [tick_lower, tick_upper)  OR  net_pnl < 0
  WARNING   in range and distance_to_edge ≤ WARNING_EDGE_RATIO × half_width
  HEALTHY   otherwise

half_width = (tick_upper − tick_lower) / 2, measured in ticks.
"""

from decimal import Decimal
from typing import List

from stillwater.models import HealthReport, HealthStatus, Position, PositionPnL
from stillwater.tick_math import (
    distance_to_range_edge,
    is_in_range,
    range_width_percent,
)

WARNING_EDGE_RATIO = Decimal("0.10")


def _warning_threshold(position: Position) -> Decimal:
    half_width = Decimal(position.tick_upper - position.tick_lower) / 2
    return WARNING_EDGE_RATIO * half_width


def position_health(position: Position, current_tick: int, pnl: PositionPnL) -> HealthStatus:
    if not is_in_range(current_tick, position.tick_lower, position.tick_upper):
        return HealthStatus.CRITICAL
    if pnl.net_pnl < 0:
        return HealthStatus.CRITICAL

    distance = distance_to_range_edge(current_tick, position.tick_lower, position.tick_upper)
    if distance <= _warning_threshold(position):
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY


def health_details(position: Position, current_tick: int, pnl: PositionPnL) -> str:
    """Human-readable reason for the status position_health() returns."""
    status = position_health(position, current_tick, pnl)
    lower, upper = position.tick_lower, position.tick_upper

    if status is HealthStatus.CRITICAL:
        reasons: List[str] = []
        if current_tick < lower:
            reasons.append(f"current tick {current_tick} is below the range [{lower}, {upper})")
        elif current_tick >= upper:
            reasons.append(f"current tick {current_tick} is above the range [{lower}, {upper})")
        if pnl.net_pnl < 0:
            reasons.append(f"net P&L is negative ({pnl.net_pnl})")
        return f"{status.description}: " + "; ".join(reasons)

    distance = distance_to_range_edge(current_tick, lower, upper)
    nearer_edge = "lower" if current_tick - lower <= upper - current_tick else "upper"

    if status is HealthStatus.WARNING:
        width = range_width_percent(lower, upper)
        return (
            f"{status.description}: {distance} ticks from the {nearer_edge} edge "
            f"(threshold {_warning_threshold(position):.1f} ticks, "
            f"range width {width:.2f}%)"
        )

    return f"{status.description}: {distance} ticks from the {nearer_edge} edge"


def health_report(position: Position, current_tick: int, pnl: PositionPnL) -> HealthReport:
    return HealthReport(
        status=position_health(position, current_tick, pnl),
        details=health_details(position, current_tick, pnl),
    )
