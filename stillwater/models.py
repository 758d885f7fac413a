"""
Domain Records — Positions, Swaps, Pools, P&L, Health
======================================================

Immutable value types shared by the analytics engine and its collaborators.

Numeric I/O contract:
  • liquidity (uint128/uint256) and swap amounts (int256) exceed 64-bit range,
    so they are held as Python ``int`` and cross every serialization boundary
    as decimal-string text (``"340282366920938463463374607431768211455"``).
  • money-like values (fees, IL, gas, net P&L) are ``decimal.Decimal`` and are
    rendered as plain strings, never floats.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Union

# ── Bounds ──────────────────────────────────────────────────────────────

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1
UINT256_MAX = 2 ** 256 - 1
INT256_MIN = -(2 ** 255)
INT256_MAX = 2 ** 255 - 1

NumberLike = Union[Decimal, int, str]


def to_decimal(value: NumberLike) -> Decimal:
    """Convert an int / str / Decimal to Decimal without passing through float.

    Floats are rejected: their binary expansion is not the value the caller
    typed, and the engine promises exact decimal arithmetic.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Expected int, str or Decimal, got {type(value).__name__}")
    if isinstance(value, int):
        return Decimal(value)
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal number: {value!r}") from exc


def parse_int_text(text: Any, lo: int, hi: int, name: str) -> int:
    """Parse a base-10 integer string (or int) and check it lies in [lo, hi]."""
    if isinstance(text, bool):
        raise ValueError(f"{name} must be an integer, got {text!r}")
    if isinstance(text, int):
        value = text
    else:
        try:
            value = int(str(text).strip(), 10)
        except ValueError as exc:
            raise ValueError(f"{name} must be a base-10 integer string, got {text!r}") from exc
    if not lo <= value <= hi:
        raise ValueError(f"{name} out of range: {value}")
    return value


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Position ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Position:
    """
    Snapshot of one concentrated-liquidity LP position (an NFT).

    The position is active while the pool tick sits in the half-open
    interval [tick_lower, tick_upper).
    """

    nft_id: str
    owner: str
    pool_id: str
    tick_lower: int
    tick_upper: int
    liquidity: int = 0
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        for name in ("tick_lower", "tick_upper"):
            tick = getattr(self, name)
            if not INT32_MIN <= tick <= INT32_MAX:
                raise ValueError(f"{name} out of int32 range: {tick}")
        if self.tick_lower >= self.tick_upper:
            raise ValueError(
                f"tick_lower must be below tick_upper "
                f"(got {self.tick_lower} >= {self.tick_upper})"
            )
        if not 0 <= self.liquidity <= UINT256_MAX:
            raise ValueError(f"liquidity must be a uint256, got {self.liquidity}")

    @property
    def is_active(self) -> bool:
        return self.liquidity > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nft_id": self.nft_id,
            "owner": self.owner,
            "pool_id": self.pool_id,
            "tick_lower": self.tick_lower,
            "tick_upper": self.tick_upper,
            "liquidity": str(self.liquidity),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        kwargs = dict(
            nft_id=str(data["nft_id"]),
            owner=data["owner"],
            pool_id=data["pool_id"],
            tick_lower=int(data["tick_lower"]),
            tick_upper=int(data["tick_upper"]),
            liquidity=parse_int_text(data.get("liquidity", "0"), 0, UINT256_MAX, "liquidity"),
        )
        if data.get("created_at"):
            kwargs["created_at"] = _parse_timestamp(data["created_at"])
        return cls(**kwargs)


# ── Swap ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Swap:
    """A pool swap event. Signs of amount0/amount1 give the flow direction."""

    tx_hash: str
    pool_id: str
    amount0: int
    amount1: int
    timestamp: datetime
    block_number: int = 0

    def __post_init__(self):
        for name in ("amount0", "amount1"):
            amount = getattr(self, name)
            if not INT256_MIN <= amount <= INT256_MAX:
                raise ValueError(f"{name} does not fit int256: {amount}")

    @property
    def volume(self) -> int:
        """Absolute traded magnitude across both legs."""
        return abs(self.amount0) + abs(self.amount1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "pool_id": self.pool_id,
            "amount0": str(self.amount0),
            "amount1": str(self.amount1),
            "timestamp": self.timestamp.isoformat(),
            "block_number": self.block_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Swap":
        return cls(
            tx_hash=data["tx_hash"],
            pool_id=data["pool_id"],
            amount0=parse_int_text(data["amount0"], INT256_MIN, INT256_MAX, "amount0"),
            amount1=parse_int_text(data["amount1"], INT256_MIN, INT256_MAX, "amount1"),
            timestamp=_parse_timestamp(data["timestamp"]),
            block_number=int(data.get("block_number", 0)),
        )


# ── Pool ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Pool:
    """Static pool descriptor. fee_tier is in hundredths of a bip (3000 = 0.30%)."""

    pool_id: str
    token0: str
    token1: str
    fee_tier: int
    tick_spacing: int = 0

    @property
    def fee_label(self) -> str:
        return f"{self.fee_tier / 10_000:.2f}%"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pool_id": self.pool_id,
            "token0": self.token0,
            "token1": self.token1,
            "fee_tier": self.fee_tier,
            "tick_spacing": self.tick_spacing,
        }


# ── P&L ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PositionPnL:
    """P&L breakdown: net_pnl = fees_earned - impermanent_loss - gas_spent."""

    fees_earned: Decimal
    impermanent_loss: Decimal
    gas_spent: Decimal
    net_pnl: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            "fees_earned": str(self.fees_earned),
            "impermanent_loss": str(self.impermanent_loss),
            "gas_spent": str(self.gas_spent),
            "net_pnl": str(self.net_pnl),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PositionPnL":
        return cls(
            fees_earned=to_decimal(data["fees_earned"]),
            impermanent_loss=to_decimal(data["impermanent_loss"]),
            gas_spent=to_decimal(data["gas_spent"]),
            net_pnl=to_decimal(data["net_pnl"]),
        )


# ── Health ──────────────────────────────────────────────────────────────


class HealthStatus(str, Enum):
    """Point-in-time risk classification of a position."""

    HEALTHY = "healthy"   # in range, positive P&L
    WARNING = "warning"   # within 10% of a range edge
    CRITICAL = "critical"  # out of range or negative P&L

    @property
    def description(self) -> str:
        return _HEALTH_DESCRIPTIONS[self]

    @property
    def label(self) -> str:
        return self.name.title()


_HEALTH_DESCRIPTIONS = {
    HealthStatus.HEALTHY: "Position is in range with positive P&L",
    HealthStatus.WARNING: "Position is near the edge of its range",
    HealthStatus.CRITICAL: "Position is out of range or has negative P&L",
}


@dataclass(frozen=True)
class HealthReport:
    status: HealthStatus
    details: str

    def to_dict(self) -> Dict[str, str]:
        return {"status": self.status.label, "details": self.details}
