"""
Stillwater — Command Implementations
====================================

All CLI command handlers live here, keeping run.py as a thin argparse
dispatcher. Each public ``cmd_*`` function corresponds to a subcommand
(info, list, pnl, health) and returns the process exit code.

Caller-supplied strings are parsed up front by ``parse_pnl_query``; a bad
value is a client error and is reported before any RPC traffic or
analytics run.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from stillwater.central_config import (
    CHAIN,
    DEPLOYMENTS,
    PROJECT_NAME,
    PROJECT_VERSION,
    RPC_URLS,
    get_dex_display_name,
    get_dex_icon,
)
from stillwater.health import health_report
from stillwater.liquidity import position_composition
from stillwater.models import INT32_MAX, INT32_MIN, HealthStatus, Pool, Position, Swap, to_decimal
from stillwater.pnl import position_pnl
from stillwater.rpc_helpers import RpcError
from stillwater.tick_math import (
    has_tick,
    is_in_range,
    price_to_tick,
    range_width_percent,
    tick_to_price,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CLIENT_ERROR = 2

_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")

_STATUS_ICONS = {
    HealthStatus.HEALTHY: "🟢",
    HealthStatus.WARNING: "🟡",
    HealthStatus.CRITICAL: "🔴",
}


class InvalidParameterError(ValueError):
    """A caller-supplied parameter did not parse."""


class OwnershipError(RuntimeError):
    """The position exists but is held by a different address."""


# ── Query Parsing ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PnlQuery:
    """
    Parsed P&L / health parameters.

    ``current_price`` / ``current_tick`` of None mean "take it from the
    pool's live slot0 tick"; when only one is given the other is derived.
    """

    initial_price: Decimal
    current_price: Optional[Decimal]
    current_tick: Optional[int]
    gas_spent: Decimal

    @property
    def needs_pool_state(self) -> bool:
        return self.current_price is None and self.current_tick is None

    def resolve(self, pool_tick: Optional[int] = None) -> Tuple[int, Decimal]:
        """(current_tick, current_price) for this query."""
        if self.current_tick is not None and self.current_price is not None:
            return self.current_tick, self.current_price
        if self.current_tick is not None:
            return self.current_tick, tick_to_price(self.current_tick)
        if self.current_price is not None:
            return price_to_tick(self.current_price), self.current_price
        if pool_tick is None:
            raise ValueError("Current tick unknown: no price, tick, or pool state supplied")
        return pool_tick, tick_to_price(pool_tick)


def _parse_decimal(value: Any, name: str) -> Decimal:
    try:
        parsed = to_decimal(value)
    except (TypeError, ValueError):
        raise InvalidParameterError(f"Invalid {name} parameter") from None
    if not parsed.is_finite():
        raise InvalidParameterError(f"Invalid {name} parameter")
    return parsed


def _parse_price(value: Any, name: str) -> Decimal:
    price = _parse_decimal(value, name)
    if price > 0 and not has_tick(price):
        raise InvalidParameterError(f"Invalid {name} parameter")
    return price


def _parse_tick(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidParameterError(f"Invalid {name} parameter")
    try:
        tick = value if isinstance(value, int) else int(str(value).strip(), 10)
    except ValueError:
        raise InvalidParameterError(f"Invalid {name} parameter") from None
    if not INT32_MIN <= tick <= INT32_MAX:
        raise InvalidParameterError(f"Invalid {name} parameter")
    return tick


def parse_pnl_query(
    initial_price: Any = "1.0",
    current_price: Any = None,
    current_tick: Any = None,
    gas_spent: Any = "0",
) -> PnlQuery:
    """
    Parse caller strings into a PnlQuery.

    Raises:
        InvalidParameterError: "Invalid <name> parameter" for the first
            value that is not a finite decimal (or a 32-bit integer tick),
            or a positive price too large or small to have a tick.
    """
    return PnlQuery(
        initial_price=_parse_price(initial_price, "initial_price"),
        current_price=None if current_price is None else _parse_price(current_price, "current_price"),
        current_tick=None if current_tick is None else _parse_tick(current_tick, "current_tick"),
        gas_spent=_parse_decimal(gas_spent, "gas_spent"),
    )


# ── Report Builders ──────────────────────────────────────────────────────


def build_position_report(
    position: Position,
    swaps: Sequence[Swap],
    query: PnlQuery,
    pool_tick: Optional[int] = None,
) -> Dict[str, Any]:
    """Position fields + P&L + range / composition at the resolved tick."""
    current_tick, current_price = query.resolve(pool_tick)
    pnl = position_pnl(position, swaps, query.initial_price, current_price, query.gas_spent)
    amount0, amount1 = position_composition(position, current_tick)

    report = position.to_dict()
    report.update({
        "pnl": pnl.to_dict(),
        "in_range": is_in_range(current_tick, position.tick_lower, position.tick_upper),
        "current_tick": current_tick,
        "current_price": str(current_price),
        "amount0": str(amount0),
        "amount1": str(amount1),
        "range_width_percent": str(range_width_percent(position.tick_lower, position.tick_upper)),
        "swap_count": len(swaps),
    })
    return report


def build_health_report(
    position: Position,
    swaps: Sequence[Swap],
    query: PnlQuery,
    pool_tick: Optional[int] = None,
) -> Dict[str, Any]:
    """{nft_id, status, details} for the position at the resolved tick."""
    current_tick, current_price = query.resolve(pool_tick)
    pnl = position_pnl(position, swaps, query.initial_price, current_price, query.gas_spent)
    report = health_report(position, current_tick, pnl)
    return {"nft_id": position.nft_id, **report.to_dict()}


# ── Chain Loading ────────────────────────────────────────────────────────


async def _load_position(
    nft_id: str,
    network: str,
    dex: str,
    rpc_url: Optional[str],
    owner: Optional[str],
    hours: float,
    query: PnlQuery,
) -> Tuple[Position, Pool, List[Swap], Optional[int]]:
    """Position, its pool, the pool's swaps over ``hours`` and (if needed) the live tick."""
    from position_indexer import PositionIndexer
    from position_reader import PositionReader

    reader = PositionReader(network, dex_slug=dex, rpc_url=rpc_url)
    indexer = PositionIndexer(network, dex_slug=dex, rpc_url=rpc_url)

    position, pool = await reader.read_position_with_pool(nft_id)
    if owner and position.owner.lower() != owner.lower():
        raise OwnershipError("Position does not belong to this owner")

    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    if query.needs_pool_state:
        swaps, state = await asyncio.gather(
            indexer.fetch_swaps(position.pool_id, since),
            reader.read_pool(position.pool_id),
        )
        return position, pool, swaps, state.tick

    swaps = await indexer.fetch_swaps(position.pool_id, since)
    return position, pool, swaps, None


def _validate_position_args(nft_id: str, owner: Optional[str], hours: float) -> Optional[str]:
    if not str(nft_id).strip().isdigit():
        return "Invalid position parameter"
    if owner is not None and not _ADDRESS_RE.fullmatch(owner):
        return "Invalid owner parameter"
    if not (math.isfinite(hours) and 0 < hours <= CHAIN.MAX_LOOKBACK_HOURS):
        return "Invalid hours parameter"
    return None


# ── Commands ─────────────────────────────────────────────────────────────


def cmd_info() -> None:
    """Display system and architecture information."""
    print(f"\n📊 {PROJECT_NAME} v{PROJECT_VERSION}")
    print("=" * 55)
    print("🔗 Protocol   : Uniswap V3 & compatible forks (concentrated liquidity)")
    print(f"🌐 Networks   : {', '.join(n.title() for n in RPC_URLS)}")
    print("📡 Data Source: Public JSON-RPC via 1RPC.io (no API key)")
    print()
    print("📁 Files:")
    print("   run.py                 — CLI entry point")
    print("   position_reader.py     — On-chain position + pool state reader")
    print("   position_indexer.py    — Owner positions + pool swap indexer")
    print("   stillwater/tick_math   — Price/tick conversion, range predicates")
    print("   stillwater/liquidity   — Token amounts from liquidity")
    print("   stillwater/pnl         — Fees, impermanent loss, net P&L")
    print("   stillwater/health      — Healthy / Warning / Critical")
    print()
    print("🔄 Supported DEXes (V3-compatible):")
    for dex in DEPLOYMENTS.values():
        nets = ", ".join(dex["networks"].keys())
        print(f"   {dex['icon']} {dex['name']:<18} — {nets}")
    print()
    print("📐 Model:")
    print("   • Fees  = Σ|swap volume| × 0.30% × 1% assumed pool share")
    print("   • IL    = (HODL − position) / HODL, valued at the current price")
    print("   • Net   = fees − IL − gas")
    print(f"   • Swaps = last {CHAIN.SWAP_LOOKBACK_HOURS}h of pool Swap events by default")
    print()
    print("🔗 Quick Start:")
    print("   python run.py list   0xWALLET --network arbitrum")
    print("   python run.py pnl    --position 5260106 --initial-price 2000")
    print("   python run.py health --position 5260106")
    print()
    print("📚 References:")
    print("   Uniswap V3 Whitepaper : https://uniswap.org/whitepaper-v3.pdf")
    print("   Uniswap V3 Docs       : https://docs.uniswap.org/")


async def cmd_list(
    owner: str,
    network: str = "arbitrum",
    dex: str = "uniswap_v3",
    rpc_url: Optional[str] = None,
    as_json: bool = False,
) -> int:
    """List the V3 positions a wallet holds on one DEX deployment."""
    from position_indexer import PositionIndexer

    if not owner or not _ADDRESS_RE.fullmatch(owner):
        print("❌ Invalid wallet address. Must be 42 hex characters starting with 0x.")
        return EXIT_CLIENT_ERROR

    try:
        indexer = PositionIndexer(network, dex_slug=dex, rpc_url=rpc_url)
        if not as_json:
            print(f"\n{get_dex_icon(dex)} Scanning {get_dex_display_name(dex)} on {network.title()}...")
        positions = await indexer.list_positions(owner)
    except (RpcError, httpx.HTTPError, ValueError) as e:
        logger.debug("list failed", exc_info=True)
        print(f"❌ {e}")
        return EXIT_FAILURE

    if as_json:
        print(json.dumps([p.to_dict() for p in positions], indent=2))
        return EXIT_OK

    print(f"\n{'=' * 65}")
    print(f"  {get_dex_display_name(dex)} Positions — {network.title()}")
    print(f"  👛 Wallet: {owner}")
    print(f"{'=' * 65}")

    if not positions:
        print("  No positions found.")
        return EXIT_OK

    for i, p in enumerate(positions, 1):
        status = "🟢 Active" if p.is_active else "⚪ Closed"
        print(f"\n    {i}. Position #{p.nft_id}")
        print(f"       Pool     : {p.pool_id}")
        print(f"       Range    : [{p.tick_lower}, {p.tick_upper})")
        print(f"       Status   : {status}")
        print(f"       Liquidity: {p.liquidity:,}")

    active = sum(1 for p in positions if p.is_active)
    print(f"\n{'=' * 65}")
    print(f"  Total: {len(positions)} positions ({active} active)")
    print(f"{'=' * 65}")
    return EXIT_OK


async def cmd_pnl(
    nft_id: str,
    network: str = "arbitrum",
    dex: str = "uniswap_v3",
    rpc_url: Optional[str] = None,
    owner: Optional[str] = None,
    initial_price: Any = "1.0",
    current_price: Any = None,
    current_tick: Any = None,
    gas_spent: Any = "0",
    hours: float = CHAIN.SWAP_LOOKBACK_HOURS,
    as_json: bool = False,
) -> int:
    """Fees, impermanent loss and net P&L for one position."""
    problem = _validate_position_args(nft_id, owner, hours)
    if problem:
        print(f"❌ {problem}")
        return EXIT_CLIENT_ERROR
    try:
        query = parse_pnl_query(initial_price, current_price, current_tick, gas_spent)
    except InvalidParameterError as e:
        print(f"❌ {e}")
        return EXIT_CLIENT_ERROR

    try:
        if not as_json:
            print(f"\n⏳ Reading position #{nft_id} ({network}, {get_dex_display_name(dex)})…")
        position, pool, swaps, pool_tick = await _load_position(
            nft_id, network, dex, rpc_url, owner, hours, query
        )
    except (RpcError, OwnershipError, httpx.HTTPError, ValueError) as e:
        logger.debug("pnl failed", exc_info=True)
        print(f"❌ {e}")
        return EXIT_FAILURE

    report = build_position_report(position, swaps, query, pool_tick)
    if as_json:
        print(json.dumps(report, indent=2))
        return EXIT_OK

    pnl = report["pnl"]
    il_pct = Decimal(pnl["impermanent_loss"]) * 100
    print(f"\n{'=' * 60}")
    print(f"  Position #{position.nft_id} — {get_dex_display_name(dex)} · {network.title()}")
    print(f"{'=' * 60}")
    print(f"  Pool       : {pool.pool_id} ({pool.fee_label})")
    print(f"  Owner      : {position.owner}")
    print(f"  Range      : [{position.tick_lower}, {position.tick_upper}) "
          f"· width {Decimal(report['range_width_percent']):.2f}%")
    print(f"  Tick       : {report['current_tick']} — "
          f"{'🟢 In Range' if report['in_range'] else '🔴 Out of Range'}")
    print(f"  Liquidity  : {position.liquidity:,}")
    print(f"  Amounts    : {Decimal(report['amount0']):,.6f} token0 / "
          f"{Decimal(report['amount1']):,.6f} token1")
    print(f"  Swaps      : {report['swap_count']} in the last {hours:g}h")
    print()
    print(f"  Fees earned: {pnl['fees_earned']}")
    print(f"  Imp. loss  : {il_pct:.4f}%")
    print(f"  Gas spent  : {pnl['gas_spent']}")
    print(f"  Net P&L    : {pnl['net_pnl']}")
    print(f"{'=' * 60}")
    return EXIT_OK


async def cmd_health(
    nft_id: str,
    network: str = "arbitrum",
    dex: str = "uniswap_v3",
    rpc_url: Optional[str] = None,
    owner: Optional[str] = None,
    initial_price: Any = "1.0",
    current_price: Any = None,
    current_tick: Any = None,
    gas_spent: Any = "0",
    hours: float = CHAIN.SWAP_LOOKBACK_HOURS,
    as_json: bool = False,
) -> int:
    """Healthy / Warning / Critical for one position, with the reason."""
    problem = _validate_position_args(nft_id, owner, hours)
    if problem:
        print(f"❌ {problem}")
        return EXIT_CLIENT_ERROR
    try:
        query = parse_pnl_query(initial_price, current_price, current_tick, gas_spent)
    except InvalidParameterError as e:
        print(f"❌ {e}")
        return EXIT_CLIENT_ERROR

    try:
        if not as_json:
            print(f"\n⏳ Checking position #{nft_id} ({network}, {get_dex_display_name(dex)})…")
        position, _, swaps, pool_tick = await _load_position(
            nft_id, network, dex, rpc_url, owner, hours, query
        )
    except (RpcError, OwnershipError, httpx.HTTPError, ValueError) as e:
        logger.debug("health failed", exc_info=True)
        print(f"❌ {e}")
        return EXIT_FAILURE

    report = build_health_report(position, swaps, query, pool_tick)
    if as_json:
        print(json.dumps(report, indent=2))
        return EXIT_OK

    status = HealthStatus[report["status"].upper()]
    print(f"\n  {_STATUS_ICONS[status]} Position #{report['nft_id']}: {report['status']}")
    print(f"     {report['details']}")
    return EXIT_OK
