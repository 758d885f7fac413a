#!/usr/bin/env python3
"""
V3 Position & Swap Indexer
==========================

Lists the positions a wallet owns and collects a pool's Swap events,
straight from public JSON-RPC — no subgraph, no web3.py.

Position flow (one DEX deployment):
  1. balanceOf(wallet)         → How many V3 NFTs the wallet holds
  2. tokenOfOwnerByIndex(w, i) → Token ID at index i
  3. positions(tokenId)        → ticks, liquidity, token pair, fee
  4. Factory.getPool(t0,t1,f)  → Pool address (the position's pool_id)

Swap flow:
  1. eth_blockNumber                        → chain head
  2. lookback window ÷ average block time   → first block to scan
  3. eth_getLogs(pool, Swap topic) in chunks of LOG_CHUNK_BLOCKS,
     LOG_FETCH_CONCURRENCY chunks in flight at a time
  4. order by (blockNumber, logIndex) and decode into Swap records

Contract References:
  NonfungiblePositionManager: https://github.com/Uniswap/v3-periphery/blob/main/contracts/NonfungiblePositionManager.sol
  ERC-721 Enumerable:         https://eips.ethereum.org/EIPS/eip-721
  UniswapV3Pool Swap event:   https://github.com/Uniswap/v3-core/blob/main/contracts/interfaces/pool/IUniswapV3PoolEvents.sol
"""

import asyncio
import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from position_reader import PositionReader
from stillwater.central_config import (
    CHAIN,
    RPC_URLS,
    ChainSettings,
    get_deployment,
    get_dex_display_name,
)
from stillwater.models import Position, Swap
from stillwater.rpc_helpers import (
    SELECTORS,
    SWAP_EVENT_TOPIC,
    RpcError,
    decode_swap_log,
    decode_uint,
    encode_address,
    encode_uint256,
    eth_block_number,
    eth_call,
    eth_call_many,
    eth_get_logs,
)

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")


def _as_utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


class PositionIndexer:
    """
    Owner → positions, and pool → recent swaps.

    Usage:
        indexer = PositionIndexer("arbitrum")
        positions = await indexer.list_positions("0x...wallet...")
        swaps = await indexer.fetch_swaps(positions[0].pool_id)
    """

    def __init__(
        self,
        network: str = "arbitrum",
        dex_slug: str = "uniswap_v3",
        rpc_url: Optional[str] = None,
        settings: ChainSettings = CHAIN,
    ):
        deployment = get_deployment(dex_slug, network)
        self.network = network
        self.dex_slug = dex_slug
        self.dex_name = get_dex_display_name(dex_slug)
        self.rpc_url = rpc_url or RPC_URLS[network]
        self.position_manager = deployment.position_manager
        self.settings = settings
        self.reader = PositionReader(network, dex_slug=dex_slug, rpc_url=self.rpc_url)

    # ── Positions ────────────────────────────────────────────────────

    async def get_position_count(self, owner: str) -> int:
        """balanceOf(address) on the NonfungiblePositionManager."""
        calldata = SELECTORS["balanceOf"] + encode_address(owner)
        result = await eth_call(self.rpc_url, self.position_manager, calldata)
        return decode_uint(result, 0)

    async def get_token_ids(self, owner: str, count: int) -> List[int]:
        """tokenOfOwnerByIndex(owner, 0..count-1), batched in one request."""
        if count == 0:
            return []
        calls = [
            (
                self.position_manager,
                SELECTORS["tokenOfOwnerByIndex"] + encode_address(owner) + encode_uint256(i),
            )
            for i in range(count)
        ]
        results = await eth_call_many(self.rpc_url, calls)
        return [decode_uint(r, 0) for r in results if r]

    async def read_position_summary(self, token_id: int, owner: str) -> Position:
        """positions(tokenId) + Factory.getPool() → Position."""
        raw = await self.reader.read_position_nft(token_id)
        pool_id = await self.reader.resolve_pool_address(raw["token0"], raw["token1"], raw["fee"])
        return Position(
            nft_id=str(token_id),
            owner=owner,
            pool_id=pool_id,
            tick_lower=raw["tickLower"],
            tick_upper=raw["tickUpper"],
            liquidity=raw["liquidity"],
            created_at=datetime.now(timezone.utc),
        )

    async def list_positions(self, owner: str) -> List[Position]:
        """
        Every position NFT held by ``owner`` on this DEX deployment.

        Positions that fail to read are logged and skipped. Result order:
        active (liquidity > 0) first, then by NFT id descending.
        """
        if not owner or not _ADDRESS_RE.fullmatch(owner):
            raise ValueError(f"Invalid wallet address: {owner}")

        count = await self.get_position_count(owner)
        logger.info("%s: %d position NFT(s) for %s on %s", self.dex_name, count, owner, self.network)
        token_ids = await self.get_token_ids(owner, count)

        async def _read(token_id: int) -> Optional[Position]:
            try:
                return await self.read_position_summary(token_id, owner)
            except (RpcError, ValueError) as exc:
                logger.warning("Position #%d read failed: %s", token_id, exc)
                return None

        summaries = await asyncio.gather(*[_read(tid) for tid in token_ids])
        positions = [p for p in summaries if p is not None]
        positions.sort(key=lambda p: (not p.is_active, -int(p.nft_id)))
        return positions

    # ── Swaps ────────────────────────────────────────────────────────

    async def fetch_swaps(self, pool_id: str, since: Optional[datetime] = None) -> List[Swap]:
        """
        Swap events of ``pool_id`` from ``since`` (default: the last
        SWAP_LOOKBACK_HOURS) up to the chain head, oldest first.
        """
        if not _ADDRESS_RE.fullmatch(pool_id):
            raise ValueError(f"Invalid pool address: {pool_id}")

        now = datetime.now(timezone.utc)
        since = _as_utc(since) if since else now - timedelta(hours=self.settings.SWAP_LOOKBACK_HOURS)
        block_time = self.settings.block_time(self.network)

        head = await eth_block_number(self.rpc_url)
        lookback_seconds = max(0.0, (now - since).total_seconds())
        from_block = max(0, head - math.ceil(lookback_seconds / block_time))

        chunk = self.settings.LOG_CHUNK_BLOCKS
        ranges = [
            (start, min(start + chunk - 1, head))
            for start in range(from_block, head + 1, chunk)
        ]
        logs: List[Dict[str, Any]] = []
        batch = self.settings.LOG_FETCH_CONCURRENCY
        for i in range(0, len(ranges), batch):
            results = await asyncio.gather(*[
                eth_get_logs(self.rpc_url, pool_id, [SWAP_EVENT_TOPIC], start, end)
                for start, end in ranges[i:i + batch]
            ])
            for chunk_logs in results:
                logs.extend(chunk_logs)

        logs = [log for log in logs if not log.get("removed")]
        logs.sort(key=lambda log: (int(log["blockNumber"], 16), int(log.get("logIndex", "0x0"), 16)))

        swaps = []
        for log in logs:
            timestamp = self._log_timestamp(log, head, now, block_time)
            if timestamp < since:
                continue
            swaps.append(decode_swap_log(log, pool_id, timestamp))
        logger.info("Fetched %d swap(s) for %s over blocks %d-%d", len(swaps), pool_id, from_block, head)
        return swaps

    @staticmethod
    def _log_timestamp(log: Dict[str, Any], head: int, now: datetime, block_time: float) -> datetime:
        """Node-supplied blockTimestamp when present, else estimated from block distance."""
        if log.get("blockTimestamp"):
            return datetime.fromtimestamp(int(log["blockTimestamp"], 16), tz=timezone.utc)
        blocks_ago = head - int(log["blockNumber"], 16)
        return now - timedelta(seconds=blocks_ago * block_time)
