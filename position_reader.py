#!/usr/bin/env python3
"""
On-Chain Position Reader for V3-compatible DEXes
================================================

Reads position and pool state directly from the blockchain via public
JSON-RPC and hands back the immutable records the analytics engine
consumes. No API key, no web3.py — raw eth_call over httpx.

Data Sources (per RPC call):
─────────────────────────────
1. NonfungiblePositionManager.positions(tokenId)
   Returns: nonce, operator, token0, token1, fee, tickLower, tickUpper,
            liquidity, feeGrowthInside0LastX128, feeGrowthInside1LastX128,
            tokensOwed0, tokensOwed1
   Ref: https://github.com/Uniswap/v3-periphery/blob/main/contracts/NonfungiblePositionManager.sol

2. NonfungiblePositionManager.ownerOf(tokenId)   (ERC-721)

3. UniswapV3Factory.getPool(token0, token1, fee)
   Resolves the pool address, which becomes the position's pool_id.

4. Pool.slot0(), Pool.tickSpacing()
   Current sqrtPriceX96 / tick, and the pool's tick spacing.
   Ref: https://github.com/Uniswap/v3-core/blob/main/contracts/UniswapV3Pool.sol
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from stillwater.central_config import (
    RPC_URLS,
    get_deployment,
    get_dex_display_name,
)
from stillwater.models import UINT256_MAX, Pool, Position, parse_int_text
from stillwater.rpc_helpers import (
    SELECTORS,
    ZERO_ADDRESS,
    RpcError,
    decode_address,
    decode_int,
    decode_uint,
    encode_address,
    encode_uint24,
    encode_uint256,
    eth_call,
    eth_call_many,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolState:
    """Live pool price state from slot0()."""

    pool_id: str
    tick: int
    sqrt_price_x96: int
    tick_spacing: int = 0


def parse_nft_id(nft_id) -> int:
    """NFT ids are uint256; accept an int or its base-10 text."""
    return parse_int_text(nft_id, 0, UINT256_MAX, "nft_id")


# ── Position Reader ─────────────────────────────────────────────────────

class PositionReader:
    """
    Reads V3-compatible position data directly from the blockchain.
    Supports Uniswap V3, PancakeSwap V3 and SushiSwap V3 deployments.

    Usage:
        reader = PositionReader("arbitrum")
        reader = PositionReader("arbitrum", dex_slug="pancakeswap_v3")
        position = await reader.read_position(1234567)
        state = await reader.read_pool(position.pool_id)
    """

    def __init__(
        self,
        network: str = "arbitrum",
        dex_slug: str = "uniswap_v3",
        rpc_url: Optional[str] = None,
    ):
        deployment = get_deployment(dex_slug, network)
        self.network = network
        self.dex_slug = dex_slug
        self.dex_name = get_dex_display_name(dex_slug)
        self.rpc_url = rpc_url or RPC_URLS[network]
        self.position_manager = deployment.position_manager
        self.factory = deployment.factory

    async def read_owner(self, nft_id) -> str:
        """ownerOf(tokenId) on the NonfungiblePositionManager."""
        token_id = parse_nft_id(nft_id)
        calldata = SELECTORS["ownerOf"] + encode_uint256(token_id)
        result = await eth_call(self.rpc_url, self.position_manager, calldata)
        return decode_address(result, 0)

    async def read_position(self, nft_id) -> Position:
        position, _ = await self.read_position_with_pool(nft_id)
        return position

    async def read_position_with_pool(self, nft_id) -> Tuple[Position, Pool]:
        """
        Read a position NFT and resolve the pool it sits in.

        Raises:
            RpcError: token does not exist, or its pool cannot be resolved.
        """
        token_id = parse_nft_id(nft_id)
        logger.info("Reading position #%d on %s (%s)", token_id, self.network, self.dex_name)

        raw, owner = await asyncio.gather(
            self.read_position_nft(token_id),
            self.read_owner(token_id),
        )
        pool_id = await self.resolve_pool_address(raw["token0"], raw["token1"], raw["fee"])

        position = Position(
            nft_id=str(token_id),
            owner=owner,
            pool_id=pool_id,
            tick_lower=raw["tickLower"],
            tick_upper=raw["tickUpper"],
            liquidity=raw["liquidity"],
            # Mint time is not part of positions(); record the observation time.
            created_at=datetime.now(timezone.utc),
        )
        pool = Pool(
            pool_id=pool_id,
            token0=raw["token0"],
            token1=raw["token1"],
            fee_tier=raw["fee"],
        )
        if position.liquidity == 0:
            logger.info("Position #%d has zero liquidity (may be closed)", token_id)
        return position, pool

    async def read_pool(self, pool_id: str) -> PoolState:
        """slot0() + tickSpacing() for a pool address."""
        if not pool_id.startswith("0x") or len(pool_id) != 42:
            raise ValueError(f"Invalid pool address: {pool_id}")

        slot0_data, spacing_data = await eth_call_many(self.rpc_url, [
            (pool_id, SELECTORS["slot0"]),
            (pool_id, SELECTORS["tickSpacing"]),
        ])
        if not slot0_data:
            raise RpcError(f"Pool not found at {pool_id} on {self.network}")

        return PoolState(
            pool_id=pool_id,
            tick=decode_int(slot0_data, 1),
            sqrt_price_x96=decode_uint(slot0_data, 0),
            tick_spacing=decode_int(spacing_data, 0) if spacing_data else 0,
        )

    # ── Read position NFT ────────────────────────────────────────────

    async def read_position_nft(self, token_id: int) -> dict:
        """
        Call NonfungiblePositionManager.positions(uint256 tokenId).

        Only the fields the analytics need are decoded (slots 2–7).
        """
        calldata = SELECTORS["positions"] + encode_uint256(token_id)
        result = await eth_call(self.rpc_url, self.position_manager, calldata)

        return {
            "token0":    decode_address(result, 2),
            "token1":    decode_address(result, 3),
            "fee":       decode_uint(result, 4),
            "tickLower": decode_int(result, 5),
            "tickUpper": decode_int(result, 6),
            "liquidity": decode_uint(result, 7),
        }

    # ── Resolve pool address from Factory ────────────────────────────

    async def resolve_pool_address(self, token0: str, token1: str, fee: int) -> str:
        """
        UniswapV3Factory.getPool(token0, token1, fee).

        Ref: https://github.com/Uniswap/v3-core/blob/main/contracts/UniswapV3Factory.sol
        """
        calldata = (
            SELECTORS["getPool"]
            + encode_address(token0)
            + encode_address(token1)
            + encode_uint24(fee)
        )
        result = await eth_call(self.rpc_url, self.factory, calldata)
        pool = decode_address(result, 0)
        if pool == ZERO_ADDRESS:
            raise RpcError(
                f"Pool not found for {token0[:10]}.../{token1[:10]}... fee={fee}. "
                f"The position may be on a different network."
            )
        return pool
