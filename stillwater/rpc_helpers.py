"""
RPC Helpers — ABI Encoding/Decoding and JSON-RPC Client
=======================================================

Low-level EVM primitives shared by position_reader.py and
position_indexer.py:

  • ABI encoding/decoding (uint256, int256, address, uint24)
  • JSON-RPC client (eth_call, eth_call_batch, eth_blockNumber, eth_getLogs)
  • Swap event decoding into ``Swap`` records

All constants reference the Ethereum ABI specification:
  https://docs.soliditylang.org/en/latest/abi-spec.html

Terminology:
  • Word:  32 bytes = 256 bits = 64 hex characters
  • Slot:  Position of a 32-byte word in an ABI response
  • Q256:  2^256 — two's complement boundary for int256
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Tuple

import httpx

from stillwater.central_config import CHAIN
from stillwater.models import Swap

logger = logging.getLogger(__name__)

# ── ABI Word Constants ──────────────────────────────────────────────────

ABI_WORD_HEX = 64            # 32 bytes × 2 hex chars = 64 hex characters
ADDRESS_HEX = 40              # 20 bytes × 2 = 40 hex characters
ADDRESS_PAD_HEX = 24          # Left padding in a 32-byte slot = 64 - 40 = 24 hex chars
SIGN_BIT = 1 << 255           # Two's complement sign bit for int256

Q256 = 2 ** 256              # int256 overflow boundary (two's complement wrap)

ZERO_ADDRESS = "0x" + "0" * ADDRESS_HEX


class RpcError(RuntimeError):
    """JSON-RPC error object, or an empty result where data was expected."""


# ── ABI Function Selectors ──────────────────────────────────────────────
# First 4 bytes of keccak256(function_signature).

SELECTORS: Dict[str, str] = {
    # NonfungiblePositionManager (ERC-721 Enumerable)
    "positions":              "0x99fbab88",  # positions(uint256)
    "ownerOf":                "0x6352211e",  # ownerOf(uint256)
    "balanceOf":              "0x70a08231",  # balanceOf(address)
    "tokenOfOwnerByIndex":    "0x2f745c59",  # tokenOfOwnerByIndex(address,uint256)

    # UniswapV3Factory
    "getPool":                "0x1698ee82",  # getPool(address,address,uint24)

    # UniswapV3Pool (read-only state)
    "slot0":                  "0x3850c7bd",  # slot0()
    "tickSpacing":            "0xd0c93a7c",  # tickSpacing()
}

# keccak256("Swap(address,address,int256,int256,uint160,uint128,int24)")
SWAP_EVENT_TOPIC = "0xc42079f94a6350d7e6235f29174924f928cc2ac818eb64fed8004e115fbcca67"


# ── ABI Encoding ────────────────────────────────────────────────────────

def encode_uint256(value: int) -> str:
    """ABI-encode a uint256 as 32-byte hex (no 0x prefix).

    >>> encode_uint256(1)
    '0000000000000000000000000000000000000000000000000000000000000001'
    """
    return format(value, f'0{ABI_WORD_HEX}x')


def encode_address(addr: str) -> str:
    """ABI-encode an address as 32 bytes (left-padded, no 0x prefix).

    >>> encode_address('0xC36442b4a4522E871399CD717aBDD847Ab11FE88')
    '000000000000000000000000c36442b4a4522e871399cd717abdd847ab11fe88'
    """
    return addr.lower().replace("0x", "").zfill(ABI_WORD_HEX)


def encode_uint24(val: int) -> str:
    """ABI-encode a uint24 as 32 bytes (for the fee tier parameter).

    >>> encode_uint24(3000)
    '0000000000000000000000000000000000000000000000000000000000000bb8'
    """
    return format(val, f'0{ABI_WORD_HEX}x')


def encode_block(number: int) -> str:
    """JSON-RPC quantity for a block number: 0x-prefixed, no leading zeros."""
    return hex(number)


# ── ABI Decoding ────────────────────────────────────────────────────────

def decode_uint(hex_data: str, slot: int = 0) -> int:
    """Decode uint256 from an ABI response at a 32-byte slot offset.

    Args:
        hex_data: Hex string (without 0x prefix).
        slot: Which 32-byte word to read (0-indexed).
    """
    start = slot * ABI_WORD_HEX
    word = hex_data[start:start + ABI_WORD_HEX]
    if len(word) != ABI_WORD_HEX:
        raise RpcError(f"ABI response too short for slot {slot}")
    return int(word, 16)


def decode_int(hex_data: str, slot: int = 0) -> int:
    """Decode int256 (two's complement) from an ABI response."""
    val = decode_uint(hex_data, slot)
    if val >= SIGN_BIT:
        return val - Q256
    return val


def decode_address(hex_data: str, slot: int = 0) -> str:
    """Decode address (last 20 bytes of a 32-byte slot)."""
    start = slot * ABI_WORD_HEX
    return "0x" + hex_data[start + ADDRESS_PAD_HEX:start + ABI_WORD_HEX]


def decode_swap_log(log: Dict[str, Any], pool_id: str, timestamp: datetime) -> Swap:
    """
    Decode a V3 ``Swap`` event log into a Swap record.

    Non-indexed data layout (5 words):
      amount0 int256 | amount1 int256 | sqrtPriceX96 uint160 | liquidity uint128 | tick int24
    """
    data = log.get("data", "0x")
    data = data[2:] if data.startswith("0x") else data
    return Swap(
        tx_hash=log.get("transactionHash", ""),
        pool_id=pool_id,
        amount0=decode_int(data, 0),
        amount1=decode_int(data, 1),
        timestamp=timestamp,
        block_number=int(log.get("blockNumber", "0x0"), 16),
    )


# ── JSON-RPC Client ─────────────────────────────────────────────────────

def _rpc_payload(method: str, params: list, request_id: int = 1) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}


def _raise_for_rpc_error(result: Dict[str, Any]) -> None:
    if "error" in result:
        error = result["error"]
        message = error.get("message", error) if isinstance(error, dict) else error
        raise RpcError(f"RPC error: {message}")


async def eth_call(rpc_url: str, to: str, data: str, timeout: int = CHAIN.TIMEOUT_SECONDS) -> str:
    """
    Execute eth_call on an EVM node.

    Args:
        rpc_url: JSON-RPC endpoint URL (e.g. https://1rpc.io/arb)
        to: Contract address (0x...)
        data: ABI-encoded calldata (0x + selector + params)
        timeout: HTTP timeout in seconds

    Returns:
        Hex response string (without 0x prefix).

    Raises:
        RpcError: If RPC returns an error or empty response.
    """
    payload = _rpc_payload("eth_call", [{"to": to, "data": data}, "latest"])
    logger.debug("eth_call %s %s", to, data[:10])
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(rpc_url, json=payload)
        result = resp.json()
    _raise_for_rpc_error(result)
    raw = result.get("result", "0x")
    if raw == "0x" or len(raw) < 4:
        raise RpcError("Empty response — contract may not exist at this address")
    return raw[2:]


async def eth_call_batch(
    rpc_url: str, calls: List[Tuple[str, str]], timeout: int = CHAIN.TIMEOUT_SECONDS
) -> List[str]:
    """
    Batch multiple eth_call requests into a single HTTP request.

    Args:
        rpc_url: JSON-RPC endpoint URL
        calls: List of (contract_address, calldata) tuples

    Returns:
        List of hex result strings (without 0x prefix), in call order.
        A call the node answered with an error yields "".

    Raises:
        RpcError: If the node does not answer with a batch.
    """
    payloads = [
        _rpc_payload("eth_call", [{"to": to, "data": data}, "latest"], i + 1)
        for i, (to, data) in enumerate(calls)
    ]
    logger.debug("eth_call batch of %d", len(payloads))
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(rpc_url, json=payloads)
        results = resp.json()

    if not isinstance(results, list) or len(results) != len(calls):
        raise RpcError("Node did not return a batch response")

    results.sort(key=lambda r: r.get("id", 0))
    return [r.get("result", "0x")[2:] if "result" in r else "" for r in results]


async def eth_call_many(rpc_url: str, calls: List[Tuple[str, str]]) -> List[str]:
    """eth_call_batch, falling back to one eth_call per item if batching fails.

    In the sequential fallback a failed call yields "" like a failed batch item.
    """
    try:
        return await eth_call_batch(rpc_url, calls)
    except (RpcError, httpx.HTTPError, ValueError) as exc:
        logger.info("Batch eth_call failed (%s); falling back to sequential calls", exc)

    results = []
    for to, data in calls:
        try:
            results.append(await eth_call(rpc_url, to, data))
        except RpcError as exc:
            logger.warning("eth_call to %s failed: %s", to, exc)
            results.append("")
    return results


async def eth_block_number(rpc_url: str, timeout: int = 10) -> int:
    """Latest block number from an EVM node."""
    payload = _rpc_payload("eth_blockNumber", [])
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(rpc_url, json=payload)
        result = resp.json()
    _raise_for_rpc_error(result)
    return int(result["result"], 16)


async def eth_get_logs(
    rpc_url: str,
    address: str,
    topics: List[str],
    from_block: int,
    to_block: int,
    timeout: int = CHAIN.TIMEOUT_SECONDS,
) -> List[Dict[str, Any]]:
    """
    eth_getLogs for one contract over an inclusive block range.

    Returns the raw log objects as the node sends them.
    """
    params = [{
        "address": address,
        "topics": topics,
        "fromBlock": encode_block(from_block),
        "toBlock": encode_block(to_block),
    }]
    logger.debug("eth_getLogs %s blocks %d-%d", address, from_block, to_block)
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(rpc_url, json=_rpc_payload("eth_getLogs", params))
        result = resp.json()
    _raise_for_rpc_error(result)
    return result.get("result") or []
