"""
Project Configuration — version, RPC endpoints, deployments, chain windows
==========================================================================

Single place for project metadata and the on-chain addresses the reader
and indexer talk to.

Contract Address Sources:
  Uniswap V3  : https://docs.uniswap.org/contracts/v3/reference/deployments/
  PancakeSwap : https://developer.pancakeswap.finance/contracts/v3/addresses
  SushiSwap   : https://docs.sushi.com/docs/Products/V3%20AMM/Periphery/Deployment%20Addresses
"""

import re
from dataclasses import dataclass, field
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

# Version — single source of truth is pyproject.toml
try:
    PROJECT_VERSION = version("stillwater")
except PackageNotFoundError:
    # Dev / CI: package not installed — read pyproject.toml directly
    _toml = Path(__file__).resolve().parent.parent / "pyproject.toml"
    _m = (
        re.search(r'version\s*=\s*"([^"]+)"', _toml.read_text())
        if _toml.exists()
        else None
    )
    PROJECT_VERSION = _m.group(1) if _m else "0.0.0-dev"
PROJECT_NAME = "Stillwater"


# ── Privacy-Preserving RPC Endpoints via 1RPC.io ────────────────────────
# TEE-attested relay, no API key required. Free tier: 10,000 req/day.
# Docs: https://docs.1rpc.io/web3-relay/overview

RPC_URLS: Mapping[str, str] = MappingProxyType(
    {
        "arbitrum": "https://1rpc.io/arb",
        "ethereum": "https://1rpc.io/eth",
        "polygon": "https://1rpc.io/matic",
        "base": "https://1rpc.io/base",
        "optimism": "https://1rpc.io/op",
        "bsc": "https://1rpc.io/bnb",
    }
)


# ── Chain Settings ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class ChainSettings:
    """Timeouts and log-scan windows for the JSON-RPC collaborators."""

    TIMEOUT_SECONDS: int = 20

    # Many public nodes cap eth_getLogs ranges; stay well under the usual limits.
    LOG_CHUNK_BLOCKS: int = 2_000

    # eth_getLogs chunk requests in flight at once
    LOG_FETCH_CONCURRENCY: int = 8

    # Default swap window for fee estimation
    SWAP_LOOKBACK_HOURS: int = 24

    # Upper bound on a caller-supplied window (one year)
    MAX_LOOKBACK_HOURS: int = 24 * 365

    # Average block time, used to turn a lookback window into a block range
    BLOCK_TIME_SECONDS: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType(
            {
                "ethereum": 12.0,
                "arbitrum": 0.25,
                "polygon": 2.0,
                "base": 2.0,
                "optimism": 2.0,
                "bsc": 3.0,
            }
        )
    )

    def block_time(self, network: str) -> float:
        return self.BLOCK_TIME_SECONDS.get(network, 12.0)


CHAIN = ChainSettings()


# ── DEX Deployments ─────────────────────────────────────────────────────
#
# DEPLOYMENTS[dex_slug] = {
#     "name": str,
#     "icon": str,
#     "networks": {network: (position_manager, factory)},
# }


@dataclass(frozen=True)
class Deployment:
    """NonfungiblePositionManager + Factory for one DEX on one network."""

    dex_slug: str
    network: str
    position_manager: str
    factory: str


DEPLOYMENTS: Mapping[str, dict] = MappingProxyType(
    {
        # Same contract on most EVM chains via CREATE2.
        "uniswap_v3": {
            "name": "Uniswap V3",
            "icon": "🦄",
            "networks": {
                "ethereum": (
                    "0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
                    "0x1F98431c8aD98523631AE4a59f267346ea31F984",
                ),
                "arbitrum": (
                    "0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
                    "0x1F98431c8aD98523631AE4a59f267346ea31F984",
                ),
                "polygon": (
                    "0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
                    "0x1F98431c8aD98523631AE4a59f267346ea31F984",
                ),
                "optimism": (
                    "0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
                    "0x1F98431c8aD98523631AE4a59f267346ea31F984",
                ),
                "base": (
                    "0x03a520b32C04BF3bEEf7BEb72E919cf822Ed34f1",
                    "0x33128a8fC17869897dcE68Ed026d694621f6FDfD",
                ),
            },
        },
        # Fork with identical positions() ABI. Not on Polygon or Optimism.
        "pancakeswap_v3": {
            "name": "PancakeSwap V3",
            "icon": "🥞",
            "networks": {
                "ethereum": (
                    "0x46A15B0b27311cedF172AB29E4f4766fbE7F4364",
                    "0x0BFbCF9fa4f9C56B0F40a671Ad40E0805A091865",
                ),
                "bsc": (
                    "0x46A15B0b27311cedF172AB29E4f4766fbE7F4364",
                    "0x0BFbCF9fa4f9C56B0F40a671Ad40E0805A091865",
                ),
                "arbitrum": (
                    "0x427bF5b37357632377eCbEC9de3626C71A5396c1",
                    "0x0BFbCF9fa4f9C56B0F40a671Ad40E0805A091865",
                ),
                "base": (
                    "0x46A15B0b27311cedF172AB29E4f4766fbE7F4364",
                    "0x0BFbCF9fa4f9C56B0F40a671Ad40E0805A091865",
                ),
            },
        },
        # Fork with identical positions() ABI; addresses differ per chain.
        "sushiswap_v3": {
            "name": "SushiSwap V3",
            "icon": "🍣",
            "networks": {
                "ethereum": (
                    "0x2214A42d8e2A1d20635C2cb0664422c528b6A432",
                    "0xbACEB8eC6b9355Dfc0269C18bac9d6E2Bdc29C4F",
                ),
                "arbitrum": (
                    "0xF0cBce1942a68BEB3d1b73F0dd86c8DCc363eF49",
                    "0x1af415a1EbA07a4986a52B6f2e7dE7003D82231e",
                ),
                "polygon": (
                    "0xb7402ee99F0A008e461098AC3a27F4957Df89a40",
                    "0x917933899c6a5f8E37F31E19f92CdbFf7e8ff0e2",
                ),
                "base": (
                    "0x80C7DD17B01855a6D2347444a0FCC36136a314de",
                    "0xc35DADB65012eC5796536bD9864eD8773aBc74C4",
                ),
                "optimism": (
                    "0x1af415a1EbA07a4986a52B6f2e7dE7003D82231e",
                    "0x9c6522117e2ed1fE5bdb72bb0eD5E3f2bdE7DBe0",
                ),
            },
        },
    }
)


def get_deployment(dex_slug: str, network: str) -> Deployment:
    """
    Contract addresses for a DEX on a network.

    Raises:
        ValueError: unknown network, unknown DEX, or DEX not deployed there.
    """
    if network not in RPC_URLS:
        raise ValueError(
            f"Unsupported network: {network}. Available: {list(RPC_URLS.keys())}"
        )
    dex = DEPLOYMENTS.get(dex_slug)
    if dex is None:
        raise ValueError(
            f"Unsupported DEX: {dex_slug}. Available: {list(DEPLOYMENTS.keys())}"
        )
    if network not in dex["networks"]:
        raise ValueError(f"{dex['name']} is not deployed on {network}")
    position_manager, factory = dex["networks"][network]
    return Deployment(dex_slug, network, position_manager, factory)


def get_dex_display_name(dex_slug: str) -> str:
    dex = DEPLOYMENTS.get(dex_slug)
    return dex["name"] if dex else dex_slug


def get_dex_icon(dex_slug: str) -> str:
    dex = DEPLOYMENTS.get(dex_slug)
    return dex["icon"] if dex else "🔄"
