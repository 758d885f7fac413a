#!/usr/bin/env python3
"""
Stillwater -- Concentrated-Liquidity Position Analyzer
======================================================

Values V3-compatible LP positions straight from the chain: token
composition, fee estimate, impermanent loss, net P&L, health.
Supports: Uniswap V3, PancakeSwap V3, SushiSwap V3.

Usage:
  python run.py list   <wallet> --network <net>                 List a wallet's positions
  python run.py pnl    --position <tokenId> --initial-price <p>  P&L for one position
  python run.py health --position <tokenId>                     Healthy / Warning / Critical
  python run.py info                                            System overview + DEX support

Exit codes:
  0  success
  1  chain / RPC failure, position not found, owner mismatch
  2  invalid input (nothing was sent to the chain)

Sources:
  Uniswap V3 Whitepaper : https://uniswap.org/whitepaper-v3.pdf
  Uniswap V3 Docs       : https://docs.uniswap.org/
"""

import argparse
import asyncio
import logging
import sys

from stillwater.central_config import (
    CHAIN,
    DEPLOYMENTS,
    PROJECT_NAME,
    PROJECT_VERSION,
    RPC_URLS,
)
from stillwater.commands import (
    EXIT_OK,
    cmd_health,
    cmd_info,
    cmd_list,
    cmd_pnl,
)


# ── CLI Parser ────────────────────────────────────────────────────────────


def _add_chain_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--network",
        type=str,
        default="arbitrum",
        choices=list(RPC_URLS.keys()),
        help="Network (default: arbitrum)",
    )
    p.add_argument(
        "--dex",
        type=str,
        default="uniswap_v3",
        choices=list(DEPLOYMENTS.keys()),
        help="DEX deployment (default: uniswap_v3)",
    )
    p.add_argument(
        "--rpc-url",
        type=str,
        default=None,
        help="Override the JSON-RPC endpoint for --network",
    )
    p.add_argument("--json", action="store_true", help="Print JSON instead of text")


def _add_position_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--position",
        type=str,
        required=True,
        help="Position NFT tokenId. "
        "Find it: app.uniswap.org → Pool → position URL → /positions/v3/<net>/<tokenId>",
    )
    p.add_argument(
        "--owner",
        type=str,
        default=None,
        help="Expected owner (0x…); refuse if the NFT belongs to someone else",
    )
    p.add_argument(
        "--initial-price",
        type=str,
        default="1.0",
        help="Price (token1 per token0) when the position was opened (default: 1.0)",
    )
    p.add_argument(
        "--current-price",
        type=str,
        default=None,
        help="Current price; derived from the pool's live tick if omitted",
    )
    p.add_argument(
        "--current-tick",
        type=str,
        default=None,
        help="Current tick; read from the pool's slot0() if omitted",
    )
    p.add_argument(
        "--gas-spent",
        type=str,
        default="0",
        help="Gas spent, in the same unit as fees (default: 0)",
    )
    p.add_argument(
        "--hours",
        type=float,
        default=CHAIN.SWAP_LOOKBACK_HOURS,
        help=f"Swap lookback window in hours (default: {CHAIN.SWAP_LOOKBACK_HOURS}, "
        f"max: {CHAIN.MAX_LOOKBACK_HOURS})",
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stillwater",
        description=f"{PROJECT_NAME} v{PROJECT_VERSION} — Concentrated-Liquidity Position Analyzer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py list   0xWALLET --network arbitrum          List Uniswap V3 positions
  python run.py list   0xWALLET --dex pancakeswap_v3         List PancakeSwap positions
  python run.py pnl    --position 5260106 --initial-price 2000
  python run.py pnl    --position 5260106 --current-tick -196000 --gas-spent 0.002
  python run.py health --position 5260106 --owner 0xWALLET --json
  python run.py info

Supported DEXes (V3-compatible):
  uniswap_v3     🦄 Uniswap V3     — ETH, ARB, POLY, BASE, OP
  pancakeswap_v3 🥞 PancakeSwap V3 — ETH, BSC, ARB, BASE
  sushiswap_v3   🍣 SushiSwap V3   — ETH, ARB, POLY, BASE, OP
""",
    )
    parser.add_argument(
        "--version", action="version", version=f"{PROJECT_NAME} v{PROJECT_VERSION}"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Debug logging to stderr"
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    list_p = sub.add_parser("list", help="List the positions a wallet holds")
    list_p.add_argument("owner", help="Wallet address (0x…)")
    _add_chain_args(list_p)

    pnl_p = sub.add_parser("pnl", help="Fees, impermanent loss and net P&L")
    _add_position_args(pnl_p)
    _add_chain_args(pnl_p)

    health_p = sub.add_parser("health", help="Position health classification")
    _add_position_args(health_p)
    _add_chain_args(health_p)

    sub.add_parser("info", help="System & architecture info")

    return parser


# ── Main ──────────────────────────────────────────────────────────────────


def main(argv=None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.command:
        parser.print_help()
        return EXIT_OK

    if args.command == "info":
        cmd_info()
        return EXIT_OK

    if args.command == "list":
        return asyncio.run(
            cmd_list(
                owner=args.owner,
                network=args.network,
                dex=args.dex,
                rpc_url=args.rpc_url,
                as_json=args.json,
            )
        )

    position_kwargs = dict(
        nft_id=args.position,
        network=args.network,
        dex=args.dex,
        rpc_url=args.rpc_url,
        owner=args.owner,
        initial_price=args.initial_price,
        current_price=args.current_price,
        current_tick=args.current_tick,
        gas_spent=args.gas_spent,
        hours=args.hours,
        as_json=args.json,
    )
    if args.command == "pnl":
        return asyncio.run(cmd_pnl(**position_kwargs))
    if args.command == "health":
        return asyncio.run(cmd_health(**position_kwargs))

    parser.print_help()
    return EXIT_OK


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n❌ Cancelled.")
        sys.exit(130)
