"""Command-line interface for the memoless engine."""
from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import replace

from .chains.thornode import ThornodeClient
from .config import THORNODE_URLS, AppConfig, load_config
from .encoding.decimal_codec import shift_from_integer
from .encoding.qr import build_qr_payload
from .encoding.reference import encode, format_usd, minimum_user_amount, validate
from .logging_setup import configure_logging
from .models import AssetId, TrackStatus, is_set
from .services import AssetCatalog, DepositTracker
from .services.assets import find_inbound_address


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="memoless",
        description="Memoless reference encoding and deposit tracking",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--network",
        default=None,
        choices=sorted(THORNODE_URLS),
        help="Network to query (overrides config)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("assets", help="List assets eligible for memo registration")

    encode_parser = sub.add_parser("encode", help="Encode a reference ID into an amount")
    encode_parser.add_argument("amount", help="Amount in asset units (or USD with --usd)")
    encode_parser.add_argument("reference", help="Reference ID (digits)")
    encode_parser.add_argument("--decimals", type=int, default=8, help="Asset decimals")
    encode_parser.add_argument("--usd", action="store_true", help="Amount is in USD")
    encode_parser.add_argument("--price", type=float, default=None, help="Asset price in USD")

    validate_parser = sub.add_parser("validate", help="Check an amount carries a reference ID")
    validate_parser.add_argument("amount")
    validate_parser.add_argument("reference")
    validate_parser.add_argument("--decimals", type=int, default=8, help="Asset decimals")

    dust_parser = sub.add_parser("dust", help="Show the dust threshold and minimum input")
    dust_parser.add_argument("asset", help="Asset, e.g. BTC.BTC")
    dust_parser.add_argument("reference", help="Reference ID (digits)")

    qr_parser = sub.add_parser("qr", help="Build a wallet QR payload")
    qr_parser.add_argument("chain")
    qr_parser.add_argument("address")
    qr_parser.add_argument("amount")

    reference_parser = sub.add_parser("reference", help="Look up a registration's reference ID")
    reference_parser.add_argument("tx_hash", help="Registration transaction hash")

    track_parser = sub.add_parser("track", help="Track a deposit until finalized")
    track_parser.add_argument("tx_hash", help="Deposit transaction hash")

    return parser


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    if args.network is None:
        return config
    return replace(
        config, network=replace(config.network, name=args.network, thornode_url="")
    )


def _cmd_encode(args: argparse.Namespace) -> int:
    result = encode(
        args.amount,
        "usd" if args.usd else "asset",
        args.reference,
        args.decimals,
        args.price,
    )
    for warning in result.warnings:
        print(f"warning: {warning}")
    if not result.is_valid:
        for error in result.errors:
            print(f"error: {error}", file=sys.stderr)
        return 1
    print(f"Final amount: {result.final_amount}")
    print(f"Base amount:  {result.base_amount}")
    if args.price:
        print(f"USD value:    ${format_usd(result.final_amount, args.price)}")
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    ok = validate(args.amount, args.reference, args.decimals)
    print("valid" if ok else "invalid")
    return 0 if ok else 1


def _cmd_qr(args: argparse.Namespace) -> int:
    print(build_qr_payload(args.chain, args.address, args.amount))
    return 0


async def _cmd_assets(client: ThornodeClient) -> int:
    result = await AssetCatalog(client).registrable_assets()
    if not result.ok:
        print(f"error: {result.error}", file=sys.stderr)
        return 1
    for pool in result.value:
        print(f"{pool.asset:<40} decimals={pool.decimals:<3} ${pool.asset_price_usd:,.2f}")
    return 0


async def _cmd_dust(client: ThornodeClient, config: AppConfig, args: argparse.Namespace) -> int:
    asset = AssetId.parse(args.asset)
    pool = await AssetCatalog(client).find(asset)
    if not pool.ok:
        print(f"error: {pool.error}", file=sys.stderr)
        return 1
    addresses = await client.get_inbound_addresses()
    if not addresses.ok:
        print(f"error: {addresses.error}", file=sys.stderr)
        return 1
    inbound = find_inbound_address(addresses.value, asset.chain)
    if inbound is None:
        print(f"error: no inbound address for chain {asset.chain}", file=sys.stderr)
        return 1

    dust_decimals = config.encoding.dust_decimals
    print(f"Inbound address: {inbound.address}{' (halted)' if inbound.halted else ''}")
    print(f"Dust threshold:  {shift_from_integer(inbound.dust_threshold, dust_decimals)}")
    print(
        "Minimum amount:  "
        + minimum_user_amount(
            inbound.dust_threshold, dust_decimals, args.reference, pool.value.decimals
        )
    )
    return 0


async def _cmd_reference(client: ThornodeClient, args: argparse.Namespace) -> int:
    result = await client.get_memo_reference(args.tx_hash)
    if not result.ok:
        print(f"error: {result.error}", file=sys.stderr)
        return 1
    ref = result.value
    if not ref.reference:
        print("Reference not assigned yet")
        return 1
    print(f"Reference: {ref.reference}")
    print(f"Asset:     {ref.asset}")
    print(f"Memo:      {ref.memo}")
    print(f"Height:    {ref.height}")
    if is_set(ref.expires_at):
        print(f"Expires:   {ref.expires_at}")
    return 0


async def _cmd_track(client: ThornodeClient, config: AppConfig, args: argparse.Namespace) -> int:
    tracker = DepositTracker(client, args.tx_hash, config.polling)
    async for snapshot in tracker.track():
        stage = snapshot.current_stage
        print(f"[{snapshot.attempts}] {stage.value if stage else 'Waiting'}")
    final = tracker.snapshot
    print(f"Status: {final.status.value}")
    return 0 if final.status is TrackStatus.COMPLETED else 1


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)

    if args.command == "encode":
        return _cmd_encode(args)
    if args.command == "validate":
        return _cmd_validate(args)
    if args.command == "qr":
        return _cmd_qr(args)

    config = _apply_overrides(load_config(args.config), args)
    client = ThornodeClient(config.network)

    if args.command == "assets":
        return await _cmd_assets(client)
    if args.command == "dust":
        return await _cmd_dust(client, config, args)
    if args.command == "reference":
        return await _cmd_reference(client, args)
    if args.command == "track":
        return await _cmd_track(client, config, args)

    build_parser().print_help()
    return 1


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))
