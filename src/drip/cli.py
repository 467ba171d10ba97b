"""CLI subcommands for DRIP testing and operations.

Provides command-line interface for:
- Ledger inspection (show)
- Eligibility evaluation without side effects
- One-off dispenses through the orchestrator
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime, timedelta

from drip.blockchain import NyksdClient
from drip.config import DripConfig
from drip.core.assets import AssetKind
from drip.core.errors import DripError
from drip.faucet.eligibility import EligibilityEngine
from drip.faucet.executor import NyksdExecutor, validate_address
from drip.faucet.orchestrator import DispenseOrchestrator
from drip.ledger.store import LedgerStore, create_store

ASSET_CHOICES = [asset.value for asset in AssetKind]


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="drip",
        description="DRIP - Dispense gateway for the Nyks chain faucet",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would happen without executing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run subcommand (start service)
    subparsers.add_parser("run", help="Start the DRIP gateway")

    # Ledger subcommand
    ledger_parser = subparsers.add_parser("ledger", help="Ledger operations")
    ledger_sub = ledger_parser.add_subparsers(dest="ledger_command")
    show_parser = ledger_sub.add_parser("show", help="Show the ledger record for an address")
    show_parser.add_argument("address", type=str, help="Recipient address")

    # Eligibility subcommand
    elig_parser = subparsers.add_parser("eligibility", help="Evaluate eligibility")
    elig_parser.add_argument("asset", choices=ASSET_CHOICES, help="Asset kind")
    elig_parser.add_argument("address", type=str, help="Recipient address")

    # Dispense subcommand
    dispense_parser = subparsers.add_parser("dispense", help="Dispense an asset to an address")
    dispense_parser.add_argument("asset", choices=ASSET_CHOICES, help="Asset kind")
    dispense_parser.add_argument("address", type=str, help="Recipient address")

    return parser


def build_orchestrator(config: DripConfig, store: LedgerStore) -> DispenseOrchestrator:
    """Wire the nyksd-backed orchestrator from configuration.

    Parameters
    ----------
    config : DripConfig
        Service configuration.
    store : LedgerStore
        Ledger store backing the eligibility engine.
    """
    policy = config.dispense_policy()
    client = NyksdClient(
        binary=config.nyksd_binary,
        chain_id=config.chain_id,
        keyring_backend=config.keyring_backend,
    )
    executor = NyksdExecutor(
        client,
        faucet_account=config.faucet_account_name,
        validator_name=config.validator_name,
        nyks_amount=config.nyks_amount,
        sats_amount=config.sats_amount,
        relayer_sats_amount=config.relayer_sats_amount,
        btc_deposit_address=config.btc_deposit_address,
        btc_block_height=config.btc_block_height,
    )
    eligibility = EligibilityEngine(
        store, window=policy.window, reservation_ttl=policy.reservation_ttl
    )
    return DispenseOrchestrator(eligibility, executor, policy)


class CLIContext:
    """Shared context for CLI commands."""

    def __init__(self, config: DripConfig, dry_run: bool = False, json_output: bool = False):
        self.config = config
        self.dry_run = dry_run
        self.json_output = json_output
        self._store: LedgerStore | None = None
        self._orchestrator: DispenseOrchestrator | None = None

    @property
    def store(self) -> LedgerStore:
        """Get ledger store (lazy loaded)."""
        if self._store is None:
            self._store = create_store(self.config.redis_url)
        return self._store

    @property
    def orchestrator(self) -> DispenseOrchestrator:
        """Get dispense orchestrator (lazy loaded)."""
        if self._orchestrator is None:
            self._orchestrator = build_orchestrator(self.config, self.store)
        return self._orchestrator

    def output(self, data: dict) -> None:
        """Output data in the appropriate format."""
        if self.json_output:

            def default(obj):
                if isinstance(obj, datetime):
                    return obj.isoformat()
                if isinstance(obj, timedelta):
                    return int(obj.total_seconds())
                raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

            print(json.dumps(data, default=default, indent=2))
        else:
            self._print_formatted(data)

    def _print_formatted(self, data: dict, indent: int = 0) -> None:
        """Print data in human-readable format."""
        prefix = "  " * indent
        for key, value in data.items():
            if isinstance(value, dict):
                print(f"{prefix}{key}:")
                self._print_formatted(value, indent + 1)
            else:
                print(f"{prefix}{key}: {value}")


def _check_address(ctx: CLIContext, address: str) -> bool:
    if validate_address(address):
        return True
    ctx.output({"error": f"Invalid address: {address!r}"})
    return False


# Ledger commands


async def _ledger_show(ctx: CLIContext, address: str) -> dict:
    record = await ctx.store.get_record(address)
    if record is None:
        return {"address": address, "known": False}

    now = ctx.orchestrator.now()
    assets = {}
    for asset in AssetKind:
        remaining = await ctx.orchestrator.eligibility.cooldown_remaining(address, asset, now)
        assets[asset.value] = {
            "last_dispensed": record.get(asset) or "never",
            "cooldown_seconds": int(remaining.total_seconds()) if remaining else 0,
        }
    return {"address": address, "known": True, "assets": assets}


def cmd_ledger_show(ctx: CLIContext, address: str) -> int:
    """Show the ledger record for an address."""
    if not _check_address(ctx, address):
        return 1
    try:
        ctx.output(asyncio.run(_ledger_show(ctx, address)))
        return 0
    except DripError as e:
        ctx.output({"error": str(e)})
        return 1


# Eligibility commands


def cmd_eligibility(ctx: CLIContext, asset_name: str, address: str) -> int:
    """Evaluate eligibility for an address without side effects."""
    if not _check_address(ctx, address):
        return 1
    asset = AssetKind(asset_name)
    try:
        orchestrator = ctx.orchestrator
        decision = asyncio.run(
            orchestrator.eligibility.check_eligible(address, asset, orchestrator.now())
        )
    except DripError as e:
        ctx.output({"error": str(e)})
        return 1

    ctx.output(
        {
            "address": address,
            "asset": asset.value,
            "decision": decision.value,
            "allowed": decision.allowed,
        }
    )
    return 0


# Dispense commands


def cmd_dispense(ctx: CLIContext, asset_name: str, address: str) -> int:
    """Dispense an asset to an address."""
    if not _check_address(ctx, address):
        return 1
    asset = AssetKind(asset_name)

    if ctx.dry_run:
        orchestrator = ctx.orchestrator
        try:
            decision = asyncio.run(
                orchestrator.eligibility.check_eligible(address, asset, orchestrator.now())
            )
        except DripError as e:
            ctx.output({"error": str(e)})
            return 1
        ctx.output(
            {
                "dry_run": True,
                "address": address,
                "asset": asset.value,
                "decision": decision.value,
                "message": (
                    f"Would dispense {asset.denom} to {address}"
                    if decision.allowed
                    else f"Would reject: {address} received {asset.denom} recently"
                ),
            }
        )
        return 0

    result = asyncio.run(ctx.orchestrator.request_dispense(address, asset))
    data = {
        "success": result.success,
        "outcome": result.outcome.value,
        "address": address,
        "asset": asset.value,
        "message": result.message,
    }
    if result.reason is not None:
        data["reason"] = result.reason.value
    if result.correlation_id:
        data["correlation_id"] = result.correlation_id
    ctx.output(data)
    return 0 if result.success else 1


def run_cli(args: argparse.Namespace) -> int:
    """Execute CLI command based on parsed arguments.

    Returns
    -------
    int
        Exit code: 0 for success, positive for error, -1 signals caller
        to show help (no CLI command specified).
    """
    try:
        config = DripConfig()
    except Exception as e:
        if args.json:
            print(json.dumps({"error": f"Configuration error: {e}"}))
        else:
            print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    ctx = CLIContext(config, dry_run=args.dry_run, json_output=args.json)

    try:
        if args.command == "ledger":
            if args.ledger_command == "show":
                return cmd_ledger_show(ctx, args.address)
            print("Usage: drip ledger show <address>", file=sys.stderr)
            return 1

        elif args.command == "eligibility":
            return cmd_eligibility(ctx, args.asset, args.address)

        elif args.command == "dispense":
            return cmd_dispense(ctx, args.asset, args.address)
    except DripError as e:
        # Store construction failures surface here
        ctx.output({"error": str(e)})
        return 1

    return -1
