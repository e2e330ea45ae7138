"""
Broker Gateway - CLI.

============================================================
RESPONSIBILITY
============================================================
Manual test harness for exchange adapters.

- argparse-based CLI, one subcommand per adapter operation
- Credentials from the environment (BITSO_API_KEY, BITSO_API_SECRET)
- Prints canonical results as JSON

============================================================
USAGE
============================================================
python -m broker_gateway.cli ticker --asset BTC --currency MXN
python -m broker_gateway.cli portfolio
python -m broker_gateway.cli sell 0.0001 100000
python -m broker_gateway.cli check <order_id>

============================================================
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from .adapters import BitsoAdapter, ExchangeException
from .config import AdapterConfig
from .types import OrderSide


logger = logging.getLogger("broker_gateway.cli")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="broker-gateway",
        description="Exercise exchange adapter operations against the live API",
    )

    parser.add_argument("--asset", type=str, default=None, help="Traded asset (default: env or BTC)")
    parser.add_argument("--currency", type=str, default=None, help="Quote currency (default: env or MXN)")

    logging_group = parser.add_argument_group("Logging Options")
    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="text",
        help="Logging format (default: text)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("ticker", help="Best ask/bid")
    trades = commands.add_parser("trades", help="Recent public trades")
    trades.add_argument("--since", type=datetime.fromisoformat, default=None, help="ISO timestamp")
    trades.add_argument("--descending", action="store_true")
    commands.add_parser("portfolio", help="Available balances")
    commands.add_parser("fee", help="Maker fee rate")

    for side in ("buy", "sell"):
        order = commands.add_parser(side, help=f"Place a limit {side} order")
        order.add_argument("amount", type=Decimal)
        order.add_argument("price", type=Decimal)

    for name, help_text in (
        ("check", "Order status"),
        ("fills", "Aggregated fills of an order"),
        ("cancel", "Cancel an order"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("order_id", type=str)

    commands.add_parser("capabilities", help="Static capability descriptor")

    return parser


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure the root logger."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]


def to_jsonable(value: Any) -> Any:
    """Canonical records to JSON-compatible values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


# ============================================================
# COMMANDS
# ============================================================

async def run_command(adapter: BitsoAdapter, args: argparse.Namespace) -> Any:
    """Dispatch one subcommand."""
    command = args.command

    if command == "ticker":
        return await adapter.get_ticker()
    if command == "trades":
        return await adapter.get_trades(since=args.since, descending=args.descending)
    if command == "portfolio":
        return await adapter.get_portfolio()
    if command == "fee":
        return await adapter.get_fee()
    if command in ("buy", "sell"):
        amount = adapter.round_amount(args.amount)
        price = adapter.round_price(args.price)
        if not adapter.is_valid_lot(price, amount):
            raise ValueError(f"Order value {amount} x {price} is below the market minimum")
        return {"order_id": await adapter.place_order(OrderSide(command), amount, price)}
    if command == "check":
        return await adapter.check_order_status(args.order_id)
    if command == "fills":
        return await adapter.get_order_fills(args.order_id)
    if command == "cancel":
        return await adapter.cancel_order(args.order_id)

    raise ValueError(f"Unknown command: {command}")


async def run(args: argparse.Namespace) -> int:
    if args.command == "capabilities":
        print(json.dumps(BitsoAdapter.get_capabilities().to_dict(), indent=2))
        return 0

    config = AdapterConfig.from_env(asset=args.asset, currency=args.currency)

    try:
        async with BitsoAdapter(config) as adapter:
            result = await run_command(adapter, args)
    except ExchangeException as e:
        logger.error(f"{args.command} failed after {e.attempts} attempt(s): {e.error}")
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 2

    print(json.dumps(to_jsonable(result), indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level, args.log_format)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
