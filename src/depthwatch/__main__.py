"""depthwatch - Entry Point

Usage:
    python -m depthwatch [--config PATH] [--log-level LEVEL] [--json-logs] COMMAND

Commands:
    watch TOKEN_ID     - Stream a market's book and render it on every update
    snapshot TOKEN_ID  - Fetch the book once, print it and exit
    version            - Show version

Examples:
    python -m depthwatch watch 71321045679252212594626385532706912750332728571942532289631379312455583992563
    python -m depthwatch --log-level DEBUG watch <token_id> --precision 3 --rows 15
    python -m depthwatch snapshot <token_id>
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from depthwatch import __version__

CLEAR_SCREEN = "\033[2J\033[H"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="depthwatch",
        description="Live Polymarket order book viewer",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"depthwatch {__version__}",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (TOML)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Emit logs as JSON lines",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")
    subparsers.required = True

    watch = subparsers.add_parser("watch", help="Stream and render a market's book")
    watch.add_argument("token_id", help="Token ID of the market outcome")
    watch.add_argument("--precision", type=int, default=None, help="Price decimals (0-8)")
    watch.add_argument("--rows", type=int, default=None, help="Levels per side (1-100)")
    watch.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Serve Prometheus metrics on this port",
    )

    snapshot = subparsers.add_parser("snapshot", help="Print the current book once")
    snapshot.add_argument("token_id", help="Token ID of the market outcome")
    snapshot.add_argument("--precision", type=int, default=None, help="Price decimals (0-8)")
    snapshot.add_argument("--rows", type=int, default=None, help="Levels per side (1-100)")

    # Version command
    subparsers.add_parser("version", help="Show version")

    return parser.parse_args(argv)


def find_config_file(specified: Optional[Path]) -> Optional[Path]:
    """Find configuration file."""
    if specified and specified.exists():
        return specified

    # Search paths
    search_paths = [
        Path("config/default.toml"),
        Path("depthwatch.toml"),
        Path.home() / ".config" / "depthwatch" / "depthwatch.toml",
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_config(args: argparse.Namespace):
    """Load config and apply command-line overrides."""
    from depthwatch.core.config import ConfigManager
    from depthwatch.core.logging import setup_logging

    config_path = find_config_file(args.config)
    config = ConfigManager(config_path)

    if getattr(args, "precision", None) is not None:
        config.set("display.precision", args.precision)
    if getattr(args, "rows", None) is not None:
        config.set("display.row_count", args.rows)
    if args.log_level is not None:
        config.set("logging.level", args.log_level)
    if args.json_logs is not None:
        config.set("logging.json", args.json_logs)

    setup_logging(
        level=config.get("logging.level", "INFO"),
        json_output=config.get_bool("logging.json", False),
        log_file=config.get("logging.file"),
    )
    return config, config_path


def show(text: str) -> None:
    """Write a rendered book to stdout, redrawing in place on a terminal."""
    if sys.stdout.isatty():
        sys.stdout.write(CLEAR_SCREEN + text + "\n")
    else:
        sys.stdout.write(text + "\n\n")
    sys.stdout.flush()


async def run_watch(args: argparse.Namespace) -> int:
    """Stream a market until interrupted or the stream gives up."""
    import structlog
    from prometheus_client import start_http_server

    from depthwatch.core.errors import InvalidConfiguration
    from depthwatch.display import render
    from depthwatch.integrations.polymarket.clob import SnapshotClient
    from depthwatch.integrations.polymarket.types import PolymarketSettings
    from depthwatch.integrations.polymarket.websocket import ConnectionStatus
    from depthwatch.services.coordinator import OrderBookCoordinator
    from depthwatch.services.metrics import MetricsEmitter

    config, config_path = load_config(args)
    log = structlog.get_logger()
    log.info(
        "starting_depthwatch",
        version=__version__,
        config=str(config_path) if config_path else "defaults",
        token_id=args.token_id,
    )

    metrics = MetricsEmitter()
    if args.metrics_port:
        start_http_server(args.metrics_port, registry=metrics.registry)
        log.info("metrics_server_started", port=args.metrics_port)

    try:
        settings = PolymarketSettings.from_config(config)
        client = SnapshotClient(settings)
        coordinator = OrderBookCoordinator.from_config(config, client, metrics)
    except (InvalidConfiguration, ValueError) as e:
        log.error("invalid_configuration", error=str(e))
        return 2

    failed = asyncio.Event()

    def on_book(book) -> None:
        view = coordinator.view()
        if view is not None:
            show(render(view))

    def on_status(status: ConnectionStatus) -> None:
        if status == ConnectionStatus.ERROR:
            failed.set()

    coordinator.subscribe_book(on_book)
    coordinator.subscribe_status(on_status)

    async with client:
        try:
            await coordinator.start(args.token_id)
            await failed.wait()
            log.error("stream_failed", token_id=args.token_id)
            return 1
        finally:
            await coordinator.stop()


async def run_snapshot(args: argparse.Namespace) -> int:
    """Fetch and print one book."""
    import structlog

    from depthwatch.core.errors import DepthwatchError, InvalidConfiguration
    from depthwatch.display import render
    from depthwatch.domain.aggregation import aggregate, limit_rows
    from depthwatch.domain.analytics import stats
    from depthwatch.domain.orderbook import initialize
    from depthwatch.integrations.polymarket.clob import SnapshotClient
    from depthwatch.integrations.polymarket.normalizer import derive_update_id
    from depthwatch.integrations.polymarket.types import PolymarketSettings
    from depthwatch.integrations.polymarket.websocket import ConnectionStatus
    from depthwatch.services.coordinator import BookView, DisplaySettings

    config, _ = load_config(args)
    log = structlog.get_logger()

    try:
        display = DisplaySettings.from_config(config)
        settings = PolymarketSettings.from_config(config)
    except (InvalidConfiguration, ValueError) as e:
        log.error("invalid_configuration", error=str(e))
        return 2

    try:
        async with SnapshotClient(settings) as client:
            raw = await client.fetch_snapshot(args.token_id)
    except DepthwatchError as e:
        log.error("snapshot_failed", token_id=args.token_id, error=str(e))
        return 1

    book = initialize(
        args.token_id,
        raw.bids,
        raw.asks,
        update_id=raw.sequence if raw.sequence is not None else derive_update_id(raw.hash),
        timestamp=raw.timestamp,
        hash=raw.hash,
    )
    view = BookView(
        book=book,
        aggregated=limit_rows(aggregate(book, display.precision), display.row_count),
        stats=stats(book),
        settings=display,
        status=ConnectionStatus.IDLE,
    )
    sys.stdout.write(render(view) + "\n")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    from depthwatch.core.errors import InvalidConfiguration

    args = parse_args(argv)

    if args.command == "version":
        print(f"depthwatch {__version__}")
        return 0

    try:
        if args.command == "watch":
            return asyncio.run(run_watch(args))
        if args.command == "snapshot":
            return asyncio.run(run_snapshot(args))
    except KeyboardInterrupt:
        return 0
    except InvalidConfiguration as e:
        # Raised before logging is configured
        sys.stderr.write(f"depthwatch: {e}\n")
        return 2
    return 2


if __name__ == "__main__":
    sys.exit(main())
