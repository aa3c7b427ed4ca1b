"""Command-line interface for airportsync.

``airportsync sync`` runs one fetch/decode/replace/notify cycle against the
configured endpoint; ``airportsync list`` prints what the store holds.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os

from airportsync import __version__
from airportsync.config import SyncConfig
from airportsync.core.events import EventBus
from airportsync.core.models import Airport, SyncCompleted
from airportsync.data.store import AirportStore
from airportsync.errors import StoreError
from airportsync.sync import AirportSync, CompletionChannel

logger = logging.getLogger(__name__)


def _parse_latlon(s: str) -> tuple[float, float]:
    try:
        lat, lon = (float(p) for p in s.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError("expected LAT,LON") from None
    return lat, lon


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="airportsync", description="Sync a remote airport dataset to SQLite"
    )
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument(
        "--log-level",
        default=os.environ.get("AIRPORTSYNC_LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    p.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the airports sqlite store (default: ~/.airportsync/airports.sqlite)",
    )
    sub = p.add_subparsers(dest="command")

    s = sub.add_parser("sync", help="Fetch airports and replace the store contents")
    s.add_argument("--url", dest="base_url", default=None, help="Airports endpoint URL")
    s.add_argument("--state", default=None, help="State filter sent as ?state=")
    s.add_argument(
        "--timeout",
        dest="timeout_s",
        type=float,
        default=None,
        help="Request timeout in seconds",
    )
    s.add_argument(
        "--keep-icao",
        dest="keep_icao",
        action="store_true",
        help="Store the ICAO code instead of the airport URL in the icao field",
    )

    ls = sub.add_parser("list", help="Print stored airports")
    ls.add_argument(
        "--near",
        type=_parse_latlon,
        default=None,
        help="Only show airports nearest to LAT,LON",
    )
    ls.add_argument(
        "--max-nm",
        dest="max_nm",
        type=float,
        default=50.0,
        help="Search radius for --near in NM (default: 50)",
    )
    ls.add_argument(
        "-k",
        dest="k",
        type=int,
        default=3,
        help="Maximum results for --near (default: 3)",
    )
    return p


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments (``sys.argv`` when *argv* is None)."""
    return build_parser().parse_args(argv)


def _configure_logging(level: str) -> None:
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if lvl > logging.DEBUG:
        logging.getLogger("aiohttp").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.WARNING)


def _format_airport(ap: Airport) -> str:
    rwy = f"{ap.runway_length} ft" if ap.runway_length is not None else "-"
    return (
        f"{ap.code:<5} {ap.name} ({ap.city}, {ap.state}) "
        f"{ap.latitude:.4f},{ap.longitude:.4f} rwy={rwy}"
    )


async def _run_sync(args: argparse.Namespace) -> int:
    cfg = SyncConfig.from_env(
        db_path=args.db_path,
        base_url=args.base_url,
        state=args.state,
        timeout_s=args.timeout_s,
        icao_from_url=False if args.keep_icao else None,
    )
    bus = EventBus()
    channel = CompletionChannel(bus)
    with AirportStore(cfg.db_path) as store:
        syncer = AirportSync(cfg, store=store, channel=channel)
        event: SyncCompleted = await syncer.execute()
        await bus.close()
    print(event.model_dump_json())
    return 0 if event.success else 1


def _run_list(args: argparse.Namespace) -> int:
    cfg = SyncConfig.from_env(db_path=args.db_path)
    with AirportStore(cfg.db_path) as store:
        if args.near is not None:
            lat, lon = args.near
            airports = store.nearest(lat, lon, max_nm=args.max_nm, k=args.k)
        else:
            airports = store.query_all()
        last = store.meta("last_sync_at")
    for ap in airports:
        print(_format_airport(ap))
    logger.info("%d airports (last sync: %s)", len(airports), last or "never")
    return 0


async def run_async(argv: list[str] | None = None) -> int:
    """Async entrypoint for programmatic usage/testing.

    Returns the process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.version:
        print(f"airportsync {__version__}")
        return 0
    _configure_logging(args.log_level)

    try:
        if args.command == "sync":
            return await _run_sync(args)
        if args.command == "list":
            return _run_list(args)
    except StoreError as e:
        logger.error("store error: %s", e)
        return 1

    parser.print_help()
    return 2


def main(argv: list[str] | None = None) -> int:
    """Synchronous entrypoint for the airportsync CLI."""
    try:
        return asyncio.run(run_async(argv))
    except KeyboardInterrupt:
        # Allow graceful cancellation via Ctrl+C
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
