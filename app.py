#!/usr/bin/env python3
"""
FuelWatch Moderation - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
Runs the two expiration sweepers (ban expiration, proposal
expiration) for the lifetime of the process.

- Initializes the database and the cache layer
- Wires services, event subscribers and collaborators
- Stops cleanly on SIGINT / SIGTERM

The account, notification, station, fuel-type and photo
collaborators are wired with their in-memory implementations;
a hosting application passes its own through build_application().

============================================================
USAGE
============================================================
    python app.py
    python app.py --once --log-level DEBUG
    python app.py --ban-interval 60 --proposal-interval 300

============================================================
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cache import CacheService, create_cache_service
from core.clock import ClockFactory, ClockProtocol
from core.config import AppConfig, load_config
from core.exceptions import ConfigurationError
from database import initialize_database
from events import EventDispatcher, register_default_handlers
from integrations import (
    AccountDirectory,
    FuelTypeCatalog,
    InMemoryAccountDirectory,
    InMemoryFuelTypeCatalog,
    InMemoryPhotoStorage,
    InMemoryStationDirectory,
    NotificationSender,
    PhotoStorage,
    RecordingNotificationSender,
    StationDirectory,
)
from moderation import BanService, ProposalService, ProposalStatisticService
from scheduler import PeriodicSweeper, build_sweepers


logger = logging.getLogger("app")


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure the root logger once for the whole process."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        fmt = json.dumps({
            "timestamp": "%(asctime)s",
            "level": "%(levelname)s",
            "logger": "%(name)s",
            "message": "%(message)s",
        })
    else:
        fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    logging.basicConfig(level=log_level, format=fmt, stream=sys.stdout, force=True)


# ============================================================
# WIRING
# ============================================================

@dataclass
class Application:
    """Every wired component of the running process."""

    config: AppConfig
    cache: CacheService
    dispatcher: EventDispatcher
    bans: BanService
    proposals: ProposalService
    statistics: ProposalStatisticService
    sweepers: List[PeriodicSweeper]


def build_application(
    config: AppConfig,
    accounts: Optional[AccountDirectory] = None,
    notifier: Optional[NotificationSender] = None,
    stations: Optional[StationDirectory] = None,
    fuel_types: Optional[FuelTypeCatalog] = None,
    photos: Optional[PhotoStorage] = None,
    clock: Optional[ClockProtocol] = None,
) -> Application:
    """Initialize storage and wire services around the given collaborators."""
    clock = clock or ClockFactory.get_clock()
    accounts = accounts or InMemoryAccountDirectory(clock)
    notifier = notifier or RecordingNotificationSender()
    stations = stations or InMemoryStationDirectory()
    fuel_types = fuel_types or InMemoryFuelTypeCatalog()
    photos = photos or InMemoryPhotoStorage()

    session_factory = initialize_database(config.database.url, echo=config.database.echo)
    cache = create_cache_service(
        config.cache.redis_url,
        default_ttl_seconds=config.cache.default_ttl_seconds,
        enabled=config.cache.enabled,
    )

    dispatcher = EventDispatcher()
    register_default_handlers(dispatcher, cache, notifier, session_factory, clock)

    bans = BanService(
        session_factory,
        accounts,
        notifier,
        dispatcher,
        cache,
        clock=clock,
        admin_role=config.moderation.admin_role,
    )
    proposals = ProposalService(
        session_factory,
        accounts,
        notifier,
        dispatcher,
        cache,
        stations,
        fuel_types,
        photos,
        clock=clock,
        admin_role=config.moderation.admin_role,
        max_photo_bytes=config.moderation.max_photo_bytes,
        max_pending_age=config.sweepers.max_pending_age,
    )
    statistics = ProposalStatisticService(session_factory, accounts, cache, clock=clock)

    return Application(
        config=config,
        cache=cache,
        dispatcher=dispatcher,
        bans=bans,
        proposals=proposals,
        statistics=statistics,
        sweepers=build_sweepers(bans, proposals, config.sweepers),
    )


# ============================================================
# CLI
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fuelwatch-moderation",
        description="Ban and price-proposal expiration sweepers",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one tick of each sweeper and exit",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=None,
        help="Path to a .env file (default: ./.env)",
    )

    # --------------------------------------------------------
    # Sweeper Options
    # --------------------------------------------------------
    sweeper_group = parser.add_argument_group("Sweeper Options")

    sweeper_group.add_argument(
        "--ban-interval",
        type=float,
        default=None,
        help="Seconds between ban expiration sweeps (default: BAN_SWEEP_INTERVAL_SECONDS)",
    )
    sweeper_group.add_argument(
        "--proposal-interval",
        type=float,
        default=None,
        help="Seconds between proposal expiration sweeps (default: PROPOSAL_SWEEP_INTERVAL_SECONDS)",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="text",
        help="Logging format (default: text)",
    )

    return parser


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> List[str]:
    """Apply CLI overrides to config. Returns validation errors."""
    errors = []

    if args.ban_interval is not None:
        if args.ban_interval <= 0:
            errors.append("--ban-interval must be positive")
        else:
            config.sweepers.ban_interval_seconds = args.ban_interval

    if args.proposal_interval is not None:
        if args.proposal_interval <= 0:
            errors.append("--proposal-interval must be positive")
        else:
            config.sweepers.proposal_interval_seconds = args.proposal_interval

    if args.log_level:
        config.log_level = args.log_level

    return errors


# ============================================================
# MAIN FUNCTION
# ============================================================

async def run_application(app: Application, once: bool = False) -> int:
    """
    Run the sweepers.

    Args:
        app: Wired application
        once: Run a single tick of each sweeper and return

    Returns:
        Exit code
    """
    if once:
        logger.info("Running a single tick of each sweeper...")
        failed = False
        for sweeper in app.sweepers:
            report = await sweeper.tick()
            if report is None:
                failed = True
            else:
                print(f"{report.summary()}")
        return 1 if failed else 0

    loop = asyncio.get_running_loop()
    installed = []
    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: _request_stop(app, s))
            installed.append(sig)

    try:
        for sweeper in app.sweepers:
            await sweeper.start()
        logger.info("Sweepers running (press Ctrl+C to stop)...")
        await asyncio.gather(*(s.wait_until_stopped() for s in app.sweepers))
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    finally:
        for sweeper in app.sweepers:
            await sweeper.stop()
        for sig in installed:
            loop.remove_signal_handler(sig)


def _request_stop(app: Application, sig: signal.Signals) -> None:
    logger.info(f"Received signal {sig.name}, stopping sweepers")
    for sweeper in app.sweepers:
        sweeper.request_stop()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = create_parser().parse_args(argv)

    try:
        config = load_config(args.env_file)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    errors = apply_overrides(config, args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    setup_logging(config.log_level, args.log_format)

    try:
        app = build_application(config)
    except Exception as e:
        logger.critical(f"Startup failed: {e}", exc_info=True)
        return 1

    return asyncio.run(run_application(app, once=args.once))


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
