"""
Launch Radar - Main Entry Point

Runs exactly one cycle per invocation; an external scheduler (cron, systemd
timers) decides the cadence. Each (task, network/destination) pair holds its
own advisory lock, so overlapping invocations of the same cycle exit early
while different cycles run side by side.

Usage:
    launch-radar --task launches --network bnb
    launch-radar --task listings --network sui
    launch-radar --task news
    launch-radar --task publish --destination telegram_channel
    launch-radar --task health

Environment Variables:
    DATABASE_URL          PostgreSQL connection string (required)
    LOG_LEVEL             Logging level (DEBUG/INFO/WARNING/ERROR)
    BNB_RPC_URL           BNB Smart Chain JSON-RPC endpoint
    SUI_RPC_URL           Sui JSON-RPC endpoint (default: public mainnet)
    CRYPTOPANIC_API_KEY   Primary general-news source
    NEWSAPI_KEY           Sui keyword news search
    DEXSCREENER_API_KEY   Listing source key (optional)
    TELEGRAM_ENABLED      "true" to post to Telegram (default: true)
    TELEGRAM_BOT_TOKEN    Telegram bot token
    TELEGRAM_CHANNEL_ID   Channel chat id (primary Telegram destination)
    TELEGRAM_GROUP_ID     Group chat id
    X_ENABLED             "true" to post to X (default: false)
    X_ACCESS_TOKEN        X API v2 user access token
    MIN_MARKET_CAP        Listing threshold in USD (default: 10000)
    MIN_VOLUME_24H        Listing threshold in USD (default: 1000)
    RPC_MIN_INTERVAL_MS   Minimum spacing between EVM RPC calls (default: 100)
"""

from __future__ import annotations

import argparse
import asyncio
import atexit
import fcntl
import logging
import os
import sys
import tempfile
from contextlib import AsyncExitStack, contextmanager
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Generator, Optional

# Configure logging before imports
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

from launch_radar.core import (  # noqa: E402
    LaunchMonitor,
    ListingThresholdFilter,
    PublicationStateTracker,
    Publisher,
    PublisherConfig,
    Reconciler,
    TELEGRAM_GROUP,
    X,
    default_destinations,
)
from launch_radar.delivery import MessageRenderer, TelegramClient, XClient  # noqa: E402
from launch_radar.ingestion import (  # noqa: E402
    ChainLogScanner,
    ChainTag,
    CycleFailedError,
    DexScreenerListingSource,
    EvmRpcClient,
    MoveEventScanner,
    NewsAggregator,
    SuiEventClient,
    default_general_sources,
    default_sui_sources,
)
from launch_radar.ingestion.sui_client import SUI_MAINNET_RPC  # noqa: E402
from launch_radar.storage import (  # noqa: E402
    AssetRepository,
    Database,
    DatabaseConfig,
    NewsRepository,
    PublicationRepository,
)

TASKS = ("launches", "listings", "news", "publish", "health")
DESTINATIONS = ("x", "telegram_channel", "telegram_group")
DEFAULT_BNB_RPC = "https://bsc-dataseed.binance.org/"


class CycleLockedError(Exception):
    """Raised when the same cycle is already running."""
    pass


@contextmanager
def singleton_lock(name: str, lock_dir: Optional[str] = None) -> Generator[None, None, None]:
    """
    Hold an exclusive advisory lock for one named cycle.

    Uses file locking (fcntl.LOCK_EX | fcntl.LOCK_NB); the lock is released
    when the block exits or the process dies.

    Raises:
        CycleLockedError: If another process holds the lock
    """
    lock_path = Path(lock_dir or tempfile.gettempdir()) / f"launch-radar-{name}.lock"
    fp = open(lock_path, "a+")

    try:
        fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        fp.close()
        raise CycleLockedError(f"Cycle '{name}' is already running (lock: {lock_path})")

    fp.seek(0)
    fp.truncate()
    fp.write(str(os.getpid()))
    fp.flush()

    def cleanup():
        try:
            fcntl.flock(fp.fileno(), fcntl.LOCK_UN)
            fp.close()
        except (OSError, ValueError):
            pass

    atexit.register(cleanup)

    try:
        logger.debug(f"Acquired lock {lock_path} (PID: {os.getpid()})")
        yield
    finally:
        cleanup()
        atexit.unregister(cleanup)


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == "true"


@dataclass(frozen=True)
class RadarConfig:
    """Complete radar configuration."""

    # Database
    database_url: str = ""

    # Chains
    bnb_rpc_url: str = DEFAULT_BNB_RPC
    sui_rpc_url: str = SUI_MAINNET_RPC
    rpc_min_interval_ms: int = 100

    # Sources
    cryptopanic_api_key: Optional[str] = None
    newsapi_key: Optional[str] = None
    dexscreener_api_key: Optional[str] = None

    # Listing thresholds
    min_market_cap: Decimal = Decimal("10000")
    min_volume_24h: Decimal = Decimal("1000")

    # Distribution
    telegram_enabled: bool = True
    telegram_bot_token: Optional[str] = None
    telegram_channel_id: str = ""
    telegram_group_id: str = ""
    x_enabled: bool = False
    x_access_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RadarConfig":
        """Load configuration from environment variables."""
        return cls(
            database_url=os.environ.get("DATABASE_URL", ""),
            bnb_rpc_url=os.environ.get("BNB_RPC_URL", DEFAULT_BNB_RPC),
            sui_rpc_url=os.environ.get("SUI_RPC_URL", SUI_MAINNET_RPC),
            rpc_min_interval_ms=int(os.environ.get("RPC_MIN_INTERVAL_MS", "100")),
            cryptopanic_api_key=os.environ.get("CRYPTOPANIC_API_KEY") or None,
            newsapi_key=os.environ.get("NEWSAPI_KEY") or None,
            dexscreener_api_key=os.environ.get("DEXSCREENER_API_KEY") or None,
            min_market_cap=Decimal(os.environ.get("MIN_MARKET_CAP", "10000")),
            min_volume_24h=Decimal(os.environ.get("MIN_VOLUME_24H", "1000")),
            telegram_enabled=_env_flag("TELEGRAM_ENABLED", "true"),
            telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN") or None,
            telegram_channel_id=os.environ.get("TELEGRAM_CHANNEL_ID", ""),
            telegram_group_id=os.environ.get("TELEGRAM_GROUP_ID", ""),
            x_enabled=_env_flag("X_ENABLED", "false"),
            x_access_token=os.environ.get("X_ACCESS_TOKEN") or None,
        )


def load_env_file(path: str = ".env") -> None:
    """Load environment variables from .env file if it exists."""
    env_path = Path(path)
    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, _, value = line.partition("=")
                    value = value.strip().strip('"').strip("'")
                    os.environ.setdefault(key.strip(), value)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Launch Radar - launch detection, news and publishing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--task", choices=TASKS, required=True, help="Cycle to run")
    parser.add_argument(
        "--network",
        choices=[c.value for c in ChainTag],
        default=ChainTag.BNB.value,
        help="Chain for launches/listings (default: bnb)",
    )
    parser.add_argument(
        "--destination",
        choices=DESTINATIONS,
        default="telegram_channel",
        help="Destination for publish (default: telegram_channel)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level",
    )
    return parser.parse_args(argv)


def lock_name(args: argparse.Namespace) -> str:
    """Lock scope: one per (task, network) or (task, destination)."""
    if args.task in ("launches", "listings"):
        return f"{args.task}-{args.network}"
    if args.task == "publish":
        return f"publish-{args.destination}"
    return args.task


async def run_monitor_task(args: argparse.Namespace, config: RadarConfig, db: Database) -> None:
    reconciler = Reconciler(AssetRepository(db), NewsRepository(db))
    chain = ChainTag(args.network)

    async with AsyncExitStack() as stack:
        if args.task == "launches":
            if chain == ChainTag.BNB:
                rpc = await stack.enter_async_context(
                    EvmRpcClient(config.bnb_rpc_url, min_interval=config.rpc_min_interval_ms / 1000)
                )
                scanner = ChainLogScanner(rpc)
            else:
                scanner = MoveEventScanner(SuiEventClient(config.sui_rpc_url))
            monitor = LaunchMonitor(reconciler, scanners={chain: scanner})
            await monitor.monitor_network(chain)

        elif args.task == "listings":
            listings = await stack.enter_async_context(
                DexScreenerListingSource(config.dexscreener_api_key)
            )
            monitor = LaunchMonitor(
                reconciler,
                listing_source=listings,
                listing_filter=ListingThresholdFilter(config.min_market_cap, config.min_volume_24h),
            )
            await monitor.monitor_listings(chain)

        else:
            aggregator = NewsAggregator(
                default_general_sources(config.cryptopanic_api_key),
                {ChainTag.SUI.value: default_sui_sources(config.newsapi_key)},
            )
            monitor = LaunchMonitor(reconciler, aggregator=aggregator)
            await monitor.monitor_news()


async def run_publish_task(args: argparse.Namespace, config: RadarConfig, db: Database) -> None:
    destinations = default_destinations(config.telegram_channel_id, config.telegram_group_id)
    destination = destinations[args.destination]
    tracker = PublicationStateTracker(PublicationRepository(db))
    renderer = MessageRenderer()

    # The group only receives news
    publisher_config = (
        PublisherConfig(launch_limit=0) if destination.key == TELEGRAM_GROUP else PublisherConfig()
    )

    if destination.key == X:
        client = XClient(config.x_access_token, enabled=config.x_enabled)
    else:
        client = TelegramClient(config.telegram_bot_token, enabled=config.telegram_enabled)

    if not client.is_enabled:
        logger.info(f"{destination.key} is disabled, nothing to publish")
        return

    async with client:
        publisher = Publisher(tracker, client, renderer.render, publisher_config)
        report = await publisher.run_pass(destination)
    logger.info(
        f"Publish to {destination.key}: {report.sent} sent, {report.failed} failed, "
        f"{report.skipped} already recorded"
    )


async def run_health_task(config: RadarConfig, db: Database) -> None:
    """
    Check the database and every enabled distribution client.

    Raises:
        CycleFailedError: if any check fails
    """
    checks = {"database": await db.health_check()}
    clients = {
        "telegram": TelegramClient(config.telegram_bot_token, enabled=config.telegram_enabled),
        "x": XClient(config.x_access_token, enabled=config.x_enabled),
    }
    for name, client in clients.items():
        if not client.is_enabled:
            logger.info(f"{name} is disabled, not checked")
            continue
        async with client:
            checks[name] = await client.verify()

    failed = sorted(name for name, ok in checks.items() if not ok)
    summary = ", ".join(f"{name}={'ok' if ok else 'FAILED'}" for name, ok in checks.items())
    logger.info(f"Health: {summary}")
    if failed:
        raise CycleFailedError(f"health check failed: {', '.join(failed)}")


async def main_async(args: argparse.Namespace) -> int:
    """Run one cycle. Returns the process exit code."""
    config = RadarConfig.from_env()

    if not config.database_url:
        logger.error("DATABASE_URL environment variable is required")
        return 1

    db = Database(DatabaseConfig(url=config.database_url))
    try:
        await db.initialize()
        await db.apply_schema()

        if args.task == "publish":
            await run_publish_task(args, config, db)
        elif args.task == "health":
            await run_health_task(config, db)
        else:
            await run_monitor_task(args, config, db)
        return 0
    except CycleFailedError as e:
        logger.error(f"Cycle failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1
    finally:
        await db.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    load_env_file()
    args = parse_args(argv)

    if args.log_level:
        logging.getLogger().setLevel(getattr(logging, args.log_level))

    try:
        with singleton_lock(lock_name(args)):
            try:
                return asyncio.run(main_async(args))
            except KeyboardInterrupt:
                return 0
    except CycleLockedError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
