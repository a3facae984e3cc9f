"""Command line entry point.

    pushrelay serve    API + background delivery (default MODE)
    pushrelay worker   background delivery only, until SIGINT/SIGTERM
    pushrelay once     run a single cycle and exit
    pushrelay stats    print queue and device statistics
"""
import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, get_database_url
from .database import Database
from .exceptions import ConfigurationError, StoreError
from .services.factory import build_services
from .services.stats import get_notification_stats

logger = logging.getLogger("pushrelay")

MODES = ("serve", "worker", "once", "stats")


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def run_once(config: Settings) -> int:
    """Run one cycle. Exit code 0 regardless of per-row failures."""
    config.validate_for_dispatch()
    database = Database(get_database_url(config))
    try:
        await database.init()
        services = build_services(config, database)
        stats = await services.processor.run_cycle()
        print(json.dumps(stats.as_dict()))
        return 0
    finally:
        await database.close()


async def run_worker(config: Settings) -> int:
    """Run cycles on the configured interval until a termination signal."""
    config.validate_for_dispatch()
    database = Database(get_database_url(config))
    try:
        await database.init()
        services = build_services(config, database)

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # Windows event loops have no signal handler support
                pass

        services.scheduler.start()
        logger.info("Worker running, press Ctrl+C to stop")
        await stop_event.wait()

        logger.info("Termination requested")
        await services.scheduler.stop()
        return 0
    finally:
        await database.close()


async def print_stats(config: Settings) -> int:
    database = Database(get_database_url(config))
    try:
        await database.init()
        async with database.session() as session:
            stats = await get_notification_stats(session, stale_token_days=config.stale_token_days)
        print(stats.model_dump_json(indent=2))
        return 0
    finally:
        await database.close()


def serve(config: Settings) -> int:
    import uvicorn
    from .main import create_app

    uvicorn.run(create_app(config), host="0.0.0.0", port=config.web_port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    config = Settings()
    parser = argparse.ArgumentParser(prog="pushrelay", description="Push notification delivery service")
    parser.add_argument("mode", nargs="?", choices=MODES, default=config.mode)
    args = parser.parse_args(argv)

    configure_logging(config.log_level)

    try:
        if args.mode == "serve":
            return serve(config)
        if args.mode == "worker":
            return asyncio.run(run_worker(config))
        if args.mode == "once":
            return asyncio.run(run_once(config))
        return asyncio.run(print_stats(config))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except (StoreError, SQLAlchemyError, OSError) as e:
        logger.error(f"Store error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
