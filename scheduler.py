# scheduler.py
import argparse
import asyncio
import json
import logging
import sys

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import ConfigError, load_settings
from database import init_db, make_engine, make_session_factory
from notifier import run_cleanup, run_notifications
from push_client import ExpoPushClient
from stores import Stores

logger = logging.getLogger(__name__)


def build(settings):
    engine = make_engine(settings.database_url)
    init_db(engine)
    stores = Stores.from_session_factory(make_session_factory(engine))
    sender = ExpoPushClient(
        url=settings.expo_push_url,
        access_token=settings.expo_access_token,
        timeout=settings.push_timeout_seconds,
    )
    return stores, sender


def create_scheduler(stores, sender, settings):
    scheduler = AsyncIOScheduler(timezone=pytz.UTC)

    async def notifier_job():
        await run_notifications(stores, sender, settings)

    def cleanup_job():
        run_cleanup(stores, settings)

    scheduler.add_job(
        notifier_job, "interval", minutes=settings.notify_interval_minutes,
        id="notifier", replace_existing=True, max_instances=1, coalesce=True,
    )
    scheduler.add_job(
        cleanup_job, "interval", minutes=settings.cleanup_interval_minutes,
        id="cleanup", replace_existing=True, max_instances=1, coalesce=True,
    )
    return scheduler


async def run_once(stores, sender, settings):
    notifications = await run_notifications(stores, sender, settings)
    cleanup = run_cleanup(stores, settings)
    return {"notifications": notifications.as_dict(), "cleanup": cleanup.as_dict()}


async def serve(stores, sender, settings):
    scheduler = create_scheduler(stores, sender, settings)
    scheduler.start()
    logger.info("Notifier started.")
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Recurring event notification worker")
    parser.add_argument("--once", action="store_true", help="run each job once and print the reports")
    args = parser.parse_args(argv)

    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=logging.INFO
    )
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error(f"Fatal configuration error: {e}")
        return 2
    logging.getLogger().setLevel(settings.log_level)

    stores, sender = build(settings)
    if args.once:
        print(json.dumps(asyncio.run(run_once(stores, sender, settings)), indent=2, default=str))
        return 0
    try:
        asyncio.run(serve(stores, sender, settings))
    except KeyboardInterrupt:
        logger.info("Notifier stopped by user.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
