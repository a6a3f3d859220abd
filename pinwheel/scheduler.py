"""
Pin Wheel Scheduler
Fires the auto-entry batch at 19:55 UTC and the draw at 20:00 UTC
"""

import asyncio
import logging
from datetime import datetime, time, timedelta, timezone

from discord.ext import tasks

from . import config

logger = logging.getLogger(__name__)

DRAW_TIME = time(hour=config.DRAW_HOUR_UTC, minute=0, tzinfo=timezone.utc)
AUTO_ENTRY_TIME = (
    datetime.combine(datetime(2000, 1, 1).date(), DRAW_TIME) - timedelta(minutes=config.AUTO_ENTRY_LEAD_MINUTES)
).timetz()


class PinwheelScheduler:
    """Runs the daily jobs. Both jobs are safe to fire twice."""

    def __init__(self, auto_entry, draw):
        self.auto_entry = auto_entry
        self.draw = draw

    def run_auto_entry(self):
        report = self.auto_entry.run_batch()
        logger.info(f"🕖 Scheduled auto-entry: {report.succeeded}/{report.processed} entered")
        return report

    def run_scheduled_draw(self):
        run = self.draw.run_draw(triggered_by='scheduler')
        logger.info(f"🕗 Scheduled draw for {run.window.isoformat()}: {run.outcome.value}")
        return run


async def setup_pinwheel_scheduler(auto_entry, draw):
    """
    Start the daily Pin Wheel tasks on the running event loop

    Args:
        auto_entry: AutoEntryManager instance
        draw: PinwheelDraw instance

    Returns:
        PinwheelScheduler instance
    """
    scheduler = PinwheelScheduler(auto_entry, draw)

    @tasks.loop(time=AUTO_ENTRY_TIME)
    async def auto_entry_task():
        try:
            # Database and Drip calls block, keep them off the event loop
            await asyncio.to_thread(scheduler.run_auto_entry)
        except Exception as e:
            logger.error(f"Error in Pin Wheel auto-entry task: {e}", exc_info=True)

    @tasks.loop(time=DRAW_TIME)
    async def draw_task():
        try:
            await asyncio.to_thread(scheduler.run_scheduled_draw)
        except Exception as e:
            logger.error(f"Error in Pin Wheel draw task: {e}", exc_info=True)

    auto_entry_task.start()
    draw_task.start()
    scheduler.tasks = (auto_entry_task, draw_task)
    logger.info(
        f"✅ Pin Wheel scheduler started (auto-entry {AUTO_ENTRY_TIME.strftime('%H:%M')} UTC, "
        f"draw {DRAW_TIME.strftime('%H:%M')} UTC)"
    )
    return scheduler


def run_scheduler_forever(auto_entry, draw):
    """Blocking entry point for the worker process"""

    async def main():
        await setup_pinwheel_scheduler(auto_entry, draw)
        await asyncio.Event().wait()

    asyncio.run(main())


if __name__ == '__main__':
    from dotenv import load_dotenv

    load_dotenv()

    from core.api_server import build_services
    from utils.logging_config import setup_logging

    setup_logging()
    services = build_services()
    run_scheduler_forever(services.auto_entry, services.draw)
