# ─────────────────────────────────────────────────────────────────
# timer.py - Background Sweep Timer
#
# Fires a TimerFired event every `interval` seconds so the online
# sweep runs for every device. One asyncio task for the whole
# service: asyncio.sleep() pauses only this coroutine, the API keeps
# serving requests in the meantime.
# ─────────────────────────────────────────────────────────────────

import asyncio
import logging

from handlers import Dispatcher

logger = logging.getLogger("timer")


async def run_online_sweep(dispatcher: Dispatcher, interval: float):
    """
    Run the online sweep forever, once per interval.

    Cancelling the task (on shutdown) ends the loop quietly. A sweep
    that blows up is logged and the loop carries on with the next tick.
    """

    logger.info(f"⏱️  Online sweep started, every {interval}s")
    while True:
        try:
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("⏱️  Online sweep stopped")
            return

        try:
            updated = dispatcher.tick()
        except Exception:
            logger.exception("Online sweep failed")
            continue

        logger.debug(f"Online sweep done, {updated} device(s) changed")
