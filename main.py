import sys
import signal
import asyncio
import logging
from contextlib import suppress

from aiogram import Bot, Dispatcher
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from api.fraud_check import FraudCheckClient
from api.steadfast import SteadfastClient
from database.async_db import AsyncDatabase
from database.managers.order_manager import OrderManager
from database.managers.staff_manager import StaffManager
from services.order_controller import SessionRegistry
from utils.logger import get_logger, setup_logging
from utils.config import (
    BOT_TOKEN, DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD,
    DB_MIN_POOL_SIZE, DB_MAX_POOL_SIZE,
    STEADFAST_API_URL, STEADFAST_API_KEY, STEADFAST_SECRET_KEY,
    FRAUD_API_URL, FRAUD_API_KEY, ADMIN_IDS,
    ORDERS_PAGE_SIZE, BALANCE_CACHE_TTL_SECONDS, STATUS_SYNC_INTERVAL_MINUTES, TIMEZONE,
)
from utils.scheduler_jobs import sync_delivery_statuses

from middleware.manager_middleware import ManagerMiddleware
from handlers import register_handlers

setup_logging(level=logging.DEBUG, log_to_file=True)
log = get_logger("[Bot]")


async def shutdown(bot: Bot, dp: Dispatcher):
    log.info("[Bot] Shutting down bot and dispatcher")

    scheduler = dp.get("scheduler")
    if scheduler and scheduler.running:
        scheduler.shutdown()
        log.debug("[Scheduler] Scheduler stopped [✓]")

    for client in (dp.get("steadfast_client"), dp.get("fraud_check_client")):
        if client is not None:
            with suppress(Exception):
                await client.close()
    log.debug("[Bot] HTTP client sessions closed [✓]")

    db = dp.get("db")
    if db is not None:
        with suppress(Exception):
            await db.close()
            log.debug("[Bot] Database pool closed [✓]")

    with suppress(Exception):
        await dp.storage.close()
        log.debug("[Bot] Dispatcher storage closed [✓]")

    with suppress(Exception):
        await bot.session.close()
        log.debug("[Bot] Bot session closed [✓]")

    log.info("[Bot] Shutdown complete [✓]")
    log.info("-" * 80)


async def main():
    log.info("[Bot] Starting main process")
    bot = Bot(token=BOT_TOKEN)
    dp = Dispatcher()

    steadfast_client = SteadfastClient(STEADFAST_API_URL, STEADFAST_API_KEY, STEADFAST_SECRET_KEY)
    fraud_check_client = FraudCheckClient(FRAUD_API_URL, FRAUD_API_KEY)

    db = AsyncDatabase(
        db_name=DB_NAME, user=DB_USER, password=DB_PASSWORD, host=DB_HOST, port=DB_PORT,
        min_size=DB_MIN_POOL_SIZE, max_size=DB_MAX_POOL_SIZE,
    )
    await db.connect()
    await db.ensure_schema()
    log.info("[Bot] Database connection established [✓]")

    order_manager = OrderManager(db)
    staff_manager = StaffManager(db)
    sessions = SessionRegistry(
        order_manager, steadfast_client,
        page_size=ORDERS_PAGE_SIZE, balance_ttl=BALANCE_CACHE_TTL_SECONDS,
    )

    scheduler = AsyncIOScheduler(timezone=TIMEZONE)
    scheduler.add_job(
        sync_delivery_statuses, trigger="interval", minutes=STATUS_SYNC_INTERVAL_MINUTES,
        args=[order_manager, steadfast_client], max_instances=1, coalesce=True,
    )

    dp.update.middleware(
        ManagerMiddleware(
            db=db, order_manager=order_manager, staff_manager=staff_manager,
            steadfast_client=steadfast_client, fraud_check_client=fraud_check_client,
            sessions=sessions, bot=bot, admin_ids=ADMIN_IDS,
        )
    )
    log.info("[Bot] Middleware configured [✓]")

    register_handlers(dp)
    log.info("[Bot] Handlers registered [✓]")

    dp["scheduler"] = scheduler
    dp["db"] = db
    dp["steadfast_client"] = steadfast_client
    dp["fraud_check_client"] = fraud_check_client

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda: loop.create_task(shutdown(bot, dp)))

    try:
        log.info("[Bot] Bot started. Press Ctrl+C to stop")
        scheduler.start()
        log.info("[Scheduler] Scheduler started [✓]")
        await dp.start_polling(bot)
    except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
        log.warning("[Bot] Received a shutdown signal")
    finally:
        await shutdown(bot, dp)


if __name__ == "__main__":
    log.info("-" * 80)
    log.info("[Bot] Starting application")
    asyncio.run(main())
