# utils/scheduler_jobs.py

from api.steadfast import SteadfastClient
from database.managers.order_manager import OrderManager
from services.status_queue import StatusQueue
from utils.logger import get_logger

log = get_logger("[SchedulerJobs]")


async def sync_delivery_statuses(order_manager: OrderManager, steadfast_client: SteadfastClient):
    """
    Polls Steadfast for every order that already has a tracking code and
    writes back the orders whose local status no longer matches.
    """
    log.info("Starting Steadfast status sync...")

    tracked_orders = await order_manager.list_tracked_orders()
    if not tracked_orders:
        log.info("No orders with tracking codes, nothing to sync.")
        return

    log.info(f"Checking {len(tracked_orders)} tracked orders.")

    queue = StatusQueue(steadfast_client, tracked_orders)
    results = await queue.check_all(tracked_orders)
    failed = [r for r in results if not r.ok]
    for r in failed:
        log.warning(f"Status check failed for {r.order.order_id} ({r.order.tracking_code}): {r.error}")

    try:
        changed = await queue.reconcile(tracked_orders, order_manager)
    except Exception as e:
        log.exception(f"Could not store synced statuses: {e}")
        return

    log.info(
        f"Status sync finished. Checked: {len(results) - len(failed)}/{len(results)}, updated: {len(changed)}."
    )
