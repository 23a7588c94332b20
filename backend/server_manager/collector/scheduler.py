# server_manager/collector/scheduler.py
"""Background status polling."""
import asyncio
import logging

from server_manager.config import STATUS_POLL_INTERVAL

logger = logging.getLogger(__name__)


async def status_loop(manager, interval: int = STATUS_POLL_INTERVAL):
    """Poll the fleet right away, then every `interval` seconds."""
    while True:
        try:
            endpoints = manager.endpoints
            logger.debug(f"[status] Polling {len(endpoints)} servers")
            await manager.refresh_all()
        except Exception as e:
            logger.error(f"[status] Error in polling loop: {e}")
        await asyncio.sleep(interval)


def start_scheduler(manager, interval: int = STATUS_POLL_INTERVAL) -> list[asyncio.Task]:
    """Start the polling loops as asyncio tasks."""
    tasks = [
        asyncio.create_task(status_loop(manager, interval), name="status-poll"),
    ]
    logger.info(f"Scheduler started: {len(tasks)} tasks, interval {interval}s")
    return tasks


async def stop_scheduler(tasks: list[asyncio.Task]):
    """Cancel the scheduler tasks and wait for them to finish."""
    logger.info("Stopping scheduler...")
    for task in tasks:
        task.cancel()
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for task, result in zip(tasks, results):
        if isinstance(result, asyncio.CancelledError):
            logger.debug(f"Task {task.get_name()} cancelled")
        elif isinstance(result, Exception):
            logger.error(f"Task {task.get_name()} failed: {result}")
    logger.info("Scheduler stopped")
