"""Removal verification tasks."""

import asyncio
import time

from celery import shared_task

from ghostmydata.services.verification import run_verification_batch
from ghostmydata.workers.celery_app import get_async_session

# Stop picking up new verifications before the soft time limit
VERIFICATION_BUDGET_SECONDS = 480


@shared_task(bind=True)
def verify_due_removals(self):
    """Re-scan brokers for removals whose processing window has passed."""
    return asyncio.run(_verify_due_removals_async())


async def _verify_due_removals_async():
    engine, async_session = get_async_session()
    try:
        async with async_session() as db:
            return await run_verification_batch(
                db, deadline=time.monotonic() + VERIFICATION_BUDGET_SECONDS,
            )
    finally:
        await engine.dispose()
