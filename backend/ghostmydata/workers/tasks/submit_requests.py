"""Removal submission tasks."""

import asyncio
from uuid import UUID

from celery import shared_task

from ghostmydata.models.request import RemovalRequest
from ghostmydata.services.removal import (
    execute_removal,
    mark_non_automatable_as_manual,
    process_pending_removals_batch,
    retry_failed_removals_batch,
)
from ghostmydata.workers.celery_app import get_async_session


@shared_task(bind=True)
def process_pending_removals(self, limit: int = 20):
    """Send the next round-robin batch of pending removal requests."""
    return asyncio.run(_process_pending_removals_async(limit))


async def _process_pending_removals_async(limit: int):
    engine, async_session = get_async_session()
    try:
        async with async_session() as db:
            return await process_pending_removals_batch(db, limit)
    finally:
        await engine.dispose()


@shared_task(bind=True)
def retry_failed_removals(self, limit: int = 20):
    """Retry failed removals that still have attempts left."""
    return asyncio.run(_retry_failed_removals_async(limit))


async def _retry_failed_removals_async(limit: int):
    engine, async_session = get_async_session()
    try:
        async with async_session() as db:
            return await retry_failed_removals_batch(db, limit)
    finally:
        await engine.dispose()


@shared_task(bind=True)
def mark_manual_removals(self):
    """Move pending requests with no email or form channel to manual."""
    return asyncio.run(_mark_manual_removals_async())


async def _mark_manual_removals_async():
    engine, async_session = get_async_session()
    try:
        async with async_session() as db:
            return {"marked": await mark_non_automatable_as_manual(db)}
    finally:
        await engine.dispose()


@shared_task(bind=True, max_retries=3)
def submit_single_removal(self, request_id: str):
    """Execute one removal request outside the batch schedule."""
    return asyncio.run(_submit_single_removal_async(request_id))


async def _submit_single_removal_async(request_id: str):
    engine, async_session = get_async_session()
    try:
        async with async_session() as db:
            request = await db.get(RemovalRequest, UUID(request_id))
            if not request:
                return {"error": "Request not found"}

            result = await execute_removal(db, request.id, request.user_id)
            return {
                "request_id": request_id,
                "success": result.success,
                "method": result.method,
                "message": result.message,
            }
    finally:
        await engine.dispose()
