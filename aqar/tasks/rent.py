"""Rent distribution Celery task."""

from __future__ import annotations

import asyncio
import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aqar.core.errors import BusinessRuleViolation, NotFound, ValidationError
from aqar.worker import celery_app

logger = structlog.get_logger()


@celery_app.task(name="tasks.distribute_rent")
def distribute_rent_task(property_id: str, rate_per_token: str, period: str | None = None) -> dict:
    """Distribute rent for one property from a worker process.

    Not retried automatically: a failure after some payouts went out would
    pay those holders twice on the next attempt.
    """
    from aqar.core.config import settings
    from aqar.core.database import build_engine
    from aqar.ledger.client import build_ledger_client
    from aqar.modules.rent.service import distribute_rent

    async def _run() -> dict:
        # Engine and ledger connections are bound to this run's event loop
        engine = build_engine(settings.DATABASE_URL)
        ledger = build_ledger_client()
        try:
            async with async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)() as db:
                result = await distribute_rent(db, ledger, uuid.UUID(property_id), rate_per_token, period)
        finally:
            await ledger.close()
            await engine.dispose()
        logger.info(
            "rent.task_complete",
            property_id=property_id,
            distribution_id=str(result.distribution_id),
            failed=result.failed_count,
        )
        return result.model_dump(mode="json")

    try:
        return asyncio.run(_run())
    except (ValidationError, NotFound, BusinessRuleViolation) as exc:
        logger.warning("rent.task_rejected", property_id=property_id, error=exc.error, reason=exc.message)
        return {"error": exc.error, "message": exc.message}
