"""
Celery Tasks — AI floor-plan analysis and Golden Thread package generation.

Each task drives the async service layer on a fresh event loop with its own
database session; the services commit their own status changes.
"""
import asyncio
import logging

from bluebook.workers.celery_app import celery_app

logger = logging.getLogger("bluebook-celery")


def _run_async(coro):
    """Run an async coroutine in a sync Celery task context (new event loop)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(bind=True, name="tasks.analyze_floor_plan")
def analyze_floor_plan_task(self, floor_id: str, user_id: str = None):
    """pending → analyzing → completed | failed for one uploaded floor."""
    from bluebook.db import AsyncSessionLocal
    from bluebook.services.autoplan.plan_service import run_floor_analysis

    async def _run():
        async with AsyncSessionLocal() as session:
            return await run_floor_analysis(session, floor_id, performed_by=user_id)

    self.update_state(state="PROGRESS", meta={"step": "Analysing floor plan", "pct": 10})
    try:
        result = _run_async(_run())
    except Exception as e:
        logger.error(
            f"Floor analysis task failed for {floor_id}: {e}",
            extra={"floor_id": floor_id, "task_id": self.request.id},
        )
        raise
    return {
        "floor_id": floor_id,
        "confidence": result.confidence,
        "symbols_suggested": len(result.suggested_symbols),
        "warnings": result.warnings,
    }


@celery_app.task(bind=True, name="tasks.generate_golden_thread_package")
def generate_golden_thread_package_task(self, package_id: str):
    """Compile, validate and export one Golden Thread package."""
    from bluebook.db import AsyncSessionLocal
    from bluebook.services.golden_thread.package_service import generate_package

    async def _run():
        async with AsyncSessionLocal() as session:
            package = await generate_package(session, package_id)
            return {
                "package_id": package.id,
                "package_reference": package.package_reference,
                "status": package.status,
                "compliance_score": package.compliance_score,
            }

    self.update_state(state="PROGRESS", meta={"step": "Compiling golden thread", "pct": 10})
    try:
        return _run_async(_run())
    except Exception as e:
        logger.error(
            f"Golden Thread generation failed for {package_id}: {e}",
            extra={"package_id": package_id, "task_id": self.request.id},
        )
        raise
