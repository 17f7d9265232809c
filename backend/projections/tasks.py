"""
Celery tasks for projection maintenance.

Balances are applied synchronously by the confirm/cancel commands; these
tasks cover the maintenance paths that may take long:

Tasks:
- rebuild_projection_task: Rebuild a single projection from scratch
- rebuild_all_projections_task: Rebuild every registered projection
- verify_projections_task: Compare materialized balances with the posting history

Usage:
    from projections.tasks import rebuild_projection_task
    rebuild_projection_task.delay(projection_name="stock_balance")
"""
import logging
from typing import Optional

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=1,
    time_limit=3600,  # 1 hour
)
def rebuild_projection_task(self, projection_name: str) -> dict:
    """
    Rebuild a projection from scratch.

    This task:
    1. Resets the projection's bookmark
    2. Clears existing projected data
    3. Replays all relevant events

    Returns:
        Dict with rebuild results
    """
    from projections.base import projection_registry

    logger.info("Rebuilding projection %s", projection_name)

    projection = projection_registry.get(projection_name)
    if not projection:
        return {"error": f"Projection {projection_name} not found", "status": "error"}

    try:
        processed = projection.rebuild()
    except Exception as e:
        logger.exception("Error rebuilding projection %s", projection_name)
        return {
            "projection": projection_name,
            "error": str(e),
            "status": "error",
        }

    return {
        "projection": projection_name,
        "events_processed": processed,
        "status": "success",
    }


@shared_task(bind=True)
def rebuild_all_projections_task(self) -> dict:
    """Rebuild every registered projection, posting history first."""
    from projections.base import projection_registry

    results = {}
    total_processed = 0
    for projection in projection_registry.all():
        result = rebuild_projection_task(projection_name=projection.name)
        results[projection.name] = result
        total_processed += result.get("events_processed", 0)

    return {
        "total_events_processed": total_processed,
        "projections": results,
    }


@shared_task(bind=True)
def verify_projections_task(self, projection_names: Optional[list] = None) -> dict:
    """
    Verify materialized balances against a fold of the posting history.

    Returns:
        Report with per-projection results; "ok" is False if any
        projection has a mismatch.
    """
    from projections.base import projection_registry

    if projection_names:
        projections = [projection_registry.get(name) for name in projection_names]
        projections = [p for p in projections if p is not None]
    else:
        projections = projection_registry.all()

    results = [projection.verify() for projection in projections]
    ok = all(result["ok"] for result in results)
    if not ok:
        logger.error(
            "Projection verification found mismatches",
            extra={"projections": [r["projection"] for r in results if not r["ok"]]},
        )
    return {"ok": ok, "projections": results}
