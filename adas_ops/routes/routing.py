"""Routing router - entry point for scrub results from the estimate scrubber"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..background import ROUTE_SCRUB_TASK
from ..container import Container
from ..schemas import InboundEvent, QueuedJob, RoutingDecision
from ..shared.validators import validate_ro_number
from .dependencies import get_container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routing", tags=["Routing"])


def _validated_ro(event: InboundEvent) -> str:
    try:
        return validate_ro_number(event.ro_number)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/scrub", response_model=RoutingDecision)
async def route_scrub_result(event: InboundEvent, container: Container = Depends(get_container)):
    """Route a reconciled scrub to the shop or back to the tech"""
    ro_number = _validated_ro(event)
    logger.info(f"📨 Scrub result received for RO {ro_number}")
    return await container.dispatcher.route(
        event.scrub_result, event.original_sender, ro_number=ro_number
    )


@router.post("/scrub/queue", response_model=QueuedJob, status_code=202)
async def queue_scrub_result(event: InboundEvent, container: Container = Depends(get_container)):
    """Queue a scrub for routing on the worker and return immediately"""
    ro_number = _validated_ro(event)
    if container.job_queue is None:
        raise HTTPException(status_code=503, detail="Background jobs are not enabled")

    payload = event.model_copy(update={"ro_number": ro_number}).model_dump(mode="json")
    try:
        job_id = await container.job_queue.enqueue(ROUTE_SCRUB_TASK, payload)
    except Exception as e:
        logger.error(f"❌ Failed to queue routing for RO {ro_number}: {e}")
        raise HTTPException(status_code=503, detail="Failed to queue scrub result") from e

    logger.info(f"📋 Routing for RO {ro_number} queued: {job_id}")
    return QueuedJob(queued=job_id is not None, job_id=job_id)
