"""
Job state endpoints
Document arrival, notice flags, audit history and auto-close per RO
"""

import logging

from fastapi import APIRouter, Depends

from ..background import AUTO_CLOSE_TASK
from ..container import Container
from ..domain.records import render_history
from ..schemas import (
    AuditHistory,
    AutoCloseResult,
    DocumentArrival,
    DocumentStatus,
    InitialNoticeRequest,
    JobState,
    NoticeResult,
)
from .dependencies import get_container, valid_ro_number

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.get("", response_model=list[JobState])
async def list_job_states(container: Container = Depends(get_container)):
    """Every tracked RO with its notice flags and documents"""
    return await container.tracker.list_states()


@router.get("/{ro_number}/state", response_model=JobState)
async def get_job_state(
    ro_number: str = Depends(valid_ro_number),
    container: Container = Depends(get_container),
):
    return await container.tracker.get_state(ro_number)


@router.get("/{ro_number}/history", response_model=AuditHistory)
async def get_job_history(
    ro_number: str = Depends(valid_ro_number),
    container: Container = Depends(get_container),
):
    events = await container.audit_log.events(ro_number)
    return AuditHistory(ro_number=ro_number, events=events, notes=render_history(events))


@router.post("/{ro_number}/documents", response_model=DocumentStatus)
async def record_document(
    body: DocumentArrival,
    ro_number: str = Depends(valid_ro_number),
    container: Container = Depends(get_container),
):
    """
    Register an uploaded document (estimate, scans, report, invoice)

    Once every final document is in, the auto-close check is queued on the
    worker when background jobs are enabled.
    """
    status = await container.notices.record_document(ro_number, body.kind)

    if status.all_final_docs_present and container.job_queue is not None:
        try:
            await container.job_queue.enqueue(AUTO_CLOSE_TASK, ro_number)
        except Exception as e:
            # The document is recorded either way; POST /auto-close still works
            logger.warning(f"⚠️ Failed to queue auto-close for RO {ro_number}: {e}")

    return status


@router.post("/{ro_number}/initial-notice", response_model=NoticeResult)
async def send_initial_notice(
    body: InitialNoticeRequest,
    ro_number: str = Depends(valid_ro_number),
    container: Container = Depends(get_container),
):
    """Send the calibration required / not required notice if not sent yet"""
    return await container.notices.maybe_send_initial_notice(
        ro_number,
        shop_name=body.shop_name,
        vehicle=body.vehicle,
        vin=body.vin,
        needs_calibration=body.needs_calibration,
    )


@router.post("/{ro_number}/auto-close", response_model=AutoCloseResult)
async def auto_close_job(
    ro_number: str = Depends(valid_ro_number),
    container: Container = Depends(get_container),
):
    """Close the RO once every final document is in and notify the shop"""
    result = await container.notices.auto_close(ro_number)
    if not result.closed:
        logger.info(f"ℹ️ RO {ro_number} not closed: {result.reason or result.error}")
    return result
