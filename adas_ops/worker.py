"""
ARQ Background Worker
Routes scrub results, auto-closes ROs and replays failed record writes

The API queues ``route_scrub_result_task`` and ``auto_close_task`` through
``background.ArqJobQueue``; a mail listener can queue them the same way.
"""

import logging
import os

from arq.cron import cron

from .background import get_redis_settings
from .container import build_container
from .schemas import InboundEvent

logger = logging.getLogger(__name__)


async def startup(ctx):
    ctx["container"] = build_container(background_jobs=False)
    logger.info("🚀 ARQ Worker: services ready")


async def shutdown(ctx):
    container = ctx.get("container")
    if container:
        pending = await container.write_queue.count()
        if pending:
            logger.warning(f"⚠️ ARQ Worker stopping with {pending} queued write(s)")


async def route_scrub_result_task(ctx, event: dict):
    """
    Background task to route one scrub result

    Args:
        ctx: ARQ context
        event: InboundEvent payload (camelCase or snake_case keys)

    Returns:
        RoutingDecision as a dict
    """
    inbound = InboundEvent.model_validate(event)
    logger.info(f"🚀 ARQ Worker: routing RO {inbound.ro_number} (job {ctx.get('job_id', 'unknown')})")
    decision = await ctx["container"].dispatcher.route(
        inbound.scrub_result, inbound.original_sender, ro_number=inbound.ro_number
    )
    return decision.model_dump(mode="json")


async def auto_close_task(ctx, ro_number: str):
    logger.info(f"🚀 ARQ Worker: auto-close check for RO {ro_number}")
    result = await ctx["container"].notices.auto_close(ro_number)
    return result.model_dump(mode="json")


async def flush_pending_writes_task(ctx):
    """Replay record-store writes that failed after a notification went out"""
    container = ctx["container"]
    if not await container.write_queue.count():
        return {"replayed": 0, "requeued": 0, "dropped": 0}

    summary = await container.write_queue.flush(container.record_store)
    logger.info(
        f"🔁 Pending writes: {summary.replayed} replayed, {summary.requeued} requeued, "
        f"{len(summary.dropped)} dropped"
    )
    return {
        "replayed": summary.replayed,
        "requeued": summary.requeued,
        "dropped": len(summary.dropped),
    }


class WorkerSettings:
    """ARQ Worker Settings"""

    functions = [route_scrub_result_task, auto_close_task, flush_pending_writes_task]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()

    max_jobs = int(os.getenv("ARQ_MAX_JOBS", "20"))
    job_timeout = int(os.getenv("ARQ_JOB_TIMEOUT", "120"))
    keep_result = int(os.getenv("ARQ_KEEP_RESULT", "3600"))
    max_tries = 3

    cron_jobs = [
        cron(flush_pending_writes_task, minute={0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55}),
    ]
