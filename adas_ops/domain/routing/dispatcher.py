"""
Routing dispatcher
Sends a reconciled scrub either to the shop (confirmation) or back to the tech (review)
"""

import logging
from email.utils import parseaddr
from typing import Optional

from ...config import STRICT_VERIFICATION
from ...email_templates import calibration_confirmation_email, tech_review_email
from ...notifications.base import Notifier
from ...schemas import (
    Attachment,
    NoticeKind,
    OriginSender,
    OutboundMessage,
    RoStatus,
    RoutingAction,
    RoutingDecision,
    ScrubResult,
    SendResult,
)
from ...shared.validators import normalize_ro_number, validate_email
from ..jobs.tracker import JobStateTracker
from ..records.audit import AuditTrail
from ..records.base import RecordStore
from ..verification.engine import classify
from .calibrations import build_presented_calibrations, capped_operations

logger = logging.getLogger(__name__)


def sender_address(origin_sender: Optional[OriginSender]) -> Optional[str]:
    """Bare address of the triggering tech, or None when absent or malformed"""
    if origin_sender is None or not origin_sender.address:
        return None
    try:
        return validate_email(parseaddr(origin_sender.address)[1])
    except ValueError:
        logger.warning(f"⚠️ Ignoring malformed sender address: {origin_sender.address}")
        return None


def report_attachment(ro_number: str, report_pdf: Optional[bytes]) -> list[Attachment]:
    if not report_pdf:
        return []
    return [Attachment(filename=f"RevvADAS_Report_{ro_number}.pdf", content=report_pdf)]


class RoutingDispatcher:
    """
    Routes one scrub result per call

    The notifier is invoked at most once per ``route()``. Shop confirmations
    share the initial-notice guard with NoticeService, so an RO is confirmed
    to its shop only once no matter which path gets there first.
    """

    def __init__(
        self,
        tracker: JobStateTracker,
        notifier: Notifier,
        record_store: RecordStore,
        audit_trail: Optional[AuditTrail] = None,
        strict: bool = STRICT_VERIFICATION,
    ):
        self.tracker = tracker
        self.notifier = notifier
        self.record_store = record_store
        self.audit_trail = audit_trail or AuditTrail(record_store)
        self.strict = strict

    async def route(
        self,
        scrub_result: ScrubResult,
        origin_sender: Optional[OriginSender] = None,
        ro_number: Optional[str] = None,
        report_pdf: Optional[bytes] = None,
    ) -> RoutingDecision:
        ro = normalize_ro_number(ro_number or scrub_result.ro_number or "")
        if not ro:
            logger.error("❌ Scrub result has no RO number - cannot route")
            return RoutingDecision(
                action=RoutingAction.MANUAL_REQUIRED,
                success=False,
                error="RO number not found",
            )

        outcome = classify(scrub_result, strict=self.strict)
        logger.info(
            f"🔎 RO {ro}: {'VERIFIED' if outcome.is_verified else 'NEEDS_REVIEW'} - {outcome.reason}"
        )

        if outcome.is_verified:
            return await self._route_verified(ro, scrub_result, outcome.reason, report_pdf)
        return await self._route_review(ro, scrub_result, origin_sender, outcome.reason)

    # ------------------------------------------------------------------
    # Verified: confirm to shop
    # ------------------------------------------------------------------

    async def _route_verified(
        self,
        ro: str,
        scrub_result: ScrubResult,
        reason: str,
        report_pdf: Optional[bytes],
    ) -> RoutingDecision:
        shop_name = scrub_result.shop_name
        if not shop_name:
            logger.error(f"❌ RO {ro}: No shop name found in scrub result")
            await self.audit_trail.record(
                ro,
                action="manual_required",
                detail="Verified scrub has no shop name - manual routing required",
                status=RoStatus.NEEDS_ATTENTION.value,
            )
            return RoutingDecision(
                action=RoutingAction.MANUAL_REQUIRED,
                success=False,
                error="shop name not found",
                reason=reason,
            )

        shop = await self.record_store.lookup_shop_by_name(shop_name)
        if shop is None or not shop.email:
            logger.error(f"❌ RO {ro}: Shop '{shop_name}' not found in shop directory")
            await self.audit_trail.record(
                ro,
                action="manual_required",
                detail=f"Shop '{shop_name}' not found in shop directory - manual routing required",
                status=RoStatus.NEEDS_ATTENTION.value,
            )
            return RoutingDecision(
                action=RoutingAction.MANUAL_REQUIRED,
                success=False,
                error=f"No email found for shop: {shop_name}",
                reason=reason,
            )

        calibrations = build_presented_calibrations(scrub_result)
        rendered = calibration_confirmation_email(
            shop_name=shop.name,
            ro_number=ro,
            vehicle=scrub_result.vehicle,
            vin=scrub_result.vin,
            calibrations=calibrations,
        )
        message = OutboundMessage(
            to=shop.email,
            cc=shop.billing_cc or None,
            subject=rendered.subject,
            html_body=rendered.html_body,
            text_body=rendered.text_body,
            attachments=report_attachment(ro, report_pdf),
        )

        async def send() -> SendResult:
            return await self.notifier.send(message)

        attempted, result = await self.tracker.send_once(ro, NoticeKind.INITIAL, send)
        if not attempted:
            logger.info(f"⏭️ RO {ro}: shop already notified, confirmation not re-sent")
            return RoutingDecision(
                action=RoutingAction.SENT_TO_SHOP,
                recipient=shop.email,
                success=True,
                reason="already sent",
            )

        if not result.success:
            logger.error(f"❌ RO {ro}: Failed to send confirmation to {shop.email}: {result.error}")
            return RoutingDecision(
                action=RoutingAction.SENT_TO_SHOP,
                recipient=shop.email,
                success=False,
                error=result.error,
                reason=reason,
            )

        await self.tracker.set_needs_calibration(ro, bool(calibrations))
        await self.audit_trail.record(
            ro,
            action="shop_confirmation_sent",
            detail=f"Confirmation sent to {shop.email}",
            status=RoStatus.READY.value,
        )
        logger.info(f"✅ RO {ro}: Confirmation sent to {shop.email}")
        return RoutingDecision(
            action=RoutingAction.SENT_TO_SHOP,
            recipient=shop.email,
            success=True,
            message_id=result.message_id,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Not verified: ask the tech for a corrected report
    # ------------------------------------------------------------------

    async def _route_review(
        self,
        ro: str,
        scrub_result: ScrubResult,
        origin_sender: Optional[OriginSender],
        reason: str,
    ) -> RoutingDecision:
        tech_address = sender_address(origin_sender)
        if not tech_address:
            logger.error(f"❌ RO {ro}: Discrepancy found but no sender address to request review")
            await self.audit_trail.record(
                ro,
                action="manual_required",
                detail=f"Discrepancy needs review ({reason}) - no technician address on file",
                status=RoStatus.NEEDS_ATTENTION.value,
            )
            return RoutingDecision(
                action=RoutingAction.MANUAL_REQUIRED,
                success=False,
                error="original sender address not found",
                reason=reason,
            )

        rendered = tech_review_email(
            ro_number=ro,
            shop_name=scrub_result.shop_name,
            vehicle=scrub_result.vehicle,
            vin=scrub_result.vin,
            reason=reason,
            estimate_calibrations=scrub_result.estimate_calibrations,
            report_calibrations=scrub_result.report_calibrations,
            operations=capped_operations(scrub_result.operations),
        )
        result = await self.notifier.send(
            OutboundMessage(
                to=tech_address,
                subject=rendered.subject,
                html_body=rendered.html_body,
                text_body=rendered.text_body,
            )
        )

        if not result.success:
            logger.error(f"❌ RO {ro}: Failed to send review request to {tech_address}: {result.error}")
            return RoutingDecision(
                action=RoutingAction.SENT_TO_TECH,
                recipient=tech_address,
                success=False,
                error=result.error,
                reason=reason,
            )

        await self.audit_trail.record(
            ro,
            action="tech_review_requested",
            detail=f"Review request sent to {tech_address} - awaiting corrected report",
            status=RoStatus.NEEDS_ATTENTION.value,
        )
        logger.info(f"📧 RO {ro}: Review request sent to {tech_address}")
        return RoutingDecision(
            action=RoutingAction.SENT_TO_TECH,
            recipient=tech_address,
            success=True,
            message_id=result.message_id,
            reason=reason,
        )
