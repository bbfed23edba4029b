"""
Notice service
Initial (calibration required / not required) and final (completion) notices to shops,
plus the auto-close workflow that triggers the final notice
"""

import logging
from typing import Any, Optional

from ...email_templates import (
    RenderedEmail,
    calibration_required_notice_email,
    completion_document_links,
    completion_notice_email,
    no_calibration_required_notice_email,
)
from ...notifications.base import Notifier, deliverable_attachments
from ...schemas import (
    Attachment,
    AutoCloseResult,
    DocumentKind,
    DocumentStatus,
    NoticeKind,
    NoticeResult,
    OutboundMessage,
    RoStatus,
    SendResult,
    ShopContact,
)
from ...shared.validators import normalize_ro_number
from ..jobs.tracker import JobStateTracker
from ..records.audit import AuditTrail
from ..records.base import RecordStore
from ..routing.dispatcher import report_attachment

logger = logging.getLogger(__name__)

AUTO_CLOSE_NOTE = "Auto-closed after all final documents received."


class NoticeService:
    def __init__(
        self,
        tracker: JobStateTracker,
        notifier: Notifier,
        record_store: RecordStore,
        audit_trail: Optional[AuditTrail] = None,
    ):
        self.tracker = tracker
        self.notifier = notifier
        self.record_store = record_store
        self.audit_trail = audit_trail or AuditTrail(record_store)

    async def record_document(self, ro_number: str, kind: DocumentKind) -> DocumentStatus:
        return await self.tracker.record_document(ro_number, kind)

    async def _send_to_shop(
        self,
        ro: str,
        kind: NoticeKind,
        shop: ShopContact,
        rendered: RenderedEmail,
        attachments: list[Attachment],
    ) -> tuple[bool, Optional[SendResult]]:
        message = OutboundMessage(
            to=shop.email,
            cc=shop.billing_cc or None,
            subject=rendered.subject,
            html_body=rendered.html_body,
            text_body=rendered.text_body,
            attachments=attachments,
        )

        async def send() -> SendResult:
            return await self.notifier.send(message)

        return await self.tracker.send_once(ro, kind, send)

    # ------------------------------------------------------------------
    # Initial notice
    # ------------------------------------------------------------------

    async def maybe_send_initial_notice(
        self,
        ro_number: str,
        shop_name: str,
        vehicle: str,
        vin: str,
        needs_calibration: bool,
        report_pdf: Optional[bytes] = None,
    ) -> NoticeResult:
        """
        Tell the shop whether the RO needs ADAS calibration, once per RO

        Returns:
            NoticeResult - sent=False with reason "Already sent" when the
            initial notice (or a shop confirmation) already went out
        """
        ro = normalize_ro_number(ro_number)
        await self.tracker.set_needs_calibration(ro, needs_calibration)

        if not await self.tracker.should_send_initial_notice(ro):
            logger.info(f"⏭️ Initial notice already sent for RO {ro}")
            return NoticeResult(sent=False, reason="Already sent")

        shop = await self.record_store.lookup_shop_by_name(shop_name)
        if shop is None or not shop.email:
            logger.warning(f"⚠️ No email found for shop '{shop_name}' (RO {ro})")
            return NoticeResult(sent=False, error=f"No email found for shop: {shop_name}")

        if needs_calibration:
            kind = "calibration_required"
            rendered = calibration_required_notice_email(shop.name, ro, vehicle, vin)
            attachments = report_attachment(ro, report_pdf)
        else:
            kind = "no_calibration_required"
            rendered = no_calibration_required_notice_email(shop.name, ro, vehicle, vin)
            attachments = []

        attempted, result = await self._send_to_shop(ro, NoticeKind.INITIAL, shop, rendered, attachments)
        if not attempted:
            return NoticeResult(sent=False, reason="Already sent")
        if not result.success:
            return NoticeResult(sent=False, kind=kind, error=result.error)

        await self.audit_trail.record(
            ro,
            action="initial_notice_sent",
            detail=f"{rendered.subject} sent to {shop.email}",
        )
        logger.info(f"✅ {kind} notice sent for RO {ro} to {shop.email}")
        return NoticeResult(sent=True, kind=kind)

    # ------------------------------------------------------------------
    # Final notice
    # ------------------------------------------------------------------

    async def maybe_send_final_notice(
        self,
        ro_number: str,
        row: Optional[dict[str, Any]] = None,
        post_scan_pdf: Optional[bytes] = None,
        report_pdf: Optional[bytes] = None,
        invoice_pdf: Optional[bytes] = None,
    ) -> NoticeResult:
        ro = normalize_ro_number(ro_number)
        if not await self.tracker.should_send_final_notice(ro):
            state = await self.tracker.get_state(ro)
            reason = "Already sent" if state.final_notice_sent else "Missing documents"
            logger.info(f"⏭️ Final notice for RO {ro} not sent: {reason}")
            return NoticeResult(sent=False, reason=reason)

        if row is None:
            row = await self.record_store.get(ro)
        row = row or {}
        shop_name = row.get("shop_name") or ""

        shop = await self.record_store.lookup_shop_by_name(shop_name) if shop_name else None
        if shop is None or not shop.email:
            logger.warning(f"⚠️ No email found for shop '{shop_name}' (RO {ro})")
            return NoticeResult(sent=False, error=f"No email found for shop: {shop_name}")

        attachments = deliverable_attachments(
            [
                Attachment(filename=f"PostScan_{ro}.pdf", content=post_scan_pdf),
                *report_attachment(ro, report_pdf),
                Attachment(filename=f"Invoice_{ro}.pdf", content=invoice_pdf),
            ]
        )
        rendered = completion_notice_email(
            shop_name=shop.name,
            ro_number=ro,
            vehicle=row.get("vehicle") or "",
            vin=row.get("vin") or "",
            calibrations_performed=row.get("completed_calibrations"),
            document_links=completion_document_links(row),
            has_attachments=bool(attachments),
        )

        attempted, result = await self._send_to_shop(ro, NoticeKind.FINAL, shop, rendered, attachments)
        if not attempted:
            return NoticeResult(sent=False, reason="Already sent")
        if not result.success:
            return NoticeResult(sent=False, kind="completion", error=result.error)

        await self.audit_trail.record(
            ro, action="final_notice_sent", detail=f"Completion notice sent to {shop.email}"
        )
        logger.info(f"✅ Completion notice sent for RO {ro} to {shop.email}")
        return NoticeResult(sent=True, kind="completion")

    # ------------------------------------------------------------------
    # Auto-close
    # ------------------------------------------------------------------

    async def auto_close(
        self,
        ro_number: str,
        post_scan_pdf: Optional[bytes] = None,
        report_pdf: Optional[bytes] = None,
        invoice_pdf: Optional[bytes] = None,
    ) -> AutoCloseResult:
        """
        Close an RO once every final document is in, then notify the shop

        The close stands even if the completion notice fails; the notice
        stays eligible for a later retry.
        """
        ro = normalize_ro_number(ro_number)
        status = await self.tracker.get_document_status(ro)
        if not status.all_final_docs_present:
            logger.info(f"ℹ️ RO {ro} not ready to close - documents present: {sorted(k.value for k in status.present)}")
            return AutoCloseResult(closed=False, notification_sent=False, reason="Missing documents")

        row = await self.record_store.get(ro)
        if row is None:
            logger.warning(f"⚠️ Cannot auto-close RO {ro}: row not found")
            return AutoCloseResult(closed=False, notification_sent=False, reason="Row not found")

        write = await self.audit_trail.record(
            ro,
            action="auto_closed",
            detail=AUTO_CLOSE_NOTE,
            status=RoStatus.COMPLETED.value,
            queue_on_failure=False,
        )
        if not write.success:
            return AutoCloseResult(closed=False, notification_sent=False, error=write.error)
        logger.info(f"✅ RO {ro} auto-closed")

        notice = await self.maybe_send_final_notice(
            ro,
            row=row,
            post_scan_pdf=post_scan_pdf,
            report_pdf=report_pdf,
            invoice_pdf=invoice_pdf,
        )
        return AutoCloseResult(
            closed=True,
            notification_sent=notice.sent,
            reason=notice.reason,
            error=notice.error,
        )
