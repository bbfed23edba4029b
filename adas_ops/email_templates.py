"""
MJML Email Templates
Shop confirmations, tech review requests and lifecycle notices
"""

import io
import logging
from dataclasses import dataclass
from html import escape
from typing import Optional

from mjml import mjml_to_html

from .config import OPS_PHONE_LINE
from .schemas import CalibrationItem, RepairOperation

logger = logging.getLogger(__name__)

THEME = {
    "primary": "#1a365d",
    "background": "#f7fafc",
    "text_primary": "#1a202c",
    "text_secondary": "#2d3748",
    "text_muted": "#718096",
    "border": "#e2e8f0",
    "success": "#38a169",
    "danger": "#c53030",
}

PREREQUISITES = [
    "4-wheel alignment within OEM spec",
    "Fuel tank at least 1/2 full",
    "Tires at proper pressure",
    "No DTC codes present",
    "Battery fully charged",
]

RULE = "═" * 48


@dataclass
class RenderedEmail:
    subject: str
    html_body: str
    text_body: str


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(io.StringIO(mjml_content))
        # mjml_to_html returns a dict with 'html' and 'errors' keys
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


def get_base_template(title: str, preview_text: str, content_sections: str, accent: str) -> str:
    """Base MJML template wrapper for all emails"""
    return f"""
    <mjml>
      <mj-head>
        <mj-title>{escape(title)}</mj-title>
        <mj-preview>{escape(preview_text)}</mj-preview>
        <mj-attributes>
          <mj-all font-family="Arial, sans-serif" />
          <mj-text font-size="15px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="{accent}" padding="20px">
          <mj-column>
            <mj-text align="center" font-size="20px" font-weight="600" color="#ffffff">
              {title}
            </mj-text>
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="24px 32px">
          <mj-column>
            {content_sections}
          </mj-column>
        </mj-section>

        <mj-section padding="16px 20px">
          <mj-column>
            <mj-divider border-color="{THEME['border']}" border-width="1px" />
            <mj-text align="center" font-size="12px" color="{THEME['text_muted']}">
              Questions? Call the ADAS F1RST Ops line at {OPS_PHONE_LINE}<br/>
              This is an automated message from the ADAS F1RST operations system.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _details_section(ro_number: str, vehicle: str, vin: str, shop_name: Optional[str] = None) -> str:
    shop_line = f"<strong>Shop:</strong> {escape(shop_name)}<br/>" if shop_name else ""
    return f"""
    <mj-text padding="12px 16px" container-background-color="{THEME['background']}">
      <strong>RO/PO:</strong> {escape(ro_number)}<br/>
      <strong>Vehicle:</strong> {escape(vehicle or 'Unknown')}<br/>
      <strong>VIN:</strong> {escape(vin or 'Unknown')}<br/>
      {shop_line}
    </mj-text>
    """


def _details_text(ro_number: str, vehicle: str, vin: str, shop_name: Optional[str] = None) -> str:
    lines = [f"RO/PO: {ro_number}", f"Vehicle: {vehicle or 'Unknown'}", f"VIN: {vin or 'Unknown'}"]
    if shop_name:
        lines.append(f"Shop: {shop_name}")
    return "\n".join(lines)


def _html_list(items: list[str], empty: str) -> str:
    if not items:
        return f'<li style="color: {THEME["text_muted"]};">{escape(empty)}</li>'
    return "".join(f"<li>{escape(item)}</li>" for item in items)


def _text_list(items: list[str], empty: str, bullet: str = "-") -> str:
    if not items:
        return f"  {empty}"
    return "\n".join(f"  {bullet} {item}" for item in items)


def _calibration_labels(calibrations: list[CalibrationItem]) -> list[str]:
    return [f"{c.name} ({c.type or 'Static'})" for c in calibrations]


# ============================================================================
# SHOP: CALIBRATION CONFIRMATION (verified scrub)
# ============================================================================


def calibration_confirmation_email(
    shop_name: str,
    ro_number: str,
    vehicle: str,
    vin: str,
    calibrations: list[CalibrationItem],
) -> RenderedEmail:
    required = bool(calibrations)
    labels = _calibration_labels(calibrations)
    if required:
        subject = f"RO {ro_number} - Calibration Required - {vehicle}".rstrip(" -")
        status_text = f"YES - {len(calibrations)} ADAS calibration(s) required"
    else:
        subject = f"RO {ro_number} - No Calibration Needed - {vehicle}".rstrip(" -")
        status_text = "NO - No ADAS calibrations required for this repair"

    if required:
        body_html = f"""
        <mj-text><strong>Required Calibrations:</strong></mj-text>
        <mj-text><ul>{_html_list(labels, '')}</ul></mj-text>
        <mj-text><strong>Please ensure the vehicle meets these prerequisites before calibration:</strong></mj-text>
        <mj-text><ul>{_html_list(PREREQUISITES, '')}</ul></mj-text>
        <mj-text>The attached report contains detailed calibration requirements and OEM procedures.</mj-text>
        """
        body_text = (
            f"Required Calibrations:\n{_text_list(labels, '')}\n\n"
            f"Please ensure the vehicle meets the following prerequisites before calibration:\n"
            f"{_text_list(PREREQUISITES, '')}\n\n"
            f"The attached report contains detailed calibration requirements and OEM procedures."
        )
    else:
        body_html = "<mj-text>Based on the repair operations in this estimate, no ADAS sensor calibrations are needed.</mj-text>"
        body_text = "Based on the repair operations in this estimate, no ADAS sensor calibrations are needed."

    accent = THEME["danger"] if required else THEME["success"]
    content = f"""
    <mj-text>Hello {escape(shop_name)},</mj-text>
    <mj-text>We have received and reviewed the estimate for <strong>RO {escape(ro_number)}</strong>.</mj-text>
    {_details_section(ro_number, vehicle, vin)}
    <mj-text font-weight="600" color="{accent}">CALIBRATION REQUIRED: {escape(status_text)}</mj-text>
    {body_html}
    """
    html_body = compile_mjml_to_html(
        get_base_template("Calibration Requirement Confirmation", status_text, content, accent)
    )

    text_body = f"""Hello {shop_name},

We have received and reviewed the estimate for RO {ro_number}.

{RULE}
CALIBRATION REQUIREMENT CONFIRMATION
{RULE}

{_details_text(ro_number, vehicle, vin)}

CALIBRATION REQUIRED: {status_text}

{body_text}

Questions? Call the ADAS F1RST Ops line at {OPS_PHONE_LINE}.

Best regards,
ADAS F1RST Team"""

    return RenderedEmail(subject=subject, html_body=html_body, text_body=text_body)


# ============================================================================
# TECH: REVIEW REQUEST (discrepancy)
# ============================================================================


def tech_review_email(
    ro_number: str,
    shop_name: str,
    vehicle: str,
    vin: str,
    reason: str,
    estimate_calibrations: list[CalibrationItem],
    report_calibrations: list[CalibrationItem],
    operations: list[RepairOperation],
) -> RenderedEmail:
    """Operations must already be truncated by the caller"""
    estimate_names = [c.name for c in estimate_calibrations]
    report_names = [c.name for c in report_calibrations]
    operation_labels = [f"{op.operation} [{op.component}]" for op in operations]
    steps = [
        "Review the estimate operations vs the calibration report",
        "Update the report if needed (re-run the VIN lookup)",
        "Reply to this email with the corrected report attached",
        "The corrected report will be re-verified and the shop confirmation sent automatically",
    ]

    content = f"""
    <mj-text>Hi,</mj-text>
    <mj-text>I've reviewed the estimate for <strong>RO {escape(ro_number)}</strong>, but found a discrepancy that needs your attention before confirmation can be sent to the shop.</mj-text>
    <mj-text padding="12px 16px" container-background-color="#fff5f5" color="{THEME['danger']}">
      <strong>DISCREPANCY FOUND:</strong> {escape(reason)}
    </mj-text>
    {_details_section(ro_number, vehicle, vin, shop_name or "Unknown")}
    <mj-text><strong>Estimate analysis found:</strong><ul>{_html_list(estimate_names, '(No calibrations detected from estimate)')}</ul></mj-text>
    <mj-text><strong>Calibration report shows:</strong><ul>{_html_list(report_names, '(No calibrations in report)')}</ul></mj-text>
    <mj-text><strong>Operations detected in the estimate:</strong><ul>{_html_list(operation_labels, 'No operations detected')}</ul></mj-text>
    <mj-text><strong>What to do:</strong><ol>{''.join(f'<li>{escape(s)}</li>' for s in steps)}</ol></mj-text>
    """
    html_body = compile_mjml_to_html(
        get_base_template("Calibration Report Review Required", reason, content, THEME["danger"])
    )

    numbered_steps = "\n".join(f"{i}. {s}" for i, s in enumerate(steps, start=1))
    text_body = f"""Hi,

I've reviewed the estimate for RO {ro_number}, but found a discrepancy that needs your attention before confirmation can be sent to the shop.

{RULE}
CALIBRATION REPORT REVIEW REQUIRED
{RULE}

{_details_text(ro_number, vehicle, vin, shop_name or "Unknown")}

DISCREPANCY: {reason}

Estimate analysis found:
{_text_list(estimate_names, '(No calibrations detected from estimate)', bullet='•')}

Calibration report shows:
{_text_list(report_names, '(No calibrations in report)', bullet='•')}

Operations detected in the estimate:
{_text_list(operation_labels, '(No operations detected)')}

WHAT TO DO:
{numbered_steps}

Thanks,
ADAS Assistant"""

    return RenderedEmail(
        subject=f"⚠️ Calibration Report Review Needed - RO {ro_number}",
        html_body=html_body,
        text_body=text_body,
    )


# ============================================================================
# SHOP: INITIAL NOTICES
# ============================================================================


def calibration_required_notice_email(
    shop_name: str, ro_number: str, vehicle: str, vin: str
) -> RenderedEmail:
    next_step = (
        "To schedule or confirm this calibration, please call the ADAS F1RST Ops "
        f"assistant line at {OPS_PHONE_LINE}."
    )
    content = f"""
    <mj-text>Hello {escape(shop_name)},</mj-text>
    <mj-text>Our review of <strong>RO {escape(ro_number)}</strong> shows that ADAS calibration <strong>is required</strong> for this repair.</mj-text>
    {_details_section(ro_number, vehicle, vin)}
    <mj-text><strong>Next Step:</strong> {escape(next_step)}</mj-text>
    """
    html_body = compile_mjml_to_html(
        get_base_template("ADAS Calibration Required", f"RO {ro_number}", content, THEME["danger"])
    )
    text_body = f"""Hello {shop_name},

Our review of RO {ro_number} shows that ADAS calibration IS REQUIRED for this repair.

{_details_text(ro_number, vehicle, vin)}

NEXT STEP: {next_step}

Best regards,
ADAS F1RST Team"""
    return RenderedEmail(
        subject=f"RO {ro_number} – ADAS Calibration Required",
        html_body=html_body,
        text_body=text_body,
    )


def no_calibration_required_notice_email(
    shop_name: str, ro_number: str, vehicle: str, vin: str
) -> RenderedEmail:
    note = (
        "If you believe this is incorrect, or if there are additional repairs not reflected "
        "in the estimate that may require ADAS calibration, please call the ADAS F1RST Ops "
        f"assistant line at {OPS_PHONE_LINE} for clarification."
    )
    content = f"""
    <mj-text>Hello {escape(shop_name)},</mj-text>
    <mj-text>Our review of <strong>RO {escape(ro_number)}</strong> shows that <strong>no ADAS calibration is required</strong> for this repair.</mj-text>
    {_details_section(ro_number, vehicle, vin)}
    <mj-text><strong>Note:</strong> {escape(note)}</mj-text>
    """
    html_body = compile_mjml_to_html(
        get_base_template("No ADAS Calibration Required", f"RO {ro_number}", content, THEME["success"])
    )
    text_body = f"""Hello {shop_name},

Our review of RO {ro_number} shows that NO ADAS calibration is required for this repair.

{_details_text(ro_number, vehicle, vin)}

NOTE: {note}

Best regards,
ADAS F1RST Team"""
    return RenderedEmail(
        subject=f"RO {ro_number} – No ADAS Calibration Required",
        html_body=html_body,
        text_body=text_body,
    )


# ============================================================================
# SHOP: COMPLETION NOTICE
# ============================================================================


# Row link field -> label shown in the completion notice
COMPLETION_DOCUMENT_LINKS = (
    ("post_scan_pdf", "Post-Scan Report"),
    ("report_pdf", "RevvADAS Report"),
    ("invoice_pdf", "Invoice"),
)


def completion_document_links(row: dict) -> list[tuple[str, str]]:
    """(label, url) pairs for the document links present on a schedule row"""
    links = []
    for field, label in COMPLETION_DOCUMENT_LINKS:
        url = str(row.get(field) or "").strip()
        if url.startswith(("http://", "https://")):
            links.append((label, url))
    return links


def completion_notice_email(
    shop_name: str,
    ro_number: str,
    vehicle: str,
    vin: str,
    calibrations_performed: Optional[str],
    document_links: Optional[list[tuple[str, str]]] = None,
    has_attachments: bool = False,
) -> RenderedEmail:
    """
    Final notice once every document is in

    Only claims attachments when the message actually carries one; the row's
    document links are listed either way.
    """
    document_links = document_links or []
    if has_attachments:
        performed = calibrations_performed or "See attached calibration report"
        documents = "The completion documents are attached"
        documents += " and available via the links below." if document_links else "."
    else:
        performed = calibrations_performed or "See calibration report"
        if document_links:
            documents = "The completion documents are available via the links below."
        else:
            documents = f"Copies of the completion documents are available on request at {OPS_PHONE_LINE}."

    links_html = ""
    if document_links:
        anchors = "<br/>".join(
            f'<a href="{escape(url, quote=True)}">{escape(label)}</a>' for label, url in document_links
        )
        links_html = f"<mj-text><strong>Documents:</strong><br/>{anchors}</mj-text>"
    links_text = "".join(f"\n- {label}: {url}" for label, url in document_links)

    content = f"""
    <mj-text>Hello {escape(shop_name)},</mj-text>
    <mj-text>ADAS calibration for <strong>RO {escape(ro_number)}</strong> is complete. {escape(documents)}</mj-text>
    {links_html}
    {_details_section(ro_number, vehicle, vin)}
    <mj-text><strong>Calibrations performed:</strong> {escape(performed)}</mj-text>
    <mj-text><strong>Questions?</strong> If you need to reschedule, add additional calibrations, or have any questions, please call {OPS_PHONE_LINE}.</mj-text>
    """
    html_body = compile_mjml_to_html(
        get_base_template("ADAS Calibration Completed", f"RO {ro_number}", content, THEME["primary"])
    )
    text_body = f"""Hello {shop_name},

ADAS calibration for RO {ro_number} is complete. {documents}{links_text}

{_details_text(ro_number, vehicle, vin)}

Calibrations performed: {performed}

QUESTIONS? If you need to reschedule, add additional calibrations, or have any questions, please call {OPS_PHONE_LINE}.

Best regards,
ADAS F1RST Team"""
    subject = f"RO {ro_number} – ADAS Calibration Completed"
    if has_attachments:
        subject += " (Documents Attached)"
    return RenderedEmail(subject=subject, html_body=html_body, text_body=text_body)
