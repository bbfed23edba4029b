"""Shared data types for the reconciliation, routing and job state engine"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class StatusHint(str, Enum):
    """An upstream scrubber's own opinion of the reconciliation"""

    ALL_SOURCES_AGREE = "ALL_SOURCES_AGREE"
    VERIFIED = "VERIFIED"
    OK = "OK"
    ALIGNED = "ALIGNED"
    NO_CALIBRATION_NEEDED = "NO_CALIBRATION_NEEDED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    DISCREPANCY = "DISCREPANCY"
    MISMATCH = "MISMATCH"
    ERROR = "ERROR"


VERIFIED_HINTS = frozenset(
    {
        StatusHint.ALL_SOURCES_AGREE,
        StatusHint.VERIFIED,
        StatusHint.OK,
        StatusHint.ALIGNED,
        StatusHint.NO_CALIBRATION_NEEDED,
    }
)
REVIEW_HINTS = frozenset(
    {StatusHint.NEEDS_REVIEW, StatusHint.DISCREPANCY, StatusHint.MISMATCH, StatusHint.ERROR}
)


class DocumentKind(str, Enum):
    ESTIMATE = "ESTIMATE"
    PRE_SCAN = "PRE_SCAN"
    REPORT = "REPORT"
    POST_SCAN = "POST_SCAN"
    INVOICE = "INVOICE"


class RoutingAction(str, Enum):
    SENT_TO_SHOP = "SENT_TO_SHOP"
    SENT_TO_TECH = "SENT_TO_TECH"
    MANUAL_REQUIRED = "MANUAL_REQUIRED"


class NoticeKind(str, Enum):
    INITIAL = "initial"
    FINAL = "final"


class RoStatus(str, Enum):
    """Schedule sheet status values written by this engine"""

    READY = "Ready"
    NEEDS_ATTENTION = "Needs Attention"
    COMPLETED = "Completed"


# ============================================================================
# SCRUB INPUT
# ============================================================================


class _InboundModel(BaseModel):
    """Accepts both snake_case and the camelCase keys the portal sends"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CalibrationItem(_InboundModel):
    """A single ADAS calibration, from the estimate or from the report"""

    name: str
    category: Optional[str] = None
    type: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def coerce_item(cls, data: Any) -> Any:
        # Scrubbers emit bare strings or {calibration: ...} objects as well
        if isinstance(data, str):
            return {"name": data}
        if isinstance(data, dict) and not data.get("name") and data.get("calibration"):
            return {**data, "name": data["calibration"]}
        return data


class RepairOperation(_InboundModel):
    """A repair line detected in the estimate"""

    operation: str = "repair"
    component: str = "unknown"

    @model_validator(mode="before")
    @classmethod
    def coerce_operation(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"operation": data}
        if isinstance(data, dict):
            return {
                "operation": data.get("operation") or data.get("action") or "repair",
                "component": data.get("component")
                or data.get("category")
                or data.get("area")
                or "unknown",
            }
        return data


class ScrubResult(_InboundModel):
    """Estimate-derived vs report-derived calibration lists for one RO"""

    ro_number: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ro_number", "roNumber", "roPo")
    )
    shop_name: str = ""
    vehicle: str = Field(
        default="", validation_alias=AliasChoices("vehicle", "vehicleString")
    )
    vin: str = ""
    estimate_calibrations: list[CalibrationItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "estimate_calibrations", "estimateCalibrations", "requiredFromEstimate"
        ),
    )
    report_calibrations: list[CalibrationItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "report_calibrations", "reportCalibrations", "requiredFromRevv", "revvCalibrations"
        ),
    )
    status_hint: Optional[StatusHint] = Field(
        default=None,
        validation_alias=AliasChoices(
            "status_hint", "statusHint", "status", "reconciliationStatus"
        ),
    )
    needs_review: Optional[bool] = None
    needs_attention: Optional[bool] = None
    missing_calibrations: list[CalibrationItem] = Field(default_factory=list)
    status_message: Optional[str] = None
    report_text: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "report_text", "reportText", "rawRevvText", "requiredCalibrationsText"
        ),
    )
    operations: list[RepairOperation] = Field(
        default_factory=list,
        validation_alias=AliasChoices("operations", "foundOperations"),
    )

    @field_validator(
        "estimate_calibrations",
        "report_calibrations",
        "missing_calibrations",
        "operations",
        mode="before",
    )
    @classmethod
    def none_as_empty(cls, v):
        return v or []

    @field_validator("shop_name", "vehicle", "vin", mode="before")
    @classmethod
    def none_as_blank(cls, v):
        return (v or "").strip() if isinstance(v, str) or v is None else v

    @field_validator("status_hint", mode="before")
    @classmethod
    def parse_status_hint(cls, v):
        # Unknown upstream statuses carry no signal
        if v is None or isinstance(v, StatusHint):
            return v
        normalized = str(v).strip().upper()
        if normalized in StatusHint.__members__:
            return normalized
        return None


class OriginSender(_InboundModel):
    """The technician whose email triggered the scrub"""

    address: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("address", "from", "email")
    )
    message_id: Optional[str] = None


class InboundEvent(_InboundModel):
    ro_number: str = Field(validation_alias=AliasChoices("ro_number", "roNumber", "roPo"))
    scrub_result: ScrubResult
    original_sender: OriginSender = Field(default_factory=OriginSender)


# ============================================================================
# DECISIONS AND STATE
# ============================================================================


class VerificationOutcome(BaseModel):
    is_verified: bool
    reason: str


class RoutingDecision(BaseModel):
    action: RoutingAction
    recipient: Optional[str] = None
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None
    reason: Optional[str] = None


class JobState(BaseModel):
    ro_number: str
    initial_notice_sent: bool = False
    final_notice_sent: bool = False
    needs_calibration: Optional[bool] = None
    documents_present: set[DocumentKind] = Field(default_factory=set)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DocumentStatus(BaseModel):
    all_final_docs_present: bool
    present: set[DocumentKind]


class NoticeResult(BaseModel):
    sent: bool
    kind: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class AutoCloseResult(BaseModel):
    closed: bool
    notification_sent: bool
    reason: Optional[str] = None
    error: Optional[str] = None


class AuditEvent(BaseModel):
    ro_number: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actor: str = "adas-ops"
    action: str
    detail: str = ""


class AuditHistory(BaseModel):
    ro_number: str
    events: list[AuditEvent]
    notes: str


class QueuedJob(BaseModel):
    queued: bool
    job_id: Optional[str] = None


# ============================================================================
# COLLABORATOR CONTRACTS
# ============================================================================


class Attachment(BaseModel):
    filename: str
    content: Optional[bytes] = None
    mime_type: str = "application/pdf"


class OutboundMessage(BaseModel):
    to: str
    cc: Optional[str] = None
    subject: str
    html_body: str
    text_body: str
    attachments: list[Attachment] = Field(default_factory=list)


class SendResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class WriteResult(BaseModel):
    success: bool
    error: Optional[str] = None
    retryable: bool = False


class ShopContact(BaseModel):
    name: str
    email: str
    billing_cc: Optional[str] = None
    notes: Optional[str] = None


# ============================================================================
# REQUEST BODIES
# ============================================================================


class DocumentArrival(_InboundModel):
    kind: DocumentKind

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class InitialNoticeRequest(_InboundModel):
    shop_name: str
    vehicle: str = ""
    vin: str = ""
    needs_calibration: bool
