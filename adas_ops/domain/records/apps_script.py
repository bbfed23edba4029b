"""
Google Apps Script record store
Reads and writes Schedule / Shops sheet rows through the Apps Script webhook
"""

import logging
import time
from typing import Any, Optional

import httpx

from ...config import GAS_TOKEN, GAS_WEBHOOK_URL, RECORD_STORE_TIMEOUT
from ...schemas import ShopContact, WriteResult
from ...shared.validators import normalize_ro_number
from .base import append_note
from .shops import match_shop

logger = logging.getLogger(__name__)

SCHEDULE_SHEET = "ADAS_Schedule"
SHOPS_CACHE_TTL_SECONDS = 300

# Row field -> tech_update payload key
TECH_UPDATE_FIELDS = {
    "status": "status_from_tech",
    "notes": "tech_notes",
    "technician": "technician",
    "required_calibrations": "calibration_required",
    "completed_calibrations": "calibration_performed",
    "completion": "completion",
}

# Sheet payload key -> row field
ROW_FIELD_ALIASES = {
    "roPo": "ro_number",
    "ro_po": "ro_number",
    "shopName": "shop_name",
    "technicianAssigned": "technician",
    "requiredCalibrations": "required_calibrations",
    "completedCalibrations": "completed_calibrations",
    "revvReportPdf": "report_pdf",
    "revv_report_pdf": "report_pdf",
    "postScanPdf": "post_scan_pdf",
    "invoicePdf": "invoice_pdf",
    "tech_notes": "notes",
    "techNotes": "notes",
}


class AppsScriptError(Exception):
    """Webhook call failed; ``retryable`` marks transport-level failures"""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


def _normalize_row(data: dict[str, Any]) -> dict[str, Any]:
    row = {}
    for key, value in data.items():
        row[ROW_FIELD_ALIASES.get(key, key)] = value
    return row


class AppsScriptRecordStore:
    """RecordStore backed by the Apps Script webhook"""

    def __init__(
        self,
        webhook_url: Optional[str] = GAS_WEBHOOK_URL,
        token: Optional[str] = GAS_TOKEN,
        timeout: float = RECORD_STORE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._shops: list[ShopContact] = []
        self._shops_loaded_at: Optional[float] = None

    async def _call(self, action: str, data: dict[str, Any]) -> dict[str, Any]:
        """
        POST an action to the webhook

        Apps Script answers a POST with a 302 to the script output, which
        has to be fetched with a GET.
        """
        if not self.webhook_url:
            raise AppsScriptError("Google Sheets webhook not configured")

        payload = {"token": self.token, "action": action, "data": data}
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self.timeout, follow_redirects=False
            ) as client:
                response = await client.post(self.webhook_url, json=payload)
                if response.status_code in (301, 302, 303) and response.headers.get("location"):
                    response = await client.get(response.headers["location"])
        except httpx.TimeoutException as e:
            logger.error(f"❌ Apps Script '{action}' timed out after {self.timeout}s")
            raise AppsScriptError(f"Timed out after {self.timeout}s", retryable=True) from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Apps Script '{action}' request failed: {e}")
            raise AppsScriptError(str(e), retryable=True) from e

        if response.status_code >= 400:
            retryable = response.status_code >= 500
            raise AppsScriptError(f"HTTP {response.status_code}", retryable=retryable)

        try:
            body = response.json()
        except ValueError as e:
            raise AppsScriptError("Webhook returned non-JSON response") from e

        if body.get("success") is False:
            logger.error(f"❌ Apps Script rejected '{action}': {body.get('error')}")
            raise AppsScriptError(body.get("error") or "Request rejected")
        return body

    async def get(self, ro_number: str) -> Optional[dict[str, Any]]:
        key = normalize_ro_number(ro_number)
        try:
            body = await self._call("lookup_ro", {"roPo": key, "sheet": SCHEDULE_SHEET})
        except AppsScriptError as e:
            logger.warning(f"⚠️ Lookup failed for RO {key}: {e}")
            return None

        if not body.get("found") or not body.get("data"):
            logger.info(f"ℹ️ RO {key} not found in sheet")
            return None
        return _normalize_row(body["data"])

    async def upsert(self, ro_number: str, fields: dict[str, Any]) -> WriteResult:
        key = normalize_ro_number(ro_number)
        data: dict[str, Any] = {"roPo": key}

        for name, value in fields.items():
            if value in (None, ""):
                continue
            target = TECH_UPDATE_FIELDS.get(name)
            if target is None:
                logger.debug(f"Ignoring unsupported field '{name}' for RO {key}")
                continue
            data[target] = value

        # The sheet replaces the notes cell, so concatenate onto the current value
        if "tech_notes" in data:
            try:
                body = await self._call("lookup_ro", {"roPo": key, "sheet": SCHEDULE_SHEET})
            except AppsScriptError as e:
                return WriteResult(success=False, error=str(e), retryable=e.retryable)
            current = _normalize_row(body.get("data") or {}) if body.get("found") else {}
            data["tech_notes"] = append_note(current.get("notes"), data["tech_notes"])

        try:
            await self._call("tech_update", data)
        except AppsScriptError as e:
            return WriteResult(success=False, error=str(e), retryable=e.retryable)

        logger.info(f"✅ Updated sheet row for RO {key}")
        return WriteResult(success=True)

    async def _load_shops(self) -> list[ShopContact]:
        fresh = (
            self._shops_loaded_at is not None
            and time.monotonic() - self._shops_loaded_at < SHOPS_CACHE_TTL_SECONDS
        )
        if fresh:
            return self._shops

        body = await self._call("get_all_shops", {})
        shops = []
        for entry in body.get("shops") or []:
            if not entry.get("name") or not entry.get("email"):
                continue
            shops.append(
                ShopContact(
                    name=str(entry["name"]),
                    email=str(entry["email"]),
                    billing_cc=entry.get("billing_cc") or None,
                    notes=entry.get("notes") or None,
                )
            )
        self._shops = shops
        self._shops_loaded_at = time.monotonic()
        logger.info(f"🏪 Loaded {len(shops)} shops from Shops tab")
        return shops

    async def lookup_shop_by_name(self, name: str) -> Optional[ShopContact]:
        try:
            shops = await self._load_shops()
        except AppsScriptError as e:
            logger.error(f"❌ Could not load Shops tab: {e}")
            return None
        return match_shop(name, shops)
