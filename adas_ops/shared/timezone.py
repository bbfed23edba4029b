"""Timestamp helpers for audit notes"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import BUSINESS_TIMEZONE


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_timestamp(moment: Optional[datetime] = None) -> str:
    """Render a moment as shop-local time, e.g. '03/14/2025, 02:05 PM'"""
    moment = moment or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(BUSINESS_TIMEZONE)).strftime("%m/%d/%Y, %I:%M %p")
