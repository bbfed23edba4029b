"""Calibration lists as presented to shops and techs"""

import re
from typing import Optional

from ...config import MAX_LISTED_OPERATIONS
from ...schemas import CalibrationItem, RepairOperation, ScrubResult

DEFAULT_CALIBRATION_TYPE = "Static"

_ITEM_SPLIT = re.compile(r"[;,]")
_TYPE_PATTERN = re.compile(r"\((Static|Dynamic|Reset)\)", re.IGNORECASE)
_PARENTHETICAL = re.compile(r"\s*\([^)]*\)")


def parse_report_text(report_text: Optional[str]) -> list[CalibrationItem]:
    """
    Parse a free-text report line such as
    'Front Camera (Static); Blind Spot Radar (Dynamic), SAS Reset'
    """
    if not report_text:
        return []

    items = []
    for chunk in _ITEM_SPLIT.split(report_text):
        chunk = chunk.strip()
        if not chunk:
            continue
        match = _TYPE_PATTERN.search(chunk)
        cal_type = match.group(1).capitalize() if match else DEFAULT_CALIBRATION_TYPE
        name = _PARENTHETICAL.sub("", chunk).strip()
        if name:
            items.append(CalibrationItem(name=name, type=cal_type))
    return items


def build_presented_calibrations(scrub_result: ScrubResult) -> list[CalibrationItem]:
    """The report-derived list is the source of truth; free text is the fallback"""
    if scrub_result.report_calibrations:
        return [
            CalibrationItem(
                name=item.name,
                category=item.category,
                type=item.type or DEFAULT_CALIBRATION_TYPE,
            )
            for item in scrub_result.report_calibrations
        ]
    return parse_report_text(scrub_result.report_text)


def capped_operations(
    operations: list[RepairOperation], limit: int = MAX_LISTED_OPERATIONS
) -> list[RepairOperation]:
    return list(operations[:limit])
