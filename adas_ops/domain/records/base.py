"""RO record store contract and the in-process implementation"""

import logging
from typing import Any, Optional, Protocol

from ...schemas import ShopContact, WriteResult
from ...shared.validators import normalize_ro_number
from .shops import match_shop

logger = logging.getLogger(__name__)

NOTE_SEPARATOR = " | "


def append_note(existing: Optional[str], note: Optional[str]) -> str:
    """Notes column is an append-only text blob joined with ' | '"""
    if not note:
        return existing or ""
    if not existing:
        return note
    return f"{existing}{NOTE_SEPARATOR}{note}"


class RecordStore(Protocol):
    """Key-value store of RO rows keyed by RO/PO number"""

    async def get(self, ro_number: str) -> Optional[dict[str, Any]]: ...

    async def upsert(self, ro_number: str, fields: dict[str, Any]) -> WriteResult:
        """Merge ``fields`` into the row; a ``notes`` value is appended, never replaced"""
        ...

    async def lookup_shop_by_name(self, name: str) -> Optional[ShopContact]: ...


class InMemoryRecordStore:
    """Dict-backed record store for tests and local runs"""

    def __init__(self, shops: Optional[list[ShopContact]] = None):
        self.rows: dict[str, dict[str, Any]] = {}
        self.shops: list[ShopContact] = list(shops or [])

    def add_shop(self, shop: ShopContact) -> None:
        self.shops.append(shop)

    async def get(self, ro_number: str) -> Optional[dict[str, Any]]:
        row = self.rows.get(normalize_ro_number(ro_number))
        return dict(row) if row else None

    async def upsert(self, ro_number: str, fields: dict[str, Any]) -> WriteResult:
        key = normalize_ro_number(ro_number)
        row = self.rows.setdefault(key, {"ro_number": key, "notes": ""})
        for name, value in fields.items():
            if value is None:
                continue
            if name == "notes":
                row["notes"] = append_note(row.get("notes"), value)
            else:
                row[name] = value
        return WriteResult(success=True)

    async def lookup_shop_by_name(self, name: str) -> Optional[ShopContact]:
        return match_shop(name, self.shops)
