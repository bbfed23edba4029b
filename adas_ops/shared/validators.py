"""Shared validation utilities"""

import re
from typing import Optional

RO_NUMBER_PATTERN = re.compile(r"^\d{4,8}$")


def normalize_ro_number(ro_number) -> str:
    """Normalize an RO/PO number into the key used by every store"""
    return str(ro_number or "").strip().upper()


def validate_ro_number(ro_number) -> str:
    """
    Validate an RO/PO number.

    Args:
        ro_number: RO/PO number as received (str or int)

    Returns:
        Normalized RO number

    Raises:
        ValueError: If the RO number is not 4-8 digits
    """
    normalized = normalize_ro_number(ro_number)
    if not RO_NUMBER_PATTERN.match(normalized):
        raise ValueError(f"Invalid RO number '{ro_number}': expected 4-8 digits")
    return normalized


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()
    pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(pattern, email):
        raise ValueError("Invalid email format")

    return email


def normalize_shop_name(name: Optional[str]) -> str:
    """Lowercase, drop punctuation and collapse whitespace for shop matching"""
    if not name:
        return ""
    cleaned = re.sub(r"[^a-z0-9\s]", " ", name.lower())
    return re.sub(r"\s+", " ", cleaned).strip()
