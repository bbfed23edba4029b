"""Shop directory matching - resolves a free-text shop name to a Shops tab entry"""

import logging
from typing import Iterable, Optional

from ...schemas import ShopContact
from ...shared.validators import normalize_shop_name

logger = logging.getLogger(__name__)

# Substring matches shorter than this are too ambiguous ("A", "Jo")
MIN_PARTIAL_MATCH_LENGTH = 3


def match_shop(shop_name: Optional[str], shops: Iterable[ShopContact]) -> Optional[ShopContact]:
    """
    Find the shop whose name best matches ``shop_name``

    Exact match on the normalized name wins. Otherwise the first shop where
    either name contains the other is returned, as long as the shorter of
    the two is at least three characters long.
    """
    wanted = normalize_shop_name(shop_name)
    if not wanted:
        return None

    candidates = [(normalize_shop_name(shop.name), shop) for shop in shops]

    for normalized, shop in candidates:
        if normalized and normalized == wanted:
            return shop

    for normalized, shop in candidates:
        if not normalized:
            continue
        if min(len(normalized), len(wanted)) < MIN_PARTIAL_MATCH_LENGTH:
            continue
        if wanted in normalized or normalized in wanted:
            logger.debug(f"🔍 Partial shop match: '{shop_name}' -> '{shop.name}'")
            return shop

    return None
