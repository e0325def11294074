"""SKU-based matching of feed records against platform listings.

Two tiers:
- exact SKU (case-sensitive), confidence 1.0
- normalized SKU (lowercase, spaces and hyphens removed), confidence 0.9

Feed records with a blank SKU, or whose SKU hits neither tier, are unlisted.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from .models import FeedRecord, ListingRecord, MatchedPair, MatchResult

EXACT_CONFIDENCE = 1.0
NORMALIZED_CONFIDENCE = 0.9

_SKU_STRIP_RE = re.compile(r"[\s-]")


def normalize_sku(sku: Optional[str]) -> Optional[str]:
    """Lowercase and drop spaces/hyphens. None when nothing is left."""
    if not sku:
        return None
    normalized = _SKU_STRIP_RE.sub("", sku.lower())
    return normalized or None


def _is_blank(sku: Optional[str]) -> bool:
    return not sku or not sku.strip()


def match_products(
    feed_records: Iterable[FeedRecord],
    listings: Iterable[ListingRecord],
) -> MatchResult:
    exact: dict[str, ListingRecord] = {}
    normalized: dict[str, ListingRecord] = {}

    for listing in listings:
        if _is_blank(listing.sku):
            continue
        # First listing wins for duplicate keys
        exact.setdefault(listing.sku, listing)
        key = normalize_sku(listing.sku)
        if key:
            normalized.setdefault(key, listing)

    result = MatchResult()
    for record in feed_records:
        if _is_blank(record.sku):
            result.unlisted.append(record)
            continue

        listing = exact.get(record.sku)
        confidence = EXACT_CONFIDENCE
        if listing is None:
            key = normalize_sku(record.sku)
            listing = normalized.get(key) if key else None
            confidence = NORMALIZED_CONFIDENCE

        if listing is None:
            result.unlisted.append(record)
        else:
            result.matched.append(
                MatchedPair(feed_record=record, listing=listing, confidence=confidence)
            )

    return result


__all__ = [
    "EXACT_CONFIDENCE",
    "NORMALIZED_CONFIDENCE",
    "normalize_sku",
    "match_products",
]
