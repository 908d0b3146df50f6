"""
Content fingerprint for listings whose source exposes no stable id.
"""

from __future__ import annotations

import hashlib

PRICE_BUCKET_USD = 10


def _clean(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def price_bucket(price: float | None) -> str:
    """
    Price rounded to the nearest bucket. Python's round-half-even is used,
    so 805 lands in the same bucket as 803.
    """

    if price is None:
        return ""
    return str(int(round(float(price) / PRICE_BUCKET_USD)) * PRICE_BUCKET_USD)


def fingerprint(
    title: str | None,
    district: str | None,
    bedrooms: int | None,
    property_type: str | None,
    price: float | None,
    first_image_url: str | None,
) -> str:
    """
    SHA-256 hex digest over the normalized listing attributes.
    """

    parts = (
        _clean(title),
        _clean(district),
        "" if bedrooms is None else str(int(bedrooms)),
        _clean(property_type),
        price_bucket(price),
        _clean(first_image_url),
    )
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
