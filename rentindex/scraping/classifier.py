"""
Rule-based residential property type classifier.

Keyword groups are checked most-specific first, so "Penthouse serviced
apartment" is a PENTHOUSE. Non-residential listings are rejected. Strong
phrases such as "warehouse for rent" reject outright. Weaker words only
reject when no residential keyword remains once they are removed.
"""

from __future__ import annotations

import re
from functools import lru_cache

from rentindex.domain.listings import Classification, PropertyType
from rentindex.scraping.url import url_slug

HEADLINE_CHARS = 250

RESIDENTIAL_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (PropertyType.PENTHOUSE, ("penthouse",)),
    (PropertyType.SERVICED_APARTMENT, ("serviced apartment", "service apartment")),
    (PropertyType.TOWNHOUSE, ("townhouse", "town house", "link house")),
    (PropertyType.VILLA, ("twin villa", "villa")),
    (PropertyType.HOUSE, ("house", "borey", "detached")),
    (PropertyType.CONDO, ("condominium", "condo")),
    (PropertyType.APARTMENT, ("studio apartment", "apartment", "flat", "studio")),
)

# Index 0 is the most specific type.
_SPECIFICITY = {
    PropertyType.PENTHOUSE: 0,
    PropertyType.SERVICED_APARTMENT: 1,
    PropertyType.TOWNHOUSE: 2,
    PropertyType.VILLA: 3,
    PropertyType.HOUSE: 4,
    PropertyType.CONDO: 5,
    PropertyType.APARTMENT: 6,
}

NON_RESIDENTIAL_KEYWORDS = (
    "shophouse",
    "shop house",
    "shop-house",
    "warehouse",
    "factory",
    "workshop",
    "office space",
    "office for rent",
    "office for sale",
    "co-working",
    "commercial space",
    "commercial property",
    "commercial building",
    "commercial for",
    "retail space",
    "retail shop",
    "retail for",
    "restaurant for",
    "hotel for",
    "guesthouse",
    "guest house",
    "flat land",
    "land for",
    "plot for",
    "lot for",
)

STRONG_NON_RESIDENTIAL_PHRASES = (
    "warehouse for",
    "warehouse space",
    "factory for",
    "factory space",
    "workshop for",
    "workshop space",
    "office for rent",
    "office for sale",
    "office space for",
    "commercial property for",
    "commercial space for",
    "commercial building for",
    "retail shop for",
    "retail space for",
    "shophouse for",
    "shop house for",
    "restaurant for rent",
    "restaurant for sale",
    "hotel for rent",
    "hotel for sale",
    "guesthouse for",
    "guest house for",
    "land for rent",
    "land for sale",
    "plot for rent",
    "lot for rent",
)


def _normalize(text: str | None) -> str:
    return " ".join((text or "").lower().split())


@lru_cache(maxsize=None)
def _keyword_re(keyword: str) -> re.Pattern[str]:
    # Whole words only, so "house" never matches inside "warehouse". A plural "s" is allowed.
    return re.compile(rf"\b{re.escape(keyword)}s?\b")


def contains_keyword(text: str, keyword: str) -> bool:
    return _keyword_re(keyword).search(text) is not None


def strip_non_residential(text: str) -> str:
    """
    ``text`` with every non-residential keyword blanked out, longest first.
    """

    stripped = _normalize(text)
    for keyword in sorted(NON_RESIDENTIAL_KEYWORDS, key=len, reverse=True):
        stripped = _keyword_re(keyword).sub(" ", stripped)
    return _normalize(stripped)


def match_property_type(text: str) -> tuple[str, str] | None:
    """
    Most specific (property_type, keyword) found in ``text``, if any.
    """

    normalized = _normalize(text)
    if not normalized:
        return None
    for property_type, keywords in RESIDENTIAL_KEYWORDS:
        for keyword in keywords:
            if contains_keyword(normalized, keyword):
                return property_type, keyword
    return None


def strong_non_residential_phrase(text: str) -> str | None:
    normalized = _normalize(text)
    for phrase in STRONG_NON_RESIDENTIAL_PHRASES:
        if contains_keyword(normalized, phrase):
            return phrase
    return None


def weak_non_residential_keyword(text: str) -> str | None:
    """
    First non-residential keyword in ``text`` not outweighed by a
    residential keyword elsewhere in the text.
    """

    normalized = _normalize(text)
    found = [keyword for keyword in NON_RESIDENTIAL_KEYWORDS if contains_keyword(normalized, keyword)]
    if not found:
        return None
    if match_property_type(strip_non_residential(normalized)) is not None:
        return None
    return found[0]


def headline(description: str | None) -> str:
    return _normalize(description)[:HEADLINE_CHARS]


def classify(title: str, description: str | None = None, url: str | None = None) -> Classification:
    """
    Decide a listing's residential property type or reject it.

    Only the title and the description headline are inspected; full
    descriptions mention nearby shops and offices too often to be trusted.
    A more specific type in the headline overrides the title's type, and the
    URL slug is consulted only when neither carries a keyword. Types are
    matched after non-residential keywords are removed, so "apartment above
    the old warehouse" is an APARTMENT.
    """

    title_text = _normalize(title)
    headline_text = headline(description)

    for signal, text in (("title", title_text), ("headline", headline_text)):
        phrase = strong_non_residential_phrase(text)
        if phrase:
            return Classification(property_type=None, rejected=True, matched_keyword=phrase, signal=signal)

    weak = weak_non_residential_keyword(f"{title_text} {headline_text}")
    if weak:
        return Classification(property_type=None, rejected=True, matched_keyword=weak, signal="title")

    title_match = match_property_type(strip_non_residential(title_text))
    headline_match = match_property_type(strip_non_residential(headline_text))
    if headline_match and (
        title_match is None or _SPECIFICITY[headline_match[0]] < _SPECIFICITY[title_match[0]]
    ):
        return Classification(
            property_type=headline_match[0],
            matched_keyword=headline_match[1],
            signal="headline",
        )
    if title_match:
        return Classification(property_type=title_match[0], matched_keyword=title_match[1], signal="title")

    if url:
        slug_match = match_property_type(strip_non_residential(url_slug(url)))
        if slug_match:
            return Classification(property_type=slug_match[0], matched_keyword=slug_match[1], signal="url")

    return Classification(property_type=PropertyType.APARTMENT, signal="default")
