"""
District alias normalization and city/district reconciliation.

Scraped city fields are unreliable: breadcrumbs and search filters often put
a district into the city slot or leave the site's default city in place.
A district that canonically belongs to a known city is therefore treated as
authoritative for the city.
"""

from __future__ import annotations

DEFAULT_CITY = "Phnom Penh"
MAX_FREEFORM_DISTRICT_LENGTH = 50

CITY_ALIASES: dict[str, str] = {
    "phnom penh": "Phnom Penh",
    "siem reap": "Siem Reap",
    "siem reab": "Siem Reap",
    "sihanoukville": "Sihanoukville",
    "preah sihanouk": "Sihanoukville",
    "kampot": "Kampot",
    "battambang": "Battambang",
    "kep": "Kep",
    "kaeb": "Kep",
    "kompong cham": "Kompong Cham",
    "kampong cham": "Kompong Cham",
}

# canonical district -> (city, aliases)
_DISTRICTS: dict[str, tuple[str, tuple[str, ...]]] = {
    "BKK1": ("Phnom Penh", ("bkk1", "bkk 1", "boeung keng kang 1", "boeung keng kang i", "boeng keng kang", "chamkarmon", "chamkar mon")),
    "BKK2": ("Phnom Penh", ("bkk2", "bkk 2")),
    "BKK3": ("Phnom Penh", ("bkk3", "bkk 3")),
    "Tonle Bassac": ("Phnom Penh", ("tonle bassac", "tonle basac")),
    "Toul Tom Poung": (
        "Phnom Penh",
        ("toul tom poung", "toul tum poung", "toul tum pong", "tuol tom pong", "tuol tompong", "russian market", "boeung trabek"),
    ),
    "Daun Penh": (
        "Phnom Penh",
        ("daun penh", "doun penh", "wat phnom", "phsar kandal", "srah chak", "chakto mukh", "boeng reang", "chey chumneah", "phsar thmey"),
    ),
    "7 Makara": (
        "Phnom Penh",
        ("7 makara", "prampi makara", "prampir meakkakra", "boeung prolit", "veal vong", "phsar depou", "tuol svay prey", "tuol sangkae"),
    ),
    "Toul Kork": (
        "Phnom Penh",
        ("toul kork", "tuol kork", "tuol kouk", "boeung kak", "tuek l'ak", "teuk laak"),
    ),
    "Sen Sok": ("Phnom Penh", ("sen sok", "sensok", "saensokh", "phnom penh thmey", "tuek thla")),
    "Russey Keo": ("Phnom Penh", ("russey keo", "russei keo", "ruessei kaev")),
    "Chroy Changvar": ("Phnom Penh", ("chroy changvar", "chrouy changvar", "chrouy changva")),
    "Meanchey": ("Phnom Penh", ("meanchey", "mean chey", "boeung tumpun", "phsar daeum thkov", "chak angrae")),
    "Chbar Ampov": ("Phnom Penh", ("chbar ampov", "nirouth")),
    "Por Sen Chey": ("Phnom Penh", ("por sen chey", "pur senchey", "por senchey")),
    "Stung Meanchey": ("Phnom Penh", ("stung meanchey", "stueng meanchey")),
    "Dangkao": ("Phnom Penh", ("dangkao", "kakap")),
    "Prek Pnov": ("Phnom Penh", ("prek pnov",)),
    "Kamboul": ("Phnom Penh", ("kamboul", "kambol")),
    "Siem Reap": ("Siem Reap", ("krong siem reab", "siem reab", "siem reap")),
    "Sala Kamreuk": ("Siem Reap", ("sala kamraeuk", "sala kamreuk")),
    "Svay Dankum": ("Siem Reap", ("svay dankum",)),
    "Sla Kram": ("Siem Reap", ("sla kram",)),
    "Kok Chak": ("Siem Reap", ("kouk chak", "kok chak")),
    "Chreav": ("Siem Reap", ("chreav",)),
    "Srangae": ("Siem Reap", ("srangae",)),
    "Nokor Thum": ("Siem Reap", ("nokor thum",)),
    "Krabei Riel": ("Siem Reap", ("krabei riel",)),
    "Sambuor": ("Siem Reap", ("sngkat sambuor", "sambuor")),
    "Bakong": ("Siem Reap", ("prasat bakong", "bakong")),
    "Roluos": ("Siem Reap", ("roluos",)),
    "Sihanoukville": ("Sihanoukville", ("krong preah sihanouk", "sihanoukville")),
    "Kep": ("Kep", ("krong kaeb", "kep")),
    "Kampong Trach": ("Kampot", ("kampong trach",)),
    "Kampot": ("Kampot", ("kampot",)),
}

DISTRICT_CITY: dict[str, str] = {district: city for district, (city, _) in _DISTRICTS.items()}

# Longest alias first so "boeung keng kang 1" wins over "boeng keng kang".
_DISTRICT_ALIASES: tuple[tuple[str, str], ...] = tuple(
    sorted(
        ((alias, district) for district, (_, aliases) in _DISTRICTS.items() for alias in aliases),
        key=lambda pair: len(pair[0]),
        reverse=True,
    )
)


def normalize_city(raw: str | None) -> str | None:
    if not raw:
        return None
    lowered = " ".join(raw.lower().split())
    for alias, canonical in CITY_ALIASES.items():
        if alias in lowered:
            return canonical
    return None


def normalize_district(raw: str | None) -> str | None:
    """
    Canonical district name for a location string.

    Breadcrumbs ("Rent > Siem Reap > Sala Kamraeuk") use their last segment.
    Unknown short strings are kept as written; long free text is dropped.
    """

    if not raw:
        return None
    cleaned = raw.strip()
    if ">" in cleaned:
        segments = [segment.strip() for segment in cleaned.split(">") if segment.strip()]
        cleaned = segments[-1] if segments else cleaned

    lowered = " ".join(cleaned.lower().split())
    for alias, district in _DISTRICT_ALIASES:
        if alias in lowered:
            return district

    if 0 < len(cleaned) < MAX_FREEFORM_DISTRICT_LENGTH:
        return cleaned
    return None


def reconcile_location(city: str | None, district: str | None) -> tuple[str, str | None]:
    """
    Return a consistent (city, district) pair.

    A known district decides the city. Otherwise the scraped city is used
    when recognisable, falling back to the default city. A "district" that
    is really a city name is moved to the city slot.
    """

    canonical_district = normalize_district(district)
    if canonical_district and canonical_district in DISTRICT_CITY:
        return DISTRICT_CITY[canonical_district], canonical_district

    if canonical_district and normalize_city(canonical_district) == canonical_district:
        return canonical_district, None

    canonical_city = normalize_city(city) or DEFAULT_CITY
    return canonical_city, canonical_district
