from __future__ import annotations

import unittest

from rentindex.scraping.locations import (
    DEFAULT_CITY,
    normalize_city,
    normalize_district,
    reconcile_location,
)


class TestNormalizeDistrict(unittest.TestCase):
    def test_aliases_map_to_canonical_name(self) -> None:
        self.assertEqual(normalize_district("Boeung Keng Kang 1"), "BKK1")
        self.assertEqual(normalize_district("Tuol Kouk, Phnom Penh"), "Toul Kork")
        self.assertEqual(normalize_district("near Russian Market"), "Toul Tom Poung")

    def test_breadcrumb_uses_last_segment(self) -> None:
        self.assertEqual(normalize_district("Rent > Siem Reap > Sala Kamraeuk"), "Sala Kamreuk")

    def test_unknown_short_name_is_kept(self) -> None:
        self.assertEqual(normalize_district("Koh Pich"), "Koh Pich")

    def test_long_free_text_is_dropped(self) -> None:
        self.assertIsNone(normalize_district("a" * 60))
        self.assertIsNone(normalize_district(None))


class TestNormalizeCity(unittest.TestCase):
    def test_aliases(self) -> None:
        self.assertEqual(normalize_city("PHNOM PENH"), "Phnom Penh")
        self.assertEqual(normalize_city("Preah Sihanouk Province"), "Sihanoukville")
        self.assertIsNone(normalize_city("Atlantis"))


class TestReconcileLocation(unittest.TestCase):
    def test_known_district_decides_the_city(self) -> None:
        self.assertEqual(reconcile_location("Phnom Penh", "Sala Kamraeuk"), ("Siem Reap", "Sala Kamreuk"))

    def test_city_name_in_district_slot_moves_to_city(self) -> None:
        self.assertEqual(reconcile_location(None, "Battambang"), ("Battambang", None))

    def test_unknown_everything_falls_back_to_default_city(self) -> None:
        self.assertEqual(reconcile_location(None, None), (DEFAULT_CITY, None))
        self.assertEqual(reconcile_location("Atlantis", "Koh Pich"), (DEFAULT_CITY, "Koh Pich"))
