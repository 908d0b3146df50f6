from __future__ import annotations

from rentindex.scraping.fingerprint import fingerprint, price_bucket


class TestFingerprint:
    def test_equivalent_listings_share_a_fingerprint(self) -> None:
        first = fingerprint("2BR Condo BKK1", "BKK1", 2, "CONDO", 803, "http://x/1.jpg")
        second = fingerprint("2br condo bkk1", " bkk1 ", 2, "CONDO", 805, "http://x/1.jpg")
        assert first == second

    def test_is_sha256_hex(self) -> None:
        value = fingerprint("Title", None, None, None, None, None)
        assert len(value) == 64
        int(value, 16)

    def test_different_price_bucket_changes_fingerprint(self) -> None:
        base = fingerprint("Title", "BKK1", 2, "CONDO", 800, None)
        assert fingerprint("Title", "BKK1", 2, "CONDO", 900, None) != base

    def test_different_image_changes_fingerprint(self) -> None:
        base = fingerprint("Title", "BKK1", 2, "CONDO", 800, "http://x/1.jpg")
        assert fingerprint("Title", "BKK1", 2, "CONDO", 800, "http://x/2.jpg") != base


class TestPriceBucket:
    def test_rounds_to_nearest_ten(self) -> None:
        assert price_bucket(803) == "800"
        assert price_bucket(806) == "810"
        assert price_bucket(1234.9) == "1230"

    def test_half_rounds_to_even(self) -> None:
        assert price_bucket(805) == "800"
        assert price_bucket(815) == "820"

    def test_missing_price_is_empty(self) -> None:
        assert price_bucket(None) == ""
