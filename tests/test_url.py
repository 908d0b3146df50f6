from __future__ import annotations

import unittest

from rentindex.scraping.url import canonicalize_url, url_slug


class TestCanonicalizeUrl(unittest.TestCase):
    def test_lowercases_scheme_and_host_and_drops_fragment(self) -> None:
        self.assertEqual(
            canonicalize_url("HTTPS://Www.Example.COM/Rent/Unit-12#photos"),
            "https://www.example.com/Rent/Unit-12",
        )

    def test_strips_tracking_parameters_and_keeps_the_rest(self) -> None:
        url = "https://example.com/listing/42?utm_source=fb&fbclid=abc&page=2&gad_source=1&ref=home"
        self.assertEqual(canonicalize_url(url), "https://example.com/listing/42?page=2")

    def test_drops_default_port_and_keeps_custom_port(self) -> None:
        self.assertEqual(canonicalize_url("http://example.com:80/a"), "http://example.com/a")
        self.assertEqual(canonicalize_url("https://example.com:8443/a"), "https://example.com:8443/a")

    def test_trailing_slash_removed_except_root(self) -> None:
        self.assertEqual(canonicalize_url("https://example.com/rent/"), "https://example.com/rent")
        self.assertEqual(canonicalize_url("https://example.com/"), "https://example.com/")
        self.assertEqual(canonicalize_url("https://example.com"), "https://example.com/")

    def test_tracking_variants_map_to_one_url(self) -> None:
        variants = [
            "https://example.com/listing/7",
            "https://EXAMPLE.com/listing/7/",
            "https://example.com/listing/7?utm_campaign=x",
            "https://example.com/listing/7#map",
        ]
        self.assertEqual({canonicalize_url(url) for url in variants}, {"https://example.com/listing/7"})

    def test_non_http_input_is_returned_trimmed(self) -> None:
        self.assertEqual(canonicalize_url("  mailto:agent@example.com "), "mailto:agent@example.com")
        self.assertEqual(canonicalize_url("/relative/path"), "/relative/path")

    def test_invalid_port_is_returned_trimmed(self) -> None:
        self.assertEqual(canonicalize_url(" http://example.com:abc/x "), "http://example.com:abc/x")


class TestUrlSlug(unittest.TestCase):
    def test_splits_path_words(self) -> None:
        self.assertEqual(
            url_slug("https://example.com/rent/twin-villa_bkk1/123"),
            "rent twin villa bkk1 123",
        )
