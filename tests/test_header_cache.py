import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from waterfall_proxy.header_cache import HeaderCache
from waterfall_proxy.schema.waterfall import Band, WaterfallHeader


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_header(name: str = "40m") -> WaterfallHeader:
    return WaterfallHeader(
        bands=[Band(name=name, start_hz=7_000_000, end_hz=7_200_000, start_pixel=0, end_pixel=1024)],
        total_width_pixels=1024,
    )


class HeaderCacheTest(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.cache = HeaderCache(ttl_s=300, clock=self.clock)
        self.url = "http://websdr.example:8901"

    def test_get_after_put_returns_same_header(self):
        header = make_header()
        self.cache.put(self.url, header)
        self.assertIs(self.cache.get(self.url), header)

    def test_miss_for_unknown_url(self):
        self.assertIsNone(self.cache.get(self.url))

    def test_entry_served_until_ttl(self):
        header = make_header()
        self.cache.put(self.url, header)

        self.clock.advance(299.9)
        self.assertIs(self.cache.get(self.url), header)

        self.clock.advance(0.1)
        self.assertIsNone(self.cache.get(self.url))
        self.assertEqual(len(self.cache), 0)

    def test_put_replaces_entry_and_restarts_ttl(self):
        self.cache.put(self.url, make_header("40m"))
        self.clock.advance(200)
        replacement = make_header("20m")
        self.cache.put(self.url, replacement)

        self.clock.advance(200)
        self.assertIs(self.cache.get(self.url), replacement)
        self.assertEqual(len(self.cache), 1)

    def test_entries_are_keyed_by_url(self):
        other = "http://kiwisdr.example:8073"
        self.cache.put(self.url, make_header("40m"))
        self.cache.put(other, make_header("HF"))

        self.assertEqual(self.cache.get(self.url).bands[0].name, "40m")
        self.assertEqual(self.cache.get(other).bands[0].name, "HF")

    def test_invalidate_and_clear(self):
        self.cache.put(self.url, make_header())
        self.cache.invalidate(self.url)
        self.assertIsNone(self.cache.get(self.url))

        self.cache.put(self.url, make_header())
        self.cache.clear()
        self.assertEqual(len(self.cache), 0)

    def test_rejects_non_positive_ttl(self):
        with self.assertRaises(ValueError):
            HeaderCache(ttl_s=0)


if __name__ == "__main__":
    unittest.main()
