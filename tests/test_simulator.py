import sys
import unittest
from pathlib import Path

import numpy as np

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from waterfall_proxy.schema.waterfall import LineSource
from waterfall_proxy.simulator import CLUSTER_POSITIONS, SimulatedLineGenerator


class SimulatedLineGeneratorTest(unittest.TestCase):
    def setUp(self):
        self.generator = SimulatedLineGenerator(rng=np.random.default_rng(42))

    def test_line_shape_matches_window(self):
        for start, end, bins in ((7_000_000, 7_300_000, 512), (0, 30_000_000, 1024), (14_070_000, 14_071_000, 3)):
            line = self.generator.generate(start, end, bins)
            self.assertEqual(len(line.magnitudes), bins)
            self.assertEqual(line.freq_start_hz, start)
            self.assertEqual(line.freq_step_hz, (end - start) / bins)
            self.assertEqual(line.source, LineSource.SIMULATED)

    def test_samples_stay_in_unit_range(self):
        for _ in range(50):
            mags = np.array(self.generator.generate(7_000_000, 7_300_000, 512).magnitudes)
            self.assertTrue(np.all(mags >= 0.10))
            self.assertTrue(np.all(mags <= 1.0))

    def test_ft8_segment_is_elevated(self):
        line = self.generator.generate(7_000_000, 7_300_000, 512)
        freqs = 7_000_000 + np.arange(512) * line.freq_step_hz
        ft8 = np.abs(freqs - 7_074_000) < 2_000
        mags = np.array(line.magnitudes)

        self.assertTrue(ft8.any())
        self.assertTrue(np.all(mags[ft8] >= 0.4))

    def test_clusters_cw_and_transients(self):
        bins = 3000
        lines = np.array([self.generator.generate(7_000_000, 7_300_000, bins).magnitudes for _ in range(20)])
        positions = (np.arange(bins) + 0.5) / bins
        freqs = 7_000_000 + np.arange(bins) * 100

        # 7.125-7.155 MHz: no cluster, no FT8, no CW.
        quiet = (freqs >= 7_125_000) & (freqs < 7_155_000)
        quiet_level = lines[:, quiet].mean()

        for center in CLUSTER_POSITIONS:
            near = np.abs(positions - center) < 0.005
            self.assertGreater(lines[:, near].mean(), quiet_level + 0.1, center)

        cw = freqs < 7_015_000
        self.assertGreater(lines[:, cw].mean(), quiet_level + 0.05)

        # Floor plus jitter stays below 0.2; a transient adds at least 0.4.
        transient_rate = (lines[:, quiet] > 0.5).mean()
        self.assertGreater(transient_rate, 0.01)
        self.assertLess(transient_rate, 0.035)

    def test_quiet_window_sits_near_noise_floor(self):
        # 7.2-7.3 MHz holds no FT8 or CW segment; only clusters and transients rise above the floor.
        mags = np.array(self.generator.generate(7_200_000, 7_300_000, 2048).magnitudes)
        self.assertLess(float(np.median(mags)), 0.25)

    def test_default_rng(self):
        line = SimulatedLineGenerator().generate(3_500_000, 3_800_000, 256)
        self.assertEqual(len(line.magnitudes), 256)

    def test_invalid_window(self):
        with self.assertRaises(ValueError):
            self.generator.generate(7_300_000, 7_000_000, 512)
        with self.assertRaises(ValueError):
            self.generator.generate(7_000_000, 7_300_000, 0)


if __name__ == "__main__":
    unittest.main()
