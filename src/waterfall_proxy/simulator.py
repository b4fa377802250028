"""
Synthetic waterfall lines.

Used whenever real data cannot be fetched, and for sessions that never ask
for real data. The output imitates an HF band: a noisy floor, a handful of
persistent activity clusters, FT8 traffic at x.074 MHz, CW near the bottom of
each MHz, and the occasional transient.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from waterfall_proxy.schema.waterfall import LineSource, WaterfallLine

logger = logging.getLogger(__name__)

# Fractional window positions of persistent activity clusters.
CLUSTER_POSITIONS = (0.08, 0.22, 0.37, 0.55, 0.71, 0.88)
CLUSTER_HALF_WIDTH = 0.015
CLUSTER_PEAK = 0.25

FT8_OFFSET_MHZ = 0.074
FT8_HALF_WIDTH_MHZ = 0.002
CW_SEGMENT_MHZ = 0.05
CW_DUTY = 0.3
TRANSIENT_PROBABILITY = 0.02


class SimulatedLineGenerator:
    """Produces a plausible spectrum line for any window; never fails on a valid window."""

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self._rng = rng if rng is not None else np.random.default_rng()

    def generate(self, freq_start_hz: float, freq_end_hz: float, bins: int) -> WaterfallLine:
        if bins <= 0:
            raise ValueError("bins must be positive")
        if freq_end_hz <= freq_start_hz:
            raise ValueError("freq_end_hz must be greater than freq_start_hz")

        rng = self._rng
        freq_step_hz = (freq_end_hz - freq_start_hz) / bins
        freqs_hz = freq_start_hz + np.arange(bins) * freq_step_hz
        positions = (np.arange(bins) + 0.5) / bins

        noise_floor = 0.10 + rng.random() * 0.05
        mags = noise_floor + rng.random(bins) * 0.05

        for center in CLUSTER_POSITIONS:
            distance = np.abs(positions - center)
            falloff = np.clip(1.0 - distance / CLUSTER_HALF_WIDTH, 0.0, None)
            mags += CLUSTER_PEAK * falloff * (0.6 + 0.4 * rng.random(bins))

        sub_band_offset_mhz = np.mod(freqs_hz / 1e6, 1.0)

        ft8 = np.abs(sub_band_offset_mhz - FT8_OFFSET_MHZ) < FT8_HALF_WIDTH_MHZ
        mags[ft8] += 0.3 + rng.random(int(ft8.sum())) * 0.4

        cw = (sub_band_offset_mhz < CW_SEGMENT_MHZ) & (rng.random(bins) < CW_DUTY)
        mags[cw] += 0.2 + rng.random(int(cw.sum())) * 0.3

        transient = rng.random(bins) < TRANSIENT_PROBABILITY
        mags[transient] += 0.4 + rng.random(int(transient.sum())) * 0.4

        return WaterfallLine(
            freq_start_hz=freq_start_hz,
            freq_step_hz=freq_step_hz,
            magnitudes=np.clip(mags, 0.0, 1.0).tolist(),
            source=LineSource.SIMULATED,
        )
