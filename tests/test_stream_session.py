import asyncio
import sys
import unittest
from pathlib import Path

import numpy as np

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from waterfall_proxy.errors import Unreachable
from waterfall_proxy.schema.waterfall import Band, LineSource, Station, WaterfallHeader, WaterfallLine
from waterfall_proxy.simulator import SimulatedLineGenerator
from waterfall_proxy.stream_session import SessionState, StreamSession

STATION = Station(id="utwente", url="http://websdr.example:8901", name="Test WebSDR")
HEADER = WaterfallHeader(
    bands=[Band(name="40m", start_hz=7_000_000, end_hz=7_200_000, start_pixel=0, end_pixel=1024)],
    total_width_pixels=1024,
)


class FakeFetcher:
    """Stands in for WaterfallFetcher; records calls and fails on demand."""

    def __init__(self, fail_with=None, header_delay_s=0.0) -> None:
        self.fail_with = fail_with
        self.header_delay_s = header_delay_s
        self.line_calls = 0
        self.header_calls = 0

    async def fetch_header(self, station_url):
        self.header_calls += 1
        if self.header_delay_s:
            await asyncio.sleep(self.header_delay_s)
        if self.fail_with is not None:
            raise self.fail_with
        return HEADER

    async def fetch_line(self, station_url, min_hz, max_hz, bins=None):
        self.line_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return WaterfallLine(
            freq_start_hz=min_hz,
            freq_step_hz=(max_hz - min_hz) / bins,
            magnitudes=[0.5] * bins,
            source=LineSource.REAL,
        )


class Recorder:
    def __init__(self) -> None:
        self.events: list[dict] = []

    async def send(self, event: dict) -> None:
        self.events.append(event)

    def lines(self) -> list[dict]:
        return [e["data"] for e in self.events if e["type"] == "waterfall"]


async def wait_for_lines(recorder: Recorder, count: int, timeout: float = 3.0) -> None:
    async def _poll():
        while len(recorder.lines()) < count:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


class StreamSessionTest(unittest.IsolatedAsyncioTestCase):
    def make_session(self, fetcher, recorder, use_real=True, send=None, bins=64):
        return StreamSession(
            STATION,
            7_000_000,
            7_300_000,
            send=send or recorder.send,
            fetcher=fetcher,
            generator=SimulatedLineGenerator(rng=np.random.default_rng(7)),
            use_real=use_real,
            bins=bins,
            interval_s=0.005,
        )

    async def test_simulated_session_never_touches_fetcher(self):
        fetcher, recorder = FakeFetcher(), Recorder()
        session = self.make_session(fetcher, recorder, use_real=False)

        await session.open()
        await wait_for_lines(recorder, 5)
        await session.aclose()

        self.assertEqual(fetcher.line_calls, 0)
        self.assertEqual(fetcher.header_calls, 0)
        self.assertTrue(all(line["source"] == "simulated" for line in recorder.lines()))

    async def test_fetch_failures_fall_back_to_simulated_lines(self):
        fetcher, recorder = FakeFetcher(fail_with=Unreachable("http://websdr.example:8901", "timed out")), Recorder()
        session = self.make_session(fetcher, recorder)

        await session.open()
        await wait_for_lines(recorder, 5)
        self.assertIs(session.state, SessionState.STREAMING)
        await session.aclose()

        lines = recorder.lines()
        self.assertTrue(all(line["source"] == "simulated" for line in lines))
        self.assertTrue(all(len(line["magnitudes"]) == 64 for line in lines))
        self.assertGreaterEqual(fetcher.line_calls, len(lines))
        self.assertGreaterEqual(session.fallback_count, len(lines))
        self.assertFalse(any(e["type"] == "header" for e in recorder.events))

    async def test_unexpected_tick_error_keeps_session_alive(self):
        fetcher, recorder = FakeFetcher(fail_with=RuntimeError("decoder exploded")), Recorder()
        session = self.make_session(fetcher, recorder)

        with self.assertLogs("waterfall_proxy.stream_session", level="ERROR"):
            await session.open()
            await wait_for_lines(recorder, 3)
        await session.aclose()

        self.assertTrue(all(line["source"] == "simulated" for line in recorder.lines()))

    async def test_real_lines_and_header_event(self):
        fetcher, recorder = FakeFetcher(), Recorder()
        session = self.make_session(fetcher, recorder)

        await session.open()
        await wait_for_lines(recorder, 3)
        await asyncio.sleep(0.05)
        await session.aclose()

        headers = [e for e in recorder.events if e["type"] == "header"]
        self.assertEqual(len(headers), 1)
        self.assertEqual(headers[0]["data"]["bands"][0]["name"], "40m")
        lines = recorder.lines()
        self.assertTrue(all(line["source"] == "real" for line in lines))
        self.assertEqual(session.fallback_count, 0)

    async def test_slow_header_does_not_delay_lines(self):
        fetcher, recorder = FakeFetcher(header_delay_s=1.0), Recorder()
        session = self.make_session(fetcher, recorder)

        await session.open()
        await asyncio.sleep(0.2)

        self.assertGreaterEqual(len(recorder.lines()), 5)
        self.assertFalse(any(e["type"] == "header" for e in recorder.events))
        self.assertTrue(all(line["source"] == "real" for line in recorder.lines()))

        await asyncio.wait_for(session.aclose(), 0.5)
        self.assertIs(session.state, SessionState.CLOSED)

    async def test_lines_are_emitted_in_tick_order(self):
        fetcher, recorder = FakeFetcher(), Recorder()
        session = self.make_session(fetcher, recorder, use_real=False)

        await session.open()
        await wait_for_lines(recorder, 10)
        await session.aclose()

        timestamps = [line["timestamp_ms"] for line in recorder.lines()]
        self.assertEqual(timestamps, sorted(timestamps))

    async def test_state_machine(self):
        fetcher, recorder = FakeFetcher(), Recorder()
        session = self.make_session(fetcher, recorder, use_real=False)
        self.assertIs(session.state, SessionState.IDLE)

        await session.open()
        self.assertIs(session.state, SessionState.STREAMING)
        with self.assertRaises(RuntimeError):
            await session.open()

        await session.aclose()
        self.assertIs(session.state, SessionState.CLOSED)
        await session.aclose()
        self.assertIs(session.state, SessionState.CLOSED)

    async def test_close_stops_emission(self):
        fetcher, recorder = FakeFetcher(), Recorder()
        session = self.make_session(fetcher, recorder, use_real=False)

        await session.open()
        await wait_for_lines(recorder, 2)
        await session.aclose()
        emitted = len(recorder.events)

        await asyncio.sleep(0.05)
        self.assertEqual(len(recorder.events), emitted)

    async def test_slow_transport_drops_lines_instead_of_queueing(self):
        release = asyncio.Event()
        received: list[dict] = []

        async def stalled_send(event):
            received.append(event)
            await release.wait()

        session = self.make_session(FakeFetcher(), Recorder(), use_real=False, send=stalled_send)
        await session.open()
        await asyncio.sleep(0.1)

        self.assertEqual(len(received), 1)
        self.assertGreater(session.lines_dropped, 0)

        release.set()
        await session.aclose()

    async def test_transport_failure_closes_session(self):
        async def broken_send(event):
            raise ConnectionResetError("client went away")

        session = self.make_session(FakeFetcher(), Recorder(), use_real=False, send=broken_send)
        await session.open()
        await asyncio.wait_for(session.wait_closed(), 2.0)

        self.assertIs(session.state, SessionState.CLOSED)

    def test_invalid_window_rejected(self):
        with self.assertRaises(ValueError):
            StreamSession(
                STATION, 7_300_000, 7_000_000,
                send=Recorder().send, fetcher=FakeFetcher(), generator=SimulatedLineGenerator(),
            )


if __name__ == "__main__":
    unittest.main()
