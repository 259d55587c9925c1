from __future__ import annotations

import asyncio

import numpy as np
import pytest
from aiortc.mediastreams import MediaStreamError

from services.realtime.audio_level import AudioLevelMonitor, normalized_samples, rms


def test_rms_of_int16_full_scale_square_wave():
    samples = np.array([32767, -32768] * 100, dtype=np.int16)
    assert rms(samples) == pytest.approx(1.0, abs=1e-4)


def test_rms_of_silence_and_empty_buffer():
    assert rms(np.zeros(480, dtype=np.int16)) == 0.0
    assert rms(np.array([], dtype=np.int16)) == 0.0


def test_uint8_samples_are_centered():
    assert normalized_samples(np.array([128, 128], dtype=np.uint8)).tolist() == [0.0, 0.0]


def test_level_is_smoothed_amplified_and_clamped():
    levels = []
    monitor = AudioLevelMonitor(on_level=lambda level, speaking: levels.append((level, speaking)))
    loud = np.full(480, 0.5, dtype=np.float32)

    first = monitor.tick(loud)
    assert first == pytest.approx(0.5 * 0.2 * 3.0)
    assert monitor.is_speaking is True

    for _ in range(50):
        monitor.tick(loud)
    assert monitor.level == 1.0
    assert all(0.0 <= level <= 1.0 for level, _ in levels)


def test_quiet_audio_is_not_speaking():
    monitor = AudioLevelMonitor()
    for _ in range(20):
        monitor.tick(np.full(480, 0.005, dtype=np.float32))
    assert monitor.is_speaking is False


def test_threshold_is_configurable():
    monitor = AudioLevelMonitor(threshold=0.5)
    monitor.tick(np.full(480, 0.5, dtype=np.float32))
    assert monitor.level == pytest.approx(0.3)
    assert monitor.is_speaking is False


class FrameTrack:
    def __init__(self, frames):
        self.frames = list(frames)

    async def recv(self):
        if not self.frames:
            raise MediaStreamError
        samples = self.frames.pop(0)
        return type("Frame", (), {"to_ndarray": lambda self: samples})()


def test_attach_consumes_track_until_it_ends_and_detach_resets():
    async def scenario():
        monitor = AudioLevelMonitor()
        monitor.attach(FrameTrack([np.full(480, 8000, dtype=np.int16)] * 3))
        await asyncio.sleep(0.01)
        level = monitor.level
        await monitor.detach()
        return level, monitor

    level, monitor = asyncio.run(scenario())
    assert level > 0.0
    assert monitor.level == 0.0
    assert monitor.is_speaking is False
