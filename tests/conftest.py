"""
Conftest: shared fixtures for all Lineboil test modules.

1. Synthetic RGBA images — no decoder or files needed for engine tests
2. Manual clock + loop timer queue — deterministic playback timing
3. Server state reset (per-test) — prevents session state leaking between tests
"""

import numpy as np
import pytest

from core.params import BoilParams
from core.playback import LoopTimerQueue


def _make_test_frame(width=32, height=24):
    """Generate a synthetic RGBA test frame (gradient, not blank)."""
    frame = np.zeros((height, width, 4), dtype=np.uint8)
    frame[:, :, 0] = np.linspace(0, 255, width, dtype=np.uint8)  # R gradient
    frame[:, :, 1] = np.linspace(0, 255, height, dtype=np.uint8)[:, np.newaxis]  # G gradient
    frame[:, :, 2] = 128  # constant B
    frame[:, :, 3] = 255
    return frame


def _solid(width, height, rgba):
    frame = np.zeros((height, width, 4), dtype=np.uint8)
    frame[:, :] = rgba
    return frame


@pytest.fixture
def gradient_image():
    return _make_test_frame()


@pytest.fixture
def red_image():
    """4x4 opaque red."""
    return _solid(4, 4, (255, 0, 0, 255))


@pytest.fixture
def params():
    return BoilParams(frame_count=3, jitter_strength=3.0, noise_scale=0.1, seed=7)


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def timers(clock):
    return LoopTimerQueue(clock=clock)


@pytest.fixture
def server_state():
    """Fresh server session; restored after the test."""
    import server
    from core.sequence import FrameStore
    from core.export import Exporter, load_encoders

    saved = (server._store, server._exporter, dict(server._state))
    server._store = FrameStore()
    server._exporter = Exporter()
    server._state["source_name"] = None
    server._state["encoders"] = load_encoders()
    yield server
    server._store, server._exporter = saved[0], saved[1]
    server._state.clear()
    server._state.update(saved[2])
