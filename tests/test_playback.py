"""Tests for the playback scheduler and loop-driven timers."""

import threading

import numpy as np
import pytest

from core.params import BoilParams
from core.playback import PlaybackScheduler, PlaybackState, LoopTimerQueue
from core.sequence import FrameStore


def _frames(n):
    return [np.full((2, 2, 4), i, dtype=np.uint8) for i in range(n)]


class Recorder:
    def __init__(self, clock=None):
        self.clock = clock
        self.calls = []

    def __call__(self, frame, index):
        self.calls.append((index, self.clock() if self.clock else None))

    @property
    def indices(self):
        return [i for i, _ in self.calls]


@pytest.fixture
def recorder(clock):
    return Recorder(clock)


class TestLoopTimerQueue:

    def test_fires_when_due(self, clock, timers):
        fired = []
        timers(0.1, lambda: fired.append(1)).start()
        assert timers.run_due() == 0
        clock.advance(0.1)
        assert timers.run_due() == 1
        assert fired == [1]
        assert timers.pending == 0

    def test_cancelled_timer_never_fires(self, clock, timers):
        fired = []
        handle = timers(0.05, lambda: fired.append(1))
        handle.start()
        handle.cancel()
        clock.advance(1)
        timers.run_due()
        assert fired == []

    def test_unstarted_timer_never_fires(self, clock, timers):
        fired = []
        timers(0.0, lambda: fired.append(1))
        clock.advance(1)
        assert timers.run_due() == 0

    def test_next_due(self, clock, timers):
        assert timers.next_due() is None
        timers(0.3, lambda: None).start()
        timers(0.2, lambda: None).start()
        assert timers.next_due() == pytest.approx(0.2)


class TestPlaybackCycle:

    def test_cycle_three_frames_at_8fps(self, clock, timers, recorder):
        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=timers)
        sched.attach(_frames(3))
        sched.play()
        for _ in range(6):
            clock.advance(0.125)
            timers.run_due()
        # attach renders once while stopped, play renders frame 0 again
        assert recorder.indices == [0, 0, 1, 2, 0, 1, 2, 0]
        assert sched.delay_ms == 125

    def test_advance_spacing_is_125ms(self, clock, timers, recorder):
        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=timers)
        sched.attach(_frames(3))
        sched.play()
        for _ in range(4):
            clock.advance(0.125)
            timers.run_due()
        times = [t for _, t in recorder.calls[1:]]
        gaps = [b - a for a, b in zip(times, times[1:])]
        assert gaps == pytest.approx([0.125] * 4)

    def test_no_advance_before_delay(self, clock, timers, recorder):
        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=timers)
        sched.attach(_frames(3))
        sched.play()
        clock.advance(0.1)
        timers.run_due()
        assert sched.cursor == 0

    def test_pause_halts_advancement(self, clock, timers, recorder):
        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=timers)
        sched.attach(_frames(3))
        sched.play()
        clock.advance(0.125)
        timers.run_due()
        sched.pause()
        assert sched.state == PlaybackState.STOPPED
        for _ in range(5):
            clock.advance(0.125)
            timers.run_due()
        assert sched.cursor == 1
        assert timers.pending == 0

    def test_resume_continues_from_cursor(self, clock, timers, recorder):
        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=timers)
        sched.attach(_frames(3))
        sched.play()
        clock.advance(0.125)
        timers.run_due()
        sched.pause()
        sched.play()
        clock.advance(0.125)
        timers.run_due()
        assert sched.cursor == 2

    def test_single_frame_never_schedules(self, clock, timers, recorder):
        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=timers)
        sched.attach(_frames(1))
        sched.play()
        assert timers.pending == 0
        clock.advance(5)
        timers.run_due()
        assert sched.cursor == 0
        assert sched.playing

    def test_play_twice_is_noop(self, timers, recorder):
        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=timers)
        sched.attach(_frames(3))
        sched.play()
        sched.play()
        assert timers.pending == 1

    def test_toggle(self, timers, recorder):
        sched = PlaybackScheduler(recorder, timer_factory=timers)
        sched.toggle()
        assert sched.playing
        sched.toggle()
        assert not sched.playing


class TestSequenceReplacement:

    def test_replace_resets_cursor_keeps_playing(self, clock, timers, recorder):
        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=timers)
        sched.attach(_frames(3))
        sched.play()
        clock.advance(0.125)
        timers.run_due()
        clock.advance(0.125)
        timers.run_due()
        assert sched.cursor == 2

        sched.attach(_frames(4))
        assert sched.cursor == 0
        assert sched.playing
        assert timers.pending == 1
        clock.advance(0.125)
        timers.run_due()
        assert sched.cursor == 1

    def test_replace_while_stopped_stays_stopped(self, timers, recorder):
        sched = PlaybackScheduler(recorder, timer_factory=timers)
        sched.attach(_frames(3))
        sched.attach(_frames(2))
        assert not sched.playing
        assert timers.pending == 0
        assert recorder.indices == [0, 0]

    def test_stale_callback_is_ignored(self, recorder):
        """A timer that already fired its thread-side callback after replacement does nothing."""
        handles = []

        class CapturingTimer:
            def __init__(self, delay, callback):
                self.callback = callback
                handles.append(self)

            def start(self):
                pass

            def cancel(self):
                pass

        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=CapturingTimer)
        sched.attach(_frames(3))
        sched.play()
        stale = handles[-1]
        sched.attach(_frames(3))
        stale.callback()
        assert sched.cursor == 0

    def test_store_listener_integration(self, gradient_image, clock, timers, recorder):
        store = FrameStore(BoilParams(frame_count=3, jitter_strength=1.0))
        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=timers)
        store.subscribe(sched.attach)
        store.set_base(gradient_image)
        store.run_pending()
        sched.play()
        clock.advance(0.125)
        timers.run_due()
        assert sched.cursor == 1
        assert sched.frame_count == 3

        store.set_params(store.params.with_updates(frame_count=5))
        store.run_pending()
        assert sched.cursor == 0
        assert sched.frame_count == 5


class TestSpeedAndTeardown:

    def test_set_speed_applies_to_next_delay(self, clock, timers, recorder):
        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=timers)
        sched.attach(_frames(3))
        sched.play()
        sched.set_speed(20)
        assert sched.delay_ms == 50
        # The advance already queued at 125ms keeps its due time
        clock.advance(0.05)
        timers.run_due()
        assert sched.cursor == 0
        clock.advance(0.1)
        timers.run_due()
        assert sched.cursor == 1
        # then 50ms per frame
        clock.advance(0.05)
        timers.run_due()
        assert sched.cursor == 2

    def test_store_speed_change_reaches_scheduler(self, gradient_image, clock, timers, recorder):
        store = FrameStore(BoilParams(frame_count=3))
        sched = PlaybackScheduler(recorder, speed_fps=store.params.speed_fps, timer_factory=timers)
        store.subscribe(sched.attach)
        store.subscribe_params(lambda p: sched.set_speed(p.speed_fps))
        store.set_base(gradient_image)
        store.run_pending()
        assert sched.delay_ms == 125

        store.set_params(store.params.with_updates(speed_fps=20))
        assert sched.delay_ms == 50
        assert sched.frame_count == 3

    def test_set_speed_rejects_zero(self, recorder):
        sched = PlaybackScheduler(recorder)
        with pytest.raises(ValueError):
            sched.set_speed(0)

    def test_teardown_cancels_pending(self, clock, timers, recorder):
        sched = PlaybackScheduler(recorder, speed_fps=8, timer_factory=timers)
        sched.attach(_frames(3))
        sched.play()
        sched.teardown()
        calls_before = len(recorder.calls)
        clock.advance(1)
        timers.run_due()
        assert len(recorder.calls) == calls_before
        sched.play()
        sched.attach(_frames(2))
        assert len(recorder.calls) == calls_before

    def test_thread_timer_default(self):
        rendered = threading.Event()
        indices = []

        def render(frame, index):
            indices.append(index)
            if index == 1:
                rendered.set()

        sched = PlaybackScheduler(render, speed_fps=24)
        sched.attach(_frames(2))
        sched.play()
        try:
            assert rendered.wait(timeout=2)
        finally:
            sched.teardown()
        assert indices[:3] == [0, 0, 1]
