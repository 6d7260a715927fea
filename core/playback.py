"""
Lineboil — Playback Scheduler
Steps a cursor through the frame sequence at speed_fps and hands each frame
to a renderer.

The scheduler never sleeps. It asks a timer factory for one cancellable
handle per advance:
    factory(delay_seconds, callback) -> handle with start() / cancel()
threading.Timer fits that shape; LoopTimerQueue is the same contract driven
from a host render loop (pygame, tests) instead of threads.
"""

import threading
import time
from enum import Enum
from functools import partial


class PlaybackState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"


def _thread_timer(delay_s, callback):
    timer = threading.Timer(delay_s, callback)
    timer.daemon = True
    return timer


class _LoopTimer:
    __slots__ = ("_queue", "due", "callback", "active")

    def __init__(self, queue, due, callback):
        self._queue = queue
        self.due = due
        self.callback = callback
        self.active = False

    def start(self):
        self.active = True
        self._queue._pending.append(self)

    def cancel(self):
        self.active = False
        if self in self._queue._pending:
            self._queue._pending.remove(self)


class LoopTimerQueue:
    """Timer factory polled from a render loop.

    Call run_due() once per loop iteration; every started, uncancelled timer
    whose due time has passed fires in due-time order.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._pending = []

    def __call__(self, delay_s, callback):
        return _LoopTimer(self, self._clock() + delay_s, callback)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def next_due(self):
        if not self._pending:
            return None
        return min(t.due for t in self._pending)

    def run_due(self, now=None) -> int:
        """Fire due timers. Returns how many fired."""
        now = self._clock() if now is None else now
        due = sorted((t for t in self._pending if t.due <= now), key=lambda t: t.due)
        fired = 0
        for t in due:
            if t in self._pending:
                self._pending.remove(t)
            if t.active:
                t.active = False
                t.callback()
                fired += 1
        return fired


class PlaybackScheduler:
    """Cyclic cursor over a frame sequence.

    States: STOPPED <-> PLAYING via play() / pause().
    While PLAYING with more than one frame: render frame[cursor], then after
    1000/speed_fps ms advance cursor = (cursor + 1) % n and render again.
    Replacing the sequence resets the cursor to 0 and keeps the play state.
    """

    def __init__(self, render, speed_fps: int = 8, timer_factory=None):
        self._render = render
        self._timer_factory = timer_factory or _thread_timer
        self._lock = threading.RLock()
        self._frames = ()
        self._cursor = 0
        self._state = PlaybackState.STOPPED
        self._speed_fps = speed_fps
        self._timer = None
        self._token = 0
        self._closed = False

    # --- state ---

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def playing(self) -> bool:
        return self._state == PlaybackState.PLAYING

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def delay_ms(self) -> float:
        return 1000 / self._speed_fps

    # --- transitions ---

    def attach(self, sequence) -> None:
        """Swap in a new sequence. Usable directly as a FrameStore listener."""
        with self._lock:
            if self._closed:
                return
            self._cancel_timer()
            self._frames = tuple(sequence) if sequence is not None else ()
            self._cursor = 0
            self._render_current()
            self._schedule()

    def play(self) -> None:
        with self._lock:
            if self._closed or self._state == PlaybackState.PLAYING:
                return
            self._state = PlaybackState.PLAYING
            self._render_current()
            self._schedule()

    def pause(self) -> None:
        with self._lock:
            if self._state == PlaybackState.STOPPED:
                return
            self._state = PlaybackState.STOPPED
            self._cancel_timer()

    def toggle(self) -> None:
        if self.playing:
            self.pause()
        else:
            self.play()

    def set_speed(self, speed_fps: int) -> None:
        """Change the cadence. An advance already scheduled keeps its due
        time; the new delay applies from the next one on."""
        if speed_fps <= 0:
            raise ValueError(f"speed_fps must be positive, got {speed_fps}")
        with self._lock:
            self._speed_fps = speed_fps

    def teardown(self) -> None:
        """Stop for good. No callback runs after this returns."""
        with self._lock:
            self._closed = True
            self._state = PlaybackState.STOPPED
            self._cancel_timer()
            self._frames = ()

    # --- internals ---

    def _render_current(self) -> None:
        if self._frames:
            self._render(self._frames[self._cursor], self._cursor)

    def _schedule(self) -> None:
        if self._state != PlaybackState.PLAYING or len(self._frames) <= 1:
            return
        self._token += 1
        timer = self._timer_factory(self.delay_ms / 1000, partial(self._advance, self._token))
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        # Bumping the token also neutralizes a callback already in flight.
        self._token += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _advance(self, token: int) -> None:
        with self._lock:
            if token != self._token or self._closed or self._state != PlaybackState.PLAYING:
                return
            self._timer = None
            if len(self._frames) <= 1:
                return
            self._cursor = (self._cursor + 1) % len(self._frames)
            self._render_current()
            self._schedule()
