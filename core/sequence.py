"""
Lineboil — Frame Sequence Store
Regenerates the full set of boil frames from the base image whenever the
image or a frame-affecting parameter changes.

Regeneration is an explicit dirty -> recompute state machine:
  1. set_base() / set_params() record inputs and, if needed, request a pass
  2. each request bumps a generation number
  3. run_pending() recomputes against the latest snapshot; a pass whose
     generation has been superseded is cancelled between frames and its
     result thrown away
Consumers only ever see a complete sequence, swapped in under a lock.
"""

import threading

import numpy as np

from core.params import BoilParams
from effects import apply_effect


class CanvasContextError(Exception):
    """Raised when the base buffer can't be used as a drawing surface."""
    pass


class RegenerationCancelled(Exception):
    """Raised inside a regeneration pass that has been superseded."""
    pass


class FrameSequence:
    """Immutable, ordered set of loop frames.

    All frames share the base image's width and height. Index order is
    generation order is playback order.
    """

    __slots__ = ("_frames", "width", "height", "params", "generation")

    def __init__(self, frames, width: int, height: int, params: BoilParams,
                 generation: int = 0):
        self._frames = tuple(frames)
        self.width = width
        self.height = height
        self.params = params
        self.generation = generation

    @property
    def frames(self) -> tuple:
        return self._frames

    def __len__(self):
        return len(self._frames)

    def __getitem__(self, index):
        return self._frames[index]

    def __iter__(self):
        return iter(self._frames)

    def __repr__(self):
        return (f"FrameSequence({len(self)} frames, {self.width}x{self.height}, "
                f"generation={self.generation})")


def _check_surface(base) -> None:
    if not isinstance(base, np.ndarray) or base.dtype != np.uint8:
        raise CanvasContextError("Base image must be a uint8 numpy array")
    if base.ndim != 3 or base.shape[2] != 4:
        raise CanvasContextError(f"Base image must be (H, W, 4) RGBA, got shape {base.shape}")
    if base.shape[0] == 0 or base.shape[1] == 0:
        raise CanvasContextError("Base image has zero width or height")


def regenerate(base: np.ndarray, params: BoilParams, should_cancel=None,
               progress=None, generation: int = 0) -> FrameSequence:
    """Build every frame of the loop from scratch.

    Args:
        base: (H, W, 4) uint8 RGBA base image. Never modified.
        params: Parameter snapshot for this pass.
        should_cancel: Optional fn() -> bool, polled before each frame.
        progress: Optional fn(done, total).
        generation: Tag stored on the resulting sequence.

    Raises:
        CanvasContextError: If `base` is not a usable RGBA surface.
        RegenerationCancelled: If should_cancel() returned True.
    """
    _check_surface(base)
    h, w = base.shape[:2]

    # Matte runs once, on a copy owned by this pass.
    if params.remove_white_bg:
        source = apply_effect(base, "remove_white", threshold=params.white_threshold)
    else:
        source = base.copy()
    source.setflags(write=False)

    total = params.frame_count
    frames = []
    for i in range(total):
        if should_cancel is not None and should_cancel():
            raise RegenerationCancelled(f"Generation {generation} superseded at frame {i}")
        frame = apply_effect(
            source, "boil",
            jitter_strength=params.jitter_strength,
            noise_scale=params.noise_scale,
            seed=params.seed,
            frame_index=i,
        )
        frame.setflags(write=False)
        frames.append(frame)
        if progress is not None:
            progress(i + 1, total)

    return FrameSequence(frames, w, h, params, generation)


class FrameStore:
    """Holds the current base image, parameters and last-good sequence."""

    def __init__(self, params: BoilParams | None = None):
        self._lock = threading.Lock()
        self._worker_lock = threading.Lock()
        self._base = None
        self._params = params or BoilParams()
        self._sequence = None
        self._requested = 0
        self._completed = 0
        self._running = None
        self._error = None
        self._listeners = []
        self._param_listeners = []

    # --- inputs ---

    def set_base(self, base: np.ndarray) -> int:
        """Install a new base image and request regeneration.

        The store keeps its own read-only copy.

        Returns:
            The requested generation number.
        """
        _check_surface(base)
        owned = np.array(base, dtype=np.uint8, copy=True)
        owned.setflags(write=False)
        with self._lock:
            self._base = owned
            return self._request_locked()

    def set_params(self, params: BoilParams) -> bool:
        """Install a new parameter snapshot.

        Returns:
            True if a regeneration was requested. A speed_fps-only change
            returns False and leaves the current frames in place.

        Params listeners are called with the new snapshot whenever it
        differs from the old one, so playback picks up speed changes.
        """
        with self._lock:
            previous = self._params
            self._params = params
            regenerating = self._base is not None and params.needs_regeneration(previous)
            if regenerating:
                self._request_locked()
            listeners = list(self._param_listeners) if params != previous else []

        for on_params in listeners:
            on_params(params)
        return regenerating

    def request(self) -> int:
        """Force a regeneration against the current inputs."""
        with self._lock:
            return self._request_locked()

    def _request_locked(self) -> int:
        self._requested += 1
        return self._requested

    # --- state ---

    @property
    def params(self) -> BoilParams:
        with self._lock:
            return self._params

    @property
    def base(self):
        with self._lock:
            return self._base

    @property
    def sequence(self):
        """Last-good FrameSequence, or None."""
        with self._lock:
            return self._sequence

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy_locked()

    def _busy_locked(self) -> bool:
        return (self._running is not None
                or (self._base is not None and self._requested > self._completed))

    def status(self) -> dict:
        """Thread-safe snapshot for polling."""
        with self._lock:
            seq = self._sequence
            return {
                "busy": self._busy_locked(),
                "generation": seq.generation if seq is not None else 0,
                "requested": self._requested,
                "frames": len(seq) if seq is not None else 0,
                "width": seq.width if seq is not None else 0,
                "height": seq.height if seq is not None else 0,
                "error": self._error,
            }

    def subscribe(self, on_replace) -> None:
        """Call on_replace(sequence) after every new sequence is installed."""
        with self._lock:
            self._listeners.append(on_replace)

    def unsubscribe(self, on_replace) -> None:
        with self._lock:
            if on_replace in self._listeners:
                self._listeners.remove(on_replace)

    def subscribe_params(self, on_params) -> None:
        """Call on_params(params) after every parameter change."""
        with self._lock:
            self._param_listeners.append(on_params)

    def unsubscribe_params(self, on_params) -> None:
        with self._lock:
            if on_params in self._param_listeners:
                self._param_listeners.remove(on_params)

    def _superseded(self, generation: int) -> bool:
        with self._lock:
            return self._requested != generation

    # --- work ---

    def run_pending(self, progress=None):
        """Process outstanding requests until the store is clean.

        Only one caller does work at a time; a second concurrent caller
        returns None immediately and its request is picked up by the
        running loop.

        Returns:
            The newly installed FrameSequence, or None if nothing ran.

        Raises:
            CanvasContextError: The latest pass failed. The previous
                sequence stays installed.
        """
        if not self._worker_lock.acquire(blocking=False):
            return None
        try:
            installed = None
            while True:
                with self._lock:
                    if self._base is None or self._requested <= self._completed:
                        return installed
                    generation = self._requested
                    base = self._base
                    params = self._params
                    self._running = generation

                try:
                    seq = regenerate(
                        base, params,
                        should_cancel=lambda: self._superseded(generation),
                        progress=progress,
                        generation=generation,
                    )
                except RegenerationCancelled:
                    with self._lock:
                        self._running = None
                    continue
                except CanvasContextError as e:
                    with self._lock:
                        self._running = None
                        self._error = str(e)
                        superseded = self._requested != generation
                        if not superseded:
                            self._completed = generation
                    if superseded:
                        continue
                    raise

                with self._lock:
                    self._running = None
                    if self._requested != generation:
                        # Finished, but a newer request arrived meanwhile.
                        continue
                    self._sequence = seq
                    self._completed = generation
                    self._error = None
                    listeners = list(self._listeners)

                for on_replace in listeners:
                    on_replace(seq)
                installed = seq
        finally:
            self._worker_lock.release()
