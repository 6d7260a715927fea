"""
Lineboil — Boil Displacement
Per-pixel nearest-neighbor displacement driven by value noise. Each frame
index gets its own noise seed, so cycling the frames makes the linework
crawl the way hand-redrawn animation does.
"""

import math

import numpy as np

from core.noise import value_noise, value_noise_grid
from core.params import frame_seed

# Y displacement samples the same field shifted by this much.
AXIS_DECORRELATION = 100


def _round_half_up(values):
    """Round with .5 going toward +inf, not to even."""
    return np.floor(values + 0.5)


def displacement_field(width: int, height: int, jitter_strength: float = 2.0,
                       noise_scale: float = 0.05, seed: int = 1,
                       frame_index: int = 0) -> tuple[np.ndarray, np.ndarray]:
    """Source coordinates every destination pixel samples from.

    Returns:
        (src_x, src_y) int64 arrays of shape (height, width). Values may fall
        outside the image; those pixels stay transparent.
    """
    fseed = frame_seed(seed, frame_index)
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)

    nx = value_noise_grid(xs * noise_scale, ys * noise_scale, fseed)
    ny = value_noise_grid(xs * noise_scale + AXIS_DECORRELATION,
                          ys * noise_scale + AXIS_DECORRELATION, fseed)

    offset_x = (nx - 0.5) * 2 * jitter_strength
    offset_y = (ny - 0.5) * 2 * jitter_strength

    src_x = _round_half_up(xs + offset_x).astype(np.int64)
    src_y = _round_half_up(ys + offset_y).astype(np.int64)
    return src_x, src_y


def source_pixel(x: int, y: int, jitter_strength: float, noise_scale: float,
                 seed: int, frame_index: int) -> tuple[int, int]:
    """Scalar form of displacement_field for a single destination pixel."""
    fseed = frame_seed(seed, frame_index)
    nx = value_noise(x * noise_scale, y * noise_scale, fseed)
    ny = value_noise(x * noise_scale + AXIS_DECORRELATION,
                     y * noise_scale + AXIS_DECORRELATION, fseed)
    offset_x = (nx - 0.5) * 2 * jitter_strength
    offset_y = (ny - 0.5) * 2 * jitter_strength
    return math.floor(x + offset_x + 0.5), math.floor(y + offset_y + 0.5)


def boil(frame: np.ndarray, jitter_strength: float = 2.0, noise_scale: float = 0.05,
         seed: int = 1, frame_index: int = 0) -> np.ndarray:
    """Jitter an RGBA frame by per-pixel noise displacement.

    Args:
        frame: (H, W, 4) uint8 RGBA array. Not modified.
        jitter_strength: Maximum displacement in pixels.
        noise_scale: Noise frequency.
        seed: Noise seed.
        frame_index: Loop position; offsets the seed by 1000 per frame.

    Returns:
        New (H, W, 4) array. Pixels whose source falls outside the image
        are (0, 0, 0, 0) rather than clamped or wrapped.
    """
    h, w = frame.shape[:2]
    src_x, src_y = displacement_field(w, h, jitter_strength, noise_scale,
                                      seed, frame_index)
    inside = (src_x >= 0) & (src_x < w) & (src_y >= 0) & (src_y < h)

    result = np.zeros_like(frame)
    result[inside] = frame[src_y[inside], src_x[inside]]
    return result

