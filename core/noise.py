"""
Lineboil — Value Noise
2D value noise over an integer lattice. Each cell (X, Y) seeds its own
generator with seed + X*57 + Y*131 and draws four corner values in order:
top-left, top-right, bottom-left, bottom-right. Offsets inside the cell are
smoothstepped and the corners bilinearly blended.

value_noise() is the scalar reference. value_noise_grid() evaluates whole
coordinate arrays through a lattice table and matches the scalar form bit
for bit.
"""

import math

import numpy as np

from core.prng import SeededRandom, MULTIPLIER, INCREMENT, MODULUS

CELL_X_STRIDE = 57
CELL_Y_STRIDE = 131


def cell_seed(seed: int, cell_x: int, cell_y: int) -> int:
    return seed + cell_x * CELL_X_STRIDE + cell_y * CELL_Y_STRIDE


def lattice_values(seed: int, cell_x: int, cell_y: int) -> tuple[float, float, float, float]:
    """Corner values (tl, tr, bl, br) for one lattice cell."""
    rng = SeededRandom(cell_seed(seed, cell_x, cell_y))
    return rng.next(), rng.next(), rng.next(), rng.next()


def smoothstep(t):
    return t * t * (3 - 2 * t)


def _lerp(a, b, t):
    return a + t * (b - a)


def value_noise(x: float, y: float, seed: int) -> float:
    """Sample the noise field at (x, y). Result lies in [0, 1)."""
    cell_x = math.floor(x)
    cell_y = math.floor(y)
    xf = x - cell_x
    yf = y - cell_y

    tl, tr, bl, br = lattice_values(seed, cell_x, cell_y)

    sx = smoothstep(xf)
    sy = smoothstep(yf)
    top = _lerp(tl, tr, sx)
    bottom = _lerp(bl, br, sx)
    return _lerp(top, bottom, sy)


def lattice_table(seed: int, cells_x: np.ndarray, cells_y: np.ndarray) -> np.ndarray:
    """Corner values for every (cells_y[j], cells_x[i]) pair.

    Returns:
        (len(cells_y), len(cells_x), 4) float64 array of tl, tr, bl, br.
        Identical to calling lattice_values() per cell.
    """
    # Reduce modulo first so the int64 arithmetic below cannot overflow.
    base = int(seed) % MODULUS
    cx = np.asarray(cells_x, dtype=np.int64)
    cy = np.asarray(cells_y, dtype=np.int64)
    state = (base + cx[np.newaxis, :] * CELL_X_STRIDE
             + cy[:, np.newaxis] * CELL_Y_STRIDE) % MODULUS

    table = np.empty(state.shape + (4,), dtype=np.float64)
    for corner in range(4):
        state = (state * MULTIPLIER + INCREMENT) % MODULUS
        table[..., corner] = state / MODULUS
    return table


def value_noise_grid(xs: np.ndarray, ys: np.ndarray, seed: int) -> np.ndarray:
    """Vectorized value_noise over broadcastable coordinate arrays."""
    xs, ys = np.broadcast_arrays(np.asarray(xs, dtype=np.float64),
                                 np.asarray(ys, dtype=np.float64))
    if xs.size == 0:
        return np.zeros(xs.shape, dtype=np.float64)

    fx = np.floor(xs)
    fy = np.floor(ys)
    cell_x = fx.astype(np.int64)
    cell_y = fy.astype(np.int64)
    xf = xs - fx
    yf = ys - fy

    x0 = int(cell_x.min())
    y0 = int(cell_y.min())
    table = lattice_table(
        seed,
        np.arange(x0, int(cell_x.max()) + 1),
        np.arange(y0, int(cell_y.max()) + 1),
    )
    corners = table[cell_y - y0, cell_x - x0]

    sx = smoothstep(xf)
    sy = smoothstep(yf)
    top = _lerp(corners[..., 0], corners[..., 1], sx)
    bottom = _lerp(corners[..., 2], corners[..., 3], sx)
    return _lerp(top, bottom, sy)
