"""
Lineboil — White Matte Removal
Knocks paper-white backgrounds out of scanned drawings.
"""

import numpy as np


def remove_white(frame: np.ndarray, threshold: int = 240) -> np.ndarray:
    """Zero the alpha of every pixel whose R, G and B all exceed `threshold`.

    Works in place: the caller must own `frame`. Pixels at exactly the
    threshold keep their alpha.

    Args:
        frame: (H, W, 4) uint8 RGBA array.
        threshold: 0-255.

    Returns:
        The same array, for chaining.
    """
    threshold = int(max(0, min(255, threshold)))
    rgb = frame[:, :, :3]
    mask = np.all(rgb > threshold, axis=2)
    frame[:, :, 3][mask] = 0
    return frame
