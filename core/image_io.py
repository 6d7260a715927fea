"""
Lineboil — Image I/O
Decodes uploaded rasters into (H, W, 4) uint8 RGBA arrays and writes frames
back out as PNG. Pillow does the codec work.
"""

from io import BytesIO
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from core.safety import MAX_PIXELS


class DecodeError(Exception):
    """Raised when a source image can't be decoded."""
    pass


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes into an RGBA array.

    Raises:
        DecodeError: If the bytes are not a readable image, or the image is
            empty or larger than MAX_PIXELS.
    """
    if not data:
        raise DecodeError("Empty image data")
    try:
        with Image.open(BytesIO(data)) as img:
            width, height = img.size
            if width * height > MAX_PIXELS:
                raise DecodeError(
                    f"Image is {width}x{height} ({width * height} px), "
                    f"max is {MAX_PIXELS} px. Downscale it first."
                )
            img.load()
            rgba = img.convert("RGBA")
    except DecodeError:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise DecodeError(f"Could not decode image: {e}") from e

    array = np.array(rgba, dtype=np.uint8)
    if array.shape[0] == 0 or array.shape[1] == 0:
        raise DecodeError("Image has zero width or height")
    return array


def load_image(image_path: str) -> np.ndarray:
    """Load an image file as an (H, W, 4) uint8 RGBA array."""
    path = Path(image_path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DecodeError(f"Could not read {path}: {e}") from e
    return decode_image(data)


def save_frame(array: np.ndarray, output_path: str):
    """Save an (H, W, 4) RGBA array as PNG."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.fromarray(np.ascontiguousarray(array, dtype=np.uint8))
    img.save(str(output_path), format="PNG")
    return output_path


def frame_to_png_bytes(array: np.ndarray) -> bytes:
    """Encode an RGBA frame as PNG bytes (for HTTP responses)."""
    buf = BytesIO()
    Image.fromarray(np.ascontiguousarray(array, dtype=np.uint8)).save(buf, format="PNG")
    return buf.getvalue()
