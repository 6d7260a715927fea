"""
Lineboil — Export

Packs a FrameSequence into raw buffers plus a uniform delay list and hands
it to a multi-frame encoder. Encoders are pluggable; the defaults write
APNG (lossless when color_count=0) and GIF through Pillow.

One export runs at a time. A second export while one is in flight is
rejected, not queued.
"""

from __future__ import annotations

import math
import os
import tempfile
import threading
from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from pathlib import Path

import numpy as np
from PIL import Image
from pydantic import BaseModel, Field


class EncoderUnavailable(Exception):
    """Raised when export is attempted before an encoder is loaded."""
    pass


class EncodeFailure(Exception):
    """Raised when the encoder fails. No output is produced."""
    pass


class ExportBusyError(Exception):
    """Raised when an export is requested while another is running."""
    pass


class ExportFormat(str, Enum):
    """Output container."""
    APNG = "apng"  # Animated PNG -- full alpha, lossless by default
    GIF = "gif"    # Animated GIF -- 1-bit alpha, 256 colors max


class ExportSettings(BaseModel):
    """User-facing export options."""
    format: ExportFormat = Field(
        default=ExportFormat.APNG,
        description="Container format.",
    )
    color_count: int = Field(
        default=0,
        ge=0,
        le=256,
        description="Palette size. 0 = lossless (APNG) / full 256-color palette (GIF).",
    )
    filename: str = Field(
        default="lineboil",
        min_length=1,
        max_length=100,
        pattern=r"^[\w\- ]+$",
        description="Download name without extension.",
    )

    def get_output_extension(self) -> str:
        return ".gif" if self.format == ExportFormat.GIF else ".png"

    def get_media_type(self) -> str:
        return "image/gif" if self.format == ExportFormat.GIF else "image/apng"


@dataclass(frozen=True)
class PackedAnimation:
    """Raw buffers ready for a multi-frame encoder."""
    frames: list
    width: int
    height: int
    delays_ms: list


def pack(sequence, speed_fps: int) -> PackedAnimation:
    """Collect frame buffers and a uniform per-frame delay of 1000/speed_fps ms."""
    if speed_fps <= 0:
        raise ValueError(f"speed_fps must be positive, got {speed_fps}")
    frames = list(sequence)
    delay = 1000 / speed_fps
    return PackedAnimation(
        frames=frames,
        width=sequence.width,
        height=sequence.height,
        delays_ms=[delay] * len(frames),
    )


def _rounded_delays(delays_ms) -> list[int]:
    # Half up, same as frame synthesis: 62.5ms -> 63ms
    return [math.floor(d + 0.5) for d in delays_ms]


def _to_images(frames, color_count: int) -> list[Image.Image]:
    images = []
    for frame in frames:
        img = Image.fromarray(np.ascontiguousarray(frame, dtype=np.uint8))
        if color_count > 0:
            img = img.quantize(colors=color_count, method=Image.Quantize.FASTOCTREE).convert("RGBA")
        images.append(img)
    return images


# Palette slot reserved for transparent pixels in GIF frames.
GIF_TRANSPARENT_INDEX = 255
GIF_ALPHA_CUTOFF = 128


def _to_gif_frames(frames, colors: int) -> list[Image.Image]:
    """Palette frames with 1-bit transparency, one GIF frame per loop frame.

    Pillow folds a frame into the previous one when their pixels compare
    equal. A frame identical to its predecessor gets the red channel of one
    palette color nudged by 1 so it is written as its own frame.
    """
    images = []
    previous = None
    for frame in frames:
        frame = np.ascontiguousarray(frame, dtype=np.uint8)
        h, w = frame.shape[:2]
        quantized = Image.fromarray(np.ascontiguousarray(frame[:, :, :3])).quantize(
            colors=colors, method=Image.Quantize.FASTOCTREE,
        )
        indices = np.array(quantized, dtype=np.uint8)
        indices[frame[:, :, 3] < GIF_ALPHA_CUTOFF] = GIF_TRANSPARENT_INDEX

        palette = list(quantized.getpalette() or [])[:768]
        palette += [0] * (768 - len(palette))

        if (previous is not None and palette == previous[1]
                and np.array_equal(indices, previous[0])):
            opaque = indices[indices != GIF_TRANSPARENT_INDEX]
            slot = int(opaque[0]) if opaque.size else GIF_TRANSPARENT_INDEX
            palette[slot * 3] ^= 1

        img = Image.frombytes("P", (w, h), indices.tobytes())
        img.putpalette(palette)
        img.info["transparency"] = GIF_TRANSPARENT_INDEX
        images.append(img)
        previous = (indices, palette)
    return images


class PillowApngEncoder:
    """APNG via Pillow. Each frame replaces the previous one (no blending)."""

    name = "apng"

    def encode(self, frames, width: int, height: int, color_count: int, delays_ms) -> bytes:
        images = _to_images(frames, color_count)
        buf = BytesIO()
        images[0].save(
            buf,
            format="PNG",
            save_all=True,
            append_images=images[1:],
            duration=_rounded_delays(delays_ms),
            loop=0,
            disposal=1,  # APNG_DISPOSE_OP_BACKGROUND
            blend=0,     # APNG_BLEND_OP_SOURCE
        )
        return buf.getvalue()


class PillowGifEncoder:
    """Animated GIF via Pillow.

    Pixels with alpha below 128 become transparent; everything else is
    opaque. One palette slot is kept for transparency, so at most 255
    colors are used per frame.
    """

    name = "gif"

    def encode(self, frames, width: int, height: int, color_count: int, delays_ms) -> bytes:
        colors = GIF_TRANSPARENT_INDEX if color_count <= 0 else max(2, min(GIF_TRANSPARENT_INDEX, color_count))
        images = _to_gif_frames(frames, colors)
        buf = BytesIO()
        images[0].save(
            buf,
            format="GIF",
            save_all=True,
            append_images=images[1:],
            duration=_rounded_delays(delays_ms),
            loop=0,
            disposal=2,
            optimize=False,
            transparency=GIF_TRANSPARENT_INDEX,
        )
        return buf.getvalue()


DEFAULT_ENCODERS = {
    ExportFormat.APNG: PillowApngEncoder,
    ExportFormat.GIF: PillowGifEncoder,
}


def load_encoders() -> dict:
    return {fmt: cls() for fmt, cls in DEFAULT_ENCODERS.items()}


class Exporter:
    """Single-flight export gate around an encoder."""

    def __init__(self, encoder=None):
        self.encoder = encoder
        self._busy = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def export(self, sequence, speed_fps: int, color_count: int = 0, encoder=None) -> bytes:
        """Pack and encode `sequence`.

        `encoder` overrides the default one for this call only. The busy
        gate is shared either way.

        Raises:
            EncoderUnavailable: No encoder loaded. Nothing is attempted.
            ExportBusyError: Another export is in flight.
            EncodeFailure: The encoder raised or returned nothing.
        """
        encoder = encoder if encoder is not None else self.encoder
        if encoder is None:
            raise EncoderUnavailable("Encoder not loaded yet. Try again in a moment.")
        if sequence is None or len(sequence) == 0:
            raise EncodeFailure("Nothing to export: no frames generated")
        if not self._busy.acquire(blocking=False):
            raise ExportBusyError("An export is already in progress")
        try:
            packed = pack(sequence, speed_fps)
            try:
                data = encoder.encode(
                    packed.frames, packed.width, packed.height,
                    color_count, packed.delays_ms,
                )
            except Exception as e:
                raise EncodeFailure(f"Encoder failed: {e}") from e
            if not data:
                raise EncodeFailure("Encoder returned no data")
            return data
        finally:
            self._busy.release()

    def export_to_file(self, sequence, speed_fps: int, output_path, color_count: int = 0) -> Path:
        """Export to disk. The file only appears once encoding succeeded."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        data = self.export(sequence, speed_fps, color_count)

        fd, tmp_name = tempfile.mkstemp(dir=str(output_path.parent), suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, output_path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return output_path
