"""
Lineboil — Boil Parameter Set

Immutable snapshot of every user-tunable knob. One regeneration pass
consumes one snapshot; the control surface replaces it, the engine never
mutates it.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Fields whose change invalidates the frame sequence. speed_fps is
# deliberately absent: it only changes playback timing.
REGEN_FIELDS = (
    "frame_count",
    "jitter_strength",
    "noise_scale",
    "remove_white_bg",
    "white_threshold",
    "seed",
)


class BoilParams(BaseModel):
    """Line boil parameters.

    Ranges follow the control surface sliders:
        frame_count      2-10 frames in the loop
        jitter_strength  0-10 px maximum displacement
        noise_scale      0.01-0.5 (lower = broader wobble)
        speed_fps        2-24 playback / export rate
        white_threshold  0-255, used when remove_white_bg is on
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    frame_count: int = Field(
        default=4,
        ge=2,
        le=10,
        description="Number of jittered frames in the loop.",
    )
    jitter_strength: float = Field(
        default=2.0,
        ge=0.0,
        le=10.0,
        description="Maximum pixel displacement in either axis.",
    )
    noise_scale: float = Field(
        default=0.05,
        ge=0.01,
        le=0.5,
        description="Noise frequency. Small values give broad, smooth wobble.",
    )
    speed_fps: int = Field(
        default=8,
        ge=2,
        le=24,
        description="Playback and export frame rate.",
    )
    remove_white_bg: bool = Field(
        default=False,
        description="Punch near-white pixels out to full transparency.",
    )
    white_threshold: int = Field(
        default=240,
        ge=0,
        le=255,
        description="Pixels with R, G and B all above this become transparent.",
    )
    seed: int = Field(
        default=1,
        description="Noise seed. Frame i uses seed + i*1000.",
    )

    def regen_key(self) -> tuple:
        return tuple(getattr(self, name) for name in REGEN_FIELDS)

    def needs_regeneration(self, other: BoilParams | None) -> bool:
        """True if switching from `other` to self requires new frames."""
        if other is None:
            return True
        return self.regen_key() != other.regen_key()

    def frame_delay_ms(self) -> float:
        return 1000 / self.speed_fps

    def with_updates(self, **changes) -> BoilParams:
        """Validated copy with `changes` applied."""
        data = self.model_dump()
        data.update(changes)
        return BoilParams(**data)


def frame_seed(seed: int, frame_index: int) -> int:
    """Per-frame noise seed offset."""
    return seed + frame_index * 1000
