"""
Lineboil — Built-in Presets
Named parameter sets for common boil looks.

Categories:
    Subtle      — Barely-there wobble for clean line art
    Classic     — The Saturday-morning redraw look
    Extreme     — Loose, shaky, deliberately unstable
"""

from core.params import BoilParams

BUILT_IN_PRESETS = [
    # =========================================================================
    # SUBTLE
    # =========================================================================
    {
        "name": "Breathing",
        "description": "One-pixel drift over a slow three-frame loop. Keeps ink lines "
                       "alive without anyone noticing why.",
        "category": "Subtle",
        "params": {"frame_count": 3, "jitter_strength": 1.0, "noise_scale": 0.03, "speed_fps": 6},
        "tags": ["gentle", "slow", "line-art"],
    },
    {
        "name": "Clean Sticker",
        "description": "Light boil with the paper background punched out. Made for "
                       "scanned drawings on white.",
        "category": "Subtle",
        "params": {"frame_count": 4, "jitter_strength": 1.5, "noise_scale": 0.05,
                   "speed_fps": 8, "remove_white_bg": True, "white_threshold": 230},
        "tags": ["sticker", "transparent", "scan"],
    },

    # =========================================================================
    # CLASSIC
    # =========================================================================
    {
        "name": "Saturday Morning",
        "description": "Four drawings on twos. The default hand-redrawn crawl.",
        "category": "Classic",
        "params": {"frame_count": 4, "jitter_strength": 2.0, "noise_scale": 0.05, "speed_fps": 12},
        "tags": ["cartoon", "twos", "default"],
    },
    {
        "name": "Pencil Test",
        "description": "Fine-grained wobble at a jittery rate, like an unpolished "
                       "pencil test shot frame by frame.",
        "category": "Classic",
        "params": {"frame_count": 6, "jitter_strength": 2.5, "noise_scale": 0.12, "speed_fps": 12},
        "tags": ["pencil", "rough", "sketch"],
    },

    # =========================================================================
    # EXTREME
    # =========================================================================
    {
        "name": "Nervous Wreck",
        "description": "Big, fast displacement. Lines tear at the frame edges.",
        "category": "Extreme",
        "params": {"frame_count": 8, "jitter_strength": 6.0, "noise_scale": 0.2, "speed_fps": 18},
        "tags": ["shaky", "chaotic", "fast"],
    },
    {
        "name": "Melting",
        "description": "Broad low-frequency sway with heavy jitter. Reads as liquid "
                       "rather than redrawn.",
        "category": "Extreme",
        "params": {"frame_count": 10, "jitter_strength": 9.0, "noise_scale": 0.01, "speed_fps": 6},
        "tags": ["liquid", "sway", "slow"],
    },
]


def preset_slug(name: str) -> str:
    return name.lower().replace(" ", "-")


def list_presets(category: str = None) -> list[dict]:
    """List presets, optionally filtered by category."""
    return [p for p in BUILT_IN_PRESETS if category is None or p["category"] == category]


def get_preset(name: str) -> BoilParams:
    """Build BoilParams for a preset by display name or slug.

    Raises:
        KeyError: Unknown preset.
    """
    key = preset_slug(name)
    for preset in BUILT_IN_PRESETS:
        if preset_slug(preset["name"]) == key:
            return BoilParams(**preset["params"])
    available = ", ".join(preset_slug(p["name"]) for p in BUILT_IN_PRESETS)
    raise KeyError(f"Unknown preset: {name}. Available: {available}")
