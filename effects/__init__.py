"""
Lineboil — Effects Registry
Every effect is a function: (frame: np.ndarray, **params) -> np.ndarray
operating on (H, W, 4) uint8 RGBA frames.
"""

import numpy as np

from effects.boil import boil
from effects.matte import remove_white

# Master registry: name -> (function, default_params, description)
EFFECTS = {
    # === MOTION ===
    "boil": {
        "fn": boil,
        "category": "motion",
        "params": {"jitter_strength": 2.0, "noise_scale": 0.05, "seed": 1, "frame_index": 0},
        "description": "Hand-drawn line boil: per-pixel value-noise displacement",
    },

    # === MATTE ===
    "remove_white": {
        "fn": remove_white,
        "category": "matte",
        "params": {"threshold": 240},
        "description": "Make near-white background pixels fully transparent",
    },
}

CATEGORIES = {
    "motion": "MOTION",
    "matte": "MATTE",
}


def get_effect(name: str):
    """Get an effect by name. Returns (fn, default_params).

    Raises KeyError if the effect doesn't exist.
    """
    if name not in EFFECTS:
        available = ", ".join(sorted(EFFECTS.keys()))
        raise KeyError(f"Unknown effect: {name}. Available: {available}")
    entry = EFFECTS[name]
    return entry["fn"], entry["params"].copy()


def list_effects(category: str = None) -> list[dict]:
    """List all available effects with descriptions."""
    results = []
    for name, entry in EFFECTS.items():
        if category and entry.get("category") != category:
            continue
        results.append({
            "name": name,
            "description": entry["description"],
            "params": entry["params"],
            "category": entry.get("category", "other"),
        })
    return results


def apply_effect(frame: np.ndarray, effect_name: str, **params) -> np.ndarray:
    """Apply a named effect to an RGBA frame.

    Unknown params are rejected rather than silently dropped. remove_white
    mutates its input, so it runs on a copy here.
    """
    fn, defaults = get_effect(effect_name)
    if frame.ndim != 3 or frame.shape[2] != 4:
        raise ValueError(f"Expected (H, W, 4) RGBA frame, got shape {frame.shape}")
    unknown = set(params) - set(defaults)
    if unknown:
        raise ValueError(f"Unknown params for {effect_name}: {', '.join(sorted(unknown))}")
    defaults.update(params)
    if effect_name == "remove_white":
        frame = frame.copy()
    return fn(frame, **defaults)
