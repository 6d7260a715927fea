#!/usr/bin/env python3
"""
Lineboil — Hand-Drawn Line Boil Animator
CLI entry point. Also importable as a library.

Usage:
    python lineboil.py render drawing.png -o drawing_boil.png
    python lineboil.py render drawing.png -o boil.gif --format gif --colors 64
    python lineboil.py render scan.jpg -o sticker.png --preset clean-sticker
    python lineboil.py frames drawing.png -d frames/ --frames 6 --seed 7
    python lineboil.py play drawing.png --zoom 2
    python lineboil.py list-presets
    python lineboil.py list-presets --category Subtle
    python lineboil.py list-effects
    python lineboil.py ui
"""

import sys
import os
import argparse
import time
from pathlib import Path

# Add project root to path so imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.params import BoilParams
from core.image_io import load_image, save_frame
from core.safety import preflight, output_path_for
from core.sequence import regenerate
from core.export import Exporter, ExportFormat, load_encoders
from effects import list_effects, CATEGORIES
from presets import BUILT_IN_PRESETS, get_preset, list_presets, preset_slug

__version__ = "0.1.0"

# CLI flag -> BoilParams field
_PARAM_FLAGS = {
    "frames": "frame_count",
    "jitter": "jitter_strength",
    "scale": "noise_scale",
    "fps": "speed_fps",
    "seed": "seed",
    "remove_white": "remove_white_bg",
    "threshold": "white_threshold",
}


def build_params(args) -> BoilParams:
    """Preset (if any) overlaid with explicitly passed flags."""
    params = get_preset(args.preset) if getattr(args, "preset", None) else BoilParams()
    overrides = {}
    for flag, field in _PARAM_FLAGS.items():
        value = getattr(args, flag, None)
        if value is not None and value is not False:
            overrides[field] = value
    if overrides:
        params = params.with_updates(**overrides)
    return params


def _load_source(path: str):
    info = preflight(path)
    base = load_image(info["path"])
    h, w = base.shape[:2]
    print(f"Source: {w}x{h} {info['extension']} ({info['size_mb']:.2f}MB)")
    return base


def _progress(done: int, total: int):
    print(f"\r  Generating: {done}/{total} frames", end="", flush=True)
    if done == total:
        print()


def cmd_render(args):
    """Generate the loop and export it as an animated image."""
    params = build_params(args)
    base = _load_source(args.image)

    start = time.time()
    sequence = regenerate(base, params, progress=_progress)
    print(f"  {len(sequence)} frames in {time.time() - start:.2f}s")

    fmt = ExportFormat(args.format)
    output = output_path_for(args.output, fmt.value)
    exporter = Exporter(load_encoders()[fmt])
    path = exporter.export_to_file(sequence, params.speed_fps, output, color_count=args.colors)
    size_kb = path.stat().st_size / 1024
    print(f"Output: {path} ({size_kb:.1f}KB, {params.speed_fps}fps, "
          f"{params.frame_delay_ms():.1f}ms/frame)")


def cmd_frames(args):
    """Write each boil frame as its own PNG."""
    params = build_params(args)
    base = _load_source(args.image)
    sequence = regenerate(base, params, progress=_progress)

    out_dir = Path(args.dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    for i, frame in enumerate(sequence):
        save_frame(frame, out_dir / f"frame_{i:03d}.png")
    print(f"Wrote {len(sequence)} frames to {out_dir}")


def cmd_play(args):
    """Open a live preview window."""
    from core.sequence import FrameStore
    from core.viewer import PreviewWindow

    params = build_params(args)
    base = _load_source(args.image)
    store = FrameStore(params)
    store.set_base(base)
    PreviewWindow(store, zoom=args.zoom).run()


def cmd_list_presets(args):
    """List built-in presets, optionally one category."""
    category = getattr(args, "category", None)
    presets = list_presets(category)
    if not presets:
        valid = ", ".join(sorted({p["category"] for p in BUILT_IN_PRESETS}))
        print(f"Unknown category: {category}. Available: {valid}")
        return
    print(f"\n  Presets ({len(presets)} available)")
    print(f"  {'—' * 50}")
    for p in presets:
        print(f"    {preset_slug(p['name']):20s} [{p['category']:8s}] — {p['description']}")
        params_str = ", ".join(f"{k}={v}" for k, v in p["params"].items())
        print(f"    {'':20s}   Params: {params_str}")
    print(f"\n  Usage: --preset <name> (flags override preset values)\n")


def cmd_list_effects(args):
    """List the effects frame synthesis runs through, grouped by category."""
    for cat_key, cat_label in CATEGORIES.items():
        effects = list_effects(category=cat_key)
        if not effects:
            continue
        print(f"\n  {cat_label} ({len(effects)} effects)")
        print(f"  {'—' * 50}")
        for e in effects:
            print(f"    {e['name']:15s} — {e['description']}")
            params_str = ", ".join(f"{k}={v}" for k, v in e["params"].items())
            print(f"    {'':15s}   Params: {params_str}")
    print()


def cmd_ui(args):
    """Launch the web interface."""
    from server import start
    start()


def _add_param_flags(p):
    p.add_argument("--preset", help="Start from a built-in preset (see list-presets)")
    p.add_argument("--frames", type=int, help="Frames in the loop (2-10)")
    p.add_argument("--jitter", type=float, help="Max displacement in px (0-10)")
    p.add_argument("--scale", type=float, help="Noise scale (0.01-0.5)")
    p.add_argument("--fps", type=int, help="Playback speed (2-24)")
    p.add_argument("--seed", type=int, help="Noise seed")
    p.add_argument("--remove-white", dest="remove_white", action="store_true",
                   help="Make near-white background transparent")
    p.add_argument("--threshold", type=int, help="White threshold (0-255)")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="lineboil",
        description="Lineboil — hand-drawn line boil animator",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    # render
    p = sub.add_parser("render", help="Render an animated APNG/GIF")
    p.add_argument("image", help="Source image")
    p.add_argument("-o", "--output", required=True, help="Output file")
    p.add_argument("--format", choices=[f.value for f in ExportFormat], default="apng")
    p.add_argument("--colors", type=int, default=0,
                   help="Palette size (0 = lossless APNG / full palette GIF)")
    _add_param_flags(p)

    # frames
    p = sub.add_parser("frames", help="Write each frame as a PNG")
    p.add_argument("image", help="Source image")
    p.add_argument("-d", "--dir", required=True, help="Output directory")
    _add_param_flags(p)

    # play
    p = sub.add_parser("play", help="Live preview window (requires pygame)")
    p.add_argument("image", help="Source image")
    p.add_argument("--zoom", type=int, default=1, help="Integer window zoom")
    _add_param_flags(p)

    # list-presets
    p = sub.add_parser("list-presets", help="List built-in presets")
    p.add_argument("--category", help="Only show one category (Subtle, Classic, Extreme)")

    # list-effects
    sub.add_parser("list-effects", help="List the effects behind frame synthesis")

    # ui
    sub.add_parser("ui", help="Launch the web interface")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "render": cmd_render,
        "frames": cmd_frames,
        "play": cmd_play,
        "list-presets": cmd_list_presets,
        "list-effects": cmd_list_effects,
        "ui": cmd_ui,
    }

    if args.command in commands:
        try:
            commands[args.command](args)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
