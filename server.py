#!/usr/bin/env python3
"""
Lineboil — FastAPI Backend
Holds the current image, parameters and frame sequence for the web UI.
Playback timing runs in the browser off /api/playback; frames are served
as PNG and exports come back as a downloadable APNG/GIF.
"""

import asyncio
import sys
import os
import logging
from pathlib import Path

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fastapi import FastAPI, UploadFile, File, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, ValidationError

from core.image_io import DecodeError, decode_image, frame_to_png_bytes
from core.safety import ALLOWED_EXTENSIONS, MAX_FILE_MB
from core.sequence import FrameStore, CanvasContextError
from core.export import (
    Exporter, ExportSettings, EncoderUnavailable, EncodeFailure,
    ExportBusyError, load_encoders,
)
from effects import list_effects
from presets import get_preset, list_presets, preset_slug

HOST = "127.0.0.1"
PORT = 7861
MAX_UPLOAD_SIZE = MAX_FILE_MB * 1024 * 1024

app = FastAPI(title="Lineboil")

# In-memory state for current session
_store = FrameStore()
_exporter = Exporter()
_state = {
    "source_name": None,
    "encoders": load_encoders(),
}
_state_lock = asyncio.Lock()

# Structured error recovery hints for user-facing errors
ERROR_RECOVERY = {
    "no_image": {"code": "NO_IMAGE", "hint": "Upload an image first.", "action": "load_file"},
    "no_filename": {"code": "NO_FILENAME", "hint": "Send the image as a named file field.", "action": "load_file"},
    "no_frames": {"code": "NO_FRAMES", "hint": "Wait for frame generation to finish.", "action": "retry"},
    "file_too_large": {"code": "FILE_TOO_LARGE", "hint": f"Maximum upload is {MAX_FILE_MB}MB.", "action": None},
    "unsupported_type": {"code": "UNSUPPORTED_TYPE", "hint": "Use PNG, JPEG, GIF, BMP, WebP or TIFF.", "action": "load_file"},
    "decode_failed": {"code": "DECODE_FAILED", "hint": "The file may be corrupt. Try re-saving it as PNG.", "action": "load_file"},
    "invalid_params": {"code": "INVALID_PARAMS", "hint": "Check parameter ranges.", "action": None},
    "render_failed": {"code": "RENDER_FAILED", "hint": "Re-upload the image and try again.", "action": "load_file"},
    "frame_out_of_range": {"code": "FRAME_OUT_OF_RANGE", "hint": "Frame index past the end of the loop.", "action": None},
    "encoder_unavailable": {"code": "ENCODER_UNAVAILABLE", "hint": "The encoder is still loading. Try again shortly.", "action": "retry"},
    "export_busy": {"code": "EXPORT_BUSY", "hint": "Wait for the current export to finish.", "action": "retry"},
    "export_failed": {"code": "EXPORT_FAILED", "hint": "Try fewer colors or a different format.", "action": "retry"},
    "preset_not_found": {"code": "PRESET_NOT_FOUND", "hint": "Refresh the preset list.", "action": "refresh"},
}


def _error_detail(key: str, message: str) -> dict:
    """Build structured error detail dict for the frontend."""
    recovery = ERROR_RECOVERY.get(key, {})
    return {
        "detail": message,
        "code": recovery.get("code", "UNKNOWN"),
        "hint": recovery.get("hint", ""),
        "action": recovery.get("action"),
    }


class ParamsUpdate(BaseModel):
    """Partial parameter update. Omitted fields keep their current value."""
    frame_count: int | None = None
    jitter_strength: float | None = None
    noise_scale: float | None = None
    speed_fps: int | None = None
    remove_white_bg: bool | None = None
    white_threshold: int | None = None
    seed: int | None = None
    preset: str | None = None


async def _regenerate() -> dict:
    """Run any pending regeneration off the event loop."""
    try:
        await asyncio.to_thread(_store.run_pending)
    except CanvasContextError as e:
        logging.exception("Regeneration failed")
        raise HTTPException(status_code=500, detail=_error_detail("render_failed", str(e)))
    return _store.status()


@app.get("/api/health")
async def health_check():
    return {"status": "ok", "encoders": sorted(fmt.value for fmt in _state["encoders"])}


@app.get("/api/status")
async def status():
    result = _store.status()
    result["source_name"] = _state["source_name"]
    result["export_busy"] = _exporter.busy
    return result


@app.post("/api/upload")
async def upload_image(file: UploadFile = File(...)):
    """Upload a still image. On any failure the previous image stays loaded."""
    if not file.filename:
        raise HTTPException(status_code=400, detail=_error_detail("no_filename", "No filename provided"))
    suffix = Path(file.filename).suffix.lower()
    if suffix not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail=_error_detail(
            "unsupported_type",
            f"Unsupported file type: {suffix or '(none)'}. "
            f"Accepted: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
        ))

    chunks = []
    total_size = 0
    while chunk := await file.read(1024 * 1024):  # 1MB chunks
        total_size += len(chunk)
        if total_size > MAX_UPLOAD_SIZE:
            raise HTTPException(status_code=413, detail=_error_detail(
                "file_too_large", f"File too large. Maximum size: {MAX_FILE_MB}MB",
            ))
        chunks.append(chunk)

    try:
        base = await asyncio.to_thread(decode_image, b"".join(chunks))
    except DecodeError as e:
        raise HTTPException(status_code=400, detail=_error_detail("decode_failed", str(e)))

    async with _state_lock:
        _store.set_base(base)
        _state["source_name"] = file.filename

    result = await _regenerate()
    h, w = base.shape[:2]
    return {"status": "ok", "width": w, "height": h, "sequence": result}


@app.get("/api/params")
async def get_params():
    return _store.params.model_dump()


@app.post("/api/params")
async def update_params(update: ParamsUpdate):
    """Update parameters. Only frame-affecting changes regenerate."""
    changes = update.model_dump(exclude_none=True)
    preset_name = changes.pop("preset", None)

    current = _store.params
    try:
        if preset_name:
            current = get_preset(preset_name)
        params = current.with_updates(**changes)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=_error_detail("preset_not_found", str(e)))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_error_detail("invalid_params", str(e)))

    async with _state_lock:
        regenerating = _store.set_params(params)

    result = await _regenerate() if regenerating else _store.status()
    return {"params": params.model_dump(), "regenerated": regenerating, "sequence": result}


@app.get("/api/playback")
async def playback_info():
    """Timing for the browser-side scheduler."""
    params = _store.params
    seq = _store.sequence
    return {
        "frames": len(seq) if seq is not None else 0,
        "speed_fps": params.speed_fps,
        "delay_ms": params.frame_delay_ms(),
        "generation": seq.generation if seq is not None else 0,
    }


@app.get("/api/frame/{index}")
async def get_frame(index: int):
    seq = _store.sequence
    if seq is None:
        if _store.base is None:
            raise HTTPException(status_code=400, detail=_error_detail("no_image", "No image loaded"))
        raise HTTPException(status_code=409, detail=_error_detail("no_frames", "Frames not generated yet"))
    if not 0 <= index < len(seq):
        raise HTTPException(status_code=404, detail=_error_detail(
            "frame_out_of_range", f"Frame {index} out of range (0-{len(seq) - 1})",
        ))
    data = await asyncio.to_thread(frame_to_png_bytes, seq[index])
    return Response(content=data, media_type="image/png",
                    headers={"X-Generation": str(seq.generation)})


@app.get("/api/presets")
async def get_presets(category: str | None = None):
    """Built-in presets, optionally one category."""
    return [
        {"id": preset_slug(p["name"]), **p}
        for p in list_presets(category)
    ]


@app.get("/api/effects")
async def get_effects(category: str | None = None):
    return list_effects(category)


@app.post("/api/export")
async def export_animation(settings: ExportSettings):
    """Encode the current loop and return it as a download."""
    seq = _store.sequence
    if seq is None:
        raise HTTPException(status_code=400, detail=_error_detail("no_frames", "Nothing to export yet"))

    encoder = _state["encoders"].get(settings.format)
    if encoder is None:
        raise HTTPException(status_code=503, detail=_error_detail(
            "encoder_unavailable", f"{settings.format.value} encoder not loaded",
        ))

    try:
        data = await asyncio.to_thread(
            _exporter.export, seq, _store.params.speed_fps,
            settings.color_count, encoder,
        )
    except EncoderUnavailable as e:
        raise HTTPException(status_code=503, detail=_error_detail("encoder_unavailable", str(e)))
    except ExportBusyError as e:
        raise HTTPException(status_code=409, detail=_error_detail("export_busy", str(e)))
    except EncodeFailure as e:
        logging.exception("Export failed")
        raise HTTPException(status_code=500, detail=_error_detail("export_failed", str(e)))

    filename = f"{settings.filename}{settings.get_output_extension()}"
    return Response(
        content=data,
        media_type=settings.get_media_type(),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def start():
    import uvicorn
    print(f"Lineboil — launching at http://{HOST}:{PORT}")
    uvicorn.run(app, host=HOST, port=PORT, log_level="warning")


if __name__ == "__main__":
    start()
