#!/usr/bin/env python3
"""
Lineboil — Server API Tests

Covers:
1. Upload (accepted types, size cap, decode failures keep the old image)
2. Parameter updates (speed-only vs frame-affecting, presets, validation)
3. Frame and playback endpoints
4. Export (download, encoder missing, busy, encoder failure)

Run with: pytest tests/test_server.py -v
"""

import asyncio
import os
import sys
from io import BytesIO

import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi import HTTPException
from starlette.datastructures import UploadFile
from starlette.testclient import TestClient
from core.export import ExportFormat
from conftest import _make_test_frame


@pytest.fixture
def client(server_state):
    return TestClient(server_state.app)


def _png_bytes(width=32, height=24):
    buf = BytesIO()
    Image.fromarray(_make_test_frame(width, height)).save(buf, format="PNG")
    return buf.getvalue()


def _upload(client, name="drawing.png", data=None):
    data = _png_bytes() if data is None else data
    return client.post("/api/upload", files={"file": (name, data, "image/png")})


class FailingEncoder:
    def encode(self, frames, width, height, color_count, delays_ms):
        raise RuntimeError("disk full")


# ===========================================================================
# HEALTH / STATUS
# ===========================================================================

def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "encoders": ["apng", "gif"]}


def test_status_before_upload(client):
    data = client.get("/api/status").json()
    assert data["frames"] == 0
    assert data["busy"] is False
    assert data["source_name"] is None
    assert data["export_busy"] is False


# ===========================================================================
# UPLOAD
# ===========================================================================

def test_upload_generates_sequence(client):
    resp = _upload(client)
    assert resp.status_code == 200
    body = resp.json()
    assert (body["width"], body["height"]) == (32, 24)
    assert body["sequence"]["frames"] == 4
    assert body["sequence"]["busy"] is False

    status = client.get("/api/status").json()
    assert status["source_name"] == "drawing.png"


def test_upload_without_filename(server_state):
    with pytest.raises(HTTPException) as exc:
        asyncio.run(server_state.upload_image(UploadFile(BytesIO(_png_bytes()))))
    assert exc.value.status_code == 400
    assert exc.value.detail["code"] == "NO_FILENAME"
    assert server_state._store.base is None


def test_upload_rejects_unsupported_type(client):
    resp = _upload(client, name="notes.txt", data=b"hello")
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "UNSUPPORTED_TYPE"
    assert client.get("/api/status").json()["source_name"] is None


def test_upload_too_large(client, monkeypatch, server_state):
    monkeypatch.setattr(server_state, "MAX_UPLOAD_SIZE", 16)
    resp = _upload(client)
    assert resp.status_code == 413
    assert resp.json()["detail"]["code"] == "FILE_TOO_LARGE"


def test_decode_failure_keeps_previous_image(client):
    assert _upload(client, name="first.png").status_code == 200
    before = client.get("/api/frame/0").content

    resp = _upload(client, name="broken.png", data=b"\x89PNG not really")
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "DECODE_FAILED"

    status = client.get("/api/status").json()
    assert status["source_name"] == "first.png"
    assert status["frames"] == 4
    assert client.get("/api/frame/0").content == before


def test_upload_replaces_image(client):
    _upload(client)
    resp = _upload(client, name="small.png", data=_png_bytes(10, 8))
    assert resp.json()["sequence"]["width"] == 10
    assert resp.json()["sequence"]["height"] == 8


# ===========================================================================
# PARAMETERS
# ===========================================================================

def test_get_params_defaults(client):
    data = client.get("/api/params").json()
    assert data["frame_count"] == 4
    assert data["speed_fps"] == 8


def test_speed_change_does_not_regenerate(client):
    _upload(client)
    gen = client.get("/api/status").json()["generation"]

    resp = client.post("/api/params", json={"speed_fps": 20})
    assert resp.status_code == 200
    body = resp.json()
    assert body["regenerated"] is False
    assert body["params"]["speed_fps"] == 20
    assert client.get("/api/status").json()["generation"] == gen
    assert client.get("/api/playback").json()["delay_ms"] == 50.0


def test_seed_change_regenerates(client):
    _upload(client)
    gen = client.get("/api/status").json()["generation"]

    body = client.post("/api/params", json={"seed": 42}).json()
    assert body["regenerated"] is True
    assert body["sequence"]["generation"] > gen


def test_frame_count_change(client):
    _upload(client)
    body = client.post("/api/params", json={"frame_count": 7}).json()
    assert body["sequence"]["frames"] == 7
    assert client.get("/api/playback").json()["frames"] == 7


def test_params_before_upload_are_kept(client):
    body = client.post("/api/params", json={"frame_count": 3}).json()
    assert body["regenerated"] is False
    assert _upload(client).json()["sequence"]["frames"] == 3


def test_invalid_params_rejected(client):
    _upload(client)
    resp = client.post("/api/params", json={"frame_count": 50})
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "INVALID_PARAMS"
    assert client.get("/api/params").json()["frame_count"] == 4


def test_apply_preset(client):
    body = client.post("/api/params", json={"preset": "clean-sticker"}).json()
    assert body["params"]["remove_white_bg"] is True
    assert body["params"]["white_threshold"] == 230


def test_preset_with_override(client):
    body = client.post("/api/params", json={"preset": "melting", "speed_fps": 12}).json()
    assert body["params"]["frame_count"] == 10
    assert body["params"]["speed_fps"] == 12


def test_unknown_preset(client):
    resp = client.post("/api/params", json={"preset": "disco"})
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "PRESET_NOT_FOUND"


def test_list_presets(client):
    data = client.get("/api/presets").json()
    ids = [p["id"] for p in data]
    assert "saturday-morning" in ids
    assert all("params" in p for p in data)


def test_list_presets_by_category(client):
    data = client.get("/api/presets", params={"category": "Extreme"}).json()
    assert {p["id"] for p in data} == {"nervous-wreck", "melting"}
    assert client.get("/api/presets", params={"category": "Loud"}).json() == []


def test_list_effects(client):
    names = [e["name"] for e in client.get("/api/effects").json()]
    assert names == ["boil", "remove_white"]
    matte = client.get("/api/effects", params={"category": "matte"}).json()
    assert matte[0]["params"] == {"threshold": 240}


# ===========================================================================
# FRAMES / PLAYBACK
# ===========================================================================

def test_frame_without_image(client):
    resp = client.get("/api/frame/0")
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "NO_IMAGE"


def test_frame_png(client):
    _upload(client)
    resp = client.get("/api/frame/2")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.headers["x-generation"] == str(client.get("/api/status").json()["generation"])
    img = Image.open(BytesIO(resp.content))
    assert img.size == (32, 24)
    assert img.mode == "RGBA"


def test_frame_out_of_range(client):
    _upload(client)
    resp = client.get("/api/frame/4")
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "FRAME_OUT_OF_RANGE"
    assert client.get("/api/frame/-1").status_code == 404


def test_frames_differ_across_loop(client):
    _upload(client)
    first = np.array(Image.open(BytesIO(client.get("/api/frame/0").content)))
    second = np.array(Image.open(BytesIO(client.get("/api/frame/1").content)))
    assert not np.array_equal(first, second)


def test_playback_info(client):
    _upload(client)
    data = client.get("/api/playback").json()
    assert data["frames"] == 4
    assert data["speed_fps"] == 8
    assert data["delay_ms"] == 125.0
    assert data["generation"] >= 1


# ===========================================================================
# EXPORT
# ===========================================================================

def test_export_without_frames(client):
    resp = client.post("/api/export", json={})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "NO_FRAMES"


def test_export_apng(client):
    _upload(client)
    resp = client.post("/api/export", json={"format": "apng", "filename": "my loop"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/apng"
    assert 'filename="my loop.png"' in resp.headers["content-disposition"]
    assert resp.content[:8] == b"\x89PNG\r\n\x1a\n"


def test_export_gif(client):
    _upload(client)
    resp = client.post("/api/export", json={"format": "gif", "color_count": 64})
    assert resp.status_code == 200
    assert resp.content[:4] == b"GIF8"
    assert 'filename="lineboil.gif"' in resp.headers["content-disposition"]


def test_export_encoder_unavailable(client, server_state):
    _upload(client)
    server_state._state["encoders"] = {}
    resp = client.post("/api/export", json={"format": "apng"})
    assert resp.status_code == 503
    assert resp.json()["detail"]["code"] == "ENCODER_UNAVAILABLE"
    assert client.get("/api/health").json()["encoders"] == []


def test_export_busy(client, server_state):
    _upload(client)
    server_state._exporter._busy.acquire()
    try:
        resp = client.post("/api/export", json={})
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "EXPORT_BUSY"
    finally:
        server_state._exporter._busy.release()


def test_export_failure(client, server_state):
    _upload(client)
    server_state._state["encoders"] = {ExportFormat.APNG: FailingEncoder()}
    resp = client.post("/api/export", json={"format": "apng"})
    assert resp.status_code == 500
    assert resp.json()["detail"]["code"] == "EXPORT_FAILED"
    assert client.get("/api/status").json()["export_busy"] is False


def test_export_rejects_bad_filename(client):
    _upload(client)
    resp = client.post("/api/export", json={"filename": "../../etc/passwd"})
    assert resp.status_code == 422
