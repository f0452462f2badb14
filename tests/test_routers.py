"""Tests for the HTTP surface."""

import io
import json
from unittest.mock import patch

import pytest
from PIL import Image

from conftest import FULL_SUPPORT, encode, flat_image, photo_tile, tiled
from optimizers.image_optimizer import ImageOptimizer
from schemas import PolicyOptions
from storage.local import LocalImageStorage


def _open(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def _png_file(img=None, name="test.png"):
    return {"file": (name, encode(img or flat_image()), "image/png")}


# --- /health ---


def test_health_degraded_without_modern_formats(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "degraded"
    assert body["formats"] == {"webp": False, "avif": False, "jpeg": True, "png": True}
    assert body["version"]


def test_health_ok_with_all_formats(client):
    client.app.state.optimizer = ImageOptimizer(PolicyOptions(), FULL_SUPPORT)
    assert client.get("/health").json()["status"] == "ok"


def test_request_id_echoed(client):
    resp = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert resp.headers["X-Request-ID"] == "abc-123"


def test_request_id_generated(client):
    assert len(client.get("/health").headers["X-Request-ID"]) == 36


# --- /optimize ---


def test_optimize_returns_bytes_and_headers(client):
    resp = client.post("/optimize", files=_png_file(flat_image((120, 80))))

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.headers["X-Output-Format"] == "png"
    assert resp.headers["X-Output-Dimensions"] == "120x80"
    assert int(resp.headers["X-Optimized-Size"]) == len(resp.content)
    assert resp.headers["X-Applied-Quality"] == "0.75"
    assert "X-Compression-Ratio" in resp.headers
    assert "X-Reduction-Percent" in resp.headers
    assert _open(resp.content).size == (120, 80)


def test_optimize_with_options(client):
    resp = client.post(
        "/optimize",
        files=_png_file(flat_image((200, 100))),
        data={"options": json.dumps({"max_width": 50})},
    )
    assert resp.status_code == 200
    assert resp.headers["X-Output-Dimensions"] == "50x25"


def test_optimize_with_preset(client):
    photo = encode(tiled(photo_tile(), (300, 200)), "JPEG", quality=95)
    resp = client.post(
        "/optimize",
        files={"file": ("p.jpg", photo, "image/jpeg")},
        data={"preset": "high"},
    )
    assert resp.status_code == 200
    assert resp.headers["X-Output-Format"] == "jpeg"
    # high preset: 0.7 + 0.1 for complexity, capped at 0.85
    assert resp.headers["X-Applied-Quality"] == "0.8"


@pytest.mark.parametrize(
    "data",
    [
        {"options": "not json"},
        {"options": "[1, 2]"},
        {"options": json.dumps({"default_quality": 5})},
        {"options": json.dumps({"unknown": 1})},
        {"preset": "ultra"},
    ],
)
def test_optimize_bad_options_400(client, data):
    resp = client.post("/optimize", files=_png_file(), data=data)
    assert resp.status_code == 400
    assert resp.json()["error"] == "bad_request"


def test_optimize_garbage_415(client, garbage):
    resp = client.post("/optimize", files={"file": ("x.png", garbage, "image/png")})
    assert resp.status_code == 415
    assert resp.json()["error"] == "unsupported_format"


def test_optimize_truncated_422(client):
    data = encode(photo_tile())
    resp = client.post(
        "/optimize", files={"file": ("x.png", data[: len(data) // 2], "image/png")}
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "decode_failed"


def test_optimize_too_large_413(client, flat_png):
    with patch("security.file_validation.settings.max_file_size_bytes", 10):
        resp = client.post("/optimize", files={"file": ("x.png", flat_png, "image/png")})
    assert resp.status_code == 413


def test_convert_format(client):
    resp = client.post(
        "/optimize",
        files=_png_file(flat_image((2500, 40))),
        data={"target_format": "jpeg", "quality": "0.6", "progressive": "true"},
    )
    assert resp.status_code == 200
    assert resp.headers["X-Output-Format"] == "jpeg"
    assert resp.headers["X-Applied-Quality"] == "0.6"
    out = _open(resp.content)
    assert out.size == (2500, 40)
    assert out.info.get("progressive") == 1


def test_convert_to_unsupported_format_415(client):
    resp = client.post("/optimize", files=_png_file(), data={"target_format": "webp"})
    assert resp.status_code == 415


def test_thumbnail(client):
    resp = client.post(
        "/optimize",
        files=_png_file(flat_image((800, 400))),
        data={"thumbnail": "true", "thumbnail_size": "100"},
    )
    assert resp.status_code == 200
    assert resp.headers["X-Output-Dimensions"] == "100x50"


def test_backpressure_503(client):
    from exceptions import BackpressureError

    with patch(
        "routers.optimize.processing_gate.acquire",
        side_effect=BackpressureError("Processing queue full.", retry_after=5),
    ):
        resp = client.post("/optimize", files=_png_file())
    assert resp.status_code == 503
    assert resp.headers["Retry-After"] == "5"


# --- /suggest ---


def test_suggest(client):
    resp = client.post("/suggest", files=_png_file(flat_image((2400, 100))))
    assert resp.status_code == 200
    body = resp.json()
    assert [s["type"] for s in body["suggestions"]] == ["resize", "format", "quality"]
    assert body["estimated_savings"]["estimated_ratio"] == 0.8
    assert body["analysis"]["width"] == 2400


def test_suggest_garbage_415(client, garbage):
    resp = client.post("/suggest", files={"file": ("x.png", garbage, "image/png")})
    assert resp.status_code == 415


# --- /api/images/upload ---


@pytest.fixture
def storage(tmp_path):
    local = LocalImageStorage(tmp_path, "images")
    with patch("routers.upload.image_storage", local):
        yield local


def test_upload_optimizes_and_stores(client, storage, tmp_path):
    gif = encode(flat_image((10, 10)), "GIF")
    resp = client.post(
        "/api/images/upload",
        files=[
            ("images", ("one.png", encode(flat_image((300, 100))), "image/png")),
            ("images", ("anim.gif", gif, "image/gif")),
        ],
        data={"category": "posts", "articleSlug": "my-post", "options": '{"max_width": 150}'},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["failed"] == 0
    one, anim = body["images"]

    assert one["optimized"] is True
    assert one["webPath"].startswith("/images/posts/my-post/one-")
    assert one["markdownRef"].endswith(f"({one['webPath']})")
    assert _open((tmp_path / one["webPath"].lstrip("/")).read_bytes()).size == (150, 50)

    # GIFs are stored as uploaded
    assert anim["optimized"] is False
    assert anim["filename"].endswith(".gif")
    assert (tmp_path / anim["webPath"].lstrip("/")).read_bytes() == gif
    assert body["totalOriginalSize"] > 0


def test_upload_without_optimization(client, storage, flat_png):
    resp = client.post(
        "/api/images/upload",
        files=[("images", ("a.png", flat_png, "image/png"))],
        data={"optimize": "false"},
    )
    body = resp.json()
    assert body["images"][0]["optimized"] is False
    assert body["totalStoredSize"] == len(flat_png)


def test_upload_stores_original_when_optimization_fails(client, storage, flat_png):
    broken = encode(photo_tile())
    broken = broken[: len(broken) // 2]
    resp = client.post(
        "/api/images/upload",
        files=[
            ("images", ("ok.png", flat_png, "image/png")),
            ("images", ("broken.png", broken, "image/png")),
        ],
    )
    body = resp.json()
    assert resp.status_code == 200
    assert body["failed"] == 1
    assert [img["optimized"] for img in body["images"]] == [True, False]
    assert body["images"][1]["size"] == len(broken)


def test_upload_too_many_files_400(client, storage, flat_png):
    with patch("routers.upload.settings.max_files_per_upload", 1):
        resp = client.post(
            "/api/images/upload",
            files=[("images", (f"{i}.png", flat_png, "image/png")) for i in range(2)],
        )
    assert resp.status_code == 400


def test_upload_rejects_invalid_file(client, storage, flat_png, garbage):
    resp = client.post(
        "/api/images/upload",
        files=[
            ("images", ("ok.png", flat_png, "image/png")),
            ("images", ("bad.png", garbage, "image/png")),
        ],
    )
    assert resp.status_code == 415


def test_transparent_png_stays_png_without_webp(client, transparent_png):
    resp = client.post("/optimize", files={"file": ("t.png", transparent_png, "image/png")})
    assert resp.status_code == 200
    assert resp.headers["X-Output-Format"] == "png"
    assert _open(resp.content).mode == "RGBA"


def test_large_photo_is_downscaled_to_jpeg(client, photo_jpeg):
    resp = client.post(
        "/optimize",
        files={"file": ("p.jpg", photo_jpeg, "image/jpeg")},
        data={"options": json.dumps({"max_width": 200, "max_height": 200})},
    )
    assert resp.status_code == 200
    assert resp.headers["X-Output-Format"] == "jpeg"
    assert resp.headers["X-Output-Dimensions"] == "200x150"


def test_upload_storage_failure_removes_written_files(client, storage, tmp_path, flat_png):
    from exceptions import StorageError

    real_save = storage.save
    calls = 0

    async def fail_second_save(*args, **kwargs):
        nonlocal calls
        calls += 1
        if calls == 2:
            raise StorageError("disk full")
        return await real_save(*args, **kwargs)

    with patch.object(storage, "save", side_effect=fail_second_save):
        resp = client.post(
            "/api/images/upload",
            files=[
                ("images", ("a.png", flat_png, "image/png")),
                ("images", ("b.png", flat_png, "image/png")),
            ],
            data={"articleSlug": "post"},
        )

    assert resp.status_code == 500
    assert resp.json()["error"] == "storage_failed"
    assert [p for p in (tmp_path / "images").rglob("*") if p.is_file()] == []
