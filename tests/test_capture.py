import asyncio
import base64
from io import BytesIO

import pytest
from PIL import Image, ImageChops

from digicertify.rendering import capture as capture_module
from digicertify.rendering.capture import CAPTURE_HOST_NAME, CaptureEngine
from digicertify.rendering.document import build_document
from digicertify.rendering.errors import (
    CaptureError,
    SourceMissingError,
    TaintedCaptureError,
    ZeroSizeCaptureError,
)
from digicertify.rendering.preview import PreviewRenderer
from digicertify.rendering.raster import AssetLoader, RasterOptions, rasterize
from digicertify.rendering.stage import Host, Node, Stage


def _mounted(certificate, width):
    stage = Stage()
    renderer = PreviewRenderer(stage, max_preview_width=width)
    return stage, renderer.mount(certificate)


def _png_data_uri(size=(20, 10), color=(30, 41, 59, 255)):
    buf = BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.mark.smoke
def test_capture_is_authored_size(certificate):
    stage, node = _mounted(certificate, 400)
    image = asyncio.run(CaptureEngine(stage).capture(node))
    assert image.mode == "RGB"
    assert image.size == (1120, 790)


def test_capture_independent_of_preview_scale(certificate):
    small_stage, small = _mounted(certificate, 400)
    large_stage, large = _mounted(certificate, 1600)
    a = asyncio.run(CaptureEngine(small_stage).capture(small))
    b = asyncio.run(CaptureEngine(large_stage).capture(large))
    assert a.size == b.size == (1120, 790)
    assert ImageChops.difference(a, b).getbbox() is None


def test_capture_scale_multiplies_output(certificate):
    stage, node = _mounted(certificate, 400)
    image = asyncio.run(CaptureEngine(stage, scale=2).capture(node))
    assert image.size == (2240, 1580)


def test_capture_leaves_source_untouched_and_host_removed(certificate):
    stage, node = _mounted(certificate, 400)
    hosts_before = list(stage.hosts)
    engine = CaptureEngine(stage)
    asyncio.run(engine.capture(node))
    assert stage.hosts == hosts_before
    assert stage.host(CAPTURE_HOST_NAME) is None
    assert node.transform_scale == pytest.approx(400 / 1120)
    assert (node.width, node.height) == (1120, 790)
    assert engine.captures == 1
    assert engine.in_progress is False


def test_capture_host_is_offscreen_and_inert(certificate):
    stage, node = _mounted(certificate, 400)
    seen = {}

    def spy(clone, options, *, assets=None):
        host = stage.host(CAPTURE_HOST_NAME)
        seen["host"] = host
        seen["clone"] = clone
        return rasterize(clone, options, assets=assets)

    original = capture_module.rasterize
    capture_module.rasterize = spy
    try:
        asyncio.run(CaptureEngine(stage).capture(node))
    finally:
        capture_module.rasterize = original
    host = seen["host"]
    assert host.offset_x + host.width <= 0
    assert host.offset_y + host.height <= 0
    assert host.interactive is False
    assert host.z_index < 0
    assert seen["clone"] is not node
    assert seen["clone"].transform_scale is None
    assert seen["clone"].host is None


def test_capture_host_removed_after_failure(certificate, monkeypatch):
    stage, node = _mounted(certificate, 400)

    def boom(*args, **kwargs):
        raise CaptureError("induced")

    monkeypatch.setattr(capture_module, "rasterize", boom)
    engine = CaptureEngine(stage)
    with pytest.raises(CaptureError):
        asyncio.run(engine.capture(node))
    assert stage.host(CAPTURE_HOST_NAME) is None
    assert engine.in_progress is False
    assert engine.captures == 0


def test_missing_source():
    stage = Stage()
    with pytest.raises(SourceMissingError):
        asyncio.run(CaptureEngine(stage).capture(None))
    assert stage.hosts == []


def test_reentrant_capture_rejected(certificate):
    stage, node = _mounted(certificate, 400)
    engine = CaptureEngine(stage)
    engine.in_progress = True
    with pytest.raises(CaptureError):
        asyncio.run(engine.capture(node))


def test_unlaid_or_zero_size_node_fails(certificate):
    node = Node(document=build_document(certificate), width=1120, height=790)
    with pytest.raises(ZeroSizeCaptureError):
        rasterize(node)
    stage = Stage()
    stage.attach(Host(name="h", width=1120, height=790)).append(node)
    assert stage.layout_pass() == 1
    node.width = node.height = 0
    with pytest.raises(ZeroSizeCaptureError):
        rasterize(node, RasterOptions())


def test_cross_origin_asset_taints_capture(certificate):
    stage = Stage()
    renderer = PreviewRenderer(stage, signature_image="https://cdn.example.com/sig.png")
    node = renderer.mount(certificate)
    with pytest.raises(TaintedCaptureError):
        rasterize(node, RasterOptions(allow_cross_origin=False))
    with pytest.raises(CaptureError):
        asyncio.run(CaptureEngine(stage).capture(node))
    assert stage.host(CAPTURE_HOST_NAME) is None


def test_inline_signature_image_is_painted(certificate):
    stage = Stage()
    renderer = PreviewRenderer(stage, signature_image=_png_data_uri())
    node = renderer.mount(certificate)
    image = asyncio.run(CaptureEngine(stage).capture(node))
    box = build_document(certificate, signature_image="x").element("signature").box
    center = (int(box.left + box.width / 2), int(box.top + box.height / 2))
    assert image.getpixel(center) == (30, 41, 59)


def test_same_origin_asset_resolution(tmp_path):
    Image.new("RGBA", (4, 4), (255, 0, 0, 255)).save(tmp_path / "sig.png")
    loader = AssetLoader(str(tmp_path))
    assert loader.is_same_origin("sig.png")
    assert not loader.is_same_origin("../etc/passwd")
    assert not loader.is_same_origin("https://cdn.example.com/sig.png")
    assert loader.load("sig.png").size == (4, 4)
    with pytest.raises(TaintedCaptureError):
        loader.load("https://cdn.example.com/sig.png", allow_cross_origin=False)


def test_hidden_host_rasterizes_to_nothing_but_capture_clones_out(certificate):
    stage = Stage()
    host = stage.attach(Host(name="hidden", width=1120, height=790, hidden=True))
    node = host.append(Node(document=build_document(certificate), width=1120, height=790))
    stage.layout_pass()
    with pytest.raises(ZeroSizeCaptureError):
        rasterize(node, RasterOptions(width=1120, height=790))
    image = asyncio.run(CaptureEngine(stage).capture(node))
    assert image.size == (1120, 790)
