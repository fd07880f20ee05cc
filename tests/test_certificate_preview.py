import base64
from io import BytesIO

import pytest
from PIL import Image

from digicertify.rendering.preview import PreviewFrame, PreviewRenderer, preview_scale
from digicertify.rendering.raster import RasterOptions, rasterize
from digicertify.rendering.stage import Stage


def test_preview_scale_never_upscales():
    assert preview_scale(400) == pytest.approx(400 / 1120)
    assert preview_scale(1120) == 1
    assert preview_scale(1600) == 1


def test_footprint_matches_visual_size():
    frame = PreviewFrame.for_width(560)
    assert frame.scale == pytest.approx(0.5)
    assert (frame.footprint_width, frame.footprint_height) == (560, 395)


@pytest.mark.smoke
def test_preview_returns_png_at_footprint(certificate):
    renderer = PreviewRenderer(Stage(), max_preview_width=560)
    result = renderer.render(certificate)
    assert result.data_url.startswith("data:image/png;base64,")
    img = Image.open(BytesIO(base64.b64decode(result.image_base64)))
    assert img.format == "PNG"
    assert img.size == (560, 395)


def test_preview_node_keeps_authored_size(certificate):
    stage = Stage()
    renderer = PreviewRenderer(stage, max_preview_width=400)
    node = renderer.mount(certificate)
    assert (node.width, node.height) == (1120, 790)
    assert node.transform_scale == pytest.approx(400 / 1120)
    assert node.layout is not None
    assert stage.find("certificate-preview") is node


def test_mount_reuses_node_for_same_certificate(certificate):
    renderer = PreviewRenderer(Stage())
    first = renderer.mount(certificate)
    assert renderer.mount(certificate) is first
    renderer.unmount()
    assert renderer.node is None


def test_rasterizing_scaled_node_directly_inherits_transform(certificate):
    renderer = PreviewRenderer(Stage(), max_preview_width=400)
    node = renderer.mount(certificate)
    image = rasterize(node, RasterOptions())
    assert image.size == (400, 282)
