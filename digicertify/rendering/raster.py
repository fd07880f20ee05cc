from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageDraw

from ..constants import CANVAS_BACKGROUND
from ..shared.storage import safe_child_path
from .document import (
    EllipseElement,
    ImageElement,
    LineElement,
    PolygonElement,
    QRElement,
    RectElement,
    TextElement,
)
from .errors import CaptureError, TaintedCaptureError, ZeroSizeCaptureError
from .layout import load_font
from .stage import Node

_DASH_DEGREES = 7
_DASH_STEP_DEGREES = 12


@dataclass(frozen=True)
class RasterOptions:
    scale: float = 1.0
    width: int | None = None
    height: int | None = None
    window_width: int | None = None
    window_height: int | None = None
    background: str = CANVAS_BACKGROUND
    allow_cross_origin: bool = True


class AssetLoader:
    """Resolves image sources; anything outside ``assets_root`` is cross-origin."""

    def __init__(self, assets_root: str | None = None):
        self.assets_root = assets_root

    def _same_origin_path(self, source: str) -> str | None:
        if not self.assets_root:
            return None
        return safe_child_path(self.assets_root, source)

    def is_same_origin(self, source: str) -> bool:
        if source.startswith("data:"):
            return True
        if source.startswith(("http://", "https://")):
            return False
        return self._same_origin_path(source) is not None

    def load(self, source: str, *, allow_cross_origin: bool = True) -> Image.Image:
        if source.startswith("data:"):
            return self._load_data_uri(source)
        if not self.is_same_origin(source) and not allow_cross_origin:
            raise TaintedCaptureError(f"cross-origin asset refused: {source}")
        if source.startswith(("http://", "https://")):
            raise CaptureError(f"remote asset cannot be fetched: {source}")
        path = self._same_origin_path(source) or os.path.realpath(source)
        try:
            with Image.open(path) as img:
                return img.convert("RGBA")
        except OSError as exc:
            raise CaptureError(f"asset unreadable: {source}") from exc

    @staticmethod
    def _load_data_uri(source: str) -> Image.Image:
        try:
            _, payload = source.split(",", 1)
            raw = base64.b64decode(payload, validate=True)
            with Image.open(BytesIO(raw)) as img:
                return img.convert("RGBA")
        except (ValueError, binascii.Error, OSError) as exc:
            raise CaptureError("asset unreadable: data URI") from exc


def output_size(node: Node, options: RasterOptions) -> tuple[int, int, float]:
    if node.host is not None and node.host.hidden:
        return 0, 0, 0.0
    scale = options.scale * node.effective_scale
    width = options.width or options.window_width or node.width
    height = options.height or options.window_height or node.height
    return int(round(width * scale)), int(round(height * scale)), scale


def _stroke(value: float, scale: float) -> int:
    return max(1, int(round(value * scale)))


def _scaled_box(box, scale: float) -> list[float]:
    left, top = box.left * scale, box.top * scale
    return [left, top, max(left, box.right * scale - 1), max(top, box.bottom * scale - 1)]


def _dashed_ellipse(draw: ImageDraw.ImageDraw, bbox, color: str, width: int) -> None:
    for start in range(0, 360, _DASH_STEP_DEGREES):
        draw.arc(bbox, start, start + _DASH_DEGREES, fill=color, width=width)


def _paint(draw, canvas, element, node: Node, scale: float, assets, options) -> None:
    if isinstance(element, RectElement):
        draw.rectangle(
            _scaled_box(element.box, scale),
            fill=element.fill,
            outline=element.outline,
            width=_stroke(element.stroke, scale) if element.outline else 0,
        )
    elif isinstance(element, EllipseElement):
        bbox = _scaled_box(element.box, scale)
        if element.dashed:
            if element.fill:
                draw.ellipse(bbox, fill=element.fill)
            if element.outline:
                _dashed_ellipse(draw, bbox, element.outline, _stroke(element.stroke, scale))
        else:
            draw.ellipse(
                bbox,
                fill=element.fill,
                outline=element.outline,
                width=_stroke(element.stroke, scale),
            )
    elif isinstance(element, PolygonElement):
        draw.polygon([(x * scale, y * scale) for x, y in element.points], fill=element.fill)
    elif isinstance(element, LineElement):
        draw.line(
            [
                (element.start[0] * scale, element.start[1] * scale),
                (element.end[0] * scale, element.end[1] * scale),
            ],
            fill=element.color,
            width=_stroke(element.stroke, scale),
        )
    elif isinstance(element, TextElement):
        text_layout = node.layout.texts[element.key]
        font = load_font(element.font, text_layout.size, scale)
        for line in text_layout.lines:
            if line.text:
                draw.text((line.x * scale, line.top * scale), line.text, font=font, fill=element.color)
    elif isinstance(element, QRElement):
        code = node.layout.codes[element.key]
        left = element.box.left * scale
        top = element.box.top * scale
        module = element.box.width * scale / max(code.modules, 1)
        draw.rectangle(_scaled_box(element.box, scale), fill="#FFFFFF")
        for row_idx, row in enumerate(code.matrix):
            y0 = int(round(top + row_idx * module))
            y1 = int(round(top + (row_idx + 1) * module)) - 1
            for col_idx, dark in enumerate(row):
                if not dark:
                    continue
                x0 = int(round(left + col_idx * module))
                x1 = int(round(left + (col_idx + 1) * module)) - 1
                draw.rectangle([x0, y0, max(x0, x1), max(y0, y1)], fill=element.color)
    elif isinstance(element, ImageElement):
        image = assets.load(element.source, allow_cross_origin=options.allow_cross_origin)
        resampling = getattr(Image, "Resampling", None)
        resample_filter = resampling.LANCZOS if resampling is not None else Image.LANCZOS
        size = (
            max(1, int(round(element.box.width * scale))),
            max(1, int(round(element.box.height * scale))),
        )
        image = image.resize(size, resample_filter)
        canvas.alpha_composite(
            image, (int(round(element.box.left * scale)), int(round(element.box.top * scale)))
        )


def rasterize(node: Node, options: RasterOptions | None = None, *, assets: AssetLoader | None = None) -> Image.Image:
    options = options or RasterOptions()
    assets = assets or AssetLoader()
    if node.layout is None:
        raise ZeroSizeCaptureError("node has not been laid out")
    width, height, scale = output_size(node, options)
    if width <= 0 or height <= 0:
        raise ZeroSizeCaptureError(f"node rasterizes to {width}x{height}")

    canvas = Image.new("RGBA", (width, height), options.background)
    draw = ImageDraw.Draw(canvas)
    for element in node.document:
        if element.opacity >= 1.0:
            _paint(draw, canvas, element, node, scale, assets, options)
            continue
        layer = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        _paint(ImageDraw.Draw(layer), layer, element, node, scale, assets, options)
        alpha = layer.getchannel("A").point(lambda value: int(value * element.opacity))
        layer.putalpha(alpha)
        canvas.alpha_composite(layer)
    return canvas.convert("RGB")
