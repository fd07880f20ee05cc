from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

import qrcode
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q
from PIL import ImageFont

from .document import CertificateDocument, FontSpec, QRElement, TextElement

logger = logging.getLogger("digicertify.render")

_FONT_PATHS = {
    ("sans", False): "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    ("sans", True): "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    ("mono", False): "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    ("mono", True): "/usr/share/fonts/truetype/dejavu/DejaVuSansMono-Bold.ttf",
    ("script", False): "/usr/share/fonts/truetype/dejavu/DejaVuSerif-Italic.ttf",
    ("script", True): "/usr/share/fonts/truetype/dejavu/DejaVuSerif-BoldItalic.ttf",
}
_DEFAULT_FONT_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"

_QR_LEVELS = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}

_warned_paths: set[str] = set()


def font_path(spec: FontSpec) -> str:
    return _FONT_PATHS.get((spec.family, spec.bold)) or _DEFAULT_FONT_PATH


@lru_cache(maxsize=256)
def _load_truetype(path: str, size_px: int):
    try:
        return ImageFont.truetype(path, size_px)
    except OSError:
        if path not in _warned_paths:
            _warned_paths.add(path)
            logger.warning("[render-font-fallback] %s unavailable; using default font", path)
        if path != _DEFAULT_FONT_PATH:
            return _load_truetype(_DEFAULT_FONT_PATH, size_px)
        return ImageFont.load_default(size=size_px)


def load_font(spec: FontSpec, size: float | None = None, scale: float = 1.0):
    size_px = max(int(round((size if size is not None else spec.size) * scale)), 1)
    return _load_truetype(font_path(spec), size_px)


@dataclass(frozen=True)
class LaidLine:
    text: str
    x: float
    top: float


@dataclass(frozen=True)
class TextLayout:
    size: float
    lines: tuple[LaidLine, ...]


@dataclass(frozen=True)
class QRLayout:
    matrix: tuple[tuple[bool, ...], ...]

    @property
    def modules(self) -> int:
        return len(self.matrix)


@dataclass(frozen=True)
class DocumentLayout:
    width: int
    height: int
    texts: dict[str, TextLayout]
    codes: dict[str, QRLayout]


def _wrap_paragraph(paragraph: str, font, max_width: float, break_all: bool) -> list[str]:
    if not paragraph:
        return [""]
    units = list(paragraph) if break_all else paragraph.split(" ")
    joiner = "" if break_all else " "
    lines: list[str] = []
    current = ""
    for unit in units:
        candidate = f"{current}{joiner}{unit}" if current else unit
        if current and font.getlength(candidate) > max_width:
            lines.append(current)
            current = unit
        else:
            current = candidate
    lines.append(current)
    return lines


def _fits(text: str, font, max_width: float) -> bool:
    return all(font.getlength(part) <= max_width for part in text.split("\n"))


def layout_text(element: TextElement) -> TextLayout:
    size = element.font.size
    if element.min_size is not None:
        while size > element.min_size and not _fits(element.text, load_font(element.font, size), element.max_width):
            size -= 1
    font = load_font(element.font, size)
    wrapped: list[str] = []
    for paragraph in element.text.split("\n"):
        wrapped.extend(_wrap_paragraph(paragraph, font, element.max_width, element.break_all))

    line_px = size * element.line_height
    half_leading = (line_px - size) / 2
    lines = []
    for idx, text in enumerate(wrapped):
        width = font.getlength(text)
        if element.align == "center":
            x = element.x + (element.max_width - width) / 2
        elif element.align == "right":
            x = element.x + element.max_width - width
        else:
            x = element.x
        lines.append(LaidLine(text=text, x=x, top=element.top + idx * line_px + half_leading))
    return TextLayout(size=size, lines=tuple(lines))


def layout_qr(element: QRElement) -> QRLayout:
    code = qrcode.QRCode(
        error_correction=_QR_LEVELS.get(element.error_correction, ERROR_CORRECT_M),
        border=0,
    )
    code.add_data(element.payload)
    code.make(fit=True)
    matrix = tuple(tuple(bool(cell) for cell in row) for row in code.get_matrix())
    return QRLayout(matrix=matrix)


def layout_document(document: CertificateDocument) -> DocumentLayout:
    texts: dict[str, TextLayout] = {}
    codes: dict[str, QRLayout] = {}
    for element in document:
        if isinstance(element, TextElement):
            texts[element.key] = layout_text(element)
        elif isinstance(element, QRElement):
            codes[element.key] = layout_qr(element)
    return DocumentLayout(
        width=document.width, height=document.height, texts=texts, codes=codes
    )
