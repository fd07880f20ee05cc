"""Fixed-layout certificate document model.

Everything here is a pure function of the certificate record: coordinates are
authored pixels on a ``CERT_WIDTH x CERT_HEIGHT`` canvas, origin top-left, and
nothing depends on the scale at which the document is later displayed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Union

from ..constants import (
    CANVAS_BACKGROUND,
    CERT_HEIGHT,
    CERT_WIDTH,
    DEFAULT_VERIFY_BASE_URL,
    ISSUER_NAME,
    SIGNATORY_NAME,
)
from ..entities import CertificateRecord

Color = str
Point = tuple[float, float]

INK = "#0F172A"
MUTED = "#6B7280"
FAINT = "#9CA3AF"
RULE = "#CBD5E1"
SLATE = "#94A3B8"

CONTENT_LEFT = 64
CONTENT_WIDTH = CERT_WIDTH - CONTENT_LEFT - 340


@dataclass(frozen=True)
class Box:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass(frozen=True)
class FontSpec:
    family: str = "sans"  # sans | mono | script
    size: float = 14
    bold: bool = False


@dataclass(frozen=True)
class RectElement:
    key: str
    box: Box
    fill: Color | None = None
    outline: Color | None = None
    stroke: float = 1
    opacity: float = 1.0


@dataclass(frozen=True)
class EllipseElement:
    key: str
    box: Box
    fill: Color | None = None
    outline: Color | None = None
    stroke: float = 1
    dashed: bool = False
    opacity: float = 1.0


@dataclass(frozen=True)
class PolygonElement:
    key: str
    points: tuple[Point, ...]
    fill: Color
    opacity: float = 1.0


@dataclass(frozen=True)
class LineElement:
    key: str
    start: Point
    end: Point
    color: Color
    stroke: float = 1
    opacity: float = 1.0


@dataclass(frozen=True)
class TextElement:
    """A block of selectable text anchored at ``(x, top)``.

    ``align`` positions each line inside ``[x, x + max_width]``. ``min_size``
    enables autoshrink down to that size before wrapping kicks in.
    """

    key: str
    text: str
    x: float
    top: float
    max_width: float
    font: FontSpec
    color: Color
    align: str = "left"
    line_height: float = 1.2
    min_size: float | None = None
    break_all: bool = False
    opacity: float = 1.0


@dataclass(frozen=True)
class QRElement:
    key: str
    box: Box
    payload: str
    error_correction: str = "M"
    color: Color = "#000000"
    opacity: float = 1.0


@dataclass(frozen=True)
class ImageElement:
    key: str
    box: Box
    source: str
    opacity: float = 1.0


Element = Union[
    RectElement,
    EllipseElement,
    PolygonElement,
    LineElement,
    TextElement,
    QRElement,
    ImageElement,
]


@dataclass(frozen=True)
class CertificateDocument:
    certificate: CertificateRecord
    verification_url: str
    elements: tuple[Element, ...] = field(default_factory=tuple)
    width: int = CERT_WIDTH
    height: int = CERT_HEIGHT
    background: Color = CANVAS_BACKGROUND

    def __iter__(self) -> Iterator[Element]:
        return iter(self.elements)

    def element(self, key: str) -> Element:
        for element in self.elements:
            if element.key == key:
                return element
        raise KeyError(key)

    def text_content(self) -> list[str]:
        return [el.text for el in self.elements if isinstance(el, TextElement)]

    @property
    def qr_payload(self) -> str:
        return self.element("qr").payload


def verification_payload(cert_id: str, base_url: str = DEFAULT_VERIFY_BASE_URL) -> str:
    base = base_url.rstrip("?&")
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}certId={cert_id}"


def _display_url(url: str) -> str:
    for scheme in ("https://", "http://"):
        if url.startswith(scheme):
            return url[len(scheme):]
    return url


def _frame() -> list[Element]:
    elements: list[Element] = [
        EllipseElement("watermark-upper", Box(-160, -320, 680, 680), outline="#D1D5DB", opacity=0.18),
        EllipseElement("watermark-lower", Box(220, CERT_HEIGHT + 480 - 900, 900, 900), outline="#D1D5DB", opacity=0.15),
        RectElement("border", Box(14, 14, CERT_WIDTH - 28, CERT_HEIGHT - 28), outline=RULE, stroke=1.5),
    ]
    corner = 18
    for name, left, top in (
        ("corner-tl", 10, 10),
        ("corner-tr", CERT_WIDTH - 10 - corner, 10),
        ("corner-bl", 10, CERT_HEIGHT - 10 - corner),
        ("corner-br", CERT_WIDTH - 10 - corner, CERT_HEIGHT - 10 - corner),
    ):
        elements.append(RectElement(name, Box(left, top, corner, corner), outline=SLATE, stroke=2))
    return elements


def _body(cert: CertificateRecord) -> list[Element]:
    left = CONTENT_LEFT
    return [
        TextElement(
            "title",
            "COMPLETION\nCERTIFICATE",
            left,
            64,
            CONTENT_WIDTH,
            FontSpec("sans", 56, bold=True),
            INK,
            line_height=1.05,
        ),
        TextElement("certify-line", "This is to certify that", left, 250, CONTENT_WIDTH, FontSpec("sans", 15), MUTED),
        TextElement(
            "name",
            cert.name,
            left,
            282,
            CONTENT_WIDTH,
            FontSpec("sans", 48, bold=True),
            INK,
            line_height=1.1,
            min_size=32,
        ),
        TextElement("usn", f"USN: {cert.usn}", left, 341, CONTENT_WIDTH, FontSpec("mono", 12), FAINT),
        TextElement(
            "completed-line",
            "has successfully completed the course",
            left,
            430,
            CONTENT_WIDTH,
            FontSpec("sans", 14),
            MUTED,
        ),
        TextElement("course", cert.course, left, 459, CONTENT_WIDTH, FontSpec("sans", 22, bold=True), "#1E293B"),
        TextElement("issued-date", cert.issued_date, left, 530, CONTENT_WIDTH, FontSpec("sans", 15, bold=True), "#374151"),
    ]


def _verification_block(cert: CertificateRecord, url: str) -> list[Element]:
    qr_box = Box(CONTENT_LEFT, CERT_HEIGHT - 48 - 90, 90, 90)
    text_left = qr_box.right + 14
    return [
        RectElement("qr-frame", qr_box, fill="#FFFFFF", outline="#E2E8F0"),
        QRElement("qr", Box(qr_box.left + 4, qr_box.top + 4, 82, 82), url),
        TextElement("verify-label", "VERIFY AT", text_left, qr_box.top + 28, 200, FontSpec("sans", 9, bold=True), FAINT),
        TextElement(
            "verify-url",
            _display_url(url),
            text_left,
            qr_box.top + 42,
            200,
            FontSpec("mono", 10),
            MUTED,
            line_height=1.3,
            break_all=True,
        ),
    ]


def _ribbon() -> list[Element]:
    left = CERT_WIDTH - 80 - 148
    right = left + 148
    mid = left + 74
    seal = Box(left + (148 - 112) / 2, 126, 112, 112)
    inner = 112 * 0.88
    inner_box = Box(seal.left + (112 - inner) / 2, seal.top + (112 - inner) / 2, inner, inner)
    star = _star_points(mid, seal.top + 56, 11, 5)
    return [
        PolygonElement(
            "ribbon",
            ((left, 0), (right, 0), (right, 340), (mid, 296), (left, 340)),
            fill="#E2E8F0",
            opacity=0.88,
        ),
        TextElement("ribbon-label", "VERIFIED", left, 52, 148, FontSpec("sans", 11.5, bold=True), "#475569", align="center"),
        LineElement("ribbon-rule", (left, 80), (right, 80), RULE),
        EllipseElement("seal", seal, fill=CANVAS_BACKGROUND, outline=SLATE, stroke=1.5, dashed=True),
        EllipseElement("seal-inner", inner_box, outline=RULE),
        TextElement("seal-top", "DIGITALLY VERIFIED", seal.left, seal.top + 30, 112, FontSpec("sans", 6, bold=True), "#64748B", align="center"),
        PolygonElement("seal-star", star, fill=SLATE),
        TextElement("seal-bottom", "CERTIFICATE", seal.left, seal.top + 74, 112, FontSpec("sans", 6, bold=True), "#64748B", align="center"),
    ]


def _star_points(cx: float, cy: float, outer: float, inner: float) -> tuple[Point, ...]:
    # Ten-point outline, unit vectors precomputed for a five-pointed star.
    unit = (
        (0.0, -1.0), (0.5878, -0.809), (0.9511, -0.309), (0.9511, 0.309),
        (0.5878, 0.809), (0.0, 1.0), (-0.5878, 0.809), (-0.9511, 0.309),
        (-0.9511, -0.309), (-0.5878, -0.809),
    )
    points = []
    for idx, (ux, uy) in enumerate(unit):
        radius = outer if idx % 2 == 0 else inner
        points.append((round(cx + ux * radius, 2), round(cy + uy * radius, 2)))
    return tuple(points)


def _signature_block(cert: CertificateRecord, signature_image: str | None) -> list[Element]:
    left = CERT_WIDTH - 64 - 200
    width = 200
    elements: list[Element] = []
    if signature_image:
        elements.append(ImageElement("signature", Box(left + 30, 606, 140, 50), signature_image))
    else:
        elements.append(
            TextElement("signature", SIGNATORY_NAME, left, 610, width, FontSpec("script", 38), "#1E293B", align="center", opacity=0.88)
        )
    elements.extend(
        [
            LineElement("signature-rule", (left, 662), (left + width, 662), "#64748B"),
            TextElement("signatory", "Authorized Signatory", left, 669, width, FontSpec("sans", 11, bold=True), "#374151", align="center"),
            TextElement("issuer", ISSUER_NAME, left, 688, width, FontSpec("sans", 9.5), FAINT, align="center"),
            TextElement("cert-id-label", "Certificate ID:", left, 716, width, FontSpec("mono", 9.5), FAINT, align="center"),
            TextElement("cert-id", cert.id, left, 730, width, FontSpec("mono", 9.5, bold=True), MUTED, align="center"),
        ]
    )
    return elements


def build_document(
    certificate: CertificateRecord,
    *,
    verify_base_url: str = DEFAULT_VERIFY_BASE_URL,
    signature_image: str | None = None,
) -> CertificateDocument:
    url = verification_payload(certificate.id, verify_base_url)
    elements: list[Element] = [
        RectElement("canvas", Box(0, 0, CERT_WIDTH, CERT_HEIGHT), fill=CANVAS_BACKGROUND),
    ]
    elements.extend(_frame())
    elements.extend(_body(certificate))
    elements.extend(_verification_block(certificate, url))
    elements.extend(_ribbon())
    elements.extend(_signature_block(certificate, signature_image))
    return CertificateDocument(
        certificate=certificate,
        verification_url=url,
        elements=tuple(elements),
    )
