from __future__ import annotations

import os
from dataclasses import dataclass
from io import BytesIO

from PIL import Image
from PyPDF2 import PdfReader
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..constants import ISSUER_NAME
from ..entities import CertificateRecord
from ..shared.storage import write_atomic

PAGE_SIZE = landscape(A4)


@dataclass(frozen=True)
class PackagedPdf:
    filename: str
    data: bytes


def certificate_filename(usn: str) -> str:
    safe = (usn or "").strip().replace("/", "_").replace("\\", "_")
    return f"Certificate_{safe}.pdf"


def package_certificate(image: Image.Image, certificate: CertificateRecord) -> PackagedPdf:
    """Single landscape A4 page, the raster stretched edge to edge."""
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=PAGE_SIZE)
    page_width, page_height = PAGE_SIZE
    c.setTitle(f"Certificate - {certificate.course}")
    c.setAuthor(ISSUER_NAME)
    c.setSubject(f"Certificate {certificate.id} for {certificate.name}")
    c.drawImage(ImageReader(image.convert("RGB")), 0, 0, width=page_width, height=page_height)
    c.showPage()
    c.save()
    return PackagedPdf(filename=certificate_filename(certificate.usn), data=buffer.getvalue())


def save_pdf(packaged: PackagedPdf, output_dir: str) -> str:
    path = os.path.join(output_dir, packaged.filename)
    write_atomic(path, packaged.data)
    return path


def pdf_page_size(data: bytes) -> tuple[float, float]:
    reader = PdfReader(BytesIO(data))
    if len(reader.pages) != 1:
        raise ValueError(f"expected a single page, found {len(reader.pages)}")
    box = reader.pages[0].mediabox
    return float(box.width), float(box.height)


def read_pdf_image(data: bytes) -> Image.Image:
    """Decode the embedded page raster back into a Pillow image."""
    reader = PdfReader(BytesIO(data))
    page = reader.pages[0]
    resources = page["/Resources"]
    xobjects = resources.get("/XObject") if resources else None
    if not xobjects:
        raise ValueError("page has no embedded image")
    for name in xobjects:
        stream = xobjects[name].get_object()
        if stream.get("/Subtype") != "/Image":
            continue
        width = int(stream["/Width"])
        height = int(stream["/Height"])
        raw = stream.get_data()
        if len(raw) == width * height * 3:
            return Image.frombytes("RGB", (width, height), raw)
        return Image.open(BytesIO(raw)).convert("RGB")
    raise ValueError("page has no embedded image")
