from __future__ import annotations

import base64
import hashlib
import json
import time
from dataclasses import dataclass
from io import BytesIO

from ..constants import (
    CERT_HEIGHT,
    CERT_WIDTH,
    DEFAULT_VERIFY_BASE_URL,
    PREVIEW_MAX_WIDTH,
    PREVIEW_NODE_ID,
)
from ..entities import CertificateRecord
from .document import build_document
from .raster import AssetLoader, RasterOptions, rasterize
from .stage import Host, Node, Stage

_CACHE_TTL_SECONDS = 45
PREVIEW_HOST_NAME = "preview"


def preview_scale(max_preview_width: float, authored_width: int = CERT_WIDTH) -> float:
    return min(1.0, max_preview_width / authored_width)


@dataclass(frozen=True)
class PreviewFrame:
    scale: float
    footprint_width: int
    footprint_height: int

    @classmethod
    def for_width(cls, max_preview_width: float) -> "PreviewFrame":
        scale = preview_scale(max_preview_width)
        return cls(
            scale=scale,
            footprint_width=int(round(CERT_WIDTH * scale)),
            footprint_height=int(round(CERT_HEIGHT * scale)),
        )


@dataclass(frozen=True)
class PreviewResult:
    image_base64: str
    frame: PreviewFrame

    @property
    def data_url(self) -> str:
        return f"data:image/png;base64,{self.image_base64}"


_preview_cache: dict[str, tuple[float, PreviewResult]] = {}


def _build_cache_key(certificate: CertificateRecord, frame: PreviewFrame, verify_base_url: str, signature: str | None) -> str:
    fingerprint = json.dumps(
        {
            "id": certificate.id,
            "usn": certificate.usn,
            "name": certificate.name,
            "course": certificate.course,
            "issued": certificate.issued_date,
            "scale": frame.scale,
            "base": verify_base_url,
            "signature": signature,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(fingerprint.encode()).hexdigest()


class PreviewRenderer:
    """Shows the authored-size document inside a scaled-down footprint.

    The node keeps its authored size; only a top-left-origin visual scale is
    applied, so the document's coordinates are never recomputed.
    """

    def __init__(
        self,
        stage: Stage,
        *,
        max_preview_width: float = PREVIEW_MAX_WIDTH,
        verify_base_url: str = DEFAULT_VERIFY_BASE_URL,
        signature_image: str | None = None,
        assets: AssetLoader | None = None,
    ):
        self.stage = stage
        self.frame = PreviewFrame.for_width(max_preview_width)
        self.verify_base_url = verify_base_url
        self.signature_image = signature_image
        self.assets = assets or AssetLoader()

    def _host(self) -> Host:
        host = self.stage.host(PREVIEW_HOST_NAME)
        if host is None:
            host = self.stage.attach(
                Host(
                    name=PREVIEW_HOST_NAME,
                    width=self.frame.footprint_width,
                    height=self.frame.footprint_height,
                )
            )
        return host

    @property
    def node(self) -> Node | None:
        return self.stage.find(PREVIEW_NODE_ID)

    def mount(self, certificate: CertificateRecord) -> Node:
        current = self.node
        if current is not None and current.document.certificate.id == certificate.id:
            return current
        host = self._host()
        host.clear()
        document = build_document(
            certificate,
            verify_base_url=self.verify_base_url,
            signature_image=self.signature_image,
        )
        node = host.append(
            Node(
                document=document,
                width=CERT_WIDTH,
                height=CERT_HEIGHT,
                node_id=PREVIEW_NODE_ID,
                transform_scale=self.frame.scale,
            )
        )
        self.stage.layout_pass()
        return node

    def unmount(self) -> None:
        host = self.stage.host(PREVIEW_HOST_NAME)
        if host is not None:
            host.clear()

    def render(self, certificate: CertificateRecord) -> PreviewResult:
        cache_key = _build_cache_key(certificate, self.frame, self.verify_base_url, self.signature_image)
        cached = _preview_cache.get(cache_key)
        now = time.time()
        if cached and now - cached[0] < _CACHE_TTL_SECONDS:
            return cached[1]

        node = self.mount(certificate)
        image = rasterize(node, RasterOptions(), assets=self.assets)
        buffer = BytesIO()
        image.save(buffer, format="PNG")
        result = PreviewResult(
            image_base64=base64.b64encode(buffer.getvalue()).decode("ascii"),
            frame=self.frame,
        )
        _preview_cache[cache_key] = (now, result)
        return result
