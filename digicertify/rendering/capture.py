"""Isolated capture of a mounted certificate node.

The visible preview is drawn through a scale transform, so rasterizing it
directly compounds that transform into the output. Captures therefore always
work on a fresh, transform-free clone staged in an off-screen host at the
authored size, and the host is torn down on every exit path.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from PIL import Image

from ..constants import CANVAS_BACKGROUND, CERT_HEIGHT, CERT_WIDTH
from .errors import CaptureError, SourceMissingError
from .raster import AssetLoader, RasterOptions, rasterize
from .stage import Host, Node, Stage

logger = logging.getLogger("digicertify.capture")

CAPTURE_HOST_NAME = "capture-host"


class CaptureEngine:
    def __init__(
        self,
        stage: Stage,
        *,
        settle_seconds: float = 0.0,
        scale: float = 1.0,
        background: str = CANVAS_BACKGROUND,
        assets: AssetLoader | None = None,
        width: int = CERT_WIDTH,
        height: int = CERT_HEIGHT,
    ):
        self.stage = stage
        self.settle_seconds = settle_seconds
        self.scale = scale
        self.background = background
        self.assets = assets or AssetLoader()
        self.width = width
        self.height = height
        self.in_progress = False
        self.captures = 0

    @property
    def options(self) -> RasterOptions:
        return RasterOptions(
            scale=self.scale,
            width=self.width,
            height=self.height,
            window_width=self.width,
            window_height=self.height,
            background=self.background,
            allow_cross_origin=True,
        )

    @contextmanager
    def offscreen_host(self) -> Iterator[Host]:
        host = Host(
            name=CAPTURE_HOST_NAME,
            width=self.width,
            height=self.height,
            offset_x=-2 * self.stage.viewport_width,
            offset_y=-2 * self.stage.viewport_height,
            z_index=-9999,
            interactive=False,
        )
        self.stage.attach(host)
        try:
            yield host
        finally:
            host.clear()
            if self.stage.contains(host):
                self.stage.detach(host)

    async def capture(self, source: Node | None) -> Image.Image:
        if source is None:
            raise SourceMissingError("certificate node is not mounted")
        if self.in_progress:
            raise CaptureError("a capture is already in progress")
        self.in_progress = True
        try:
            with self.offscreen_host() as host:
                clone = host.append(source.clone())
                clone.force_size(self.width, self.height)
                clone.strip_transform()
                await self.stage.next_frame(self.settle_seconds)
                image = rasterize(clone, self.options, assets=self.assets)
        finally:
            self.in_progress = False
        self.captures += 1
        logger.info(
            "[cert-capture] id=%s size=%sx%s",
            source.document.certificate.id,
            image.width,
            image.height,
        )
        return image
