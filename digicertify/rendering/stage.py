"""Mount tree for certificate documents.

A ``Stage`` plays the part of a page body: hosts are attached to it, each
host holds mounted document nodes, and a layout pass measures every node
whose layout is still pending. Nodes are only rasterizable once laid out.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .document import CertificateDocument
from .layout import DocumentLayout, layout_document

logger = logging.getLogger("digicertify.render")


@dataclass(eq=False)
class Node:
    document: CertificateDocument
    width: int
    height: int
    node_id: str | None = None
    transform_scale: float | None = None
    layout: DocumentLayout | None = None
    host: "Host | None" = None

    def clone(self) -> "Node":
        """Structural and style copy; the clone must be laid out again."""
        return Node(
            document=self.document,
            width=self.width,
            height=self.height,
            node_id=None,
            transform_scale=self.transform_scale,
        )

    def force_size(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.layout = None

    def strip_transform(self) -> None:
        self.transform_scale = None

    @property
    def effective_scale(self) -> float:
        scale = self.transform_scale or 1.0
        if self.host is not None and self.host.transform_scale:
            scale *= self.host.transform_scale
        return scale


@dataclass(eq=False)
class Host:
    name: str
    width: int
    height: int
    offset_x: int = 0
    offset_y: int = 0
    z_index: int = 0
    interactive: bool = True
    hidden: bool = False
    transform_scale: float | None = None
    children: list[Node] = field(default_factory=list)

    def append(self, node: Node) -> Node:
        node.host = self
        self.children.append(node)
        return node

    def remove(self, node: Node) -> None:
        self.children.remove(node)
        node.host = None

    def clear(self) -> None:
        for node in list(self.children):
            self.remove(node)


class Stage:
    def __init__(self, viewport_width: int = 1280, viewport_height: int = 800):
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.hosts: list[Host] = []
        self.frame = 0

    def attach(self, host: Host) -> Host:
        if host in self.hosts:
            raise ValueError(f"host {host.name!r} already attached")
        self.hosts.append(host)
        return host

    def detach(self, host: Host) -> None:
        self.hosts.remove(host)

    def contains(self, host: Host) -> bool:
        return any(candidate is host for candidate in self.hosts)

    def host(self, name: str) -> Host | None:
        return next((h for h in self.hosts if h.name == name), None)

    def find(self, node_id: str) -> Node | None:
        for host in self.hosts:
            for node in host.children:
                if node.node_id == node_id:
                    return node
        return None

    def layout_pass(self) -> int:
        laid_out = 0
        for host in self.hosts:
            for node in host.children:
                if node.layout is None:
                    node.layout = layout_document(node.document)
                    laid_out += 1
        return laid_out

    async def next_frame(self, min_delay: float = 0.0) -> int:
        """Yield one render cycle; returns once pending layout has completed.

        ``min_delay`` is a fixed settle heuristic kept on top of the explicit
        layout-complete signal.
        """
        await asyncio.sleep(0)
        laid_out = self.layout_pass()
        self.frame += 1
        if laid_out:
            logger.debug("[render-frame] frame=%s laid_out=%s", self.frame, laid_out)
        if min_delay > 0:
            await asyncio.sleep(min_delay)
        return self.frame
