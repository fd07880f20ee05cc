"""Single, row and bulk certificate export jobs.

The capture host and the hidden mount slot are singletons on the stage, so at
most one job runs at a time: every public entry point holds ``ExportLock`` for
the job's whole pipeline, and bulk export walks the roster strictly in order.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator

from flask import current_app

from ..constants import (
    CERT_HEIGHT,
    CERT_WIDTH,
    DOWNLOADED_SIGNAL_SECONDS,
    HIDDEN_NODE_ID,
)
from ..entities import CertificateRecord, StudentRecord
from ..rendering.capture import CaptureEngine
from ..rendering.document import build_document
from ..rendering.pdf import PackagedPdf, package_certificate, save_pdf
from ..rendering.preview import PreviewRenderer
from ..rendering.raster import AssetLoader
from ..rendering.stage import Host, Node, Stage
from ..shared.records import CertificateStore

logger = logging.getLogger("digicertify.export")

HIDDEN_HOST_NAME = "hidden-mount"
EXTENSION_KEY = "digicertify.exporter"


class ExportBusyError(RuntimeError):
    """Another export job currently owns the render stage."""


class ExportState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    RENDERING = "rendering"
    CAPTURING = "capturing"
    PACKAGING = "packaging"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[ExportState, frozenset[ExportState]] = {
    ExportState.IDLE: frozenset({ExportState.PREPARING}),
    ExportState.PREPARING: frozenset({ExportState.RENDERING, ExportState.FAILED}),
    ExportState.RENDERING: frozenset({ExportState.CAPTURING, ExportState.FAILED}),
    ExportState.CAPTURING: frozenset({ExportState.PACKAGING, ExportState.FAILED}),
    ExportState.PACKAGING: frozenset({ExportState.COMPLETED, ExportState.FAILED}),
    ExportState.COMPLETED: frozenset(),
    ExportState.FAILED: frozenset(),
}


@dataclass
class ExportJob:
    student: StudentRecord
    mode: str
    state: ExportState = ExportState.IDLE
    certificate: CertificateRecord | None = None
    pdf: PackagedPdf | None = None
    path: str | None = None
    error: str | None = None
    history: list[ExportState] = field(default_factory=lambda: [ExportState.IDLE])

    def advance(self, state: ExportState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"illegal export transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    @property
    def ok(self) -> bool:
        return self.state is ExportState.COMPLETED


@dataclass
class BulkExportReport:
    jobs: list[ExportJob] = field(default_factory=list)

    @property
    def completed(self) -> list[ExportJob]:
        return [job for job in self.jobs if job.ok]

    @property
    def failed(self) -> list[ExportJob]:
        return [job for job in self.jobs if job.state is ExportState.FAILED]


class ExportLock:
    def __init__(self):
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise ExportBusyError("An export is already running.")
        try:
            yield
        finally:
            self._lock.release()


class ExportOrchestrator:
    def __init__(
        self,
        store: CertificateStore,
        stage: Stage,
        engine: CaptureEngine,
        preview: PreviewRenderer,
        *,
        output_dir: str | None = None,
        busy_settle_seconds: float = 0.0,
        mount_settle_seconds: float = 0.0,
        unmount_settle_seconds: float = 0.0,
        lock: ExportLock | None = None,
    ):
        self.store = store
        self.stage = stage
        self.engine = engine
        self.preview = preview
        self.output_dir = output_dir
        self.busy_settle_seconds = busy_settle_seconds
        self.mount_settle_seconds = mount_settle_seconds
        self.unmount_settle_seconds = unmount_settle_seconds
        self.lock = lock or ExportLock()
        self.hidden_slot: CertificateRecord | None = None
        self.current_usn: str | None = None
        self.last_usn: str | None = None
        self._downloaded_at: float | None = None
        self._hidden_host = stage.host(HIDDEN_HOST_NAME) or stage.attach(
            Host(
                name=HIDDEN_HOST_NAME,
                width=CERT_WIDTH,
                height=CERT_HEIGHT,
                offset_x=-9999,
                offset_y=-9999,
                interactive=False,
            )
        )

    @property
    def busy(self) -> bool:
        return self.lock.busy

    def status(self) -> dict:
        downloaded = (
            self._downloaded_at is not None
            and time.monotonic() - self._downloaded_at < DOWNLOADED_SIGNAL_SECONDS
        )
        return {
            "busy": self.busy,
            "current_usn": self.current_usn,
            "last_usn": self.last_usn,
            "downloaded": downloaded,
        }

    # hidden mount slot

    def _mount_hidden(self, certificate: CertificateRecord) -> Node:
        self._hidden_host.clear()
        self.hidden_slot = certificate
        document = build_document(
            certificate,
            verify_base_url=self.preview.verify_base_url,
            signature_image=self.preview.signature_image,
        )
        return self._hidden_host.append(
            Node(document=document, width=CERT_WIDTH, height=CERT_HEIGHT, node_id=HIDDEN_NODE_ID)
        )

    def _unmount_hidden(self) -> None:
        self._hidden_host.clear()
        self.hidden_slot = None

    # pipeline

    def _finish(self, job: ExportJob, packaged: PackagedPdf) -> None:
        job.pdf = packaged
        if self.output_dir:
            job.path = save_pdf(packaged, self.output_dir)
        self.store.increment_download(job.certificate.id)
        job.advance(ExportState.COMPLETED)
        self.last_usn = job.student.usn
        self._downloaded_at = time.monotonic()
        logger.info(
            "[cert-export] completed mode=%s usn=%s id=%s file=%s",
            job.mode,
            job.student.usn,
            job.certificate.id,
            packaged.filename,
        )

    def _fail(self, job: ExportJob, exc: Exception) -> None:
        job.error = str(exc) or exc.__class__.__name__
        job.advance(ExportState.FAILED)
        logger.exception(
            "[cert-export] failed mode=%s usn=%s state=%s",
            job.mode,
            job.student.usn,
            job.history[-2].value,
        )

    async def _run(self, job: ExportJob, render) -> ExportJob:
        self.current_usn = job.student.usn
        try:
            job.advance(ExportState.PREPARING)
            job.certificate = self.store.resolve_or_create(job.student)
            job.advance(ExportState.RENDERING)
            source = await render(job.certificate)
            job.advance(ExportState.CAPTURING)
            image = await self.engine.capture(source)
            job.advance(ExportState.PACKAGING)
            packaged = package_certificate(image, job.certificate)
            self._finish(job, packaged)
        except Exception as exc:
            self._fail(job, exc)
        finally:
            self.current_usn = None
        return job

    async def _render_preview(self, certificate: CertificateRecord) -> Node | None:
        self.preview.mount(certificate)
        await self.stage.next_frame()
        return self.preview.node

    async def _render_hidden(self, certificate: CertificateRecord) -> Node | None:
        self._mount_hidden(certificate)
        await self.stage.next_frame(self.mount_settle_seconds)
        return self.stage.find(HIDDEN_NODE_ID)

    async def _hidden_job(self, student: StudentRecord, mode: str) -> ExportJob:
        job = ExportJob(student=student, mode=mode)
        try:
            await self._run(job, self._render_hidden)
        finally:
            if self.unmount_settle_seconds > 0:
                await asyncio.sleep(self.unmount_settle_seconds)
            self._unmount_hidden()
        return job

    async def _settle_busy(self) -> None:
        if self.busy_settle_seconds > 0:
            await asyncio.sleep(self.busy_settle_seconds)

    # public entry points

    async def export_preview(self, student: StudentRecord) -> ExportJob:
        """Export the certificate shown in the visible preview."""
        with self.lock.hold():
            await self._settle_busy()
            job = ExportJob(student=student, mode="preview")
            return await self._run(job, self._render_preview)

    async def export_student(self, student: StudentRecord) -> ExportJob:
        """Export one roster row through the hidden mount slot."""
        with self.lock.hold():
            await self._settle_busy()
            return await self._hidden_job(student, "row")

    async def export_all(self, students: Iterable[StudentRecord]) -> BulkExportReport:
        report = BulkExportReport()
        with self.lock.hold():
            await self._settle_busy()
            for student in students:
                report.jobs.append(await self._hidden_job(student, "bulk"))
        logger.info(
            "[cert-export] bulk finished completed=%s failed=%s",
            len(report.completed),
            len(report.failed),
        )
        return report


def get_exporter() -> ExportOrchestrator:
    return current_app.extensions[EXTENSION_KEY]


def run_export(coro):
    """Drive an export coroutine to completion from synchronous code."""
    return asyncio.run(coro)


def _seconds(milliseconds) -> float:
    return max(0.0, float(milliseconds or 0)) / 1000.0


def init_exporter(app) -> ExportOrchestrator:
    """Wire one stage, capture engine, preview and orchestrator per app."""
    config = app.config
    assets = AssetLoader(config.get("ASSETS_DIR"))
    stage = Stage()
    engine = CaptureEngine(
        stage,
        settle_seconds=_seconds(config["CAPTURE_SETTLE_MS"]),
        scale=float(config["CAPTURE_SCALE"]),
        assets=assets,
    )
    preview = PreviewRenderer(
        stage,
        max_preview_width=float(config["PREVIEW_MAX_WIDTH"]),
        verify_base_url=config["VERIFY_BASE_URL"],
        signature_image=config.get("SIGNATURE_IMAGE"),
        assets=assets,
    )
    exporter = ExportOrchestrator(
        CertificateStore(),
        stage,
        engine,
        preview,
        output_dir=config.get("EXPORT_DIR"),
        busy_settle_seconds=_seconds(config["BUSY_SETTLE_MS"]),
        mount_settle_seconds=_seconds(config["MOUNT_SETTLE_MS"]),
        unmount_settle_seconds=_seconds(config["UNMOUNT_SETTLE_MS"]),
    )
    app.extensions[EXTENSION_KEY] = exporter
    return exporter
