from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import date
from typing import Iterable, NamedTuple

from sqlalchemy.exc import IntegrityError

from ..app import db
from ..constants import (
    CERT_ID_ALPHABET,
    CERT_ID_LENGTH,
    CERT_ID_MAX_ATTEMPTS,
    CERT_ID_PREFIX,
)
from ..entities import CertificateRecord, StudentRecord, usn_key
from ..models import Certificate, Student

logger = logging.getLogger("digicertify.records")


def generate_certificate_id() -> str:
    suffix = "".join(secrets.choice(CERT_ID_ALPHABET) for _ in range(CERT_ID_LENGTH))
    return f"{CERT_ID_PREFIX}{suffix}"


def normalize_certificate_id(raw: str | None) -> str:
    return (raw or "").strip().upper()


def format_issued_date(value: date) -> str:
    """``January 1, 2024`` style, no zero padding."""
    return f"{value:%B} {value.day}, {value.year}"


def _is_usn_conflict(error: IntegrityError) -> bool:
    details = str(getattr(error, "orig", None) or error).lower()
    return "usn_key" in details


class CertificateStats(NamedTuple):
    issued: int
    downloads: int


class CertificateStore:
    """Issued certificates keyed by id, unique per USN."""

    def __init__(self, today=date.today, id_factory=generate_certificate_id):
        self._today = today
        self._id_factory = id_factory

    def find_by_id(self, cert_id: str | None) -> CertificateRecord | None:
        normalized = normalize_certificate_id(cert_id)
        if not normalized:
            return None
        cert = db.session.get(Certificate, normalized)
        return cert.to_record() if cert else None

    def find_by_usn(self, usn: str | None) -> CertificateRecord | None:
        key = usn_key(usn)
        if not key:
            return None
        cert = (
            db.session.query(Certificate)
            .filter(Certificate.usn_key == key)
            .one_or_none()
        )
        return cert.to_record() if cert else None

    def resolve_or_create(self, student: StudentRecord) -> CertificateRecord:
        existing = self.find_by_usn(student.usn)
        if existing:
            return existing
        issued_date = format_issued_date(self._today())
        for attempt in range(1, CERT_ID_MAX_ATTEMPTS + 1):
            candidate = normalize_certificate_id(self._id_factory())
            if db.session.get(Certificate, candidate) is not None:
                logger.warning(
                    "[cert-issue] id collision usn=%s attempt=%s", student.usn, attempt
                )
                continue
            cert = Certificate(
                id=candidate,
                usn=student.usn,
                usn_key=student.key,
                name=student.name,
                course=student.course,
                score=student.score,
                issued_date=issued_date,
                downloads=0,
            )
            db.session.add(cert)
            try:
                db.session.commit()
            except IntegrityError as exc:
                db.session.rollback()
                if _is_usn_conflict(exc):
                    concurrent = self.find_by_usn(student.usn)
                    if concurrent:
                        return concurrent
                    raise
                logger.warning(
                    "[cert-issue] id collision usn=%s attempt=%s", student.usn, attempt
                )
                continue
            logger.info("[cert-issue] issued id=%s usn=%s", cert.id, cert.usn)
            return cert.to_record()
        raise RuntimeError(
            f"Could not allocate a unique certificate id for {student.usn!r}"
        )

    def increment_download(self, cert_id: str) -> int:
        normalized = normalize_certificate_id(cert_id)
        updated = (
            db.session.query(Certificate)
            .filter(Certificate.id == normalized)
            .update(
                {Certificate.downloads: Certificate.downloads + 1},
                synchronize_session=False,
            )
        )
        if not updated:
            db.session.rollback()
            raise LookupError(f"Unknown certificate id {normalized!r}")
        db.session.commit()
        return db.session.query(Certificate.downloads).filter_by(id=normalized).scalar()

    def all(self) -> list[CertificateRecord]:
        rows = db.session.query(Certificate).order_by(Certificate.issued_at, Certificate.usn).all()
        return [row.to_record() for row in rows]

    def stats(self) -> CertificateStats:
        issued, downloads = db.session.query(
            db.func.count(Certificate.id),
            db.func.coalesce(db.func.sum(Certificate.downloads), 0),
        ).one()
        return CertificateStats(issued=int(issued), downloads=int(downloads))


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    certificate: CertificateRecord | None = None

    def to_dict(self) -> dict:
        if not self.valid or self.certificate is None:
            return {"valid": False}
        return {"valid": True, "certificate": self.certificate.to_dict()}


def verify_certificate(store: CertificateStore, raw_id: str | None) -> VerificationResult:
    cert_id = normalize_certificate_id(raw_id)
    if not cert_id:
        raise ValueError("Please enter a certificate ID.")
    cert = store.find_by_id(cert_id)
    if cert is None:
        logger.info("[cert-verify] miss id=%s", cert_id)
        return VerificationResult(valid=False)
    return VerificationResult(valid=True, certificate=cert)


def replace_roster(students: Iterable[StudentRecord]) -> int:
    """Swap the loaded roster; issued certificates are left untouched."""
    db.session.query(Student).delete()
    count = 0
    for position, record in enumerate(students):
        db.session.add(
            Student(
                position=position,
                usn=record.usn,
                name=record.name,
                course=record.course,
                score=record.score,
            )
        )
        count += 1
    db.session.commit()
    return count


def list_students() -> list[StudentRecord]:
    rows = db.session.query(Student).order_by(Student.position).all()
    return [row.to_record() for row in rows]


def find_student(usn: str | None) -> StudentRecord | None:
    key = usn_key(usn)
    if not key:
        return None
    row = db.session.query(Student).filter(Student.usn_key == key).one_or_none()
    return row.to_record() if row else None


def roster_size() -> int:
    return db.session.query(db.func.count(Student.id)).scalar() or 0
