from __future__ import annotations

from sqlalchemy.orm import validates

from .app import db
from .entities import CertificateRecord, StudentRecord, usn_key


class Student(db.Model):
    __tablename__ = "students"

    id = db.Column(db.Integer, primary_key=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    usn = db.Column(db.String(64), nullable=False)
    usn_key = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False, default="")
    course = db.Column(db.String(255), nullable=False, default="")
    score = db.Column(db.Float, nullable=False, default=0)

    @validates("usn")
    def derive_usn_key(self, key, value):  # pragma: no cover - simple normalizer
        self.usn_key = usn_key(value)
        return value.strip()

    def to_record(self) -> StudentRecord:
        return StudentRecord(
            usn=self.usn, name=self.name, course=self.course, score=self.score
        )


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.String(16), primary_key=True)
    usn = db.Column(db.String(64), nullable=False)
    usn_key = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    course = db.Column(db.String(255), nullable=False)
    score = db.Column(db.Float, nullable=False, default=0)
    issued_date = db.Column(db.String(64), nullable=False)
    downloads = db.Column(db.Integer, nullable=False, default=0)
    issued_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint("usn_key", name="uix_certificate_usn_key"),
        db.CheckConstraint("downloads >= 0", name="ck_certificate_downloads"),
    )

    def to_record(self) -> CertificateRecord:
        return CertificateRecord(
            id=self.id,
            usn=self.usn,
            name=self.name,
            course=self.course,
            score=self.score,
            issued_date=self.issued_date,
            downloads=self.downloads or 0,
        )
