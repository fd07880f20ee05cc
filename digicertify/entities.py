from __future__ import annotations

from dataclasses import asdict, dataclass


def usn_key(usn: str | None) -> str:
    """Case-insensitive lookup key for a USN."""
    return (usn or "").strip().lower()


@dataclass(frozen=True)
class StudentRecord:
    usn: str
    name: str
    course: str
    score: float

    @property
    def key(self) -> str:
        return usn_key(self.usn)


@dataclass(frozen=True)
class CertificateRecord:
    """Snapshot of an issued certificate, safe to hold across await points."""

    id: str
    usn: str
    name: str
    course: str
    score: float
    issued_date: str
    downloads: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["issuedDate"] = data.pop("issued_date")
        return data


def format_score(score: float) -> str:
    if float(score).is_integer():
        return str(int(score))
    return f"{score:.1f}"
