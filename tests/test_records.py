from datetime import date

import pytest

from digicertify.app import db
from digicertify.entities import StudentRecord
from digicertify.models import Certificate
from digicertify.shared.records import (
    CertificateStore,
    find_student,
    format_issued_date,
    generate_certificate_id,
    list_students,
    replace_roster,
    roster_size,
    verify_certificate,
)


def _ids(*values):
    it = iter(values)
    return lambda: next(it)


def test_generated_id_shape():
    cert_id = generate_certificate_id()
    assert cert_id.startswith("DC-")
    assert len(cert_id) == 11
    assert cert_id[3:].isalnum() and cert_id[3:].upper() == cert_id[3:]


def test_issued_date_format():
    assert format_issued_date(date(2024, 1, 1)) == "January 1, 2024"
    assert format_issued_date(date(2023, 11, 25)) == "November 25, 2023"


@pytest.mark.smoke
def test_resolve_or_create_is_idempotent(app, student):
    store = CertificateStore(today=lambda: date(2024, 1, 1))
    first = store.resolve_or_create(student)
    again = store.resolve_or_create(
        StudentRecord(usn=" 1rv21cs001 ", name="Other", course="Other", score=1)
    )
    assert again.id == first.id
    assert first.issued_date == "January 1, 2024"
    assert first.downloads == 0
    assert db.session.query(Certificate).count() == 1


def test_id_collision_retries(app, student):
    store = CertificateStore(id_factory=_ids("DC-AAAAAAAA", "DC-AAAAAAAA", "DC-BBBBBBBB"))
    first = store.resolve_or_create(student)
    second = store.resolve_or_create(
        StudentRecord(usn="1RV21CS002", name="Ravi Kumar", course="Networks", score=70)
    )
    assert first.id == "DC-AAAAAAAA"
    assert second.id == "DC-BBBBBBBB"


def test_id_collision_gives_up(app, student):
    store = CertificateStore(id_factory=lambda: "DC-AAAAAAAA")
    store.resolve_or_create(student)
    with pytest.raises(RuntimeError):
        store.resolve_or_create(
            StudentRecord(usn="1RV21CS002", name="Ravi Kumar", course="Networks", score=70)
        )


def test_increment_download(app, student):
    store = CertificateStore()
    cert = store.resolve_or_create(student)
    assert store.increment_download(cert.id) == 1
    assert store.increment_download(cert.id.lower()) == 2
    assert store.find_by_id(cert.id).downloads == 2
    with pytest.raises(LookupError):
        store.increment_download("DC-NOPE0000")
    assert store.stats() == (1, 2)


def test_verify_certificate(app, student):
    store = CertificateStore()
    cert = store.resolve_or_create(student)
    result = verify_certificate(store, f"  {cert.id.lower()} ")
    assert result.valid
    assert result.to_dict()["certificate"]["issuedDate"] == cert.issued_date
    missing = verify_certificate(store, "DC-UNKNOWN1")
    assert missing.valid is False
    assert missing.to_dict() == {"valid": False}
    with pytest.raises(ValueError):
        verify_certificate(store, "   ")


def test_roster_replacement_keeps_certificates(app, student):
    replace_roster([student])
    store = CertificateStore()
    cert = store.resolve_or_create(student)
    replace_roster(
        [
            StudentRecord(usn="1RV21CS002", name="Ravi Kumar", course="Networks", score=70),
            StudentRecord(usn="1RV21CS003", name="Meera Iyer", course="Networks", score=88),
        ]
    )
    assert roster_size() == 2
    assert [s.usn for s in list_students()] == ["1RV21CS002", "1RV21CS003"]
    assert find_student("1rv21cs003").name == "Meera Iyer"
    assert find_student("1RV21CS001") is None
    assert store.find_by_usn("1RV21CS001").id == cert.id
