import os
import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from digicertify.app import create_app, db
from digicertify.entities import CertificateRecord, StudentRecord

ADMIN_PASSWORD = "correct horse"
CSRF_TOKEN = "token"


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


@pytest.fixture
def app(tmp_path):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    application = create_app(
        {
            "EXPORT_DIR": str(tmp_path / "certificates"),
            "ADMIN_USERNAME": "admin",
            "ADMIN_PASSWORD": ADMIN_PASSWORD,
            "ADMIN_PASSWORD_HASH": None,
            "BUSY_SETTLE_MS": 0,
            "CAPTURE_SETTLE_MS": 0,
            "MOUNT_SETTLE_MS": 0,
            "UNMOUNT_SETTLE_MS": 0,
        }
    )
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def client(app):
    client = app.test_client()
    with client.session_transaction() as sess:
        sess["_csrf_token"] = CSRF_TOKEN
    return client


@pytest.fixture
def admin_client(app):
    client = app.test_client()
    with client.session_transaction() as sess:
        sess["is_admin"] = True
        sess["admin_username"] = "admin"
        sess["_csrf_token"] = CSRF_TOKEN
    return client


@pytest.fixture
def student():
    return StudentRecord(usn="1RV21CS001", name="Asha Rao", course="Data Structures", score=92)


@pytest.fixture
def certificate():
    return CertificateRecord(
        id="DC-TEST0001",
        usn="1RV21CS001",
        name="Asha Rao",
        course="Data Structures",
        score=92,
        issued_date="January 1, 2024",
    )
