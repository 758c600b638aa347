"""
Donation Portal - Test Configuration and Fixtures
"""
import os
from datetime import datetime, timedelta
from typing import AsyncGenerator, Dict, List, Tuple

import mongomock
import pytest
from faker import Faker
from httpx import ASGITransport, AsyncClient

# Set testing environment before the app reads its settings
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ["LOG_FILE"] = ""
os.environ["DATABASE_NAME"] = "donations_test"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-for-testing"
os.environ["OTP_RESEND_INTERVAL_SECONDS"] = "30"

from main import app, get_media_storage, get_otp_sender
from database import get_db
from media_storage import MediaStorage
from security import create_access_token

fake = Faker("en_IN")

DONOR_PHONE = "+919876543210"
OTHER_PHONE = "+919123456789"
ADMIN_PHONE = "+919000000001"


class RecordingOTPSender:
    """Keeps every delivered code instead of sending an SMS"""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    def send(self, phone: str, code: str) -> None:
        self.sent.append((phone, code))

    def last_code(self, phone: str) -> str:
        return [code for sent_to, code in self.sent if sent_to == phone][-1]


@pytest.fixture
def db():
    """Fresh in-memory database for each test"""
    return mongomock.MongoClient()["donations_test"]


@pytest.fixture
def otp_sender() -> RecordingOTPSender:
    return RecordingOTPSender()


@pytest.fixture
def media_storage(tmp_path) -> MediaStorage:
    return MediaStorage(str(tmp_path / "media"), "/media", max_bytes=1024 * 1024)


@pytest.fixture
async def client(db, otp_sender, media_storage) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database, OTP and storage overrides"""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_otp_sender] = lambda: otp_sender
    app.dependency_overrides[get_media_storage] = lambda: media_storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def bearer(phone: str, role: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(phone, role)}"}


@pytest.fixture
def donor_headers() -> Dict[str, str]:
    return bearer(DONOR_PHONE, "Donor")


@pytest.fixture
def other_donor_headers() -> Dict[str, str]:
    return bearer(OTHER_PHONE, "Donor")


@pytest.fixture
def admin_headers(db) -> Dict[str, str]:
    db["admins"].insert_one({"name": fake.name(), "phone": ADMIN_PHONE, "role": "Admin"})
    return bearer(ADMIN_PHONE, "Admin")


@pytest.fixture
def make_donation(db):
    """Insert a donation; later calls get later createdAt values by default"""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        doc = {
            "amount": 100 * counter["n"],
            "type": "General",
            "name": fake.name(),
            "phone": DONOR_PHONE,
            "status": "Completed",
            "method": "online",
            "razorpayOrderId": f"order_{fake.bothify('########')}",
            "createdAt": datetime(2024, 5, 1) + timedelta(hours=counter["n"]),
        }
        doc.update(overrides)
        doc["_id"] = db["donations"].insert_one(doc).inserted_id
        return doc

    return _make


@pytest.fixture
def make_status(db):
    def _make(**overrides):
        now = datetime.utcnow()
        doc = {
            "content": fake.sentence(),
            "type": "text",
            "category": "General",
            "tags": [],
            "backgroundColor": "#111827",
            "textColor": "#ffffff",
            "fontFamily": "Inter",
            "fontSize": 24,
            "featured": False,
            "isActive": True,
            "usageCount": 0,
            "mediaUrl": None,
            "thumbnailUrl": None,
            "createdAt": now,
            "updatedAt": now,
        }
        doc.update(overrides)
        doc["_id"] = db["statuses"].insert_one(doc).inserted_id
        return doc

    return _make


@pytest.fixture
def make_subscription(db):
    def _make(**overrides):
        doc = {
            "donorId": None,
            "amount": 500,
            "name": fake.name(),
            "email": fake.email(),
            "phone": DONOR_PHONE,
            "method": "manual",
            "status": "active",
            "period": "monthly",
            "donationType": "General",
            "district": "Kozhikode",
            "panchayat": "Feroke",
            "lastPaymentAt": None,
            "isActive": True,
            "createdAt": datetime.utcnow(),
        }
        doc.update(overrides)
        doc["_id"] = db["subscriptions"].insert_one(doc).inserted_id
        return doc

    return _make
