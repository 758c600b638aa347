from datetime import datetime, timedelta

import mongomock
import pytest

from exceptions import OTPExpiredError, OTPInvalidError, RateLimitError
from otp import OTPService, is_valid_code

PHONE = "+919876543210"
NOW = datetime(2024, 1, 1, 12, 0, 0)


class Sender:
    def __init__(self):
        self.codes = []

    def send(self, phone, code):
        self.codes.append(code)


@pytest.fixture
def sender():
    return Sender()


@pytest.fixture
def service(sender):
    db = mongomock.MongoClient()["otp_test"]
    return OTPService(db, sender, ttl_seconds=300, resend_interval_seconds=30, max_attempts=3, secret="s3cret")


def wrong(code):
    return "000000" if code != "000000" else "111111"


def test_send_delivers_six_digit_code(service, sender):
    assert service.send(PHONE, now=NOW) == 300
    assert is_valid_code(sender.codes[0])


def test_code_is_not_stored_in_clear(service, sender):
    service.send(PHONE, now=NOW)
    record = service.collection.find_one({"phone": PHONE})
    assert "code" not in record
    assert record["codeHash"] != sender.codes[0]


def test_verify_accepts_code_once(service, sender):
    service.send(PHONE, now=NOW)
    code = sender.codes[0]

    service.verify(PHONE, code, now=NOW + timedelta(seconds=10))

    with pytest.raises(OTPInvalidError):
        service.verify(PHONE, code, now=NOW + timedelta(seconds=20))


def test_code_is_consumed_by_only_one_racing_verify(service, sender, monkeypatch):
    service.send(PHONE, now=NOW)
    code = sender.codes[0]
    stale = service.collection.find_one({"phone": PHONE})

    service.verify(PHONE, code, now=NOW + timedelta(seconds=10))
    # a second request that read the record before the first consumed it
    monkeypatch.setattr(service.collection, "find_one", lambda *args, **kwargs: stale)

    with pytest.raises(OTPInvalidError):
        service.verify(PHONE, code, now=NOW + timedelta(seconds=10))


def test_wrong_code_counts_attempts(service, sender):
    service.send(PHONE, now=NOW)
    code = sender.codes[0]

    for _ in range(3):
        with pytest.raises(OTPInvalidError):
            service.verify(PHONE, wrong(code), now=NOW)

    with pytest.raises(RateLimitError):
        service.verify(PHONE, code, now=NOW)
    assert service.collection.count_documents({"phone": PHONE}) == 0


def test_expired_code(service, sender):
    service.send(PHONE, now=NOW)

    with pytest.raises(OTPExpiredError):
        service.verify(PHONE, sender.codes[0], now=NOW + timedelta(seconds=301))


def test_malformed_code_is_rejected(service):
    service.send(PHONE, now=NOW)
    with pytest.raises(OTPInvalidError):
        service.verify(PHONE, "12345", now=NOW)


def test_resend_cooldown(service, sender):
    service.send(PHONE, now=NOW)

    with pytest.raises(RateLimitError) as exc_info:
        service.resend(PHONE, now=NOW + timedelta(seconds=10))
    assert exc_info.value.details["retry_after"] == 21

    service.resend(PHONE, now=NOW + timedelta(seconds=31))
    assert len(sender.codes) == 2


def test_resend_replaces_previous_code(service, sender):
    service.send(PHONE, now=NOW)
    service.resend(PHONE, now=NOW + timedelta(seconds=60))
    first, second = sender.codes

    if first != second:
        with pytest.raises(OTPInvalidError):
            service.verify(PHONE, first, now=NOW + timedelta(seconds=61))
    service.verify(PHONE, second, now=NOW + timedelta(seconds=62))
