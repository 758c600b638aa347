"""
One-time passwords for phone login.

Codes are 6 random digits, stored only as an HMAC so a database dump does not
reveal pending codes. Delivery is delegated to an OTPSender; the default one
just logs, an SMS gateway can be plugged in through the `get_otp_sender`
dependency in main.py.
"""
import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta
from typing import Optional, Protocol

from pymongo.database import Database

from config import settings
from exceptions import OTPExpiredError, OTPInvalidError, RateLimitError
from logging_config import logger

OTP_LENGTH = 6
OTP_COLLECTION = "otp_codes"


class OTPSender(Protocol):
    def send(self, phone: str, code: str) -> None:
        ...


class LoggingOTPSender:
    """Development sender: writes the delivery to the log instead of an SMS."""

    def send(self, phone: str, code: str) -> None:
        if settings.DEBUG:
            logger.info(f"OTP for {phone}: {code}")
        else:
            logger.info(f"OTP dispatched to {phone}")


def is_valid_code(code: Optional[str]) -> bool:
    return code is not None and re.fullmatch(rf"\d{{{OTP_LENGTH}}}", code) is not None


class OTPService:
    def __init__(
        self,
        db: Database,
        sender: OTPSender,
        ttl_seconds: Optional[int] = None,
        resend_interval_seconds: Optional[int] = None,
        max_attempts: Optional[int] = None,
        secret: Optional[str] = None,
    ):
        self.collection = db[OTP_COLLECTION]
        self.sender = sender
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.OTP_TTL_SECONDS
        self.resend_interval_seconds = (
            resend_interval_seconds if resend_interval_seconds is not None
            else settings.OTP_RESEND_INTERVAL_SECONDS
        )
        self.max_attempts = max_attempts if max_attempts is not None else settings.OTP_MAX_ATTEMPTS
        self._secret = (secret or settings.JWT_SECRET_KEY).encode("utf-8")

    @staticmethod
    def generate_code() -> str:
        return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"

    def _hash(self, phone: str, code: str) -> str:
        return hmac.new(self._secret, f"{phone}:{code}".encode("utf-8"), hashlib.sha256).hexdigest()

    def send(self, phone: str, now: Optional[datetime] = None) -> int:
        """Issue a fresh code for `phone`, replacing any pending one. Returns TTL in seconds."""
        now = now or datetime.utcnow()
        existing = self.collection.find_one({"phone": phone})
        if existing and existing.get("lastSentAt"):
            elapsed = (now - existing["lastSentAt"]).total_seconds()
            if elapsed < self.resend_interval_seconds:
                wait = int(self.resend_interval_seconds - elapsed) + 1
                logger.log_auth_event("otp_send", False, phone=phone, reason="cooldown")
                raise RateLimitError(f"Please wait {wait}s before requesting another OTP", retry_after=wait)

        code = self.generate_code()
        self.collection.update_one(
            {"phone": phone},
            {"$set": {
                "phone": phone,
                "codeHash": self._hash(phone, code),
                "expiresAt": now + timedelta(seconds=self.ttl_seconds),
                "attempts": 0,
                "lastSentAt": now,
            }},
            upsert=True,
        )
        self.sender.send(phone, code)
        logger.log_auth_event("otp_send", True, phone=phone)
        return self.ttl_seconds

    def resend(self, phone: str, now: Optional[datetime] = None) -> int:
        return self.send(phone, now=now)

    def verify(self, phone: str, code: str, now: Optional[datetime] = None) -> None:
        """Raise unless `code` is the pending code for `phone`; a match consumes it."""
        now = now or datetime.utcnow()
        if not is_valid_code(code):
            raise OTPInvalidError(f"OTP must be {OTP_LENGTH} digits")

        record = self.collection.find_one({"phone": phone})
        if not record:
            logger.log_auth_event("otp_verify", False, phone=phone, reason="no pending code")
            raise OTPInvalidError("No OTP requested for this number")

        if record["expiresAt"] <= now:
            self.collection.delete_one({"_id": record["_id"]})
            logger.log_auth_event("otp_verify", False, phone=phone, reason="expired")
            raise OTPExpiredError()

        if record.get("attempts", 0) >= self.max_attempts:
            self.collection.delete_one({"_id": record["_id"]})
            logger.log_auth_event("otp_verify", False, phone=phone, reason="too many attempts")
            raise RateLimitError("Too many incorrect attempts, please request a new OTP")

        # matching and consuming in one call lets only one concurrent verify win
        consumed = self.collection.find_one_and_delete(
            {"_id": record["_id"], "codeHash": self._hash(phone, code)}
        )
        if consumed is None:
            self.collection.update_one({"_id": record["_id"]}, {"$inc": {"attempts": 1}})
            logger.log_auth_event("otp_verify", False, phone=phone, reason="mismatch")
            raise OTPInvalidError()

        logger.log_auth_event("otp_verify", True, phone=phone)
