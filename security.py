import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from config import settings
from exceptions import AuthenticationError, AuthorizationError, InvalidPhoneError, InvalidTokenError
from logging_config import set_phone

DEFAULT_COUNTRY_CODE = "+91"

DONOR_ROLE = "Donor"
ADMIN_ROLES = {"Super Admin", "Manager", "Admin", "Staff"}

# Which collection proves a phone belongs to a role
ROLE_COLLECTIONS = {
    "Super Admin": "admins",
    "Manager": "admins",
    "Admin": "admins",
    "Staff": "admins",
    "Subscriber": "donors",
    "Volunteer": "volunteers",
    "BoxHolder": "boxes",
}

# Bearer token security; missing header is handled by the dependencies below
bearer = HTTPBearer(auto_error=False)


def normalize_phone(phone: Optional[str]) -> str:
    """Strip separators and prefix +91 when no country code is given."""
    cleaned = re.sub(r"[\s\-()]", "", phone or "")
    if not cleaned:
        raise InvalidPhoneError(phone or "")
    if not cleaned.startswith("+"):
        cleaned = DEFAULT_COUNTRY_CODE + cleaned

    if cleaned.startswith(DEFAULT_COUNTRY_CODE):
        valid = re.fullmatch(r"\d{10}", cleaned[len(DEFAULT_COUNTRY_CODE):]) is not None
    else:
        valid = re.fullmatch(r"\+\d{8,15}", cleaned) is not None
    if not valid:
        raise InvalidPhoneError(phone)
    return cleaned


def create_access_token(phone: str, role: str = DONOR_ROLE,
                        expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token for a verified phone number"""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": phone, "role": role, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise InvalidTokenError()
    if payload.get("type") != "access" or not payload.get("sub"):
        raise InvalidTokenError()
    return payload


@dataclass
class Principal:
    phone: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def can_access_phone(self, phone: Optional[str]) -> bool:
        return self.is_admin or (phone is not None and phone == self.phone)


def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Optional[Principal]:
    if credentials is None:
        return None
    payload = decode_token(credentials.credentials)
    set_phone(payload["sub"])
    return Principal(phone=payload["sub"], role=payload.get("role", DONOR_ROLE))


def get_current_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    if principal is None:
        raise AuthenticationError()
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise AuthorizationError("Admin access required")
    return principal


def ensure_phone_access(principal: Principal, phone: Optional[str]) -> None:
    if not principal.can_access_phone(phone):
        raise AuthorizationError("You can only access records for your own phone number")
