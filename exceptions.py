"""
Custom Exceptions for the Donation Portal
=========================================

Route handlers and the client library raise these instead of generic
Exception; the API layer turns them into JSON error bodies with the
matching HTTP status.

Usage:
    from exceptions import StatusNotFoundError

    if not doc:
        raise StatusNotFoundError(status_id)
"""

from typing import Optional, Any, Dict


class DonationPortalError(Exception):
    """Base exception for all Donation Portal errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(DonationPortalError):
    """Caller is not authenticated"""

    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, code="AUTH_FAILED")


class InvalidTokenError(AuthenticationError):
    """Bearer token is malformed, expired or signed with another key"""

    def __init__(self):
        super().__init__("Could not validate credentials")
        self.code = "INVALID_TOKEN"


class AuthorizationError(DonationPortalError):
    """Caller may not perform this action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(DonationPortalError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class StatusNotFoundError(ResourceNotFoundError):
    def __init__(self, status_id: str):
        super().__init__("Status", status_id)


class CategoryNotFoundError(ResourceNotFoundError):
    def __init__(self, category_id: str):
        super().__init__("Category", category_id)


class ReceiptNotFoundError(ResourceNotFoundError):
    def __init__(self, receipt_id: str):
        super().__init__("Receipt", receipt_id)


class SubscriptionNotFoundError(ResourceNotFoundError):
    def __init__(self, subscription_id: str):
        super().__init__("Subscription", subscription_id)


class CampaignNotFoundError(ResourceNotFoundError):
    def __init__(self, campaign_id: str):
        super().__init__("Campaign", campaign_id)


class BoxNotFoundError(ResourceNotFoundError):
    def __init__(self, box_id: str):
        super().__init__("Box", box_id)


class PhoneNotFoundError(DonationPortalError):
    """No record with this phone number for the requested role"""

    status_code = 404

    def __init__(self, phone: str, role: str):
        super().__init__(
            f"Phone number not found in {role} collection",
            code="PHONE_NOT_FOUND",
            details={"phone": phone, "role": role}
        )


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(DonationPortalError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class InvalidObjectIdError(ValidationError):
    def __init__(self, value: str):
        super().__init__(f"Invalid id '{value}'", field="id")
        self.code = "INVALID_ID"


class InvalidPhoneError(ValidationError):
    def __init__(self, phone: str):
        super().__init__("Phone number must have 10 digits", field="phone")
        self.code = "INVALID_PHONE"


class OTPInvalidError(ValidationError):
    def __init__(self, message: str = "Invalid OTP"):
        super().__init__(message, field="code")
        self.code = "OTP_INVALID"


class OTPExpiredError(ValidationError):
    def __init__(self):
        super().__init__("OTP has expired, please request a new one", field="code")
        self.code = "OTP_EXPIRED"


class MediaUploadError(ValidationError):
    def __init__(self, message: str):
        super().__init__(message, field="mediaFile")
        self.code = "MEDIA_UPLOAD_FAILED"


# ============================================
# Conflict / Rate Errors
# ============================================

class ConflictError(DonationPortalError):
    """Request conflicts with the current state of a resource"""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFLICT", details=details)


class CategoryInUseError(ValidationError):
    """Category still referenced by statuses"""

    def __init__(self, name: str, count: int):
        super().__init__(
            f'Cannot delete category "{name}" because it is used by {count} status(es). '
            "Please reassign or delete these statuses first."
        )
        self.code = "CATEGORY_IN_USE"
        self.details.update({"category": name, "count": count})


class RateLimitError(DonationPortalError):
    status_code = 429

    def __init__(self, message: str, retry_after: Optional[int] = None):
        details = {"retry_after": retry_after} if retry_after is not None else {}
        super().__init__(message, code="RATE_LIMITED", details=details)


# ============================================
# Client-side Errors
# ============================================

class ApiRequestError(DonationPortalError):
    """A call to the REST API failed (after any retries)"""

    def __init__(self, message: str, status_code: Optional[int] = None, attempts: int = 1):
        super().__init__(
            message,
            code="API_REQUEST_FAILED",
            details={"status_code": status_code, "attempts": attempts}
        )
        self.http_status = status_code
        self.attempts = attempts
