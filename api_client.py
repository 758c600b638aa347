"""
Async client for the Donation Portal REST API.

Usage:
    async with ApiClient("https://portal.example.org") as client:
        await client.send_otp("9876543210")
        await client.verify_otp("9876543210", "123456")
        page = await client.fetch_receipts_page("+919876543210", page=1)

Transport errors and 5xx responses are retried with linear backoff; 4xx
responses are returned to the caller immediately.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from config import settings
from exceptions import ApiRequestError, ValidationError
from logging_config import logger
from otp import is_valid_code
from schemas import Payment, ReceiptPage, Receipt, Subscription, TokenOut, UserData


class ApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.token = token
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.CLIENT_MAX_ATTEMPTS)
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.CLIENT_BACKOFF_SECONDS
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.CLIENT_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    def set_token(self, token: Optional[str]) -> None:
        self.token = token

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error") or body.get("detail")
            if message:
                return str(message)
        return f"HTTP error! status: {response.status_code}"

    async def _request(self, method: str, path: str, attempts: int = 1, **kwargs) -> Any:
        """One HTTP round trip. Raises ApiRequestError on transport failure or non-2xx."""
        try:
            response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise ApiRequestError(f"Request to {path} failed: {e}", attempts=attempts)

        if response.is_error:
            raise ApiRequestError(self._error_message(response), response.status_code, attempts)
        if not response.content:
            return None
        return response.json()

    async def _request_with_retry(self, method: str, path: str, **kwargs) -> Any:
        attempt = 1
        while True:
            try:
                return await self._request(method, path, attempts=attempt, **kwargs)
            except ApiRequestError as e:
                client_error = e.http_status is not None and 400 <= e.http_status < 500
                if client_error or attempt >= self.max_attempts:
                    raise
                delay = self.backoff_seconds * attempt
                logger.warning(
                    f"{method} {path} failed (attempt {attempt}/{self.max_attempts}): {e.message}; "
                    f"retrying in {delay}s"
                )
                await self._sleep(delay)
                attempt += 1

    @staticmethod
    def _unwrap(body: Dict[str, Any]) -> Any:
        if not body or not body.get("success"):
            message = (body or {}).get("message") or "Request was not successful"
            raise ApiRequestError(message)
        return body.get("data")

    # Receipts

    async def fetch_receipts_page(self, phone: str, page: int = 1,
                                  limit: Optional[int] = None) -> ReceiptPage:
        body = await self._request_with_retry(
            "GET", "/api/receipts",
            params={"phone": phone, "page": page, "limit": limit or settings.RECEIPTS_PAGE_SIZE},
        )
        return ReceiptPage.model_validate(body or {})

    async def get_receipt(self, receipt_id: str) -> Receipt:
        body = await self._request_with_retry("GET", f"/api/receipts/{receipt_id}")
        return Receipt.model_validate(body["receipt"])

    # Phone auth

    async def send_otp(self, phone: str, role: str = "Donor") -> Dict[str, Any]:
        return await self._request("POST", "/api/otp/send", json={"phone": phone, "role": role})

    async def resend_otp(self, phone: str, role: str = "Donor") -> Dict[str, Any]:
        return await self._request("POST", "/api/otp/resend", json={"phone": phone, "role": role})

    async def verify_otp(self, phone: str, code: str, role: str = "Donor") -> TokenOut:
        """Exchange a code for an access token and keep it for later calls."""
        if not is_valid_code(code):
            raise ValidationError("Please enter a valid 6-digit OTP", field="code")
        body = await self._request(
            "POST", "/api/otp/verify", json={"phone": phone, "code": code, "role": role}
        )
        token = TokenOut.model_validate(body)
        self.set_token(token.access_token)
        return token

    async def get_user_data(self, phone: str) -> Optional[UserData]:
        try:
            body = await self._request("GET", "/api/boxes/userData", params={"phoneNumber": phone})
        except ApiRequestError as e:
            if e.http_status == 404:
                return None
            raise
        return UserData.model_validate(body)

    # Social statuses

    async def fetch_statuses(self, **filters) -> List[Dict[str, Any]]:
        params = {
            "activeOnly": filters.get("active_only"),
            "category": filters.get("category"),
            "tag": filters.get("tag"),
            "featured": filters.get("featured"),
            "limit": filters.get("limit"),
        }
        params = {k: v for k, v in params.items() if v not in (None, False, "")}
        body = await self._request_with_retry("GET", "/api/statuses", params=params)
        return self._unwrap(body) or []

    async def fetch_categories(self) -> List[Dict[str, Any]]:
        body = await self._request_with_retry("GET", "/api/statuses/categories")
        return self._unwrap(body) or []

    async def fetch_stats(self) -> Dict[str, Any]:
        body = await self._request_with_retry("GET", "/api/statuses/stats")
        return self._unwrap(body) or {}

    async def update_status(self, status_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        body = await self._request("PUT", f"/api/statuses/{status_id}", json=fields)
        return self._unwrap(body)

    async def increment_status_usage(self, status_id: str) -> Dict[str, Any]:
        return await self.update_status(status_id, {"incrementUsage": True})

    # Subscriptions

    async def fetch_subscriptions(self, phone: str) -> List[Subscription]:
        body = await self._request_with_retry("GET", "/api/subscriptions", params={"phone": phone})
        return [Subscription.model_validate(s) for s in body.get("subscriptions", [])]

    async def fetch_payment_history(self, subscription_id: str, page: int = 1,
                                    limit: int = 10) -> List[Payment]:
        body = await self._request_with_retry(
            "GET", f"/api/subscriptions/{subscription_id}/payments", params={"page": page, "limit": limit}
        )
        return [Payment.model_validate(p) for p in body.get("payments", [])]

    async def pay_subscription(self, subscription_id: str, **payment) -> Dict[str, Any]:
        fields = {
            "amount": payment.get("amount"),
            "method": payment.get("method"),
            "razorpayPaymentId": payment.get("razorpay_payment_id"),
            "razorpayOrderId": payment.get("razorpay_order_id"),
        }
        return await self._request(
            "POST", f"/api/subscriptions/{subscription_id}/pay",
            json={k: v for k, v in fields.items() if v is not None},
        )

    async def cancel_subscription(self, subscription_id: str) -> Subscription:
        body = await self._request("DELETE", f"/api/subscriptions/{subscription_id}")
        return Subscription.model_validate(body["subscription"])
