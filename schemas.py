from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal, Union
from datetime import datetime

# Each stored model maps to a collection; fields travel camelCase on the wire


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


StatusType = Literal["text", "image", "video"]
ReceiptTab = Literal["all", "completed", "pending"]
SubscriptionPeriod = Literal["daily", "weekly", "monthly", "yearly"]


# ---------- Social status content ----------

class StatusIn(CamelModel):
    # content/category are checked by the route so both JSON and form bodies share one error
    content: Optional[str] = Field(None, description="Post text")
    type: StatusType = "text"
    category: Optional[str] = Field(None, description="StatusCategory name")
    tags: List[str] = Field(default_factory=list)
    background_color: str = "#111827"
    text_color: str = "#ffffff"
    font_family: str = "Inter"
    font_size: int = Field(default=24, ge=1)
    featured: bool = False
    is_active: bool = True


class StatusUpdateIn(StatusIn):
    increment_usage: bool = False


class CategoryIn(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True


# ---------- Donations / receipts ----------

class Receipt(CamelModel):
    id: Optional[str] = Field(None, alias="_id")
    amount: Optional[float] = None
    type: Optional[str] = Field(None, description="General | Campaign | Institute | Box | ...")
    name: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = Field(None, description="Completed | Pending")
    method: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    district: Optional[str] = None
    panchayat: Optional[str] = None
    box_id: Optional[str] = None
    campaign_id: Optional[str] = None
    institute_id: Optional[str] = None
    subscription_id: Optional[str] = None
    created_at: Optional[datetime] = None


class DonationIn(CamelModel):
    """A one-off General, Campaign or Box donation."""
    amount: float = Field(..., gt=0)
    type: str = Field("General", description="General | Campaign | Box")
    phone: Optional[str] = Field(None, description="Defaults to the caller's phone")
    name: Optional[str] = None
    email: Optional[str] = None
    district: Optional[str] = None
    panchayat: Optional[str] = None
    box_id: Optional[str] = None
    campaign_id: Optional[str] = None
    institute_id: Optional[str] = None
    method: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None


class ReceiptFilter(CamelModel):
    """User-supplied filter criteria; numeric bounds may arrive as raw text."""
    date: Optional[str] = Field(None, description="YYYY-MM-DD, matched against the UTC day of createdAt")
    type: Optional[str] = None
    status: Optional[str] = None
    min_amount: Optional[Union[float, str]] = None
    max_amount: Optional[Union[float, str]] = None


class Pagination(CamelModel):
    current_page: int = 1
    total_pages: int = 1
    total_items: int = 0
    items_per_page: int = 10


class ReceiptTotals(CamelModel):
    total_amount: float = 0
    total_donations: int = 0


class ReceiptPage(CamelModel):
    receipts: List[Receipt] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)
    totals: ReceiptTotals = Field(default_factory=ReceiptTotals)


# ---------- Subscriptions ----------

class Subscription(CamelModel):
    id: Optional[str] = Field(None, alias="_id")
    donor_id: Optional[str] = None
    amount: float
    name: Optional[str] = None
    email: Optional[str] = None
    phone: str
    method: Literal["auto", "manual"] = "manual"
    status: Literal["active", "inactive"] = "active"
    period: SubscriptionPeriod
    donation_type: Optional[str] = None
    district: Optional[str] = None
    panchayat: Optional[str] = None
    last_payment_at: Optional[datetime] = None
    is_active: bool = True
    plan_id: Optional[str] = None
    razorpay_subscription_id: Optional[str] = None
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    # derived by the API, never stored
    payment_status: Optional[str] = None
    next_due_date: Optional[datetime] = None


class Payment(CamelModel):
    """One charge of a subscription, read from the donations collection."""
    id: Optional[str] = Field(None, alias="_id")
    amount: Optional[float] = None
    payment_date: Optional[datetime] = None
    payment_status: Optional[str] = None
    method: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None

    @classmethod
    def from_donation(cls, doc: dict) -> "Payment":
        return cls(
            id=doc.get("_id"),
            amount=doc.get("amount"),
            payment_date=doc.get("createdAt"),
            payment_status=doc.get("status"),
            method=doc.get("method"),
            razorpay_payment_id=doc.get("razorpayPaymentId"),
            razorpay_order_id=doc.get("razorpayOrderId"),
        )


class PaymentIn(CamelModel):
    amount: Optional[float] = Field(None, gt=0, description="Defaults to the subscription amount")
    method: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None


# ---------- Pay-box holders ----------

class UserData(CamelModel):
    id: str
    name: str = "Unknown"
    phone_number: str
    email: str = "N/A"
    address: str = "N/A"


# ---------- Phone auth ----------

class CheckPhoneIn(CamelModel):
    phone: Optional[str] = None
    role: Optional[str] = None


class OTPSendIn(CamelModel):
    phone: str
    role: str = "Donor"


class OTPVerifyIn(CamelModel):
    phone: str
    code: str = Field(..., description="6-digit numeric code")
    role: str = "Donor"


class TokenOut(CamelModel):
    access_token: str
    token_type: str = "bearer"
    phone: str
    role: str
