import json
import math
import os
import re
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as PydanticValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from config import settings
from database import close_client, create_document, get_db, get_documents, serialize, to_object_id
from exceptions import (
    AuthenticationError,
    AuthorizationError,
    BoxNotFoundError,
    CampaignNotFoundError,
    CategoryInUseError,
    CategoryNotFoundError,
    ConflictError,
    DonationPortalError,
    MediaUploadError,
    PhoneNotFoundError,
    ReceiptNotFoundError,
    StatusNotFoundError,
    SubscriptionNotFoundError,
    ValidationError,
)
from logging_config import logger
from media_storage import MEDIA_TYPES, MediaStorage
from middleware import RequestLoggingMiddleware
from otp import LoggingOTPSender, OTPSender, OTPService
from payment_status import enrich_subscription
from schemas import (
    CategoryIn,
    CheckPhoneIn,
    DonationIn,
    OTPSendIn,
    OTPVerifyIn,
    Pagination,
    Payment,
    PaymentIn,
    StatusUpdateIn,
    TokenOut,
    UserData,
)
from security import (
    DONOR_ROLE,
    ROLE_COLLECTIONS,
    Principal,
    create_access_token,
    ensure_phone_access,
    get_current_principal,
    get_optional_principal,
    normalize_phone,
    require_admin,
)
from status_stats import build_status_stats, record_usage

DEFAULT_CATEGORIES = [
    ("General", "Everyday messages for supporters"),
    ("Festival", "Greetings for festivals and occasions"),
    ("Campaign", "Updates about running campaigns"),
    ("Quotes", "Inspirational quotes"),
]


def ensure_indexes(db: Database) -> None:
    db["statuses"].create_index([("isActive", ASCENDING)])
    db["statuses"].create_index([("category", ASCENDING)])
    db["statuses"].create_index([("tags", ASCENDING)])
    db["statuses"].create_index([("featured", ASCENDING)])
    db["statuses"].create_index([("usageCount", DESCENDING)])
    db["status_categories"].create_index([("name", ASCENDING)], unique=True)
    db["status_usage"].create_index([("at", ASCENDING)])
    db["donations"].create_index([("phone", ASCENDING), ("createdAt", DESCENDING)])
    db["subscriptions"].create_index([("phone", ASCENDING)])
    db["otp_codes"].create_index([("phone", ASCENDING)], unique=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await run_in_threadpool(ensure_indexes, get_db())
    except PyMongoError as e:
        logger.warning(f"Could not ensure MongoDB indexes at startup: {e}")
    yield
    close_client()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount(
    settings.MEDIA_URL_PREFIX,
    StaticFiles(directory=settings.MEDIA_ROOT, check_dir=False),
    name="media",
)


# Error handling

@app.exception_handler(DonationPortalError)
async def portal_error_handler(request: Request, exc: DonationPortalError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    headers = {}
    if isinstance(exc, AuthenticationError):
        headers["WWW-Authenticate"] = "Bearer"
    if exc.details.get("retry_after") is not None:
        headers["Retry-After"] = str(exc.details["retry_after"])
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers or None)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(e.get("loc", [])), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
    first = errors[0] if errors else {"loc": [], "msg": "Invalid request"}
    field = ".".join(str(part) for part in first["loc"][1:])
    message = f"{field}: {first['msg']}" if field else first["msg"]
    return JSONResponse(
        status_code=400,
        content={"success": False, "code": "VALIDATION_ERROR", "message": message, "details": {"errors": errors}},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "code": "INTERNAL_ERROR",
            "message": str(exc) if settings.DEBUG else "An error occurred",
        },
    )


# Dependencies

def get_media_storage() -> MediaStorage:
    return MediaStorage(settings.MEDIA_ROOT, settings.MEDIA_URL_PREFIX, settings.MAX_UPLOAD_BYTES)


def get_otp_sender() -> OTPSender:
    return LoggingOTPSender()


def get_otp_service(db: Database = Depends(get_db), sender: OTPSender = Depends(get_otp_sender)) -> OTPService:
    return OTPService(db, sender)


# Helpers

def ok(data: Any = None, message: str = "", **extra) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = serialize(data)
    body.update(serialize(extra))
    return body


def paginate(page: int, limit: int, total: int) -> Dict[str, Any]:
    return Pagination(
        current_page=page,
        total_pages=math.ceil(total / limit),
        total_items=total,
        items_per_page=limit,
    ).model_dump(by_alias=True)


def check_role_membership(db: Database, phone: str, role: str) -> None:
    if role == DONOR_ROLE:
        return
    collection = ROLE_COLLECTIONS.get(role)
    if collection is None:
        raise ValidationError("Invalid role provided", field="role")
    if db[collection].find_one({"phone": phone}) is None:
        raise PhoneNotFoundError(phone, role)


@app.get("/")
def root():
    return {"message": "Donation Portal API running"}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": db.name,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["collections"] = db.list_collection_names()
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


@app.post("/api/seed")
def seed(db: Database = Depends(get_db), _: Principal = Depends(require_admin)):
    created = 0
    if db["status_categories"].count_documents({}) == 0:
        for name, description in DEFAULT_CATEGORIES:
            create_document(db, "status_categories", CategoryIn(name=name, description=description))
            created += 1
    logger.info(f"Seed created {created} status categories")
    return {"status": "ok", "categoriesCreated": created}


# Phone auth

@app.post("/api/check-phone")
def check_phone(payload: CheckPhoneIn, db: Database = Depends(get_db)):
    if not payload.phone or not payload.role:
        raise ValidationError("Phone number and role are required")
    if payload.role not in ROLE_COLLECTIONS:
        raise ValidationError("Invalid role provided", field="role")
    phone = normalize_phone(payload.phone)
    check_role_membership(db, phone, payload.role)
    return {"message": "Phone number exists", "exists": True}


@app.post("/api/otp/send")
def send_otp(payload: OTPSendIn, db: Database = Depends(get_db), otp: OTPService = Depends(get_otp_service)):
    phone = normalize_phone(payload.phone)
    check_role_membership(db, phone, payload.role)
    expires_in = otp.send(phone)
    return {"success": True, "message": "OTP sent successfully", "expiresIn": expires_in}


@app.post("/api/otp/resend")
def resend_otp(payload: OTPSendIn, db: Database = Depends(get_db), otp: OTPService = Depends(get_otp_service)):
    phone = normalize_phone(payload.phone)
    check_role_membership(db, phone, payload.role)
    expires_in = otp.resend(phone)
    return {"success": True, "message": "OTP resent successfully", "expiresIn": expires_in}


@app.post("/api/otp/verify", response_model=TokenOut)
def verify_otp(payload: OTPVerifyIn, db: Database = Depends(get_db), otp: OTPService = Depends(get_otp_service)):
    phone = normalize_phone(payload.phone)
    check_role_membership(db, phone, payload.role)
    otp.verify(phone, payload.code)
    token = create_access_token(phone, payload.role)
    logger.log_auth_event("token_issued", True, phone=phone, role=payload.role)
    return TokenOut(access_token=token, phone=phone, role=payload.role)


# Social statuses

STATUS_FORM_FIELDS = ("content", "type", "category", "backgroundColor", "textColor", "fontFamily", "fontSize")


async def read_status_body(request: Request) -> Tuple[StatusUpdateIn, Optional[UploadFile]]:
    """Accept multipart/form-data (with optional mediaFile) or JSON."""
    content_type = request.headers.get("content-type", "")
    media = None
    if "multipart/form-data" in content_type or "application/x-www-form-urlencoded" in content_type:
        form = await request.form()
        upload = form.get("mediaFile")
        if isinstance(upload, UploadFile) and upload.filename:
            media = upload
        raw = {k: v for k, v in form.items() if not isinstance(v, UploadFile)}
        # only fields present in the form count as set, so updates keep the rest
        fields = {key: raw[key] for key in STATUS_FORM_FIELDS if raw.get(key)}
        if "tags" in raw:
            try:
                fields["tags"] = json.loads(raw["tags"] or "[]")
            except ValueError:
                raise ValidationError("Tags must be a JSON array", field="tags")
        for key in ("featured", "isActive"):
            if key in raw:
                fields[key] = raw[key] == "true"
    else:
        try:
            fields = await request.json()
        except ValueError:
            raise ValidationError("Request body must be JSON or form data")
        if not isinstance(fields, dict):
            raise ValidationError("Request body must be a JSON object")

    try:
        payload = StatusUpdateIn.model_validate(fields)
    except PydanticValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise ValidationError(f"{field}: {error['msg']}", field=field or None)
    return payload, media


def require_content_and_category(payload: StatusUpdateIn) -> Tuple[str, str]:
    content = (payload.content or "").strip()
    category = (payload.category or "").strip()
    if not content or not category:
        raise ValidationError("Content and category are required")
    return content, category


def status_fields(payload: StatusUpdateIn) -> Dict[str, Any]:
    content, category = require_content_and_category(payload)
    fields = payload.model_dump(by_alias=True, exclude={"increment_usage"})
    fields.update(content=content, category=category)
    return fields


def get_status_or_404(db: Database, status_id: str) -> Dict[str, Any]:
    doc = db["statuses"].find_one({"_id": to_object_id(status_id)})
    if not doc:
        raise StatusNotFoundError(status_id)
    return doc


def create_status_record(db: Database, storage: MediaStorage, payload: StatusUpdateIn,
                         media: Optional[UploadFile]) -> Dict[str, Any]:
    doc = status_fields(payload)
    doc.update(usageCount=0, mediaUrl=None, thumbnailUrl=None)
    if media is not None:
        if payload.type not in MEDIA_TYPES:
            raise MediaUploadError("Only image and video statuses accept a media file")
        doc["mediaUrl"] = storage.save(media.file, media.filename, payload.type)
    new_id = create_document(db, "statuses", doc)
    logger.info(f"Status {new_id} created in category '{doc['category']}'")
    return db["statuses"].find_one({"_id": to_object_id(new_id)})


def update_status_record(db: Database, storage: MediaStorage, status_id: str, payload: StatusUpdateIn,
                         media: Optional[UploadFile], principal: Optional[Principal]) -> Dict[str, Any]:
    existing = get_status_or_404(db, status_id)

    if payload.increment_usage:
        updated = db["statuses"].find_one_and_update(
            {"_id": existing["_id"]},
            {"$inc": {"usageCount": 1}, "$set": {"updatedAt": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        record_usage(db, updated)
        return ok(updated, "Status usage incremented successfully")

    if principal is None:
        raise AuthenticationError()
    if not principal.is_admin:
        raise AuthorizationError("Admin access required")

    content, category = require_content_and_category(payload)
    # fields the client left out keep their stored values
    changes = payload.model_dump(by_alias=True, exclude_unset=True, exclude={"increment_usage"})
    changes.update(content=content, category=category, updatedAt=datetime.utcnow())
    status_type = changes.get("type", existing.get("type"))
    old_url = existing.get("mediaUrl")
    if media is not None:
        if status_type not in MEDIA_TYPES:
            raise MediaUploadError("Only image and video statuses accept a media file")
        changes["mediaUrl"] = storage.save(media.file, media.filename, status_type)
        if old_url:
            storage.delete(old_url, existing.get("type"))
    elif changes.get("type") == "text" and old_url:
        storage.delete(old_url, existing.get("type"))
        changes.update(mediaUrl=None, thumbnailUrl=None)

    updated = db["statuses"].find_one_and_update(
        {"_id": existing["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    return ok(updated, "Status updated successfully")


@app.get("/api/statuses")
def list_statuses(
    active_only: bool = Query(False, alias="activeOnly"),
    category: Optional[str] = None,
    tag: Optional[str] = None,
    featured: bool = False,
    limit: int = Query(0, ge=0),
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if active_only:
        query["isActive"] = True
    if category:
        query["category"] = category
    if tag:
        query["tags"] = tag
    if featured:
        query["featured"] = True
    items = get_documents(db, "statuses", query, sort=[("createdAt", -1)], limit=limit)
    return ok(items, "Statuses fetched successfully")


@app.post("/api/statuses", status_code=201)
async def create_status(
    request: Request,
    db: Database = Depends(get_db),
    storage: MediaStorage = Depends(get_media_storage),
    _: Principal = Depends(require_admin),
):
    payload, media = await read_status_body(request)
    doc = await run_in_threadpool(create_status_record, db, storage, payload, media)
    return ok(doc, "Status created successfully")


@app.get("/api/statuses/stats")
def status_stats(db: Database = Depends(get_db), _: Principal = Depends(require_admin)):
    return ok(build_status_stats(db))


# Status categories

def category_with_count(db: Database, category: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(category)
    result["count"] = db["statuses"].count_documents({"category": category["name"]})
    return result


def get_category_or_404(db: Database, category_id: str) -> Dict[str, Any]:
    doc = db["status_categories"].find_one({"_id": to_object_id(category_id)})
    if not doc:
        raise CategoryNotFoundError(category_id)
    return doc


def require_category_name(payload: CategoryIn) -> str:
    name = (payload.name or "").strip()
    if not name:
        raise ValidationError("Category name is required", field="name")
    return name


@app.get("/api/statuses/categories")
def list_categories(db: Database = Depends(get_db)):
    counts = {
        row["_id"]: row["count"]
        for row in db["statuses"].aggregate([{"$group": {"_id": "$category", "count": {"$sum": 1}}}])
    }
    categories = []
    for category in get_documents(db, "status_categories", sort=[("name", 1)]):
        category["count"] = counts.get(category["name"], 0)
        categories.append(category)
    return ok(categories, "Categories fetched successfully")


@app.post("/api/statuses/categories", status_code=201)
def create_category(payload: CategoryIn, db: Database = Depends(get_db), _: Principal = Depends(require_admin)):
    name = require_category_name(payload)
    if db["status_categories"].find_one({"name": name}):
        raise ConflictError("A category with this name already exists", details={"name": name})
    new_id = create_document(db, "status_categories", payload.model_copy(update={"name": name}))
    category = db["status_categories"].find_one({"_id": to_object_id(new_id)})
    return ok(category_with_count(db, category), "Category created successfully")


@app.get("/api/statuses/categories/{category_id}")
def get_category(category_id: str, db: Database = Depends(get_db)):
    category = get_category_or_404(db, category_id)
    return ok(category_with_count(db, category), "Category fetched successfully")


@app.put("/api/statuses/categories/{category_id}")
def update_category(category_id: str, payload: CategoryIn, db: Database = Depends(get_db),
                    _: Principal = Depends(require_admin)):
    name = require_category_name(payload)
    existing = get_category_or_404(db, category_id)
    renamed = name != existing["name"]
    if renamed and db["status_categories"].find_one({"name": name}):
        raise ConflictError("A category with this name already exists", details={"name": name})

    now = datetime.utcnow()
    updated = db["status_categories"].find_one_and_update(
        {"_id": existing["_id"]},
        {"$set": {"name": name, "description": payload.description, "isActive": payload.is_active, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    if renamed:
        result = db["statuses"].update_many(
            {"category": existing["name"]}, {"$set": {"category": name, "updatedAt": now}}
        )
        logger.info(f"Category '{existing['name']}' renamed to '{name}', {result.modified_count} statuses moved")
    return ok(category_with_count(db, updated), "Category updated successfully")


@app.delete("/api/statuses/categories/{category_id}")
def delete_category(category_id: str, db: Database = Depends(get_db), _: Principal = Depends(require_admin)):
    category = get_category_or_404(db, category_id)
    in_use = db["statuses"].count_documents({"category": category["name"]})
    if in_use:
        raise CategoryInUseError(category["name"], in_use)
    db["status_categories"].delete_one({"_id": category["_id"]})
    return ok(message="Category deleted successfully")


@app.get("/api/statuses/{status_id}")
def get_status(status_id: str, db: Database = Depends(get_db)):
    return ok(get_status_or_404(db, status_id), "Status fetched successfully")


@app.put("/api/statuses/{status_id}")
async def update_status(
    status_id: str,
    request: Request,
    db: Database = Depends(get_db),
    storage: MediaStorage = Depends(get_media_storage),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    payload, media = await read_status_body(request)
    return await run_in_threadpool(update_status_record, db, storage, status_id, payload, media, principal)


@app.delete("/api/statuses/{status_id}")
def delete_status(
    status_id: str,
    db: Database = Depends(get_db),
    storage: MediaStorage = Depends(get_media_storage),
    _: Principal = Depends(require_admin),
):
    status = get_status_or_404(db, status_id)
    if status.get("mediaUrl"):
        storage.delete(status["mediaUrl"], status.get("type"))
    db["statuses"].delete_one({"_id": status["_id"]})
    logger.info(f"Status {status_id} deleted")
    return ok(message="Status deleted successfully")


# Campaigns

def get_campaign_or_404(db: Database, campaign_id: str) -> Dict[str, Any]:
    doc = db["campaigns"].find_one({"_id": to_object_id(campaign_id)})
    if not doc:
        raise CampaignNotFoundError(campaign_id)
    return doc


@app.get("/api/campaigns")
def list_campaigns(status: Optional[str] = None, db: Database = Depends(get_db)):
    query = {"status": status} if status else {}
    items = get_documents(db, "campaigns", query, sort=[("createdAt", -1)])
    return {"campaigns": serialize(items)}


@app.get("/api/campaigns/{campaign_id}")
def get_campaign(campaign_id: str, db: Database = Depends(get_db)):
    return {"campaign": serialize(get_campaign_or_404(db, campaign_id))}


# Donations

@app.post("/api/donations", status_code=201)
def create_donation(payload: DonationIn, db: Database = Depends(get_db),
                    principal: Principal = Depends(get_current_principal)):
    phone = normalize_phone(payload.phone) if payload.phone else principal.phone
    ensure_phone_access(principal, phone)
    if payload.type == "Campaign" and not payload.campaign_id:
        raise ValidationError("campaignId is required for campaign donations", field="campaignId")
    if payload.type == "Box" and not payload.box_id:
        raise ValidationError("boxId is required for box donations", field="boxId")

    campaign = get_campaign_or_404(db, payload.campaign_id) if payload.campaign_id else None
    box = None
    if payload.box_id:
        box = db["boxes"].find_one({"_id": to_object_id(payload.box_id)})
        if not box:
            raise BoxNotFoundError(payload.box_id)

    completed = bool(payload.razorpay_payment_id)
    donation_id = create_document(db, "donations", {
        "amount": payload.amount,
        "type": payload.type,
        "name": payload.name or (box or {}).get("name"),
        "email": payload.email,
        "phone": phone,
        "status": "Completed" if completed else "Pending",
        "method": payload.method,
        "razorpayPaymentId": payload.razorpay_payment_id,
        "razorpayOrderId": payload.razorpay_order_id,
        "district": payload.district,
        "panchayat": payload.panchayat,
        "boxId": box["_id"] if box else None,
        "campaignId": campaign["_id"] if campaign else None,
        "instituteId": payload.institute_id,
    })
    # only a confirmed charge moves campaign totals and box payment dates
    if completed and campaign:
        db["campaigns"].update_one({"_id": campaign["_id"]}, {"$inc": {"currentAmount": payload.amount}})
    if completed and box:
        db["boxes"].update_one({"_id": box["_id"]}, {"$set": {"lastPayment": datetime.utcnow(), "isActive": True}})
    logger.info(f"{payload.type} donation {donation_id} recorded for {phone} (completed={completed})")

    receipt = db["donations"].find_one({"_id": to_object_id(donation_id)})
    return {"receipt": serialize(receipt)}


# Receipts

@app.get("/api/receipts")
def list_receipts(
    phone: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.RECEIPTS_DEFAULT_LIMIT, ge=1, le=100),
    db: Database = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    if not phone:
        raise ValidationError("Phone number is required", field="phone")
    formatted_phone = normalize_phone(phone)
    ensure_phone_access(principal, formatted_phone)

    match = {"phone": formatted_phone}
    total_donations = db["donations"].count_documents(match)
    total_rows = list(db["donations"].aggregate([
        {"$match": match},
        {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
    ]))
    total_amount = total_rows[0]["total"] if total_rows else 0

    receipts = get_documents(
        db, "donations", match, sort=[("createdAt", -1)], skip=(page - 1) * limit, limit=limit
    )
    return {
        "receipts": serialize(receipts),
        "totals": {"totalAmount": total_amount, "totalDonations": total_donations},
        "pagination": paginate(page, limit, total_donations),
    }


@app.get("/api/receipts/{receipt_id}")
def get_receipt(receipt_id: str, db: Database = Depends(get_db),
                principal: Principal = Depends(get_current_principal)):
    receipt = db["donations"].find_one({"_id": to_object_id(receipt_id)})
    if not receipt:
        raise ReceiptNotFoundError(receipt_id)
    ensure_phone_access(principal, receipt.get("phone"))
    return {"receipt": serialize(receipt)}


# Pay-boxes

@app.get("/api/boxes")
def list_boxes(phone: str, db: Database = Depends(get_db),
               principal: Principal = Depends(get_current_principal)):
    formatted_phone = normalize_phone(phone)
    ensure_phone_access(principal, formatted_phone)
    boxes = get_documents(db, "boxes", {"phone": formatted_phone}, sort=[("createdAt", -1)])
    return {"boxes": serialize(boxes)}


@app.get("/api/boxes/userData", response_model=UserData)
def box_user_data(
    phone_number: Optional[str] = Query(None, alias="phoneNumber"),
    db: Database = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    if not phone_number:
        raise ValidationError("Phone number is required", field="phoneNumber")
    formatted_phone = normalize_phone(phone_number)
    ensure_phone_access(principal, formatted_phone)
    box = db["boxes"].find_one({"phone": formatted_phone}, sort=[("createdAt", 1)])
    if not box:
        raise PhoneNotFoundError(formatted_phone, "BoxHolder")
    return UserData(
        id=str(box["_id"]),
        name=box.get("name") or "Unknown",
        phone_number=box["phone"],
        email=box.get("email") or "N/A",
        address=box.get("address") or "N/A",
    )


# Subscriptions

def get_subscription_or_404(db: Database, subscription_id: str) -> Dict[str, Any]:
    doc = db["subscriptions"].find_one({"_id": to_object_id(subscription_id)})
    if not doc:
        raise SubscriptionNotFoundError(subscription_id)
    return doc


@app.get("/api/subscriptions")
def list_subscriptions(phone: str, db: Database = Depends(get_db),
                       principal: Principal = Depends(get_current_principal)):
    formatted_phone = normalize_phone(phone)
    ensure_phone_access(principal, formatted_phone)
    items = get_documents(db, "subscriptions", {"phone": formatted_phone}, sort=[("createdAt", -1)])
    return {"subscriptions": [enrich_subscription(serialize(x)) for x in items]}


@app.get("/api/subscriptions/all")
def list_all_subscriptions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    method: Optional[str] = None,
    search: Optional[str] = None,
    db: Database = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    query: Dict[str, Any] = {}
    if status:
        query["status"] = status
    if method:
        query["method"] = method
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"phone": pattern}]

    total = db["subscriptions"].count_documents(query)
    items = get_documents(db, "subscriptions", query, sort=[("createdAt", -1)],
                          skip=(page - 1) * limit, limit=limit)
    return {
        "subscriptions": [enrich_subscription(serialize(x)) for x in items],
        "pagination": paginate(page, limit, total),
    }


@app.get("/api/subscriptions/{subscription_id}")
def subscription_details(subscription_id: str, db: Database = Depends(get_db),
                         principal: Principal = Depends(get_current_principal)):
    subscription = get_subscription_or_404(db, subscription_id)
    ensure_phone_access(principal, subscription.get("phone"))

    donor = None
    if subscription.get("donorId"):
        donor = db["donors"].find_one({"_id": subscription["donorId"]})
    donations = serialize(get_documents(
        db, "donations", {"subscriptionId": subscription["_id"]}, sort=[("createdAt", -1)]
    ))
    return {
        "subscription": enrich_subscription(serialize(subscription)),
        "donor": serialize(donor),
        "payments": [Payment.from_donation(d).model_dump(by_alias=True, mode="json") for d in donations],
        "totalAmount": sum(d.get("amount") or 0 for d in donations),
    }


@app.get("/api/subscriptions/{subscription_id}/payments")
def subscription_payments(
    subscription_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Database = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    subscription = get_subscription_or_404(db, subscription_id)
    ensure_phone_access(principal, subscription.get("phone"))

    match = {"subscriptionId": subscription["_id"]}
    total = db["donations"].count_documents(match)
    donations = serialize(get_documents(
        db, "donations", match, sort=[("createdAt", -1)], skip=(page - 1) * limit, limit=limit
    ))
    return {
        "payments": [Payment.from_donation(d).model_dump(by_alias=True, mode="json") for d in donations],
        "pagination": paginate(page, limit, total),
    }


@app.post("/api/subscriptions/{subscription_id}/pay", status_code=201)
def pay_subscription(subscription_id: str, payload: PaymentIn, db: Database = Depends(get_db),
                     principal: Principal = Depends(get_current_principal)):
    subscription = get_subscription_or_404(db, subscription_id)
    ensure_phone_access(principal, subscription.get("phone"))
    if subscription.get("status") != "active" or not subscription.get("isActive", True):
        raise ConflictError("Subscription is not active", details={"subscription_id": subscription_id})

    # the gateway confirms a charge by handing back its payment id
    completed = bool(payload.razorpay_payment_id)
    donation_id = create_document(db, "donations", {
        "amount": payload.amount or subscription["amount"],
        "type": subscription.get("donationType") or "Subscription",
        "name": subscription.get("name"),
        "phone": subscription["phone"],
        "status": "Completed" if completed else "Pending",
        "method": payload.method,
        "razorpayPaymentId": payload.razorpay_payment_id,
        "razorpayOrderId": payload.razorpay_order_id,
        "district": subscription.get("district"),
        "panchayat": subscription.get("panchayat"),
        "subscriptionId": subscription["_id"],
    })
    if completed:
        subscription = db["subscriptions"].find_one_and_update(
            {"_id": subscription["_id"]},
            {"$set": {"lastPaymentAt": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    logger.info(f"Subscription {subscription_id} payment {donation_id} recorded (completed={completed})")

    donation = serialize(db["donations"].find_one({"_id": to_object_id(donation_id)}))
    return {
        "payment": Payment.from_donation(donation).model_dump(by_alias=True, mode="json"),
        "subscription": enrich_subscription(serialize(subscription)),
    }


@app.delete("/api/subscriptions/{subscription_id}")
def cancel_subscription(subscription_id: str, db: Database = Depends(get_db),
                        principal: Principal = Depends(get_current_principal)):
    subscription = get_subscription_or_404(db, subscription_id)
    ensure_phone_access(principal, subscription.get("phone"))
    if subscription.get("status") == "inactive":
        raise ConflictError("Subscription is already cancelled", details={"subscription_id": subscription_id})

    updated = db["subscriptions"].find_one_and_update(
        {"_id": subscription["_id"]},
        {"$set": {"status": "inactive", "isActive": False, "cancelledAt": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info(f"Subscription {subscription_id} cancelled by {principal.phone}")
    return {
        "success": True,
        "message": "Subscription cancelled successfully",
        "subscription": enrich_subscription(serialize(updated)),
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", settings.SERVER_PORT))
    uvicorn.run(app, host=settings.SERVER_HOST, port=port)
