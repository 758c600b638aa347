import pytest
from bson import ObjectId
from httpx import AsyncClient

from conftest import DONOR_PHONE, OTHER_PHONE


@pytest.mark.asyncio
async def test_receipts_newest_first_with_totals(client: AsyncClient, donor_headers, make_donation):
    for _ in range(8):
        make_donation()
    make_donation(phone=OTHER_PHONE, amount=9999)

    response = await client.get(
        "/api/receipts", params={"phone": "9876543210", "page": 1, "limit": 6}, headers=donor_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert [r["amount"] for r in data["receipts"]] == [800, 700, 600, 500, 400, 300]
    assert data["totals"] == {"totalAmount": 3600, "totalDonations": 8}
    assert data["pagination"] == {"currentPage": 1, "totalPages": 2, "totalItems": 8, "itemsPerPage": 6}


@pytest.mark.asyncio
async def test_receipts_second_page(client: AsyncClient, donor_headers, make_donation):
    for _ in range(8):
        make_donation()

    response = await client.get(
        "/api/receipts", params={"phone": DONOR_PHONE, "page": 2, "limit": 6}, headers=donor_headers
    )

    assert [r["amount"] for r in response.json()["receipts"]] == [200, 100]


@pytest.mark.asyncio
async def test_receipts_default_limit(client: AsyncClient, donor_headers, make_donation):
    for _ in range(12):
        make_donation()

    response = await client.get("/api/receipts", params={"phone": DONOR_PHONE}, headers=donor_headers)

    assert len(response.json()["receipts"]) == 10
    assert response.json()["pagination"]["itemsPerPage"] == 10


@pytest.mark.asyncio
async def test_receipts_empty(client: AsyncClient, donor_headers):
    response = await client.get("/api/receipts", params={"phone": DONOR_PHONE}, headers=donor_headers)

    data = response.json()
    assert data["receipts"] == []
    assert data["totals"] == {"totalAmount": 0, "totalDonations": 0}


@pytest.mark.asyncio
async def test_receipts_require_phone_and_auth(client: AsyncClient, donor_headers):
    assert (await client.get("/api/receipts", headers=donor_headers)).status_code == 400
    assert (await client.get("/api/receipts", params={"phone": DONOR_PHONE})).status_code == 401


@pytest.mark.asyncio
async def test_donor_cannot_read_other_phone(client: AsyncClient, donor_headers, admin_headers, make_donation):
    make_donation(phone=OTHER_PHONE)

    response = await client.get("/api/receipts", params={"phone": OTHER_PHONE}, headers=donor_headers)
    assert response.status_code == 403

    response = await client.get("/api/receipts", params={"phone": OTHER_PHONE}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["totals"]["totalDonations"] == 1


@pytest.mark.asyncio
async def test_single_receipt(client: AsyncClient, donor_headers, other_donor_headers, make_donation):
    donation = make_donation(amount=250)

    response = await client.get(f"/api/receipts/{donation['_id']}", headers=donor_headers)
    assert response.status_code == 200
    assert response.json()["receipt"]["amount"] == 250

    response = await client.get(f"/api/receipts/{donation['_id']}", headers=other_donor_headers)
    assert response.status_code == 403

    response = await client.get(f"/api/receipts/{ObjectId()}", headers=donor_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "RECEIPT_NOT_FOUND"


@pytest.mark.asyncio
async def test_boxes_and_holder_data(client: AsyncClient, db, donor_headers):
    db["boxes"].insert_one({"name": "Aisha", "phone": DONOR_PHONE, "serialNumber": "BX-1"})

    response = await client.get("/api/boxes", params={"phone": DONOR_PHONE}, headers=donor_headers)
    assert [b["serialNumber"] for b in response.json()["boxes"]] == ["BX-1"]

    response = await client.get(
        "/api/boxes/userData", params={"phoneNumber": DONOR_PHONE}, headers=donor_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Aisha"
    assert data["phoneNumber"] == DONOR_PHONE
    assert data["email"] == "N/A"
    assert data["address"] == "N/A"


@pytest.mark.asyncio
async def test_holder_data_missing(client: AsyncClient, donor_headers):
    response = await client.get(
        "/api/boxes/userData", params={"phoneNumber": DONOR_PHONE}, headers=donor_headers
    )
    assert response.status_code == 404
