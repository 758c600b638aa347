import httpx
import pytest

from api_client import ApiClient
from exceptions import ApiRequestError
from receipt_browser import ReceiptBrowser
from schemas import Pagination, Receipt, ReceiptPage, ReceiptTotals

PHONE = "+919876543210"


class FakeClient:
    def __init__(self, pages=None, error=None):
        self.pages = pages or {}
        self.error = error
        self.calls = []

    async def fetch_receipts_page(self, phone, page=1, limit=None):
        self.calls.append((phone, page, limit))
        if self.error:
            raise self.error
        return self.pages[page]


def make_page(page, total_pages, receipts, total_amount=0, total_donations=0):
    return ReceiptPage(
        receipts=receipts,
        pagination=Pagination(current_page=page, total_pages=total_pages,
                              total_items=total_donations, items_per_page=6),
        totals=ReceiptTotals(total_amount=total_amount, total_donations=total_donations),
    )


@pytest.fixture
def pages():
    return {
        1: make_page(1, 2, [
            Receipt(id="a", amount=200, status="Completed", type="Campaign"),
            Receipt(id="b", amount=600, status="Pending", type="Building"),
            Receipt(id="c", amount=50, status="Completed", type="Campaign"),
        ], total_amount=1350, total_donations=4),
        2: make_page(2, 2, [
            Receipt(id="d", amount=500, status="Completed", type="General"),
        ], total_amount=1350, total_donations=4),
    }


async def test_load_uses_server_totals(pages):
    browser = ReceiptBrowser(FakeClient(pages), PHONE)

    await browser.load()

    assert [r.id for r in browser.receipts] == ["a", "b", "c"]
    assert browser.totals.total_amount == 1350
    assert browser.totals.total_donations == 4
    assert browser.total_pages == 2
    assert browser.error is None
    assert browser.loading is False


async def test_missing_phone_sets_error_without_request():
    client = FakeClient()
    browser = ReceiptBrowser(client, None)

    await browser.load()

    assert client.calls == []
    assert browser.error
    assert browser.receipts == []


async def test_empty_result_has_one_page():
    browser = ReceiptBrowser(FakeClient({1: make_page(1, 0, [])}), PHONE)

    await browser.load()

    assert browser.receipts == []
    assert browser.total_pages == 1
    assert browser.totals.total_amount == 0


async def test_terminal_failure_clears_state(pages):
    client = FakeClient(pages)
    browser = ReceiptBrowser(client, PHONE)
    await browser.load()

    client.error = ApiRequestError("Database down", 500, attempts=3)
    await browser.load()

    assert browser.error == "Database down"
    assert browser.receipts == []
    assert browser.totals.total_donations == 0


async def test_go_to_page_stays_within_bounds(pages):
    client = FakeClient(pages)
    browser = ReceiptBrowser(client, PHONE)
    await browser.load()

    await browser.go_to_page(2)
    await browser.go_to_page(3)
    await browser.go_to_page(0)

    assert browser.current_page == 2
    assert [page for _, page, _ in client.calls] == [1, 2]


async def test_counts_and_donation_types(pages):
    browser = ReceiptBrowser(FakeClient(pages), PHONE)
    await browser.load()

    assert browser.completed_count == 2
    assert browser.pending_count == 1
    assert browser.donation_types == ["General", "Campaign", "Building"]


async def test_visible_receipts_apply_tab_search_and_filters(pages):
    browser = ReceiptBrowser(FakeClient(pages), PHONE)
    await browser.load()

    browser.active_tab = "completed"
    assert [r.id for r in browser.visible_receipts] == ["a", "c"]

    browser.criteria.min_amount = "100"
    assert [r.id for r in browser.visible_receipts] == ["a"]

    browser.search_query = "build"
    assert browser.visible_receipts == []

    browser.clear_filters()
    assert [r.id for r in browser.visible_receipts] == ["a", "c"]


async def test_has_filters_tracks_criteria_and_search(pages):
    browser = ReceiptBrowser(FakeClient(pages), PHONE)
    assert not browser.has_filters

    browser.criteria.max_amount = "  "
    browser.search_query = " "
    assert not browser.has_filters

    browser.criteria.type = "Campaign"
    assert browser.has_filters

    browser.clear_filters()
    browser.search_query = "kozhikode"
    assert browser.has_filters

    browser.clear_filters()
    assert not browser.has_filters


async def test_retry_then_success_populates_state():
    responses = [
        httpx.Response(500, json={"message": "try again"}),
        httpx.Response(500, json={"message": "try again"}),
        httpx.Response(200, json={
            "receipts": [{"_id": "x1", "amount": 300, "status": "Completed", "type": "General"}],
            "pagination": {"currentPage": 1, "totalPages": 1, "totalItems": 1, "itemsPerPage": 6},
            "totals": {"totalAmount": 300, "totalDonations": 1},
        }),
    ]
    requests = []

    def handler(request):
        requests.append(request)
        return responses[len(requests) - 1]

    async def no_sleep(seconds):
        return None

    async with ApiClient("http://test", transport=httpx.MockTransport(handler), sleep=no_sleep) as client:
        browser = ReceiptBrowser(client, PHONE)
        await browser.load()

    assert len(requests) == 3
    assert browser.error is None
    assert browser.totals.total_amount == 300
    assert [r.id for r in browser.receipts] == ["x1"]
