"""
Donor receipt list state: one page of receipts fetched from the API plus the
tab, search and filter choices applied on top of it.
"""
from typing import List, Optional

from api_client import ApiClient
from config import settings
from exceptions import ApiRequestError
from logging_config import logger
from receipt_filter import filter_receipts, is_empty
from schemas import Receipt, ReceiptFilter, ReceiptTab, ReceiptTotals

DEFAULT_DONATION_TYPE = "General"


class ReceiptBrowser:
    def __init__(self, client: ApiClient, phone: Optional[str], page_size: Optional[int] = None):
        self.client = client
        self.phone = phone
        self.page_size = page_size or settings.RECEIPTS_PAGE_SIZE

        self.receipts: List[Receipt] = []
        self.current_page = 1
        self.total_pages = 1
        self.totals = ReceiptTotals()
        self.loading = False
        self.error: Optional[str] = None

        self.active_tab: ReceiptTab = "all"
        self.search_query = ""
        self.criteria = ReceiptFilter()

    def _reset(self) -> None:
        self.receipts = []
        self.totals = ReceiptTotals()
        self.total_pages = 1

    async def load(self, page: int = 1) -> None:
        if not self.phone:
            self.error = "Phone number not found. Please verify your phone number."
            self._reset()
            return

        self.loading = True
        self.error = None
        try:
            result = await self.client.fetch_receipts_page(self.phone, page, self.page_size)
        except ApiRequestError as e:
            logger.error(f"Loading receipts for {self.phone} failed after {e.attempts} attempts: {e.message}")
            self.error = e.message
            self._reset()
            return
        finally:
            self.loading = False

        self.receipts = result.receipts
        self.totals = result.totals
        self.current_page = result.pagination.current_page or page
        self.total_pages = max(1, result.pagination.total_pages)

    async def go_to_page(self, page: int) -> None:
        if 1 <= page <= self.total_pages:
            await self.load(page)

    @property
    def visible_receipts(self) -> List[Receipt]:
        return filter_receipts(self.receipts, self.active_tab, self.search_query, self.criteria)

    @property
    def has_filters(self) -> bool:
        """Whether a clear-filters control has anything to clear."""
        return not is_empty(self.criteria) or bool(self.search_query.strip())

    @property
    def completed_count(self) -> int:
        return sum(1 for r in self.receipts if r.status == "Completed")

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self.receipts if r.status == "Pending")

    @property
    def donation_types(self) -> List[str]:
        types = [DEFAULT_DONATION_TYPE]
        for receipt in self.receipts:
            if receipt.type and receipt.type not in types:
                types.append(receipt.type)
        return types

    def clear_filters(self) -> None:
        self.criteria = ReceiptFilter()
        self.search_query = ""
