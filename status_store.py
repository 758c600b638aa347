"""
Client-side cache of social statuses and their categories.

One StatusStore is created per consumer and handed its ApiClient; nothing is
shared between instances. Call `invalidate()` after writes made elsewhere so
the next `ensure_loaded()` goes back to the API.
"""
from typing import Any, Dict, List, Optional

from api_client import ApiClient
from exceptions import ApiRequestError, StatusNotFoundError
from logging_config import logger


class StatusStore:
    def __init__(self, client: ApiClient):
        self.client = client
        self.statuses: List[Dict[str, Any]] = []
        self.categories: List[Dict[str, Any]] = []
        self.stats: Optional[Dict[str, Any]] = None
        self.selected: Optional[Dict[str, Any]] = None
        self.loading = False
        self.error: Optional[str] = None
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def ensure_loaded(self) -> None:
        if self._loaded:
            return
        await self.fetch_statuses()
        await self.fetch_categories()
        self._loaded = True

    def invalidate(self) -> None:
        self._loaded = False
        self.stats = None

    async def fetch_statuses(self, active_only: bool = False, category: str = "",
                             tag: str = "") -> List[Dict[str, Any]]:
        self.loading = True
        self.error = None
        try:
            self.statuses = await self.client.fetch_statuses(
                active_only=active_only, category=category, tag=tag
            )
        except ApiRequestError as e:
            logger.error(f"Error fetching statuses: {e.message}")
            self.error = e.message
            raise
        finally:
            self.loading = False
        return self.statuses

    async def fetch_categories(self) -> List[Dict[str, Any]]:
        try:
            self.categories = await self.client.fetch_categories()
        except ApiRequestError as e:
            logger.error(f"Error fetching categories: {e.message}")
            self.error = e.message
            raise
        return self.categories

    async def fetch_stats(self) -> Dict[str, Any]:
        try:
            self.stats = await self.client.fetch_stats()
        except ApiRequestError as e:
            logger.error(f"Error fetching status statistics: {e.message}")
            self.error = e.message
            raise
        return self.stats

    def _find(self, status_id: str) -> Dict[str, Any]:
        for status in self.statuses:
            if status.get("_id") == status_id:
                return status
        self.error = "Status not found"
        raise StatusNotFoundError(status_id)

    async def _toggle(self, status_id: str, field: str, value: bool) -> Dict[str, Any]:
        status = self._find(status_id)
        try:
            updated = await self.client.update_status(status_id, {**status, field: value})
        except ApiRequestError as e:
            logger.error(f"Error updating {field} of status {status_id}: {e.message}")
            self.error = e.message
            raise
        self.replace(updated)
        return updated

    async def toggle_active(self, status_id: str, is_active: bool) -> Dict[str, Any]:
        return await self._toggle(status_id, "isActive", is_active)

    async def toggle_featured(self, status_id: str, featured: bool) -> Dict[str, Any]:
        return await self._toggle(status_id, "featured", featured)

    def add(self, status: Dict[str, Any]) -> None:
        self.statuses.append(status)
        self.error = None

    def replace(self, status: Dict[str, Any]) -> None:
        self.statuses = [status if s.get("_id") == status.get("_id") else s for s in self.statuses]
        if self.selected and self.selected.get("_id") == status.get("_id"):
            self.selected = status
        self.error = None

    def remove(self, status_id: str) -> None:
        self.statuses = [s for s in self.statuses if s.get("_id") != status_id]
        if self.selected and self.selected.get("_id") == status_id:
            self.selected = None
        self.error = None

    def select(self, status: Optional[Dict[str, Any]]) -> None:
        self.selected = status
