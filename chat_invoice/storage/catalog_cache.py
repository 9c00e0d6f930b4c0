"""TTL-cached catalog snapshots.

Interpreting a message needs the catalog, but the catalog changes rarely.
The snapshot is reloaded from the repository once it is older than the TTL.
"""

import logging
import threading
import time

from chat_invoice.interpretation.schema import CatalogSnapshot
from chat_invoice.storage.ports import ProductRepository

logger = logging.getLogger(__name__)


class CatalogProvider:
    """Thread-safe cache of the active catalog.

    Args:
        repository: Product source
        ttl_seconds: Snapshot lifetime; 0 reloads on every call
        limit: Maximum number of products loaded into a snapshot
    """

    def __init__(self, repository: ProductRepository, ttl_seconds: float, limit: int) -> None:
        self.repository = repository
        self.ttl_seconds = ttl_seconds
        self.limit = limit
        self._lock = threading.Lock()
        self._snapshot: CatalogSnapshot | None = None
        self._expires_at = 0.0

    def snapshot(self) -> CatalogSnapshot:
        with self._lock:
            now = time.time()
            if self._snapshot is not None and self._expires_at > now:
                return self._snapshot

            products = self.repository.get_all_products(self.limit, 0, None, True)
            self._snapshot = CatalogSnapshot(products=tuple(products))
            self._expires_at = now + self.ttl_seconds
            logger.debug(f"Catalog snapshot refreshed: {len(products)} products")
            return self._snapshot

    def invalidate(self) -> None:
        """Drop the cached snapshot, e.g. after products were added."""
        with self._lock:
            self._snapshot = None
            self._expires_at = 0.0
