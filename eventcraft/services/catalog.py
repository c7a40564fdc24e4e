"""Session-scoped, read-only snapshot of the rentable catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogItem:
    id: str
    category_id: str
    name: str
    price: int  # smallest currency unit
    unit: str
    image_url: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CatalogItem":
        return cls(
            id=str(row["id"]),
            category_id=str(row.get("category_id") or ""),
            name=str(row["name"]),
            price=int(row["price"]),
            unit=str(row.get("unit") or ""),
            image_url=row.get("image_url") or None,
        )


ItemsFetcher = Callable[[], Iterable[Mapping[str, Any]]]


class CatalogSnapshot:
    """Items fetched once per session.

    No TTL and no retry: a failed fetch leaves the snapshot empty with
    ``error`` set, and the caller decides what to show.
    """

    def __init__(self, items: Iterable[CatalogItem] = ()) -> None:
        self._items: List[CatalogItem] = []
        self._by_id: Dict[str, CatalogItem] = {}
        self.is_loading = False
        self.is_loaded = False
        self.error: Optional[str] = None
        if items:
            self._set(items)

    def _set(self, items: Iterable[CatalogItem]) -> None:
        self._items = list(items)
        self._by_id = {it.id: it for it in self._items}
        self.is_loaded = True

    def load(self, fetch_all_items: ItemsFetcher) -> bool:
        self.is_loading = True
        self.error = None
        try:
            rows = list(fetch_all_items())
            self._set(CatalogItem.from_row(r) for r in rows)
            return True
        except Exception as e:
            logger.exception("catalog fetch failed")
            self.error = str(e)
            return False
        finally:
            self.is_loading = False

    def get_all(self) -> List[CatalogItem]:
        return list(self._items)

    def get_by_id(self, item_id: str) -> Optional[CatalogItem]:
        return self._by_id.get(item_id)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._by_id


def load_snapshot(fetch_all_items: ItemsFetcher) -> CatalogSnapshot:
    snap = CatalogSnapshot()
    snap.load(fetch_all_items)
    return snap
