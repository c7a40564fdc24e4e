"""Selection store: what the visitor plans to rent and what it costs.

Every mutation is total. Unknown item ids and quantities below 1 are
ignored without raising; the boolean return only tells the caller whether
state changed. Listeners registered with ``subscribe`` are called after
each effective change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from eventcraft.services.catalog import CatalogItem, CatalogSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionRecord:
    # catalog fields copied at selection time
    id: str
    category_id: str
    name: str
    price: int
    unit: str
    image_url: Optional[str]
    quantity: int = 1
    is_selected: bool = False

    @classmethod
    def from_item(cls, item: CatalogItem, quantity: int = 1, is_selected: bool = False) -> "SelectionRecord":
        return cls(
            id=item.id,
            category_id=item.category_id,
            name=item.name,
            price=item.price,
            unit=item.unit,
            image_url=item.image_url,
            quantity=quantity,
            is_selected=is_selected,
        )

    @property
    def line_total(self) -> int:
        return self.price * self.quantity


@dataclass(frozen=True)
class TemplatePreset:
    item_id: str
    default_quantity: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TemplatePreset":
        qty = row.get("default_quantity", row.get("quantity", 1))
        return cls(item_id=str(row["item_id"]), default_quantity=int(qty))


Listener = Callable[["SelectionStore"], None]


class SelectionStore:
    def __init__(self, catalog: CatalogSnapshot) -> None:
        self.catalog = catalog
        self._records: Dict[str, SelectionRecord] = {}
        self.selected_template_id: Optional[str] = None
        self._listeners: List[Listener] = []

    # ---------------- subscriptions ----------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("selection listener failed")

    # ---------------- mutations ----------------

    def toggle_item(self, item_id: str) -> bool:
        existing = self._records.get(item_id)
        if existing is not None:
            self._records[item_id] = replace(existing, is_selected=not existing.is_selected)
        else:
            item = self.catalog.get_by_id(item_id)
            if item is None:
                return False
            self._records[item_id] = SelectionRecord.from_item(item, quantity=1, is_selected=True)
        self._notify()
        return True

    def set_quantity(self, item_id: str, quantity: int) -> bool:
        if quantity < 1:
            return False
        existing = self._records.get(item_id)
        if existing is not None:
            if existing.quantity == quantity:
                return False
            self._records[item_id] = replace(existing, quantity=quantity)
        else:
            item = self.catalog.get_by_id(item_id)
            if item is None:
                return False
            # setting a quantity implies selecting the item
            self._records[item_id] = SelectionRecord.from_item(item, quantity=quantity, is_selected=True)
        self._notify()
        return True

    def load_template(self, template_id: str, presets: Iterable[TemplatePreset | Mapping[str, Any]]) -> None:
        records: Dict[str, SelectionRecord] = {
            item.id: SelectionRecord.from_item(item) for item in self.catalog.get_all()
        }
        for p in presets:
            preset = p if isinstance(p, TemplatePreset) else TemplatePreset.from_row(p)
            item = self.catalog.get_by_id(preset.item_id)
            if item is None:
                logger.debug("template %s references unknown item %s", template_id, preset.item_id)
                continue
            if preset.default_quantity < 1:
                continue
            records[item.id] = SelectionRecord.from_item(
                item, quantity=preset.default_quantity, is_selected=True
            )
        self._records = records
        self.selected_template_id = template_id
        self._notify()

    def reset_calculator(self) -> None:
        self._records = {}
        self.selected_template_id = None
        self._notify()

    # ---------------- queries ----------------

    def get_record(self, item_id: str) -> Optional[SelectionRecord]:
        return self._records.get(item_id)

    def records(self) -> List[SelectionRecord]:
        return list(self._records.values())

    def get_total(self) -> int:
        return sum(r.line_total for r in self._records.values() if r.is_selected)

    def get_selected_items_list(self) -> List[SelectionRecord]:
        return [r for r in self._records.values() if r.is_selected]

    def __len__(self) -> int:
        return len(self._records)
