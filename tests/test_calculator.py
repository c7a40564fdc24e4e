import pytest

from eventcraft.services.calculator import SelectionStore, TemplatePreset
from eventcraft.services.catalog import CatalogItem, CatalogSnapshot

A = CatalogItem(id="A", category_id="sound", name="Line Array", price=1_500_000, unit="per day")
B = CatalogItem(id="B", category_id="light", name="LED Par", price=100_000, unit="per unit")
C = CatalogItem(id="C", category_id="stage", name="Stage Deck", price=250_000, unit="per m2")


@pytest.fixture()
def store() -> SelectionStore:
    return SelectionStore(CatalogSnapshot([A, B, C]))


def _expected_total(s: SelectionStore) -> int:
    return sum(r.price * r.quantity for r in s.records() if r.is_selected)


def test_toggle_creates_selected_record(store):
    assert store.toggle_item("A") is True

    assert store.get_total() == 1_500_000
    selected = store.get_selected_items_list()
    assert [(r.id, r.quantity) for r in selected] == [("A", 1)]


def test_set_quantity_updates_total(store):
    store.toggle_item("A")
    store.set_quantity("A", 3)

    assert store.get_total() == 4_500_000


def test_toggle_off_keeps_record_and_quantity(store):
    store.toggle_item("A")
    store.set_quantity("A", 3)
    store.toggle_item("A")

    rec = store.get_record("A")
    assert rec is not None
    assert rec.is_selected is False
    assert rec.quantity == 3
    assert store.get_total() == 0
    assert store.get_selected_items_list() == []


def test_double_toggle_restores_state(store):
    store.set_quantity("B", 4)
    before = store.get_record("B")

    store.toggle_item("B")
    store.toggle_item("B")

    after = store.get_record("B")
    assert after.is_selected == before.is_selected
    assert after.quantity == before.quantity == 4


def test_set_quantity_creates_selected_record(store):
    assert store.set_quantity("C", 5) is True

    rec = store.get_record("C")
    assert rec.is_selected is True
    assert rec.quantity == 5


def test_set_quantity_keeps_selection_flag_of_existing_record(store):
    store.toggle_item("B")
    store.toggle_item("B")  # now unselected

    store.set_quantity("B", 2)

    rec = store.get_record("B")
    assert rec.is_selected is False
    assert rec.quantity == 2


@pytest.mark.parametrize("qty", [0, -1, -100])
def test_quantity_below_one_is_ignored(store, qty):
    store.toggle_item("A")
    store.set_quantity("A", 2)
    before = store.records()

    assert store.set_quantity("A", qty) is False
    assert store.set_quantity("B", qty) is False

    assert store.records() == before
    assert store.get_record("B") is None


def test_unknown_item_is_ignored(store):
    assert store.toggle_item("nope") is False
    assert store.set_quantity("nope", 3) is False
    assert len(store) == 0


def test_empty_catalog_creates_nothing():
    s = SelectionStore(CatalogSnapshot())

    s.set_quantity("unknown-id", 5)
    s.toggle_item("unknown-id")

    assert s.get_selected_items_list() == []
    assert s.get_total() == 0


def test_load_template_replaces_everything(store):
    store.set_quantity("C", 7)

    store.load_template("template-1", [TemplatePreset("A", 2)])

    assert store.selected_template_id == "template-1"
    assert len(store) == 3
    a, b, c = (store.get_record(i) for i in "ABC")
    assert (a.is_selected, a.quantity) == (True, 2)
    assert (b.is_selected, b.quantity) == (False, 1)
    assert (c.is_selected, c.quantity) == (False, 1)
    assert store.get_total() == A.price * 2


def test_load_template_accepts_rows_and_skips_unknown_items(store):
    store.load_template(
        "t2",
        [
            {"item_id": "B", "default_quantity": 10},
            {"item_id": "ghost", "default_quantity": 3},
        ],
    )

    assert store.get_record("ghost") is None
    assert store.get_total() == B.price * 10


def test_load_template_with_empty_catalog_gives_empty_store():
    s = SelectionStore(CatalogSnapshot())

    s.load_template("t", [TemplatePreset("A", 2)])

    assert len(s) == 0
    assert s.selected_template_id == "t"


def test_reset_clears_records_and_template(store):
    store.load_template("t", [TemplatePreset("A", 1)])
    store.toggle_item("B")

    store.reset_calculator()

    assert len(store) == 0
    assert store.selected_template_id is None
    assert store.get_total() == 0


def test_total_matches_records_after_mixed_operations(store):
    ops = [
        ("toggle", "A"),
        ("qty", "B", 3),
        ("toggle", "C"),
        ("qty", "A", 2),
        ("toggle", "B"),
        ("qty", "C", 0),
        ("toggle", "B"),
        ("qty", "x", 9),
        ("toggle", "A"),
    ]
    for op in ops:
        if op[0] == "toggle":
            store.toggle_item(op[1])
        else:
            store.set_quantity(op[1], op[2])
        assert store.get_total() == _expected_total(store)


def test_records_are_snapshots_of_catalog_attributes(store):
    store.toggle_item("A")

    refreshed = CatalogSnapshot([CatalogItem(id="A", category_id="sound", name="Line Array", price=9, unit="x")])
    store.catalog = refreshed

    assert store.get_record("A").price == 1_500_000
    assert store.get_total() == 1_500_000


def test_listeners_are_notified_on_changes_only(store):
    calls = []
    unsubscribe = store.subscribe(lambda s: calls.append(s.get_total()))

    store.toggle_item("A")
    store.set_quantity("A", 0)
    store.toggle_item("ghost")
    store.set_quantity("A", 2)
    unsubscribe()
    store.reset_calculator()

    assert calls == [1_500_000, 3_000_000]


def test_failing_listener_does_not_break_mutation(store):
    def boom(_):
        raise RuntimeError("listener bug")

    store.subscribe(boom)

    assert store.toggle_item("A") is True
    assert store.get_total() == 1_500_000
