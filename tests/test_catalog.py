from eventcraft.services.catalog import CatalogItem, CatalogSnapshot, load_snapshot


def test_load_snapshot_from_rows():
    rows = [
        {"id": "a", "category_id": "c1", "name": "Speaker", "price": 1500000, "unit": "per day", "image_url": None},
        {"id": "b", "category_id": "c1", "name": "Mixer", "price": "750000", "unit": "per day"},
    ]

    snap = load_snapshot(lambda: rows)

    assert snap.is_loaded and not snap.is_loading
    assert snap.error is None
    assert [i.id for i in snap.get_all()] == ["a", "b"]
    assert snap.get_by_id("b") == CatalogItem("b", "c1", "Mixer", 750000, "per day")
    assert snap.get_by_id("zzz") is None
    assert "a" in snap and len(snap) == 2


def test_fetch_failure_sets_error_and_leaves_snapshot_empty():
    def broken():
        raise ConnectionError("backend down")

    snap = CatalogSnapshot()
    assert snap.load(broken) is False

    assert snap.error == "backend down"
    assert snap.is_loaded is False
    assert snap.get_all() == []


def test_get_all_returns_a_copy():
    snap = CatalogSnapshot([CatalogItem("a", "c", "Speaker", 1, "u")])

    snap.get_all().clear()

    assert len(snap.get_all()) == 1
