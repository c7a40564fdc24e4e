import logging

import pytest

from eventcraft.db import sqlite as db


def _line(item_id, name, qty, price):
    return {"item_id": item_id, "item_name": name, "quantity": qty, "price_at_time": price}


def test_categories_are_ordered_and_unique(test_db):
    ok, _ = db.add_category("Stage", sort_order=3)
    assert ok
    db.add_category("Sound", sort_order=1)

    assert [c["name"] for c in db.list_categories()] == ["Sound", "Stage"]

    ok, err = db.add_category("Sound")
    assert not ok
    assert "already exists" in err


def test_add_item_requires_existing_category(test_db):
    ok, err = db.add_item("missing", "Speaker", 10)

    assert not ok
    assert err == "category not found"


def test_add_item_rejects_negative_price(seeded):
    with pytest.raises(ValueError):
        db.add_item(seeded["categories"]["sound"], "Broken", -5)


def test_price_change_is_recorded(seeded):
    speaker = seeded["items"]["speaker"]

    assert db.update_item(speaker, price=1_750_000) == (True, "ok")
    db.update_item(speaker, name="Line Array Speaker v2")

    history = db.get_price_history(speaker)
    assert [(h["old_price"], h["new_price"]) for h in history] == [(None, 1_500_000), (1_500_000, 1_750_000)]
    assert db.get_item(speaker)["name"] == "Line Array Speaker v2"


def test_update_unknown_item(test_db):
    assert db.update_item("nope", price=1) == (False, "item not found")
    assert db.update_item("nope") == (False, "nothing to update")


def test_fetch_all_items_shape(seeded):
    rows = db.fetch_all_items()

    assert len(rows) == 3
    assert set(rows[0]) == {"id", "category_id", "name", "price", "unit", "image_url"}


def test_template_presets(seeded):
    presets = db.fetch_template_presets(seeded["template"])

    by_item = {p["item_id"]: p["default_quantity"] for p in presets}
    assert by_item == {seeded["items"]["speaker"]: 2, seeded["items"]["par"]: 8}


def test_set_template_item_upserts_and_validates(seeded):
    t = seeded["template"]
    speaker = seeded["items"]["speaker"]

    db.set_template_item(t, speaker, 4)
    assert {p["item_id"]: p["default_quantity"] for p in db.fetch_template_presets(t)}[speaker] == 4

    assert db.set_template_item("nope", speaker, 1) == (False, "template not found")
    assert db.set_template_item(t, "nope", 1) == (False, "item not found")
    with pytest.raises(ValueError):
        db.set_template_item(t, speaker, 0)

    assert db.remove_template_item(t, speaker) is True
    assert db.remove_template_item(t, speaker) is False


def test_deleting_item_drops_it_from_templates(seeded):
    db.delete_item(seeded["items"]["par"])

    items = [p["item_id"] for p in db.fetch_template_presets(seeded["template"])]
    assert items == [seeded["items"]["speaker"]]


def test_create_inquiry_uses_current_catalog_prices(seeded, caplog):
    speaker = seeded["items"]["speaker"]
    db.update_item(speaker, price=2_000_000)

    with caplog.at_level(logging.WARNING, logger="eventcraft.db.sqlite"):
        ok, inq = db.create_inquiry(
            "Budi",
            [_line(speaker, "Line Array Speaker", 2, 1_500_000)],
            client_total=3_000_000,
            email="budi@example.com",
        )

    assert ok
    assert inq["total"] == 4_000_000
    assert inq["client_total"] == 3_000_000
    assert inq["items"][0]["price_at_time"] == 2_000_000
    assert "client total differs" in caplog.text

    stored = db.get_inquiry(inq["id"])
    assert stored["total"] == 4_000_000
    assert stored["status"] == "pending"
    assert stored["phone"] is None


def test_create_inquiry_keeps_price_of_removed_item(seeded, caplog):
    with caplog.at_level(logging.WARNING, logger="eventcraft.db.sqlite"):
        ok, inq = db.create_inquiry("Sari", [_line("gone", "Old Truss", 3, 200_000)], client_total=600_000)

    assert ok
    assert inq["total"] == 600_000
    assert "client total differs" not in caplog.text


def test_create_inquiry_validation(seeded):
    speaker = seeded["items"]["speaker"]

    assert db.create_inquiry("  ", [_line(speaker, "x", 1, 1)]) == (False, "customer name is required")
    assert db.create_inquiry("Budi", []) == (False, "no items selected")
    ok, err = db.create_inquiry("Budi", [_line(speaker, "Speaker", 0, 1)])
    assert not ok and "invalid quantity" in err
    assert db.list_inquiries() == []


def test_status_change_history(seeded):
    _, inq = db.create_inquiry("Budi", [_line(seeded["items"]["mixer"], "Digital Mixer", 1, 750_000)])

    assert db.update_inquiry_status(inq["id"], "contacted", "called") == (True, "ok")
    assert db.update_inquiry_status(inq["id"], "contacted") == (True, "unchanged")
    ok, err = db.update_inquiry_status(inq["id"], "lost")
    assert not ok and "unknown status" in err
    assert db.update_inquiry_status("nope", "completed") == (False, "inquiry not found")

    history = db.get_status_history(inq["id"])
    assert [(h["old_status"], h["new_status"]) for h in history] == [(None, "pending"), ("pending", "contacted")]
    assert [i["id"] for i in db.list_inquiries("contacted")] == [inq["id"]]
    assert db.list_inquiries("pending") == []


def test_find_inquiry_by_prefix(seeded):
    _, inq = db.create_inquiry("Budi", [_line(seeded["items"]["mixer"], "Digital Mixer", 1, 750_000)])

    assert db.find_inquiry_by_prefix(inq["id"][:8].upper())["id"] == inq["id"]
    assert db.find_inquiry_by_prefix("") is None
    assert db.find_inquiry_by_prefix("zzzzzzzz") is None


def test_dashboard_stats(seeded):
    speaker = seeded["items"]["speaker"]
    par = seeded["items"]["par"]
    db.create_inquiry("A", [_line(speaker, "Line Array Speaker", 2, 0), _line(par, "LED Par", 4, 0)])
    _, second = db.create_inquiry("B", [_line(speaker, "Line Array Speaker", 1, 0)])
    db.update_inquiry_status(second["id"], "completed")

    stats = db.dashboard_stats()

    assert stats["inquiries"] == 2
    assert stats["total_value"] == 3_000_000 + 400_000 + 1_500_000
    assert stats["by_status"]["pending"] == 1
    assert stats["by_status"]["completed"] == 1
    assert stats["top_items"][0] == {"item_name": "Line Array Speaker", "quantity": 3, "inquiries": 2}
    assert sum(m["count"] for m in stats["per_month"]) == 2


def test_find_items(seeded):
    assert [i["name"] for i in db.find_items("led")] == ["LED Par"]
    assert db.find_items(seeded["items"]["mixer"])[0]["name"] == "Digital Mixer"
    assert db.find_items("  ") == []
