from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from uuid import uuid4

from eventcraft.config import get_settings
from eventcraft.constants import INQUIRY_STATUSES, STATUS_PENDING
from eventcraft.utils.validators import require_non_negative_int, require_positive_number, require_text

logger = logging.getLogger(__name__)

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.sql")

ITEM_FIELDS = ("category_id", "name", "description", "price", "unit", "image_url")
TEMPLATE_FIELDS = ("name", "description", "image_url", "capacity_label")
CATEGORY_FIELDS = ("name", "icon_slug", "sort_order")


def _connect() -> sqlite3.Connection:
    db_path = get_settings().db_path
    os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _new_id() -> str:
    return uuid4().hex


def init_db() -> None:
    conn = _connect()
    try:
        with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
            conn.executescript(f.read())
        conn.commit()
    finally:
        conn.close()


# ---------------- categories ----------------

def list_categories() -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT id, name, icon_slug, sort_order FROM categories ORDER BY sort_order, name"
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def add_category(name: str, icon_slug: str = "", sort_order: int = 0) -> Tuple[bool, str]:
    name = require_text(name, "name")
    conn = _connect()
    try:
        cid = _new_id()
        conn.execute(
            "INSERT INTO categories(id, name, icon_slug, sort_order) VALUES(?,?,?,?)",
            (cid, name, icon_slug or "", int(sort_order)),
        )
        conn.commit()
        return True, cid
    except sqlite3.IntegrityError:
        return False, f"category already exists: {name}"
    finally:
        conn.close()


def update_category(category_id: str, **fields: Any) -> Tuple[bool, str]:
    values = {k: v for k, v in fields.items() if k in CATEGORY_FIELDS and v is not None}
    if not values:
        return False, "nothing to update"
    conn = _connect()
    try:
        sets = ", ".join(f"{k}=?" for k in values)
        cur = conn.execute(f"UPDATE categories SET {sets} WHERE id=?", (*values.values(), category_id))
        conn.commit()
        if cur.rowcount == 0:
            return False, "category not found"
        return True, "ok"
    except sqlite3.IntegrityError as e:
        return False, str(e)
    finally:
        conn.close()


def delete_category(category_id: str) -> bool:
    conn = _connect()
    try:
        cur = conn.execute("DELETE FROM categories WHERE id=?", (category_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


# ---------------- items ----------------

def fetch_all_items() -> List[Dict[str, Any]]:
    """Catalog rows for a calculator session."""
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT id, category_id, name, price, unit, image_url FROM items ORDER BY name"
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def list_items(category_id: Optional[str] = None) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        sql = """
            SELECT i.id, i.category_id, c.name AS category_name, i.name, i.description,
                   i.price, i.unit, i.image_url, i.created_at, i.updated_at
            FROM items i
            JOIN categories c ON c.id = i.category_id
        """
        params: tuple = ()
        if category_id:
            sql += " WHERE i.category_id = ?"
            params = (category_id,)
        sql += " ORDER BY c.sort_order, i.name"
        return [dict(r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def get_item(item_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT id, category_id, name, description, price, unit, image_url, created_at, updated_at "
            "FROM items WHERE id=?",
            (item_id,),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def add_item(
    category_id: str,
    name: str,
    price: int,
    unit: str = "",
    description: Optional[str] = None,
    image_url: Optional[str] = None,
) -> Tuple[bool, str]:
    name = require_text(name, "name")
    require_non_negative_int(price, "price")
    conn = _connect()
    try:
        if not conn.execute("SELECT 1 FROM categories WHERE id=?", (category_id,)).fetchone():
            return False, "category not found"
        item_id = _new_id()
        created_at = _now()
        conn.execute(
            """
            INSERT INTO items(id, category_id, name, description, price, unit, image_url, created_at, updated_at)
            VALUES(?,?,?,?,?,?,?,?,?)
            """,
            (item_id, category_id, name, description, price, unit or "", image_url, created_at, created_at),
        )
        conn.execute(
            "INSERT INTO price_history(item_id, old_price, new_price, changed_at) VALUES(?,?,?,?)",
            (item_id, None, price, created_at),
        )
        conn.commit()
        return True, item_id
    finally:
        conn.close()


def update_item(item_id: str, **fields: Any) -> Tuple[bool, str]:
    """Update item columns; a price change is appended to price_history."""
    values = {k: v for k, v in fields.items() if k in ITEM_FIELDS and v is not None}
    if not values:
        return False, "nothing to update"
    if "price" in values:
        require_non_negative_int(values["price"], "price")

    conn = _connect()
    try:
        conn.execute("BEGIN")
        row = conn.execute("SELECT price FROM items WHERE id=?", (item_id,)).fetchone()
        if not row:
            conn.execute("ROLLBACK")
            return False, "item not found"

        changed_at = _now()
        values["updated_at"] = changed_at
        sets = ", ".join(f"{k}=?" for k in values)
        conn.execute(f"UPDATE items SET {sets} WHERE id=?", (*values.values(), item_id))

        old_price = int(row["price"])
        new_price = values.get("price")
        if new_price is not None and int(new_price) != old_price:
            conn.execute(
                "INSERT INTO price_history(item_id, old_price, new_price, changed_at) VALUES(?,?,?,?)",
                (item_id, old_price, int(new_price), changed_at),
            )
            logger.info("price changed item=%s %s -> %s", item_id, old_price, new_price)

        conn.commit()
        return True, "ok"
    except sqlite3.IntegrityError as e:
        conn.execute("ROLLBACK")
        return False, str(e)
    finally:
        conn.close()


def find_items(query: str, limit: int = 10) -> List[Dict[str, Any]]:
    """Items whose id equals ``query`` or whose name contains it (case-insensitive)."""
    q = (query or "").strip()
    if not q:
        return []
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT id, category_id, name, price, unit FROM items "
            "WHERE id = ? OR lower(name) LIKE ? ORDER BY name LIMIT ?",
            (q, f"%{q.lower()}%", limit),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def delete_item(item_id: str) -> bool:
    conn = _connect()
    try:
        cur = conn.execute("DELETE FROM items WHERE id=?", (item_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def get_price_history(item_id: str) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT old_price, new_price, changed_at FROM price_history WHERE item_id=? ORDER BY id",
            (item_id,),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


# ---------------- templates ----------------

def list_templates() -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT id, name, description, image_url, capacity_label, created_at, updated_at "
            "FROM event_templates ORDER BY created_at, rowid"
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def get_template(template_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT id, name, description, image_url, capacity_label, created_at, updated_at "
            "FROM event_templates WHERE id=?",
            (template_id,),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def add_template(
    name: str,
    description: Optional[str] = None,
    image_url: Optional[str] = None,
    capacity_label: Optional[str] = None,
) -> str:
    name = require_text(name, "name")
    conn = _connect()
    try:
        tid = _new_id()
        created_at = _now()
        conn.execute(
            """
            INSERT INTO event_templates(id, name, description, image_url, capacity_label, created_at, updated_at)
            VALUES(?,?,?,?,?,?,?)
            """,
            (tid, name, description, image_url, capacity_label, created_at, created_at),
        )
        conn.commit()
        return tid
    finally:
        conn.close()


def update_template(template_id: str, **fields: Any) -> Tuple[bool, str]:
    values = {k: v for k, v in fields.items() if k in TEMPLATE_FIELDS and v is not None}
    if not values:
        return False, "nothing to update"
    values["updated_at"] = _now()
    conn = _connect()
    try:
        sets = ", ".join(f"{k}=?" for k in values)
        cur = conn.execute(f"UPDATE event_templates SET {sets} WHERE id=?", (*values.values(), template_id))
        conn.commit()
        if cur.rowcount == 0:
            return False, "template not found"
        return True, "ok"
    finally:
        conn.close()


def delete_template(template_id: str) -> bool:
    conn = _connect()
    try:
        cur = conn.execute("DELETE FROM event_templates WHERE id=?", (template_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def set_template_item(template_id: str, item_id: str, quantity: int) -> Tuple[bool, str]:
    """Add an item to a template's default set, or change its quantity."""
    require_positive_number(quantity, "quantity")
    conn = _connect()
    try:
        if not conn.execute("SELECT 1 FROM event_templates WHERE id=?", (template_id,)).fetchone():
            return False, "template not found"
        if not conn.execute("SELECT 1 FROM items WHERE id=?", (item_id,)).fetchone():
            return False, "item not found"
        conn.execute(
            "INSERT INTO template_items(id, template_id, item_id, quantity) VALUES(?,?,?,?) "
            "ON CONFLICT(template_id, item_id) DO UPDATE SET quantity=excluded.quantity",
            (_new_id(), template_id, item_id, int(quantity)),
        )
        conn.commit()
        return True, "ok"
    finally:
        conn.close()


def remove_template_item(template_id: str, item_id: str) -> bool:
    conn = _connect()
    try:
        cur = conn.execute(
            "DELETE FROM template_items WHERE template_id=? AND item_id=?",
            (template_id, item_id),
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def list_template_items(template_id: str) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            """
            SELECT ti.item_id, i.name AS item_name, i.price, i.unit, ti.quantity
            FROM template_items ti
            JOIN items i ON i.id = ti.item_id
            WHERE ti.template_id = ?
            ORDER BY i.name
            """,
            (template_id,),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def fetch_template_presets(template_id: str) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT item_id, quantity AS default_quantity FROM template_items WHERE template_id=?",
            (template_id,),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


# ---------------- inquiries ----------------

def create_inquiry(
    customer_name: str,
    items: Iterable[Mapping[str, Any]],
    client_total: Optional[int] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    event_date: Optional[str] = None,
    event_location: Optional[str] = None,
    notes: Optional[str] = None,
) -> Tuple[bool, Any]:
    """
    Persists an inquiry with its items.
    - total is recomputed from current catalog prices (authoritative)
    - items no longer in the catalog keep their submitted price
    - client/server mismatch above tolerance is logged, not rejected
    Returns (True, inquiry dict) or (False, error text).
    """
    name = (customer_name or "").strip()
    if not name:
        return False, "customer name is required"
    lines = list(items)
    if not lines:
        return False, "no items selected"
    for it in lines:
        if int(it["quantity"]) < 1:
            return False, f"invalid quantity for {it.get('item_name') or it['item_id']}"

    conn = _connect()
    try:
        conn.execute("BEGIN")

        priced: List[Dict[str, Any]] = []
        server_total = 0
        for it in lines:
            row = conn.execute("SELECT name, price FROM items WHERE id=?", (str(it["item_id"]),)).fetchone()
            unit_price = int(row["price"]) if row else int(it["price_at_time"])
            item_name = str(it.get("item_name") or (row["name"] if row else it["item_id"]))
            qty = int(it["quantity"])
            server_total += unit_price * qty
            priced.append(
                {"item_id": str(it["item_id"]), "item_name": item_name, "quantity": qty, "price_at_time": unit_price}
            )

        tolerance = get_settings().total_tolerance
        if client_total is not None and abs(server_total - int(client_total)) > tolerance:
            logger.warning(
                "client total differs from server calculation client_total=%s server_total=%s",
                client_total,
                server_total,
            )

        inquiry_id = _new_id()
        created_at = _now()
        conn.execute(
            """
            INSERT INTO inquiries(id, customer_name, email, phone, event_date, event_location,
                                  notes, total, client_total, status, created_at)
            VALUES(?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                inquiry_id,
                name,
                email or None,
                phone or None,
                event_date or None,
                event_location or None,
                notes or None,
                server_total,
                client_total,
                STATUS_PENDING,
                created_at,
            ),
        )
        for p in priced:
            conn.execute(
                """
                INSERT INTO inquiry_items(inquiry_id, item_id, item_name, quantity, price_at_time)
                VALUES(?,?,?,?,?)
                """,
                (inquiry_id, p["item_id"], p["item_name"], p["quantity"], p["price_at_time"]),
            )
        conn.execute(
            "INSERT INTO inquiry_status_history(inquiry_id, old_status, new_status, note, changed_at) "
            "VALUES(?,?,?,?,?)",
            (inquiry_id, None, STATUS_PENDING, "submitted", created_at),
        )
        conn.commit()
    except sqlite3.Error as e:
        conn.execute("ROLLBACK")
        logger.exception("failed to store inquiry")
        return False, str(e)
    finally:
        conn.close()

    return True, {
        "id": inquiry_id,
        "customer_name": name,
        "email": email or None,
        "phone": phone or None,
        "event_date": event_date or None,
        "event_location": event_location or None,
        "notes": notes or None,
        "total": server_total,
        "client_total": client_total,
        "status": STATUS_PENDING,
        "created_at": created_at,
        "items": priced,
    }


def list_inquiries(status: Optional[str] = None) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        sql = (
            "SELECT id, customer_name, email, phone, event_date, event_location, notes, "
            "total, client_total, status, created_at FROM inquiries"
        )
        params: tuple = ()
        if status:
            sql += " WHERE status = ?"
            params = (status,)
        sql += " ORDER BY created_at DESC, rowid DESC"
        return [dict(r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def get_inquiry(inquiry_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT id, customer_name, email, phone, event_date, event_location, notes, "
            "total, client_total, status, created_at FROM inquiries WHERE id=?",
            (inquiry_id,),
        ).fetchone()
        if not row:
            return None
        inq = dict(row)
        items = conn.execute(
            "SELECT item_id, item_name, quantity, price_at_time FROM inquiry_items WHERE inquiry_id=? ORDER BY id",
            (inquiry_id,),
        ).fetchall()
        inq["items"] = [dict(r) for r in items]
        return inq
    finally:
        conn.close()


def find_inquiry_by_prefix(prefix: str) -> Optional[Dict[str, Any]]:
    """Resolve a short id (as printed on quotations) to an inquiry."""
    p = (prefix or "").strip().lower()
    if not p:
        return None
    conn = _connect()
    try:
        rows = conn.execute("SELECT id FROM inquiries WHERE id LIKE ? LIMIT 2", (p + "%",)).fetchall()
    finally:
        conn.close()
    if len(rows) != 1:
        return None
    return get_inquiry(rows[0]["id"])


def update_inquiry_status(inquiry_id: str, status: str, note: Optional[str] = None) -> Tuple[bool, str]:
    status = (status or "").strip().lower()
    if status not in INQUIRY_STATUSES:
        return False, f"unknown status: {status} (allowed: {', '.join(INQUIRY_STATUSES)})"

    conn = _connect()
    try:
        conn.execute("BEGIN")
        row = conn.execute("SELECT status FROM inquiries WHERE id=?", (inquiry_id,)).fetchone()
        if not row:
            conn.execute("ROLLBACK")
            return False, "inquiry not found"
        old = row["status"]
        if old == status:
            conn.execute("ROLLBACK")
            return True, "unchanged"

        conn.execute("UPDATE inquiries SET status=? WHERE id=?", (status, inquiry_id))
        conn.execute(
            "INSERT INTO inquiry_status_history(inquiry_id, old_status, new_status, note, changed_at) "
            "VALUES(?,?,?,?,?)",
            (inquiry_id, old, status, note, _now()),
        )
        conn.commit()
        logger.info("inquiry %s status %s -> %s", inquiry_id, old, status)
        return True, "ok"
    finally:
        conn.close()


def get_status_history(inquiry_id: str) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT old_status, new_status, note, changed_at FROM inquiry_status_history "
            "WHERE inquiry_id=? ORDER BY id",
            (inquiry_id,),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def dashboard_stats(top_n: int = 5) -> Dict[str, Any]:
    conn = _connect()
    try:
        by_status = {s: 0 for s in INQUIRY_STATUSES}
        for r in conn.execute("SELECT status, COUNT(*) AS n FROM inquiries GROUP BY status").fetchall():
            by_status[r["status"]] = int(r["n"])

        totals = conn.execute(
            "SELECT COUNT(*) AS n, COALESCE(SUM(total),0) AS s FROM inquiries"
        ).fetchone()

        per_month = [
            {"month": r["month"], "count": int(r["n"]), "total": int(r["s"])}
            for r in conn.execute(
                """
                SELECT substr(created_at, 1, 7) AS month, COUNT(*) AS n, COALESCE(SUM(total),0) AS s
                FROM inquiries
                GROUP BY month
                ORDER BY month
                """
            ).fetchall()
        ]

        top_items = [
            {"item_name": r["item_name"], "quantity": int(r["q"]), "inquiries": int(r["n"])}
            for r in conn.execute(
                """
                SELECT item_name, SUM(quantity) AS q, COUNT(DISTINCT inquiry_id) AS n
                FROM inquiry_items
                GROUP BY item_id, item_name
                ORDER BY n DESC, q DESC, item_name
                LIMIT ?
                """,
                (top_n,),
            ).fetchall()
        ]

        return {
            "inquiries": int(totals["n"]),
            "total_value": int(totals["s"]),
            "by_status": by_status,
            "per_month": per_month,
            "top_items": top_items,
        }
    finally:
        conn.close()
