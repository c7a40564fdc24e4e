from __future__ import annotations

import logging
import secrets
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from eventcraft.config import get_settings
from eventcraft.constants import ACTION_INQUIRY, INQUIRY_STATUSES
from eventcraft.db import sqlite as db
from eventcraft.exceptions import SessionNotFound
from eventcraft.services.calculator import SelectionRecord
from eventcraft.services.export_csv import export_inquiries_csv
from eventcraft.services.inquiry import InquiryForm, submit_inquiry
from eventcraft.services.notifications import notify_admin_chat, send_inquiry_emails
from eventcraft.services.quotation_pdf import generate_quotation_pdf
from eventcraft.services.session import CalculatorSession, SessionRegistry
from eventcraft.utils.formatters import money

logger = logging.getLogger(__name__)

SESSION_COOKIE = "eventcraft_session"

app = FastAPI(title="EventCraft Budget Calculator")

registry = SessionRegistry(db.fetch_all_items)


@app.on_event("startup")
def _startup() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    db.init_db()


@app.exception_handler(SessionNotFound)
def _session_not_found(request: Request, exc: SessionNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValueError)
def _value_error(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# ---------------- request bodies ----------------

class ToggleIn(BaseModel):
    item_id: str


class QuantityIn(BaseModel):
    item_id: str
    quantity: int


class TemplateLoadIn(BaseModel):
    template_id: str


class InquiryIn(BaseModel):
    customer_name: str = Field(min_length=1)
    email: str = ""
    phone: str = ""
    event_date: str = ""
    event_location: str = ""
    notes: str = ""


class CategoryIn(BaseModel):
    name: str
    icon_slug: str = ""
    sort_order: int = 0


class CategoryPatch(BaseModel):
    name: Optional[str] = None
    icon_slug: Optional[str] = None
    sort_order: Optional[int] = None


class ItemIn(BaseModel):
    category_id: str
    name: str
    price: int = Field(ge=0)
    unit: str = ""
    description: Optional[str] = None
    image_url: Optional[str] = None


class ItemPatch(BaseModel):
    category_id: Optional[str] = None
    name: Optional[str] = None
    price: Optional[int] = Field(default=None, ge=0)
    unit: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


class TemplateIn(BaseModel):
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    capacity_label: Optional[str] = None


class TemplatePatch(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    capacity_label: Optional[str] = None


class TemplateItemIn(BaseModel):
    quantity: int = Field(ge=1)


class StatusIn(BaseModel):
    status: str
    note: Optional[str] = None


# ---------------- dependencies ----------------

def calculator_session(request: Request, response: Response) -> CalculatorSession:
    sess = registry.get_or_create(request.cookies.get(SESSION_COOKIE))
    response.set_cookie(SESSION_COOKIE, sess.session_id, httponly=True, samesite="lax")
    return sess


def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    token = get_settings().admin_token
    if not token or not x_admin_token or not secrets.compare_digest(token, x_admin_token):
        raise HTTPException(status_code=401, detail="admin access required")


def _record(r: SelectionRecord) -> Dict[str, Any]:
    return {
        "id": r.id,
        "category_id": r.category_id,
        "name": r.name,
        "price": r.price,
        "unit": r.unit,
        "image_url": r.image_url,
        "quantity": r.quantity,
        "is_selected": r.is_selected,
        "line_total": r.line_total,
    }


def _summary(sess: CalculatorSession) -> Dict[str, Any]:
    store = sess.store
    total = store.get_total()
    return {
        "session_id": sess.session_id,
        "selected_template_id": store.selected_template_id,
        "catalog_loaded": sess.catalog.is_loaded,
        "catalog_error": sess.catalog.error,
        "records": [_record(r) for r in store.records()],
        "selected": [_record(r) for r in store.get_selected_items_list()],
        "total": total,
        "total_formatted": money(total),
        "remaining_quota": sess.limiter.remaining_quota(ACTION_INQUIRY),
        "rate_limited": sess.limiter.is_limited(ACTION_INQUIRY),
        "retry_after": sess.limiter.remaining_time(ACTION_INQUIRY),
    }


def _ok_or_400(ok: bool, msg: str) -> Dict[str, Any]:
    if not ok:
        status = 404 if msg.endswith("not found") else 400
        raise HTTPException(status_code=status, detail=msg)
    return {"ok": True, "result": msg}


# ---------------- public catalog ----------------

@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/categories")
def categories():
    return db.list_categories()


@app.get("/api/items")
def items(category_id: Optional[str] = None):
    return db.list_items(category_id)


@app.get("/api/templates")
def templates():
    return db.list_templates()


@app.get("/api/templates/{template_id}/items")
def template_items(template_id: str):
    if not db.get_template(template_id):
        raise HTTPException(status_code=404, detail="template not found")
    return db.list_template_items(template_id)


# ---------------- calculator ----------------

@app.get("/api/calculator")
def calculator_get(sess: CalculatorSession = Depends(calculator_session)):
    return _summary(sess)


@app.post("/api/calculator/toggle")
def calculator_toggle(body: ToggleIn, sess: CalculatorSession = Depends(calculator_session)):
    sess.store.toggle_item(body.item_id)
    return _summary(sess)


@app.post("/api/calculator/quantity")
def calculator_quantity(body: QuantityIn, sess: CalculatorSession = Depends(calculator_session)):
    sess.store.set_quantity(body.item_id, body.quantity)
    return _summary(sess)


@app.post("/api/calculator/template")
def calculator_template(body: TemplateLoadIn, sess: CalculatorSession = Depends(calculator_session)):
    if not db.get_template(body.template_id):
        raise HTTPException(status_code=404, detail="template not found")
    sess.store.load_template(body.template_id, db.fetch_template_presets(body.template_id))
    return _summary(sess)


@app.post("/api/calculator/reset")
def calculator_reset(sess: CalculatorSession = Depends(calculator_session)):
    sess.store.reset_calculator()
    return _summary(sess)


@app.delete("/api/calculator")
def calculator_discard(request: Request, response: Response):
    sess = registry.get(request.cookies.get(SESSION_COOKIE) or "")
    registry.discard(sess.session_id)
    response.delete_cookie(SESSION_COOKIE)
    return {"ok": True}


@app.post("/api/calculator/submit")
async def calculator_submit(
    body: InquiryIn,
    sess: CalculatorSession = Depends(calculator_session),
):
    form = InquiryForm(**body.model_dump())
    result = await run_in_threadpool(
        submit_inquiry, sess.store, sess.limiter, form, notify=send_inquiry_emails
    )
    if result.rate_limited:
        raise HTTPException(
            status_code=429,
            detail={"message": result.error, "retry_after_seconds": result.retry_after},
            headers={"Retry-After": str(result.retry_after)},
        )
    if not result.ok:
        raise HTTPException(status_code=400, detail=result.error)

    inquiry = result.inquiry or {}
    await notify_admin_chat(inquiry)
    return {
        "id": inquiry["id"],
        "customer_name": inquiry["customer_name"],
        "email": inquiry["email"],
        "phone": inquiry["phone"],
        "event_date": inquiry["event_date"],
        "total": inquiry["total"],
        "created_at": inquiry["created_at"],
        "items": inquiry["items"],
        "emails_sent": bool(result.notified),
    }


# ---------------- admin: catalog ----------------

@app.post("/api/admin/categories", dependencies=[Depends(require_admin)])
def admin_category_add(body: CategoryIn):
    ok, res = db.add_category(body.name, body.icon_slug, body.sort_order)
    if not ok:
        raise HTTPException(status_code=409, detail=res)
    return {"id": res}


@app.patch("/api/admin/categories/{category_id}", dependencies=[Depends(require_admin)])
def admin_category_update(category_id: str, body: CategoryPatch):
    return _ok_or_400(*db.update_category(category_id, **body.model_dump(exclude_none=True)))


@app.delete("/api/admin/categories/{category_id}", dependencies=[Depends(require_admin)])
def admin_category_delete(category_id: str):
    if not db.delete_category(category_id):
        raise HTTPException(status_code=404, detail="category not found")
    return {"ok": True}


@app.post("/api/admin/items", dependencies=[Depends(require_admin)])
def admin_item_add(body: ItemIn):
    ok, res = db.add_item(body.category_id, body.name, body.price, body.unit, body.description, body.image_url)
    if not ok:
        raise HTTPException(status_code=404, detail=res)
    return {"id": res}


@app.patch("/api/admin/items/{item_id}", dependencies=[Depends(require_admin)])
def admin_item_update(item_id: str, body: ItemPatch):
    return _ok_or_400(*db.update_item(item_id, **body.model_dump(exclude_none=True)))


@app.delete("/api/admin/items/{item_id}", dependencies=[Depends(require_admin)])
def admin_item_delete(item_id: str):
    if not db.delete_item(item_id):
        raise HTTPException(status_code=404, detail="item not found")
    return {"ok": True}


@app.get("/api/admin/items/{item_id}/price-history", dependencies=[Depends(require_admin)])
def admin_item_price_history(item_id: str):
    if not db.get_item(item_id):
        raise HTTPException(status_code=404, detail="item not found")
    return db.get_price_history(item_id)


# ---------------- admin: templates ----------------

@app.post("/api/admin/templates", dependencies=[Depends(require_admin)])
def admin_template_add(body: TemplateIn):
    return {"id": db.add_template(body.name, body.description, body.image_url, body.capacity_label)}


@app.patch("/api/admin/templates/{template_id}", dependencies=[Depends(require_admin)])
def admin_template_update(template_id: str, body: TemplatePatch):
    return _ok_or_400(*db.update_template(template_id, **body.model_dump(exclude_none=True)))


@app.delete("/api/admin/templates/{template_id}", dependencies=[Depends(require_admin)])
def admin_template_delete(template_id: str):
    if not db.delete_template(template_id):
        raise HTTPException(status_code=404, detail="template not found")
    return {"ok": True}


@app.put("/api/admin/templates/{template_id}/items/{item_id}", dependencies=[Depends(require_admin)])
def admin_template_item_set(template_id: str, item_id: str, body: TemplateItemIn):
    return _ok_or_400(*db.set_template_item(template_id, item_id, body.quantity))


@app.delete("/api/admin/templates/{template_id}/items/{item_id}", dependencies=[Depends(require_admin)])
def admin_template_item_remove(template_id: str, item_id: str):
    if not db.remove_template_item(template_id, item_id):
        raise HTTPException(status_code=404, detail="template item not found")
    return {"ok": True}


# ---------------- admin: inquiries ----------------

@app.get("/api/admin/inquiries", dependencies=[Depends(require_admin)])
def admin_inquiries(status: Optional[str] = None):
    if status and status not in INQUIRY_STATUSES:
        raise HTTPException(status_code=400, detail=f"unknown status: {status}")
    return db.list_inquiries(status)


@app.get("/api/admin/inquiries/export.csv", dependencies=[Depends(require_admin)])
def admin_inquiries_export(status: Optional[str] = None):
    path = export_inquiries_csv(db.list_inquiries(status))
    if path is None:
        raise HTTPException(status_code=404, detail="no data to export")
    return FileResponse(path, filename=Path(path).name, media_type="text/csv")


@app.get("/api/admin/inquiries/{inquiry_id}", dependencies=[Depends(require_admin)])
def admin_inquiry(inquiry_id: str):
    inq = db.get_inquiry(inquiry_id)
    if not inq:
        raise HTTPException(status_code=404, detail="inquiry not found")
    inq["status_history"] = db.get_status_history(inquiry_id)
    return inq


@app.patch("/api/admin/inquiries/{inquiry_id}/status", dependencies=[Depends(require_admin)])
def admin_inquiry_status(inquiry_id: str, body: StatusIn):
    return _ok_or_400(*db.update_inquiry_status(inquiry_id, body.status, body.note))


@app.get("/api/admin/inquiries/{inquiry_id}/quotation.pdf", dependencies=[Depends(require_admin)])
def admin_inquiry_quotation(inquiry_id: str):
    inq = db.get_inquiry(inquiry_id)
    if not inq:
        raise HTTPException(status_code=404, detail="inquiry not found")
    path = generate_quotation_pdf(inq)
    return FileResponse(path, filename=Path(path).name, media_type="application/pdf")


@app.get("/api/admin/stats", dependencies=[Depends(require_admin)])
def admin_stats():
    return db.dashboard_stats()
