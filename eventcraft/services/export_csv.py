from __future__ import annotations

import csv
import io
import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from eventcraft.config import get_settings
from eventcraft.utils.formatters import group_thousands, short_id

logger = logging.getLogger(__name__)

Formatter = Callable[[Any], str]
Column = Tuple[str, str, Optional[Formatter]]  # key, header, formatter


def _created_at(v: Any) -> str:
    try:
        return datetime.strptime(str(v), "%Y-%m-%d %H:%M:%S").strftime("%d/%m/%Y %H.%M.%S")
    except ValueError:
        return str(v)


INQUIRY_COLUMNS: List[Column] = [
    ("id", "Inquiry ID", short_id),
    ("customer_name", "Customer Name", None),
    ("email", "Email", None),
    ("phone", "Phone", None),
    ("event_date", "Event Date", None),
    ("total", "Total (IDR)", lambda v: group_thousands(int(v or 0))),
    ("status", "Status", None),
    ("created_at", "Created At", _created_at),
]


def to_csv(rows: Iterable[Dict[str, Any]], columns: Sequence[Column]) -> str:
    buf = io.StringIO()
    w = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    w.writerow([header for _, header, _ in columns])
    for row in rows:
        out = []
        for key, _, fmt in columns:
            value = row.get(key)
            if fmt is not None:
                out.append(fmt(value))
            else:
                out.append("" if value is None else str(value))
        w.writerow(out)
    return buf.getvalue()


def export_inquiries_csv(
    inquiries: List[Dict[str, Any]],
    out_dir: Optional[str] = None,
    filename: str = "eventcraft_inquiries",
) -> Optional[str]:
    """Writes the CSV (UTF-8 with BOM) and returns its path, or None when empty."""
    if not inquiries:
        logger.warning("no data to export")
        return None

    out_dir = out_dir or get_settings().export_dir
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, f"{filename}_{datetime.now().strftime('%Y%m%d')}.csv")

    with open(path, "w", encoding="utf-8-sig", newline="") as f:
        f.write(to_csv(inquiries, INQUIRY_COLUMNS))
    return path
