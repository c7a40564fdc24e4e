from __future__ import annotations

from eventcraft.config import get_settings
from eventcraft.constants import SHORT_ID_LEN


def group_thousands(v: int | float, sep: str = ".") -> str:
    """1500000 -> '1.500.000' (id-ID grouping)."""
    sign = "-" if v < 0 else ""
    return sign + f"{abs(int(round(v))):,}".replace(",", sep)


def money(v: int | float) -> str:
    s = get_settings()
    if s.currency == "IDR":
        return f"Rp {group_thousands(v)}"
    return f"{v:,.{s.decimals}f} {s.currency}"


def short_id(value: str, length: int = SHORT_ID_LEN) -> str:
    return str(value)[:length].upper()
