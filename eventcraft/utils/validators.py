def require_positive_number(v: float, name: str = "value") -> None:
    if v <= 0:
        raise ValueError(f"{name} must be > 0")


def require_non_negative_int(v: int, name: str = "value") -> None:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValueError(f"{name} must be an integer")
    if v < 0:
        raise ValueError(f"{name} must be >= 0")


def require_text(v: str | None, name: str = "value") -> str:
    t = (v or "").strip()
    if not t:
        raise ValueError(f"{name} must not be empty")
    return t
