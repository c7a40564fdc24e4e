from __future__ import annotations


class EventCraftError(Exception):
    """Base error for programmer-error states in the calculator core."""


class SessionNotFound(EventCraftError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"calculator session not found: {session_id}")


__all__ = [
    "EventCraftError",
    "SessionNotFound",
]
