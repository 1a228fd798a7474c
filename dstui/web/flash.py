"""One-shot notifications kept in the signed session cookie."""

from __future__ import annotations

from starlette.requests import Request

SESSION_KEY = "flash"


def set_flash(request: Request, kind: str, message: str) -> None:
    messages = dict(request.session.get(SESSION_KEY) or {})
    messages[kind] = message
    request.session[SESSION_KEY] = messages


def get_flash(request: Request, kind: str) -> str | None:
    """Pop the message of ``kind``, so it is shown only once."""
    messages = dict(request.session.get(SESSION_KEY) or {})
    message = messages.pop(kind, None)
    if message is not None:
        request.session[SESSION_KEY] = messages
    return message
