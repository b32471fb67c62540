"""Structured logging helpers (identifiers only, never message content)."""

import logging
from typing import Any

from helpdesk.core.config import settings


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once for the API process."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_log_context(
    *,
    user_id: str | None = None,
    ticket_id: str | None = None,
    notification_id: str | None = None,
    event: str | None = None,
    rooms: list[str] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict safe to attach via ``extra=``."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if ticket_id:
        context["ticket_id"] = ticket_id
    if notification_id:
        context["notification_id"] = notification_id
    if event:
        context["event"] = event
    if rooms:
        context["rooms"] = sorted(rooms)
    if request_id:
        context["request_id"] = request_id
    return context
