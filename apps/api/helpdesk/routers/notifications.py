"""
Notifications Router - /notifications endpoints.

Inbox listing and read state. Every query is scoped to the caller.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.deps import get_current_session, get_db, require_csrf_header
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.notifications import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationRead,
    UnreadCountResponse,
)
from helpdesk.services import notification_service


router = APIRouter()


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    limit: int = Query(settings.NOTIFICATION_LIST_LIMIT, ge=1, le=settings.NOTIFICATION_LIST_MAX),
    unread_only: bool = Query(False),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Get the caller's newest notifications and unread count."""
    items, unread_count = notification_service.list_for_user(
        db,
        user_id=session.user_id,
        limit=limit,
        unread_only=unread_only,
    )
    return NotificationListResponse(
        data=[NotificationRead.model_validate(n) for n in items],
        unread_count=unread_count,
    )


@router.get("/count", response_model=UnreadCountResponse)
def get_unread_count(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Get unread notification count (for polling)."""
    count = notification_service.get_unread_count(db, user_id=session.user_id)
    return UnreadCountResponse(count=count)


@router.put(
    "/read-all",
    response_model=MarkAllReadResponse,
    dependencies=[Depends(require_csrf_header)],
)
def mark_all_read(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Mark all of the caller's notifications as read."""
    count = notification_service.mark_all_read(db, user_id=session.user_id)
    return MarkAllReadResponse(marked_read=count)


@router.put(
    "/{notification_id}/read",
    response_model=NotificationRead,
    dependencies=[Depends(require_csrf_header)],
)
def mark_read(
    notification_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Mark a single notification as read."""
    notification = notification_service.mark_read(
        db,
        notification_id=notification_id,
        user_id=session.user_id,
    )
    return NotificationRead.model_validate(notification)
