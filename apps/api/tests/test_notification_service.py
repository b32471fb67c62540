from datetime import datetime, timedelta, timezone
import uuid

import pytest

from helpdesk.core.errors import NotFoundError, ValidationError
from helpdesk.db.enums import NotificationType
from helpdesk.db.models import Notification
from helpdesk.services import notification_service


def _notify(db, user, title="Heads up", **kwargs):
    return notification_service.create_notification(
        db,
        user_id=user.id,
        type=kwargs.pop("type", NotificationType.TICKET_UPDATED),
        title=title,
        message=kwargs.pop("message", "Something happened"),
        **kwargs,
    )


def _seed(db, user, count, start=None):
    start = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
    rows = [
        Notification(
            user_id=user.id,
            type=NotificationType.TICKET_UPDATED.value,
            title=f"n{i}",
            message="update",
            created_at=start + timedelta(minutes=i),
        )
        for i in range(count)
    ]
    db.add_all(rows)
    db.commit()
    return rows


def test_create_notification_starts_unread(db, requester, ticket_factory):
    ticket = ticket_factory(requester)

    notification = _notify(db, requester, ticket_id=ticket.id)

    assert notification.read is False
    assert notification.type == "ticket:updated"
    assert notification.ticket_id == ticket.id


def test_create_rejects_unknown_type(db, requester):
    with pytest.raises(ValidationError) as exc:
        _notify(db, requester, type="ticket:deleted")
    assert exc.value.field == "type"


@pytest.mark.parametrize("field", ["title", "message"])
def test_create_rejects_blank_text(db, requester, field):
    kwargs = {"title": "Heads up", "message": "Body"}
    kwargs[field] = "   "
    with pytest.raises(ValidationError) as exc:
        notification_service.create_notification(
            db, user_id=requester.id, type=NotificationType.MESSAGE_NEW, **kwargs
        )
    assert exc.value.field == field


def test_create_notifications_writes_one_row_per_recipient(db, admin, analyst):
    rows = notification_service.create_notifications(
        db,
        user_ids=[admin.id, analyst.id, admin.id],
        type=NotificationType.TICKET_CREATED,
        title="New Ticket",
        message="New ticket",
    )

    assert sorted(r.user_id for r in rows) == sorted([admin.id, analyst.id])
    assert db.query(Notification).count() == 2


def test_create_notifications_with_no_recipients(db):
    assert notification_service.create_notifications(
        db, user_ids=[], type="ticket:created", title="t", message="m"
    ) == []


def test_list_for_user_newest_first_with_unread_count(db, requester):
    rows = _seed(db, requester, 5)
    rows[0].read = True
    db.commit()

    items, unread = notification_service.list_for_user(db, user_id=requester.id, limit=3)

    assert [n.title for n in items] == ["n4", "n3", "n2"]
    assert unread == 4


def test_list_for_user_unread_only(db, requester):
    rows = _seed(db, requester, 3)
    rows[2].read = True
    db.commit()

    items, unread = notification_service.list_for_user(db, user_id=requester.id, unread_only=True)

    assert [n.title for n in items] == ["n1", "n0"]
    assert unread == 2


def test_list_for_user_rejects_out_of_range_limit(db, requester):
    with pytest.raises(ValidationError):
        notification_service.list_for_user(db, user_id=requester.id, limit=10_000)


def test_list_is_scoped_to_recipient(db, requester, outsider):
    _seed(db, outsider, 2)

    items, unread = notification_service.list_for_user(db, user_id=requester.id)

    assert items == []
    assert unread == 0


def test_mark_read_other_users_notification_is_not_found(db, requester, outsider):
    notification = _notify(db, outsider)

    with pytest.raises(NotFoundError):
        notification_service.mark_read(db, notification_id=notification.id, user_id=requester.id)

    db.refresh(notification)
    assert notification.read is False


def test_mark_read_missing_notification(db, requester):
    with pytest.raises(NotFoundError):
        notification_service.mark_read(db, notification_id=uuid.uuid4(), user_id=requester.id)


def test_mark_read_is_idempotent(db, requester):
    notification = _notify(db, requester)

    first = notification_service.mark_read(db, notification_id=notification.id, user_id=requester.id)
    second = notification_service.mark_read(db, notification_id=notification.id, user_id=requester.id)

    assert first.read is True
    assert second.read is True


def test_read_flag_cannot_go_back_to_unread(db, requester):
    notification = _notify(db, requester)
    notification_service.mark_read(db, notification_id=notification.id, user_id=requester.id)

    with pytest.raises(ValueError):
        notification.read = False


def test_mark_all_read_twice(db, requester, outsider):
    _seed(db, requester, 3)
    _seed(db, outsider, 2)

    assert notification_service.mark_all_read(db, user_id=requester.id) == 3
    assert notification_service.get_unread_count(db, user_id=requester.id) == 0

    assert notification_service.mark_all_read(db, user_id=requester.id) == 0
    assert notification_service.get_unread_count(db, user_id=requester.id) == 0

    # Other inboxes untouched
    assert notification_service.get_unread_count(db, user_id=outsider.id) == 2


def test_event_payload_is_json_ready(db, requester, ticket_factory):
    ticket = ticket_factory(requester, title="VPN is down")
    notification = _notify(db, requester, ticket_id=ticket.id)

    payload = notification_service.to_event_payload(notification)

    assert payload["id"] == str(notification.id)
    assert payload["ticket"]["title"] == "VPN is down"
    assert payload["read"] is False
    assert "timestamp" in payload
