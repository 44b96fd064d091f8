from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.models.notification import Notification, NotificationType
from app.models.user import TIMETABLE_MANAGER_ROLES, User
from app.services.email import EmailDeliveryError, send_email

logger = logging.getLogger(__name__)

TIMETABLE_GENERATED = "timetable.generated"


@dataclass(frozen=True)
class TimetableGeneratedEvent:
    timetable_id: str
    timetable_title: str
    filled_count: int
    gap_count: int
    type: str = TIMETABLE_GENERATED

    def as_dict(self) -> dict:
        return {
            "type": self.type,
            "timetable_id": self.timetable_id,
            "filled_count": self.filled_count,
            "gap_count": self.gap_count,
        }


class NotificationGateway(Protocol):
    def send(self, recipients: list[str], event: TimetableGeneratedEvent) -> None: ...


def resolve_timetable_managers(db: Session, *, school_id: str) -> list[str]:
    """Active users of ``school_id`` allowed to manage its timetables."""
    return list(
        db.execute(
            select(User.id)
            .where(
                User.school_id == school_id,
                User.role.in_(list(TIMETABLE_MANAGER_ROLES)),
                User.is_active.is_(True),
            )
            .order_by(User.id)
        ).scalars()
    )


def _send_notification_email(recipient: User, *, title: str, message: str) -> None:
    if not recipient.email:
        return
    try:
        send_email(
            to_email=recipient.email,
            subject=f"Timetable Notification: {title}",
            text_content=f"Hello {recipient.name},\n\n{message}",
        )
    except EmailDeliveryError:
        logger.warning("Notification email delivery failed for %s", recipient.email, exc_info=True)


def create_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    payload: dict | None = None,
    recipient: User | None = None,
    deliver_email: bool = False,
) -> Notification:
    record = Notification(
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        payload=payload or {},
    )
    db.add(record)
    db.flush()

    if deliver_email and recipient is not None:
        _send_notification_email(recipient, title=title, message=message)
    return record


def notify_users(
    db: Session,
    *,
    user_ids: list[str] | set[str] | tuple[str, ...],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    payload: dict | None = None,
    deliver_email: bool = False,
) -> list[Notification]:
    requested_ids = [item for item in dict.fromkeys(user_ids) if item]
    if not requested_ids:
        return []

    recipients = list(
        db.execute(
            select(User).where(
                User.id.in_(requested_ids),
                User.is_active.is_(True),
            )
        ).scalars()
    )
    results: list[Notification] = []
    for recipient in recipients:
        results.append(
            create_notification(
                db,
                user_id=recipient.id,
                title=title,
                message=message,
                notification_type=notification_type,
                payload=payload,
                recipient=recipient,
                deliver_email=deliver_email,
            )
        )
    return results


class InAppNotificationGateway:
    """Stores one in-app notification per recipient, optionally mirrored by e-mail."""

    def __init__(self, session_factory: sessionmaker[Session], *, deliver_email: bool = False) -> None:
        self._session_factory = session_factory
        self._deliver_email = deliver_email

    def send(self, recipients: list[str], event: TimetableGeneratedEvent) -> None:
        message = (
            f"A draft timetable has been generated for {event.timetable_title}: "
            f"{event.filled_count} slot(s) filled, {event.gap_count} left open. "
            "Review it and make adjustments before publishing."
        )
        with self._session_factory() as db:
            created = notify_users(
                db,
                user_ids=recipients,
                title="Draft timetable generated",
                message=message,
                notification_type=NotificationType.timetable,
                payload=event.as_dict(),
                deliver_email=self._deliver_email,
            )
            db.commit()
        logger.info(
            "Sent %s notification for timetable %s to %d user(s)",
            event.type,
            event.timetable_id,
            len(created),
        )
