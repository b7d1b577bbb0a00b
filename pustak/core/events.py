#!/usr/bin/env python

"""
    Activity events and notifications for Pustak.

    Activity events are an append-only feed written in the same
    transaction as the change they describe. Notifications about
    overdue and soon-due loans are derived from loan state whenever a
    read asks for them, at most once per loan, type and calendar day.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
import datetime
from typing import List, Optional
from sqlalchemy import select, update, delete, func, exists, and_
from pustak.core.models import (
    ActivityEvent, ViewerSetting, Notification, Loan, Title, Member,
    LoanStatus, NotificationType,
)
from pustak.core.exceptions import NotificationNotFoundError
from pustak.core.legacy_hindi import normalize_for_display, normalize_legacy_hindi
from pustak.core.utils import utcnow, today as current_day
from pustak.configs import ACTIVITY_LIMIT, NOTIFICATION_LIMIT, DUE_SOON_DAYS
from pustak.schemas.activity import ActivityEvent as ActivityEventOut
from pustak.schemas.notification import Notification as NotificationOut

logger = logging.getLogger(__name__)

ACTIVITY_CUTOFF = 'recent_activity_cutoff'


def display_date(day: datetime.date) -> str:
    return day.strftime('%d/%m/%Y')

def record_event(session, type, title=None, description=None,
                 related_id=None, related_type=None, occurred_at=None):
    """Adds an ActivityEvent to the caller's transaction."""
    event = ActivityEvent(
        type=type,
        title=title,
        description=description,
        related_id=related_id,
        related_type=related_type,
        occurred_at=occurred_at or utcnow(),
    )
    session.add(event)
    return event

def record_notification(session, type, title, message, loan_id=None,
                        related_id=None, related_type=None, day=None):
    notification = Notification(
        type=type,
        title=title,
        message=message,
        loan_id=loan_id,
        related_id=related_id,
        related_type=related_type,
        created_at=utcnow(),
        created_on=day or current_day(),
    )
    session.add(notification)
    return notification

def _already_notified(type, day):
    return exists().where(
        Notification.loan_id == Loan.id,
        Notification.type == type,
        Notification.created_on == day,
    )

def _loans_needing(session, type, condition, day):
    return session.execute(
        select(Loan.id, Loan.due_date, Title.title, Member.name)
        .join(Title, Loan.title_id == Title.id)
        .join(Member, Loan.member_id == Member.id)
        .where(condition, ~_already_notified(type, day))
        .order_by(Loan.due_date, Loan.id)
    ).all()

def generate_notifications(session, today: Optional[datetime.date] = None) -> int:
    """Creates the overdue and due-soon notifications not yet created
    today and commits them. Returns how many were created; calling it
    again the same day creates none."""
    day = today or current_day()
    created = 0

    overdue = _loans_needing(
        session, NotificationType.OVERDUE, Loan.status == LoanStatus.OVERDUE, day)
    for loan_id, due_date, title, member in overdue:
        record_notification(
            session, NotificationType.OVERDUE,
            title=f"Overdue: {title}",
            message=f'{member} has not returned "{title}" which was due on {display_date(due_date)}',
            loan_id=loan_id, related_id=loan_id, related_type='issue', day=day)
        created += 1

    due_soon = _loans_needing(
        session, NotificationType.DUE_SOON,
        and_(Loan.status == LoanStatus.ISSUED,
             Loan.due_date >= day,
             Loan.due_date <= day + datetime.timedelta(days=DUE_SOON_DAYS)),
        day)
    for loan_id, due_date, title, member in due_soon:
        record_notification(
            session, NotificationType.DUE_SOON,
            title=f"Due Soon: {title}",
            message=f'"{title}" borrowed by {member} is due on {display_date(due_date)}',
            loan_id=loan_id, related_id=loan_id, related_type='issue', day=day)
        created += 1

    if created:
        session.commit()
        logger.info(f"Generated {created} loan notifications for {day}")
    return created

def activity_cutoff(session, viewer_id) -> Optional[datetime.datetime]:
    if viewer_id is None:
        return None
    return session.execute(
        select(ViewerSetting.hidden_before)
        .where(ViewerSetting.viewer_id == str(viewer_id),
               ViewerSetting.name == ACTIVITY_CUTOFF)
    ).scalar_one_or_none()

def _for_display(schema):
    return schema.model_copy(update={
        'title': normalize_for_display(schema.title),
        'description': normalize_legacy_hindi(schema.description),
    })

def list_activity(session, viewer_id=None, limit: int = ACTIVITY_LIMIT) -> List[ActivityEventOut]:
    """Most recent activity first, hiding what the viewer cleared."""
    query = select(ActivityEvent)
    cutoff = activity_cutoff(session, viewer_id)
    if cutoff is not None:
        query = query.where(ActivityEvent.occurred_at >= cutoff)
    events = session.execute(
        query.order_by(ActivityEvent.occurred_at.desc(), ActivityEvent.id.desc()).limit(limit)
    ).scalars().all()
    return [_for_display(ActivityEventOut.model_validate(e)) for e in events]

def clear_activity(session, viewer_id, at: datetime.datetime = None) -> datetime.datetime:
    """Hides everything up to now from `viewer_id`'s feed. Nothing is deleted."""
    cutoff = at or utcnow()
    setting = session.execute(
        select(ViewerSetting)
        .where(ViewerSetting.viewer_id == str(viewer_id),
               ViewerSetting.name == ACTIVITY_CUTOFF)
    ).scalar_one_or_none()
    if setting is None:
        setting = ViewerSetting(viewer_id=str(viewer_id), name=ACTIVITY_CUTOFF)
        session.add(setting)
    setting.hidden_before = cutoff
    session.commit()
    return cutoff

def list_notifications(session, unread_only: bool = False,
                       limit: int = NOTIFICATION_LIMIT) -> List[NotificationOut]:
    query = select(Notification)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    notifications = session.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    ).scalars().all()
    return [
        NotificationOut.model_validate(n).model_copy(update={
            'title': normalize_for_display(n.title),
            'message': normalize_legacy_hindi(n.message),
        })
        for n in notifications
    ]

def unread_count(session) -> int:
    return session.execute(
        select(func.count(Notification.id)).where(Notification.is_read.is_(False))
    ).scalar_one()

def mark_read(session, notification_id):
    result = session.execute(
        update(Notification)
        .where(Notification.id == notification_id)
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        session.rollback()
        raise NotificationNotFoundError(f"Notification {notification_id} not found.")
    session.commit()

def mark_all_read(session) -> int:
    result = session.execute(
        update(Notification)
        .where(Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return result.rowcount

def delete_notification(session, notification_id):
    result = session.execute(
        delete(Notification)
        .where(Notification.id == notification_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        session.rollback()
        raise NotificationNotFoundError(f"Notification {notification_id} not found.")
    session.commit()
