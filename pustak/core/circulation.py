#!/usr/bin/env python

"""
    Circulation for Pustak: issuing and returning copies, the overdue
    sweep and loan listings.

    A loan is ``issued`` until it is returned; the sweep turns issued
    loans past their due date into ``overdue``; ``returned`` is final.
    Every transition changes the availability ledger and appends an
    activity event in one transaction.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
import datetime
from typing import List, Optional
from sqlalchemy import select, update, func
from pustak.core import ledger
from pustak.core.db import storage_errors
from pustak.core.events import (
    record_event, record_notification, generate_notifications, display_date
)
from pustak.core.exceptions import (
    ValidationError,
    MemberNotFoundError,
    MemberInactiveError,
    LoanNotFoundError,
    BorrowLimitExceededError,
    AlreadyReturnedError,
)
from pustak.core.models import (
    Loan, Member, Title, LoanStatus, EventType, NotificationType,
    ACTIVE_LOAN_STATUSES,
)
from pustak.core.utils import utcnow, today as current_day

logger = logging.getLogger(__name__)

LOAN_LIST_LIMIT = 50


def active_loans_of(session, member_id) -> int:
    return session.execute(
        select(func.count(Loan.id))
        .where(Loan.member_id == member_id, Loan.status.in_(ACTIVE_LOAN_STATUSES))
    ).scalar_one()

def issue(session, title_id, member_id, due_date: Optional[datetime.date] = None,
          today: Optional[datetime.date] = None, notes: str = None) -> Loan:
    """
    Lend one copy of a title to a member.

    Args:
        title_id: the title to lend.
        member_id: the borrowing member.
        due_date: defaults to today plus the member category's loan period.

    Returns:
        The new Loan, committed.

    Raises:
        MemberNotFoundError, MemberInactiveError: unknown or deactivated member.
        BorrowLimitExceededError: the member already holds `max_books` loans,
            whatever the title's availability.
        TitleNotFoundError, NoCopiesAvailableError: from the ledger.
    """
    issue_date = today or current_day()
    with storage_errors(session, f"issue title {title_id} to member {member_id}"):
        member = session.get(Member, member_id, populate_existing=True)
        if member is None:
            raise MemberNotFoundError(f"Member {member_id} not found.")
        if not member.is_active:
            raise MemberInactiveError(f"Member {member_id} is not active.")

        held = active_loans_of(session, member_id)
        if held >= member.max_books:
            raise BorrowLimitExceededError(
                f"Member {member_id} already has {held} of {member.max_books} books.")

        due = due_date or issue_date + datetime.timedelta(days=member.loan_period_days)
        if due < issue_date:
            raise ValidationError("due_date cannot be before the issue date.")

        title = ledger.checkout_copy(session, title_id)
        loan = Loan(title_id=title.id, member_id=member.id, issued_at=utcnow(),
                    issue_date=issue_date, due_date=due, status=LoanStatus.ISSUED,
                    notes=notes)
        session.add(loan)
        session.flush()
        record_event(session, EventType.ISSUE,
                     title=f"Issued: {title.title}",
                     description=f'{member.name} borrowed "{title.title}"',
                     related_id=loan.id, related_type='issue')
        session.commit()

    logger.info(f"Issued title {title_id} to member {member_id} as loan {loan.id}, due {due}")
    return loan

def return_loan(session, loan_id) -> Loan:
    """Closes a loan and puts its copy back. A second return of the same
    loan raises AlreadyReturnedError and changes nothing."""
    with storage_errors(session, f"return loan {loan_id}"):
        loan = session.get(Loan, loan_id, populate_existing=True)
        if loan is None:
            raise LoanNotFoundError(f"Loan {loan_id} not found.")

        result = session.execute(
            update(Loan)
            .where(Loan.id == loan_id, Loan.status != LoanStatus.RETURNED)
            .values(status=LoanStatus.RETURNED, returned_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AlreadyReturnedError(f"Loan {loan_id} was already returned.")

        title = ledger.checkin_copy(session, loan.title_id)
        member = session.get(Member, loan.member_id)
        record_event(session, EventType.RETURN,
                     title=f"Returned: {title.title}",
                     description=f'{member.name} returned "{title.title}"',
                     related_id=loan.id, related_type='issue')
        session.commit()
        session.refresh(loan)

    logger.info(f"Loan {loan_id} returned, title {title.id} has {title.available_copies} available")
    return loan

def refresh_overdue(session, today: Optional[datetime.date] = None) -> int:
    """Marks issued loans due before `today` as overdue. Running it again
    changes nothing."""
    day = today or current_day()
    with storage_errors(session, "refresh overdue loans"):
        result = session.execute(
            update(Loan)
            .where(Loan.status == LoanStatus.ISSUED, Loan.due_date < day)
            .values(status=LoanStatus.OVERDUE)
            .execution_options(synchronize_session=False)
        )
        session.commit()
    if result.rowcount:
        logger.info(f"{result.rowcount} loans became overdue on {day}")
    return result.rowcount

def sweep(session, today: Optional[datetime.date] = None):
    """Overdue sweep followed by notification generation; run before
    anything that reports on loans."""
    day = today or current_day()
    refresh_overdue(session, day)
    with storage_errors(session, "generate notifications"):
        generate_notifications(session, day)

def send_reminder(session, loan_id):
    with storage_errors(session, f"send reminder for loan {loan_id}"):
        row = session.execute(
            select(Loan, Title.title, Member.name)
            .join(Title, Loan.title_id == Title.id)
            .join(Member, Loan.member_id == Member.id)
            .where(Loan.id == loan_id)
            .execution_options(populate_existing=True)
        ).first()
        if row is None:
            raise LoanNotFoundError(f"Loan {loan_id} not found.")
        loan, title, member = row
        if loan.status == LoanStatus.RETURNED:
            raise AlreadyReturnedError(f"Loan {loan_id} was already returned.")
        notification = record_notification(
            session, NotificationType.SYSTEM,
            title=f"Reminder sent: {title}",
            message=f'Reminder sent to {member} for "{title}" (due {display_date(loan.due_date)}).',
            loan_id=loan.id, related_id=loan.id, related_type='issue')
        session.commit()
    return notification

def list_loans(session, member_id=None, title_id=None, status=None,
               offset: int = 0, limit: int = LOAN_LIST_LIMIT,
               today: Optional[datetime.date] = None) -> List[Loan]:
    if status is not None:
        try:
            status = LoanStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown loan status '{status}'.") from None
    sweep(session, today)

    query = select(Loan)
    if member_id is not None:
        query = query.where(Loan.member_id == member_id)
    if title_id is not None:
        query = query.where(Loan.title_id == title_id)
    if status is not None:
        query = query.where(Loan.status == status)
    return session.execute(
        query.order_by(Loan.issued_at.desc(), Loan.id.desc()).offset(offset).limit(limit)
        .execution_options(populate_existing=True)
    ).scalars().all()

def member_history(session, member_id, today: Optional[datetime.date] = None) -> List[Loan]:
    if session.get(Member, member_id) is None:
        raise MemberNotFoundError(f"Member {member_id} not found.")
    return list_loans(session, member_id=member_id, limit=None, today=today)
