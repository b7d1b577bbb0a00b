#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
    tests.test_circulation
    ~~~~~~~~~~~~~~~~~~~~~~

    Issue, return and the overdue sweep, and the copy counts they keep.

    :copyright: (c) 2025 by Authors.
    :license: see LICENSE for more details.
"""

import datetime
import pytest
from sqlalchemy import select, func
from pustak.core import circulation, ledger, catalog, events, db
from pustak.core.exceptions import (
    NoCopiesAvailableError,
    BorrowLimitExceededError,
    AlreadyReturnedError,
    MemberInactiveError,
    MemberNotFoundError,
    TitleNotFoundError,
    LoanNotFoundError,
    ValidationError,
)
from pustak.core.models import (
    Loan, Notification, ActivityEvent, LoanStatus, NotificationType, EventType,
    TitleStatus, ACTIVE_LOAN_STATUSES,
)
from tests.conftest import TODAY


def active_loans(session, title_id):
    return session.execute(
        select(func.count(Loan.id))
        .where(Loan.title_id == title_id, Loan.status.in_(ACTIVE_LOAN_STATUSES))
    ).scalar_one()

def assert_consistent(session, title_id):
    title = catalog.get_title(session, title_id)
    assert 0 <= title.available_copies <= title.total_copies
    assert title.available_copies == title.total_copies - active_loans(session, title_id)
    return title


def test_three_copies_scenario(db_session, make_title, make_member):
    title = make_title(copies=3)
    members = [make_member() for _ in range(4)]

    loans = [circulation.issue(db_session, title.id, m.id, today=TODAY) for m in members[:3]]
    title = assert_consistent(db_session, title.id)
    assert title.available_copies == 0
    assert title.status == TitleStatus.FULLY_ISSUED

    with pytest.raises(NoCopiesAvailableError):
        circulation.issue(db_session, title.id, members[3].id, today=TODAY)
    assert active_loans(db_session, title.id) == 3

    circulation.return_loan(db_session, loans[0].id)
    title = assert_consistent(db_session, title.id)
    assert title.available_copies == 1
    assert title.status == TitleStatus.PARTIALLY_ISSUED

def test_issue_creates_loan_and_event(db_session, make_title, make_member):
    title = make_title(title="Godaan", copies=1)
    member = make_member(name="Asha", category="staff")
    loan = circulation.issue(db_session, title.id, member.id, today=TODAY)

    assert loan.status == LoanStatus.ISSUED
    assert loan.issue_date == TODAY
    assert loan.due_date == TODAY + datetime.timedelta(days=21)
    event = db_session.execute(
        select(ActivityEvent).where(ActivityEvent.type == EventType.ISSUE)).scalar_one()
    assert event.title == "Issued: Godaan"
    assert event.description == 'Asha borrowed "Godaan"'
    assert event.related_id == loan.id

def test_explicit_due_date(db_session, make_title, make_member):
    title, member = make_title(), make_member()
    due = TODAY + datetime.timedelta(days=3)
    loan = circulation.issue(db_session, title.id, member.id, due_date=due, today=TODAY)
    assert loan.due_date == due
    with pytest.raises(ValidationError):
        circulation.issue(db_session, title.id, member.id,
                          due_date=TODAY - datetime.timedelta(days=1), today=TODAY)

def test_borrow_limit_wins_over_availability(db_session, make_title, make_member):
    member = make_member(category="guest")
    for _ in range(3):
        circulation.issue(db_session, make_title().id, member.id, today=TODAY)

    plenty = make_title(title="Gaban", copies=10)
    with pytest.raises(BorrowLimitExceededError):
        circulation.issue(db_session, plenty.id, member.id, today=TODAY)
    empty = make_title(title="Nirmala", copies=0)
    with pytest.raises(BorrowLimitExceededError):
        circulation.issue(db_session, empty.id, member.id, today=TODAY)
    assert catalog.get_title(db_session, plenty.id).available_copies == 10

def test_overdue_loans_count_toward_the_limit(db_session, make_title, make_member):
    member = make_member(category="guest")
    past = TODAY - datetime.timedelta(days=30)
    for _ in range(3):
        circulation.issue(db_session, make_title().id, member.id, today=past)
    assert circulation.refresh_overdue(db_session, TODAY) == 3
    with pytest.raises(BorrowLimitExceededError):
        circulation.issue(db_session, make_title().id, member.id, today=TODAY)

def test_unknown_and_inactive_members(db_session, make_title, make_member):
    title = make_title()
    with pytest.raises(MemberNotFoundError):
        circulation.issue(db_session, title.id, 999, today=TODAY)
    member = make_member()
    catalog.deactivate_member(db_session, member.id)
    with pytest.raises(MemberInactiveError):
        circulation.issue(db_session, title.id, member.id, today=TODAY)
    catalog.activate_member(db_session, member.id)
    circulation.issue(db_session, title.id, member.id, today=TODAY)

def test_unknown_title(db_session, make_member):
    member = make_member()
    with pytest.raises(TitleNotFoundError):
        circulation.issue(db_session, 999, member.id, today=TODAY)
    assert db_session.execute(select(func.count(Loan.id))).scalar_one() == 0

def test_second_return_changes_nothing(db_session, make_title, make_member):
    title = make_title(copies=2)
    loan = circulation.issue(db_session, title.id, make_member().id, today=TODAY)
    returned = circulation.return_loan(db_session, loan.id)
    assert returned.status == LoanStatus.RETURNED
    assert returned.returned_at is not None
    assert catalog.get_title(db_session, title.id).available_copies == 2

    with pytest.raises(AlreadyReturnedError):
        circulation.return_loan(db_session, loan.id)
    assert catalog.get_title(db_session, title.id).available_copies == 2
    returns = db_session.execute(
        select(func.count(ActivityEvent.id)).where(ActivityEvent.type == EventType.RETURN)
    ).scalar_one()
    assert returns == 1

def test_return_unknown_loan(db_session):
    with pytest.raises(LoanNotFoundError):
        circulation.return_loan(db_session, 42)

def test_return_of_overdue_loan(db_session, make_title, make_member):
    title = make_title(copies=1)
    loan = circulation.issue(db_session, title.id, make_member().id,
                             today=TODAY - datetime.timedelta(days=20))
    circulation.refresh_overdue(db_session, TODAY)
    assert circulation.return_loan(db_session, loan.id).status == LoanStatus.RETURNED
    assert catalog.get_title(db_session, title.id).status == TitleStatus.AVAILABLE

def test_availability_is_conserved(db_session, make_title, make_member):
    title = make_title(copies=4)
    members = [make_member() for _ in range(3)]

    def conserved():
        current = catalog.get_title(db_session, title.id)
        return current.available_copies + active_loans(db_session, title.id)

    assert conserved() == 4
    loans = [circulation.issue(db_session, title.id, m.id, today=TODAY) for m in members]
    assert conserved() == 4
    circulation.return_loan(db_session, loans[1].id)
    assert conserved() == 4
    loans.append(circulation.issue(db_session, title.id, members[1].id, today=TODAY))
    for loan in (loans[0], loans[2], loans[3]):
        circulation.return_loan(db_session, loan.id)
        assert conserved() == 4
    assert_consistent(db_session, title.id)

def test_capacity_edit_keeps_issued_copies(db_session, make_title, make_member):
    title = make_title(copies=3)
    for _ in range(2):
        circulation.issue(db_session, title.id, make_member().id, today=TODAY)

    grown = catalog.update_title(db_session, title.id, {"total_copies": 5})
    assert (grown.total_copies, grown.available_copies) == (5, 3)
    assert grown.status == TitleStatus.PARTIALLY_ISSUED

    shrunk = catalog.update_title(db_session, title.id, {"total_copies": 1})
    assert (shrunk.total_copies, shrunk.available_copies) == (1, 0)
    assert shrunk.status == TitleStatus.FULLY_ISSUED

def test_checkin_never_exceeds_total(db_session, make_title, make_member):
    title = make_title(copies=2)
    loan = circulation.issue(db_session, title.id, make_member().id, today=TODAY)
    catalog.update_title(db_session, title.id, {"total_copies": 1})
    circulation.return_loan(db_session, loan.id)
    current = catalog.get_title(db_session, title.id)
    assert (current.total_copies, current.available_copies) == (1, 1)

def test_every_ledger_write_bumps_the_version(db_session, make_title, make_member):
    title = make_title(copies=2)
    assert title.version == 1
    loan = circulation.issue(db_session, title.id, make_member().id, today=TODAY)
    assert catalog.get_title(db_session, title.id).version == 2
    circulation.return_loan(db_session, loan.id)
    assert catalog.get_title(db_session, title.id).version == 3

def test_recount_repairs_drifted_counts(db_session, make_title, make_member):
    title = make_title(copies=3)
    circulation.issue(db_session, title.id, make_member().id, today=TODAY)
    current = catalog.get_title(db_session, title.id)
    current.available_copies = 3
    db_session.commit()

    repaired = ledger.recount(db_session, title.id)
    db_session.commit()
    assert repaired.available_copies == 2

def test_overdue_sweep_is_idempotent(db_session, make_title, make_member):
    title = make_title(title="Godaan")
    member = make_member(name="Asha")
    # guest loans run 14 days, so this one was due yesterday
    loan = circulation.issue(db_session, title.id, member.id,
                             today=TODAY - datetime.timedelta(days=15))
    assert loan.due_date == TODAY - datetime.timedelta(days=1)

    assert circulation.refresh_overdue(db_session, TODAY) == 1
    assert circulation.refresh_overdue(db_session, TODAY) == 0
    assert events.generate_notifications(db_session, TODAY) == 1
    assert events.generate_notifications(db_session, TODAY) == 0

    loans = circulation.list_loans(db_session, status='overdue', today=TODAY)
    assert [l.id for l in loans] == [loan.id]
    notifications = db_session.execute(
        select(Notification).where(Notification.loan_id == loan.id)).scalars().all()
    assert len(notifications) == 1
    assert notifications[0].type == NotificationType.OVERDUE
    assert notifications[0].title == "Overdue: Godaan"
    assert notifications[0].message == (
        'Asha has not returned "Godaan" which was due on 09/03/2025')

def test_overdue_notification_repeats_on_a_new_day(db_session, make_title, make_member):
    circulation.issue(db_session, make_title().id, make_member().id,
                      today=TODAY - datetime.timedelta(days=20))
    circulation.sweep(db_session, TODAY)
    circulation.sweep(db_session, TODAY)
    circulation.sweep(db_session, TODAY + datetime.timedelta(days=1))
    assert db_session.execute(select(func.count(Notification.id))).scalar_one() == 2

def test_loan_due_today_is_not_overdue(db_session, make_title, make_member):
    loan = circulation.issue(db_session, make_title().id, make_member().id,
                             due_date=TODAY, today=TODAY)
    circulation.refresh_overdue(db_session, TODAY)
    assert circulation.list_loans(db_session, today=TODAY)[0].status == LoanStatus.ISSUED
    notification = db_session.execute(select(Notification)).scalar_one()
    assert notification.type == NotificationType.DUE_SOON
    assert notification.loan_id == loan.id

def test_due_soon_window(db_session, make_title, make_member):
    title = make_title(title="Gaban", copies=3)
    member = make_member(name="Ravi")
    soon = circulation.issue(db_session, title.id, member.id,
                             due_date=TODAY + datetime.timedelta(days=2), today=TODAY)
    circulation.issue(db_session, title.id, member.id,
                      due_date=TODAY + datetime.timedelta(days=3), today=TODAY)

    assert events.generate_notifications(db_session, TODAY) == 1
    notification = db_session.execute(select(Notification)).scalar_one()
    assert notification.loan_id == soon.id
    assert notification.title == "Due Soon: Gaban"
    assert notification.message == '"Gaban" borrowed by Ravi is due on 12/03/2025'

def test_send_reminder(db_session, make_title, make_member):
    title = make_title(title="Godaan")
    loan = circulation.issue(db_session, title.id, make_member(name="Asha").id, today=TODAY)
    notification = circulation.send_reminder(db_session, loan.id)
    assert notification.type == NotificationType.SYSTEM
    assert notification.title == "Reminder sent: Godaan"
    assert notification.message.startswith('Reminder sent to Asha for "Godaan"')

    circulation.return_loan(db_session, loan.id)
    with pytest.raises(AlreadyReturnedError):
        circulation.send_reminder(db_session, loan.id)
    with pytest.raises(LoanNotFoundError):
        circulation.send_reminder(db_session, 999)

def test_list_loans_filters(db_session, make_title, make_member):
    godaan, gaban = make_title(title="Godaan"), make_title(title="Gaban")
    asha, ravi = make_member(name="Asha"), make_member(name="Ravi")
    circulation.issue(db_session, godaan.id, asha.id, today=TODAY)
    circulation.issue(db_session, gaban.id, asha.id, today=TODAY)
    returned = circulation.issue(db_session, gaban.id, ravi.id, today=TODAY)
    circulation.return_loan(db_session, returned.id)

    assert len(circulation.list_loans(db_session, member_id=asha.id, today=TODAY)) == 2
    assert len(circulation.list_loans(db_session, title_id=gaban.id, today=TODAY)) == 2
    assert len(circulation.list_loans(db_session, status='returned', today=TODAY)) == 1
    with pytest.raises(ValidationError):
        circulation.list_loans(db_session, status='lost', today=TODAY)

    history = circulation.member_history(db_session, ravi.id, today=TODAY)
    assert [l.id for l in history] == [returned.id]
    with pytest.raises(MemberNotFoundError):
        circulation.member_history(db_session, 999)

def test_two_sessions_race_for_the_last_copy(tmp_path):
    engine = db.make_engine(f"sqlite:///{tmp_path / 'pustak.db'}")
    factory = db.init(engine)
    with factory() as setup:
        title_id = catalog.add_title(
            setup, {"title": "Godaan", "author": "Premchand", "total_copies": 1}).id
        asha = catalog.register_member(setup, {"name": "Asha"}).id
        ravi = catalog.register_member(setup, {"name": "Ravi"}).id

    first, second = factory(), factory()
    try:
        # both desks have read the title while one copy was still on the shelf
        assert catalog.get_title(first, title_id).available_copies == 1
        assert catalog.get_title(second, title_id).available_copies == 1

        circulation.issue(first, title_id, asha, today=TODAY)
        with pytest.raises(NoCopiesAvailableError):
            circulation.issue(second, title_id, ravi, today=TODAY)

        assert catalog.get_title(second, title_id).available_copies == 0
        assert active_loans(second, title_id) == 1
    finally:
        first.close()
        second.close()
        engine.dispose()
