#!/usr/bin/env python

"""
    Dashboard statistics for Pustak.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
from typing import Optional
from sqlalchemy import select, func
from pustak.core.circulation import sweep
from pustak.core.models import Title, Member, Loan, LoanStatus, ACTIVE_LOAN_STATUSES
from pustak.schemas.stats import DashboardStats


def _count(session, statement) -> int:
    return session.execute(statement).scalar_one() or 0

def dashboard_stats(session, today: Optional[datetime.date] = None) -> DashboardStats:
    """Counts for the dashboard, taken after the overdue sweep so the
    overdue figure is never stale."""
    sweep(session, today)

    total_titles = _count(session, select(func.count(Title.id)))
    total_copies = _count(session, select(func.coalesce(func.sum(Title.total_copies), 0)))
    issued = _count(session, select(func.count(Loan.id))
                    .where(Loan.status.in_(ACTIVE_LOAN_STATUSES)))
    overdue = _count(session, select(func.count(Loan.id))
                     .where(Loan.status == LoanStatus.OVERDUE))
    total_members = _count(session, select(func.count(Member.id)))
    active_members = _count(session, select(func.count(Member.id))
                            .where(Member.is_active.is_(True)))

    return DashboardStats(
        total_titles=total_titles,
        total_copies=total_copies,
        issued_copies=issued,
        available_copies=max(total_copies - issued, 0),
        overdue_loans=overdue,
        active_members=active_members,
        total_members=total_members,
    )
