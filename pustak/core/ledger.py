#!/usr/bin/env python

"""
    Availability ledger for Pustak.

    `Title.available_copies` is the single source of truth for how many
    copies can be lent right now; `Title.status` is derived from it on
    read. Every write here is one conditional UPDATE against the stored
    counts, never a value read earlier in the request, and bumps
    `Title.version` so concurrent capacity edits can compare-and-swap.

    None of these functions commit; the caller owns the transaction.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
from sqlalchemy import select, update, func, case
from pustak.core.models import Title, Loan, ACTIVE_LOAN_STATUSES
from pustak.core.exceptions import (
    TitleNotFoundError,
    NoCopiesAvailableError,
    StaleTitleError,
    ValidationError,
)
from pustak.core.utils import utcnow
from pustak.configs import LEDGER_RETRIES

logger = logging.getLogger(__name__)


def _reload(session, title_id):
    return session.get(Title, title_id, populate_existing=True)

def available_after_resize(old_total, old_available, new_total) -> int:
    """Copies lendable after a capacity change; copies already issued stay issued."""
    issued = (old_total or 0) - (old_available or 0)
    return max(0, new_total - issued)

def checkout_copy(session, title_id):
    """Takes one copy of `title_id` off the shelf.

    Raises NoCopiesAvailableError when the stored count is already zero
    and TitleNotFoundError when there is no such title.
    """
    result = session.execute(
        update(Title)
        .where(Title.id == title_id, Title.available_copies > 0)
        .values(available_copies=Title.available_copies - 1,
                version=Title.version + 1,
                updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        if session.get(Title, title_id) is None:
            raise TitleNotFoundError(f"Title {title_id} not found.")
        raise NoCopiesAvailableError(f"No copies of title {title_id} are available.")
    return _reload(session, title_id)

def checkin_copy(session, title_id):
    """Puts one copy of `title_id` back, never above `total_copies`."""
    result = session.execute(
        update(Title)
        .where(Title.id == title_id)
        .values(available_copies=case(
                    (Title.available_copies < Title.total_copies, Title.available_copies + 1),
                    else_=Title.total_copies),
                version=Title.version + 1,
                updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise TitleNotFoundError(f"Title {title_id} not found.")
    return _reload(session, title_id)

def resize(session, title_id, new_total, expected_version=None, retries=LEDGER_RETRIES):
    """Sets the number of copies a title owns.

    Issued copies stay issued: the new available count is
    ``max(0, new_total - issued)``. The write only lands if the row still
    carries the version it was computed from. With `expected_version`
    the caller's version must match or StaleTitleError is raised at
    once; without it a lost race is retried up to `retries` times.
    """
    if new_total is None or new_total < 0:
        raise ValidationError("total_copies must be zero or more.")

    for attempt in range(max(retries, 1)):
        row = session.execute(
            select(Title.total_copies, Title.available_copies, Title.version)
            .where(Title.id == title_id)
        ).first()
        if row is None:
            raise TitleNotFoundError(f"Title {title_id} not found.")
        if expected_version is not None and row.version != expected_version:
            raise StaleTitleError(
                f"Title {title_id} is at version {row.version}, not {expected_version}.")

        result = session.execute(
            update(Title)
            .where(Title.id == title_id, Title.version == row.version)
            .values(total_copies=new_total,
                    available_copies=available_after_resize(
                        row.total_copies, row.available_copies, new_total),
                    version=row.version + 1,
                    updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return _reload(session, title_id)
        if expected_version is not None:
            raise StaleTitleError(f"Title {title_id} changed while being resized.")
        logger.info(f"Title {title_id} changed during resize, retry {attempt + 1}")

    raise StaleTitleError(f"Title {title_id} kept changing; gave up after {retries} attempts.")

def active_loan_count(session, title_id) -> int:
    return session.execute(
        select(func.count(Loan.id))
        .where(Loan.title_id == title_id, Loan.status.in_(ACTIVE_LOAN_STATUSES))
    ).scalar_one()

def recount(session, title_id):
    """Rebuilds `available_copies` from the active loans of a title, for
    repairing rows written outside the ledger."""
    title = _reload(session, title_id)
    if title is None:
        raise TitleNotFoundError(f"Title {title_id} not found.")
    expected = max(0, (title.total_copies or 0) - active_loan_count(session, title_id))
    if expected != title.available_copies:
        logger.warning(
            f"Title {title_id} had {title.available_copies} available copies, "
            f"recounted to {expected}")
        session.execute(
            update(Title)
            .where(Title.id == title_id)
            .values(available_copies=expected, version=Title.version + 1,
                    updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        title = _reload(session, title_id)
    return title
