#!/usr/bin/env python

"""
    Catalog and member maintenance for Pustak.

    Copy counts are never written here directly: new titles start with
    every copy on the shelf and capacity edits go through the ledger.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
from typing import List
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, or_, func
from pustak.core import ledger
from pustak.core.db import storage_errors
from pustak.core.events import record_event, record_notification
from pustak.core.exceptions import (
    ValidationError,
    ConflictError,
    TitleNotFoundError,
    MemberNotFoundError,
    StaleTitleError,
    TitleHasActiveLoansError,
)
from pustak.core.legacy_hindi import contains_devanagari, unicode_to_krutidev_approx
from pustak.core.models import (
    Title, Member, MemberCategory, Loan, EventType, NotificationType,
)
from pustak.core.utils import utcnow, blank_to_none
from pustak.configs import DEFAULT_MEMBER_CATEGORY
from pustak.schemas.title import TitleIn, TitleUpdate
from pustak.schemas.member import MemberIn

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50
DESCRIPTIVE_FIELDS = (
    'title', 'author', 'isbn', 'category', 'publisher', 'year_published',
    'shelf_location', 'description',
)


def _validated(schema, data):
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = '.'.join(str(p) for p in first['loc'])
        raise ValidationError(f"{field}: {first['msg']}") from e

def _isbn_owner(session, isbn, exclude_id=None):
    if not isbn:
        return None
    query = select(Title.id).where(Title.isbn == isbn)
    if exclude_id is not None:
        query = query.where(Title.id != exclude_id)
    return session.execute(query).scalar_one_or_none()

def get_title(session, title_id) -> Title:
    title = session.get(Title, title_id, populate_existing=True)
    if title is None:
        raise TitleNotFoundError(f"Title {title_id} not found.")
    return title

def add_title(session, data) -> Title:
    """Adds a title with all of its copies available."""
    data = _validated(TitleIn, data)
    fields = {f: blank_to_none(getattr(data, f)) for f in DESCRIPTIVE_FIELDS}
    if not fields['title'] or not fields['author']:
        raise ValidationError("Title and author are required.")

    with storage_errors(session, "add title"):
        if owner := _isbn_owner(session, fields['isbn']):
            raise ConflictError(f"ISBN {fields['isbn']} already belongs to title {owner}.")
        title = Title(**fields, total_copies=data.total_copies,
                      available_copies=data.total_copies, version=1)
        session.add(title)
        session.flush()
        record_event(session, EventType.BOOK_ADDED,
                     title=f"New book: {title.title}",
                     description=f'"{title.title}" by {title.author}',
                     related_id=title.id, related_type='book')
        record_notification(
            session, NotificationType.NEW_BOOK,
            title=f"New Book Added: {title.title}",
            message=f'"{title.title}" by {title.author} has been added to the library.',
            related_id=title.id, related_type='book')
        session.commit()
    logger.info(f"Added title {title.id} with {title.total_copies} copies")
    return title

def update_title(session, title_id, changes) -> Title:
    """Applies the fields set in `changes`. A new `total_copies` goes
    through the ledger so issued copies stay issued. With
    `expected_version` the edit is refused with StaleTitleError if the
    title changed since the caller read it."""
    changes = _validated(TitleUpdate, changes)
    provided = changes.model_dump(exclude_unset=True)
    expected_version = provided.pop('expected_version', None)
    new_total = provided.pop('total_copies', None)

    with storage_errors(session, f"update title {title_id}"):
        title = get_title(session, title_id)
        if expected_version is not None and title.version != expected_version:
            raise StaleTitleError(
                f"Title {title_id} is at version {title.version}, not {expected_version}.")

        for field in ('title', 'author'):
            if field in provided and not blank_to_none(provided[field]):
                raise ValidationError(f"{field.capitalize()} cannot be empty.")
        if 'isbn' in provided:
            provided['isbn'] = blank_to_none(provided['isbn'])
            if owner := _isbn_owner(session, provided['isbn'], exclude_id=title_id):
                raise ConflictError(f"ISBN {provided['isbn']} already belongs to title {owner}.")

        if new_total is not None and new_total != title.total_copies:
            title = ledger.resize(session, title_id, new_total, expected_version=expected_version)
        for field, value in provided.items():
            setattr(title, field, value)
        if provided:
            title.updated_at = utcnow()
        session.commit()
    return title

def delete_title(session, title_id):
    """Deletes a title and its loan history; refused while copies are out."""
    with storage_errors(session, f"delete title {title_id}"):
        title = get_title(session, title_id)
        if ledger.active_loan_count(session, title_id):
            raise TitleHasActiveLoansError(
                f"Title {title_id} has copies on loan and cannot be deleted.")
        session.delete(title)
        session.commit()
    logger.info(f"Deleted title {title_id}")

def search_titles(session, query: str = None, offset: int = 0,
                  limit: int = SEARCH_LIMIT) -> List[Title]:
    """Substring search over title, author and ISBN. A Devanagari query
    also matches titles still stored in KrutiDev encoding."""
    statement = select(Title)
    term = blank_to_none(query)
    if term:
        terms = [term]
        if contains_devanagari(term):
            terms.append(unicode_to_krutidev_approx(term))
        statement = statement.where(or_(*(
            or_(Title.title.contains(t, autoescape=True),
                Title.author.contains(t, autoescape=True),
                Title.isbn.contains(t, autoescape=True))
            for t in terms
        )))
    return session.execute(
        statement.order_by(Title.title, Title.id).offset(offset).limit(limit)
        .execution_options(populate_existing=True)
    ).scalars().all()

def get_member(session, member_id) -> Member:
    member = session.get(Member, member_id, populate_existing=True)
    if member is None:
        raise MemberNotFoundError(f"Member {member_id} not found.")
    return member

def register_member(session, data) -> Member:
    data = _validated(MemberIn, data)
    name = blank_to_none(data.name)
    if not name:
        raise ValidationError("Member name is required.")
    category = (blank_to_none(data.category) or DEFAULT_MEMBER_CATEGORY).lower()

    with storage_errors(session, "register member"):
        if session.get(MemberCategory, category) is None:
            raise ValidationError(f"Unknown member category '{category}'.")
        email = str(data.email).lower() if data.email else None
        if email and session.execute(
                select(Member.id).where(func.lower(Member.email) == email)).first():
            raise ConflictError(f"A member with email {email} already exists.")
        member = Member(name=name, email=email, phone=blank_to_none(data.phone),
                        category=category, is_active=True)
        session.add(member)
        session.flush()
        record_event(session, EventType.MEMBER_ADDED,
                     title=f"New member: {member.name}",
                     description=f"{member.name} registered",
                     related_id=member.id, related_type='member')
        session.commit()
    logger.info(f"Registered member {member.id} ({category})")
    return member

def _set_active(session, member_id, active: bool) -> Member:
    with storage_errors(session, f"update member {member_id}"):
        member = get_member(session, member_id)
        member.is_active = active
        session.commit()
    return member

def deactivate_member(session, member_id) -> Member:
    return _set_active(session, member_id, False)

def activate_member(session, member_id) -> Member:
    return _set_active(session, member_id, True)

def remove_member(session, member_id) -> bool:
    """Deletes a member without loan history; one with history is only
    deactivated. Returns True when the member was deleted."""
    with storage_errors(session, f"remove member {member_id}"):
        member = get_member(session, member_id)
        has_loans = session.execute(
            select(Loan.id).where(Loan.member_id == member_id).limit(1)).first()
        if has_loans:
            member.is_active = False
            session.commit()
            logger.info(f"Member {member_id} has loan history, deactivated instead of deleted")
            return False
        session.delete(member)
        session.commit()
    return True
