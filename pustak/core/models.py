#!/usr/bin/env python

"""
    Models for Pustak,
    including the definition of the titles, members, loans, activity
    and notification tables.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import enum
from sqlalchemy import (
    Column, String, Text, Boolean, Integer, BigInteger, Date, DateTime,
    ForeignKey, CheckConstraint, UniqueConstraint, Index, case,
    Enum as SQLAlchemyEnum
)
from sqlalchemy.orm import relationship
from sqlalchemy.ext.hybrid import hybrid_property
from pustak.core.db import Base
from pustak.core.utils import utcnow, today
from pustak.configs import (
    MEMBER_CATEGORIES, DEFAULT_MAX_BOOKS, DEFAULT_LOAN_PERIOD_DAYS
)


class TitleStatus(str, enum.Enum):
    AVAILABLE = "available"
    PARTIALLY_ISSUED = "partially_issued"
    FULLY_ISSUED = "fully_issued"

    @classmethod
    def derive(cls, available_copies, total_copies):
        """Status from copy counts. A title with no lendable copy left,
        including one with zero copies, is fully issued."""
        available = available_copies or 0
        if available <= 0:
            return cls.FULLY_ISSUED
        if available < (total_copies or 0):
            return cls.PARTIALLY_ISSUED
        return cls.AVAILABLE

class LoanStatus(str, enum.Enum):
    ISSUED = "issued"
    OVERDUE = "overdue"
    RETURNED = "returned"

ACTIVE_LOAN_STATUSES = (LoanStatus.ISSUED, LoanStatus.OVERDUE)

class EventType(str, enum.Enum):
    ISSUE = "issue"
    RETURN = "return"
    BOOK_ADDED = "book_added"
    MEMBER_ADDED = "member_added"

class NotificationType(str, enum.Enum):
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    NEW_BOOK = "new_book"
    SYSTEM = "system"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Title(Base):
    __tablename__ = 'titles'

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    isbn = Column(String(32), unique=True, nullable=True)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=False)
    category = Column(String(100))
    publisher = Column(String(255))
    year_published = Column(Integer)
    shelf_location = Column(String(50))
    description = Column(Text)
    total_copies = Column(Integer, default=1, nullable=False)
    available_copies = Column(Integer, default=1, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    added_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('total_copies >= 0', name='ck_titles_total_nonneg'),
        CheckConstraint('available_copies >= 0', name='ck_titles_available_nonneg'),
        CheckConstraint('available_copies <= total_copies', name='ck_titles_available_le_total'),
        Index('ix_titles_title_author', 'title', 'author'),
    )

    loans = relationship('Loan', back_populates='title', cascade='all, delete-orphan',
                         passive_deletes=True)

    @hybrid_property
    def status(self):
        """Derived from the copy counts on every read, never stored."""
        return TitleStatus.derive(self.available_copies, self.total_copies)

    @status.expression
    def status(cls):
        return case(
            (cls.available_copies <= 0, TitleStatus.FULLY_ISSUED.value),
            (cls.available_copies < cls.total_copies, TitleStatus.PARTIALLY_ISSUED.value),
            else_=TitleStatus.AVAILABLE.value,
        )

    @property
    def issued_copies(self):
        return (self.total_copies or 0) - (self.available_copies or 0)

    @classmethod
    def exists(cls, session, title_id):
        return session.get(cls, title_id)

    def __repr__(self):
        return f"<Title {self.id} {self.title!r} {self.available_copies}/{self.total_copies}>"


class MemberCategory(Base):
    __tablename__ = 'member_categories'

    name = Column(String(50), primary_key=True)
    max_books = Column(Integer, default=DEFAULT_MAX_BOOKS, nullable=False)
    loan_period_days = Column(Integer, default=DEFAULT_LOAN_PERIOD_DAYS, nullable=False)

    @classmethod
    def seed(cls, session):
        existing = {name for (name,) in session.query(cls.name).all()}
        for name, (max_books, period) in MEMBER_CATEGORIES.items():
            if name not in existing:
                session.add(cls(name=name, max_books=max_books, loan_period_days=period))
        session.commit()


class Member(Base):
    __tablename__ = 'members'

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(32))
    category = Column(String(50), ForeignKey('member_categories.name'), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    category_rule = relationship('MemberCategory', lazy='joined')
    loans = relationship('Loan', back_populates='member', passive_deletes=True)

    @property
    def max_books(self):
        return self.category_rule.max_books if self.category_rule else DEFAULT_MAX_BOOKS

    @property
    def loan_period_days(self):
        if self.category_rule:
            return self.category_rule.loan_period_days
        return DEFAULT_LOAN_PERIOD_DAYS


class Loan(Base):
    __tablename__ = 'loans'

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    title_id = Column(BigInteger().with_variant(Integer, "sqlite"),
                      ForeignKey('titles.id', ondelete='CASCADE'), nullable=False, index=True)
    member_id = Column(BigInteger().with_variant(Integer, "sqlite"),
                       ForeignKey('members.id', ondelete='CASCADE'), nullable=False, index=True)
    issued_at = Column(DateTime, default=utcnow, nullable=False)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    returned_at = Column(DateTime, nullable=True)
    status = Column(
        SQLAlchemyEnum(LoanStatus, native_enum=False, length=16, values_callable=_values),
        default=LoanStatus.ISSUED, nullable=False)
    notes = Column(Text)

    __table_args__ = (
        Index('ix_loans_status_due_date', 'status', 'due_date'),
    )

    title = relationship('Title', back_populates='loans')
    member = relationship('Member', back_populates='loans')

    @hybrid_property
    def is_active(self):
        return self.status != LoanStatus.RETURNED


class ActivityEvent(Base):
    __tablename__ = 'activity_events'

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    type = Column(
        SQLAlchemyEnum(EventType, native_enum=False, length=32, values_callable=_values),
        nullable=False, index=True)
    related_id = Column(BigInteger)
    related_type = Column(String(50))
    occurred_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    title = Column(String(255))
    description = Column(Text)


class ViewerSetting(Base):
    __tablename__ = 'viewer_settings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    viewer_id = Column(String(64), nullable=False)
    name = Column(String(100), nullable=False)
    hidden_before = Column(DateTime)
    __table_args__ = (UniqueConstraint('viewer_id', 'name', name='unique_viewer_setting'),)


class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(
        SQLAlchemyEnum(NotificationType, native_enum=False, length=32, values_callable=_values),
        nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    loan_id = Column(BigInteger().with_variant(Integer, "sqlite"),
                     ForeignKey('loans.id', ondelete='CASCADE'), nullable=True)
    related_id = Column(BigInteger)
    related_type = Column(String(50))
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    created_on = Column(Date, default=today, nullable=False)

    __table_args__ = (
        Index('ix_notifications_loan_type_day', 'loan_id', 'type', 'created_on'),
    )
