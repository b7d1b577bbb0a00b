#!/usr/bin/env python

"""
    Record matching for imports: finds the catalog entry an incoming row
    refers to, by ISBN first and by exact (title, author) otherwise.

    Lookups are batched per chunk of rows; `find_one` is the per-row
    fallback used when a batched lookup fails.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
from sqlalchemy import select, and_, or_
from pustak.core.db import storage_errors
from pustak.core.models import Title
from pustak.core.utils import chunked

logger = logging.getLogger(__name__)

# Keeps the OR-of-pairs expression well below database parser depth limits
PAIRS_PER_QUERY = 200


class ExistingTitles:
    """Titles already in the catalog, keyed the two ways a row can match."""

    def __init__(self, titles=()):
        self.by_isbn = {}
        self.by_pair = {}
        for title in titles:
            self.add(title)

    def add(self, title):
        if title.isbn:
            self.by_isbn[title.isbn] = title
        self.by_pair.setdefault((title.title, title.author), title)

    def resolve(self, row):
        if row.isbn and row.isbn in self.by_isbn:
            return self.by_isbn[row.isbn]
        return self.by_pair.get(row.pair)

    def __len__(self):
        return len({id(t) for t in self.by_isbn.values()} |
                   {id(t) for t in self.by_pair.values()})


def _select_titles():
    # Rows may already sit in the identity map with counts from an earlier chunk
    return select(Title).execution_options(populate_existing=True)

def find_existing(session, rows) -> ExistingTitles:
    """One IN lookup by ISBN plus OR-of-pairs lookups by (title, author)
    for every row in `rows`.

    Raises TransientStorageError if a lookup fails.
    """
    isbns = sorted({row.isbn for row in rows if row.isbn})
    pairs = sorted({row.pair for row in rows})
    existing = ExistingTitles()

    with storage_errors(session, "look up existing titles"):
        if isbns:
            for title in session.execute(
                    _select_titles().where(Title.isbn.in_(isbns))).scalars():
                existing.add(title)

        for batch in chunked(pairs, PAIRS_PER_QUERY):
            condition = or_(*(and_(Title.title == t, Title.author == a) for t, a in batch))
            for title in session.execute(
                    _select_titles().where(condition).order_by(Title.id)).scalars():
                existing.add(title)

    logger.debug(f"Matched {len(existing)} existing titles for {len(rows)} rows")
    return existing

def find_one(session, row):
    """The title `row` refers to, or None."""
    with storage_errors(session, f"look up row {row.row}"):
        if row.isbn:
            title = session.execute(
                _select_titles().where(Title.isbn == row.isbn)).scalars().first()
            if title is not None:
                return title
        return session.execute(
            _select_titles()
            .where(Title.title == row.title, Title.author == row.author)
            .order_by(Title.id)
        ).scalars().first()

def find_existing_row_by_row(session, rows) -> ExistingTitles:
    """Same result as `find_existing`, one row at a time."""
    existing = ExistingTitles()
    for row in rows:
        title = find_one(session, row)
        if title is not None:
            existing.add(title)
    return existing
