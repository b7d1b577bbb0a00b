#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
    tests.conftest
    ~~~~~~~~~~~~~~

    Shared fixtures: a fresh in-memory SQLite catalog per test.

    :copyright: (c) 2025 by Authors.
    :license: see LICENSE for more details.
"""

import datetime
import pytest
from pustak.core import db, catalog
from pustak.schemas.title import TitleIn
from pustak.schemas.member import MemberIn

TODAY = datetime.date(2025, 3, 10)

@pytest.fixture
def engine():
    engine = db.make_engine("sqlite:///:memory:")
    yield engine
    db.Base.metadata.drop_all(engine)
    engine.dispose()

@pytest.fixture
def session_factory(engine):
    return db.init(engine)

@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def make_title(db_session):
    def make(title="Godaan", author="Premchand", copies=3, **fields):
        return catalog.add_title(
            db_session, TitleIn(title=title, author=author, total_copies=copies, **fields))
    return make

@pytest.fixture
def make_member(db_session):
    counter = {'n': 0}
    def make(name=None, category="guest"):
        counter['n'] += 1
        return catalog.register_member(
            db_session, MemberIn(name=name or f"Member {counter['n']}", category=category))
    return make
