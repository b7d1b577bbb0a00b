#!/usr/bin/env python

"""
    Storage bootstrap for Pustak: engine and session factory creation
    plus the startup schema capability check.

    The engine and session factory belong to the process entry point;
    core operations only ever receive a Session.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
from contextlib import contextmanager
from sqlalchemy import create_engine, event, inspect
from sqlalchemy.exc import DBAPIError, DisconnectionError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from pustak.configs import DB_URI, DEBUG
from pustak.core.exceptions import (
    PustakError, SchemaMismatchError, StorageUnavailableError, TransientStorageError
)

logger = logging.getLogger(__name__)


class PustakBase:
    @classmethod
    def get_many(cls, session, offset=None, limit=None):
        return session.query(cls).offset(offset).limit(limit).all()

Base = declarative_base(cls=PustakBase)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

def make_engine(uri: str = DB_URI, **kwargs):
    engine_kwargs = {'echo': DEBUG}
    if uri.startswith('sqlite'):
        if ':memory:' in uri or uri in ('sqlite://', 'sqlite:///'):
            # One shared connection, otherwise every pool checkout gets its own empty db
            engine_kwargs['poolclass'] = StaticPool
        engine_kwargs['connect_args'] = {'check_same_thread': False}
    else:
        engine_kwargs['client_encoding'] = 'utf8'
        engine_kwargs['pool_pre_ping'] = True
    engine_kwargs.update(kwargs)
    engine = create_engine(uri, **engine_kwargs)
    if uri.startswith('sqlite'):
        event.listen(engine, 'connect', _enable_sqlite_foreign_keys)
    return engine

def make_session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False,
                        expire_on_commit=False)

def check_schema(engine):
    """Verifies once, at startup, that every table and column the models
    rely on exists in the connected database.

    Raises SchemaMismatchError listing everything that is missing.
    """
    from pustak.core import models  # noqa: F401 (registers tables)

    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())
    missing = []
    for table in Base.metadata.sorted_tables:
        if table.name not in existing_tables:
            missing.append(table.name)
            continue
        columns = {c['name'] for c in inspector.get_columns(table.name)}
        missing.extend(
            f"{table.name}.{column.name}"
            for column in table.columns if column.name not in columns
        )
    if missing:
        raise SchemaMismatchError(
            f"Database schema is missing: {', '.join(missing)}")
    return True

def init(engine=None, create=True):
    """Creates the tables (unless `create` is False), checks the schema,
    seeds member categories and returns a session factory."""
    from pustak.core import models

    engine = engine if engine is not None else make_engine()
    if create:
        Base.metadata.create_all(bind=engine)
    check_schema(engine)
    factory = make_session_factory(engine)
    with factory() as session:
        models.MemberCategory.seed(session)
    logger.info(f"Database ready at {engine.url.render_as_string(hide_password=True)}")
    return factory

def is_disconnect(error) -> bool:
    """True when `error` means the database connection itself is gone."""
    if isinstance(error, DisconnectionError):
        return True
    return isinstance(error, DBAPIError) and bool(error.connection_invalidated)

@contextmanager
def storage_errors(session, action: str):
    """Rolls `session` back when the block fails. Database errors are
    re-raised as StorageUnavailableError (connection lost) or
    TransientStorageError, domain errors as they are."""
    try:
        yield
    except PustakError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        if is_disconnect(e):
            logger.error(f"Database connection lost while trying to {action}: {e}")
            raise StorageUnavailableError(f"Database unavailable: {e}") from e
        logger.warning(f"Failed to {action}: {e}")
        raise TransientStorageError(f"Failed to {action}: {e}") from e
