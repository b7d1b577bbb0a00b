#!/usr/bin/env python

"""
    Core module for Pustak: storage bootstrap, the catalog engine and
    circulation.

    Nothing here opens a database connection on import; the process
    entry point calls `db.init()` and passes sessions in.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

__all__ = [
    "db", "models", "exceptions", "legacy_hindi", "matcher", "importer",
    "ledger", "circulation", "events", "catalog", "stats",
]
