#!/usr/bin/env python

"""
    Configurations for Pustak

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import os


# Determine environment
TESTING = os.getenv("TESTING", "false").lower() == "true"

# API server configuration
HOST = os.environ.get('PUSTAK_HOST', 'localhost')
PORT = int(os.environ.get('PUSTAK_PORT', 8080))
WORKERS = int(os.environ.get('PUSTAK_WORKERS', 1))
DEBUG = bool(int(os.environ.get('PUSTAK_DEBUG', 0)))
LOG_LEVEL = os.environ.get('PUSTAK_LOG_LEVEL', 'info')
CORS_ORIGINS = [
    o.strip() for o in os.environ.get('PUSTAK_CORS_ORIGINS', '').split(',')
    if o.strip()
]

OPTIONS = {
    'host': HOST,
    'port': PORT,
    'log_level': LOG_LEVEL,
    'reload': DEBUG,
    'workers': WORKERS,
}

DB_CONFIG = {
    'user': os.environ.get('DB_USER', 'postgres'),
    'password': os.environ.get('DB_PASSWORD'),
    'host': os.environ.get('DB_HOST', 'localhost'),
    'port': int(os.environ.get('DB_PORT', '5432')),
    'dbname': os.environ.get('DB_NAME', 'pustak'),
}

# Database configuration
DB_URI = (
    "sqlite:///:memory:" if TESTING else
    os.environ.get('PUSTAK_DB_URI') or
    'postgresql+psycopg2://{user}:{password}@{host}:{port}/{dbname}'.format(**DB_CONFIG)
)

# Bulk import
IMPORT_CHUNK_SIZE = int(os.environ.get('PUSTAK_IMPORT_CHUNK_SIZE', 500))
IMPORT_MAX_ERRORS = int(os.environ.get('PUSTAK_IMPORT_MAX_ERRORS', 100))
IMPORT_MAX_BYTES = int(os.environ.get('PUSTAK_IMPORT_MAX_BYTES', 100 * 1024 * 1024))
IMPORT_TIMEOUT = float(os.environ.get('PUSTAK_IMPORT_TIMEOUT', 0)) or None

# Circulation
DEFAULT_MAX_BOOKS = int(os.environ.get('PUSTAK_DEFAULT_MAX_BOOKS', 3))
DEFAULT_LOAN_PERIOD_DAYS = int(os.environ.get('PUSTAK_DEFAULT_LOAN_PERIOD_DAYS', 14))
DUE_SOON_DAYS = int(os.environ.get('PUSTAK_DUE_SOON_DAYS', 2))
LEDGER_RETRIES = int(os.environ.get('PUSTAK_LEDGER_RETRIES', 3))

MEMBER_CATEGORIES = {
    # name: (max_books, loan_period_days)
    'guest': (3, 14),
    'student': (3, 14),
    'staff': (5, 21),
    'faculty': (10, 30),
}
DEFAULT_MEMBER_CATEGORY = 'guest'

# Activity feed
ACTIVITY_LIMIT = int(os.environ.get('PUSTAK_ACTIVITY_LIMIT', 25))
NOTIFICATION_LIMIT = int(os.environ.get('PUSTAK_NOTIFICATION_LIMIT', 50))

__all__ = [
    'HOST', 'PORT', 'DEBUG', 'OPTIONS', 'DB_URI', 'DB_CONFIG', 'TESTING',
    'IMPORT_CHUNK_SIZE', 'IMPORT_MAX_ERRORS', 'DUE_SOON_DAYS',
]
