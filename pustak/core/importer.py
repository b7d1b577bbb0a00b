#!/usr/bin/env python

"""
    Bulk import of titles from CSV and XLSX spreadsheets.

    Rows are streamed in chunks of `IMPORT_CHUNK_SIZE`. Each chunk is
    matched against the catalog with batched lookups, written with one
    bulk UPDATE and one multi-row INSERT, and committed on its own, so a
    failing row or chunk never loses the rest of the file. Progress that
    was committed stays committed when an import is cancelled or times
    out; the report says so with ``cancelled=True``.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import csv
import io
import time
import zipfile
import logging
from itertools import zip_longest
from typing import Callable, Dict, Iterator, Optional, Tuple

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import insert, update
from sqlalchemy.exc import SQLAlchemyError

from pustak.configs import IMPORT_CHUNK_SIZE, IMPORT_MAX_ERRORS, IMPORT_MAX_BYTES
from pustak.core import matcher
from pustak.core.db import is_disconnect
from pustak.core.events import record_event
from pustak.core.exceptions import (
    ValidationError,
    TransientStorageError,
    StorageUnavailableError,
)
from pustak.core.legacy_hindi import looks_like_legacy_hindi
from pustak.core.models import Title, EventType
from pustak.core.utils import blank_to_none, parse_int, chunked, utcnow
from pustak.schemas.imports import (
    ColumnSynonyms, ImportRow, ImportReport, RowError, normalize_header
)

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPES = {'csv', 'text/csv', 'application/csv', 'text/plain'}
XLSX_CONTENT_TYPES = {
    'xlsx',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}

MISSING_TITLE_OR_AUTHOR = "Missing required Title or Author"

# Share of NUL bytes in the sniffed prefix above which BOM-less text is UTF-16LE
NUL_DENSITY = 0.10
SNIFF_BYTES = 2000

DEFAULT_SYNONYMS = ColumnSynonyms()


def decode_text(data: bytes) -> str:
    """Decodes spreadsheet text exports, which are not reliably UTF-8."""
    if data.startswith(b'\xef\xbb\xbf'):
        return data[3:].decode('utf-8', errors='replace')
    if data.startswith(b'\xff\xfe'):
        return data[2:].decode('utf-16-le', errors='replace')
    if data.startswith(b'\xfe\xff'):
        return data[2:].decode('utf-16-be', errors='replace')
    head = data[:SNIFF_BYTES]
    if head and head.count(0) / len(head) > NUL_DENSITY:
        return data.decode('utf-16-le', errors='replace')
    return data.decode('utf-8', errors='replace')

def _content_kind(content_type: str) -> str:
    kind = (content_type or '').split(';')[0].strip().lower().lstrip('.')
    if kind in CSV_CONTENT_TYPES:
        return 'csv'
    if kind in XLSX_CONTENT_TYPES:
        return 'xlsx'
    raise ValidationError(f"Unsupported content type '{content_type}', expected CSV or XLSX.")

def _is_blank(values) -> bool:
    return all(blank_to_none(v) is None for v in values)

def _iter_csv(data: bytes) -> Iterator[Tuple[int, Dict]]:
    reader = csv.DictReader(io.StringIO(decode_text(data), newline=''))
    # records, not physical lines: a quoted cell may span several lines
    number = 1
    for record in reader:
        # cells beyond the header land under the None key
        record = {k: v for k, v in record.items() if k is not None}
        if _is_blank(record.values()):
            continue
        number += 1
        yield number, record

def _iter_xlsx(data: bytes) -> Iterator[Tuple[int, Dict]]:
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise ValidationError(f"Not a readable XLSX workbook: {e}") from e
    try:
        if not workbook.worksheets:
            raise ValidationError("No worksheet found in file")
        rows = workbook.worksheets[0].iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return
        names = [str(h).strip() if h is not None else '' for h in header]
        for number, values in enumerate(rows, start=2):
            if values is None or _is_blank(values):
                continue
            # rows of workbooks without a dimension record stop at their last filled cell
            yield number, {name: value for name, value in zip_longest(names, values) if name}
    finally:
        workbook.close()

def iter_rows(data: bytes, content_type: str) -> Iterator[Tuple[int, Dict]]:
    """Yields ``(row_number, {header: value})`` for every non-blank data
    row. The header is row 1; workbook rows keep their sheet row number,
    CSV records are counted without the blank ones. Every dict carries
    every header, with None for missing cells."""
    if data is None or len(data) == 0:
        raise ValidationError("No file uploaded")
    if len(data) > IMPORT_MAX_BYTES:
        raise ValidationError(f"File is larger than {IMPORT_MAX_BYTES} bytes")
    if _content_kind(content_type) == 'csv':
        return _iter_csv(data)
    return _iter_xlsx(data)

def resolve_columns(headers, synonyms: ColumnSynonyms = DEFAULT_SYNONYMS) -> Dict[str, str]:
    """Maps each logical field to the header of its first synonym present."""
    by_normalized = {}
    for header in headers:
        by_normalized.setdefault(normalize_header(header), header)
    columns = {}
    for field, names in synonyms.normalized().items():
        for name in names:
            if name in by_normalized:
                columns[field] = by_normalized[name]
                break
    return columns

def _text(record, columns, field):
    header = columns.get(field)
    if header is None:
        return None
    value = record.get(header)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return blank_to_none(None if value is None else str(value))

def parse_row(number: int, record: Dict, columns: Dict[str, str]) -> Optional[ImportRow]:
    """An ImportRow, or None when title or author is missing."""
    title = _text(record, columns, 'title')
    author = _text(record, columns, 'author')
    if not title or not author:
        return None
    copies = parse_int(_text(record, columns, 'copies'))
    return ImportRow(
        row=number,
        title=title,
        author=author,
        isbn=_text(record, columns, 'isbn'),
        shelf_location=_text(record, columns, 'shelf_location'),
        category=_text(record, columns, 'category'),
        description=_text(record, columns, 'description'),
        publisher=_text(record, columns, 'publisher'),
        year_published=parse_int(_text(record, columns, 'year_published')),
        copies=copies if copies and copies > 0 else 1,
    )


def _merged(first: ImportRow, other: ImportRow) -> ImportRow:
    """`first` with the non-blank descriptive fields of `other` laid over it."""
    merged = first.model_dump()
    for field, value in other.descriptive_fields().items():
        if value is not None:
            merged[field] = value
    return ImportRow(**merged)

def _reason(error) -> str:
    return str(getattr(error, "orig", None) or error)


class _Candidate:
    """One distinct title within a chunk, and every row that named it."""

    def __init__(self, row: ImportRow):
        self.row = row
        self.rows = [row.row]

    def merge(self, other: ImportRow):
        self.row = _merged(self.row, other)
        self.rows.append(other.row)


def _dedupe(rows) -> list:
    candidates, by_isbn, by_pair = [], {}, {}
    for row in rows:
        candidate = by_isbn.get(row.isbn) if row.isbn else None
        candidate = candidate or by_pair.get(row.pair)
        if candidate is None:
            candidate = _Candidate(row)
            candidates.append(candidate)
        else:
            candidate.merge(row)
        if candidate.row.isbn:
            by_isbn[candidate.row.isbn] = candidate
        by_pair[candidate.row.pair] = candidate
    return candidates

def _updated_values(title, row: ImportRow) -> dict:
    values = {'id': title.id, 'updated_at': utcnow()}
    for field, value in row.descriptive_fields().items():
        values[field] = value if value is not None else getattr(title, field)
    return values

def _insert_values(row: ImportRow, now) -> dict:
    values = row.descriptive_fields()
    values.update(total_copies=row.copies, available_copies=row.copies,
                  version=1, added_at=now, updated_at=now)
    return values


class TitleImporter:
    """Runs one import; holds the report while chunks are processed."""

    def __init__(self, session, synonyms: ColumnSynonyms = None,
                 chunk_size: int = IMPORT_CHUNK_SIZE, max_errors: int = IMPORT_MAX_ERRORS,
                 should_cancel: Callable[[], bool] = None, timeout: float = None):
        self.session = session
        self.synonyms = synonyms or DEFAULT_SYNONYMS
        self.chunk_size = max(int(chunk_size), 1)
        self.max_errors = max_errors
        self.should_cancel = should_cancel
        self.deadline = time.monotonic() + timeout if timeout else None
        self.report = ImportReport()

    def error(self, message, row=None, chunk=None):
        self.report.total_errors += 1
        if len(self.report.errors) < self.max_errors:
            self.report.errors.append(RowError(row=row, chunk=chunk, error=message))

    def cancelled(self) -> bool:
        if self.should_cancel is not None and self.should_cancel():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def run(self, records) -> ImportReport:
        columns = None
        for number, chunk in enumerate(chunked(records, self.chunk_size), start=1):
            if self.cancelled():
                logger.warning(f"Import cancelled before chunk {number}")
                self.report.cancelled = True
                break
            if columns is None:
                columns = resolve_columns(chunk[0][1].keys(), self.synonyms)
                logger.info(f"Import columns resolved: {columns}")
            self.process_chunk(number, self.parse(chunk, columns))
        return self.report

    def parse(self, chunk, columns) -> list:
        rows = []
        for number, record in chunk:
            self.report.total_rows += 1
            try:
                row = parse_row(number, record, columns)
            except PydanticValidationError as e:
                self.report.skipped += 1
                self.error(f"Invalid row: {e.errors()[0]['msg']}", row=number)
                continue
            if row is None:
                self.report.skipped += 1
                self.error(MISSING_TITLE_OR_AUTHOR, row=number)
                continue
            if looks_like_legacy_hindi(row.title) or looks_like_legacy_hindi(row.author):
                self.report.legacy_hindi_rows += 1
            rows.append(row)
        return rows

    def process_chunk(self, number: int, rows: list):
        if not rows:
            return
        candidates = _dedupe(rows)
        existing = self.lookup(number, candidates, len(rows))
        if existing is None:
            return

        updates, inserts = {}, []
        for candidate in candidates:
            title = existing.resolve(candidate.row)
            if title is None:
                inserts.append(candidate)
            else:
                updates.setdefault(title.id, (title, []))[1].append(candidate)

        self.write_updates(number, list(updates.values()))
        self.write_inserts(number, inserts)

    def lookup(self, number, candidates, row_count):
        rows = [c.row for c in candidates]
        try:
            return matcher.find_existing(self.session, rows)
        except TransientStorageError:
            logger.warning(f"Batched lookup failed for chunk {number}, retrying row by row")
        try:
            return matcher.find_existing_row_by_row(self.session, rows)
        except TransientStorageError as e:
            logger.error(f"Giving up on chunk {number}: {e}")
            self.report.failed += row_count
            self.error(f"Lookup failed, chunk skipped: {e}", chunk=number)
            return None

    def _storage_failure(self, error):
        self.session.rollback()
        if is_disconnect(error):
            raise StorageUnavailableError(f"Database unavailable: {error}") from error

    def write_updates(self, number, matched):
        """`matched` is a list of ``(title, [candidates])``."""
        if not matched:
            return
        values = []
        for title, candidates in matched:
            row = candidates[0].row
            for candidate in candidates[1:]:
                row = _merged(row, candidate.row)
            values.append(_updated_values(title, row))
        try:
            self.session.execute(update(Title), values)
            self.session.commit()
        except SQLAlchemyError as e:
            self._storage_failure(e)
            logger.warning(f"Bulk update failed for chunk {number}, updating row by row: {e}")
            self.write_updates_one_by_one(matched, values)
            return
        # loaded titles still hold the values read before the bulk UPDATE
        for title, _ in matched:
            self.session.expire(title)
        self.report.updated += sum(len(c.rows) for _, cs in matched for c in cs)

    def write_updates_one_by_one(self, matched, values):
        for (title, candidates), row_values in zip(matched, values):
            source_rows = [r for c in candidates for r in c.rows]
            try:
                self.session.execute(update(Title), [row_values])
                self.session.commit()
                self.session.expire(title)
            except SQLAlchemyError as e:
                self._storage_failure(e)
                self.report.failed += len(source_rows)
                self.error(_reason(e), row=source_rows[0])
                continue
            self.report.updated += len(source_rows)

    def write_inserts(self, number, candidates):
        if not candidates:
            return
        try:
            inserted = self._insert(candidates)
            self.session.commit()
        except SQLAlchemyError as e:
            self._storage_failure(e)
            logger.warning(f"Batch insert failed for chunk {number}, inserting row by row: {e}")
            self.write_inserts_one_by_one(candidates)
            return
        self._count_inserted(inserted)

    def write_inserts_one_by_one(self, candidates):
        for candidate in candidates:
            try:
                inserted = self._insert([candidate])
                self.session.commit()
            except SQLAlchemyError as e:
                self._storage_failure(e)
                self.report.failed += len(candidate.rows)
                self.error(_reason(e), row=candidate.rows[0])
                continue
            self._count_inserted(inserted)

    def _count_inserted(self, candidates):
        self.report.inserted += len(candidates)
        # repeats of a new title within the chunk count as updates to it
        self.report.updated += sum(len(c.rows) - 1 for c in candidates)

    def _insert(self, candidates):
        """One multi-row INSERT plus a `book_added` event per new title."""
        now = utcnow()
        result = self.session.execute(
            insert(Title).returning(Title.id, Title.title, Title.author),
            [_insert_values(c.row, now) for c in candidates],
        )
        for title_id, title, author in result.all():
            record_event(self.session, EventType.BOOK_ADDED,
                         title=f"New book: {title}",
                         description=f'"{title}" by {author}',
                         related_id=title_id, related_type='book',
                         occurred_at=now)
        return candidates


def import_titles(session, data: bytes, content_type: str,
                  synonyms: ColumnSynonyms = None,
                  chunk_size: int = IMPORT_CHUNK_SIZE,
                  max_errors: int = IMPORT_MAX_ERRORS,
                  should_cancel: Callable[[], bool] = None,
                  timeout: float = None) -> ImportReport:
    """Imports titles from a CSV or XLSX file.

    Args:
        session: database session; every chunk is committed on it.
        data: the raw file bytes.
        content_type: ``csv``/``text/csv`` or ``xlsx``/the XLSX MIME type.
        synonyms: accepted header names per field.
        chunk_size: rows matched and written together.
        max_errors: errors kept in the report; all are counted.
        should_cancel: polled between chunks; True stops the import.
        timeout: seconds after which no further chunk is started.

    Returns:
        ImportReport with the row counts and the bounded error list.

    Raises:
        ValidationError: unsupported content type or unreadable file.
        StorageUnavailableError: the database connection was lost.
    """
    started = time.monotonic()
    importer = TitleImporter(session, synonyms=synonyms, chunk_size=chunk_size,
                             max_errors=max_errors, should_cancel=should_cancel,
                             timeout=timeout)
    report = importer.run(iter_rows(data, content_type))
    logger.info(
        f"Imported {report.total_rows} rows in {time.monotonic() - started:.2f}s: "
        f"{report.inserted} inserted, {report.updated} updated, {report.skipped} skipped, "
        f"{report.failed} failed, {report.total_errors} errors"
        + (" (cancelled)" if report.cancelled else ""))
    return report
