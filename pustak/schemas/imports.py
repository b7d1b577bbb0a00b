#!/usr/bin/env python
"""
    Import Schemas for Pustak,
    the column synonym mapping, parsed rows and the import report.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import re
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, Field, model_validator

_HEADER_NOISE = re.compile(r'[\s_\-]+')

def normalize_header(name) -> str:
    """'Book Name', 'book_name' and 'BOOK-NAME' all become 'bookname'."""
    return _HEADER_NOISE.sub('', str(name or '')).lower()


class ColumnSynonyms(BaseModel):
    """Accepted spreadsheet headers per logical field, in priority order."""

    title: Tuple[str, ...] = ('title', 'book', 'bookname', 'name')
    author: Tuple[str, ...] = ('author', 'authorname')
    shelf_location: Tuple[str, ...] = (
        'rack', 'racknumber', 'rackno', 'racknum', 'racklocation',
        'shelf', 'shelflocation')
    isbn: Tuple[str, ...] = ('isbn', 'identifier')
    category: Tuple[str, ...] = ('category', 'categoryname', 'genre', 'type', 'subject')
    description: Tuple[str, ...] = ('description', 'desc', 'summary', 'about')
    publisher: Tuple[str, ...] = ('publisher', 'publishername', 'pub')
    year_published: Tuple[str, ...] = (
        'year', 'yearpublished', 'publishedyear', 'pubyear', 'publicationyear')
    copies: Tuple[str, ...] = (
        'copy', 'copies', 'totalcopies', 'quantity', 'qty', 'count',
        'noofcopies', 'numberofcopies')

    model_config = {"frozen": True}

    @model_validator(mode='after')
    def check_unambiguous(self):
        seen = {}
        for field, synonyms in self:
            if not synonyms:
                raise ValueError(f"no synonyms given for '{field}'")
            for synonym in synonyms:
                key = normalize_header(synonym)
                if key in seen and seen[key] != field:
                    raise ValueError(
                        f"'{synonym}' is claimed by both '{seen[key]}' and '{field}'")
                seen[key] = field
        return self

    def normalized(self) -> Dict[str, Tuple[str, ...]]:
        return {
            field: tuple(normalize_header(s) for s in synonyms)
            for field, synonyms in self
        }


class ImportRow(BaseModel):
    row: int
    title: str
    author: str
    isbn: Optional[str] = None
    shelf_location: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    publisher: Optional[str] = None
    year_published: Optional[int] = None
    copies: int = Field(default=1, ge=1)

    @property
    def pair(self):
        return (self.title, self.author)

    def descriptive_fields(self) -> dict:
        return self.model_dump(exclude={'row', 'copies'})


class RowError(BaseModel):
    row: Optional[int] = None
    chunk: Optional[int] = None
    error: str


class ImportReport(BaseModel):
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    total_rows: int = 0
    legacy_hindi_rows: int = 0
    errors: List[RowError] = []
    total_errors: int = 0
    cancelled: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "inserted": 4,
                "updated": 1,
                "skipped": 1,
                "failed": 0,
                "total_rows": 6,
                "legacy_hindi_rows": 1,
                "errors": [{"row": 4, "error": "Missing required Title or Author"}],
                "total_errors": 1,
                "cancelled": False,
            }
        }
