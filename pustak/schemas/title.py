#!/usr/bin/env python
"""
    Title Schema for Pustak,
    including the definition of the Title model and its attributes.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from pustak.schemas import enum_value

class TitleIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    isbn: Optional[str] = Field(None, max_length=32)
    category: Optional[str] = None
    publisher: Optional[str] = None
    year_published: Optional[int] = None
    shelf_location: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    total_copies: int = Field(default=1, ge=0)

class TitleUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    author: Optional[str] = Field(None, min_length=1, max_length=255)
    isbn: Optional[str] = Field(None, max_length=32)
    category: Optional[str] = None
    publisher: Optional[str] = None
    year_published: Optional[int] = None
    shelf_location: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    total_copies: Optional[int] = Field(None, ge=0)
    expected_version: Optional[int] = None

class Title(BaseModel):
    id: int
    isbn: Optional[str] = None
    title: str
    author: str
    category: Optional[str] = None
    publisher: Optional[str] = None
    year_published: Optional[int] = None
    shelf_location: Optional[str] = None
    total_copies: int
    available_copies: int
    status: str
    version: int
    added_at: Optional[datetime] = None

    _status = field_validator("status", mode="before")(enum_value)

    class Config:
        from_attributes = True
