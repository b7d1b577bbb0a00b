from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from pustak.schemas import enum_value

class Notification(BaseModel):
    id: Optional[int] = None
    type: str = Field(..., min_length=1, max_length=32)
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    loan_id: Optional[int] = None
    related_id: Optional[int] = None
    related_type: Optional[str] = None
    is_read: bool = Field(default=False)
    created_at: Optional[datetime] = None

    _type = field_validator("type", mode="before")(enum_value)

    class Config:
        from_attributes = True
