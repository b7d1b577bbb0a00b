from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime
from pustak.schemas import enum_value

class ActivityEvent(BaseModel):
    type: str
    related_id: Optional[int] = None
    related_type: Optional[str] = None
    occurred_at: datetime
    title: Optional[str] = None
    description: Optional[str] = None

    _type = field_validator("type", mode="before")(enum_value)

    class Config:
        from_attributes = True
