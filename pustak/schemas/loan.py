from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import date, datetime
from pustak.schemas import enum_value

class IssueRequest(BaseModel):
    title_id: int
    member_id: int
    due_date: Optional[date] = None

class Loan(BaseModel):
    id: int
    title_id: int
    member_id: int
    issued_at: datetime
    issue_date: date
    due_date: date
    returned_at: Optional[datetime] = None
    status: str

    _status = field_validator("status", mode="before")(enum_value)

    class Config:
        from_attributes = True
