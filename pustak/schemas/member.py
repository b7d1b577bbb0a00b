from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import datetime

class MemberIn(BaseModel):
    name: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    category: Optional[str] = None

class Member(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    category: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
