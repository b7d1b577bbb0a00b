from pydantic import BaseModel

class DashboardStats(BaseModel):
    total_titles: int = 0
    total_copies: int = 0
    issued_copies: int = 0
    available_copies: int = 0
    overdue_loans: int = 0
    active_members: int = 0
    total_members: int = 0
