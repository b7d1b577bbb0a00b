#!/usr/bin/env python

"""
    API routes for Pustak,
    exposing imports, circulation, the activity feed, notifications and
    dashboard statistics.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import os
import logging
from functools import wraps
from typing import List, Optional
from fastapi import (
    APIRouter,
    Depends,
    File,
    Header,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from pustak import __version__ as VERSION
from pustak.configs import IMPORT_TIMEOUT, ACTIVITY_LIMIT, NOTIFICATION_LIMIT
from pustak.core import catalog, circulation, events, importer, stats
from pustak.core.exceptions import PustakError
from pustak.schemas.activity import ActivityEvent
from pustak.schemas.imports import ImportReport
from pustak.schemas.loan import IssueRequest, Loan
from pustak.schemas.member import MemberIn, Member
from pustak.schemas.notification import Notification
from pustak.schemas.stats import DashboardStats
from pustak.schemas.title import TitleIn, TitleUpdate, Title

logger = logging.getLogger(__name__)

router = APIRouter()

def get_session(request: Request):
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()

def handles_errors(func):
    """Turns domain errors into HTTP errors carrying their code."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PustakError as e:
            if e.http_status >= 500:
                logger.error(f"{func.__name__} failed: {e}")
            raise HTTPException(status_code=e.http_status,
                                detail={"code": e.code, "error": str(e)})
    return wrapper

def _import_content_type(file: UploadFile) -> str:
    extension = os.path.splitext(file.filename or '')[1].lower()
    if extension in ('.csv', '.xlsx'):
        return extension
    return file.content_type or ''


@router.get('/', status_code=status.HTTP_200_OK)
def home():
    return {"name": "pustak", "version": VERSION}

@router.post('/titles/import', response_model=ImportReport)
@handles_errors
def import_titles(file: UploadFile = File(..., description="CSV or XLSX file of titles"),
                  session=Depends(get_session)):
    data = file.file.read()
    logger.info(f"Importing {file.filename} ({len(data)} bytes)")
    return importer.import_titles(session, data, _import_content_type(file),
                                  timeout=IMPORT_TIMEOUT)

@router.get('/titles', response_model=List[Title])
@handles_errors
def search_titles(q: Optional[str] = None, offset: int = 0, limit: int = catalog.SEARCH_LIMIT,
                  session=Depends(get_session)):
    return catalog.search_titles(session, q, offset=offset, limit=limit)

@router.post('/titles', response_model=Title, status_code=status.HTTP_201_CREATED)
@handles_errors
def add_title(data: TitleIn, session=Depends(get_session)):
    return catalog.add_title(session, data)

@router.get('/titles/{title_id}', response_model=Title)
@handles_errors
def get_title(title_id: int, session=Depends(get_session)):
    return catalog.get_title(session, title_id)

@router.patch('/titles/{title_id}', response_model=Title)
@handles_errors
def update_title(title_id: int, changes: TitleUpdate, session=Depends(get_session)):
    return catalog.update_title(session, title_id, changes)

@router.delete('/titles/{title_id}', status_code=status.HTTP_204_NO_CONTENT)
@handles_errors
def delete_title(title_id: int, session=Depends(get_session)):
    catalog.delete_title(session, title_id)

@router.post('/members', response_model=Member, status_code=status.HTTP_201_CREATED)
@handles_errors
def register_member(data: MemberIn, session=Depends(get_session)):
    return catalog.register_member(session, data)

@router.get('/members/{member_id}', response_model=Member)
@handles_errors
def get_member(member_id: int, session=Depends(get_session)):
    return catalog.get_member(session, member_id)

@router.post('/members/{member_id}/deactivate', response_model=Member)
@handles_errors
def deactivate_member(member_id: int, session=Depends(get_session)):
    return catalog.deactivate_member(session, member_id)

@router.post('/members/{member_id}/activate', response_model=Member)
@handles_errors
def activate_member(member_id: int, session=Depends(get_session)):
    return catalog.activate_member(session, member_id)

@router.delete('/members/{member_id}')
@handles_errors
def remove_member(member_id: int, session=Depends(get_session)):
    deleted = catalog.remove_member(session, member_id)
    return {"deleted": deleted, "deactivated": not deleted}

@router.get('/members/{member_id}/loans', response_model=List[Loan])
@handles_errors
def member_history(member_id: int, session=Depends(get_session)):
    return circulation.member_history(session, member_id)

@router.post('/loans', response_model=Loan, status_code=status.HTTP_201_CREATED)
@handles_errors
def issue(request: IssueRequest, session=Depends(get_session)):
    return circulation.issue(session, request.title_id, request.member_id,
                             due_date=request.due_date)

@router.get('/loans', response_model=List[Loan])
@handles_errors
def list_loans(member_id: Optional[int] = None, title_id: Optional[int] = None,
               status: Optional[str] = None, offset: int = 0,
               limit: int = circulation.LOAN_LIST_LIMIT, session=Depends(get_session)):
    return circulation.list_loans(session, member_id=member_id, title_id=title_id,
                                  status=status, offset=offset, limit=limit)

@router.post('/loans/{loan_id}/return', response_model=Loan)
@handles_errors
def return_loan(loan_id: int, session=Depends(get_session)):
    return circulation.return_loan(session, loan_id)

@router.post('/loans/{loan_id}/remind', response_model=Notification)
@handles_errors
def send_reminder(loan_id: int, session=Depends(get_session)):
    return circulation.send_reminder(session, loan_id)

@router.get('/activity', response_model=List[ActivityEvent])
@handles_errors
def list_activity(limit: int = ACTIVITY_LIMIT,
                  x_viewer_id: Optional[str] = Header(None),
                  session=Depends(get_session)):
    return events.list_activity(session, viewer_id=x_viewer_id, limit=limit)

@router.post('/activity/clear')
@handles_errors
def clear_activity(x_viewer_id: Optional[str] = Header(None), session=Depends(get_session)):
    if not x_viewer_id:
        raise HTTPException(status_code=400, detail="X-Viewer-Id header is required")
    cutoff = events.clear_activity(session, x_viewer_id)
    return {"message": "Activity cleared", "hidden_before": cutoff.isoformat()}

@router.get('/notifications', response_model=List[Notification])
@handles_errors
def list_notifications(unread_only: bool = False, limit: int = NOTIFICATION_LIMIT,
                       session=Depends(get_session)):
    circulation.sweep(session)
    return events.list_notifications(session, unread_only=unread_only, limit=limit)

@router.get('/notifications/count')
@handles_errors
def unread_count(session=Depends(get_session)):
    circulation.sweep(session)
    return {"count": events.unread_count(session)}

@router.put('/notifications/read-all')
@handles_errors
def mark_all_read(session=Depends(get_session)):
    return {"updated": events.mark_all_read(session)}

@router.put('/notifications/{notification_id}/read')
@handles_errors
def mark_read(notification_id: int, session=Depends(get_session)):
    events.mark_read(session, notification_id)
    return {"message": "Notification marked as read"}

@router.delete('/notifications/{notification_id}')
@handles_errors
def delete_notification(notification_id: int, session=Depends(get_session)):
    events.delete_notification(session, notification_id)
    return {"message": "Notification deleted"}

@router.get('/stats', response_model=DashboardStats)
@handles_errors
def dashboard_stats(session=Depends(get_session)):
    return stats.dashboard_stats(session)
