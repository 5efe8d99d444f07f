"""
Notifications API Router
In-app notifications; ``user_id`` scopes every call when given
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
import logging

from clinical_trial_ops.api.dependencies import get_notification_service

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Pydantic Models ==============

class NotificationCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str
    type: str
    user_id: Optional[str] = None
    priority: str = "medium"
    trial_id: Optional[int] = None
    source: Optional[str] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None
    action_required: bool = False
    action_url: Optional[str] = None


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[str] = None
    title: str
    description: str
    type: str
    priority: str
    trial_id: Optional[int] = None
    source: Optional[str] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None
    read: bool
    action_required: bool
    action_url: Optional[str] = None
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None


class MarkReadRequest(BaseModel):
    ids: List[int]
    user_id: Optional[str] = None


class MarkAllReadRequest(BaseModel):
    user_id: Optional[str] = None


class CountResponse(BaseModel):
    count: int


# ============== Endpoints ==============

@router.get("", response_model=List[NotificationOut])
async def get_notifications(
    user_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    include_read: bool = Query(False),
    types: Optional[List[str]] = Query(None),
    service=Depends(get_notification_service)
):
    """Get notifications, newest first; read ones only when include_read is set"""
    return service.get_notifications(user_id=user_id, limit=limit, offset=offset,
                                     include_read=include_read, types=types)


@router.get("/count", response_model=CountResponse)
async def count_unread(user_id: Optional[str] = Query(None), service=Depends(get_notification_service)):
    return CountResponse(count=service.count_unread(user_id))


@router.post("", response_model=NotificationOut, status_code=201)
async def create_notification(payload: NotificationCreate, service=Depends(get_notification_service)):
    return service.create_notification(payload.model_dump())


@router.post("/mark-read", response_model=CountResponse)
async def mark_read(payload: MarkReadRequest, service=Depends(get_notification_service)):
    count = service.mark_read(payload.ids, payload.user_id)
    logger.info(f"Marked {count} notifications as read")
    return CountResponse(count=count)


@router.post("/mark-all-read", response_model=CountResponse)
async def mark_all_read(payload: Optional[MarkAllReadRequest] = None, service=Depends(get_notification_service)):
    return CountResponse(count=service.mark_all_read(payload.user_id if payload else None))


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    user_id: Optional[str] = Query(None),
    service=Depends(get_notification_service)
):
    if not service.delete_notification(notification_id, user_id):
        raise HTTPException(status_code=404, detail="Notification not found or already deleted")
    return {"message": "Notification deleted successfully"}
