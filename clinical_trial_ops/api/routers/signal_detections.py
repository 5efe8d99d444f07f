"""
Signal Detections API Router
Risk signals raised manually or by the monitoring assistants
"""

from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional
from pydantic import BaseModel, ConfigDict
from datetime import datetime
import logging

from clinical_trial_ops.api.dependencies import get_trial_service
from clinical_trial_ops.core.error_handling import ClinicalDataError

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Pydantic Models ==============

class SignalDetectionCreate(BaseModel):
    trial_id: int
    observation: str
    priority: str = "Medium"
    detection_id: Optional[str] = None
    title: Optional[str] = None
    signal_type: Optional[str] = None
    detection_type: Optional[str] = None
    site_id: Optional[str] = None
    data_reference: Optional[str] = None
    status: Optional[str] = None
    assigned_to: Optional[str] = None
    detection_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    created_by: Optional[str] = None
    notified_persons: Optional[List[str]] = None


class SignalDetectionUpdate(BaseModel):
    title: Optional[str] = None
    observation: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    assigned_to: Optional[str] = None
    due_date: Optional[datetime] = None
    notified_persons: Optional[List[str]] = None


class SignalDetectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    detection_id: str
    title: str
    signal_type: str
    detection_type: str
    trial_id: int
    site_id: Optional[str] = None
    data_reference: Optional[str] = None
    observation: str
    priority: str
    status: str
    assigned_to: Optional[str] = None
    detection_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    created_by: str
    notified_persons: Optional[List[str]] = None
    created_at: Optional[datetime] = None


# ============== Endpoints ==============

@router.get("", response_model=List[SignalDetectionOut])
async def list_signal_detections(service=Depends(get_trial_service)):
    return service.list_signal_detections()


@router.get("/{detection_pk}", response_model=SignalDetectionOut)
async def get_signal_detection(detection_pk: int, service=Depends(get_trial_service)):
    return service.get_signal_detection(detection_pk)


@router.post("", response_model=SignalDetectionOut, status_code=201)
async def create_signal_detection(payload: SignalDetectionCreate, service=Depends(get_trial_service)):
    """Create a signal; id, title, due date and signal type are derived when omitted"""
    try:
        service.get_trial(payload.trial_id)
        return service.create_signal_detection(payload.model_dump())
    except ClinicalDataError:
        raise
    except Exception as e:
        logger.error(f"Error creating signal detection: {e}")
        raise HTTPException(status_code=500, detail="Failed to create signal detection")


@router.patch("/{detection_pk}", response_model=SignalDetectionOut)
async def update_signal_detection(
    detection_pk: int,
    payload: SignalDetectionUpdate,
    service=Depends(get_trial_service)
):
    return service.update_signal_detection(detection_pk, payload.model_dump(exclude_unset=True))
