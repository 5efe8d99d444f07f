"""
Trials API Router
Trial registry plus per-trial views of sites, tasks and signal detections
"""

from fastapi import APIRouter, Depends
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
import logging

from clinical_trial_ops.api.dependencies import get_task_service, get_trial_service
from clinical_trial_ops.api.routers.signal_detections import SignalDetectionOut
from clinical_trial_ops.api.routers.sites import SiteOut
from clinical_trial_ops.api.routers.tasks import TaskOut, task_out

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Pydantic Models ==============

class TrialCreate(BaseModel):
    protocol_id: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1)
    phase: str
    description: Optional[str] = None
    status: str = "active"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    therapeutic_area: Optional[str] = None
    indication: Optional[str] = None


class TrialOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    protocol_id: str
    title: str
    description: Optional[str] = None
    phase: str
    status: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    therapeutic_area: Optional[str] = None
    indication: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ============== Endpoints ==============

@router.get("", response_model=List[TrialOut])
async def list_trials(service=Depends(get_trial_service)):
    """List all trials"""
    return service.list_trials()


@router.post("", response_model=TrialOut, status_code=201)
async def create_trial(payload: TrialCreate, service=Depends(get_trial_service)):
    """Register a trial"""
    return service.create_trial(payload.model_dump())


@router.get("/{trial_id}", response_model=TrialOut)
async def get_trial(trial_id: int, service=Depends(get_trial_service)):
    """Get one trial"""
    return service.get_trial(trial_id)


@router.get("/{trial_id}/sites", response_model=List[SiteOut])
async def get_trial_sites(trial_id: int, service=Depends(get_trial_service)):
    return service.list_sites(trial_id=trial_id)


@router.get("/{trial_id}/signaldetections", response_model=List[SignalDetectionOut])
async def get_trial_signal_detections(trial_id: int, service=Depends(get_trial_service)):
    return service.list_signal_detections(trial_id=trial_id)


@router.get("/{trial_id}/tasks", response_model=List[TaskOut])
async def get_trial_tasks(trial_id: int, service=Depends(get_task_service)):
    """Tasks of a trial, each with the trial title as study name"""
    study_name = service.study_name(trial_id)
    return [task_out(task, study_name) for task in service.list_tasks(trial_id=trial_id)]
