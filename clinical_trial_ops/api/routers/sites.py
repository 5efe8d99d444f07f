"""
Sites API Router
"""

from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
import logging

from sqlalchemy.exc import IntegrityError

from clinical_trial_ops.api.dependencies import get_trial_service

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Pydantic Models ==============

class SiteCreate(BaseModel):
    site_id: str = Field(..., min_length=1, max_length=50)
    trial_id: int
    name: str
    location: Optional[str] = None
    principal_investigator: Optional[str] = None
    status: str = "active"


class SiteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    site_id: str
    trial_id: int
    name: str
    location: Optional[str] = None
    principal_investigator: Optional[str] = None
    status: str


# ============== Endpoints ==============

@router.get("", response_model=List[SiteOut])
async def list_sites(service=Depends(get_trial_service)):
    return service.list_sites()


@router.get("/{site_pk}", response_model=SiteOut)
async def get_site(site_pk: int, service=Depends(get_trial_service)):
    return service.get_site(site_pk)


@router.post("", response_model=SiteOut, status_code=201)
async def create_site(payload: SiteCreate, service=Depends(get_trial_service)):
    """Create a site under an existing trial"""
    service.get_trial(payload.trial_id)
    try:
        return service.create_site(payload.model_dump())
    except IntegrityError as e:
        service.db.rollback()
        logger.error(f"Error creating site {payload.site_id}: {e}")
        raise HTTPException(status_code=400, detail=f"Site {payload.site_id} already exists")
