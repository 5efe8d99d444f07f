"""
Domain Data API Router
Bulk and single-record access to SDTM-like domain data and its sources
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
import logging

from clinical_trial_ops.api.dependencies import get_domain_data_service
from clinical_trial_ops.api.services.domain_data_service import decode_record

logger = logging.getLogger(__name__)

router = APIRouter()

RecordPayload = Union[str, Dict[str, Any]]


# ============== Pydantic Models ==============

class DomainDataStore(BaseModel):
    trial_id: int
    domain: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    records: List[RecordPayload]


class DomainSourceStore(BaseModel):
    trial_id: int
    domain: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    source_type: str
    system: str
    integration_method: str
    format: str
    description: Optional[str] = None
    mapping_details: Optional[str] = None
    frequency: Optional[str] = None
    contact: Optional[str] = None


class DomainRecordCreate(BaseModel):
    trial_id: int
    domain: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    record_data: RecordPayload
    record_id: Optional[str] = None


class DomainRecordUpdate(BaseModel):
    record_data: RecordPayload


class DomainDataOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    trial_id: int
    domain: str
    source: str
    record_id: str
    record_data: str
    imported_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DomainSourceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    trial_id: int
    domain: str
    source: str
    source_type: Optional[str] = None
    system: Optional[str] = None
    integration_method: Optional[str] = None
    format: Optional[str] = None
    description: Optional[str] = None
    mapping_details: Optional[str] = None
    frequency: Optional[str] = None
    contact: Optional[str] = None


def _out(row) -> Dict[str, Any]:
    return DomainDataOut.model_validate(row).model_dump(mode="json")


# ============== Endpoints ==============

@router.post("/domain-data")
async def store_domain_data(payload: DomainDataStore, service=Depends(get_domain_data_service)):
    """Replace all records for (trial, domain, source)"""
    rows = service.replace_records(payload.trial_id, payload.domain, payload.source, payload.records)
    return {
        "success": True,
        "message": "Domain data stored",
        "record_count": len(rows),
        "data": [_out(r) for r in rows],
    }


@router.get("/domain-data")
async def get_domain_records(
    trial_id: int = Query(...),
    domain: str = Query(...),
    source: str = Query(...),
    service=Depends(get_domain_data_service)
):
    rows = service.get_records(trial_id, domain, source)
    if not rows:
        raise HTTPException(status_code=404, detail="No domain records found")
    return {"success": True, "data": [_out(r) for r in rows]}


@router.post("/domain-source")
async def store_domain_source(payload: DomainSourceStore, service=Depends(get_domain_data_service)):
    """Create or update the source identified by (trial, domain, source)"""
    row, created = service.upsert_source(payload.model_dump())
    return {
        "success": True,
        "message": "Domain source stored" if created else "Domain source updated",
        "data": DomainSourceOut.model_validate(row).model_dump(mode="json"),
    }


@router.get("/domain-sources/{trial_id}/{domain}")
async def get_domain_sources(trial_id: int, domain: str, service=Depends(get_domain_data_service)):
    rows = service.get_sources(trial_id, domain)
    return {
        "success": True,
        "data": [DomainSourceOut.model_validate(r).model_dump(mode="json") for r in rows],
    }


@router.get("/trial-domains/{trial_id}")
async def get_trial_domains(trial_id: int, service=Depends(get_domain_data_service)):
    return {"trial_id": trial_id, "domains": service.get_trial_domains(trial_id)}


@router.get("/trial-domain-sources/{trial_id}/{domain}")
async def get_trial_domain_sources(trial_id: int, domain: str, service=Depends(get_domain_data_service)):
    return {"trial_id": trial_id, "domain": domain, "sources": service.get_trial_domain_sources(trial_id, domain)}


@router.post("/domain-records", status_code=201)
async def add_domain_record(payload: DomainRecordCreate, service=Depends(get_domain_data_service)):
    row = service.add_record(payload.trial_id, payload.domain, payload.source, payload.record_data,
                             record_id=payload.record_id)
    return {"success": True, "message": "Domain record created", "data": _out(row)}


@router.get("/domain-records/{record_pk}")
async def get_domain_record(record_pk: int, service=Depends(get_domain_data_service)):
    row = service.get_record(record_pk)
    data = _out(row)
    parsed = decode_record(row)
    if parsed is None:
        return {"success": True, "data": data, "warning": "Could not parse record data as JSON"}
    data["parsed_data"] = parsed
    return {"success": True, "data": data}


@router.put("/domain-records/{record_pk}")
async def update_domain_record(
    record_pk: int,
    payload: DomainRecordUpdate,
    service=Depends(get_domain_data_service)
):
    row = service.update_record(record_pk, payload.record_data)
    return {"success": True, "message": "Domain record updated", "data": _out(row)}


@router.delete("/domain-records/{record_pk}")
async def delete_domain_record(record_pk: int, service=Depends(get_domain_data_service)):
    service.delete_record(record_pk)
    return {"success": True, "message": "Domain record deleted", "id": record_pk}
