"""
DM Bot API Router
Study analysis, query workflow, reference data and schedules backed by the
in-memory data management simulation
"""

from fastapi import APIRouter, Depends, HTTPException, Query as QueryParam
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum
import logging
import uuid

from clinical_trial_ops.api.dependencies import get_dm_bot_service
from clinical_trial_ops.core.error_handling import ClinicalDataError, RecordNotFoundError, StudyNotFoundError
from clinical_trial_ops.models.data_models import (
    ConversationMessage,
    QueryStatus,
    Schedule,
    ScheduleFrequency,
    Study,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Enums ==============

class QueryState(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class QueryStatusValue(str, Enum):
    NEW = "new"
    ASSIGNED = "assigned"
    IN_REVIEW = "in-review"
    RESOLVED = "resolved"


class FrequencyValue(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


# ============== Pydantic Models ==============

class StudyPayload(BaseModel):
    protocol_id: str
    title: str
    phase: str
    status: str
    indication: str
    start_date: str
    end_date: str
    enrolled_patients: int = Field(0, ge=0)
    sites: int = Field(0, ge=0)
    countries: List[str] = Field(default_factory=list)
    sponsor: str = ""
    primary_objective: str = ""
    data_sources: List[str] = Field(default_factory=list)
    primary_endpoint: str = ""


class QueryStatusUpdate(BaseModel):
    status: QueryStatusValue
    user: str = "Data Manager"


class SchedulePayload(BaseModel):
    frequency: FrequencyValue
    start_date: datetime
    enabled: bool = True
    last_run: Optional[datetime] = None
    notify_recipients: List[str] = Field(default_factory=list)


class ConversationMessageIn(BaseModel):
    role: str = Field(..., pattern="^(user|assistant)$")
    content: str = Field(..., min_length=1)
    id: Optional[str] = None


# ============== Helpers ==============

def _require_study(service, study_id: int) -> Study:
    study = service.get_study(study_id)
    if study is None:
        raise StudyNotFoundError(study_id)
    return study


def _dicts(items) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in items]


# ============== Studies ==============

@router.get("/studies")
async def get_studies(service=Depends(get_dm_bot_service)):
    return _dicts(service.get_all_studies())


@router.get("/studies/{study_id}")
async def get_study(study_id: int, service=Depends(get_dm_bot_service)):
    return _require_study(service, study_id).to_dict()


@router.put("/studies/{study_id}")
async def put_study(study_id: int, payload: StudyPayload, service=Depends(get_dm_bot_service)):
    """Create or replace a study profile"""
    study = Study(id=study_id, **payload.model_dump())
    return service.create_or_update_study(study).to_dict()


@router.post("/studies/{study_id}/analyze")
async def analyze_study(study_id: int, service=Depends(get_dm_bot_service)):
    """Run a simulated cross-source analysis and raise queries for the top issues"""
    try:
        results = service.analyze_data(study_id)
        return results.to_dict()
    except ClinicalDataError:
        raise
    except Exception as e:
        logger.error(f"Analysis error for study {study_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to analyze study data")


@router.get("/studies/{study_id}/analysis")
async def get_last_analysis(study_id: int, service=Depends(get_dm_bot_service)):
    results = service.get_last_analysis_results(study_id)
    if results is None:
        raise HTTPException(status_code=404, detail=f"No analysis available for study {study_id}")
    return results.to_dict()


@router.get("/studies/{study_id}/queries")
async def get_queries(
    study_id: int,
    state: QueryState = QueryParam(QueryState.ACTIVE),
    service=Depends(get_dm_bot_service)
):
    if state == QueryState.RESOLVED:
        return _dicts(service.get_resolved_queries(study_id))
    return _dicts(service.get_active_queries(study_id))


@router.post("/studies/{study_id}/check-corrections")
async def check_corrections(study_id: int, service=Depends(get_dm_bot_service)):
    """Auto-resolve queries whose source data has been corrected"""
    resolved = service.check_for_corrected_data(study_id)
    return {"resolved_count": len(resolved), "queries": _dicts(resolved)}


@router.get("/studies/{study_id}/duplicates")
async def find_duplicates(
    study_id: int,
    domain: Optional[str] = QueryParam(None),
    service=Depends(get_dm_bot_service)
):
    return service.find_duplicate_records(study_id, domain)


@router.get("/studies/{study_id}/nulls")
async def find_nulls(
    study_id: int,
    domain: Optional[str] = QueryParam(None),
    service=Depends(get_dm_bot_service)
):
    return service.find_null_values(study_id, domain)


@router.get("/studies/{study_id}/schedule")
async def get_schedule(study_id: int, service=Depends(get_dm_bot_service)):
    schedule = service.get_schedule(study_id)
    if schedule is None:
        raise HTTPException(status_code=404, detail=f"No schedule for study {study_id}")
    return schedule.to_dict()


@router.put("/studies/{study_id}/schedule")
async def put_schedule(study_id: int, payload: SchedulePayload, service=Depends(get_dm_bot_service)):
    schedule = Schedule(
        study_id=study_id,
        frequency=ScheduleFrequency(payload.frequency.value),
        start_date=payload.start_date,
        enabled=payload.enabled,
        last_run=payload.last_run,
        notify_recipients=payload.notify_recipients,
    )
    return service.create_or_update_schedule(schedule).to_dict()


@router.get("/studies/{study_id}/conversation")
async def get_conversation(study_id: int, service=Depends(get_dm_bot_service)):
    return _dicts(service.get_conversation(study_id))


@router.post("/studies/{study_id}/conversation")
async def add_conversation_message(
    study_id: int,
    payload: ConversationMessageIn,
    service=Depends(get_dm_bot_service)
):
    message = ConversationMessage(
        id=payload.id or str(uuid.uuid4()),
        role=payload.role,
        content=payload.content,
    )
    return _dicts(service.add_conversation_message(study_id, message))


@router.get("/studies/{study_id}/metrics")
async def get_latest_metrics(study_id: int, service=Depends(get_dm_bot_service)):
    snapshot = service.get_latest_metrics(study_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No metrics recorded for study {study_id}")
    return snapshot.to_dict()


@router.get("/studies/{study_id}/metrics/history")
async def get_metrics_history(study_id: int, service=Depends(get_dm_bot_service)):
    return _dicts(service.get_metrics_history(study_id))


@router.get("/studies/{study_id}/comparison")
async def get_data_comparison(study_id: int, service=Depends(get_dm_bot_service)):
    return _dicts(service.get_data_comparison(study_id))


@router.get("/studies/{study_id}/domains")
async def get_study_domains(study_id: int, service=Depends(get_dm_bot_service)):
    return {"study_id": study_id, "domains": service.get_study_data_domains(study_id)}


@router.get("/studies/{study_id}/domains/{domain}")
async def get_domain_data(study_id: int, domain: str, service=Depends(get_dm_bot_service)):
    return _dicts(service.get_domain_data(study_id, domain))


# ============== Queries ==============

@router.patch("/queries/{query_id}/status")
async def update_query_status(query_id: str, payload: QueryStatusUpdate, service=Depends(get_dm_bot_service)):
    """Move a query through its lifecycle; resolving moves it to the resolved set"""
    query = service.update_query_status(query_id, QueryStatus(payload.status.value), payload.user)
    if query is None:
        raise RecordNotFoundError(f"Query {query_id} not found", entity="query", entity_id=query_id)
    return query.to_dict()


@router.get("/queries/{query_id}/workflow")
async def get_query_workflow(query_id: str, service=Depends(get_dm_bot_service)):
    return _dicts(service.get_query_workflow_steps(query_id))


@router.get("/queries/{query_id}/reference-data")
async def get_query_reference_data(query_id: str, service=Depends(get_dm_bot_service)):
    """Reference record behind a query, created on first request"""
    ref = service.get_reference_data_for_query(query_id) or service.get_query_reference_data(query_id)
    if ref is None:
        raise RecordNotFoundError(f"Query {query_id} not found", entity="query", entity_id=query_id)
    return ref.to_dict()


@router.post("/queries/overdue-refresh")
async def refresh_overdue_statuses(service=Depends(get_dm_bot_service)):
    service.update_query_overdue_statuses()
    return {"message": "Overdue statuses refreshed", "active_queries": len(service.active_queries)}


# ============== Cross-source, patients, schedules ==============

@router.get("/consistency")
async def check_consistency(
    source1: str = QueryParam(...),
    source2: str = QueryParam(...),
    service=Depends(get_dm_bot_service)
):
    return service.check_data_consistency(source1, source2)


@router.get("/schedules")
async def get_all_schedules(service=Depends(get_dm_bot_service)):
    return _dicts(service.get_all_schedules())


@router.get("/patients/{patient_id}")
async def get_patient_data(patient_id: str, service=Depends(get_dm_bot_service)):
    return _dicts(service.get_patient_data(patient_id))


@router.get("/visits/{visit_id}")
async def get_visit_data(visit_id: str, service=Depends(get_dm_bot_service)):
    return _dicts(service.get_visit_data(visit_id))


@router.get("/recipients")
async def get_recipients(service=Depends(get_dm_bot_service)):
    return _dicts(service.recipients.values())


@router.get("/recipients/{email}/notifications")
async def get_recipient_notifications(email: str, service=Depends(get_dm_bot_service)):
    return _dicts(service.get_notifications_for_recipient(email))
