"""
Assistants API Router
Chat endpoints for the central-monitor and data-manager assistants
"""

from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional
from pydantic import BaseModel, Field
import logging

from clinical_trial_ops.api.dependencies import get_assistant_service
from clinical_trial_ops.assistants import AssistantContext
from clinical_trial_ops.core.error_handling import ClinicalDataError

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Pydantic Models ==============

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    session_id: Optional[str] = None
    trial_id: Optional[int] = None
    trial_name: Optional[str] = None
    site_id: Optional[int] = None
    site_name: Optional[str] = None
    agent_mode: bool = True


class ChatResponse(BaseModel):
    assistant: str
    session_id: Optional[str] = None
    response: str
    timestamp: str


class SessionMessage(BaseModel):
    id: str
    role: str
    content: str
    timestamp: Optional[str] = None


class SessionResponse(BaseModel):
    assistant: str
    session_id: str
    messages: List[SessionMessage]


# ============== Endpoints ==============

@router.get("")
async def list_assistants(service=Depends(get_assistant_service)):
    return {"assistants": service.list_assistants()}


@router.post("/{assistant}/chat", response_model=ChatResponse)
async def chat(assistant: str, request: ChatRequest, service=Depends(get_assistant_service)):
    """Send one message to an assistant"""
    try:
        context = AssistantContext(
            trial_id=request.trial_id,
            trial_name=request.trial_name,
            site_id=request.site_id,
            site_name=request.site_name,
        )
        return service.chat(
            assistant,
            request.message,
            context=context,
            session_id=request.session_id,
            agent_mode=request.agent_mode,
        )
    except ClinicalDataError:
        raise
    except Exception as e:
        logger.error(f"Chat error for {assistant}: {e}")
        raise HTTPException(status_code=500, detail="Failed to process chat message")


@router.get("/{assistant}/sessions/{session_id}", response_model=SessionResponse)
async def get_session(assistant: str, session_id: str, service=Depends(get_assistant_service)):
    messages = service.get_session(assistant, session_id)
    return SessionResponse(
        assistant=assistant,
        session_id=session_id,
        messages=[SessionMessage(**m.to_dict()) for m in messages],
    )


@router.delete("/{assistant}/sessions/{session_id}")
async def clear_session(assistant: str, session_id: str, service=Depends(get_assistant_service)):
    if not service.clear_session(assistant, session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"message": "Session cleared"}
