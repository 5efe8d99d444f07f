"""
Assistant Service
Routes chat messages to the rule-based assistants and keeps per-session history
"""

import uuid
import logging
from datetime import datetime
from typing import Dict, List, Optional

from clinical_trial_ops.assistants import AssistantContext, CentralMonitorBot, DataManagerBot
from clinical_trial_ops.core.error_handling import RecordNotFoundError
from clinical_trial_ops.models.data_models import ConversationMessage

logger = logging.getLogger(__name__)

HUMAN_IN_LOOP_REPLY = ("Human-in-loop mode: This task operation requires manual review. "
                       "A notification has been sent to the appropriate team member.")


class AssistantService:
    """
    Owns one instance of each assistant plus the chat sessions.

    Sessions are keyed by (assistant, session_id). Each keeps its last
    ``max_messages`` messages, and once more than ``max_sessions`` exist
    the least recently used one is dropped.
    """

    def __init__(self, default_trial_id: int = 1, max_messages: int = 100, max_sessions: int = 500):
        self.assistants = {
            CentralMonitorBot.name: CentralMonitorBot(default_trial_id=default_trial_id),
            DataManagerBot.name: DataManagerBot(default_trial_id=default_trial_id),
        }
        self.sessions: Dict[tuple, List[ConversationMessage]] = {}
        self.max_messages = max_messages
        self.max_sessions = max_sessions

    def list_assistants(self) -> List[str]:
        return list(self.assistants)

    def _get_assistant(self, name: str):
        assistant = self.assistants.get(name)
        if assistant is None:
            raise RecordNotFoundError(f"Unknown assistant '{name}'", entity="assistant", entity_id=name)
        return assistant

    def chat(self, name: str, message: str, context: Optional[AssistantContext] = None,
             session_id: Optional[str] = None, agent_mode: bool = True) -> Dict:
        """Answer one message; the exchange is appended to the session when one is given"""
        assistant = self._get_assistant(name)
        context = context or AssistantContext()

        lc = message.lower()
        is_task_command = "task" in lc and any(word in lc for word in ("assign", "create", "close"))
        if name == DataManagerBot.name and is_task_command and not agent_mode:
            response = HUMAN_IN_LOOP_REPLY
        else:
            response = assistant.get_response(message, context)

        now = datetime.now()
        if session_id:
            self._record(name, session_id, [
                ConversationMessage(id=f"msg-{uuid.uuid4().hex[:12]}", role='user',
                                    content=message, timestamp=now),
                ConversationMessage(id=f"msg-{uuid.uuid4().hex[:12]}", role='assistant',
                                    content=response, timestamp=now),
            ])

        logger.debug(f"{name} answered message of {len(message)} chars")
        return {
            'assistant': name,
            'session_id': session_id,
            'response': response,
            'timestamp': now.isoformat(),
        }

    def _record(self, name: str, session_id: str, messages: List[ConversationMessage]) -> None:
        # Re-inserting keeps the dict ordered from least to most recently used
        key = (name, session_id)
        history = self.sessions.pop(key, []) + messages
        self.sessions[key] = history[-self.max_messages:]
        while len(self.sessions) > self.max_sessions:
            evicted = next(iter(self.sessions))
            del self.sessions[evicted]
            logger.info(f"Dropped chat session {evicted[1]} of {evicted[0]}")

    def get_session(self, name: str, session_id: str) -> List[ConversationMessage]:
        self._get_assistant(name)
        return list(self.sessions.get((name, session_id), []))

    def clear_session(self, name: str, session_id: str) -> bool:
        self._get_assistant(name)
        return self.sessions.pop((name, session_id), None) is not None
