"""
Error Handling
==============

Exception hierarchy and error tracking for the clinical trial operations service.

Features:
- Custom exception hierarchy for trial operations errors
- In-process error tracker with bounded history
- Error boundaries for seeders and background operations
"""

import logging
import threading
import traceback
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Custom Exception Hierarchy
# =============================================================================

class ClinicalDataError(Exception):
    """Base exception for all trial operations errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str = "CDM000",
        details: Dict = None,
        recoverable: bool = True
    ):
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}
        self.recoverable = recoverable
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict:
        return {
            'error_type': self.__class__.__name__,
            'error_code': self.error_code,
            'message': str(self),
            'details': self.details,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp.isoformat()
        }


class SeedingError(ClinicalDataError):
    """Errors while populating demo or domain data"""

    def __init__(self, message: str, domain: str = None, details: Dict = None):
        super().__init__(
            message,
            error_code="CDM100",
            details={'domain': domain, **(details or {})},
            recoverable=True
        )


class DataValidationError(ClinicalDataError):
    """Errors during request or record validation"""

    status_code = 400

    def __init__(self, message: str, field: str = None, value: Any = None, details: Dict = None):
        super().__init__(
            message,
            error_code="CDM200",
            details={'field': field, 'invalid_value': str(value), **(details or {})},
            recoverable=True
        )


class RecordNotFoundError(ClinicalDataError):
    """A requested entity does not exist"""

    status_code = 404

    def __init__(self, message: str, entity: str = None, entity_id: Any = None, details: Dict = None):
        super().__init__(
            message,
            error_code="CDM404",
            details={'entity': entity, 'entity_id': str(entity_id), **(details or {})},
            recoverable=True
        )


class StudyNotFoundError(RecordNotFoundError):
    """Study is unknown to the data management simulation"""

    def __init__(self, study_id: str):
        super().__init__(f"Study {study_id} not found", entity="study", entity_id=study_id)


class ConfigurationError(ClinicalDataError):
    """Configuration errors"""

    def __init__(self, message: str, config_key: str = None, details: Dict = None):
        super().__init__(
            message,
            error_code="CDM700",
            details={'config_key': config_key, **(details or {})},
            recoverable=False
        )


# =============================================================================
# Error Tracking
# =============================================================================

@dataclass
class ErrorRecord:
    """Record of an error occurrence"""
    error_id: str
    error_type: str
    message: str
    details: Dict
    stack_trace: str
    timestamp: datetime
    context: Dict = field(default_factory=dict)
    resolved: bool = False
    resolution_time: Optional[datetime] = None


class ErrorTracker:
    """
    Tracks error occurrences for monitoring and debugging.
    """

    def __init__(self, max_history: int = 1000):
        self._errors: List[ErrorRecord] = []
        self._error_counts: Dict[str, int] = {}
        self._lock = threading.Lock()
        self.max_history = max_history

    def record_error(self, error: Exception, context: Dict = None) -> str:
        """Record an error occurrence and return its id"""
        error_id = f"err_{uuid.uuid4().hex[:12]}"

        record = ErrorRecord(
            error_id=error_id,
            error_type=type(error).__name__,
            message=str(error),
            details=error.details if isinstance(error, ClinicalDataError) else {},
            stack_trace=traceback.format_exc(),
            timestamp=datetime.now(),
            context=context or {}
        )

        with self._lock:
            self._errors.append(record)
            if len(self._errors) > self.max_history:
                self._errors = self._errors[-self.max_history:]

            error_key = f"{record.error_type}:{record.message[:50]}"
            self._error_counts[error_key] = self._error_counts.get(error_key, 0) + 1

        logger.error(f"Error recorded [{error_id}]: {record.error_type} - {record.message}")
        return error_id

    def get_recent_errors(self, limit: int = 10) -> List[Dict]:
        """Most recent errors first"""
        with self._lock:
            recent = self._errors[-limit:]
            return [
                {
                    'error_id': e.error_id,
                    'error_type': e.error_type,
                    'message': e.message,
                    'context': e.context,
                    'timestamp': e.timestamp.isoformat(),
                    'resolved': e.resolved
                }
                for e in reversed(recent)
            ]

    def get_error_summary(self) -> Dict:
        with self._lock:
            return {
                'total_errors': len(self._errors),
                'error_counts': dict(sorted(
                    self._error_counts.items(),
                    key=lambda x: x[1],
                    reverse=True
                )[:20]),
                'unresolved': sum(1 for e in self._errors if not e.resolved)
            }

    def resolve_error(self, error_id: str) -> bool:
        """Mark an error as resolved; False when the id is unknown"""
        with self._lock:
            for error in self._errors:
                if error.error_id == error_id:
                    error.resolved = True
                    error.resolution_time = datetime.now()
                    return True
        return False

    def clear(self):
        with self._lock:
            self._errors.clear()
            self._error_counts.clear()


_error_tracker: Optional[ErrorTracker] = None


def get_error_tracker() -> ErrorTracker:
    """Get or create global error tracker"""
    global _error_tracker
    if _error_tracker is None:
        _error_tracker = ErrorTracker()
    return _error_tracker


@contextmanager
def error_boundary(operation_name: str, reraise: bool = True):
    """
    Record any exception raised inside the block in the error tracker.

    Usage:
        with error_boundary('seed_domain_data'):
            populate_domain_data(session)
    """
    try:
        yield
    except Exception as e:
        error_id = get_error_tracker().record_error(e, context={'operation': operation_name})
        logger.error(f"Error in {operation_name} [{error_id}]: {e}")
        if reraise:
            raise
