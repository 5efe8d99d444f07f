"""
Data Models for the data management simulation
Defines the in-memory structures used by the DM bot service
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from datetime import datetime
from enum import Enum


class Severity(Enum):
    """Query severity"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class QueryStatus(Enum):
    """Query lifecycle status"""
    NEW = "new"
    ASSIGNED = "assigned"
    IN_REVIEW = "in-review"
    RESOLVED = "resolved"


class NotificationStatus(Enum):
    PENDING = "pending"
    SENT = "sent"
    READ = "read"


class OverdueStatus(Enum):
    ON_TIME = "on-time"
    DUE_SOON = "due-soon"
    OVERDUE = "overdue"


class WorkflowStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class ResolutionMethod(Enum):
    MANUAL = "manual"
    AUTO_CORRECTED = "auto-corrected"
    NOT_APPLICABLE = "not-applicable"


class WorkflowAction(Enum):
    """Actions recorded in a query's workflow log"""
    CREATED = "created"
    ASSIGNED = "assigned"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"
    AUTO_DETECTED = "auto-detected"
    AUTO_CORRECTED = "auto-corrected"
    NOTIFIED = "notified"


class ScheduleFrequency(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Query:
    """A data-quality issue raised against trial data"""
    id: str
    description: str
    severity: Severity
    data_sources: List[str]
    study_id: int
    status: QueryStatus = QueryStatus.NEW
    assigned_to: Optional[str] = None
    contact: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    due_date: Optional[datetime] = None
    last_notified: Optional[datetime] = None
    notification_status: Optional[NotificationStatus] = None
    reference_data: Optional[str] = None
    overdue_status: Optional[OverdueStatus] = None
    workflow_status: WorkflowStatus = WorkflowStatus.PENDING
    last_workflow_update: Optional[datetime] = None
    resolution_method: Optional[ResolutionMethod] = None
    resolution_notes: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'description': self.description,
            'severity': self.severity.value,
            'data_sources': list(self.data_sources),
            'status': self.status.value,
            'study_id': self.study_id,
            'assigned_to': self.assigned_to,
            'contact': self.contact,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'due_date': _iso(self.due_date),
            'last_notified': _iso(self.last_notified),
            'notification_status': self.notification_status.value if self.notification_status else None,
            'reference_data': self.reference_data,
            'overdue_status': self.overdue_status.value if self.overdue_status else None,
            'workflow_status': self.workflow_status.value,
            'last_workflow_update': _iso(self.last_workflow_update),
            'resolution_method': self.resolution_method.value if self.resolution_method else None,
            'resolution_notes': self.resolution_notes,
        }


@dataclass
class ReferenceData:
    """Source record backing a query or a domain listing"""
    id: str
    data_source: str
    record_id: str
    patient_id: str
    data_points: Dict[str, Any]
    query_id: Optional[str] = None
    visit_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def domain(self) -> Optional[str]:
        return self.data_points.get('domain')

    @property
    def usubjid(self) -> Optional[str]:
        return self.data_points.get('usubjid')

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'query_id': self.query_id,
            'data_source': self.data_source,
            'record_id': self.record_id,
            'patient_id': self.patient_id,
            'visit_id': self.visit_id,
            'data_points': dict(self.data_points),
            'created_at': _iso(self.created_at),
        }


@dataclass
class QueryWorkflowStep:
    id: str
    query_id: str
    action: WorkflowAction
    user: str
    timestamp: datetime = field(default_factory=datetime.now)
    notes: Optional[str] = None
    data_change: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'query_id': self.query_id,
            'action': self.action.value,
            'timestamp': _iso(self.timestamp),
            'user': self.user,
            'notes': self.notes,
            'data_change': self.data_change,
        }


@dataclass
class NotificationRecipient:
    name: str
    email: str
    role: str

    def to_dict(self) -> Dict:
        return {'name': self.name, 'email': self.email, 'role': self.role}


@dataclass
class EmailNotification:
    """Recorded e-mail; nothing is actually delivered"""
    recipient_id: str
    query_id: str
    subject: str
    body: str
    sent_at: datetime = field(default_factory=datetime.now)
    status: NotificationStatus = NotificationStatus.PENDING

    def to_dict(self) -> Dict:
        return {
            'recipient_id': self.recipient_id,
            'query_id': self.query_id,
            'subject': self.subject,
            'body': self.body,
            'sent_at': _iso(self.sent_at),
            'status': self.status.value,
        }


@dataclass
class Schedule:
    study_id: int
    frequency: ScheduleFrequency
    start_date: datetime
    enabled: bool = True
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    notify_recipients: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'study_id': self.study_id,
            'frequency': self.frequency.value,
            'start_date': _iso(self.start_date),
            'enabled': self.enabled,
            'last_run': _iso(self.last_run),
            'next_run': _iso(self.next_run),
            'notify_recipients': list(self.notify_recipients),
        }


@dataclass
class DataComparisonResult:
    source: str
    total_fields: int
    inconsistent_fields: int
    missing_fields: int
    changed_since_last_check: int
    last_checked: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        return {
            'source': self.source,
            'total_fields': self.total_fields,
            'inconsistent_fields': self.inconsistent_fields,
            'missing_fields': self.missing_fields,
            'changed_since_last_check': self.changed_since_last_check,
            'last_checked': _iso(self.last_checked),
        }


@dataclass
class Study:
    """
    Study profile used to drive the issue simulation.

    Phase, site count, country count and indication all bias the
    generated scores and per-source issue counts.
    """
    id: int
    protocol_id: str
    title: str
    phase: str
    status: str
    indication: str
    start_date: str
    end_date: str
    enrolled_patients: int
    sites: int
    countries: List[str]
    sponsor: str
    primary_objective: str
    data_sources: List[str]
    primary_endpoint: str

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'protocol_id': self.protocol_id,
            'title': self.title,
            'phase': self.phase,
            'status': self.status,
            'indication': self.indication,
            'start_date': self.start_date,
            'end_date': self.end_date,
            'enrolled_patients': self.enrolled_patients,
            'sites': self.sites,
            'countries': list(self.countries),
            'sponsor': self.sponsor,
            'primary_objective': self.primary_objective,
            'data_sources': list(self.data_sources),
            'primary_endpoint': self.primary_endpoint,
        }


@dataclass
class DataSourceSummary:
    name: str
    issue_count: int
    status: str

    def to_dict(self) -> Dict:
        return {'name': self.name, 'issue_count': self.issue_count, 'status': self.status}


@dataclass
class IssueSummary:
    id: str
    description: str
    severity: Severity
    data_sources: List[str]

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'description': self.description,
            'severity': self.severity.value,
            'data_sources': list(self.data_sources),
        }


@dataclass
class QualityMetrics:
    data_quality_score: float
    consistency_score: float
    completeness_score: float
    query_response_rate: float

    def to_dict(self) -> Dict:
        return {
            'data_quality_score': self.data_quality_score,
            'consistency_score': self.consistency_score,
            'completeness_score': self.completeness_score,
            'query_response_rate': self.query_response_rate,
        }


@dataclass
class AnalysisResults:
    total_issues: int
    queries_generated: int
    data_sources: List[DataSourceSummary]
    metrics: QualityMetrics
    top_issues: List[IssueSummary]

    def to_dict(self) -> Dict:
        return {
            'total_issues': self.total_issues,
            'queries_generated': self.queries_generated,
            'data_sources': [s.to_dict() for s in self.data_sources],
            'metrics': self.metrics.to_dict(),
            'top_issues': [i.to_dict() for i in self.top_issues],
        }


@dataclass
class MetricsSnapshot:
    """Unrounded scores kept for trend charts"""
    timestamp: datetime
    data_quality_score: float
    consistency_score: float
    completeness_score: float
    query_response_rate: float
    total_issues: int
    queries_generated: int

    def to_dict(self) -> Dict:
        return {
            'timestamp': _iso(self.timestamp),
            'data_quality_score': self.data_quality_score,
            'consistency_score': self.consistency_score,
            'completeness_score': self.completeness_score,
            'query_response_rate': self.query_response_rate,
            'total_issues': self.total_issues,
            'queries_generated': self.queries_generated,
        }


@dataclass
class ConversationMessage:
    id: str
    role: str
    content: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'role': self.role,
            'content': self.content,
            'timestamp': _iso(self.timestamp),
        }
