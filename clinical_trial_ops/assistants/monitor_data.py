"""
Central monitoring demo data
Queries, tasks, trial health and monitor settings used by the Central Monitor assistant.
All dates are relative to the moment the data set is built.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional


@dataclass
class QueryResponse:
    id: str
    responder: str
    role: str
    content: str
    status: str
    created_at: datetime


@dataclass
class MonitorQuery:
    id: str
    title: str
    description: str
    status: str
    priority: str
    trial_id: int
    site_name: str
    site_id: int
    domain: str
    assignee: str
    created: datetime
    responses: List[QueryResponse] = field(default_factory=list)


@dataclass
class TaskComment:
    id: str
    commenter: str
    role: str
    content: str
    created_at: datetime


@dataclass
class MonitorTask:
    id: str
    title: str
    description: str
    status: str
    priority: str
    trial_id: int
    site_id: int
    site_name: str
    assignee: str
    created: datetime
    due_date: datetime
    comments: List[TaskComment] = field(default_factory=list)


@dataclass
class DBLockCompliance:
    status: str
    readiness: int
    outstanding_issues: int
    estimated_lock_date: datetime
    data_entry_complete: int
    query_resolution: int
    medical_review: int
    sdv_complete: int
    ready_for_export: bool = False


@dataclass
class SiteHealth:
    site_id: int
    site_name: str
    status: str
    subject_count: int
    performance_score: int
    risk_level: str
    open_queries: int
    open_tasks: int
    last_monitored: datetime
    db_lock_status: Optional[str] = None
    outstanding_lock_issues: int = 0


@dataclass
class TrialHealth:
    overall_health: int
    risk_score: int
    subject_compliance: int
    data_quality: int
    protocol_deviations: int
    sae_reporting: int
    query_response_rate: int
    avg_query_response_time: float
    risk_level: str
    trends_direction: str
    db_lock_compliance: Optional[DBLockCompliance]
    sites: List[SiteHealth]


@dataclass
class MonitorSettings:
    active_monitoring: bool = True
    scheduled_monitoring: bool = False
    frequency: str = "weekly"
    priority: str = "medium"
    email_alerts: bool = True
    system_alerts: bool = True
    sms_alerts: bool = False
    escalation: bool = True
    data_refresh: bool = True
    query_responses: bool = True
    threshold_violations: bool = True
    site_actions: bool = False


@dataclass
class MonitorDataSet:
    queries: List[MonitorQuery]
    tasks: List[MonitorTask]
    trial_health: Dict[int, TrialHealth]
    settings: MonitorSettings


def build_monitor_data(now: Optional[datetime] = None) -> MonitorDataSet:
    """Build the demo data set anchored at ``now``"""
    now = now or datetime.now()

    def ago(days: int) -> datetime:
        return now - timedelta(days=days)

    def ahead(days: int) -> datetime:
        return now + timedelta(days=days)

    queries = [
        MonitorQuery(
            id="Q-001",
            title="Missing Primary Endpoint Data",
            description="Subject 1002-004 is missing week 12 primary endpoint measurement",
            status="open",
            priority="high",
            trial_id=1,
            site_name="Memorial Research Hospital",
            site_id=1002,
            domain="EFFICACY",
            assignee="Dr. Martinez",
            created=ago(3),
        ),
        MonitorQuery(
            id="Q-002",
            title="Protocol Deviation - Inclusion Criteria",
            description="Subject 1005-007 was enrolled despite not meeting inclusion criterion #3 (HbA1c > 7.5%)",
            status="in_progress",
            priority="critical",
            trial_id=1,
            site_name="City Medical Center",
            site_id=1005,
            domain="SAFETY",
            assignee="Dr. Johnson",
            created=ago(5),
            responses=[
                QueryResponse(
                    id="R-001",
                    responder="Dr. Johnson",
                    role="Principal Investigator",
                    content="Subject's last HbA1c was 7.3%, which was mistakenly recorded. "
                            "We are reviewing our screening procedures.",
                    status="under_review",
                    created_at=ago(2),
                ),
            ],
        ),
        MonitorQuery(
            id="Q-003",
            title="Adverse Event Reporting Delay",
            description="SAE for Subject 1003-011 was reported 5 days after occurrence, "
                        "exceeding the 24-hour reporting requirement",
            status="closed",
            priority="high",
            trial_id=1,
            site_name="University Research Center",
            site_id=1003,
            domain="SAFETY",
            assignee="Dr. Thompson",
            created=ago(10),
            responses=[
                QueryResponse(
                    id="R-002",
                    responder="Dr. Thompson",
                    role="Sub-Investigator",
                    content="The delay occurred due to a miscommunication between weekend staff. "
                            "We have updated our SOPs and held retraining for all site staff.",
                    status="accepted",
                    created_at=ago(8),
                ),
                QueryResponse(
                    id="R-003",
                    responder="Sarah Wilson",
                    role="Central Monitor",
                    content="Response accepted. Please provide documentation of the retraining by next week.",
                    status="closed",
                    created_at=ago(7),
                ),
            ],
        ),
        MonitorQuery(
            id="Q-004",
            title="Lab Sample Storage Deviation",
            description="Temperature logs indicate freezer storing PK samples was out of range for 3 hours",
            status="responded",
            priority="medium",
            trial_id=1,
            site_name="Community Clinical Research",
            site_id=1008,
            domain="LAB",
            assignee="Dr. Patel",
            created=ago(4),
            responses=[
                QueryResponse(
                    id="R-004",
                    responder="Dr. Patel",
                    role="Site Coordinator",
                    content="Power outage caused the temperature deviation. Backup generator was activated "
                            "but had a 3-hour delay. Samples were moved to backup freezer once issue was "
                            "identified. Vendor has confirmed samples are still viable.",
                    status="pending_review",
                    created_at=ago(1),
                ),
            ],
        ),
    ]

    tasks = [
        MonitorTask(
            id="T-001",
            title="Site Retraining on AE Reporting",
            description="Conduct retraining session for site staff on adverse event reporting timelines",
            status="in_progress",
            priority="high",
            trial_id=1,
            site_id=1003,
            site_name="University Research Center",
            assignee="Dr. Thompson",
            created=ago(6),
            due_date=ahead(2),
            comments=[
                TaskComment("C-001", "Sarah Wilson", "Central Monitor",
                            "Please provide agenda and attendee list after the training.", ago(6)),
                TaskComment("C-002", "Dr. Thompson", "Sub-Investigator",
                            "Training scheduled for tomorrow. Will provide documentation after completion.", ago(3)),
            ],
        ),
        MonitorTask(
            id="T-002",
            title="Data Correction for Subject 1002-004",
            description="Enter missing primary endpoint data for week 12 visit",
            status="pending",
            priority="high",
            trial_id=1,
            site_id=1002,
            site_name="Memorial Research Hospital",
            assignee="Dr. Martinez",
            created=ago(3),
            due_date=ahead(4),
        ),
        MonitorTask(
            id="T-003",
            title="Protocol Deviation Documentation",
            description="Complete protocol deviation form for Subject 1005-007 inclusion criteria violation",
            status="assigned",
            priority="high",
            trial_id=1,
            site_id=1005,
            site_name="City Medical Center",
            assignee="Dr. Johnson",
            created=ago(5),
            due_date=ahead(1),
            comments=[
                TaskComment("C-003", "Michael Chen", "Study Manager",
                            "This is a critical issue. Please prioritize completing this form by EOD tomorrow.",
                            ago(4)),
            ],
        ),
        MonitorTask(
            id="T-004",
            title="Follow-up on PK Sample Viability",
            description="Obtain written confirmation from central lab on viability of PK samples "
                        "after temperature excursion",
            status="closed",
            priority="medium",
            trial_id=1,
            site_id=1008,
            site_name="Community Clinical Research",
            assignee="Dr. Patel",
            created=ago(4),
            due_date=ago(1),
            comments=[
                TaskComment("C-004", "Dr. Patel", "Site Coordinator",
                            "Lab confirmation attached to EDC. All samples confirmed viable with no impact "
                            "on analysis.", ago(2)),
                TaskComment("C-005", "Emily Rodriguez", "Central Monitor",
                            "Documentation reviewed and accepted. Task can be closed.", ago(1)),
            ],
        ),
    ]

    def site(site_id, name, subjects, score, risk, queries_open, tasks_open, monitored, lock, lock_issues,
             status='active'):
        return SiteHealth(
            site_id=site_id,
            site_name=name,
            status=status,
            subject_count=subjects,
            performance_score=score,
            risk_level=risk,
            open_queries=queries_open,
            open_tasks=tasks_open,
            last_monitored=ago(monitored),
            db_lock_status=lock,
            outstanding_lock_issues=lock_issues,
        )

    trial_health = {
        1: TrialHealth(
            overall_health=82, risk_score=24, subject_compliance=91, data_quality=87,
            protocol_deviations=3, sae_reporting=96, query_response_rate=78, avg_query_response_time=2.3,
            risk_level='low', trends_direction='improving',
            db_lock_compliance=DBLockCompliance('in_progress', 76, 12, ahead(30), 92, 83, 78, 68),
            sites=[
                site(1002, "Memorial Research Hospital", 32, 88, 'low', 1, 1, 7, 'in_progress', 3),
                site(1003, "University Research Center", 28, 92, 'low', 0, 1, 10, 'ready', 2),
                site(1005, "City Medical Center", 15, 76, 'medium', 1, 1, 5, 'pending', 6),
                site(1008, "Community Clinical Research", 24, 84, 'low', 1, 0, 3, 'complete', 0),
            ],
        ),
        2: TrialHealth(
            overall_health=74, risk_score=38, subject_compliance=83, data_quality=79,
            protocol_deviations=8, sae_reporting=91, query_response_rate=65, avg_query_response_time=4.5,
            risk_level='medium', trends_direction='stable',
            db_lock_compliance=DBLockCompliance('ready', 85, 6, ahead(20), 95, 88, 82, 78),
            sites=[
                site(2001, "Arthritis Research Institute", 18, 81, 'low', 3, 2, 9, 'in_progress', 4),
                site(2002, "Rheumatology Specialist Center", 21, 68, 'medium', 7, 4, 12, 'pending', 8),
                site(2003, "Joint & Bone Research", 12, 74, 'medium', 5, 3, 8, 'in_progress', 5),
            ],
        ),
        3: TrialHealth(
            overall_health=63, risk_score=58, subject_compliance=72, data_quality=68,
            protocol_deviations=12, sae_reporting=82, query_response_rate=54, avg_query_response_time=6.2,
            risk_level='high', trends_direction='declining',
            db_lock_compliance=DBLockCompliance('not_started', 35, 28, ahead(60), 65, 45, 30, 25),
            sites=[
                site(3001, "Oncology Research Partners", 14, 62, 'high', 9, 6, 15, 'pending', 12),
                site(3002, "Cancer Treatment Alliance", 8, 51, 'high', 12, 8, 20, 'pending', 15,
                     status='suspended'),
                site(3003, "Metropolitan Cancer Center", 16, 71, 'medium', 6, 4, 10, 'in_progress', 7),
            ],
        ),
        4: TrialHealth(
            overall_health=78, risk_score=31, subject_compliance=85, data_quality=81,
            protocol_deviations=5, sae_reporting=93, query_response_rate=72, avg_query_response_time=3.1,
            risk_level='medium', trends_direction='improving',
            db_lock_compliance=DBLockCompliance('in_progress', 65, 15, ahead(45), 80, 75, 60, 55),
            sites=[
                site(4001, "Neurology Research Institute", 22, 83, 'low', 4, 2, 6, 'ready', 2),
                site(4002, "Memory and Cognitive Health Center", 18, 79, 'medium', 5, 3, 8, 'in_progress', 5),
                site(4003, "Senior Care Research", 24, 77, 'medium', 6, 4, 11, 'pending', 8),
            ],
        ),
    }

    return MonitorDataSet(
        queries=queries,
        tasks=tasks,
        trial_health=trial_health,
        settings=MonitorSettings(),
    )
