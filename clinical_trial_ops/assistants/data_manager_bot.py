"""
Data Manager Assistant
Answers data-quality questions (issues, domains, data sources, enabled checks)
for a trial from a fixed set of demo issues and health metrics.
"""

import random
import re
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from clinical_trial_ops.assistants.base import (
    AssistantContext,
    contains_any,
    extract_after,
    format_date,
    is_greeting,
)

logger = logging.getLogger(__name__)

ISSUE_ID_PATTERN = re.compile(r"dq-\d{3}")
TASK_REF_PATTERN = re.compile(r"(dq|cm|tm)-\d{3}", re.IGNORECASE)


# ============== Demo Data ==============

@dataclass
class DataQualityIssue:
    id: str
    type: str
    issue_category: str
    title: str
    description: str
    status: str
    severity: str
    trial_id: int
    domain: str


@dataclass
class DataSourceHealth:
    name: str
    status: str
    record_count: int
    last_update: datetime
    dq_issues: int


@dataclass
class DomainHealth:
    name: str
    record_count: int
    issue_count: int
    completeness: int


@dataclass
class DataTrialHealth:
    dq_score: int
    reconciliation_score: int
    compliance_score: int
    data_completeness: int
    query_resolution_rate: int
    overall_health: int
    risk_level: str
    trends_direction: str
    data_sources: List[DataSourceHealth]
    domains: List[DomainHealth]


@dataclass
class DataManagerSettings:
    active_monitoring: bool = True
    scheduled_monitoring: bool = False
    frequency: str = "daily"
    priority: str = "medium"
    checks: Dict[str, Dict[str, bool]] = field(default_factory=lambda: {
        "Data Quality Checks": {
            "Missing Data Detection": True,
            "Out-of-Range Values": True,
            "Invalid Format Detection": True,
            "Data Consistency": True,
            "Cross-Form Validation": True,
        },
        "Reconciliation Checks": {
            "Subject Matching": True,
            "Demographics Matching": True,
            "AE vs Medical History Matching": True,
            "Lab Value Matching": True,
        },
        "Compliance Checks": {
            "Protocol Adherence": True,
            "Audit Trail Monitoring": False,
            "Protocol Deviation Detection": True,
            "Regulatory Standard Alerts": True,
        },
    })


DQ_ISSUES = [
    DataQualityIssue("DQ-001", "missing_data", "DQ", "Missing Vital Signs",
                     "12 subjects are missing vital signs data for Week 4 visit", "reviewing", "high", 1, "VS"),
    DataQualityIssue("DQ-002", "out_of_range", "DQ", "ALT values out of range",
                     "5 subjects have ALT values significantly above the normal range", "resolving", "critical", 1,
                     "LB"),
    DataQualityIssue("DQ-003", "inconsistent_data", "Reconciliation", "Visit dates inconsistent",
                     "Visit dates in EDC don't match the dates in external lab data", "detected", "medium", 1, "SV"),
    DataQualityIssue("DQ-004", "specification_violation", "DQ", "Protocol violation",
                     "Subject enrolled outside inclusion criteria age range", "resolved", "high", 1, "DM"),
    DataQualityIssue("DQ-005", "duplicate", "DQ", "Duplicate lab records",
                     "Multiple lab entries found for same subject on same date", "closed", "low", 1, "LB"),
    DataQualityIssue("DQ-006", "format_error", "DQ", "Invalid date format",
                     "Dates in non-standard format detected in imported data", "detected", "low", 1, "SUPPDM"),
    DataQualityIssue("DQ-007", "inconsistent_data", "Reconciliation", "MedDRA coding inconsistency",
                     "AE terms have inconsistent coding between EDC and safety database", "reviewing", "medium", 1,
                     "AE"),
]


def build_trial_health(now: Optional[datetime] = None) -> Dict[int, DataTrialHealth]:
    now = now or datetime.now()

    def sources(edc, ctms, labs):
        return [
            DataSourceHealth("EDC", edc[0], edc[1], now - timedelta(days=edc[2]), edc[3]),
            DataSourceHealth("CTMS", ctms[0], ctms[1], now - timedelta(days=ctms[2]), ctms[3]),
            DataSourceHealth("Labs", labs[0], labs[1], now - timedelta(days=labs[2]), labs[3]),
        ]

    def domains(*rows):
        return [DomainHealth(*row) for row in rows]

    return {
        1: DataTrialHealth(
            87, 92, 95, 89, 78, 88, 'low', 'improving',
            sources(('active', 1243, 2, 5), ('active', 842, 3, 2), ('active', 3127, 1, 8)),
            domains(('DM', 156, 2, 98), ('VS', 842, 5, 93), ('LB', 3127, 7, 91), ('AE', 68, 1, 94)),
        ),
        2: DataTrialHealth(
            76, 82, 88, 79, 65, 78, 'medium', 'stable',
            sources(('active', 876, 5, 12), ('active', 542, 7, 4), ('active', 1876, 2, 15)),
            domains(('DM', 98, 4, 91), ('VS', 542, 8, 86), ('LB', 1876, 14, 83), ('AE', 127, 5, 88)),
        ),
        3: DataTrialHealth(
            65, 72, 81, 68, 58, 69, 'high', 'declining',
            sources(('active', 623, 8, 18), ('active', 317, 10, 7), ('error', 1254, 12, 24)),
            domains(('DM', 72, 7, 82), ('VS', 317, 12, 76), ('LB', 1254, 21, 64), ('AE', 205, 16, 71)),
        ),
        4: DataTrialHealth(
            81, 85, 92, 84, 71, 83, 'low', 'improving',
            sources(('active', 927, 3, 9), ('active', 652, 4, 5), ('active', 2463, 2, 11)),
            domains(('DM', 118, 3, 95), ('VS', 652, 6, 89), ('LB', 2463, 9, 87), ('AE', 94, 4, 90)),
        ),
    }


# ============== Assistant ==============

class DataManagerBot:
    """Ordered keyword dispatcher for data management questions"""

    name = "data-manager"

    def __init__(self, issues: Optional[List[DataQualityIssue]] = None, rng: Optional[random.Random] = None,
                 default_trial_id: int = 1, now: Optional[datetime] = None):
        self.issues = issues if issues is not None else list(DQ_ISSUES)
        self.trial_health = build_trial_health(now)
        self.settings = DataManagerSettings()
        self._random = rng or random.Random()
        self.default_trial_id = default_trial_id

    def greeting(self, context: AssistantContext) -> str:
        trial = f" for {context.trial_name}" if context.trial_name else ""
        return f"Hello! I'm your Data Manager AI assistant. How can I help you with data quality management{trial}?"

    def get_response(self, text: str, context: Optional[AssistantContext] = None) -> str:
        context = context or AssistantContext()
        lc = text.lower()
        trial_id = context.trial_id or self.default_trial_id

        if is_greeting(lc):
            return self.greeting(context)

        # Actions
        if "run" in lc and contains_any(lc, "check", "dq"):
            return self.run_quality_checks(trial_id)
        if "create" in lc and "task" in lc:
            return self.create_task(text, trial_id)
        if "assign" in lc and "task" in lc:
            return self.assign_task(text)
        issue_match = ISSUE_ID_PATTERN.search(lc)
        if "view" in lc and "task" in lc and issue_match:
            return self.task_details(issue_match.group(0).upper(), trial_id)

        # Trial health
        if contains_any(lc, "trial", "study") and contains_any(lc, "health", "status", "summary"):
            return self.trial_health_summary(trial_id)
        if "data source" in lc or ("source" in lc and "health" in lc):
            return self.data_source_details(trial_id)
        if "domain" in lc and contains_any(lc, "health", "status"):
            return self.domain_health_details(trial_id)
        if "completeness" in lc or ("complete" in lc and "data" in lc):
            return self.data_completeness(trial_id)
        if contains_any(lc, "recommend", "suggestion", "advice"):
            return self.recommendations(trial_id)

        # Issues
        if "how many" in lc and contains_any(lc, "dq", "issues", "data quality"):
            return self.issues_by_category()
        if "issue" in lc and "domain" in lc:
            return self.issues_by_domain()
        if "issue" in lc and contains_any(lc, "severity", "critical", "high"):
            return self.issues_by_severity()
        if "open" in lc and "issue" in lc:
            return f"There are currently {self.open_issues_count()} open issues that need attention."
        if issue_match:
            return self.issue_detail(issue_match.group(0))

        # Settings
        if contains_any(lc, "settings", "configuration", "configure", "setup"):
            return ("You can adjust the Data Manager settings in the Settings tab. This includes data quality "
                    "checks, reconciliation rules, compliance settings, and monitoring configurations.")
        if contains_any(lc, "monitoring", "schedule"):
            return self.monitoring_mode()
        if contains_any(lc, "checks", "enabled"):
            return self.enabled_checks()

        # General help
        if contains_any(lc, "dq", "data quality", "check"):
            return ("Data quality checks include missing data detection, out-of-range values, invalid formats, "
                    "data consistency checks, and cross-form validation. You can enable or disable these in "
                    "the Settings tab.")
        if contains_any(lc, "reconciliation", "cross-check", "cross source"):
            return ("Reconciliation ensures data consistency across different sources. We check subject "
                    "matching, demographics matching, adverse events vs. medical history, and lab value "
                    "matching between different data systems.")
        if contains_any(lc, "compliance", "regulatory", "protocol"):
            return ("Compliance settings include protocol adherence checking, audit trail monitoring, protocol "
                    "deviation detection, and regulatory standard alerts. These help maintain study compliance "
                    "with regulatory requirements.")
        if contains_any(lc, "task", "query", "issue"):
            return ("When data quality or reconciliation issues are detected, the system creates tasks and "
                    "assigns them to appropriate team members. You can view and manage these tasks in the "
                    "Issues tab.")
        if contains_any(lc, "reports", "reporting", "analytics"):
            return ("The Reports tab provides insights on study health, including data quality metrics, "
                    "reconciliation status, issue tracking, and compliance metrics. You can export these "
                    "reports for further analysis.")
        if contains_any(lc, "logs", "history", "event"):
            return ("Event logs track all monitoring activities, including when checks were run, issues "
                    "detected, and actions taken. You can view these in the Logs tab.")
        if contains_any(lc, "recent", "activity", "last run"):
            return self.recent_activity()

        return (
            f"I understand you're asking about \"{text}\". For specific data management questions, "
            "try asking about:\n"
            "- Trial health summary\n"
            "- Data source health status\n"
            "- Domain completeness\n"
            "- What are your recommendations?\n"
            "- How many DQ issues are there?\n"
            "- What checks are enabled?\n"
            "- Show me issues by domain\n"
            "- Tell me about issue DQ-001"
        )

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def open_issues_count(self) -> int:
        return sum(1 for i in self.issues if i.status not in ('closed', 'resolved'))

    def issues_by_domain(self) -> str:
        counts: Dict[str, int] = {}
        for issue in self.issues:
            counts[issue.domain] = counts.get(issue.domain, 0) + 1

        response = "Issues by domain:\n"
        for domain, count in counts.items():
            response += f"- {domain}: {count} issue{'' if count == 1 else 's'}\n"
        return response

    def issues_by_category(self) -> str:
        dq = sum(1 for i in self.issues if i.issue_category == 'DQ')
        rec = sum(1 for i in self.issues if i.issue_category == 'Reconciliation')
        return f"There are {dq} data quality issues and {rec} reconciliation issues."

    def issues_by_severity(self) -> str:
        counts = {'critical': 0, 'high': 0, 'medium': 0, 'low': 0}
        for issue in self.issues:
            counts[issue.severity] += 1
        return (
            "Issue severity breakdown:\n"
            f"- Critical: {counts['critical']}\n"
            f"- High: {counts['high']}\n"
            f"- Medium: {counts['medium']}\n"
            f"- Low: {counts['low']}"
        )

    def issue_detail(self, issue_id: str) -> str:
        issue = next((i for i in self.issues if i.id.lower() == issue_id.lower()), None)
        if issue is None:
            return f"No issue found with ID {issue_id}. Please check the issue ID and try again."
        return (
            f"Issue {issue.id}: {issue.title}\n"
            f"- Type: {issue.type.replace('_', ' ', 1)}\n"
            f"- Category: {issue.issue_category}\n"
            f"- Severity: {issue.severity}\n"
            f"- Status: {issue.status}\n"
            f"- Domain: {issue.domain}\n"
            f"- Description: {issue.description}"
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def monitoring_mode(self) -> str:
        if self.settings.active_monitoring:
            return ("Active Monitoring is currently enabled. The system is continuously monitoring data refresh "
                    "events and query responses in real-time.")
        if self.settings.scheduled_monitoring:
            return f"Scheduled Monitoring is currently enabled with {self.settings.frequency} frequency."
        return ("No monitoring mode is currently active. Please enable either Active Monitoring or "
                "Scheduled Monitoring in Settings.")

    def enabled_checks(self) -> str:
        response = "Currently enabled checks:\n"
        for group, checks in self.settings.checks.items():
            response += f"\n{group}:\n"
            for check, enabled in checks.items():
                if enabled:
                    response += f"- {check}\n"
        return response

    def recent_activity(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now()

        def day(days_ago):
            return format_date(now - timedelta(days=days_ago))

        return (
            "Recent activity:\n"
            f"- {day(0)}: Run DQ and Reconciliation ({len(self.issues)} issues found)\n"
            f"- {day(2)}: Data refresh from EDC (25 records updated)\n"
            f"- {day(3)}: Lab data import (142 records added)\n"
            f"- {day(5)}: Protocol amendment processed"
        )

    # ------------------------------------------------------------------
    # Trial health
    # ------------------------------------------------------------------

    def trial_health_summary(self, trial_id: int) -> str:
        health = self.trial_health.get(trial_id)
        if health is None:
            return "No health data available for this trial."

        if health.risk_level == 'high':
            focus = "The most critical areas to focus on are data completeness and query resolution."
        else:
            focus = "The key areas to focus on are maintaining compliance and data quality."
        return (
            "Trial Health Summary:\n"
            f"- Overall Health Score: {health.overall_health}/100 ({health.risk_level} risk)\n"
            f"- Data Quality Score: {health.dq_score}/100\n"
            f"- Reconciliation Score: {health.reconciliation_score}/100\n"
            f"- Compliance Score: {health.compliance_score}/100\n"
            f"- Data Completeness: {health.data_completeness}%\n"
            f"- Query Resolution Rate: {health.query_resolution_rate}%\n"
            f"- Trend: {health.trends_direction}\n\n"
            f"{focus}"
        )

    def data_source_details(self, trial_id: int) -> str:
        health = self.trial_health.get(trial_id)
        if health is None:
            return "No data source information available for this trial."

        response = "Data Source Status:\n"
        for source in health.data_sources:
            response += (f"- {source.name}: {source.status.upper()} | {source.record_count:,} records | "
                         f"Last update: {format_date(source.last_update)} | {source.dq_issues} issues\n")

        total_records = sum(s.record_count for s in health.data_sources)
        total_issues = sum(s.dq_issues for s in health.data_sources)
        errors = sum(1 for s in health.data_sources if s.status == 'error')

        response += (f"\nTotal: {total_records:,} records across {len(health.data_sources)} sources "
                     f"with {total_issues} data quality issues.")
        if errors:
            response += (f"\n⚠️ Warning: {errors} data source{'s' if errors > 1 else ''} "
                         "with error status requiring attention.")
        return response

    def domain_health_details(self, trial_id: int) -> str:
        health = self.trial_health.get(trial_id)
        if health is None:
            return "No domain information available for this trial."

        response = "Domain Health Status:\n"
        for domain in health.domains:
            response += (f"- {domain.name}: {domain.completeness}% complete | {domain.record_count:,} records | "
                         f"{domain.issue_count} issues\n")

        most_issues = max(health.domains, key=lambda d: d.issue_count)
        least_complete = min(health.domains, key=lambda d: d.completeness)
        response += (
            "\nRecommendations:\n"
            f"- Focus on the {most_issues.name} domain which has the highest number of issues "
            f"({most_issues.issue_count})\n"
            f"- Improve data completeness in the {least_complete.name} domain "
            f"(currently at {least_complete.completeness}%)"
        )
        return response

    def data_completeness(self, trial_id: int) -> str:
        health = self.trial_health.get(trial_id)
        if health is None:
            return "No completeness information available for this trial."

        average = sum(d.completeness for d in health.domains) / len(health.domains)
        response = (
            "Data Completeness Analysis:\n"
            f"- Overall completeness: {health.data_completeness}%\n"
            f"- Average domain completeness: {average:.1f}%\n"
            "- Domains below 85% completeness: "
        )
        low = [d for d in health.domains if d.completeness < 85]
        if not low:
            response += "None - all domains have good completeness levels"
        else:
            response += "\n"
            for domain in low:
                response += f"  • {domain.name}: {domain.completeness}% complete\n"
        return response

    def recommendations(self, trial_id: int) -> str:
        health = self.trial_health.get(trial_id)
        if health is None:
            return "No recommendations available for this trial."

        lines = []
        if health.dq_score < 75:
            lines += ["Run focused data quality checks on all domains",
                      "Prioritize cleaning critical data elements in the DM and VS domains"]
        if health.reconciliation_score < 80:
            lines += ["Review cross-source data mapping configurations",
                      "Run reconciliation between EDC and Lab data"]
        if health.compliance_score < 85:
            lines += ["Conduct protocol deviation review",
                      "Update compliance controls based on recent regulatory changes"]
        if health.query_resolution_rate < 70:
            lines += ["Follow up with sites on open queries",
                      "Consider query response training for underperforming sites"]
        if any(s.status == 'error' for s in health.data_sources):
            lines += ["Investigate and resolve data source connection errors",
                      "Verify data integrity after connection is restored"]
        low = [d.name for d in health.domains if d.completeness < 80]
        if low:
            lines.append(f"Focus on improving completeness of {', '.join(low)} domains")
        if not lines:
            lines = ["Continue regular monitoring and maintain current data quality processes",
                     "Consider increasing frequency of automated checks for early issue detection"]

        return "Recommendations Based on Trial Health:\n" + "".join(f"- {line}\n" for line in lines)

    # ------------------------------------------------------------------
    # Simulated actions
    # ------------------------------------------------------------------

    def run_quality_checks(self, trial_id: int) -> str:
        found = self._random.randint(1, 10)
        critical = self._random.randint(0, 2)
        high = self._random.randint(0, 3)
        medium = max(0, found - critical - high)
        logger.info(f"Simulated DQ run for trial {trial_id}: {found} issues")
        return (
            f"✅ Data quality checks completed for Trial #{trial_id}!\n\n"
            f"Found {found} issues:\n• {critical} Critical\n• {high} High\n• {medium} Medium\n\n"
            "The issues have been added to the Issues tab and tasks have been created for the appropriate "
            "team members."
        )

    def create_task(self, text: str, trial_id: int) -> str:
        lc = text.lower()
        title = extract_after("title", text) or "Data quality review"
        if "critical" in lc:
            priority = "Critical"
        elif "high" in lc:
            priority = "High"
        elif "low" in lc:
            priority = "Low"
        else:
            priority = "Medium"

        task_id = f"DQ-{self._random.randint(100, 999)}"
        return (
            "✅ New task created successfully!\n\n"
            f"Task ID: {task_id}\nTitle: {title}\nPriority: {priority}\nTrial: {trial_id}\nStatus: Open\n\n"
            "The task has been added to the Tasks tab and assigned to the data management team."
        )

    def assign_task(self, text: str) -> str:
        match = TASK_REF_PATTERN.search(text)
        task_id = match.group(0).upper() if match else f"DQ-{self._random.randint(100, 999)}"
        assignee = extract_after("to", text) or "Data Manager"
        return (
            f"✅ Task {task_id} has been assigned to {assignee}.\n\n"
            "A notification has been sent to the assignee, and the task status has been updated to "
            "\"Assigned\" in the Tasks tab."
        )

    def task_details(self, task_id: str, trial_id: int, now: Optional[datetime] = None) -> str:
        now = now or datetime.now()
        return (
            f"Task Details for {task_id}:\n\n"
            f"ID: {task_id}\n"
            f"Trial: Trial #{trial_id}\n"
            "Status: In Progress\n"
            "Priority: High\n"
            "Assigned To: Data Manager\n"
            f"Due Date: {format_date(now)}\n\n"
            "Description: Review data quality issues and resolve inconsistencies in the lab data domain.\n\n"
            "Comments:\n"
            f"- [{format_date(now - timedelta(days=1))}] Created by DataManager.AI\n"
            f"- [{format_date(now)}] Assigned to Data Manager\n\n"
            "Actions:\n"
            "1. Type \"add comment: <your comment>\" to add a comment\n"
            "2. Type \"change status: in_progress\" to update status\n"
            "3. Type \"assign to: <role>\" to reassign the task\n\n"
            "Would you like to perform any actions on this task?"
        )
