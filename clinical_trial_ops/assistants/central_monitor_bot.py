"""
Central Monitor Assistant
Keyword-driven assistant answering central monitoring questions about
trial health, site performance, DB lock readiness, queries and tasks.
"""

import random
import re
import logging
from datetime import datetime
from typing import Optional

from clinical_trial_ops.assistants.base import (
    AssistantContext,
    contains_any,
    extract_after,
    extract_site_id,
    format_date,
    format_relative_date,
    is_greeting,
)
from clinical_trial_ops.assistants.monitor_data import MonitorDataSet, build_monitor_data

logger = logging.getLogger(__name__)

QUERY_ID_PATTERN = re.compile(r"q-\d{3}")
TASK_ID_PATTERN = re.compile(r"t-\d{3}")

LOCK_STATUS_ORDER = {'pending': 0, 'in_progress': 1, 'ready': 2, 'complete': 3}
RISK_ORDER = {'high': 0, 'medium': 1, 'low': 2}

TRIAL_NAMES = {1: 'Diabetes Type 2', 2: 'Rheumatoid Arthritis', 3: 'Advanced Breast Cancer'}

HELP_TOPICS = (
    "- Trial health summary\n"
    "- Site performance overview\n"
    "- Compliance metrics\n"
    "- What are your recommendations?\n"
    "- How many open queries are there?\n"
    "- Tell me about query Q-001\n"
    "- What monitoring mode is active?\n"
    "- Show recent activity"
)


def _enabled(flag: bool) -> str:
    return "Enabled" if flag else "Disabled"


def _priority_from(text: str) -> str:
    if "critical" in text:
        return "Critical"
    if "high" in text:
        return "High"
    if "low" in text:
        return "Low"
    return "Medium"


class CentralMonitorBot:
    """
    Ordered keyword dispatcher over the central monitoring demo data.

    Rules are checked top to bottom against the lowercased input and the
    first match answers. Values such as titles or assignees are extracted
    from the original text so their casing survives.
    """

    name = "central-monitor"

    def __init__(self, data: Optional[MonitorDataSet] = None, rng: Optional[random.Random] = None,
                 default_trial_id: int = 1):
        self.data = data or build_monitor_data()
        self._random = rng or random.Random()
        self.default_trial_id = default_trial_id

    def greeting(self, context: AssistantContext) -> str:
        trial = f" for {context.trial_name}" if context.trial_name else ""
        site = f" at {context.site_name}" if context.site_name else ""
        return (
            "Hello! I'm your Central Monitor AI assistant. "
            f"How can I help you with central monitoring activities{trial}{site}?"
        )

    def get_response(self, text: str, context: Optional[AssistantContext] = None) -> str:
        context = context or AssistantContext()
        lc = text.lower()
        trial_id = context.trial_id or self.default_trial_id

        if is_greeting(lc):
            return self.greeting(context)

        # Actions
        if "create" in lc and "query" in lc:
            return self.create_new_query(text, trial_id, context.site_id)
        if "assign" in lc and "query" in lc:
            return self.assign_query(text)
        if "send" in lc and "notification" in lc:
            return self.send_notification(text)
        if "signal" in lc and contains_any(lc, "create", "detect"):
            return self.create_signal(text, trial_id)

        # Trial and site health
        if contains_any(lc, "trial", "study") and contains_any(lc, "health", "status", "summary"):
            return self.trial_health_summary(trial_id)
        if "site" in lc and contains_any(lc, "performance", "health", "status", "summary"):
            return self.site_performance_summary(trial_id, extract_site_id(lc, context))
        if contains_any(lc, "db lock", "dblock", "lock status"):
            return self.db_lock_compliance_report(trial_id, extract_site_id(lc, context))
        if contains_any(lc, "compliance", "protocol", "adherence"):
            return self.compliance_details(trial_id)
        if contains_any(lc, "recommend", "suggestion", "advice"):
            return self.monitoring_recommendations(trial_id)

        # Counts
        if contains_any(lc, "how many", "count") and "quer" in lc:
            return f"There are currently {self.open_queries_count()} open queries that need attention."
        if contains_any(lc, "how many", "count") and "task" in lc:
            if "overdue" in lc:
                return f"There are {self.overdue_tasks_count()} overdue tasks that require immediate attention."
            return f"There are {self.pending_tasks_count()} pending tasks that need to be completed."

        # Lookups by id
        match = QUERY_ID_PATTERN.search(lc)
        if match:
            return self.query_details(match.group(0))
        match = TASK_ID_PATTERN.search(lc)
        if match:
            return self.task_details(match.group(0))

        if "quer" in lc and contains_any(lc, "site", "center", "hospital"):
            return self.queries_by_site(extract_site_id(lc, context))
        if "task" in lc and contains_any(lc, "site", "center", "hospital"):
            return self.tasks_by_site(extract_site_id(lc, context))

        # Settings
        if contains_any(lc, "settings", "configuration", "configure", "setup"):
            return ("Central Monitor.AI settings include monitoring mode, alert configurations, and event "
                    "triggers. You can adjust these in the Settings tab.")
        if contains_any(lc, "monitoring", "schedule"):
            return self.monitoring_mode()
        if contains_any(lc, "alert", "notification", "email", "sms"):
            return self.alert_settings()
        if contains_any(lc, "trigger", "event", "action"):
            return self.trigger_settings()

        if contains_any(lc, "recent", "activity", "last", "latest"):
            return self.recent_activity()

        if contains_any(lc, "create", "new", "add") and "query" in lc:
            return ("To create a new query, go to the Queries tab and click the 'Create Query' button. "
                    "Fill in the details including site, subject, priority, and description, then assign "
                    "it to the appropriate person.")
        if contains_any(lc, "create", "new", "add") and "task" in lc:
            return ("To create a new task, go to the Tasks tab and click the 'Create Task' button. "
                    "Define the task details, priority, due date, and assign it to a team member.")

        if contains_any(lc, "dashboard", "overview", "summary"):
            return self.dashboard_summary(trial_id, context)

        return (
            f"I understand you're asking about \"{text}\". For specific central monitoring questions, "
            f"try asking about:\n{HELP_TOPICS}"
        )

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    def open_queries_count(self) -> int:
        return sum(1 for q in self.data.queries if q.status != 'closed')

    def pending_tasks_count(self) -> int:
        return sum(1 for t in self.data.tasks if t.status != 'closed')

    def overdue_tasks_count(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now()
        return sum(1 for t in self.data.tasks if t.status != 'closed' and t.due_date < now)

    # ------------------------------------------------------------------
    # Queries and tasks
    # ------------------------------------------------------------------

    def query_details(self, query_id: str) -> str:
        query = next((q for q in self.data.queries if q.id.lower() == query_id.lower()), None)
        if query is None:
            return f"No query found with ID {query_id}. Please check the query ID and try again."

        response = (
            f"Query {query.id}: {query.title}\n"
            f"- Site: {query.site_name} ({query.site_id})\n"
            f"- Priority: {query.priority}\n"
            f"- Status: {query.status}\n"
            f"- Domain: {query.domain}\n"
            f"- Assignee: {query.assignee}\n"
            f"- Created: {format_date(query.created)}\n"
            f"- Description: {query.description}"
        )
        if query.responses:
            response += "\n\nResponses:"
            for resp in query.responses:
                response += f"\n- {format_date(resp.created_at)} | {resp.responder} ({resp.role}): \"{resp.content}\""
        else:
            response += "\n\nNo responses yet."
        return response

    def task_details(self, task_id: str) -> str:
        task = next((t for t in self.data.tasks if t.id.lower() == task_id.lower()), None)
        if task is None:
            return f"No task found with ID {task_id}. Please check the task ID and try again."

        overdue = " (OVERDUE)" if task.due_date < datetime.now() else ""
        response = (
            f"Task {task.id}: {task.title}\n"
            f"- Site: {task.site_name} ({task.site_id})\n"
            f"- Priority: {task.priority}\n"
            f"- Status: {task.status}\n"
            f"- Assignee: {task.assignee}\n"
            f"- Created: {format_date(task.created)}\n"
            f"- Due: {format_date(task.due_date)}{overdue}\n"
            f"- Description: {task.description}"
        )
        if task.comments:
            response += "\n\nComments:"
            for comment in task.comments:
                response += (f"\n- {format_date(comment.created_at)} | {comment.commenter} "
                             f"({comment.role}): \"{comment.content}\"")
        else:
            response += "\n\nNo comments yet."
        return response

    def queries_by_site(self, site_id: Optional[int] = None) -> str:
        if site_id:
            site_queries = [q for q in self.data.queries if q.site_id == site_id]
            if not site_queries:
                return f"No queries found for site {site_id}."
            response = f"Queries for {site_queries[0].site_name} (Site {site_id}):\n"
            for q in site_queries:
                response += f"- {q.id}: {q.title} | {q.priority} priority | {q.status}\n"
            return response

        grouped = {}
        for q in self.data.queries:
            grouped.setdefault(q.site_id, []).append(q)
        response = "Queries by site:\n"
        for sid, site_queries in grouped.items():
            response += f"\n{site_queries[0].site_name} (Site {sid}): {len(site_queries)} queries\n"
            for q in site_queries:
                response += f"  - {q.id}: {q.title} | {q.status}\n"
        return response

    def tasks_by_site(self, site_id: Optional[int] = None) -> str:
        if site_id:
            site_tasks = [t for t in self.data.tasks if t.site_id == site_id]
            if not site_tasks:
                return f"No tasks found for site {site_id}."
            response = f"Tasks for {site_tasks[0].site_name} (Site {site_id}):\n"
            for t in site_tasks:
                response += f"- {t.id}: {t.title} | {t.priority} priority | {t.status}\n"
            return response

        grouped = {}
        for t in self.data.tasks:
            grouped.setdefault(t.site_id, []).append(t)
        response = "Tasks by site:\n"
        for sid, site_tasks in grouped.items():
            response += f"\n{site_tasks[0].site_name} (Site {sid}): {len(site_tasks)} tasks\n"
            for t in site_tasks:
                response += f"  - {t.id}: {t.title} | {t.status}\n"
        return response

    # ------------------------------------------------------------------
    # Settings and activity
    # ------------------------------------------------------------------

    def monitoring_mode(self) -> str:
        settings = self.data.settings
        if settings.active_monitoring:
            return ("Active Monitoring is currently enabled. The system is continuously monitoring site "
                    "activities, query responses, and data submissions in real-time.")
        if settings.scheduled_monitoring:
            return f"Scheduled Monitoring is currently enabled with {settings.frequency} frequency."
        return ("No monitoring mode is currently active. Please enable either Active Monitoring or "
                "Scheduled Monitoring in Settings.")

    def alert_settings(self) -> str:
        s = self.data.settings
        return (
            "Current alert settings:\n"
            f"- Email alerts: {_enabled(s.email_alerts)}\n"
            f"- System alerts: {_enabled(s.system_alerts)}\n"
            f"- SMS alerts: {_enabled(s.sms_alerts)}\n"
            f"- Alert escalation: {_enabled(s.escalation)}"
        )

    def trigger_settings(self) -> str:
        s = self.data.settings
        return (
            "Current trigger settings:\n"
            f"- Data refresh events: {_enabled(s.data_refresh)}\n"
            f"- Query response events: {_enabled(s.query_responses)}\n"
            f"- Threshold violations: {_enabled(s.threshold_violations)}\n"
            f"- Site actions: {_enabled(s.site_actions)}"
        )

    def recent_activity(self) -> str:
        events = []
        for q in self.data.queries:
            events.append(('Query', q.id, 'created', q.created))
            for r in q.responses:
                events.append(('Response', q.id, f"responded by {r.responder}", r.created_at))
        for t in self.data.tasks:
            events.append(('Task', t.id, 'created', t.created))
            for c in t.comments:
                events.append(('Comment', t.id, f"comment by {c.commenter}", c.created_at))

        events.sort(key=lambda e: e[3], reverse=True)

        response = "Recent activity:\n"
        for kind, entity, action, when in events[:5]:
            response += f"- {format_relative_date(when)}: {kind} {entity} {action}\n"
        return response

    # ------------------------------------------------------------------
    # Trial health
    # ------------------------------------------------------------------

    def trial_health_summary(self, trial_id: int) -> str:
        health = self.data.trial_health.get(trial_id)
        if health is None:
            return "No health data available for this trial."

        if health.risk_level == 'high':
            verdict = "This trial requires immediate attention."
        elif health.risk_level == 'medium':
            verdict = "This trial needs closer monitoring."
        else:
            verdict = "This trial is performing well with low risk."

        subjects = sum(s.subject_count for s in health.sites)
        return (
            "Trial Health Summary:\n"
            f"- Overall Health Score: {health.overall_health}/100 ({health.risk_level} risk)\n"
            f"- Risk Score: {health.risk_score}/100\n"
            f"- Subject Compliance: {health.subject_compliance}%\n"
            f"- Data Quality: {health.data_quality}%\n"
            f"- Protocol Deviations: {health.protocol_deviations}\n"
            f"- SAE Reporting: {health.sae_reporting}%\n"
            f"- Query Response Rate: {health.query_response_rate}%\n"
            f"- Avg. Query Response Time: {health.avg_query_response_time} days\n"
            f"- Trend: {health.trends_direction}\n\n"
            f"The trial has {len(health.sites)} active sites with a total of {subjects} subjects.\n"
            f"{verdict} "
        )

    def db_lock_compliance_report(self, trial_id: int, site_id: Optional[int] = None) -> str:
        health = self.data.trial_health.get(trial_id)
        if health is None:
            return "No DB Lock compliance data available for this trial."
        lock = health.db_lock_compliance
        if lock is None:
            return "DB Lock compliance tracking is not active for this trial."

        if site_id:
            site = next((s for s in health.sites if s.site_id == site_id), None)
            if site is None:
                return f"No data available for site {site_id}."
            if not site.db_lock_status:
                return f"DB Lock status not available for site {site_id}."

            status_notes = {
                'complete': "This site has completed DB Lock requirements.",
                'ready': "This site is ready for DB Lock review.",
                'in_progress': "This site is actively working on DB Lock requirements.",
            }
            note = status_notes.get(site.db_lock_status, "This site has not started DB Lock preparations.")
            return (
                f"DB Lock Status - {site.site_name} (ID: {site.site_id}):\n"
                f"- Current Status: {site.db_lock_status.upper()}\n"
                f"- Outstanding Issues: {site.outstanding_lock_issues or 0}\n"
                f"- Last Updated: {format_date(site.last_monitored)}\n\n"
                f"{note}"
            )

        response = (
            "DB Lock Compliance Summary for Trial:\n"
            f"- Status: {lock.status.upper()}\n"
            f"- Overall Readiness: {lock.readiness}%\n"
            f"- Outstanding Issues: {lock.outstanding_issues}\n"
            f"- Estimated Lock Date: {format_date(lock.estimated_lock_date)}\n\n"
            "Progress Breakdown:\n"
            f"- Data Entry Complete: {lock.data_entry_complete}%\n"
            f"- Query Resolution: {lock.query_resolution}%\n"
            f"- Medical Review: {lock.medical_review}%\n"
            f"- SDV Complete: {lock.sdv_complete}%\n"
            f"- Ready for Export: {'Yes' if lock.ready_for_export else 'No'}\n\n"
            "Site Breakdown:"
        )
        sites = sorted(
            (s for s in health.sites if s.db_lock_status),
            key=lambda s: LOCK_STATUS_ORDER.get(s.db_lock_status, 0),
        )
        for site in sites:
            response += f"\n- {site.site_name}: {site.db_lock_status.upper()} ({site.outstanding_lock_issues} issues)"
        return response

    def site_performance_summary(self, trial_id: int, site_id: Optional[int] = None) -> str:
        health = self.data.trial_health.get(trial_id)
        if health is None:
            return "No health data available for this trial."

        if site_id:
            site = next((s for s in health.sites if s.site_id == site_id), None)
            if site is None:
                return f"No data available for site {site_id}."

            if site.risk_level == 'high':
                verdict = "This site requires immediate attention and intervention."
            elif site.risk_level == 'medium':
                verdict = "This site needs closer monitoring and follow-up actions."
            else:
                verdict = "This site is performing well with good compliance."
            return (
                f"Site Performance - {site.site_name} (ID: {site.site_id}):\n"
                f"- Status: {site.status.upper()}\n"
                f"- Performance Score: {site.performance_score}/100\n"
                f"- Risk Level: {site.risk_level.upper()}\n"
                f"- Subject Count: {site.subject_count}\n"
                f"- Open Queries: {site.open_queries}\n"
                f"- Open Tasks: {site.open_tasks}\n"
                f"- Last Monitored: {format_date(site.last_monitored)}\n\n"
                f"{verdict} "
            )

        sites = sorted(health.sites, key=lambda s: RISK_ORDER.get(s.risk_level, 2))
        response = "Site Performance Summary:\n"
        for s in sites:
            response += (
                f"- {s.site_name} (ID: {s.site_id}): {s.performance_score}/100 | {s.risk_level.upper()} risk | "
                f"{s.subject_count} subjects | {s.open_queries + s.open_tasks} open issues\n"
            )
        high = sum(1 for s in sites if s.risk_level == 'high')
        medium = sum(1 for s in sites if s.risk_level == 'medium')
        response += (f"\nRisk Breakdown: {high} high risk, {medium} medium risk, "
                     f"{len(sites) - high - medium} low risk sites.")
        return response

    def compliance_details(self, trial_id: int) -> str:
        health = self.data.trial_health.get(trial_id)
        if health is None:
            return "No compliance data available for this trial."

        name = TRIAL_NAMES.get(trial_id, "Alzheimer's Disease")
        response = (
            f"Compliance Metrics for {name} Study:\n"
            f"- Overall Compliance: {health.subject_compliance}%\n"
            f"- Protocol Deviations: {health.protocol_deviations}\n"
            f"- SAE Reporting Compliance: {health.sae_reporting}%\n"
            f"- Query Response Rate: {health.query_response_rate}%\n"
            f"- Data Quality Score: {health.data_quality}%\n"
            "\nRecommendations:\n"
        )
        if health.protocol_deviations > 10:
            response += "- Conduct protocol retraining at all sites to reduce protocol deviations\n"
        if health.sae_reporting < 90:
            response += "- Implement SAE reporting reminder system\n"
        if health.query_response_rate < 70:
            response += "- Follow up with sites on outstanding queries\n"
        if health.data_quality < 80:
            response += "- Schedule data quality review meeting with DM team\n"
        return response

    def monitoring_recommendations(self, trial_id: int) -> str:
        health = self.data.trial_health.get(trial_id)
        if health is None:
            return "No data available to make recommendations."

        response = "Monitoring Recommendations:\n"
        if health.risk_level == 'high':
            response += ("- Increase monitoring frequency to weekly\n"
                         "- Schedule urgent review meeting with study team\n"
                         "- Initiate quality improvement plan\n")
        elif health.risk_level == 'medium':
            response += ("- Maintain bi-weekly monitoring schedule\n"
                         "- Focus on addressing protocol deviations\n")
        else:
            response += ("- Continue monthly monitoring routine\n"
                         "- Maintain current oversight activities\n")

        high_risk = [s for s in health.sites if s.risk_level == 'high']
        if high_risk:
            response += "\nHigh-Risk Sites that need immediate attention:\n"
            for s in high_risk:
                response += (f"- {s.site_name}: Schedule on-site visit, review {s.open_queries} open queries "
                             f"and {s.open_tasks} outstanding tasks\n")

        if health.avg_query_response_time > 5:
            response += ("\nQuery Management:\n"
                         "- Implement query escalation process for responses taking > 5 days\n"
                         "- Conduct query management training with sites\n")
        return response

    def dashboard_summary(self, trial_id: int, context: AssistantContext) -> str:
        health = self.data.trial_health.get(trial_id)
        responded = sum(1 for q in self.data.queries if q.responses)
        mode = "Active" if self.data.settings.active_monitoring else "Scheduled"
        return (
            f"Dashboard Summary for {context.trial_name or 'Current Trial'}:\n"
            f"- Health Score: {health.overall_health if health else 'N/A'}/100 "
            f"({health.risk_level.upper() if health else 'N/A'} risk)\n"
            f"- Open Queries: {self.open_queries_count()}\n"
            f"- Pending Tasks: {self.pending_tasks_count()}\n"
            f"- Overdue Tasks: {self.overdue_tasks_count()}\n"
            f"- Monitoring Mode: {mode}\n"
            f"- Risk Trend: {health.trends_direction if health else 'N/A'}\n"
            f"- Recent Activity: {responded} query responses in the last 7 days"
        )

    # ------------------------------------------------------------------
    # Simulated actions (nothing is persisted)
    # ------------------------------------------------------------------

    def _random_id(self, prefix: str) -> str:
        return f"{prefix}-{self._random.randint(100, 999)}"

    def create_new_query(self, text: str, trial_id: int, site_id: Optional[int] = None) -> str:
        lc = text.lower()
        title = extract_after("title", text) or "Data verification request"

        if "demographics" in lc:
            domain = "Demographics"
        elif contains_any(lc, "adverse", "ae"):
            domain = "Adverse Events"
        elif contains_any(lc, "lab", "laboratory"):
            domain = "Laboratory"
        elif contains_any(lc, "concomitant", "medication"):
            domain = "Concomitant Medications"
        else:
            domain = "General"

        query_id = self._random_id("Q")
        logger.info(f"Simulated query {query_id} created for trial {trial_id}")
        return (
            "✅ New query created successfully!\n\n"
            f"Query ID: {query_id}\n"
            f"Title: {title}\n"
            f"Priority: {_priority_from(lc)}\n"
            f"Trial: {trial_id}\n"
            f"Site: {site_id or 'All Sites'}\n"
            f"Domain: {domain}\n"
            "Status: Open\n\n"
            "The query has been sent to the site for resolution."
        )

    def assign_query(self, text: str) -> str:
        match = QUERY_ID_PATTERN.search(text.lower())
        query_id = match.group(0).upper() if match else self._random_id("Q")
        assignee = extract_after("to", text) or "Site Monitor"
        return (
            f"✅ Query {query_id} has been assigned to {assignee}.\n\n"
            "A notification has been sent to the assignee, and the query status has been updated to "
            "\"Assigned\" in the Queries tab."
        )

    def send_notification(self, text: str) -> str:
        recipient = extract_after("to", text) or "Site Staff"
        message = extract_after("message", text) or "Please review and respond to the pending queries"
        return (
            f"✅ Notification sent successfully to {recipient}:\n\n"
            f"\"{message}\"\n\n"
            "The notification has been logged and a follow-up reminder will be sent if no response is "
            "received within 48 hours."
        )

    def create_signal(self, text: str, trial_id: int) -> str:
        lc = text.lower()
        if "safety" in lc:
            signal_type = "Safety"
        elif "operational" in lc:
            signal_type = "Operational"
        elif "protocol" in lc:
            signal_type = "Protocol Deviation"
        else:
            signal_type = "Data Quality"

        title = extract_after("title", text) or f"{signal_type} Signal"
        detection_id = self._random_id("SD")
        return (
            "✅ New signal detected and recorded!\n\n"
            f"Signal ID: {detection_id}\n"
            f"Title: {title}\n"
            f"Type: {signal_type}\n"
            f"Priority: {_priority_from(lc)}\n"
            f"Trial: {trial_id}\n"
            "Status: New\n\n"
            "The signal has been added to the Signal Detection tab. Tasks will be automatically created "
            "for follow-up actions."
        )
