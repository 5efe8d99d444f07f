"""
Tests for the rule-based chat assistants and the assistant service
"""

import random
import pytest
from datetime import datetime, timedelta

from clinical_trial_ops.assistants import AssistantContext, CentralMonitorBot, DataManagerBot
from clinical_trial_ops.assistants.base import extract_after, extract_site_id, format_relative_date, is_greeting
from clinical_trial_ops.api.services.assistant_service import AssistantService, HUMAN_IN_LOOP_REPLY
from clinical_trial_ops.core.error_handling import RecordNotFoundError


class TestHelpers:
    """Text helpers shared by both assistants"""

    @pytest.mark.parametrize("text, expected", [
        ("hello there", True),
        ("hi, what's new", True),
        ("this is a highlight", False),
        ("show the hierarchy", False),
    ])
    def test_greeting_whole_words(self, text, expected):
        assert is_greeting(text) is expected

    def test_extract_after(self):
        assert extract_after("title", "create query title: Missing AE date, high") == "Missing AE date"
        assert extract_after("title", "create query") is None

    def test_site_id_falls_back_to_context(self):
        context = AssistantContext(site_id=1008)
        assert extract_site_id("site 1005 performance", context) == 1005
        assert extract_site_id("site performance", context) == 1008

    def test_relative_dates(self):
        now = datetime(2024, 5, 10, 12, 0)
        assert format_relative_date(now, now) == "today"
        assert format_relative_date(now - timedelta(days=1), now) == "yesterday"
        assert format_relative_date(now - timedelta(days=4), now) == "4 days ago"


class TestCentralMonitorBot:
    """Keyword dispatch over the central monitoring demo data"""

    @pytest.fixture
    def bot(self):
        return CentralMonitorBot(rng=random.Random(1))

    def test_greeting(self, bot):
        """Greetings mention the trial and site from context"""
        response = bot.get_response("Hello", AssistantContext(trial_name="PRO001", site_name="Site 123"))
        assert "Central Monitor AI assistant" in response
        assert "for PRO001 at Site 123" in response

    def test_create_query(self, bot):
        """Query creation extracts title, priority and domain"""
        response = bot.get_response("Please create a high priority query with title: Missing AE date, for adverse events")
        assert response.startswith("✅ New query created successfully!")
        assert "Title: Missing AE date" in response
        assert "Priority: High" in response
        assert "Domain: Adverse Events" in response
        assert "Site: All Sites" in response

    def test_open_query_count(self, bot):
        assert bot.get_response("How many open queries are there?") == \
            "There are currently 3 open queries that need attention."

    def test_overdue_task_count(self, bot):
        assert bot.overdue_tasks_count() == 0
        assert bot.overdue_tasks_count(datetime.now() + timedelta(days=3)) == 2

    def test_query_details(self, bot):
        response = bot.get_response("Tell me about query Q-002")
        assert response.startswith("Query Q-002: Protocol Deviation - Inclusion Criteria")
        assert "Responses:" in response
        assert "Dr. Johnson (Principal Investigator)" in response

    def test_unknown_query(self, bot):
        assert "No query found" in bot.get_response("Tell me about query Q-999")

    def test_task_details_without_comments(self, bot):
        response = bot.get_response("What about T-002?")
        assert response.startswith("Task T-002: Data Correction for Subject 1002-004")
        assert "No comments yet." in response

    def test_trial_health_uses_context(self, bot):
        response = bot.get_response("Give me the trial health summary", AssistantContext(trial_id=3))
        assert "Overall Health Score: 63/100 (high risk)" in response
        assert "requires immediate attention" in response

    def test_site_performance(self, bot):
        response = bot.get_response("Show site performance for site 1005")
        assert response.startswith("Site Performance - City Medical Center (ID: 1005)")
        assert "Risk Level: MEDIUM" in response

    def test_db_lock_summary_orders_sites(self, bot):
        """Sites are listed from least to most advanced lock status"""
        response = bot.get_response("What is the db lock status?")
        assert "Status: IN_PROGRESS" in response
        breakdown = response.split("Site Breakdown:")[1]
        assert breakdown.index("City Medical Center") < breakdown.index("Community Clinical Research")

    def test_recommendations_for_high_risk_trial(self, bot):
        response = bot.get_response("Any recommendations?", AssistantContext(trial_id=3))
        assert "Increase monitoring frequency to weekly" in response
        assert "High-Risk Sites" in response
        assert "Query Management" in response

    def test_monitoring_mode(self, bot):
        assert bot.get_response("What monitoring mode is active?").startswith("Active Monitoring is currently enabled")

    def test_fallback(self, bot):
        response = bot.get_response("banana")
        assert response.startswith('I understand you\'re asking about "banana"')
        assert "Tell me about query Q-001" in response


class TestDataManagerBot:
    """Keyword dispatch over the data management demo data"""

    @pytest.fixture
    def bot(self):
        return DataManagerBot(rng=random.Random(1))

    def test_greeting(self, bot):
        response = bot.get_response("hey", AssistantContext(trial_name="PRO002"))
        assert response.endswith("data quality management for PRO002?")

    def test_run_checks(self, bot):
        assert bot.get_response("Run DQ checks").startswith("✅ Data quality checks completed for Trial #1!")

    def test_issue_detail(self, bot):
        response = bot.get_response("Tell me about issue DQ-002")
        assert response.startswith("Issue DQ-002: ALT values out of range")
        assert "Severity: critical" in response

    def test_view_task_before_issue_lookup(self, bot):
        assert bot.get_response("View task DQ-001").startswith("Task Details for DQ-001")

    def test_issue_counts(self, bot):
        assert bot.get_response("How many DQ issues are there?") == \
            "There are 5 data quality issues and 2 reconciliation issues."
        assert bot.get_response("Which issues are still open?") == \
            "There are currently 5 open issues that need attention."

    def test_issues_by_domain(self, bot):
        response = bot.get_response("Show me issues by domain")
        assert "- LB: 2 issues" in response
        assert "- VS: 1 issue\n" in response

    def test_data_source_error_warning(self, bot):
        response = bot.get_response("Show data source health", AssistantContext(trial_id=3))
        assert "Labs: ERROR" in response
        assert "1 data source with error status" in response

    def test_domain_health(self, bot):
        response = bot.get_response("domain health please")
        assert "Focus on the LB domain which has the highest number of issues (7)" in response

    def test_enabled_checks(self, bot):
        response = bot.get_response("What checks are enabled?")
        assert "Missing Data Detection" in response
        assert "Audit Trail Monitoring" not in response

    def test_create_task(self, bot):
        response = bot.get_response("create task title: Reconcile labs, low priority")
        assert "Title: Reconcile labs" in response
        assert "Priority: Low" in response


class TestAssistantService:
    """Routing and session history"""

    @pytest.fixture
    def service(self):
        return AssistantService()

    def test_list(self, service):
        assert service.list_assistants() == ['central-monitor', 'data-manager']

    def test_unknown_assistant(self, service):
        with pytest.raises(RecordNotFoundError):
            service.chat('oracle', 'hello')

    def test_session_history(self, service):
        result = service.chat('central-monitor', 'hello', session_id='s1')
        assert result['assistant'] == 'central-monitor'
        assert result['session_id'] == 's1'

        history = service.get_session('central-monitor', 's1')
        assert [m.role for m in history] == ['user', 'assistant']
        assert history[1].content == result['response']

        assert service.get_session('data-manager', 's1') == []
        assert service.clear_session('central-monitor', 's1') is True
        assert service.clear_session('central-monitor', 's1') is False

    def test_no_session_not_recorded(self, service):
        service.chat('data-manager', 'hello')
        assert service.sessions == {}

    def test_human_in_loop(self, service):
        """Task commands need manual review when the data manager is not in agent mode"""
        result = service.chat('data-manager', 'create task title: Review', agent_mode=False)
        assert result['response'] == HUMAN_IN_LOOP_REPLY

        result = service.chat('data-manager', 'create task title: Review', agent_mode=True)
        assert result['response'].startswith("✅ New task created successfully!")

    def test_session_history_trimmed(self):
        service = AssistantService(max_messages=4)
        for i in range(5):
            service.chat('central-monitor', f'hello {i}', session_id='s1')

        history = service.get_session('central-monitor', 's1')
        assert len(history) == 4
        assert history[0].content == 'hello 3'
        assert history[-2].content == 'hello 4'

    def test_least_recently_used_session_dropped(self):
        service = AssistantService(max_sessions=2)
        service.chat('central-monitor', 'hello', session_id='a')
        service.chat('central-monitor', 'hello', session_id='b')
        service.chat('central-monitor', 'hello again', session_id='a')
        service.chat('data-manager', 'hello', session_id='c')

        assert set(service.sessions) == {('central-monitor', 'a'), ('data-manager', 'c')}
        assert service.get_session('central-monitor', 'b') == []
        assert len(service.get_session('central-monitor', 'a')) == 4
