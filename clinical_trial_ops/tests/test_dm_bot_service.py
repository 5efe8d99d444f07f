"""
Tests for the in-memory data management simulation
"""

import pytest
from datetime import datetime, timedelta

from clinical_trial_ops.api.services.dm_bot_service import DMBotService
from clinical_trial_ops.core.error_handling import StudyNotFoundError
from clinical_trial_ops.models.data_models import (
    ConversationMessage,
    OverdueStatus,
    QueryStatus,
    ResolutionMethod,
    Schedule,
    ScheduleFrequency,
    WorkflowAction,
    WorkflowStatus,
)


@pytest.fixture
def service():
    return DMBotService(seed=42)


@pytest.fixture
def analyzed(service):
    service.analyze_data(1)
    return service


class TestInitialState:
    """Sample studies, recipients and reference data"""

    def test_sample_studies(self, service):
        """Three studies keyed by integer id"""
        studies = {s.protocol_id: s for s in service.get_all_studies()}
        assert set(studies) == {'PRO001', 'PRO002', 'PRO003'}
        assert studies['PRO001'].sites == 24
        assert len(studies['PRO002'].countries) == 7
        assert studies['PRO003'].phase == 'Phase 2'

    def test_recipients(self, service):
        assert len(service.recipients) == 5
        assert service.recipients['sarah.johnson@example.com'].role == 'Data Manager'

    def test_reference_domains(self, service):
        domains = service.get_study_data_domains(1)
        for domain in ('DM', 'SV', 'LB', 'VS', 'EX'):
            assert domain in domains

    def test_same_seed_same_data(self):
        """Seeded services generate identical reference data"""
        first = DMBotService(seed=7)
        second = DMBotService(seed=7)
        assert [r.to_dict()['data_points'] for r in first.get_domain_data(1, 'DM')] == \
            [r.to_dict()['data_points'] for r in second.get_domain_data(1, 'DM')]

    def test_patient_and_visit_lookup(self, service):
        patient = service.get_patient_data('100-001')
        assert patient
        assert all(ref.patient_id == '100-001' for ref in patient)

        visit = service.get_visit_data('V1')
        assert visit
        assert all(ref.visit_id == 'V1' for ref in visit)


class TestAnalysis:
    """Simulated cross-source analysis"""

    def test_unknown_study_raises(self, service):
        with pytest.raises(StudyNotFoundError):
            service.analyze_data(99)

    def test_analysis_results(self, analyzed):
        """Scores fall inside their clamps and top issues become active queries"""
        results = analyzed.get_last_analysis_results(1)
        assert results is not None
        assert 55 <= results.metrics.data_quality_score <= 98
        assert 55 <= results.metrics.consistency_score <= 98
        assert 60 <= results.metrics.completeness_score <= 98
        assert 50 <= results.metrics.query_response_rate <= 95
        assert results.total_issues == sum(s.issue_count for s in results.data_sources)
        assert len(results.top_issues) == min(5, results.total_issues)

        active = analyzed.get_active_queries(1)
        assert {q.id for q in active} == {i.id for i in results.top_issues}

    def test_query_ids_sequential(self, analyzed):
        ids = sorted(q.id for q in analyzed.get_active_queries(1))
        assert ids[0] == 'DM-Q1-001'

    def test_source_status(self, analyzed):
        for source in analyzed.get_last_analysis_results(1).data_sources:
            if source.issue_count > 4:
                assert source.status == 'critical'
            elif source.issue_count > 0:
                assert source.status == 'warning'
            else:
                assert source.status == 'clean'

    def test_notifications_generated(self, analyzed):
        """Each query is assigned and e-mailed to a recipient"""
        for query in analyzed.get_active_queries(1):
            assert query.assigned_to in analyzed.recipients
            notes = analyzed.get_notifications_for_recipient(query.assigned_to)
            assert any(n.query_id == query.id for n in notes)
            if 'EDC' in query.data_sources or 'Lab' in query.data_sources:
                assert analyzed.recipients[query.assigned_to].role == 'Data Manager'

    def test_metrics_and_comparison(self, analyzed):
        analyzed.analyze_data(1)
        assert len(analyzed.get_metrics_history(1)) == 2
        assert analyzed.get_latest_metrics(1) is analyzed.get_metrics_history(1)[-1]
        assert [c.source for c in analyzed.get_data_comparison(1)] == ['EDC', 'Lab', 'CTMS', 'Imaging']


class TestQueryWorkflow:
    """Query status transitions"""

    def test_resolve_moves_query(self, analyzed):
        query = analyzed.get_active_queries(1)[0]
        updated = analyzed.update_query_status(query.id, QueryStatus.RESOLVED, 'tester')

        assert updated.status == QueryStatus.RESOLVED
        assert updated.resolution_method == ResolutionMethod.MANUAL
        assert updated.workflow_status == WorkflowStatus.COMPLETED
        assert query.id not in analyzed.active_queries
        assert query.id in analyzed.resolved_queries

    def test_non_resolving_status_stays_active(self, analyzed):
        query = analyzed.get_active_queries(1)[0]
        analyzed.update_query_status(query.id, QueryStatus.IN_REVIEW)

        assert query.id in analyzed.active_queries
        assert query.id not in analyzed.resolved_queries
        assert query.workflow_status == WorkflowStatus.IN_PROGRESS

        steps = analyzed.get_query_workflow_steps(query.id)
        assert steps[-1].action == WorkflowAction.REVIEWED
        assert steps[-1].notes == "Status changed from new to in-review"

    def test_unknown_query_returns_none(self, analyzed):
        assert analyzed.update_query_status('DM-Q9-999', QueryStatus.RESOLVED) is None

    def test_resolved_query_cannot_be_updated(self, analyzed):
        query = analyzed.get_active_queries(1)[0]
        analyzed.update_query_status(query.id, QueryStatus.RESOLVED)
        assert analyzed.update_query_status(query.id, QueryStatus.ASSIGNED) is None

    def test_check_for_corrected_data(self, analyzed):
        """Auto-corrected queries leave the active set"""
        before = len(analyzed.get_active_queries(1))
        resolved = analyzed.check_for_corrected_data(1)

        assert len(analyzed.get_active_queries(1)) == before - len(resolved)
        for query in resolved:
            assert query.resolution_method == ResolutionMethod.AUTO_CORRECTED
            assert analyzed.get_query_workflow_steps(query.id)[-1].user == 'DM.AI'


class TestOverdueStatus:
    """Due-date thresholds"""

    @pytest.mark.parametrize("days_left, expected", [
        (-1, OverdueStatus.OVERDUE),
        (0, OverdueStatus.DUE_SOON),
        (2, OverdueStatus.DUE_SOON),
        (3, OverdueStatus.ON_TIME),
    ])
    def test_thresholds(self, analyzed, days_left, expected):
        now = datetime(2024, 1, 10, 12, 0)
        query = analyzed.get_active_queries(1)[0]
        query.due_date = now + timedelta(days=days_left, hours=1)

        analyzed.update_query_overdue_statuses(now)
        assert query.overdue_status == expected


class TestDataChecks:
    """Duplicate, null and consistency checks"""

    def test_explicit_duplicates_reported(self, service):
        result = service.find_duplicate_records(1, 'DM')
        groups = {(d['usubjid'], d['domain']): d for d in result['duplicates']}

        group = groups[('100-001', 'DM')]
        assert group['count'] == 2
        assert len(group['records']) == 2
        assert 'DM-100-001-DUP' in group['record_ids']
        assert '100-001' in result['affected_subjects']
        assert result['total_duplicates'] == len(result['duplicates'])

    def test_duplicate_count_matches_group_size(self, service):
        """Every reported count equals the number of records sharing subject and domain"""
        result = service.find_duplicate_records(1)
        for group in result['duplicates']:
            matching = [
                ref for ref in service.reference_data.values()
                if ref.usubjid == group['usubjid'] and ref.domain == group['domain']
            ]
            assert group['count'] == len(matching)

    def test_lab_duplicate_differences(self, service):
        result = service.find_duplicate_records(1, 'LB')
        group = next(d for d in result['duplicates'] if d['usubjid'] == '100-002')
        assert '14.50' in group['differences']['lborres']

    def test_null_values(self, service):
        result = service.find_null_values(1, 'LB')
        fields = {(n['domain'], n['field']): n for n in result['nulls']}
        assert ('LB', 'lborres') in fields
        assert '100-005' in fields[('LB', 'lborres')]['affected_subjects']

    def test_consistency(self, service):
        edc_lab = service.check_data_consistency('EDC', 'Lab')
        assert len(edc_lab['inconsistencies']) == 2
        assert edc_lab['affected_patients'] == ['100-002', '100-003']

        assert service.check_data_consistency('Lab', 'EDC')['inconsistencies'] == []


class TestReferenceDataAndSchedules:

    def test_reference_data_created_once(self, analyzed):
        query = analyzed.get_active_queries(1)[0]
        first = analyzed.get_reference_data_for_query(query.id)
        second = analyzed.get_reference_data_for_query(query.id)

        assert first is second
        assert query.reference_data == first.id
        assert analyzed.get_query_reference_data(query.id) is first

    def test_schedule_next_run(self, service):
        start = datetime(2024, 1, 1)
        schedule = service.create_or_update_schedule(
            Schedule(study_id=1, frequency=ScheduleFrequency.BIWEEKLY, start_date=start)
        )
        assert schedule.next_run == start + timedelta(days=14)
        assert service.get_schedule(1) is schedule
        assert service.get_all_schedules() == [schedule]

    def test_disabled_schedule_has_no_next_run(self, service):
        schedule = service.create_or_update_schedule(
            Schedule(study_id=2, frequency=ScheduleFrequency.DAILY, start_date=datetime(2024, 1, 1), enabled=False)
        )
        assert schedule.next_run is None


class TestConversation:

    def test_greeting_seeded(self, service):
        conversation = service.get_conversation(1)
        assert len(conversation) == 1
        assert 'PRO001' in conversation[0].content

    def test_append(self, service):
        service.get_conversation(2)
        history = service.add_conversation_message(2, ConversationMessage(id='2', role='user', content='hi'))
        assert [m.role for m in history] == ['assistant', 'user']
