"""
DM Bot Service
In-memory data management simulation: cross-source analysis, query workflow,
notifications, reference data and duplicate/null detection
"""

from typing import Dict, List, Any, Optional
from datetime import datetime, date, timedelta
import logging
import math
import random
import uuid

from clinical_trial_ops.core.error_handling import StudyNotFoundError
from clinical_trial_ops.models.data_models import (
    AnalysisResults,
    ConversationMessage,
    DataComparisonResult,
    DataSourceSummary,
    EmailNotification,
    IssueSummary,
    MetricsSnapshot,
    NotificationRecipient,
    NotificationStatus,
    OverdueStatus,
    QualityMetrics,
    Query,
    QueryStatus,
    QueryWorkflowStep,
    ReferenceData,
    ResolutionMethod,
    Schedule,
    ScheduleFrequency,
    Severity,
    Study,
    WorkflowAction,
    WorkflowStatus,
)

logger = logging.getLogger(__name__)


ANALYZED_SOURCES = ['EDC', 'Lab', 'CTMS', 'eCOA', 'IxRS', 'Imaging', 'eTMF']
COMPARISON_SOURCES = ['EDC', 'Lab', 'CTMS', 'Imaging']
PATIENT_IDS = ['100-001', '100-002', '100-003', '100-004', '100-005']

SCHEDULE_INTERVALS = {
    ScheduleFrequency.DAILY: 1,
    ScheduleFrequency.WEEKLY: 7,
    ScheduleFrequency.BIWEEKLY: 14,
    ScheduleFrequency.MONTHLY: 30,
}

STATUS_ACTIONS = {
    QueryStatus.ASSIGNED: WorkflowAction.ASSIGNED,
    QueryStatus.IN_REVIEW: WorkflowAction.REVIEWED,
    QueryStatus.RESOLVED: WorkflowAction.RESOLVED,
}

# (domain, description, severity, data sources)
ISSUE_TEMPLATES = [
    ('cross-source', 'Lab visit date in central lab database does not match visit date in EDC', 'medium', ['EDC', 'Lab']),
    ('cross-source', 'Subject visit dates in CTMS do not match EDC dates for multiple patients', 'medium', ['EDC', 'CTMS']),
    ('cross-source', 'Drug accountability in IxRS does not reconcile with medication administration records in EDC', 'high', ['EDC', 'IxRS']),
    ('cross-source', 'Protocol deviation reported in CTMS not documented in EDC', 'high', ['EDC', 'CTMS']),
    ('cross-source', 'Patient reported outcome scores in eCOA inconsistent with clinician assessment in EDC', 'medium', ['EDC', 'eCOA']),
    ('DM', 'Inconsistent demographic information between EDC and central lab records', 'medium', ['EDC', 'Lab']),
    ('DM', 'Missing date of birth information in demographic domain for multiple subjects', 'medium', ['EDC']),
    ('DM', 'Gender coding inconsistencies across multiple patients in demographic records', 'low', ['EDC']),
    ('AE', 'Adverse event dates occur before study medication administration', 'high', ['EDC']),
    ('AE', 'Missing AE causality assessment for serious adverse events', 'critical', ['EDC']),
    ('AE', 'Inconsistent AE coding between verbatim and coded terms', 'medium', ['EDC']),
    ('LB', 'Multiple out-of-range lab values with no clinical explanation provided', 'high', ['EDC', 'Lab']),
    ('LB', 'Missing laboratory results for multiple patients at critical timepoints', 'high', ['Lab']),
    ('LB', 'Inconsistent lab normal ranges used across study sites', 'medium', ['Lab']),
    ('CM', 'Incomplete concomitant medication information (missing end dates)', 'medium', ['EDC']),
    ('CM', 'Prohibited medications recorded without appropriate protocol deviation', 'high', ['EDC']),
    ('SV', 'Missing study visit data for multiple patients at visit 3', 'high', ['EDC']),
    ('SV', 'Visit dates outside of protocol-specified windows without explanation', 'medium', ['EDC', 'CTMS']),
    ('VS', 'Clinically significant vital sign changes with no documented follow-up', 'high', ['EDC']),
    ('VS', 'Inconsistent units of measurement for vital signs across sites', 'medium', ['EDC']),
    ('EX', 'Dose modifications not properly documented in exposure records', 'high', ['EDC']),
    ('EX', 'Inconsistent dosing information between exposure and accountability logs', 'medium', ['EDC', 'IxRS']),
    ('eTMF', 'Missing essential regulatory documents for recently activated sites', 'high', ['eTMF']),
    ('eTMF', 'Expired ethics committee approvals without documented renewals', 'critical', ['eTMF', 'CTMS']),
]


def _is_oncology(indication: str) -> bool:
    return 'Oncology' in indication or 'Cancer' in indication


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class DMBotService:
    """
    Process-wide data management simulation.

    All state lives in dicts keyed by study, query or reference-data id.
    Randomness comes from a private ``random.Random`` so analyses can be
    reproduced by passing ``seed``.
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self._random = rng or random.Random(seed)
        self.studies: Dict[int, Study] = {}
        self.active_queries: Dict[str, Query] = {}
        self.resolved_queries: Dict[str, Query] = {}
        self.recipients: Dict[str, NotificationRecipient] = {}
        self.email_notifications: List[EmailNotification] = []
        self.reference_data: Dict[str, ReferenceData] = {}
        self.workflow_steps: Dict[str, List[QueryWorkflowStep]] = {}
        self.metrics_history: Dict[int, List[MetricsSnapshot]] = {}
        self.data_comparisons: Dict[int, List[DataComparisonResult]] = {}
        self.last_analysis: Dict[int, AnalysisResults] = {}
        self.schedules: Dict[int, Schedule] = {}
        self.conversations: Dict[int, List[ConversationMessage]] = {}
        self._query_counters: Dict[int, int] = {}

        self._initialize_recipients()
        self._initialize_studies()
        self._initialize_reference_data()
        self._add_explicit_duplicate_records()
        self._add_explicit_null_records()
        logger.info(f"DM bot service initialized with {len(self.reference_data)} reference records")

    # ------------------------------------------------------------------
    # Initial state
    # ------------------------------------------------------------------

    def _initialize_recipients(self):
        for name, role in [
            ('Sarah Johnson', 'Data Manager'),
            ('Michael Chen', 'CRA'),
            ('James Wilson', 'Clinical Manager'),
            ('Emily Rodriguez', 'Clinical Programmer'),
            ('Raj Patel', 'Biostatistician'),
        ]:
            email = f"{name.lower().replace(' ', '.')}@example.com"
            self.recipients[email] = NotificationRecipient(name=name, email=email, role=role)

    def _initialize_studies(self):
        samples = [
            Study(
                id=1,
                protocol_id='PRO001',
                title='Diabetes Type 2 Treatment Efficacy Study',
                phase='Phase 3',
                status='Active',
                indication='Type 2 Diabetes Mellitus',
                start_date='2023-01-15',
                end_date='2025-01-15',
                enrolled_patients=120,
                sites=24,
                countries=['United States', 'Canada', 'Germany', 'United Kingdom', 'France'],
                sponsor='PharmaCo Therapeutics',
                primary_objective='Evaluate the efficacy of study drug XYZ-123 in reducing HbA1c levels in patients with Type 2 Diabetes',
                data_sources=['EDC', 'Lab', 'CTMS', 'Imaging', 'ePRO'],
                primary_endpoint='Change in HbA1c from baseline to week 26',
            ),
            Study(
                id=2,
                protocol_id='PRO002',
                title='Cardiovascular Outcomes Trial',
                phase='Phase 4',
                status='Active',
                indication='Hypertension',
                start_date='2022-09-10',
                end_date='2025-09-10',
                enrolled_patients=245,
                sites=36,
                countries=['United States', 'Canada', 'Brazil', 'France', 'Germany', 'Italy', 'Japan'],
                sponsor='CardioHealth Pharma',
                primary_objective='Evaluate the long-term cardiovascular outcomes of treatment with ABC-456 in patients with hypertension',
                data_sources=['EDC', 'Lab', 'CTMS', 'ECG', 'Claims Data'],
                primary_endpoint='Time to first occurrence of major adverse cardiovascular event (MACE)',
            ),
            Study(
                id=3,
                protocol_id='PRO003',
                title='Immunotherapy for Advanced Melanoma',
                phase='Phase 2',
                status='Active',
                indication='Metastatic Melanoma',
                start_date='2023-03-21',
                end_date='',
                enrolled_patients=85,
                sites=18,
                countries=['United States', 'Australia', 'United Kingdom', 'Germany'],
                sponsor='OncoBiotech',
                primary_objective='Assess the efficacy of immunotherapy agent IMM-789 in patients with advanced melanoma',
                data_sources=['EDC', 'Lab', 'CTMS', 'Imaging', 'Biomarker Data'],
                primary_endpoint='Objective response rate as assessed by RECIST v1.1',
            ),
        ]
        for study in samples:
            self.studies[study.id] = study

    def _visit_date(self, visit_number: int) -> str:
        day = date(2023, 1, 15) + timedelta(days=visit_number * 30 + self._random.randrange(5))
        return day.isoformat()

    def _add_reference(self, ref: ReferenceData):
        self.reference_data[ref.id] = ref

    def _initialize_reference_data(self):
        """Generate a small SDTM-like dataset for the first study's patients"""
        study = self.studies[1]
        rnd = self._random

        for patient_id in PATIENT_IDS:
            self._add_reference(ReferenceData(
                id=f"REF-DM-{patient_id}",
                data_source='EDC',
                record_id=f"DM-{patient_id}",
                patient_id=patient_id,
                data_points={
                    'domain': 'DM',
                    'usubjid': patient_id,
                    'sex': 'M' if rnd.random() > 0.5 else 'F',
                    'age': 35 + rnd.randrange(40),
                    'race': rnd.choice(['WHITE', 'BLACK OR AFRICAN AMERICAN', 'ASIAN',
                                        'AMERICAN INDIAN OR ALASKA NATIVE']),
                    'ethnic': rnd.choice(['HISPANIC OR LATINO', 'NOT HISPANIC OR LATINO']),
                    'country': rnd.choice(study.countries),
                    'dmdtc': (date(2023, 1, 1) + timedelta(days=rnd.randrange(60))).isoformat(),
                    'armcd': rnd.choice(['TRT', 'PBO']),
                    'actarmcd': rnd.choice(['TRT', 'PBO']),
                    'siteid': f"SITE{100 + rnd.randrange(20)}",
                },
            ))

            for i in range(1, 6):
                visit_date = self._visit_date(i)
                self._add_reference(ReferenceData(
                    id=f"REF-SV-{patient_id}-V{i}",
                    data_source='EDC',
                    record_id=f"SV-{patient_id}-V{i}",
                    patient_id=patient_id,
                    visit_id=f"V{i}",
                    data_points={
                        'domain': 'SV',
                        'usubjid': patient_id,
                        'visitnum': i,
                        'visit': f"VISIT {i}",
                        'svstdtc': visit_date,
                        'svendtc': visit_date,
                        'svstatus': 'COMPLETED' if rnd.random() > 0.1 else 'MISSED',
                        'svreasnd': 'PATIENT ILLNESS' if rnd.random() > 0.9 else '',
                    },
                ))

            for i in range(1, 5):
                visit_date = self._visit_date(i)
                lab_tests = [
                    ('HGB', 'Hemoglobin', 13 + rnd.random() * 2, 'g/dL', 12, 16),
                    ('WBC', 'White Blood Cell Count', 4 + rnd.random() * 6, 'x10^9/L', 4, 11),
                    ('PLT', 'Platelet Count', 150 + rnd.random() * 200, 'x10^9/L', 150, 400),
                    ('CREAT', 'Creatinine', 0.6 + rnd.random() * 0.6, 'mg/dL', 0.6, 1.2),
                ]
                for testcd, test, result, unit, low, high in lab_tests:
                    if result < low:
                        indicator = 'LOW'
                    elif result > high:
                        indicator = 'HIGH'
                    else:
                        indicator = 'NORMAL'
                    self._add_reference(ReferenceData(
                        id=f"REF-LB-{patient_id}-V{i}-{testcd}",
                        data_source='Lab',
                        record_id=f"LB-{patient_id}-V{i}-{testcd}",
                        patient_id=patient_id,
                        visit_id=f"V{i}",
                        data_points={
                            'domain': 'LB',
                            'usubjid': patient_id,
                            'lbtest': test,
                            'lbtestcd': testcd,
                            'lbdtc': visit_date,
                            'visit': f"VISIT {i}",
                            'visitnum': i,
                            'lborres': f"{result:.2f}",
                            'lborresu': unit,
                            'lbstnrlo': low,
                            'lbstnrhi': high,
                            'lbnrind': indicator,
                        },
                    ))

            # 70% of patients report an adverse event
            if rnd.random() > 0.3:
                start = date(2023, 1, 20) + timedelta(days=rnd.randrange(60))
                end = start + timedelta(days=3 + rnd.randrange(10)) if rnd.random() > 0.2 else None
                self._add_reference(ReferenceData(
                    id=f"REF-AE-{patient_id}",
                    data_source='EDC',
                    record_id=f"AE-{patient_id}",
                    patient_id=patient_id,
                    data_points={
                        'domain': 'AE',
                        'usubjid': patient_id,
                        'aeterm': rnd.choice(['HEADACHE', 'NAUSEA', 'FATIGUE', 'DIZZINESS',
                                              'UPPER RESPIRATORY INFECTION']),
                        'aestdtc': start.isoformat(),
                        'aeendtc': end.isoformat() if end else '',
                        'aesev': rnd.choice(['MILD', 'MODERATE', 'SEVERE']),
                        'aeser': 'Y' if rnd.random() > 0.9 else 'N',
                        'aerel': rnd.choice(['RELATED', 'NOT RELATED', 'POSSIBLY RELATED']),
                        'aeout': 'RECOVERED/RESOLVED' if end else 'ONGOING',
                    },
                ))

            # 60% take a concomitant medication
            if rnd.random() > 0.4:
                start = date(2023, 1, 5) + timedelta(days=rnd.randrange(30))
                end = start + timedelta(days=10 + rnd.randrange(20)) if rnd.random() > 0.5 else None
                self._add_reference(ReferenceData(
                    id=f"REF-CM-{patient_id}",
                    data_source='EDC',
                    record_id=f"CM-{patient_id}",
                    patient_id=patient_id,
                    data_points={
                        'domain': 'CM',
                        'usubjid': patient_id,
                        'cmtrt': rnd.choice(['ACETAMINOPHEN', 'IBUPROFEN', 'LORATADINE', 'LISINOPRIL', 'METFORMIN']),
                        'cmstdtc': start.isoformat(),
                        'cmendtc': end.isoformat() if end else '',
                        'cmdose': rnd.choice([500, 200, 10, 20, 1000]),
                        'cmdosu': 'mg',
                        'cmroute': 'ORAL',
                        'cmind': rnd.choice(['HEADACHE', 'PAIN', 'ALLERGIES', 'HYPERTENSION', 'DIABETES']),
                    },
                ))

            for i in range(1, 5):
                visit_date = self._visit_date(i)
                vital_signs = [
                    ('SYSBP', 'Systolic Blood Pressure', 110 + rnd.randrange(30), 'mmHg'),
                    ('DIABP', 'Diastolic Blood Pressure', 70 + rnd.randrange(20), 'mmHg'),
                    ('PULSE', 'Pulse Rate', 60 + rnd.randrange(30), 'beats/min'),
                    ('TEMP', 'Temperature', round(36.5 + rnd.random(), 1), 'C'),
                    ('WEIGHT', 'Weight', 65 + rnd.randrange(30), 'kg'),
                    ('HEIGHT', 'Height', 160 + rnd.randrange(30), 'cm'),
                ]
                for testcd, test, result, unit in vital_signs:
                    self._add_reference(ReferenceData(
                        id=f"REF-VS-{patient_id}-V{i}-{testcd}",
                        data_source='EDC',
                        record_id=f"VS-{patient_id}-V{i}-{testcd}",
                        patient_id=patient_id,
                        visit_id=f"V{i}",
                        data_points={
                            'domain': 'VS',
                            'usubjid': patient_id,
                            'vstest': test,
                            'vstestcd': testcd,
                            'vsdtc': visit_date,
                            'visit': f"VISIT {i}",
                            'visitnum': i,
                            'vsorres': str(result),
                            'vsorresu': unit,
                            'vsstat': 'NOT DONE' if rnd.random() > 0.95 else '',
                        },
                    ))

            for i in range(1, 5):
                # 90% of doses are received
                if rnd.random() <= 0.1:
                    continue
                visit_date = self._visit_date(i)
                self._add_reference(ReferenceData(
                    id=f"REF-EX-{patient_id}-V{i}",
                    data_source='EDC',
                    record_id=f"EX-{patient_id}-V{i}",
                    patient_id=patient_id,
                    visit_id=f"V{i}",
                    data_points={
                        'domain': 'EX',
                        'usubjid': patient_id,
                        'extrt': 'XYZ-123',
                        'exstdtc': visit_date,
                        'exendtc': visit_date,
                        'exdose': 100,
                        'exdosu': 'mg',
                        'exroute': 'ORAL',
                        'visit': f"VISIT {i}",
                        'visitnum': i,
                        'exdosfrq': 'QD',
                        'extpt': 'STUDY DRUG',
                    },
                ))

    def _add_explicit_duplicate_records(self):
        self._add_reference(ReferenceData(
            id='DUP-DM-001',
            data_source='EDC',
            record_id='DM-100-001-DUP',
            patient_id='100-001',
            data_points={
                'domain': 'DM', 'usubjid': '100-001', 'sex': 'M', 'age': 42, 'race': 'WHITE',
                'ethnic': 'NOT HISPANIC OR LATINO', 'country': 'United States', 'dmdtc': '2023-01-15',
                'armcd': 'TRT', 'actarmcd': 'TRT', 'siteid': 'SITE101',
            },
        ))
        for ref_id, suffix, result in [('DUP-LB-001', 'DUP1', '14.50'), ('DUP-LB-002', 'DUP2', '14.20')]:
            self._add_reference(ReferenceData(
                id=ref_id,
                data_source='Lab',
                record_id=f"LB-100-002-V1-HGB-{suffix}",
                patient_id='100-002',
                visit_id='V1',
                data_points={
                    'domain': 'LB', 'usubjid': '100-002', 'lbtest': 'Hemoglobin', 'lbtestcd': 'HGB',
                    'lbdtc': '2023-02-15', 'visit': 'VISIT 1', 'visitnum': 1, 'lborres': result,
                    'lborresu': 'g/dL', 'lbstnrlo': 12, 'lbstnrhi': 16, 'lbnrind': 'NORMAL',
                },
            ))
        for ref_id, suffix, end in [('DUP-AE-001', 'DUP1', '2023-03-18'), ('DUP-AE-002', 'DUP2', '2023-03-17')]:
            self._add_reference(ReferenceData(
                id=ref_id,
                data_source='EDC',
                record_id=f"AE-100-003-{suffix}",
                patient_id='100-003',
                data_points={
                    'domain': 'AE', 'usubjid': '100-003', 'aeterm': 'Headache', 'aestdtc': '2023-03-15',
                    'aeendtc': end, 'aesev': 'MILD', 'aeser': 'N', 'aerel': 'POSSIBLE',
                },
            ))

    def _add_explicit_null_records(self):
        self._add_reference(ReferenceData(
            id='NULL-LB-001',
            data_source='Lab',
            record_id='LB-100-005-V2-WBC-NULL',
            patient_id='100-005',
            visit_id='V2',
            data_points={
                'domain': 'LB', 'usubjid': '100-005', 'lbtest': 'White Blood Cell Count', 'lbtestcd': 'WBC',
                'lbdtc': '2023-03-15', 'visit': 'VISIT 2', 'visitnum': 2, 'lborres': '',
                'lborresu': None, 'lbstnrlo': None, 'lbstnrhi': None, 'lbnrind': '',
            },
        ))
        self._add_reference(ReferenceData(
            id='NULL-AE-001',
            data_source='EDC',
            record_id='AE-100-004-NULL',
            patient_id='100-004',
            data_points={
                'domain': 'AE', 'usubjid': '100-004', 'aeterm': 'Headache', 'aestdtc': '2023-04-10',
                'aeendtc': '', 'aesev': 'MODERATE', 'aeser': 'N', 'aerel': None, 'aeout': '',
            },
        ))

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def _generate_query_id(self, study_id: int) -> str:
        counter = self._query_counters.get(study_id, 0) + 1
        self._query_counters[study_id] = counter
        return f"DM-Q{study_id}-{counter:03d}"

    def analyze_data(self, study_id: int) -> AnalysisResults:
        """Run a simulated cross-source analysis and raise queries for the top issues"""
        study = self.studies.get(study_id)
        if study is None:
            raise StudyNotFoundError(study_id)

        quality, consistency, completeness, response_rate = 80, 75, 85, 70

        if study.phase == 'Phase 3':
            quality -= 5
            consistency -= 3

        country_count = len(study.countries)
        if country_count > 3:
            quality -= country_count - 3
            consistency -= (country_count - 3) // 2

        if study.sites > 20:
            quality -= (study.sites - 20) // 10
            consistency -= (study.sites - 20) // 15

        sources = self._analyze_study_data_sources(study)
        total_issues = sum(s.issue_count for s in sources)
        queries_generated = math.floor(total_issues * 0.7)

        rnd = self._random
        quality_score = _clamp(quality + rnd.uniform(-3, 3), 55, 98)
        consistency_score = _clamp(consistency + rnd.uniform(-3, 3), 55, 98)
        completeness_score = _clamp(completeness + rnd.uniform(-3, 3), 60, 98)
        response_score = _clamp(response_rate + rnd.uniform(-4, 4), 50, 95)

        top_issues = self._generate_data_quality_issues(study, min(5, total_issues))

        results = AnalysisResults(
            total_issues=total_issues,
            queries_generated=queries_generated,
            data_sources=sources,
            metrics=QualityMetrics(
                data_quality_score=round(quality_score),
                consistency_score=round(consistency_score),
                completeness_score=round(completeness_score),
                query_response_rate=round(response_score),
            ),
            top_issues=top_issues,
        )

        self.last_analysis[study_id] = results
        self._create_queries_from_issues(study_id, top_issues)

        self.metrics_history.setdefault(study_id, []).append(MetricsSnapshot(
            timestamp=datetime.now(),
            data_quality_score=quality_score,
            consistency_score=consistency_score,
            completeness_score=completeness_score,
            query_response_rate=response_score,
            total_issues=total_issues,
            queries_generated=queries_generated,
        ))
        self._generate_data_comparison(study_id)

        logger.info(
            f"Analysis complete for study {study.protocol_id}: "
            f"{total_issues} issues, {len(top_issues)} queries raised"
        )
        return results

    def _analyze_study_data_sources(self, study: Study) -> List[DataSourceSummary]:
        rnd = self._random
        indication = study.indication or ''
        country_count = len(study.countries)
        summaries = []

        for source in ANALYZED_SOURCES:
            if source == 'EDC':
                count = 4 + rnd.randrange(5) if study.phase == 'Phase 3' else 2 + rnd.randrange(3)
                if study.sites > 20:
                    count += study.sites // 20
                if 'Diabetes' in indication:
                    count += 1
            elif source == 'Lab':
                count = 2 + rnd.randrange(3)
                if study.enrolled_patients > 100:
                    count += study.enrolled_patients // 100
                if 'Diabetes' in indication or 'Oncology' in indication:
                    count += 2
            elif source == 'CTMS':
                count = 1 + rnd.randrange(2)
                if country_count > 3:
                    count += country_count // 3
            elif source == 'eCOA':
                count = 1 + rnd.randrange(3)
                if study.enrolled_patients > 50:
                    count += study.enrolled_patients // 50
            elif source == 'IxRS':
                count = rnd.randrange(2)
                if study.phase in ('Phase 2', 'Phase 3'):
                    count += 1
            elif source == 'Imaging':
                count = rnd.randrange(2)
                if _is_oncology(indication):
                    count += 2
            else:
                count = rnd.randrange(2)
                if country_count > 3:
                    count += country_count // 3

            if count > 4:
                status = 'critical'
            elif count > 0:
                status = 'warning'
            else:
                status = 'clean'
            summaries.append(DataSourceSummary(name=source, issue_count=count, status=status))

        return summaries

    def _generate_data_quality_issues(self, study: Study, count: int) -> List[IssueSummary]:
        indication = study.indication or ''
        candidates = []
        for domain, description, severity, sources in ISSUE_TEMPLATES:
            escalate = (
                ('Diabetes' in indication and domain == 'LB')
                or (_is_oncology(indication) and domain in ('AE', 'Imaging'))
            )
            if escalate and severity == 'medium':
                severity = 'high'
            candidates.append((description, severity, sources))

        self._random.shuffle(candidates)
        return [
            IssueSummary(
                id=self._generate_query_id(study.id),
                description=description,
                severity=Severity(severity),
                data_sources=list(sources),
            )
            for description, severity, sources in candidates[:count]
        ]

    def _create_queries_from_issues(self, study_id: int, issues: List[IssueSummary]):
        now = datetime.now()
        for issue in issues:
            query = Query(
                id=issue.id,
                description=issue.description,
                severity=issue.severity,
                data_sources=list(issue.data_sources),
                study_id=study_id,
                created_at=now,
                updated_at=now,
                due_date=now + timedelta(days=7),
            )
            self.active_queries[query.id] = query
            self._generate_notification(query)

    def _generate_notification(self, query: Query):
        rnd = self._random
        recipients = list(self.recipients.values())
        if 'EDC' in query.data_sources or 'Lab' in query.data_sources:
            pool = [r for r in recipients if r.role == 'Data Manager']
        else:
            pool = [r for r in recipients if r.role == 'CRA']
        recipient = rnd.choice(pool) if pool else rnd.choice(recipients)

        severity_text = query.severity.value.capitalize()
        due = query.due_date.strftime('%m/%d/%Y') if query.due_date else ''
        body = (
            f"Dear {recipient.name},\n\n"
            f"A new data query has been generated that requires your attention:\n\n"
            f"Query ID: {query.id}\n"
            f"Priority: {severity_text}\n"
            f"Description: {query.description}\n"
            f"Data Sources: {', '.join(query.data_sources)}\n"
            f"Due Date: {due}\n\n"
            f"Please review this query and take appropriate action. You can access the complete "
            f"details in the DM Compliance page.\n\n"
            f"Thank you,\n"
            f"DM.AI Assistant"
        )
        self.email_notifications.append(EmailNotification(
            recipient_id=recipient.email,
            query_id=query.id,
            subject=f"[{query.id}] {severity_text} Priority: {query.description}",
            body=body,
        ))

        query.assigned_to = recipient.email
        query.contact = recipient.name
        query.last_notified = datetime.now()
        query.notification_status = NotificationStatus.SENT

    def _generate_data_comparison(self, study_id: int):
        rnd = self._random
        self.data_comparisons[study_id] = [
            DataComparisonResult(
                source=source,
                total_fields=500 + rnd.randrange(1000),
                inconsistent_fields=5 + rnd.randrange(20),
                missing_fields=2 + rnd.randrange(10),
                changed_since_last_check=10 + rnd.randrange(50),
            )
            for source in COMPARISON_SOURCES
        ]

    # ------------------------------------------------------------------
    # Query workflow
    # ------------------------------------------------------------------

    def get_active_queries(self, study_id: int) -> List[Query]:
        return [q for q in self.active_queries.values() if q.study_id == study_id]

    def get_resolved_queries(self, study_id: int) -> List[Query]:
        return [q for q in self.resolved_queries.values() if q.study_id == study_id]

    def get_query(self, query_id: str) -> Optional[Query]:
        return self.active_queries.get(query_id) or self.resolved_queries.get(query_id)

    def _add_workflow_step(self, query_id: str, action: WorkflowAction, user: str, notes: str):
        step = QueryWorkflowStep(
            id=f"step-{uuid.uuid4().hex[:12]}",
            query_id=query_id,
            action=action,
            user=user,
            notes=notes,
        )
        self.workflow_steps.setdefault(query_id, []).append(step)

    def update_query_status(self, query_id: str, status: QueryStatus, user: str = 'Data Manager') -> Optional[Query]:
        """
        Move an active query to a new status.

        Resolved queries leave the active map. Returns None for unknown or
        already resolved queries.
        """
        query = self.active_queries.get(query_id)
        if query is None:
            return None

        previous = query.status
        now = datetime.now()
        query.status = status
        query.updated_at = now

        self._add_workflow_step(
            query_id,
            STATUS_ACTIONS.get(status, WorkflowAction.CREATED),
            user,
            f"Status changed from {previous.value} to {status.value}",
        )

        query.last_workflow_update = now
        if status == QueryStatus.RESOLVED:
            query.workflow_status = WorkflowStatus.COMPLETED
            query.resolution_method = ResolutionMethod.MANUAL
            self.resolved_queries[query_id] = self.active_queries.pop(query_id)
            logger.info(f"Query {query_id} resolved by {user}")
        else:
            query.workflow_status = WorkflowStatus.IN_PROGRESS

        return query

    def get_query_workflow_steps(self, query_id: str) -> List[QueryWorkflowStep]:
        return list(self.workflow_steps.get(query_id, []))

    def check_for_corrected_data(self, study_id: int) -> List[Query]:
        """Auto-resolve active queries whose underlying data looks corrected"""
        resolved = []
        for query in self.get_active_queries(study_id):
            if not self._is_data_corrected(query):
                continue

            now = datetime.now()
            query.status = QueryStatus.RESOLVED
            query.updated_at = now
            query.workflow_status = WorkflowStatus.COMPLETED
            query.last_workflow_update = now
            query.resolution_method = ResolutionMethod.AUTO_CORRECTED
            self._add_workflow_step(
                query.id,
                WorkflowAction.AUTO_CORRECTED,
                'DM.AI',
                'Issue automatically resolved due to data correction',
            )
            self.resolved_queries[query.id] = self.active_queries.pop(query.id)
            resolved.append(query)

        if resolved:
            logger.info(f"Auto-resolved {len(resolved)} queries for study {study_id}")
        return resolved

    def _is_data_corrected(self, query: Query) -> bool:
        ref = self.reference_data.get(query.reference_data) if query.reference_data else None
        if ref is not None:
            if 'missing' in query.description and ref.data_points:
                return True
            if 'inconsistent' in query.description:
                return self._random.random() > 0.7
            if 'out-of-range' in query.description and ref.domain == 'LB':
                points = ref.data_points
                try:
                    value = float(points.get('lborres'))
                except (TypeError, ValueError):
                    return False
                low, high = points.get('lbstnrlo'), points.get('lbstnrhi')
                if low is None or high is None:
                    return False
                return low <= value <= high

        return self._random.random() > 0.85

    def update_query_overdue_statuses(self, now: Optional[datetime] = None) -> None:
        now = now or datetime.now()
        for query in self.active_queries.values():
            if query.due_date is None:
                continue
            days_until_due = math.floor((query.due_date - now).total_seconds() / 86400)
            if days_until_due < 0:
                query.overdue_status = OverdueStatus.OVERDUE
            elif days_until_due <= 2:
                query.overdue_status = OverdueStatus.DUE_SOON
            else:
                query.overdue_status = OverdueStatus.ON_TIME

    def get_notifications_for_recipient(self, email: str) -> List[EmailNotification]:
        return [n for n in self.email_notifications if n.recipient_id == email]

    # ------------------------------------------------------------------
    # Metrics and studies
    # ------------------------------------------------------------------

    def get_latest_metrics(self, study_id: int) -> Optional[MetricsSnapshot]:
        history = self.metrics_history.get(study_id)
        return history[-1] if history else None

    def get_metrics_history(self, study_id: int) -> List[MetricsSnapshot]:
        return list(self.metrics_history.get(study_id, []))

    def get_data_comparison(self, study_id: int) -> List[DataComparisonResult]:
        return list(self.data_comparisons.get(study_id, []))

    def get_last_analysis_results(self, study_id: int) -> Optional[AnalysisResults]:
        return self.last_analysis.get(study_id)

    def create_or_update_study(self, study: Study) -> Study:
        self.studies[study.id] = study
        return study

    def get_study(self, study_id: int) -> Optional[Study]:
        return self.studies.get(study_id)

    def get_all_studies(self) -> List[Study]:
        return list(self.studies.values())

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def get_conversation(self, study_id: int) -> List[ConversationMessage]:
        if study_id not in self.conversations:
            study = self.get_study(study_id)
            protocol = study.protocol_id if study else 'unknown'
            self.conversations[study_id] = [ConversationMessage(
                id='1',
                role='assistant',
                content=(
                    f"Hello! I'm your Data Management AI Assistant for study {protocol}. "
                    "I have access to all trial data domains (DM, SV, AE, LB, VS, CM, EX) and can help "
                    "with data quality checks, query management, and cross-source data analysis. "
                    "How can I assist you today?"
                ),
            )]
        return self.conversations[study_id]

    def add_conversation_message(self, study_id: int, message: ConversationMessage) -> List[ConversationMessage]:
        conversation = self.conversations.setdefault(study_id, [])
        conversation.append(message)
        return conversation

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def get_study_data_domains(self, study_id: int) -> List[str]:
        domains = []
        for ref in self.reference_data.values():
            if ref.domain and ref.domain not in domains:
                domains.append(ref.domain)
        return domains

    def get_domain_data(self, study_id: int, domain: str) -> List[ReferenceData]:
        return [ref for ref in self.reference_data.values() if ref.domain == domain]

    def get_patient_data(self, patient_id: str) -> List[ReferenceData]:
        return [ref for ref in self.reference_data.values() if ref.patient_id == patient_id]

    def get_visit_data(self, visit_id: str) -> List[ReferenceData]:
        return [ref for ref in self.reference_data.values() if ref.visit_id == visit_id]

    def _records_for(self, domain: Optional[str]) -> List[ReferenceData]:
        refs = list(self.reference_data.values())
        if domain:
            refs = [ref for ref in refs if ref.domain == domain]
        return refs

    def find_duplicate_records(self, study_id: int, domain: Optional[str] = None) -> Dict[str, Any]:
        """
        Group records by subject and domain; every group with more than one
        record is reported together with the fields whose values differ.
        """
        groups: Dict[str, Dict[str, List[ReferenceData]]] = {}
        for ref in self._records_for(domain):
            if not ref.usubjid:
                continue
            groups.setdefault(ref.usubjid, {}).setdefault(ref.domain or 'unknown', []).append(ref)

        duplicates = []
        affected = []
        for usubjid, by_domain in groups.items():
            for group_domain, refs in by_domain.items():
                if len(refs) < 2:
                    continue

                keys = []
                for ref in refs:
                    for key in ref.data_points:
                        if key not in keys:
                            keys.append(key)

                differences = {}
                for key in keys:
                    values = []
                    for ref in refs:
                        if key in ref.data_points and ref.data_points[key] not in values:
                            values.append(ref.data_points[key])
                    if len(values) > 1:
                        differences[key] = values

                duplicates.append({
                    'usubjid': usubjid,
                    'domain': group_domain,
                    'count': len(refs),
                    'records': [dict(ref.data_points) for ref in refs],
                    'record_ids': [ref.record_id for ref in refs],
                    'differences': differences or None,
                })
                if usubjid not in affected:
                    affected.append(usubjid)

        return {
            'duplicates': duplicates,
            'total_duplicates': len(duplicates),
            'affected_subjects': affected,
        }

    def find_null_values(self, study_id: int, domain: Optional[str] = None) -> Dict[str, Any]:
        """Count empty or null fields per domain and field"""
        nulls: Dict[tuple, List[str]] = {}
        for ref in self._records_for(domain):
            if not ref.domain:
                continue
            for field_name, value in ref.data_points.items():
                if value is None or value == '':
                    subjects = nulls.setdefault((ref.domain, field_name), [])
                    if ref.usubjid and ref.usubjid not in subjects:
                        subjects.append(ref.usubjid)

        entries = [
            {
                'domain': null_domain,
                'field': field_name,
                'count': len(subjects),
                'affected_subjects': subjects,
            }
            for (null_domain, field_name), subjects in nulls.items()
        ]
        return {'nulls': entries, 'total_nulls': len(entries)}

    def check_data_consistency(self, source1: str, source2: str) -> Dict[str, Any]:
        inconsistencies = []
        affected = []

        if source1 == 'EDC' and source2 == 'Lab':
            inconsistencies.append({
                'type': 'demographic',
                'description': 'Gender inconsistency between EDC and Lab data',
                'details': 'Patient 100-002 is recorded as Female in EDC but Male in Lab database',
                'severity': 'high',
            })
            inconsistencies.append({
                'type': 'date',
                'description': 'Visit date discrepancy between EDC and Lab data',
                'details': 'Visit V2 for patient 100-003 is recorded as 2023-02-18 in EDC but 2023-02-20 in Lab database',
                'severity': 'medium',
            })
            affected.extend(['100-002', '100-003'])

        if source1 == 'EDC' and source2 == 'CTMS':
            inconsistencies.append({
                'type': 'enrollment',
                'description': 'Enrollment date inconsistency',
                'details': 'Patient 100-001 has different enrollment dates in EDC and CTMS',
                'severity': 'medium',
            })
            affected.append('100-001')

        return {'inconsistencies': inconsistencies, 'affected_patients': affected}

    def get_query_reference_data(self, query_id: str) -> Optional[ReferenceData]:
        query = self.get_query(query_id)
        if query is None:
            return None

        for ref in self.reference_data.values():
            if ref.query_id == query_id:
                return ref

        if query.data_sources:
            for ref in self.reference_data.values():
                if ref.data_source == query.data_sources[0]:
                    return ref
        return None

    def create_reference_data(self, query_id: str, data_source: str, patient_id: str) -> ReferenceData:
        """Attach a mock source record to a query"""
        if data_source == 'EDC':
            data_points = {
                'dob': '1975-06-15',
                'gender': 'Female',
                'race': 'Caucasian',
                'visit_date': '2023-09-15',
                'weight': '68.5 kg',
                'height': '165 cm',
                'body_mass_index': '25.1 kg/m2',
                'blood_pressure': '125/82 mmHg',
                'heart_rate': '72 bpm',
                'temperature': '36.7 °C',
            }
        elif data_source == 'Lab':
            data_points = {
                'collection_date': '2023-09-14',
                'received_date': '2023-09-15',
                'laboratory_id': 'LAB123',
                'tests': [
                    {'name': 'Hemoglobin', 'value': '13.5', 'unit': 'g/dL', 'reference_range': '12.0-16.0', 'flag': 'Normal'},
                    {'name': 'Leukocytes', 'value': '6.2', 'unit': 'x10^9/L', 'reference_range': '4.0-11.0', 'flag': 'Normal'},
                    {'name': 'Platelets', 'value': '230', 'unit': 'x10^9/L', 'reference_range': '150-400', 'flag': 'Normal'},
                    {'name': 'Creatinine', 'value': '1.4', 'unit': 'mg/dL', 'reference_range': '0.6-1.2', 'flag': 'High'},
                    {'name': 'ALT', 'value': '45', 'unit': 'U/L', 'reference_range': '7-40', 'flag': 'High'},
                ],
            }
        elif data_source == 'CTMS':
            data_points = {
                'visit_id': 'V3',
                'scheduled_date': '2023-09-15',
                'actual_date': '2023-09-17',
                'status': 'Completed',
                'deviations': [
                    {'category': 'Visit Window', 'description': 'Visit occurred 2 days after window', 'issue_date': '2023-09-17'},
                ],
                'payments': [
                    {'type': 'Patient Travel', 'amount': 50.0, 'status': 'Pending'},
                    {'type': 'Visit Fee', 'amount': 200.0, 'status': 'Approved'},
                ],
            }
        else:
            data_points = {
                'study_date': '2023-09-15',
                'modality': 'MRI',
                'body_part': 'Brain',
                'findings': 'No significant abnormalities detected.',
                'conclusion': 'Normal brain MRI.',
            }

        ref = ReferenceData(
            id=f"REF-{uuid.uuid4().hex[:10]}",
            query_id=query_id,
            data_source=data_source,
            record_id=f"REC-{self._random.randrange(10000)}",
            patient_id=patient_id,
            visit_id=f"V{self._random.randrange(5) + 1}",
            data_points=data_points,
        )
        self.reference_data[ref.id] = ref

        query = self.active_queries.get(query_id)
        if query is not None:
            query.reference_data = ref.id
        return ref

    def get_reference_data_for_query(self, query_id: str) -> Optional[ReferenceData]:
        query = self.active_queries.get(query_id)
        if query is None:
            return None
        if query.reference_data and query.reference_data in self.reference_data:
            return self.reference_data[query.reference_data]

        source = query.data_sources[0] if query.data_sources else 'EDC'
        patient_id = f"100-{self._random.randrange(100):03d}"
        return self.create_reference_data(query_id, source, patient_id)

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def create_or_update_schedule(self, schedule: Schedule) -> Schedule:
        if schedule.enabled and schedule.start_date:
            days = SCHEDULE_INTERVALS.get(schedule.frequency, 7)
            schedule.next_run = schedule.start_date + timedelta(days=days)
        self.schedules[schedule.study_id] = schedule
        return schedule

    def get_schedule(self, study_id: int) -> Optional[Schedule]:
        return self.schedules.get(study_id)

    def get_all_schedules(self) -> List[Schedule]:
        return list(self.schedules.values())
