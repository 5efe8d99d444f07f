"""
Demo data seeding
=================
Populates the relational store with demo trials, sites, signals and tasks,
then generates SDTM-like domain data for every trial.

Both steps are idempotent: trials are only created into an empty database,
and domain records are only generated for (trial, domain, source) selections
that have no rows yet.
"""

import json
import logging
import random
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clinical_trial_ops.core.error_handling import SeedingError, error_boundary
from clinical_trial_ops.db.generators import (
    DOMAIN_GENERATORS, SERIES_GENERATORS, study_identifier, subject_identifier,
)
from clinical_trial_ops.db.models import (
    DomainData, DomainSource, SignalDetection, Site, Task, Trial, select_domain_source, utcnow,
)

logger = logging.getLogger(__name__)

# (domain, source, record count); series sources treat the count as a maximum
DOMAIN_PLAN = [
    ("DM", "EDC", 25),
    ("LB", "Central Laboratory", 100),
    ("SV", "EDC", 75),
    ("TU", "Imaging RECIST", 40),
    ("AE", "EDC Safety", 60),
    ("LB", "EDC", 50),
    ("VS", "EDC", 720),
    ("CM", "EDC", 30),
    ("EX", "EDC", 35),
    ("DS", "EDC", 15),
    ("MH", "EDC", 20),
    ("IE", "EDC", 30),
    ("SAE", "EDC Safety", 8),
    ("PD", "EDC", 12),
    ("AUDIT", "EDC Audit Trail", 50),
    ("FORM_AUDIT", "EDC Form Audit Trail", 20),
]

CTMS_DOMAIN = "CTMS_STUDY"
CTMS_SOURCE = "CTMS Study"

# Subject n of the trial owns record n
PER_SUBJECT_DOMAINS = {"DM", "DS", "MH", "IE", "SAE", "PD"}

# (domain, source): description, source type, system, integration method, format, frequency, contact
SOURCE_INFO = {
    ("DM", "EDC"): ("Patient demographics data from EDC system", "EDC", "EDC", "Manual", "SDTM", "Daily",
                    "Data Management"),
    ("LB", "Central Laboratory"): ("Laboratory test results from central lab", "Lab", "Lab System", "API", "SDTM",
                                   "Daily", "Central Laboratory"),
    ("SV", "EDC"): ("Subject visit data from EDC system", "EDC", "EDC", "Manual", "SDTM", "Daily",
                    "Clinical Operations"),
    ("TU", "Imaging RECIST"): ("Tumor assessment data from imaging system", "Imaging", "Imaging System", "API",
                               "SDTM", "Weekly", "Imaging Core Lab"),
    ("AE", "EDC Safety"): ("Adverse events from EDC safety module", "EDC", "EDC", "Manual", "SDTM", "Daily",
                           "Safety"),
    ("LB", "EDC"): ("Electronic Data Capture Lab Data", "EDC", "Electronic Data Capture", "API", "JSON", None, None),
    ("VS", "EDC"): ("Vital Signs Data", "EDC", "Electronic Data Capture", "API", "JSON", None, None),
    ("CM", "EDC"): ("Concomitant Medications Data", "EDC", "Electronic Data Capture", "API", "JSON", None, None),
    ("EX", "EDC"): ("Exposure Data", "EDC", "Electronic Data Capture", "API", "JSON", None, None),
    ("DS", "EDC"): ("Subject disposition events and status", "EDC", "EDC", "Manual", "SDTM", "Daily",
                    "Data Management"),
    ("MH", "EDC"): ("Medical history and significant medical events", "EDC", "EDC", "Manual", "SDTM", "Daily",
                    "Data Management"),
    ("IE", "EDC"): ("Inclusion and exclusion criteria evaluations", "EDC", "EDC", "Manual", "SDTM", "Daily",
                    "Data Management"),
    ("SAE", "EDC Safety"): ("Serious adverse events requiring expedited reporting", "EDC", "EDC Safety Module",
                            "Manual", "SDTM", "Real-time", "Safety Manager"),
    ("PD", "EDC"): ("Protocol deviations and violations", "EDC", "EDC", "Manual", "SDTM", "Real-time",
                    "Clinical Monitor"),
    ("AUDIT", "EDC Audit Trail"): ("EDC system audit trail data including user actions, data changes, "
                                   "and system events", "EDC", None, "API", "JSON", "Daily",
                                   "Data Management Team"),
    ("FORM_AUDIT", "EDC Form Audit Trail"): ("EDC form versioning and audit data including form changes, "
                                             "publications, and design updates", "EDC", None, "API", "JSON",
                                             "Weekly", "Form Design Team"),
    (CTMS_DOMAIN, CTMS_SOURCE): ("Clinical trial management system study data", "CTMS", "CTMS", "API", "Custom",
                                 "Daily", "Clinical Operations"),
}

# Audit trails are exported by the trial's own EDC vendor
EDC_SYSTEMS = {1: "Medidata Rave", 2: "IQVIA Rave", 3: "Oracle InForm"}
AUDIT_MAPPINGS = {
    "AUDIT": "Maps to standard AUDIT domain with custom fields for EDC-specific attributes",
    "FORM_AUDIT": "Maps to custom FORM_AUDIT domain with fields for tracking form versioning",
}
# domain: (date field, id field, id prefix)
AUDIT_ORDERING = {
    "AUDIT": ("AUDITDTC", "AUDITID", "AUDIT"),
    "FORM_AUDIT": ("FORMDTC", "FORMID", "FORM"),
}

CTMS_OVERRIDES = {
    1: {"TITLE": "Diabetes Type 2 Long Term Outcomes Study", "PHASE": "III", "INDICATION": "Type 2 Diabetes"},
    2: {"TITLE": "Hypertension Combination Therapy Study", "PHASE": "II", "INDICATION": "Hypertension"},
    3: {"TITLE": "Oncology Biomarker Trial", "PHASE": "I/II", "INDICATION": "Solid Tumors"},
}

DEMO_TRIALS = [
    {
        "protocol_id": "PRO001",
        "title": "Diabetes Type 2 Phase III Trial",
        "description": "A phase III study to evaluate the efficacy and safety of new diabetes treatment",
        "phase": "III",
        "status": "active",
        "start_date": datetime(2023, 1, 1),
        "end_date": datetime(2024, 12, 31),
        "therapeutic_area": "Endocrinology",
        "indication": "Type 2 Diabetes Mellitus",
    },
    {
        "protocol_id": "PRO002",
        "title": "Rheumatoid Arthritis Phase II Study",
        "description": "A phase II study evaluating a novel biologic therapy for moderate to severe rheumatoid arthritis",
        "phase": "II",
        "status": "active",
        "start_date": datetime(2023, 3, 15),
        "end_date": datetime(2025, 6, 30),
        "therapeutic_area": "Immunology",
        "indication": "Rheumatoid Arthritis",
    },
    {
        "protocol_id": "PRO003",
        "title": "Advanced Breast Cancer Trial",
        "description": "A pivotal study investigating a targeted therapy for HER2+ metastatic breast cancer",
        "phase": "III",
        "status": "active",
        "start_date": datetime(2023, 5, 1),
        "end_date": datetime(2026, 1, 31),
        "therapeutic_area": "Oncology",
        "indication": "HER2+ Breast Cancer",
    },
    {
        "protocol_id": "PRO004",
        "title": "Alzheimer's Disease Biomarker Study",
        "description": "A longitudinal study to identify novel biomarkers for early detection of Alzheimer's disease",
        "phase": "II",
        "status": "setup",
        "start_date": datetime(2023, 7, 20),
        "end_date": datetime(2026, 7, 19),
        "therapeutic_area": "Neurology",
        "indication": "Alzheimer's Disease",
    },
]

# (protocol, site id, name, location, principal investigator)
DEMO_SITES = [
    ("PRO001", "Site 123", "Central Medical Center", "New York, NY", "Dr. V. Becker"),
    ("PRO001", "Site 145", "Western Health Institute", "San Francisco, CA", "Dr. A. Smith"),
    ("PRO001", "Site 178", "Eastside Research Clinic", "Boston, MA", "Dr. J. Wong"),
    ("PRO002", "Site 201", "Northwestern Medical Partners", "Chicago, IL", "Dr. L. Martinez"),
    ("PRO002", "Site 212", "Atlanta Research Group", "Atlanta, GA", "Dr. P. Jones"),
    ("PRO003", "Site 305", "MD Anderson Cancer Center", "Houston, TX", "Dr. S. Lee"),
    ("PRO003", "Site 317", "UCLA Medical Center", "Los Angeles, CA", "Dr. M. Chen"),
    ("PRO003", "Site 324", "Memorial Sloan Kettering", "New York, NY", "Dr. R. Gupta"),
    ("PRO004", "Site 401", "Johns Hopkins Neurology", "Baltimore, MD", "Dr. K. Anderson"),
    ("PRO004", "Site 415", "Mayo Clinic Alzheimer's Center", "Rochester, MN", "Dr. T. Roberts"),
]


def seed_database(session: Session) -> bool:
    """
    Create the demo trials, sites, signal detections and tasks.

    Returns False without touching anything when a trial already exists.
    """
    if session.scalar(select(func.count()).select_from(Trial)):
        logger.info("Trials already present, skipping demo data")
        return False

    trials: Dict[str, Trial] = {}
    for data in DEMO_TRIALS:
        trial = Trial(**data)
        session.add(trial)
        trials[trial.protocol_id] = trial
    session.flush()

    for protocol, site_id, name, location, investigator in DEMO_SITES:
        session.add(Site(site_id=site_id, trial_id=trials[protocol].id, name=name, location=location,
                         principal_investigator=investigator, status="active"))

    trial1 = trials["PRO001"]
    screen_failure = SignalDetection(
        detection_id="ST_Risk_001",
        title="Screen Failure Pattern Anomaly",
        signal_type="Site Risk",
        detection_type="Manual",
        trial_id=trial1.id,
        site_id="Site 123",
        data_reference="Screen failure report",
        observation="Site has same screen failure for 20 patients",
        priority="Critical",
        status="initiated",
        assigned_to="John Carter",
        detection_date=datetime(2023, 3, 10),
        due_date=datetime(2023, 3, 15),
        created_by="System",
        notified_persons=["Trial Manager", "Safety Monitor"],
    )
    visit_timing = SignalDetection(
        detection_id="PD_Risk_087",
        title="Protocol Deviation - Visit Timing",
        signal_type="PD Risk",
        detection_type="Manual",
        trial_id=trial1.id,
        site_id="Site 178",
        data_reference="Visit data",
        observation="Site 178 conducting afternoon tests instead of morning",
        priority="High",
        status="in_progress",
        assigned_to="Lisa Wong",
        detection_date=datetime(2023, 3, 12),
        due_date=datetime(2023, 3, 18),
        created_by="System",
        notified_persons=["CRA", "Protocol Manager"],
    )
    session.add_all([screen_failure, visit_timing])
    session.flush()

    session.add_all([
        Task(
            task_id="TSK_DIAB2_001",
            title="Investigate anomalous screen failure pattern",
            description="Investigate anomalous screen failure pattern at Site 123 - 20 patients with identical reasons",
            priority="Critical",
            status="in_progress",
            trial_id=trial1.id,
            site_id="Site 123",
            detection_id=screen_failure.id,
            assigned_to="John Carter",
            created_by="System",
            due_date=datetime(2023, 3, 15),
        ),
        Task(
            task_id="TSK_DIAB2_002",
            title="Address protocol deviation - Patient visit timing",
            description="Address protocol deviation - Patient visit timing at Site 178",
            priority="High",
            status="assigned",
            trial_id=trial1.id,
            site_id="Site 178",
            detection_id=visit_timing.id,
            assigned_to="Lisa Wong",
            created_by="System",
            due_date=datetime(2023, 3, 18),
        ),
    ])
    session.commit()
    logger.info(f"Seeded {len(DEMO_TRIALS)} trials and {len(DEMO_SITES)} sites")
    return True


def _ensure_source(session: Session, trial_id: int, domain: str, source: str) -> None:
    if session.scalars(select_domain_source(trial_id, domain, source)).first() is not None:
        return

    info = SOURCE_INFO.get((domain, source))
    if info is None:
        info = (f"{domain} data from {source}", source, source, "Manual", "SDTM", "Daily", "Data Management")
    description, source_type, system, method, fmt, frequency, contact = info
    if domain in AUDIT_MAPPINGS:
        system = EDC_SYSTEMS.get(trial_id, "EDC System")
    session.add(DomainSource(
        trial_id=trial_id, domain=domain, source=source, description=description,
        source_type=source_type, system=system, integration_method=method, format=fmt,
        mapping_details=AUDIT_MAPPINGS.get(domain), frequency=frequency, contact=contact,
    ))
    logger.debug(f"Created source for trial {trial_id}, domain {domain}, source {source}")


def _has_records(session: Session, trial_id: int, domain: str, source: str) -> bool:
    count = session.scalar(
        select(func.count()).select_from(DomainData).where(
            DomainData.trial_id == trial_id,
            DomainData.domain == domain,
            DomainData.source == source,
        )
    )
    return bool(count)


def _subject_number(domain: str, index: int, rnd: random.Random) -> Optional[int]:
    if domain in PER_SUBJECT_DOMAINS:
        return index + 1
    if domain == "LB":
        return index // 4 + 1
    if domain == "SV":
        return index // 3 + 1
    if domain == "TU":
        return index // 2 + 1
    if domain == "AE":
        return rnd.randint(1, 25)
    return None


def _generate(trial_id: int, domain: str, source: str, count: int,
              rnd: random.Random, now: datetime) -> List[Tuple[str, Dict[str, Any]]]:
    series = SERIES_GENERATORS.get((domain, source))
    if series is not None:
        return series(rnd, trial_id, count)

    generator = DOMAIN_GENERATORS.get(domain)
    if generator is None:
        raise SeedingError(f"No generator found for domain {domain}", domain=domain)

    records = []
    for i in range(count):
        record = generator(rnd, now)
        record["STUDYID"] = study_identifier(trial_id)
        subject = _subject_number(domain, i, rnd)
        if subject is not None:
            record["USUBJID"] = subject_identifier(trial_id, subject)
        if domain == "TU":
            record["TUSEQ"] = i + 1
            record["TUGRPID"] = f"TU{subject:03d}-{i + 1}"
            record["TUNAM"] = f"{record['TUORRES']} {i + 1}"
        records.append(record)

    if domain in AUDIT_ORDERING:
        # Trails read oldest first, and their ids follow that order
        date_field, id_field, prefix = AUDIT_ORDERING[domain]
        records.sort(key=lambda r: r[date_field])
        for i, record in enumerate(records):
            record[id_field] = f"{prefix}-{trial_id}-{i + 1}"

    return [(f"{domain}-{trial_id}-{i + 1}", record) for i, record in enumerate(records)]


def build_domain_records(trial_id: int, domain: str, source: str, count: int,
                         rnd: random.Random, now: datetime) -> List[DomainData]:
    """Generate up to ``count`` rows for one (trial, domain, source) selection"""
    return [
        DomainData(
            trial_id=trial_id,
            domain=domain,
            source=source,
            record_id=record_id,
            record_data=json.dumps(record),
            imported_at=now,
        )
        for record_id, record in _generate(trial_id, domain, source, count, rnd, now)
    ]


def _insert_batched(session: Session, rows: List[DomainData], batch_size: int) -> None:
    for start in range(0, len(rows), batch_size):
        session.add_all(rows[start:start + batch_size])
        session.commit()


def seed_domain_data(session: Session, batch_size: int = 50, rng: Optional[random.Random] = None,
                     now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Generate domain data for every trial in the database.

    Returns the number of records inserted per domain.
    """
    rnd = rng or random.Random()
    now = now or utcnow()
    inserted: Dict[str, int] = {}

    trial_ids = session.scalars(select(Trial.id).order_by(Trial.id)).all()
    logger.info(f"Found {len(trial_ids)} trials")

    for trial_id in trial_ids:
        for domain, source, count in DOMAIN_PLAN:
            with error_boundary(f"seed_{domain}_trial_{trial_id}"):
                _ensure_source(session, trial_id, domain, source)
                session.commit()
                if _has_records(session, trial_id, domain, source):
                    logger.info(f"{domain} data from {source} for trial {trial_id} already exists, skipping")
                    continue
                rows = build_domain_records(trial_id, domain, source, count, rnd, now)
                _insert_batched(session, rows, batch_size)
                inserted[domain] = inserted.get(domain, 0) + len(rows)
                logger.info(f"Added {len(rows)} {domain} records from {source} for trial {trial_id}")

        with error_boundary(f"seed_{CTMS_DOMAIN}_trial_{trial_id}"):
            _ensure_source(session, trial_id, CTMS_DOMAIN, CTMS_SOURCE)
            session.commit()
            if _has_records(session, trial_id, CTMS_DOMAIN, CTMS_SOURCE):
                continue
            record = DOMAIN_GENERATORS[CTMS_DOMAIN](rnd, now)
            record["STUDYID"] = study_identifier(trial_id)
            record.update(CTMS_OVERRIDES.get(trial_id, {}))
            session.add(DomainData(
                trial_id=trial_id,
                domain=CTMS_DOMAIN,
                source=CTMS_SOURCE,
                record_id=f"{CTMS_DOMAIN}-{trial_id}",
                record_data=json.dumps(record),
                imported_at=now,
            ))
            session.commit()
            inserted[CTMS_DOMAIN] = inserted.get(CTMS_DOMAIN, 0) + 1

    logger.info(f"Domain data seeding complete: {inserted or 'nothing new'}")
    return inserted


def seed_all(session: Session, batch_size: int = 50, rng: Optional[random.Random] = None) -> Dict[str, int]:
    """Seed demo entities then domain data"""
    try:
        seed_database(session)
        return seed_domain_data(session, batch_size=batch_size, rng=rng)
    except SeedingError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.error(f"Seeding failed: {e}")
        raise SeedingError(f"Seeding failed: {e}") from e
