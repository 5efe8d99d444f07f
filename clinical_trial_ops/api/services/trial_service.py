"""
Trial Service
Trials, sites and signal detections backed by the relational store
"""

import time
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinical_trial_ops.core.error_handling import DataValidationError, RecordNotFoundError
from clinical_trial_ops.db.models import SignalDetection, Site, Trial, utcnow

logger = logging.getLogger(__name__)

PRIORITY_DUE_DAYS = {'Critical': 3, 'High': 5, 'Medium': 7}
PRIORITY_PREFIXES = {'Critical': 'CRIT', 'High': 'HIGH', 'Medium': 'MED'}

SIGNAL_TYPE_PREFIXES = [
    ('ST_Risk', 'Site Risk'),
    ('SF_Risk', 'Safety Risk'),
    ('PD_Risk', 'PD Risk'),
    ('LAB_Risk', 'LAB Testing Risk'),
    ('ENR_Risk', 'Enrollment Risk'),
    ('AE_Risk', 'AE Risk'),
]


def calculate_due_date(priority: str, now: Optional[datetime] = None) -> datetime:
    """Critical +3 days, High +5, Medium +7, anything else +10"""
    now = now or utcnow()
    return now + timedelta(days=PRIORITY_DUE_DAYS.get(priority, 10))


def generate_task_id(priority: str, millis: Optional[int] = None) -> str:
    """``{CRIT|HIGH|MED|LOW}_{last 6 digits of epoch millis}``"""
    prefix = PRIORITY_PREFIXES.get(priority, 'LOW')
    if millis is None:
        millis = int(time.time() * 1000)
    return f"{prefix}_{str(millis)[-6:]}"


def unique_task_id(db: Session, column, priority: str) -> str:
    """Generated id not yet present in ``column``; bumps the clock suffix on collision"""
    millis = int(time.time() * 1000)
    candidate = generate_task_id(priority, millis)
    while db.scalar(select(column).where(column == candidate)) is not None:
        millis += 1
        candidate = generate_task_id(priority, millis)
    return candidate


def infer_signal_type(detection_id: Optional[str]) -> str:
    for prefix, signal_type in SIGNAL_TYPE_PREFIXES:
        if detection_id and detection_id.startswith(prefix):
            return signal_type
    return 'Site Risk'


def default_signal_title(observation: Optional[str], detection_id: str) -> str:
    observation = observation or ''
    if len(observation) > 50:
        return f"{observation[:50]}..."
    return observation or f"Signal Detection {detection_id}"


def require_trial(db: Session, trial_id: Optional[int]) -> Trial:
    """The trial with ``trial_id``, or RecordNotFoundError"""
    trial = db.get(Trial, trial_id) if trial_id is not None else None
    if trial is None:
        raise RecordNotFoundError("Trial not found", entity="trial", entity_id=trial_id)
    return trial


def apply_changes(record, changes: Dict[str, Any]) -> None:
    """Copy ``changes`` onto ``record``; nothing is written if a NOT NULL column would be nulled"""
    columns = record.__table__.columns
    for key, value in changes.items():
        if value is None and key in columns and not columns[key].nullable:
            raise DataValidationError(f"Field '{key}' cannot be null", field=key, value=value)
    for key, value in changes.items():
        setattr(record, key, value)


def commit_unique(db: Session, label: str, field: str, value: Any) -> None:
    """Commit, turning a constraint clash into DataValidationError on ``field``"""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Error creating {label} {value}: {e}")
        raise DataValidationError(f"{label.capitalize()} {value} already exists", field=field, value=value)


class TrialService:
    """CRUD for trials, their sites and their signal detections"""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Trials
    # ------------------------------------------------------------------

    def list_trials(self) -> List[Trial]:
        return list(self.db.scalars(select(Trial).order_by(Trial.id)))

    def get_trial(self, trial_id: int) -> Trial:
        return require_trial(self.db, trial_id)

    def create_trial(self, data: Dict[str, Any]) -> Trial:
        trial = Trial(**data)
        self.db.add(trial)
        commit_unique(self.db, "trial", "protocol_id", data.get('protocol_id'))
        self.db.refresh(trial)
        logger.info(f"Created trial {trial.protocol_id} (id={trial.id})")
        return trial

    # ------------------------------------------------------------------
    # Sites
    # ------------------------------------------------------------------

    def list_sites(self, trial_id: Optional[int] = None) -> List[Site]:
        stmt = select(Site).order_by(Site.id)
        if trial_id is not None:
            stmt = stmt.where(Site.trial_id == trial_id)
        return list(self.db.scalars(stmt))

    def get_site(self, site_id: int) -> Site:
        site = self.db.get(Site, site_id)
        if site is None:
            raise RecordNotFoundError("Site not found", entity="site", entity_id=site_id)
        return site

    def create_site(self, data: Dict[str, Any]) -> Site:
        site = Site(**data)
        self.db.add(site)
        self.db.commit()
        self.db.refresh(site)
        logger.info(f"Created site {site.site_id} for trial {site.trial_id}")
        return site

    # ------------------------------------------------------------------
    # Signal detections
    # ------------------------------------------------------------------

    def list_signal_detections(self, trial_id: Optional[int] = None) -> List[SignalDetection]:
        stmt = select(SignalDetection).order_by(SignalDetection.id)
        if trial_id is not None:
            stmt = stmt.where(SignalDetection.trial_id == trial_id)
        return list(self.db.scalars(stmt))

    def get_signal_detection(self, detection_pk: int) -> SignalDetection:
        detection = self.db.get(SignalDetection, detection_pk)
        if detection is None:
            raise RecordNotFoundError("Signal detection not found", entity="signal_detection",
                                      entity_id=detection_pk)
        return detection

    def create_signal_detection(self, data: Dict[str, Any]) -> SignalDetection:
        """Insert a detection, filling in id, due date, title, date and type when absent"""
        data = {k: v for k, v in data.items() if v is not None}
        priority = data.get('priority', 'Medium')

        data.setdefault('due_date', calculate_due_date(priority))
        if not data.get('detection_id'):
            data['detection_id'] = unique_task_id(self.db, SignalDetection.detection_id, priority)
        if not data.get('title'):
            data['title'] = default_signal_title(data.get('observation'), data['detection_id'])
        data.setdefault('detection_date', utcnow())
        if not data.get('signal_type'):
            data['signal_type'] = infer_signal_type(data['detection_id'])

        detection = SignalDetection(**data)
        self.db.add(detection)
        commit_unique(self.db, "signal detection", "detection_id", data['detection_id'])
        self.db.refresh(detection)
        logger.info(f"Created signal detection {detection.detection_id} ({detection.signal_type})")
        return detection

    def update_signal_detection(self, detection_pk: int, changes: Dict[str, Any]) -> SignalDetection:
        detection = self.get_signal_detection(detection_pk)
        apply_changes(detection, changes)
        self.db.commit()
        self.db.refresh(detection)
        return detection

