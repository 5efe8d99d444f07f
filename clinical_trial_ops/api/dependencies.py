from fastapi import Depends
from sqlalchemy.orm import Session

from clinical_trial_ops.api.config import get_service
from clinical_trial_ops.api.services.domain_data_service import DomainDataService
from clinical_trial_ops.api.services.notification_service import NotificationService
from clinical_trial_ops.api.services.task_service import TaskService
from clinical_trial_ops.api.services.trial_service import TrialService
from clinical_trial_ops.db.session import get_db


def get_trial_service(db: Session = Depends(get_db)) -> TrialService:
    return TrialService(db)


def get_task_service(db: Session = Depends(get_db)) -> TaskService:
    return TaskService(db)


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_domain_data_service(db: Session = Depends(get_db)) -> DomainDataService:
    return DomainDataService(db)


def get_dm_bot_service():
    """Process-wide DMBotService singleton"""
    return get_service("dm_bot_service")


def get_assistant_service():
    return get_service("assistant_service")
