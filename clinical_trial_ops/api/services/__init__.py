"""
API Services Package
"""

from clinical_trial_ops.api.services.assistant_service import AssistantService
from clinical_trial_ops.api.services.dm_bot_service import DMBotService
from clinical_trial_ops.api.services.domain_data_service import DomainDataService
from clinical_trial_ops.api.services.notification_service import NotificationService
from clinical_trial_ops.api.services.task_service import TaskService
from clinical_trial_ops.api.services.trial_service import TrialService

__all__ = [
    'AssistantService',
    'DMBotService',
    'DomainDataService',
    'NotificationService',
    'TaskService',
    'TrialService',
]
