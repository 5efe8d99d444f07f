"""
Rule-based chat assistants
"""

from clinical_trial_ops.assistants.base import AssistantContext
from clinical_trial_ops.assistants.central_monitor_bot import CentralMonitorBot
from clinical_trial_ops.assistants.data_manager_bot import DataManagerBot

__all__ = ['AssistantContext', 'CentralMonitorBot', 'DataManagerBot']
