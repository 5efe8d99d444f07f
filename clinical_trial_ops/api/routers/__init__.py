"""
API Routers Package
"""

from clinical_trial_ops.api.routers import (
    assistants,
    dm_bot,
    domain_data,
    notifications,
    signal_detections,
    sites,
    tasks,
    trials,
)

__all__ = [
    'assistants',
    'dm_bot',
    'domain_data',
    'notifications',
    'signal_detections',
    'sites',
    'tasks',
    'trials',
]
