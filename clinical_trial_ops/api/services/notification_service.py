"""
Notification Service
In-app notifications, including the ones raised when tasks are created
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from clinical_trial_ops.api.services.trial_service import require_trial
from clinical_trial_ops.db.models import Notification, Task, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TASK_ROLE = "Data Manager"


class NotificationService:
    """
    Notification storage and read tracking.

    There are no user accounts; ``user_id`` is a free-form recipient
    (a person or a role) and every filter on it is optional.
    """

    def __init__(self, db: Session):
        self.db = db

    def _scoped(self, stmt, user_id: Optional[str]):
        if user_id is not None:
            stmt = stmt.where(Notification.user_id == user_id)
        return stmt

    def create_notification(self, data: Dict[str, Any]) -> Notification:
        if data.get('trial_id') is not None:
            require_trial(self.db, data['trial_id'])
        notification = Notification(**data)
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def create_task_notifications(self, task: Task) -> List[Notification]:
        """Notify the task's assignee; defaults to the Data Manager role"""
        notification = self.create_notification({
            'user_id': task.assigned_to or DEFAULT_TASK_ROLE,
            'title': f"{task.task_id or f'TASK_{task.id}'}: {task.title}",
            'description': task.description or task.title,
            'type': 'task',
            'priority': (task.priority or 'medium').lower(),
            'trial_id': task.trial_id,
            'source': 'Task Management',
            'related_entity_type': 'task',
            'related_entity_id': str(task.id),
            'action_required': True,
            'action_url': f"/tasks/{task.id}",
        })
        logger.info(f"Created notification {notification.id} for task {task.task_id}")
        return [notification]

    def get_notifications(self, user_id: Optional[str] = None, limit: int = 50, offset: int = 0,
                          include_read: bool = False, types: Optional[List[str]] = None) -> List[Notification]:
        stmt = self._scoped(select(Notification), user_id)
        if not include_read:
            stmt = stmt.where(Notification.read.is_(False))
        if types:
            stmt = stmt.where(Notification.type.in_(types))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit)
        return list(self.db.scalars(stmt))

    def count_unread(self, user_id: Optional[str] = None) -> int:
        stmt = self._scoped(select(func.count(Notification.id)).where(Notification.read.is_(False)), user_id)
        return self.db.scalar(stmt) or 0

    def mark_read(self, ids: List[int], user_id: Optional[str] = None) -> int:
        if not ids:
            return 0
        stmt = self._scoped(
            update(Notification).where(Notification.id.in_(ids), Notification.read.is_(False)),
            user_id,
        ).values(read=True, read_at=utcnow())
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount

    def mark_all_read(self, user_id: Optional[str] = None) -> int:
        stmt = self._scoped(update(Notification).where(Notification.read.is_(False)), user_id)
        result = self.db.execute(stmt.values(read=True, read_at=utcnow()))
        self.db.commit()
        return result.rowcount

    def delete_notification(self, notification_id: int, user_id: Optional[str] = None) -> bool:
        notification = self.db.get(Notification, notification_id)
        if notification is None or (user_id is not None and notification.user_id != user_id):
            return False
        self.db.delete(notification)
        self.db.commit()
        return True
