"""
Task Service
Task workflow (creation, status updates, comments) and task notifications
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinical_trial_ops.api.services.notification_service import NotificationService
from clinical_trial_ops.api.services.trial_service import (
    apply_changes, calculate_due_date, commit_unique, require_trial, unique_task_id,
)
from clinical_trial_ops.core.error_handling import RecordNotFoundError
from clinical_trial_ops.db.models import SignalDetection, Task, TaskComment, Trial, utcnow

logger = logging.getLogger(__name__)


class TaskStatus:
    NOT_STARTED = "not_started"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESPONDED = "responded"
    CLOSED = "closed"


class TaskService:
    """Tasks are never deleted; closing one stamps ``completed_at``"""

    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)

    def study_name(self, trial_id: int) -> str:
        trial = self.db.get(Trial, trial_id)
        return trial.title if trial else f"Trial {trial_id}"

    def list_tasks(self, assigned_to: Optional[str] = None, status: Optional[str] = None,
                   trial_id: Optional[int] = None) -> List[Task]:
        stmt = select(Task).order_by(Task.id)
        if assigned_to:
            stmt = stmt.where(Task.assigned_to == assigned_to)
        if trial_id:
            stmt = stmt.where(Task.trial_id == trial_id)
        if status:
            stmt = stmt.where(Task.status == status)
        return list(self.db.scalars(stmt))

    def get_task(self, task_pk: int) -> Task:
        task = self.db.get(Task, task_pk)
        if task is None:
            raise RecordNotFoundError("Task not found", entity="task", entity_id=task_pk)
        return task

    def create_task(self, data: Dict[str, Any]) -> Task:
        """Insert a task with a generated id and due date, then notify the assignee"""
        data = {k: v for k, v in data.items() if v is not None}
        require_trial(self.db, data.get('trial_id'))
        if 'detection_id' in data and self.db.get(SignalDetection, data['detection_id']) is None:
            raise RecordNotFoundError("Signal detection not found", entity="signal_detection",
                                      entity_id=data['detection_id'])
        priority = data.get('priority', 'Medium')
        if not data.get('task_id'):
            data['task_id'] = unique_task_id(self.db, Task.task_id, priority)
        data.setdefault('due_date', calculate_due_date(priority))

        task = Task(**data)
        self.db.add(task)
        commit_unique(self.db, "task", "task_id", data['task_id'])
        self.db.refresh(task)
        logger.info(f"Created task {task.task_id} for trial {task.trial_id}")

        try:
            self.notifications.create_task_notifications(task)
        except Exception as e:
            # The task stays created even when its notification cannot be stored
            self.db.rollback()
            logger.error(f"Error creating notifications for task {task.task_id}: {e}")
        return task

    def update_task(self, task_pk: int, changes: Dict[str, Any]) -> Task:
        task = self.get_task(task_pk)
        apply_changes(task, changes)
        if changes.get('status') == TaskStatus.CLOSED and task.completed_at is None:
            task.completed_at = utcnow()
        if changes.get('status') == TaskStatus.RESPONDED:
            logger.info(f"Task {task.task_id} marked as responded")
        self.db.commit()
        self.db.refresh(task)
        return task

    def regenerate_notifications(self, task_pk: int) -> int:
        task = self.get_task(task_pk)
        return len(self.notifications.create_task_notifications(task))

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def list_comments(self, task_pk: int) -> List[TaskComment]:
        self.get_task(task_pk)
        stmt = select(TaskComment).where(TaskComment.task_id == task_pk).order_by(TaskComment.created_at,
                                                                                  TaskComment.id)
        return list(self.db.scalars(stmt))

    def add_comment(self, task_pk: int, data: Dict[str, Any]) -> TaskComment:
        task = self.get_task(task_pk)
        comment = TaskComment(task_id=task.id, **data)
        self.db.add(comment)
        self.db.flush()

        task.last_comment_at = comment.created_at
        task.last_comment_by = comment.created_by
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def delete_comment(self, comment_id: int) -> bool:
        comment = self.db.get(TaskComment, comment_id)
        if comment is None:
            return False
        self.db.delete(comment)
        self.db.commit()
        return True
