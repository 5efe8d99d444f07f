"""
Tests for the ORM helpers and engine configuration
"""

import pytest
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from clinical_trial_ops.db.models import DomainSource, Task, select_domain_source, utcnow


class TestUtcNow:

    def test_naive_utc(self):
        now = utcnow()
        assert now.tzinfo is None
        assert abs(now - datetime.now(timezone.utc).replace(tzinfo=None)) < timedelta(seconds=5)

    def test_column_defaults_use_utc(self, db_session, trial):
        assert trial.created_at.tzinfo is None
        assert abs(trial.created_at - utcnow()) < timedelta(minutes=1)


class TestForeignKeys:
    """SQLite connections enforce foreign keys"""

    def test_task_for_missing_trial_rejected(self, db_session):
        db_session.add(Task(task_id="MED_000001", title="Orphan", priority="Medium", trial_id=999))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()
        assert db_session.query(Task).count() == 0

    def test_task_for_existing_trial_accepted(self, db_session, trial):
        db_session.add(Task(task_id="MED_000002", title="Linked", priority="Medium", trial_id=trial.id))
        db_session.commit()
        assert db_session.query(Task).count() == 1


class TestSelectDomainSource:

    def test_matches_on_source_not_system(self, db_session, trial):
        db_session.add_all([
            DomainSource(trial_id=trial.id, domain="LB", source="EDC", system="Electronic Data Capture"),
            DomainSource(trial_id=trial.id, domain="LB", source="Central Laboratory", system="Lab System"),
        ])
        db_session.commit()

        found = db_session.scalars(select_domain_source(trial.id, "LB", "EDC")).one()
        assert found.system == "Electronic Data Capture"
        assert db_session.scalars(select_domain_source(trial.id, "LB", "Lab System")).first() is None
