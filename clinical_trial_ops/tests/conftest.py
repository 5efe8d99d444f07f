"""
Shared fixtures: a throwaway SQLite database wired into the FastAPI app
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from clinical_trial_ops.api import config
from clinical_trial_ops.api.main import app
from clinical_trial_ops.db.models import Trial
from clinical_trial_ops.db.session import get_db, init_db, make_engine


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """TestClient whose requests use the temporary database"""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    config._services.clear()
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    config._services.clear()


@pytest.fixture
def trial(db_session):
    trial = Trial(protocol_id="PRO001", title="Diabetes Type 2 Phase III Trial", phase="III", status="active")
    db_session.add(trial)
    db_session.commit()
    return trial
