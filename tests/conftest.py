import os
import sys
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Ensure the repository root is on sys.path so tests can import the draftgate package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

os.environ.setdefault('DRAFTGATE_ENV', 'test')
os.environ.setdefault('DRAFTGATE_JWT_SECRET', 'draftgate-test-secret-0123456789abcdef')

from draftgate.audit import DatabaseAuditSink  # noqa: E402
from draftgate.config import Settings, get_settings  # noqa: E402
from draftgate.db.config import DatabaseSettings  # noqa: E402
from draftgate.db.session import build_engine, build_session_factory, initialise_schema  # noqa: E402
from draftgate.intake import IntakeService  # noqa: E402
from draftgate.lifecycle import DraftLifecycleManager  # noqa: E402
from draftgate.sync import ClinicalRecordSync  # noqa: E402
from tests.helpers import REPEAT_RX_ANSWERS, TEST_SETTINGS, FakeGenerator  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return TEST_SETTINGS


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(DatabaseSettings(url=f"sqlite:///{tmp_path / 'drafts.db'}"))
    initialise_schema(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return build_session_factory(engine)


@pytest.fixture
def intake_service(session_factory) -> IntakeService:
    return IntakeService(session_factory)


@pytest.fixture
def generator(intake_service) -> FakeGenerator:
    return FakeGenerator(intake_service)


@pytest.fixture
def audit_sink(session_factory) -> DatabaseAuditSink:
    return DatabaseAuditSink(session_factory)


@pytest.fixture
def manager(session_factory, audit_sink, generator, settings) -> DraftLifecycleManager:
    return DraftLifecycleManager(
        session_factory,
        audit_sink,
        generator,
        downstream={'clinical_note': ClinicalRecordSync(session_factory)},
        settings=settings,
    )


@pytest.fixture
def intake_id(intake_service) -> str:
    return intake_service.submit_repeat_prescription('patient-1', dict(REPEAT_RX_ANSWERS)).intake_id


@pytest.fixture
def draft_id(intake_service, intake_id) -> str:
    return intake_service.record_generated_draft(
        intake_id,
        'clinical_note',
        {'text': 'Patient requests repeat of atorvastatin 20 mg.'},
    ).id


@pytest.fixture
def api_client(session_factory, generator) -> Iterator[TestClient]:
    """Yield a FastAPI test client bound to the per-test database."""

    from draftgate import api

    api.app.dependency_overrides[api.get_db_session_factory] = lambda: session_factory
    api.app.dependency_overrides[api.get_generation_service] = lambda: generator
    api.app.dependency_overrides[get_settings] = lambda: TEST_SETTINGS
    try:
        yield TestClient(api.app)
    finally:
        api.app.dependency_overrides.clear()
