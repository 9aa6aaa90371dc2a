"""Shared fixtures data and fakes for the draftgate test-suite."""

from datetime import timedelta
from typing import Any, Dict, List, Sequence, Tuple

import sqlalchemy as sa
from sqlalchemy.orm import sessionmaker

from draftgate.auth import create_access_token
from draftgate.config import Settings
from draftgate.db.models import DocumentDraft
from draftgate.generation import GenerationResult, GenerationService
from draftgate.intake import IntakeService
from draftgate.time_utils import utc_now


TEST_SETTINGS = Settings(jwt_secret='draftgate-test-secret-0123456789abcdef', environment='test')

REPEAT_RX_ANSWERS: Dict[str, Any] = {
    'amt_code': '1234567',
    'medication_display': 'Atorvastatin 20 mg tablet',
    'medication_name': 'atorvastatin',
    'prescribed_before': True,
    'dose_changed': False,
    'last_prescribed': '3_6_months',
}


class FakeGenerator(GenerationService):
    """Generation collaborator that writes drafts straight through the intake service."""

    def __init__(self, intakes: IntakeService, kinds: Sequence[str] = ('clinical_note', 'repeat_rx')) -> None:
        self.intakes = intakes
        self.kinds = tuple(kinds)
        self.calls: List[Tuple[str, int, bool]] = []
        self.fail_with: str | None = None

    def generate(self, intake_id: str, version: int, force: bool) -> GenerationResult:
        self.calls.append((intake_id, version, force))
        if self.fail_with:
            return GenerationResult(success=False, error=self.fail_with)
        for kind in self.kinds:
            self.intakes.record_generated_draft(
                intake_id,
                kind,
                {'text': f'{kind} v{version}'},
                version=version,
                model='test-model',
            )
        return GenerationResult(success=True)


def update_draft(session_factory: sessionmaker, draft_id: str, **values: Any) -> None:
    with session_factory() as session:
        session.execute(sa.update(DocumentDraft).where(DocumentDraft.id == draft_id).values(**values))
        session.commit()


def backdate_draft(session_factory: sessionmaker, draft_id: str, hours: float) -> None:
    update_draft(session_factory, draft_id, created_at=utc_now() - timedelta(hours=hours))


def load_draft(session_factory: sessionmaker, draft_id: str) -> DocumentDraft | None:
    with session_factory() as session:
        return session.get(DocumentDraft, draft_id)


def auth_header(role: str = 'doctor', actor_id: str = 'doctor-1') -> Dict[str, str]:
    token = create_access_token(actor_id, role, TEST_SETTINGS)
    return {'Authorization': f'Bearer {token}'}
