"""HTTP surface for draft review and repeat-prescription intake."""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Tuple

import structlog
from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import sessionmaker

from draftgate.audit import DatabaseAuditSink
from draftgate.auth import AuthContext, get_auth_context, require_decision_role
from draftgate.config import Settings, get_settings
from draftgate.db.session import get_session_factory
from draftgate.errors import DraftGateError, Unauthorized
from draftgate.generation import GenerationService, HttpGenerationService
from draftgate.intake import IntakeService
from draftgate.lifecycle import DraftLifecycleManager
from draftgate.logging_config import configure_logging
from draftgate.safety_gate import DEFAULT_VALIDATOR
from draftgate.sync import ClinicalRecordSync

configure_logging(get_settings().log_level)

logger = structlog.get_logger(__name__)

PATIENT_ROLE = "patient"


class SuccessResponse(BaseModel):
    """Standard successful response envelope."""

    success: Literal[True] = True
    data: Any | None = None


class ErrorDetail(BaseModel):
    """Details describing an error response payload."""

    code: int | str | None = None
    message: str
    details: Any | None = None

    model_config = {"extra": "allow"}


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    success: Literal[False] = False
    error: ErrorDetail


class ApproveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    edited_content: Optional[Any] = Field(default=None, alias="editedContent")


class RejectRequest(BaseModel):
    reason: str


class RepeatPrescriptionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: Optional[str] = Field(default=None, alias="patientId")
    answers: Dict[str, Any]


class AnswersUpdateRequest(BaseModel):
    answers: Dict[str, Any]


def _success_payload(data: Any) -> Dict[str, Any]:
    return SuccessResponse(data=data).model_dump()


def _error_payload(code: int | str | None, message: str, details: Any = None, **extras: Any) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    error.update({key: value for key, value in extras.items() if value is not None})
    return ErrorResponse(error=ErrorDetail(**error)).model_dump()


# Dependency providers; tests swap these through ``app.dependency_overrides``.


def get_db_session_factory() -> sessionmaker:
    return get_session_factory()


def get_generation_service(settings: Settings = Depends(get_settings)) -> GenerationService:
    return HttpGenerationService(settings.generation_url, timeout=settings.generation_timeout)


def get_audit_sink(factory: sessionmaker = Depends(get_db_session_factory)) -> DatabaseAuditSink:
    return DatabaseAuditSink(factory)


def get_lifecycle_manager(
    factory: sessionmaker = Depends(get_db_session_factory),
    audit_sink: DatabaseAuditSink = Depends(get_audit_sink),
    generator: GenerationService = Depends(get_generation_service),
    settings: Settings = Depends(get_settings),
) -> DraftLifecycleManager:
    return DraftLifecycleManager(
        factory,
        audit_sink,
        generator,
        downstream={"clinical_note": ClinicalRecordSync(factory)},
        settings=settings,
    )


def get_intake_service(factory: sessionmaker = Depends(get_db_session_factory)) -> IntakeService:
    return IntakeService(factory)


def _resolve_patient_id(
    auth: AuthContext,
    settings: Settings,
    requested: Optional[str],
) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(patient_id, owner_filter)`` for a patient-facing request.

    Patients always act on their own behalf; decision roles may name the
    patient. Any other role is refused.
    """

    if auth.actor_role == PATIENT_ROLE:
        return auth.actor_id, auth.actor_id
    if settings.is_decision_role(auth.actor_role):
        return requested, None
    logger.warning("intake_access_forbidden", actor_id=auth.actor_id, actor_role=auth.actor_role)
    raise Unauthorized("Only the patient or a doctor can change this request")


app = FastAPI(title="draftgate")


@app.exception_handler(DraftGateError)
async def draftgate_error_handler(request: Request, exc: DraftGateError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(
            exc.code,
            exc.message,
            exc.details or None,
            guidance=exc.guidance,
            retryable=exc.retryable,
        ),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert ``HTTPException`` instances into the standard error envelope."""

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(exc.status_code, str(exc.detail)),
        headers=dict(exc.headers or {}),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "; ".join(str(item.get("msg", "")) for item in errors if item.get("msg")) or "Invalid request"
    return JSONResponse(
        status_code=422,
        content=_error_payload("invalid_input", message, [
            {"loc": list(item.get("loc", ())), "msg": item.get("msg")} for item in errors
        ]),
    )


@app.get("/api/intakes/{intake_id}/drafts")
def list_drafts(
    intake_id: str,
    auth: AuthContext = Depends(require_decision_role),
    manager: DraftLifecycleManager = Depends(get_lifecycle_manager),
) -> Dict[str, Any]:
    drafts = manager.list_drafts(intake_id)
    return _success_payload({"drafts": [draft.to_dict() for draft in drafts]})


@app.post("/api/drafts/{draft_id}/approve")
def approve_draft(
    draft_id: str,
    payload: Optional[ApproveRequest] = None,
    auth: AuthContext = Depends(get_auth_context),
    manager: DraftLifecycleManager = Depends(get_lifecycle_manager),
) -> Dict[str, Any]:
    edited_content = payload.edited_content if payload is not None else None
    result = manager.approve(draft_id, auth.actor_id, auth.actor_role, edited_content)
    return _success_payload(result.to_dict())


@app.post("/api/drafts/{draft_id}/reject")
def reject_draft(
    draft_id: str,
    payload: RejectRequest,
    auth: AuthContext = Depends(get_auth_context),
    manager: DraftLifecycleManager = Depends(get_lifecycle_manager),
) -> Dict[str, Any]:
    result = manager.reject(draft_id, auth.actor_id, auth.actor_role, payload.reason)
    return _success_payload(result.to_dict())


@app.post("/api/intakes/{intake_id}/drafts/regenerate")
def regenerate_drafts(
    intake_id: str,
    auth: AuthContext = Depends(get_auth_context),
    manager: DraftLifecycleManager = Depends(get_lifecycle_manager),
) -> Dict[str, Any]:
    result = manager.regenerate(intake_id, auth.actor_id, auth.actor_role)
    return _success_payload(result.to_dict())


@app.get("/api/drafts/{draft_id}/staleness")
def draft_staleness(
    draft_id: str,
    auth: AuthContext = Depends(require_decision_role),
    manager: DraftLifecycleManager = Depends(get_lifecycle_manager),
) -> Dict[str, Any]:
    return _success_payload(manager.check_staleness(draft_id).to_dict())


@app.post("/api/repeat-rx/validate")
def validate_repeat_prescription(
    answers: Dict[str, Any] = Body(...),
    auth: AuthContext = Depends(get_auth_context),
) -> Dict[str, Any]:
    return _success_payload(DEFAULT_VALIDATOR.validate(answers).to_dict())


@app.post("/api/repeat-rx", status_code=status.HTTP_201_CREATED)
def submit_repeat_prescription(
    payload: RepeatPrescriptionRequest,
    auth: AuthContext = Depends(get_auth_context),
    intakes: IntakeService = Depends(get_intake_service),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    patient_id, _ = _resolve_patient_id(auth, settings, payload.patient_id)
    submission = intakes.submit_repeat_prescription(patient_id, payload.answers)
    return _success_payload({"intakeId": submission.intake_id, "serviceType": submission.service_type})


@app.put("/api/intakes/{intake_id}/answers")
def update_intake_answers(
    intake_id: str,
    payload: AnswersUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    intakes: IntakeService = Depends(get_intake_service),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    _, owner = _resolve_patient_id(auth, settings, None)
    fingerprint = intakes.update_answers(intake_id, payload.answers, patient_id=owner)
    return _success_payload({"intakeId": intake_id, "fingerprint": fingerprint})


@app.get("/api/intakes/{intake_id}/audit")
def intake_audit_history(
    intake_id: str,
    auth: AuthContext = Depends(require_decision_role),
    audit_sink: DatabaseAuditSink = Depends(get_audit_sink),
) -> Dict[str, Any]:
    events = audit_sink.list_events(intake_id)
    return _success_payload({"events": [event.to_dict() for event in events]})


@app.get("/metrics", response_model=None)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


__all__ = ["app"]
