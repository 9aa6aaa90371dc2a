"""Database helpers for draftgate."""

from __future__ import annotations

from .config import DatabaseSettings, get_database_settings
from .models import AIAuditLog, Base, ClinicalRecord, DocumentDraft, Intake, IntakeAnswers
from .session import (
    build_engine,
    build_session_factory,
    get_engine,
    get_session_factory,
    initialise_schema,
    session_scope,
)

__all__ = [
    "AIAuditLog",
    "Base",
    "ClinicalRecord",
    "DatabaseSettings",
    "DocumentDraft",
    "Intake",
    "IntakeAnswers",
    "build_engine",
    "build_session_factory",
    "get_database_settings",
    "get_engine",
    "get_session_factory",
    "initialise_schema",
    "session_scope",
]
