"""Client for the external draft generation service.

Regeneration hands the intake to a separate service that renders new drafts
and writes them back through the store. This module only triggers that work
and reports whether the service accepted it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import requests
import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    success: bool
    error: Optional[str] = None


class GenerationService:
    def generate(self, intake_id: str, version: int, force: bool) -> GenerationResult:  # pragma: no cover - interface
        raise NotImplementedError


class HttpGenerationService(GenerationService):
    """POST ``{"version", "force"}`` to ``{base_url}/intakes/{intake_id}/drafts``."""

    def __init__(self, base_url: Optional[str], *, timeout: float = 30.0, token: Optional[str] = None) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.token = token

    def generate(self, intake_id: str, version: int, force: bool) -> GenerationResult:
        if not self.base_url:
            logger.warning("generation_service_unconfigured", intake_id=intake_id)
            return GenerationResult(success=False, error="Draft generation service is not configured")

        url = f"{self.base_url}/intakes/{intake_id}/drafts"
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else None
        try:
            resp = requests.post(
                url,
                json={"version": version, "force": force},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("generation_request_failed", intake_id=intake_id, version=version, error=str(exc))
            return GenerationResult(success=False, error="Draft generation service is unavailable")

        if not resp.ok:
            logger.warning(
                "generation_request_rejected",
                intake_id=intake_id,
                version=version,
                status_code=resp.status_code,
            )
            return GenerationResult(success=False, error=f"Draft generation failed with status {resp.status_code}")

        return GenerationResult(success=True)


__all__ = ["GenerationResult", "GenerationService", "HttpGenerationService"]
