"""Canonicalise repeat-prescription answers submitted under older field names.

Intake forms have been rebuilt several times and each generation posted its
own keys (``amtCode``, ``medicationName``, a nested ``medication`` object).
Every reader goes through :func:`normalize_answers` so the mapping lives in
exactly one table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

Path = Tuple[str, ...]


@dataclass(frozen=True)
class FieldAlias:
    """Canonical key and the legacy locations it may be read from, in priority order."""

    canonical: str
    sources: Tuple[Path, ...]


FIELD_ALIASES: Tuple[FieldAlias, ...] = (
    FieldAlias(
        "amt_code",
        (("amtCode",), ("medication_code",), ("medicationCode",), ("medication", "amt_code"), ("medication", "code")),
    ),
    FieldAlias(
        "medication_display",
        (("medicationDisplay",), ("medication", "display")),
    ),
    FieldAlias(
        "medication_name",
        (("medicationName",), ("drug_name",), ("medication", "medication_name"), ("medication", "name")),
    ),
    FieldAlias(
        "medication_strength",
        (("medicationStrength",), ("strength",), ("medication", "strength")),
    ),
    FieldAlias(
        "medication_form",
        (("medicationForm",), ("form",), ("medication", "form")),
    ),
    FieldAlias("prescribed_before", (("prescribedBefore",),)),
    FieldAlias("dose_changed", (("doseChanged",), ("doseChangedRecently",))),
    FieldAlias("last_prescribed", (("lastPrescribed",), ("lastPrescribedTimeframe",))),
)

CANONICAL_KEYS: Tuple[str, ...] = tuple(alias.canonical for alias in FIELD_ALIASES)


def _lookup(raw: Mapping[str, Any], path: Path) -> Optional[Any]:
    value: Any = raw
    for part in path:
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


class AnswerNormalizer:
    """Additive mapping of legacy answer keys onto the canonical schema.

    A canonical key that already holds a value is never overwritten, and no
    key is removed, so callers that still read the legacy names keep working.
    ``None`` counts as absent.
    """

    def __init__(self, aliases: Sequence[FieldAlias] = FIELD_ALIASES) -> None:
        self._aliases = tuple(aliases)

    def normalize(self, raw: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(raw or {})
        for alias in self._aliases:
            if result.get(alias.canonical) is not None:
                continue
            for path in alias.sources:
                value = _lookup(result, path)
                if value is not None:
                    result[alias.canonical] = value
                    break
        return result


DEFAULT_NORMALIZER = AnswerNormalizer()


def normalize_answers(raw: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return DEFAULT_NORMALIZER.normalize(raw)


__all__ = [
    "AnswerNormalizer",
    "CANONICAL_KEYS",
    "DEFAULT_NORMALIZER",
    "FIELD_ALIASES",
    "FieldAlias",
    "normalize_answers",
]
