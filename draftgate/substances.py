"""Controlled-substance detection for repeat-prescription requests.

Operators type or paste medication names, so plain substring matching is easy
to defeat ("oxycod0ne", "valiumm"). :class:`SubstanceMatcher` therefore runs
two passes over normalised text:

1. exact containment of any banned term, then
2. Levenshtein distance between each word (four characters or longer) and each
   single-word banned term, with a tolerance of 2 edits for terms of six or
   more characters and 1 edit otherwise.

This is a heuristic screen, not a clinical drug-interaction engine. It will
flag some legitimate medicines whose names sit within the tolerance of a
banned one. Known cases: "iodine" (Betadine) reads as biodone, "Lodine"
(etodolac) as codeine, "target" in free text as targin and "Kalmia" as
kalma. It cannot recognise a controlled substance that is absent
from the tables below. Requests it clears still go to a doctor.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

MANUAL_ENTRY_CODE = "MANUAL"

ZERO_WIDTH_REPLACEMENTS = str.maketrans({
    "\u200b": "",
    "\u200c": "",
    "\u200d": "",
    "\u2060": "",
    "\ufeff": "",
    "\u00ad": "",
})

WORD_SPLIT_RE = re.compile(r"[\W_]+", re.UNICODE)

MIN_FUZZY_WORD_LENGTH = 4

S8_OPIOIDS: Tuple[str, ...] = (
    "oxycodone", "oxycontin", "endone", "targin",
    "morphine", "ms contin", "kapanol", "sevredol",
    "fentanyl", "durogesic", "abstral", "actiq",
    "hydromorphone", "dilaudid", "jurnista",
    "methadone", "physeptone", "biodone",
    "buprenorphine", "suboxone", "subutex", "temgesic",
    "tapentadol", "palexia",
    "codeine",
    "tramadol",
)

S8_STIMULANTS: Tuple[str, ...] = (
    "dexamphetamine", "dexamfetamine", "dexedrine",
    "lisdexamfetamine", "vyvanse",
    "methylphenidate", "ritalin", "concerta",
    "modafinil", "armodafinil",
)

BENZODIAZEPINES: Tuple[str, ...] = (
    "alprazolam", "xanax", "kalma",
    "diazepam", "valium", "antenex",
    "clonazepam", "rivotril", "paxam",
    "lorazepam", "ativan",
    "oxazepam", "serepax", "murelax",
    "temazepam", "temaze", "normison", "temtabs",
    "nitrazepam", "mogadon", "alodorm",
    "bromazepam", "lexotan",
    "clobazam", "frisium",
    "flunitrazepam", "rohypnol",
)

Z_DRUGS: Tuple[str, ...] = (
    "zolpidem", "stilnox", "stilnoct",
    "zopiclone", "imovane", "imrest",
    "eszopiclone",
)

CANNABIS_MEDICINES: Tuple[str, ...] = (
    "cannabis", "cannabidiol", "cbd oil",
    "dronabinol", "marinol",
    "nabilone", "cesamet",
    "nabiximols", "sativex",
)

TESTOSTERONE: Tuple[str, ...] = (
    "testosterone", "sustanon", "primoteston",
    "reandron", "androderm", "andriol", "axiron",
)

# Antipsychotics and mood stabilisers. Safe only inside an ongoing treating
# relationship, so never issued as a fast-path repeat.
MENTAL_HEALTH_MEDS: Tuple[str, ...] = (
    "olanzapine", "zyprexa",
    "quetiapine", "seroquel",
    "risperidone", "risperdal",
    "aripiprazole", "abilify",
    "clozapine", "clozaril",
    "haloperidol", "serenace",
    "paliperidone", "invega",
    "ziprasidone", "zeldox",
    "amisulpride", "solian",
    "lurasidone", "latuda",
    "lithium", "lithicarb", "quilonum",
    "valproate", "epilim",
    "carbamazepine", "tegretol",
    "lamotrigine", "lamictal",
)

BANNED_TERMS_BY_CATEGORY: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "s8_opioid": S8_OPIOIDS,
    "s8_stimulant": S8_STIMULANTS,
    "benzodiazepine": BENZODIAZEPINES,
    "z_drug": Z_DRUGS,
    "cannabis": CANNABIS_MEDICINES,
    "testosterone": TESTOSTERONE,
    "mental_health": MENTAL_HEALTH_MEDS,
})

# Catalogue code prefixes for scheduled items. Checked independently of the
# medication name so a mislabelled catalogue entry is still caught.
BANNED_CODE_PREFIXES: Tuple[str, ...] = (
    "21630",
    "21631",
    "21633",
    "22054",
    "23642",
    "S8",
)

CATEGORY_LABELS: Mapping[str, str] = MappingProxyType({
    "s8_opioid": "Schedule 8 opioid",
    "s8_stimulant": "Schedule 8 stimulant",
    "benzodiazepine": "benzodiazepine",
    "z_drug": "sedative hypnotic (z-drug)",
    "cannabis": "medicinal cannabis product",
    "testosterone": "testosterone (Schedule 4D)",
    "mental_health": "mental health medicine",
    "catalogue_code": "controlled substance",
})

DEFAULT_BLOCKED_GUIDANCE = (
    "Please see your regular GP in person. Controlled medicines cannot be "
    "prescribed through an online repeat prescription."
)

BLOCKED_GUIDANCE_BY_CATEGORY: Mapping[str, str] = MappingProxyType({
    "s8_opioid": (
        "Schedule 8 opioids need an in-person consultation with your regular "
        "prescriber and cannot be issued as an online repeat."
    ),
    "s8_stimulant": (
        "ADHD stimulant medicines need ongoing care from your specialist or GP. "
        "Please book in with your regular prescriber."
    ),
    "benzodiazepine": (
        "Benzodiazepines need close monitoring and are not available as an online "
        "repeat. Please see your regular GP."
    ),
    "z_drug": (
        "Sleep medicines like this need a consultation to talk through sleep habits "
        "and alternatives. Book a general consultation instead."
    ),
    "cannabis": (
        "Medicinal cannabis must be authorised by a TGA-approved prescriber. "
        "This service does not prescribe it."
    ),
    "testosterone": (
        "Testosterone therapy needs regular blood test monitoring. Please continue "
        "with your prescribing specialist."
    ),
    "mental_health": (
        "This medicine is part of ongoing mental health care. Book a general "
        "consultation or continue with your treating psychiatrist or GP."
    ),
    "catalogue_code": DEFAULT_BLOCKED_GUIDANCE,
})


def guidance_for(category: Optional[str]) -> str:
    """Return what a patient blocked under ``category`` should do instead."""

    return BLOCKED_GUIDANCE_BY_CATEGORY.get(category or "", DEFAULT_BLOCKED_GUIDANCE)


@dataclass(frozen=True)
class SubstanceMatch:
    term: str
    category: str
    distance: int = 0

    @property
    def label(self) -> str:
        return CATEGORY_LABELS.get(self.category, "controlled substance")

    @property
    def guidance(self) -> str:
        return guidance_for(self.category)


def levenshtein(a: str, b: str) -> int:
    """Return the edit distance between ``a`` and ``b``."""

    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def tolerance_for(term: str) -> int:
    return 2 if len(term) >= 6 else 1


def normalise_text(text: str) -> str:
    """Lowercase, NFKC-fold and strip zero-width characters from ``text``."""

    if not text:
        return ""
    folded = unicodedata.normalize("NFKC", text).translate(ZERO_WIDTH_REPLACEMENTS)
    return folded.lower().strip()


def tokenize(text: str) -> List[str]:
    return [word for word in WORD_SPLIT_RE.split(text) if len(word) >= MIN_FUZZY_WORD_LENGTH]


class SubstanceMatcher:
    """Detect banned substance names and catalogue codes.

    The tables are fixed at construction and exposed read-only; there is no
    path for mutating them at runtime.
    """

    def __init__(
        self,
        terms_by_category: Optional[Mapping[str, Iterable[str]]] = None,
        code_prefixes: Optional[Iterable[str]] = None,
    ) -> None:
        source = terms_by_category if terms_by_category is not None else BANNED_TERMS_BY_CATEGORY
        categories: Dict[str, str] = {}
        for category, terms in source.items():
            for term in terms:
                normalised = normalise_text(term)
                if normalised:
                    categories.setdefault(normalised, category)
        self._categories: Mapping[str, str] = MappingProxyType(categories)
        self._terms: Tuple[str, ...] = tuple(categories)
        # Multi-word terms are only caught by the exact pass.
        self._fuzzy_terms: Tuple[str, ...] = tuple(term for term in self._terms if " " not in term)
        prefixes = code_prefixes if code_prefixes is not None else BANNED_CODE_PREFIXES
        self._code_prefixes: Tuple[str, ...] = tuple(
            prefix.strip().upper() for prefix in prefixes if prefix and prefix.strip()
        )

    @property
    def terms(self) -> Tuple[str, ...]:
        return self._terms

    @property
    def code_prefixes(self) -> Tuple[str, ...]:
        return self._code_prefixes

    def is_blocked_code(self, code: Optional[str]) -> bool:
        """Return ``True`` when ``code`` starts with a banned catalogue prefix.

        The manual-entry sentinel is never blocked here; it falls through to
        name matching.
        """

        if not isinstance(code, str):
            return False
        normalised = code.strip().upper()
        if not normalised or normalised == MANUAL_ENTRY_CODE:
            return False
        return any(normalised.startswith(prefix) for prefix in self._code_prefixes)

    def is_blocked(self, text: Optional[str]) -> bool:
        return self.find_match(text) is not None

    def find_match(self, text: Optional[str]) -> Optional[SubstanceMatch]:
        """Return the first banned term ``text`` contains or closely resembles."""

        if not isinstance(text, str):
            return None
        normalised = normalise_text(text)
        if not normalised:
            return None

        for term in self._terms:
            if term in normalised:
                return SubstanceMatch(term=term, category=self._categories[term])

        for word in tokenize(normalised):
            for term in self._fuzzy_terms:
                tolerance = tolerance_for(term)
                if abs(len(word) - len(term)) > tolerance:
                    continue
                distance = levenshtein(word, term)
                if distance <= tolerance:
                    return SubstanceMatch(term=term, category=self._categories[term], distance=distance)
        return None


DEFAULT_MATCHER = SubstanceMatcher()


__all__ = [
    "BANNED_CODE_PREFIXES",
    "BANNED_TERMS_BY_CATEGORY",
    "BLOCKED_GUIDANCE_BY_CATEGORY",
    "CATEGORY_LABELS",
    "DEFAULT_MATCHER",
    "DEFAULT_BLOCKED_GUIDANCE",
    "MANUAL_ENTRY_CODE",
    "SubstanceMatch",
    "SubstanceMatcher",
    "guidance_for",
    "levenshtein",
    "normalise_text",
    "tokenize",
    "tolerance_for",
]
