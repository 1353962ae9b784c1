"""
Administrative content filter.

Drops candidate items that quiz the learner on course logistics (exam format,
schedule, materials, teaching staff) rather than on the academic content of
the unit. Keywords are matched on word boundaries so that short tokens such
as "td" never match inside longer words.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence

ADMIN_KEYWORDS_FR: Sequence[str] = (
    "examen final", "examen partiel", "durée de l'examen", "durée totale",
    "parties de l'examen", "nombre de parties", "format de l'examen",
    "barème", "notation", "coefficient", "note finale", "points bonus",
    "évaluation continue", "contrôle continu",
    "séance", "séances", "travaux dirigés", "travaux pratiques", "td", "tp",
    "structure du cours", "organisation du cours", "déroulement du cours",
    "objectif principal du cours", "objectif du cours", "objectifs du cours",
    "activités pédagogiques", "méthode pédagogique", "méthodes utilisées",
    "support de cours", "supports de cours", "diapositives", "polycopié",
    "ressources du cours", "ressources mentionnées", "matériel fourni",
    "manuel recommandé", "bibliographie", "lectures obligatoires",
    "horaire", "emploi du temps", "calendrier", "semestre", "trimestre",
    "nombre d'heures", "heures de cours", "crédits ects",
    "professeur", "enseignant", "chargé de td", "inscription",
)

ADMIN_KEYWORDS_EN: Sequence[str] = (
    "final exam", "midterm exam", "exam duration", "total duration",
    "exam parts", "number of parts", "exam format", "grading policy",
    "grading scale", "grade breakdown", "bonus points", "continuous assessment",
    "lecture session", "lab session", "tutorial session", "recitation",
    "course structure", "course organization", "main objective of the course",
    "course objective", "course objectives", "teaching methods",
    "course materials", "lecture slides", "handouts", "course resources",
    "resources mentioned", "required textbook", "recommended reading",
    "required readings", "class schedule", "course calendar",
    "credit hours", "ects credits",
    "professor", "instructor", "teaching assistant", "enrollment", "office hours",
)

ADMIN_KEYWORDS_DE: Sequence[str] = (
    "abschlussprüfung", "zwischenprüfung", "prüfungsdauer", "gesamtdauer",
    "prüfungsteile", "anzahl der teile", "prüfungsformat", "bewertungsschema",
    "notenverteilung", "bonuspunkte", "fortlaufende bewertung",
    "kursstruktur", "kursorganisation", "hauptziel des kurses",
    "kursziele", "lehrmethoden", "pädagogische aktivitäten",
    "kursmaterialien", "vorlesungsfolien", "kursressourcen",
    "empfohlenes lehrbuch", "pflichtlektüre", "literaturverzeichnis",
    "stundenplan", "kurskalender", "ects-punkte",
    "dozent", "einschreibung", "sprechstunden",
)

ADMIN_PATTERNS: Sequence[Pattern[str]] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"combien de parties?\s+(?:compose|comporte|comprend)",
        r"quelle est la durée",
        r"quel(?:le)? est (?:l['’])?(?:objectif|but) (?:principal )?du cours",
        r"quels sont les objectifs du cours",
        r"(?:première|seconde|deuxième|dernière) partie de (?:chaque|la) séance",
        r"méthodes? utilisée?s? dans (?:les|le) (?:cours|td|travaux)",
        r"comment (?:est|sont) (?:organisé|structuré)",
        r"how many parts does the exam",
        r"what is the duration of",
        r"what is the (?:main )?objective of (?:the|this) course",
        r"what are the course objectives",
        r"methods? used in (?:the )?(?:course|lectures|tutorials)",
        r"wie viele teile hat die prüfung",
        r"wie lange dauert",
        r"was ist das (?:haupt)?ziel des kurses",
    )
)


def _keyword_pattern(keyword: str) -> Pattern[str]:
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)", re.IGNORECASE)


_KEYWORD_PATTERNS: Sequence[tuple[str, Pattern[str]]] = tuple(
    (keyword, _keyword_pattern(keyword))
    for keyword in (*ADMIN_KEYWORDS_FR, *ADMIN_KEYWORDS_EN, *ADMIN_KEYWORDS_DE)
)


@dataclass(frozen=True)
class AdminMatch:
    is_admin: bool
    reason: Optional[str] = None
    matched: Optional[str] = None


def match_administrative(text: str) -> AdminMatch:
    lowered = (text or "").replace("’", "'").lower()
    if not lowered.strip():
        return AdminMatch(is_admin=False)
    for pattern in ADMIN_PATTERNS:
        if pattern.search(lowered):
            return AdminMatch(is_admin=True, reason="pattern", matched=pattern.pattern)
    for keyword, pattern in _KEYWORD_PATTERNS:
        if pattern.search(lowered):
            return AdminMatch(is_admin=True, reason="keyword", matched=keyword)
    return AdminMatch(is_admin=False)


def is_administrative(text: str) -> bool:
    return match_administrative(text).is_admin
