"""
Relative-date phrase tables.

Each locale contributes a phrase template with two named slots: the magnitude
(digits or a number word such as "a" / "un" / "einem") and the unit. Units map
to an approximate day count; sub-day units map to zero so "3 hours ago" lands
in the current year.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

UNIT_DAYS: Dict[str, int] = {
    "year": 365,
    "month": 30,
    "week": 7,
    "day": 1,
    "hour": 0,
    "minute": 0,
    "second": 0,
}


@dataclass(frozen=True)
class LocalePatterns:
    """Relative-phrase grammar for one language."""

    code: str
    # "{n}" and "{unit}" are replaced with capturing alternations
    template: str
    units: Dict[str, str]
    numbers: Dict[str, int] = field(default_factory=dict)

    def compile(self) -> List[Tuple[re.Pattern, str]]:
        words = sorted(self.numbers, key=len, reverse=True)
        number_alt = "|".join([r"\d+"] + [re.escape(w) for w in words])
        compiled = []
        for unit, alternation in self.units.items():
            pattern = self.template.replace("{n}", f"(?P<n>{number_alt})")
            pattern = pattern.replace("{unit}", f"(?:{alternation})")
            compiled.append((re.compile(pattern, re.IGNORECASE), unit))
        return compiled

    def magnitude(self, token: str) -> int:
        if token.isdigit():
            return int(token)
        return self.numbers.get(token.lower(), 1)


LOCALES: Dict[str, LocalePatterns] = {
    "en": LocalePatterns(
        code="en",
        template=r"\b{n}\s+{unit}\s+ago\b",
        units={
            "year": r"years?",
            "month": r"months?",
            "week": r"weeks?",
            "day": r"days?",
            "hour": r"hours?",
            "minute": r"minutes?|mins?",
            "second": r"seconds?|secs?",
        },
        numbers={"a": 1, "an": 1, "one": 1},
    ),
    "it": LocalePatterns(
        code="it",
        template=r"\b{n}\s+{unit}\s+fa\b",
        units={
            "year": r"ann[oi]",
            "month": r"mes[ei]",
            "week": r"settiman[ae]",
            "day": r"giorn[oi]",
            "hour": r"or[ae]",
            "minute": r"minut[oi]",
            "second": r"second[oi]",
        },
        numbers={"un": 1, "uno": 1, "una": 1},
    ),
    "es": LocalePatterns(
        code="es",
        template=r"\bhace\s+{n}\s+{unit}\b",
        units={
            "year": r"años?",
            "month": r"mes(?:es)?",
            "week": r"semanas?",
            "day": r"días?|dias?",
            "hour": r"horas?",
            "minute": r"minutos?",
            "second": r"segundos?",
        },
        numbers={"un": 1, "una": 1},
    ),
    "de": LocalePatterns(
        code="de",
        template=r"\bvor\s+{n}\s+{unit}\b",
        units={
            "year": r"jahr(?:en)?",
            "month": r"monat(?:en)?",
            "week": r"woche(?:n)?",
            "day": r"tag(?:en)?",
            "hour": r"stunde(?:n)?",
            "minute": r"minute(?:n)?",
            "second": r"sekunde(?:n)?",
        },
        numbers={"einem": 1, "einer": 1, "ein": 1},
    ),
    "fr": LocalePatterns(
        code="fr",
        template=r"\bil\s+y\s+a\s+{n}\s+{unit}\b",
        units={
            "year": r"ans?|années?",
            "month": r"mois",
            "week": r"semaines?",
            "day": r"jours?",
            "hour": r"heures?",
            "minute": r"minutes?",
            "second": r"secondes?",
        },
        numbers={"un": 1, "une": 1},
    ),
    "pt": LocalePatterns(
        code="pt",
        template=r"\bhá\s+{n}\s+{unit}\b",
        units={
            "year": r"anos?",
            "month": r"mês|meses",
            "week": r"semanas?",
            "day": r"dias?",
            "hour": r"horas?",
            "minute": r"minutos?",
            "second": r"segundos?",
        },
        numbers={"um": 1, "uma": 1},
    ),
}

DEFAULT_LOCALE_ORDER: Tuple[str, ...] = ("en", "it", "es", "de", "fr", "pt")

# Count words that follow a bare number in metadata lines ("2015 views")
COUNT_WORDS = (
    "views", "view", "plays", "play", "likes", "like", "followers", "subscribers",
    "visualizzazioni", "aufrufe", "vues", "vistas", "visualizações",
)

_COMPILED: Dict[str, List[Tuple[re.Pattern, str]]] = {}


def compiled_patterns(code: str) -> List[Tuple[re.Pattern, str]]:
    """Return (and memoize) the compiled phrase patterns for a locale."""
    if code not in _COMPILED:
        _COMPILED[code] = LOCALES[code].compile()
    return _COMPILED[code]
