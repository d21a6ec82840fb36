# rent_aggregator/services/translation.py

"""Spanish ↔ German real-estate term translation."""

import logging
import re
from typing import Protocol

logger = logging.getLogger("rent_aggregator.translation")


class Translator(Protocol):
    """Anything that can translate a short search phrase."""

    def translate(self, text: str, from_lang: str, to_lang: str) -> str:
        ...


# Spanish → German.  The reverse table keeps the first Spanish term
# seen for each German word.
TERM_GLOSSARY: dict[str, str] = {
    # property types
    "apartamento": "wohnung",
    "piso": "wohnung",
    "casa": "haus",
    "chalet": "haus",
    "villa": "villa",
    "ático": "dachgeschoss",
    "bajo": "erdgeschoss",
    "estudio": "studio",
    "loft": "loft",
    "dúplex": "maisonette",
    # rooms
    "habitación": "zimmer",
    "dormitorio": "schlafzimmer",
    "salón": "wohnzimmer",
    "sala": "wohnzimmer",
    "cocina": "küche",
    "baño": "bad",
    "aseo": "wc",
    # features
    "terraza": "terrasse",
    "balcón": "balkon",
    "jardín": "garten",
    "garaje": "garage",
    "parking": "parkplatz",
    "ascensor": "aufzug",
    "amueblado": "möbliert",
    "calefacción": "heizung",
    "aire acondicionado": "klimaanlage",
    # contract and price
    "alquiler": "miete",
    "alquilar": "mieten",
    "venta": "verkauf",
    "comprar": "kaufen",
    "mensual": "monatlich",
    "anual": "jährlich",
    "barato": "günstig",
    "caro": "teuer",
    # location
    "centro": "zentrum",
    "barrio": "stadtteil",
    "zona": "gebiet",
    "cerca": "nah",
    "moderno": "modern",
    "antiguo": "altbau",
    "nuevo": "neubau",
}

CITY_EXONYMS: dict[str, str] = {
    "múnich": "München",
    "munich": "München",
    "colonia": "Köln",
    "fráncfort": "Frankfurt",
    "francfort": "Frankfurt",
    "hamburgo": "Hamburg",
    "berlín": "Berlin",
    "dresde": "Dresden",
    "núremberg": "Nürnberg",
    "nuremberg": "Nürnberg",
    "hanóver": "Hannover",
    "aquisgrán": "Aachen",
}

_SPANISH_HINTS = frozenset({
    "el", "la", "los", "las", "un", "una", "y", "pero", "que", "de",
    "con", "por", "para", "alquiler", "apartamento", "piso", "casa",
})
_GERMAN_HINTS = frozenset({
    "der", "die", "das", "und", "oder", "aber", "dass", "von", "mit",
    "für", "miete", "wohnung", "haus", "zimmer",
})


def _build_pattern(terms: dict[str, str]) -> re.Pattern[str] | None:
    if not terms:
        return None
    # Longest first so multi-word terms beat their parts.
    alternatives = sorted(terms, key=len, reverse=True)
    return re.compile(
        r"\b(?:" + "|".join(re.escape(t) for t in alternatives) + r")\b",
        re.IGNORECASE,
    )


class TermTranslator:
    """Glossary-based translator; no network access.

    Known terms are replaced on word boundaries, unknown words pass
    through untouched.  A replaced word that started with a capital
    letter keeps it.
    """

    def __init__(
        self,
        glossary: dict[str, str] | None = None,
        exonyms: dict[str, str] | None = None,
    ) -> None:
        forward = dict(glossary if glossary is not None else TERM_GLOSSARY)
        cities = dict(exonyms if exonyms is not None else CITY_EXONYMS)

        reverse: dict[str, str] = {}
        for es, de in forward.items():
            reverse.setdefault(de, es)
        reverse_cities: dict[str, str] = {}
        for es, de in cities.items():
            reverse_cities.setdefault(de.lower(), es.title())

        self._tables: dict[tuple[str, str], dict[str, str]] = {
            ("es", "de"): {**forward, **cities},
            ("de", "es"): {**reverse, **reverse_cities},
        }
        self._patterns = {
            pair: _build_pattern(table) for pair, table in self._tables.items()
        }

    def supports(self, from_lang: str, to_lang: str) -> bool:
        return (from_lang.lower(), to_lang.lower()) in self._tables

    def translate(self, text: str, from_lang: str = "es", to_lang: str = "de") -> str:
        """Translate *text*; unsupported pairs return it unchanged."""
        if not text or not text.strip():
            return text
        pair = (from_lang.lower(), to_lang.lower())
        pattern = self._patterns.get(pair)
        if pattern is None:
            logger.debug("No glossary for %s→%s", *pair)
            return text
        table = self._tables[pair]

        def substitute(match: re.Match[str]) -> str:
            found = match.group(0)
            target = table[found.lower()]
            if found[:1].isupper() and target[:1].islower():
                return target[:1].upper() + target[1:]
            return target

        translated = pattern.sub(substitute, text)
        if translated != text:
            logger.debug("Translated %r → %r (%s→%s)", text, translated, *pair)
        return translated

    def translate_query(
        self, query: str, from_lang: str = "es", to_lang: str = "de",
    ) -> str:
        """Translate a free-text query word by word, dropping commas."""
        parts = [p for p in re.split(r"[\s,]+", query or "") if p]
        return " ".join(self.translate(p, from_lang, to_lang) for p in parts)

    @staticmethod
    def detect_language(text: str) -> str:
        """Guess ``es``, ``de`` or ``unknown`` from function words."""
        words = (text or "").lower().split()
        spanish = sum(1 for w in words if w in _SPANISH_HINTS)
        german = sum(1 for w in words if w in _GERMAN_HINTS)
        if spanish > german:
            return "es"
        if german > spanish:
            return "de"
        return "unknown"

    def stats(self) -> dict[str, int]:
        return {
            "es_de_terms": len(self._tables[("es", "de")]),
            "de_es_terms": len(self._tables[("de", "es")]),
        }
