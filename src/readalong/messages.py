from __future__ import annotations

SUPPORTED_LANGUAGES = ("eng", "fra")
DEFAULT_LANGUAGE = "eng"

_TRANSLATIONS: dict[str, dict[str, str]] = {
    "speed": {
        "eng": "Playback Speed",
        "fra": "Vitesse de Lecture",
    },
    "re-align": {
        "eng": "Re-align with audio",
        "fra": "Réaligner avec l'audio",
    },
    "audio-error": {
        "eng": "Error: The audio file could not be loaded",
        "fra": "Erreur: le fichier audio n'a pas pu être chargé",
    },
    "text-error": {
        "eng": "Error: The text file could not be loaded",
        "fra": "Erreur: le fichier texte n'a pas pu être chargé",
    },
    "alignment-error": {
        "eng": "Error: The alignment file could not be loaded",
        "fra": "Erreur: le fichier alignement n'a pas pu être chargé",
    },
    "loading": {
        "eng": "Loading...",
        "fra": "Chargement en cours",
    },
    "no-anchor-error": {
        "eng": "There is no anchor setup currently.",
        "fra": "Aucune ancre n'est définie pour le moment.",
    },
    "anchor-order-error": {
        "eng": "An anchor is earlier than the anchor before it.",
        "fra": "Une ancre est antérieure à l'ancre qui la précède.",
    },
}


def normalize_language(value: str | None) -> str:
    """Map two-letter or unknown codes onto a supported ISO 639-3 code."""
    if not value:
        return DEFAULT_LANGUAGE
    normalized = value.strip().lower()
    if normalized in SUPPORTED_LANGUAGES:
        return normalized
    if normalized.startswith("fr"):
        return "fra"
    return DEFAULT_LANGUAGE


def translate(key: str, language: str | None = None) -> str:
    entry = _TRANSLATIONS.get(key)
    if entry is None:
        return key
    return entry[normalize_language(language)]


__all__ = ["SUPPORTED_LANGUAGES", "DEFAULT_LANGUAGE", "normalize_language", "translate"]
