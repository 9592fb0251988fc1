# booklingua/languages.py
from dataclasses import dataclass
from typing import Optional

from booklingua.errors import UnknownLanguageError


@dataclass(frozen=True)
class LanguageSettings:
    code:     str
    name:     str
    settings: str   # dialecto/registro por defecto, va tal cual al prompt


_DEFAULT_LANGUAGES: dict[str, LanguageSettings] = {
    "es": LanguageSettings(
        code     = "es",
        name     = "Spanish",
        settings = 'Use Latin American Spanish as the default, but maintain universal '
                   'readability. Use "tú" for informal address.',
    ),
    "fr": LanguageSettings(
        code     = "fr",
        name     = "French",
        settings = "Use standard French (France) with clear, modern phrasing.",
    ),
    "de": LanguageSettings(
        code     = "de",
        name     = "German",
        settings = "Use standard German (Hochdeutsch) with clear sentence structure.",
    ),
    "pt": LanguageSettings(
        code     = "pt",
        name     = "Portuguese",
        settings = "Use Brazilian Portuguese as the default for wider readability.",
    ),
}


class LanguageTable:
    """
    Tabla de idiomas soportados. Los defaults cubren es/fr/de/pt;
    el config puede sobrescribir entradas o añadir idiomas nuevos.
    """

    def __init__(self, overrides: Optional[dict] = None):
        self._languages = dict(_DEFAULT_LANGUAGES)
        for code, entry in (overrides or {}).items():
            code = code.lower()
            base = self._languages.get(code)
            name = entry.get("name") or (base.name if base else None)
            if not name:
                raise UnknownLanguageError(
                    f"El idioma '{code}' necesita 'name' en la configuración"
                )
            self._languages[code] = LanguageSettings(
                code     = code,
                name     = name,
                settings = entry.get("settings") or (base.settings if base else ""),
            )

    def get(self, code: str) -> LanguageSettings:
        try:
            return self._languages[code.lower()]
        except KeyError:
            supported = ", ".join(sorted(self.codes()))
            raise UnknownLanguageError(
                f"Idioma no soportado: '{code}'. Disponibles: {supported}"
            ) from None

    def name_of(self, code: str) -> str:
        """Nombre legible; si el código no existe devuelve el propio código."""
        entry = self._languages.get(code.lower())
        return entry.name if entry else code

    def codes(self) -> list[str]:
        return list(self._languages)
