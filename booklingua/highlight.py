# booklingua/highlight.py
"""
Gramática de marcadores de la pasada editorial.

Es el formato de intercambio entre la pasada 2 y la capa de entrega:
el modelo marca cada cambio en línea y nosotros nunca calculamos el diff.
Un mismo payload sirve para las dos entregas:

- limpia: se eliminan los tramos marcados y queda el texto publicable
- revisión: los tramos marcados se muestran resaltados

Gramática "original" (la de por defecto):

    [[ORIGINAL: frase previa]]frase mejorada y resto del texto...

El texto de reemplazo corre desde el cierre hasta el siguiente marcador o
el final del documento. La gramática "highlight" envuelve en cambio el texto
nuevo: [[HIGHLIGHT]]frase mejorada[[/HIGHLIGHT]].
"""
import html
from dataclasses import dataclass
from typing import Union


class MalformedMarkupError(ValueError):
    """Marcador abierto sin cierre, o marcador anidado."""
    pass


@dataclass(frozen=True)
class MarkerGrammar:
    name:  str
    start: str
    close: str
    # "original": el tramo marcado es el texto previo y desaparece en la versión limpia
    # "replacement": el tramo marcado es el texto nuevo y se conserva
    wraps: str = "original"

    def mark(self, phrase: str) -> str:
        """Envuelve una frase con la sintaxis de la gramática."""
        separator = " " if self.wraps == "original" else ""
        return f"{self.start}{separator}{phrase}{self.close}"


ORIGINAL_GRAMMAR = MarkerGrammar(
    name  = "original",
    start = "[[ORIGINAL:",
    close = "]]",
    wraps = "original",
)

HIGHLIGHT_GRAMMAR = MarkerGrammar(
    name  = "highlight",
    start = "[[HIGHLIGHT]]",
    close = "[[/HIGHLIGHT]]",
    wraps = "replacement",
)

GRAMMARS: dict[str, MarkerGrammar] = {
    ORIGINAL_GRAMMAR.name:  ORIGINAL_GRAMMAR,
    HIGHLIGHT_GRAMMAR.name: HIGHLIGHT_GRAMMAR,
}


def get_grammar(name: str) -> MarkerGrammar:
    try:
        return GRAMMARS[name]
    except KeyError:
        available = ", ".join(sorted(GRAMMARS))
        raise ValueError(
            f"Gramática de marcadores desconocida: '{name}'. Disponibles: {available}"
        ) from None


# ------------------------------------------------------------------
# Segmentos
# ------------------------------------------------------------------

@dataclass(frozen=True)
class TextSegment:
    """Texto fuera de marcadores: siempre forma parte de la versión final."""
    text: str


@dataclass(frozen=True)
class MarkedSegment:
    """Tramo entre marcadores, tal como lo escribió el editor."""
    text: str


Segment = Union[TextSegment, MarkedSegment]


def parse(text: str, grammar: MarkerGrammar = ORIGINAL_GRAMMAR) -> list[Segment]:
    """
    Divide el documento en segmentos en orden.
    Lanza MalformedMarkupError si un marcador queda abierto o si aparece
    un marcador dentro de otro. Un cierre suelto se trata como texto.
    """
    segments: list[Segment] = []
    pos = 0

    while pos < len(text):
        start = text.find(grammar.start, pos)
        if start == -1:
            segments.append(TextSegment(text[pos:]))
            break

        if start > pos:
            segments.append(TextSegment(text[pos:start]))

        inner_start = start + len(grammar.start)
        close = text.find(grammar.close, inner_start)
        if close == -1:
            raise MalformedMarkupError(
                f"Marcador '{grammar.start}' sin cierre en la posición {start}"
            )

        inner = text[inner_start:close]
        if grammar.start in inner:
            raise MalformedMarkupError(
                f"Marcador anidado dentro del tramo que empieza en {start}"
            )

        if grammar.wraps == "original":
            # En "[[ORIGINAL: frase]]" el espacio tras los dos puntos es cosmético
            inner = inner.lstrip(" ")
        segments.append(MarkedSegment(inner))
        pos = close + len(grammar.close)

    return segments


def is_well_formed(text: str, grammar: MarkerGrammar = ORIGINAL_GRAMMAR) -> bool:
    try:
        parse(text, grammar)
    except MalformedMarkupError:
        return False
    return True


def strip_markers(text: str, grammar: MarkerGrammar = ORIGINAL_GRAMMAR) -> str:
    """
    Versión limpia, lista para publicar.
    Con la gramática "original" desaparecen las frases previas; con
    "highlight" se quitan solo los tokens y se conserva el texto nuevo.
    """
    parts: list[str] = []
    for segment in parse(text, grammar):
        if isinstance(segment, TextSegment):
            parts.append(segment.text)
        elif grammar.wraps == "replacement":
            parts.append(segment.text)
    return "".join(parts)


def edited_phrases(text: str, grammar: MarkerGrammar = ORIGINAL_GRAMMAR) -> list[str]:
    """Rastro de auditoría: los tramos marcados, en orden de aparición."""
    return [s.text for s in parse(text, grammar) if isinstance(s, MarkedSegment)]


def count_edits(text: str, grammar: MarkerGrammar = ORIGINAL_GRAMMAR) -> int:
    return len(edited_phrases(text, grammar))


def render_review_html(text: str, grammar: MarkerGrammar = ORIGINAL_GRAMMAR) -> str:
    """
    Versión de revisión en HTML: los tramos marcados van en <mark>
    (amarillo en cualquier navegador) y el resto se escapa tal cual.
    Los saltos de línea se conservan con <br>.
    """
    parts: list[str] = []
    for segment in parse(text, grammar):
        escaped = html.escape(segment.text)
        if isinstance(segment, MarkedSegment):
            parts.append(f"<mark>{escaped}</mark>")
        else:
            parts.append(escaped)
    return "".join(parts).replace("\n", "<br>\n")
