# router/prompt_builder.py
from typing import Optional

from booklingua.highlight import MarkerGrammar, ORIGINAL_GRAMMAR
from booklingua.languages import LanguageSettings


# Los prompts van en inglés: el manuscrito de origen siempre es inglés
# y el modelo sigue mejor las reglas en el idioma del texto.
_TRANSLATE_PROMPT = """\
You are a professional literary translator specializing in {genre_lower} books.

Translate the following book into {lang_name}.

LANGUAGE SETTINGS:
{lang_settings}

CRITICAL FORMATTING RULES:
- Preserve ALL original formatting exactly: paragraph breaks, chapter headings, line breaks
- Keep the same structure: if original has a blank line, keep the blank line
- Maintain any special formatting markers or symbols
- Keep chapter numbers/titles in the same position
- Preserve any indentation patterns
- If there are bullet points or numbered lists, keep them formatted the same way

TRANSLATION GUIDELINES:
- Preserve the author's unique voice and writing style
- Keep proper nouns and names consistent throughout
- Handle technical terms accurately - keep specialized terminology where appropriate
- Ensure the translation reads naturally to native {lang_name} speakers
- Adapt idioms and expressions to equivalent ones in {lang_name}
- Maintain the same tone (formal/informal) as the original

BOOK TITLE: {book_title}
AUTHOR: {author_name}
GENRE: {genre}

{instructions_section}
TEXT TO TRANSLATE:
{source_text}

Provide ONLY the translation, preserving all formatting. No explanations or notes."""

_EDITORIAL_PROMPT = """\
You are a senior {lang_name} editor specializing in {genre_lower} books.

TASK: Review this translation and improve it for natural flow, cultural accuracy, and readability.

FIRST, analyze the tone and style of the original English text:
- Is it formal or casual?
- Is it literary or conversational?
- What is the author's unique voice?
Then ensure your edits maintain that same tone and voice.

LANGUAGE SETTINGS:
{lang_settings}

ORIGINAL ENGLISH (for reference):
{source_excerpt}

TRANSLATION TO REVIEW AND IMPROVE:
{translated_text}

EDITING INSTRUCTIONS:
1. Improve phrases that sound awkward or unnatural in {lang_name}
2. Fix any grammatical issues
3. Adapt cultural references appropriately for {lang_name} readers
4. Ensure consistency in terminology throughout
5. Maintain the author's voice and tone

{highlight_section}

Only highlight phrases you actually changed. Do not highlight text you kept the same.

PRESERVE ALL FORMATTING from the translation (paragraph breaks, chapters, etc.)

Respond with the full improved translation with highlights showing the phrases that were changed."""

# Una sección por gramática: el prompt es el único contrato con el modelo
_HIGHLIGHT_ORIGINAL = """\
CRITICAL - HIGHLIGHTING FORMAT:
When you make an improvement, show what the ORIGINAL translation said (before your edit) using this format:
{example_marker}improved phrase

This way the author sees:
- Yellow highlighted text = what the first translation said
- Clean text after it = your improved version (what will be published)

Example:
{example}"""

_HIGHLIGHT_REPLACEMENT = """\
CRITICAL - HIGHLIGHTING FORMAT:
Mark ALL changes you make by wrapping the improved phrase like this:
{example_marker}

This allows the author to see exactly what was changed.
Write only the improved phrase: never keep the previous wording next to it.

Example:
{example}"""

_EXAMPLE_BEFORE = "El hombre caminó rápido"
_EXAMPLE_AFTER  = "El hombre avanzó con paso veloz"
_EXAMPLE_TAIL   = " hacia la puerta."

# Fallbacks: nunca dejan secciones vacías en el prompt
_GENRE_DEFAULT = "General"

# Límite del original en la pasada editorial (tamaño de la petición)
EDITORIAL_SOURCE_CHARS = 30_000


def build_translate_prompt(
    source_text:          str,
    language:             LanguageSettings,
    book_title:           str,
    author_name:          str,
    genre:                Optional[str] = None,
    special_instructions: Optional[str] = None,
) -> str:
    """
    Construye la petición de la pasada 1 (traducción).
    El texto completo viaja dentro del prompt: la llamada es un único
    mensaje de usuario y la respuesta se guarda tal cual.
    """
    genre = genre or _GENRE_DEFAULT
    return _TRANSLATE_PROMPT.format(
        genre_lower          = genre.lower(),
        genre                = genre,
        lang_name            = language.name,
        lang_settings        = language.settings,
        book_title           = book_title,
        author_name          = author_name,
        instructions_section = _format_instructions(special_instructions),
        source_text          = source_text,
    )


def build_editorial_prompt(
    source_text:     str,
    translated_text: str,
    language:        LanguageSettings,
    genre:           Optional[str] = None,
    grammar:         MarkerGrammar = ORIGINAL_GRAMMAR,
    source_chars:    int = EDITORIAL_SOURCE_CHARS,
) -> str:
    """
    Construye la petición de la pasada 2 (revisión editorial).
    El original se recorta a los primeros source_chars caracteres;
    la traducción va completa porque es lo que se entrega.
    """
    genre = genre or _GENRE_DEFAULT
    return _EDITORIAL_PROMPT.format(
        genre_lower       = genre.lower(),
        lang_name         = language.name,
        lang_settings     = language.settings,
        source_excerpt    = source_text[:source_chars],
        translated_text   = translated_text,
        highlight_section = _format_highlight_section(grammar),
    )


# ------------------------------------------------------------------
# Formatters internos
# ------------------------------------------------------------------

def _format_instructions(special_instructions: Optional[str]) -> str:
    if not special_instructions or not special_instructions.strip():
        return ""
    return f"AUTHOR'S SPECIAL INSTRUCTIONS:\n{special_instructions.strip()}\n"


def _format_highlight_section(grammar: MarkerGrammar) -> str:
    if grammar.wraps == "original":
        return _HIGHLIGHT_ORIGINAL.format(
            example_marker = grammar.mark("original phrase"),
            example        = f"{grammar.mark(_EXAMPLE_BEFORE)}{_EXAMPLE_AFTER}",
        )
    return _HIGHLIGHT_REPLACEMENT.format(
        example_marker = grammar.mark("Improved phrase"),
        example        = f"{grammar.mark(_EXAMPLE_AFTER)}{_EXAMPLE_TAIL}",
    )
