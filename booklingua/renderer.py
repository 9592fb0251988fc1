# booklingua/renderer.py
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Optional

from booklingua.errors import OrderNotFoundError, OrderNotReadyError, TranslationNotFoundError
from booklingua.highlight import (
    MarkerGrammar, ORIGINAL_GRAMMAR, get_grammar, render_review_html, strip_markers,
)
from booklingua.languages import LanguageTable
from booklingua.storage.models import OrderStatus
from booklingua.storage.repository import Repository

logger = logging.getLogger(__name__)

_OUTPUT_DIR = Path.home() / ".booklingua" / "output"

_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


class RenderMode(Enum):
    REVIEW = "review"   # marcadores visibles, lo que se entrega por defecto
    CLEAN  = "clean"    # texto publicable, sin frases originales
    HTML   = "html"     # revisión con <mark>


class Renderer:
    """
    Responsabilidad única: tomar la traducción guardada de un pedido
    y producir el entregable de un idioma.

    No sabe nada de modelos ni de pasos: solo lee el store.
    """

    def __init__(
        self,
        repo:       Repository,
        languages:  LanguageTable,
        grammar:    MarkerGrammar = ORIGINAL_GRAMMAR,
        output_dir: Optional[Path] = None,
    ):
        self._repo       = repo
        self._languages  = languages
        self._grammar    = grammar
        self._output_dir = output_dir or _OUTPUT_DIR

    def render_text(self, order_id: int, language: str, mode: RenderMode = RenderMode.REVIEW) -> str:
        """
        Solo pedidos COMPLETED: un pedido a medias puede tener idiomas
        guardados pero nunca se entrega.
        """
        order = self._repo.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Pedido no encontrado: {order_id}")
        if order.status != OrderStatus.COMPLETED:
            raise OrderNotReadyError(
                f"El pedido {order_id} está en {order.status.value}, todavía no se puede descargar"
            )

        stored = self._repo.get_translated_file(order_id, language)
        if stored is None:
            raise TranslationNotFoundError(
                f"El pedido {order_id} no tiene traducción '{language}'"
            )

        # Se parsea con la gramática con la que se guardó, no con la actual
        grammar = get_grammar(stored.marker_grammar) if stored.marker_grammar else self._grammar
        if mode == RenderMode.CLEAN:
            return strip_markers(stored.content, grammar)
        if mode == RenderMode.HTML:
            return render_review_html(stored.content, grammar)
        return stored.content

    def filename_for(self, book_title: str, language: str, mode: RenderMode = RenderMode.REVIEW) -> str:
        """{titulo}_{Idioma}.txt, con sufijo según el modo."""
        title = _UNSAFE_FILENAME.sub("_", book_title).strip() or "book"
        name  = self._languages.name_of(language)
        if mode == RenderMode.CLEAN:
            return f"{title}_{name}_clean.txt"
        if mode == RenderMode.HTML:
            return f"{title}_{name}.html"
        return f"{title}_{name}.txt"

    def build(
        self,
        order_id: int,
        language: str,
        mode:     RenderMode = RenderMode.REVIEW,
        output_dir: Optional[Path] = None,
    ) -> Path:
        """Escribe el entregable en disco y devuelve la ruta."""
        text  = self.render_text(order_id, language, mode)
        order = self._repo.get_order(order_id)

        target_dir = output_dir or self._output_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        output_path = target_dir / self.filename_for(order.book_title, language, mode)

        output_path.write_text(text, encoding="utf-8")
        logger.info("Output escrito en: %s", output_path)
        return output_path
