# tests/test_renderer.py
import pytest
from booklingua.errors import OrderNotFoundError, OrderNotReadyError, TranslationNotFoundError
from booklingua.highlight import HIGHLIGHT_GRAMMAR
from booklingua.languages import LanguageTable
from booklingua.renderer import Renderer, RenderMode
from booklingua.storage.models import OrderStatus
from booklingua.storage.repository import Repository


EDITED = "El hombre [[ORIGINAL: caminó rápido]]avanzó con paso veloz.\nFin."


@pytest.fixture
def repo():
    r = Repository(db_path=":memory:")
    yield r
    r.close()


@pytest.fixture
def completed_order(repo):
    order_id = repo.create_order("ana@example.com", "Ana", "Mi libro", ["es"])
    repo.save_original_file(order_id, "The man walked fast.\nEnd.")
    repo.update_order_status(order_id, OrderStatus.PROCESSING)
    repo.insert_translated_file(order_id, "es", EDITED, "El hombre caminó rápido.\nFin.")
    repo.update_order_status(order_id, OrderStatus.COMPLETED)
    return order_id


@pytest.fixture
def renderer(repo, tmp_path):
    return Renderer(repo, LanguageTable(), output_dir=tmp_path)


class TestRenderText:

    def test_modo_review_conserva_los_marcadores(self, renderer, completed_order):
        assert renderer.render_text(completed_order, "es") == EDITED

    def test_modo_clean_elimina_las_frases_previas(self, renderer, completed_order):
        text = renderer.render_text(completed_order, "es", RenderMode.CLEAN)
        assert text == "El hombre avanzó con paso veloz.\nFin."

    def test_modo_html(self, renderer, completed_order):
        text = renderer.render_text(completed_order, "es", RenderMode.HTML)
        assert "<mark>caminó rápido</mark>" in text

    def test_pedido_no_completado(self, repo, renderer):
        order_id = repo.create_order("a@b.com", "Ana", "Libro", ["es"])
        repo.update_order_status(order_id, OrderStatus.PROCESSING)
        repo.insert_translated_file(order_id, "es", "hola", "hola")

        with pytest.raises(OrderNotReadyError):
            renderer.render_text(order_id, "es")

    def test_pedido_inexistente(self, renderer):
        with pytest.raises(OrderNotFoundError):
            renderer.render_text(999, "es")

    def test_idioma_sin_traduccion(self, renderer, completed_order):
        with pytest.raises(TranslationNotFoundError):
            renderer.render_text(completed_order, "fr")

    def test_gramatica_highlight(self, repo, tmp_path):
        order_id = repo.create_order("a@b.com", "Ana", "Libro", ["es"])
        repo.insert_translated_file(
            order_id, "es", "Hola [[HIGHLIGHT]]planeta[[/HIGHLIGHT]].", "Hola mundo.",
        )
        repo.update_order_status(order_id, OrderStatus.COMPLETED)
        renderer = Renderer(repo, LanguageTable(), HIGHLIGHT_GRAMMAR, tmp_path)

        assert renderer.render_text(order_id, "es", RenderMode.CLEAN) == "Hola planeta."


class TestBuild:

    def test_escribe_el_archivo_con_nombre_de_idioma(self, renderer, completed_order, tmp_path):
        path = renderer.build(completed_order, "es")

        assert path == tmp_path / "Mi libro_Spanish.txt"
        assert path.read_text(encoding="utf-8") == EDITED

    def test_sufijo_clean(self, renderer, completed_order, tmp_path):
        path = renderer.build(completed_order, "es", RenderMode.CLEAN)
        assert path.name == "Mi libro_Spanish_clean.txt"

    def test_directorio_explicito(self, renderer, completed_order, tmp_path):
        target = tmp_path / "entregas"
        path = renderer.build(completed_order, "es", output_dir=target)
        assert path.parent == target
        assert path.exists()

    def test_titulo_con_caracteres_invalidos(self, renderer):
        assert renderer.filename_for('Sí/No: "guía"', "fr") == "Sí_No_ _guía__French.txt"


class TestGramaticaGuardada:

    def test_usa_la_gramatica_con_la_que_se_guardo(self, repo, renderer):
        """Cambiar marker_grammar después no rompe los archivos ya entregados."""
        order_id = repo.create_order("a@b.com", "Ana", "Libro", ["es"])
        repo.insert_translated_file(
            order_id, "es", "Hola [[HIGHLIGHT]]planeta[[/HIGHLIGHT]].", "Hola mundo.",
            marker_grammar = "highlight",
        )
        repo.update_order_status(order_id, OrderStatus.COMPLETED)

        # renderer está configurado con la gramática "original"
        assert renderer.render_text(order_id, "es", RenderMode.CLEAN) == "Hola planeta."
        assert "<mark>planeta</mark>" in renderer.render_text(order_id, "es", RenderMode.HTML)

    def test_sin_gramatica_guardada_usa_la_configurada(self, renderer, completed_order):
        text = renderer.render_text(completed_order, "es", RenderMode.CLEAN)
        assert text == "El hombre avanzó con paso veloz.\nFin."
