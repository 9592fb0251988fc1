# tests/test_orchestrator.py
import pytest
from unittest.mock import MagicMock

from booklingua.config import EmailConfig, WorkflowConfig
from booklingua.errors import StepFailedError, UnknownLanguageError
from booklingua.languages import LanguageTable
from booklingua.orchestrator import JobResult, TranslationOrchestrator
from booklingua.router.models import ModelResponse, ModelRole
from booklingua.router.router import AllModelsExhaustedError
from booklingua.storage.models import JobStatus, OrderStatus
from booklingua.storage.repository import Repository
from booklingua.workflow.engine import WorkflowEngine
from booklingua.workflow.events import TranslateRequested
from booklingua.workflow.trigger import JobTrigger


NAMES = {"es": "Spanish", "fr": "French", "de": "German", "pt": "Portuguese"}


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------

@pytest.fixture
def repo():
    r = Repository(db_path=":memory:")
    yield r
    r.close()


class FakeRouter:
    """
    Router determinista: responde según el rol y el idioma del prompt.
    failures[(rol, código)] = n hace que esa llamada falle n veces.
    editorial[código] fija la salida de la pasada 2.
    """

    def __init__(self, failures=None, editorial=None, translation=None):
        self.calls:       list[tuple[ModelRole, str]] = []
        self.failures     = dict(failures or {})
        self.editorial    = editorial or {}
        self.translation  = translation or {}

    def complete(self, prompt: str, role: ModelRole) -> ModelResponse:
        code = self._language_of(prompt)
        self.calls.append((role, code))

        if self.failures.get((role, code), 0) > 0:
            self.failures[(role, code)] -= 1
            raise AllModelsExhaustedError("sin quota")

        if role == ModelRole.TRANSLATE:
            text = self.translation.get(code, f"[{code}] Hola mundo.")
        else:
            text = self.editorial.get(code, f"[{code}] Hola [[ORIGINAL: mundo]]planeta.")
        return ModelResponse(text=text, model_used="fake", tokens_input=10, tokens_output=20)

    @staticmethod
    def _language_of(prompt: str) -> str:
        for code, name in NAMES.items():
            if f"into {name}" in prompt or f"senior {name} editor" in prompt:
                return code
        raise AssertionError("Prompt sin idioma reconocible")


def make_pipeline(repo, router, sender=None, admin_email="admin@booklingua.test", retries=3):
    """Ensambla orchestrator + engine + trigger sin esperas entre reintentos."""
    if sender is None:
        sender = MagicMock()
        sender.send.return_value = "email_1"

    orchestrator = TranslationOrchestrator(
        repo         = repo,
        router       = router,
        sender       = sender,
        languages    = LanguageTable(),
        email_config = EmailConfig(admin_email=admin_email),
        app_url      = "https://app.test",
        retries      = retries,
    )
    engine = WorkflowEngine(
        repo,
        WorkflowConfig(retries=retries, retry_wait_seconds=0, retry_max_wait_seconds=0),
        sleep = lambda seconds: None,
    )
    function = orchestrator.function()
    engine.register(function)
    trigger = JobTrigger(repo, [function])
    return engine, trigger, sender


def make_order(repo, languages, content="Hello world.") -> int:
    order_id = repo.create_order(
        email       = "ana@example.com",
        author_name = "Ana Autora",
        book_title  = "Mi libro",
        languages   = languages,
    )
    repo.save_original_file(order_id, content)
    return order_id


def run_job(engine, trigger, order_id, force=False):
    trigger.send(TranslateRequested(order_id=order_id))
    return engine.execute(f"translate-book:{order_id}", force=force)


# ------------------------------------------------------------------
# Camino feliz
# ------------------------------------------------------------------

class TestHappyPath:

    def test_un_idioma(self, repo):
        """Pedido [es] con 'Hello world.': un archivo es y pedido completado."""
        engine, trigger, sender = make_pipeline(repo, FakeRouter())
        order_id = make_order(repo, ["es"])

        outcome = run_job(engine, trigger, order_id)

        assert outcome.result == JobResult(success=True, order_id=order_id, languages=["es"])
        files = repo.get_translated_files(order_id)
        assert [f.language for f in files] == ["es"]
        assert files[0].content == "[es] Hola [[ORIGINAL: mundo]]planeta."
        assert files[0].original_content == "[es] Hola mundo."
        assert files[0].marker_grammar == "original"

        order = repo.get_order(order_id)
        assert order.status == OrderStatus.COMPLETED
        assert order.completed_at is not None

    def test_n_idiomas_n_archivos(self, repo):
        engine, trigger, _ = make_pipeline(repo, FakeRouter())
        order_id = make_order(repo, ["es", "fr", "de", "pt"])

        run_job(engine, trigger, order_id)

        files = repo.get_translated_files(order_id)
        assert [f.language for f in files] == ["es", "fr", "de", "pt"]
        assert all(f.content and f.original_content for f in files)

    def test_idioma_repetido_se_traduce_una_vez(self, repo):
        router = FakeRouter()
        engine, trigger, sender = make_pipeline(repo, router)
        order_id = make_order(repo, ["es", "es"])

        outcome = run_job(engine, trigger, order_id)

        assert outcome.status == JobStatus.COMPLETED
        assert router.calls == [(ModelRole.TRANSLATE, "es"), (ModelRole.EDITORIAL, "es")]
        assert repo.get_order(order_id).status == OrderStatus.COMPLETED
        assert sender.send.call_count == 2

    def test_orden_de_pasos(self, repo):
        engine, trigger, _ = make_pipeline(repo, FakeRouter())
        order_id = make_order(repo, ["es", "fr"])

        outcome = run_job(engine, trigger, order_id)

        assert outcome.executed_steps == [
            "get-order",
            "get-file-content",
            "update-status-processing",
            "translate-es", "editorial-es", "save-translation-es",
            "translate-fr", "editorial-fr", "save-translation-fr",
            "update-status-completed",
            "send-completion-email",
            "notify-admin",
        ]

    def test_idiomas_secuenciales_en_orden(self, repo):
        router = FakeRouter()
        engine, trigger, _ = make_pipeline(repo, router)
        order_id = make_order(repo, ["fr", "es"])

        run_job(engine, trigger, order_id)

        assert router.calls == [
            (ModelRole.TRANSLATE, "fr"), (ModelRole.EDITORIAL, "fr"),
            (ModelRole.TRANSLATE, "es"), (ModelRole.EDITORIAL, "es"),
        ]

    def test_archivo_guardado_antes_del_siguiente_idioma(self, repo):
        seen_before_fr = []
        router = FakeRouter()
        original_complete = router.complete

        def spying_complete(prompt, role):
            if role == ModelRole.TRANSLATE and "into French" in prompt:
                seen_before_fr.append(repo.get_translated_file(order_id, "es") is not None)
            return original_complete(prompt, role)

        router.complete = spying_complete
        engine, trigger, _ = make_pipeline(repo, router)
        order_id = make_order(repo, ["es", "fr"])

        run_job(engine, trigger, order_id)

        assert seen_before_fr == [True]

    def test_emails_de_cliente_y_operador(self, repo):
        engine, trigger, sender = make_pipeline(repo, FakeRouter())
        order_id = make_order(repo, ["es", "fr"])

        run_job(engine, trigger, order_id)

        assert sender.send.call_count == 2
        customer, admin = [c.args[0] for c in sender.send.call_args_list]

        assert customer.to == "ana@example.com"
        assert f"https://app.test/download/{order_id}/es" in customer.html
        assert f"https://app.test/download/{order_id}/fr" in customer.html
        assert admin.to == "admin@booklingua.test"
        assert "Spanish, French" in admin.html

    def test_sin_admin_email_se_omite_el_aviso(self, repo):
        engine, trigger, sender = make_pipeline(repo, FakeRouter(), admin_email=None)
        order_id = make_order(repo, ["es"])

        outcome = run_job(engine, trigger, order_id)

        assert sender.send.call_count == 1
        assert "notify-admin" in outcome.executed_steps
        assert repo.get_step(f"translate-book:{order_id}", "notify-admin").output["sent"] is False


# ------------------------------------------------------------------
# Pasada editorial
# ------------------------------------------------------------------

class TestEditorialFallback:

    def test_salida_vacia_usa_la_traduccion(self, repo):
        engine, trigger, _ = make_pipeline(repo, FakeRouter(editorial={"es": "   "}))
        order_id = make_order(repo, ["es"])

        run_job(engine, trigger, order_id)

        stored = repo.get_translated_file(order_id, "es")
        assert stored.content == "[es] Hola mundo."
        step = repo.get_step(f"translate-book:{order_id}", "editorial-es")
        assert step.output["fallback"] is True

    def test_marcadores_mal_formados_usan_la_traduccion(self, repo):
        router = FakeRouter(editorial={"es": "Hola [[ORIGINAL: mundo sin cierre"})
        engine, trigger, _ = make_pipeline(repo, router)
        order_id = make_order(repo, ["es"])

        run_job(engine, trigger, order_id)

        assert repo.get_translated_file(order_id, "es").content == "[es] Hola mundo."

    def test_traduccion_vacia_se_reintenta(self, repo):
        router = FakeRouter(translation={"es": ""})
        engine, trigger, _ = make_pipeline(repo, router)
        order_id = make_order(repo, ["es"])

        with pytest.raises(StepFailedError) as exc_info:
            run_job(engine, trigger, order_id)

        assert exc_info.value.step_id == "translate-es"
        assert router.calls.count((ModelRole.TRANSLATE, "es")) == 3

    def test_prompt_editorial_recibe_la_traduccion(self, repo):
        router = MagicMock()
        router.complete.side_effect = [
            ModelResponse("Traducción cruda.", "fake", 1, 1),
            ModelResponse("Traducción [[ORIGINAL: cruda]]pulida.", "fake", 1, 1),
        ]
        engine, trigger, _ = make_pipeline(repo, router)
        order_id = make_order(repo, ["es"])

        run_job(engine, trigger, order_id)

        editorial_prompt, role = router.complete.call_args_list[1].args
        assert role == ModelRole.EDITORIAL
        assert "Traducción cruda." in editorial_prompt
        assert "Hello world." in editorial_prompt


# ------------------------------------------------------------------
# Fallos
# ------------------------------------------------------------------

class TestFailures:

    def test_fallo_permanente_en_un_idioma(self, repo):
        """[es, fr, de, pt] con la editorial de fr fallando 3 veces."""
        router = FakeRouter(failures={(ModelRole.EDITORIAL, "fr"): 3})
        engine, trigger, sender = make_pipeline(repo, router)
        order_id = make_order(repo, ["es", "fr", "de", "pt"])

        with pytest.raises(StepFailedError) as exc_info:
            run_job(engine, trigger, order_id)

        assert exc_info.value.step_id == "editorial-fr"
        assert [f.language for f in repo.get_translated_files(order_id)] == ["es"]
        assert repo.get_order(order_id).status == OrderStatus.PROCESSING
        assert repo.get_job_run(f"translate-book:{order_id}").status == JobStatus.FAILED
        assert (ModelRole.TRANSLATE, "de") not in router.calls
        sender.send.assert_not_called()

    def test_fallo_transitorio_se_recupera(self, repo):
        router = FakeRouter(failures={(ModelRole.EDITORIAL, "fr"): 2})
        engine, trigger, _ = make_pipeline(repo, router)
        order_id = make_order(repo, ["es", "fr"])

        run_job(engine, trigger, order_id)

        assert repo.get_order(order_id).status == OrderStatus.COMPLETED
        assert len(repo.get_translated_files(order_id)) == 2

    def test_reanudar_tras_fallo_no_repite_idiomas(self, repo):
        router = FakeRouter(failures={(ModelRole.EDITORIAL, "fr"): 3})
        engine, trigger, _ = make_pipeline(repo, router)
        order_id = make_order(repo, ["es", "fr"])

        with pytest.raises(StepFailedError):
            run_job(engine, trigger, order_id)

        router.calls.clear()
        engine.execute(f"translate-book:{order_id}", force=True)

        assert router.calls == [(ModelRole.EDITORIAL, "fr")]
        assert repo.get_order(order_id).status == OrderStatus.COMPLETED

    def test_pedido_inexistente(self, repo):
        engine, trigger, _ = make_pipeline(repo, FakeRouter())

        with pytest.raises(StepFailedError) as exc_info:
            run_job(engine, trigger, 999)

        assert exc_info.value.step_id == "get-order"

    def test_sin_manuscrito(self, repo):
        engine, trigger, _ = make_pipeline(repo, FakeRouter())
        order_id = repo.create_order("a@b.com", "Autor", "Libro", ["es"])

        with pytest.raises(StepFailedError) as exc_info:
            run_job(engine, trigger, order_id)

        assert exc_info.value.step_id == "get-file-content"
        assert repo.get_order(order_id).status == OrderStatus.PENDING

    def test_idioma_desconocido_no_toca_el_estado(self, repo):
        router = FakeRouter()
        engine, trigger, _ = make_pipeline(repo, router)
        order_id = make_order(repo, ["es", "xx"])

        with pytest.raises(UnknownLanguageError):
            run_job(engine, trigger, order_id)

        assert repo.get_order(order_id).status == OrderStatus.PENDING
        assert router.calls == []

    def test_fallo_de_email_falla_el_trabajo(self, repo):
        sender = MagicMock()
        sender.send.side_effect = RuntimeError("resend caído")
        engine, trigger, _ = make_pipeline(repo, FakeRouter(), sender=sender)
        order_id = make_order(repo, ["es"])

        with pytest.raises(StepFailedError) as exc_info:
            run_job(engine, trigger, order_id)

        assert exc_info.value.step_id == "send-completion-email"
        assert repo.get_order(order_id).status == OrderStatus.COMPLETED


# ------------------------------------------------------------------
# Idempotencia
# ------------------------------------------------------------------

class TestIdempotence:

    def test_reenviar_el_evento_no_crea_trabajo(self, repo):
        engine, trigger, sender = make_pipeline(repo, FakeRouter())
        order_id = make_order(repo, ["es"])
        run_job(engine, trigger, order_id)

        assert trigger.send(TranslateRequested(order_id=order_id)) == []
        assert engine.execute(f"translate-book:{order_id}") is None
        assert sender.send.call_count == 2

    def test_relanzar_trabajo_completado_salta_todos_los_pasos(self, repo):
        router = FakeRouter()
        engine, trigger, sender = make_pipeline(repo, router)
        order_id = make_order(repo, ["es", "fr"])
        run_job(engine, trigger, order_id)
        calls_before = len(router.calls)

        outcome = engine.execute(f"translate-book:{order_id}", force=True)

        assert outcome.executed_steps == []
        assert len(outcome.skipped_steps) == 12
        assert len(router.calls) == calls_before
        assert sender.send.call_count == 2
        assert len(repo.get_translated_files(order_id)) == 2
        assert outcome.result.success is True

    def test_estado_nunca_retrocede(self, repo):
        engine, trigger, _ = make_pipeline(repo, FakeRouter())
        order_id = make_order(repo, ["es"])
        run_job(engine, trigger, order_id)
        completed_at = repo.get_order(order_id).completed_at

        # Un relanzamiento sin memoria de pasos vuelve a pedir PROCESSING
        repo._conn.execute("DELETE FROM job_steps")
        engine.execute(f"translate-book:{order_id}", force=True)

        order = repo.get_order(order_id)
        assert order.status == OrderStatus.COMPLETED
        assert order.completed_at == completed_at
        assert len(repo.get_translated_files(order_id)) == 1
