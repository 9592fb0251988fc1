# booklingua/orchestrator.py
import logging
from dataclasses import dataclass
from functools import partial
from typing import Optional

from booklingua.config import EmailConfig
from booklingua.errors import (
    EmptyTranslationError,
    OrderNotFoundError,
    SourceFileNotFoundError,
)
from booklingua.highlight import MarkerGrammar, ORIGINAL_GRAMMAR, is_well_formed, count_edits
from booklingua.languages import LanguageSettings, LanguageTable
from booklingua.notifications.base import EmailSender
from booklingua.notifications.templates import (
    DownloadLink,
    build_admin_email,
    build_completion_email,
    download_url,
)
from booklingua.router.models import ModelRole
from booklingua.router.prompt_builder import (
    EDITORIAL_SOURCE_CHARS,
    build_editorial_prompt,
    build_translate_prompt,
)
from booklingua.router.router import Router
from booklingua.storage.models import OrderStatus
from booklingua.storage.repository import Repository
from booklingua.workflow.engine import StepContext, WorkflowFunction
from booklingua.workflow.events import TranslateRequested

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Resultados de paso (lo que queda memoizado en job_steps)
# ------------------------------------------------------------------

@dataclass
class OrderSnapshot:
    id:                   int
    email:                str
    author_name:          str
    book_title:           str
    languages:            list[str]
    status:               str
    genre:                Optional[str] = None
    special_instructions: Optional[str] = None


@dataclass
class SourceDocument:
    file_id: int
    content: str


@dataclass
class StatusChange:
    status:  str
    changed: bool


@dataclass
class PassOutput:
    language:   str
    text:       str
    model_used: str
    fallback:   bool = False   # la pasada editorial no se pudo usar


@dataclass
class SavedFile:
    file_id:  int
    language: str


@dataclass
class EmailReceipt:
    to:       Optional[str]
    email_id: Optional[str] = None
    sent:     bool = True


@dataclass
class JobResult:
    """Resultado del trabajo completo."""
    success:   bool
    order_id:  int
    languages: list[str]


# ------------------------------------------------------------------
# Orchestrator
# ------------------------------------------------------------------

class TranslationOrchestrator:
    """
    Define el trabajo translate-book de extremo a extremo.
    No ejecuta nada por sí mismo: el WorkflowEngine lo llama con un
    StepContext y cada efecto externo vive dentro de un step.run().

    Orden fijo de pasos:
    1. get-order / get-file-content / update-status-processing
    2. por idioma, en orden: translate-xx → editorial-xx → save-translation-xx
    3. update-status-completed / send-completion-email / notify-admin
    """

    FUNCTION_ID = "translate-book"

    def __init__(
        self,
        repo:         Repository,
        router:       Router,
        sender:       EmailSender,
        languages:    LanguageTable,
        email_config: EmailConfig,
        app_url:      str,
        grammar:      MarkerGrammar = ORIGINAL_GRAMMAR,
        editorial_source_chars: int = EDITORIAL_SOURCE_CHARS,
        retries:      int = 3,
    ):
        self._repo         = repo
        self._router       = router
        self._sender       = sender
        self._languages    = languages
        self._email_config = email_config
        self._app_url      = app_url
        self._grammar      = grammar
        self._source_chars = editorial_source_chars
        self._retries      = retries

    def function(self) -> WorkflowFunction:
        """La función que se registra en el engine y el trigger."""
        return WorkflowFunction(
            id         = self.FUNCTION_ID,
            event_type = TranslateRequested,
            handler    = self.handle,
            retries    = self._retries,
        )

    def handle(self, event: TranslateRequested, step: StepContext) -> JobResult:
        order_id = event.order_id

        # ── Paso 1-2: pedido y manuscrito ─────────────────────────────
        order = step.run("get-order", partial(self._load_order, order_id), OrderSnapshot)
        source = step.run(
            "get-file-content", partial(self._load_source, order_id), SourceDocument,
        )

        # Cálculo puro: un idioma desconocido aborta antes de tocar el estado
        languages = [self._languages.get(code) for code in order.languages]

        # ── Paso 3: processing ────────────────────────────────────────
        step.run(
            "update-status-processing",
            partial(self._set_status, order_id, OrderStatus.PROCESSING),
            StatusChange,
        )

        # ── Paso 4: dos pasadas por idioma, secuencial ────────────────
        total = len(languages)
        for position, language in enumerate(languages, start=1):
            code = language.code
            self._log(f"Pedido {order_id}: {language.name} ({position}/{total})")

            translated = step.run(
                f"translate-{code}",
                partial(self._translate, order, source.content, language),
                PassOutput,
            )
            edited = step.run(
                f"editorial-{code}",
                partial(self._edit, order, source.content, translated.text, language),
                PassOutput,
            )
            step.run(
                f"save-translation-{code}",
                partial(self._save_translation, order_id, code, edited.text, translated.text),
                SavedFile,
            )

        # ── Paso 5: completed ─────────────────────────────────────────
        step.run(
            "update-status-completed",
            partial(self._set_status, order_id, OrderStatus.COMPLETED),
            StatusChange,
        )

        # ── Paso 6-7: notificaciones ──────────────────────────────────
        step.run("send-completion-email", partial(self._notify_customer, order), EmailReceipt)
        step.run("notify-admin", partial(self._notify_admin, order), EmailReceipt)

        self._log(f"Pedido {order_id} completado: {', '.join(order.languages)}")
        return JobResult(success=True, order_id=order_id, languages=list(order.languages))

    # ------------------------------------------------------------------
    # Cuerpos de los pasos
    # ------------------------------------------------------------------

    def _load_order(self, order_id: int) -> OrderSnapshot:
        order = self._repo.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Pedido no encontrado: {order_id}")
        return OrderSnapshot(
            id                   = order.id,
            email                = order.email,
            author_name          = order.author_name,
            book_title           = order.book_title,
            languages            = list(order.languages),
            status               = order.status.value,
            genre                = order.genre,
            special_instructions = order.special_instructions,
        )

    def _load_source(self, order_id: int) -> SourceDocument:
        original = self._repo.get_original_file(order_id)
        if original is None:
            raise SourceFileNotFoundError(f"Manuscrito original no encontrado: pedido {order_id}")
        return SourceDocument(file_id=original.id, content=original.content)

    def _set_status(self, order_id: int, status: OrderStatus) -> StatusChange:
        changed = self._repo.update_order_status(order_id, status)
        return StatusChange(status=status.value, changed=changed)

    def _translate(
        self,
        order:       OrderSnapshot,
        source_text: str,
        language:    LanguageSettings,
    ) -> PassOutput:
        prompt = build_translate_prompt(
            source_text          = source_text,
            language             = language,
            book_title           = order.book_title,
            author_name          = order.author_name,
            genre                = order.genre,
            special_instructions = order.special_instructions,
        )
        response = self._router.complete(prompt, ModelRole.TRANSLATE)

        if not response.text.strip():
            raise EmptyTranslationError(
                f"Traducción vacía ({language.code}) para el pedido {order.id}"
            )
        return PassOutput(language=language.code, text=response.text, model_used=response.model_used)

    def _edit(
        self,
        order:           OrderSnapshot,
        source_text:     str,
        translated_text: str,
        language:        LanguageSettings,
    ) -> PassOutput:
        prompt = build_editorial_prompt(
            source_text     = source_text,
            translated_text = translated_text,
            language        = language,
            genre           = order.genre,
            grammar         = self._grammar,
            source_chars    = self._source_chars,
        )
        response = self._router.complete(prompt, ModelRole.EDITORIAL)
        edited   = response.text

        # Única supresión local: si la salida editorial no se puede
        # interpretar se entrega la traducción de la pasada 1.
        if not edited.strip():
            logger.warning(
                "Pasada editorial vacía (%s, pedido %d) — se usa la traducción sin editar",
                language.code, order.id,
            )
            return PassOutput(language.code, translated_text, response.model_used, fallback=True)

        if not is_well_formed(edited, self._grammar):
            logger.warning(
                "Marcadores mal formados (%s, pedido %d) — se usa la traducción sin editar",
                language.code, order.id,
            )
            return PassOutput(language.code, translated_text, response.model_used, fallback=True)

        logger.info(
            "Pasada editorial %s del pedido %d: %d cambios marcados",
            language.code, order.id, count_edits(edited, self._grammar),
        )
        return PassOutput(language=language.code, text=edited, model_used=response.model_used)

    def _save_translation(
        self,
        order_id:         int,
        language:         str,
        content:          str,
        original_content: str,
    ) -> SavedFile:
        stored = self._repo.insert_translated_file(
            order_id         = order_id,
            language         = language,
            content          = content,
            original_content = original_content,
            marker_grammar   = self._grammar.name,
        )
        return SavedFile(file_id=stored.id, language=language)

    def _notify_customer(self, order: OrderSnapshot) -> EmailReceipt:
        links = [
            DownloadLink(
                language = self._languages.name_of(code),
                url      = download_url(self._app_url, order.id, code),
            )
            for code in order.languages
        ]
        message = build_completion_email(
            from_address = self._email_config.from_address,
            to           = order.email,
            author_name  = order.author_name,
            book_title   = order.book_title,
            links        = links,
            grammar      = self._grammar,
        )
        email_id = self._sender.send(message)
        return EmailReceipt(to=order.email, email_id=email_id)

    def _notify_admin(self, order: OrderSnapshot) -> EmailReceipt:
        admin = self._email_config.admin_email
        if not admin:
            logger.warning("Sin admin_email configurado — no se avisa al operador")
            return EmailReceipt(to=None, sent=False)

        message = build_admin_email(
            from_address = self._email_config.from_address,
            to           = admin,
            order_id     = order.id,
            author_name  = order.author_name,
            email        = order.email,
            book_title   = order.book_title,
            languages    = [self._languages.name_of(code) for code in order.languages],
        )
        email_id = self._sender.send(message)
        return EmailReceipt(to=admin, email_id=email_id)

    @staticmethod
    def _log(message: str) -> None:
        print(f"[booklingua] {message}")
