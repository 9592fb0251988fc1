# booklingua/factory.py
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from booklingua.config import AppConfig, load_config
from booklingua.errors import ConfigError
from booklingua.highlight import get_grammar
from booklingua.intake import OrderIntake
from booklingua.languages import LanguageTable
from booklingua.notifications.base import EmailSender
from booklingua.notifications.resend_sender import ResendSender
from booklingua.orchestrator import TranslationOrchestrator
from booklingua.renderer import Renderer
from booklingua.router.claude import ClaudeAdapter
from booklingua.router.gemini import GeminiAdapter
from booklingua.router.router import Router
from booklingua.storage.repository import Repository
from booklingua.workflow.engine import WorkflowEngine
from booklingua.workflow.trigger import JobTrigger, Worker


@dataclass
class Pipeline:
    """Todo lo que el CLI necesita, ya cableado sobre el mismo Repository."""
    config:       AppConfig
    repo:         Repository
    orchestrator: TranslationOrchestrator
    engine:       WorkflowEngine
    trigger:      JobTrigger
    worker:       Worker
    intake:       OrderIntake
    renderer:     Renderer

    def close(self) -> None:
        self.repo.close()


def build_pipeline(
    config_path: Optional[str]         = None,
    db_path:     Optional[str]         = None,
    output_dir:  Optional[Path]        = None,
    sender:      Optional[EmailSender] = None,
) -> Pipeline:
    """
    Ensambla el pipeline con todas sus dependencias.
    Punto de entrada único para el CLI y los tests de integración.
    Nada se construye a nivel de módulo: cada llamada crea sus clientes.
    """
    config = load_config(config_path)
    repo   = Repository(db_path=db_path or config.db_path)
    try:
        return _assemble(config, repo, output_dir, sender)
    except Exception:
        repo.close()
        raise


def _assemble(
    config:     AppConfig,
    repo:       Repository,
    output_dir: Optional[Path],
    sender:     Optional[EmailSender],
) -> Pipeline:
    languages = LanguageTable(config.languages)
    grammar   = get_grammar(config.marker_grammar)
    router    = Router(_build_models(repo, config))

    orchestrator = TranslationOrchestrator(
        repo                   = repo,
        router                 = router,
        sender                 = sender or _build_sender(config),
        languages              = languages,
        email_config           = config.email,
        app_url                = config.app_url,
        grammar                = grammar,
        editorial_source_chars = config.editorial_source_chars,
        retries                = config.workflow.retries,
    )
    function = orchestrator.function()

    engine = WorkflowEngine(repo, config.workflow)
    engine.register(function)
    trigger = JobTrigger(repo, [function])

    renderer_dir = output_dir or (Path(config.output_dir) if config.output_dir else None)

    return Pipeline(
        config       = config,
        repo         = repo,
        orchestrator = orchestrator,
        engine       = engine,
        trigger      = trigger,
        worker       = Worker(repo, engine),
        intake       = OrderIntake(repo, trigger, languages),
        renderer     = Renderer(repo, languages, grammar, renderer_dir),
    )


def _build_models(repo: Repository, config: AppConfig) -> list:
    """
    Construye los adaptadores disponibles en orden de prioridad.
    Si un adaptador no tiene api_key configurada, lo omite con un aviso.
    """
    adapters = {
        "claude": ClaudeAdapter,
        "gemini": GeminiAdapter,
    }
    models = []

    for model_config in config.models:
        adapter_class = adapters.get(model_config.name)
        if not adapter_class:
            print(f"[booklingua] ⚠ {model_config.name}: proveedor desconocido, omitiendo")
            continue
        if not model_config.api_key:
            print(f"[booklingua] ⚠ {model_config.name}: sin api_key, omitiendo")
            continue
        models.append(adapter_class(model_config, repo))

    if not models:
        raise ConfigError(
            "Ningún modelo configurado. "
            "Revisa ~/.booklingua/config.yaml y tus variables de entorno."
        )

    return models


def _build_sender(config: AppConfig) -> EmailSender:
    if not config.email.api_key:
        raise ConfigError(
            "Falta email.api_key (RESEND_API_KEY) en la configuración."
        )
    return ResendSender(config.email.api_key)
