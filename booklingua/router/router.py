# router/router.py
import logging

from booklingua.router.base import BaseModel
from booklingua.router.models import ModelResponse, ModelRole

logger = logging.getLogger(__name__)


class AllModelsExhaustedError(Exception):
    """Se lanza cuando ningún proveedor tiene quota disponible."""
    pass


class Router:
    """
    Decide qué proveedor usar en cada llamada.
    El Orchestrator llama a Router.complete() — nunca a un adaptador directamente.

    Responsabilidades:
    - Seleccionar el proveedor disponible de mayor prioridad
    - Hacer failover si falla por error de red o rate limit
    - Propagar errores de contenido (no son de disponibilidad)
    """

    def __init__(self, models: list[BaseModel]):
        # La lista ya viene ordenada por prioridad desde el config
        if not models:
            raise ValueError("El Router necesita al menos un modelo")
        self._models = models

    def complete(self, prompt: str, role: ModelRole) -> ModelResponse:
        """
        Ejecuta una pasada con el mejor proveedor disponible.
        Si falla por rate limit o red, hace failover automático.
        Lanza AllModelsExhaustedError si ninguno está disponible.
        """
        last_error: Exception | None = None

        for model in self._models:
            if not model.is_available():
                logger.info("Modelo %s no disponible (quota), saltando", model.name)
                continue

            try:
                logger.debug("Pasada %s con %s", role.value, model.name)
                response = model.complete(prompt, role)
                logger.info(
                    "Pasada %s con %s (%s) | tokens: %d+%d",
                    role.value,
                    model.name,
                    response.model_used,
                    response.tokens_input,
                    response.tokens_output,
                )
                return response

            except Exception as e:
                # Distinguimos entre errores retryables (red, quota)
                # y errores de contenido (el prompt tiene un problema)
                if _is_content_error(e):
                    logger.error(
                        "Error de contenido en %s — no se hace failover: %s",
                        model.name, e,
                    )
                    raise

                logger.warning(
                    "Modelo %s falló con error retryable: %s. Pasando al siguiente.",
                    model.name, e,
                )
                last_error = e
                continue

        raise AllModelsExhaustedError(
            f"Ningún modelo disponible. Último error: {last_error}"
        )


def _is_content_error(e: Exception) -> bool:
    """
    Determina si el error es del contenido (no de disponibilidad).
    Estos errores no activan failover — son el mismo error en cualquier modelo.
    """
    import anthropic
    import google.api_core.exceptions as google_ex

    content_errors = (
        anthropic.BadRequestError,
        google_ex.InvalidArgument,
        ValueError,
    )
    return isinstance(e, content_errors)
