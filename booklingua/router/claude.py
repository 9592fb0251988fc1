# router/claude.py
import logging
import time
from typing import TYPE_CHECKING

import anthropic

from booklingua.router.base import BaseModel
from booklingua.router.models import ModelConfig, ModelResponse, ModelRole

if TYPE_CHECKING:
    from booklingua.storage.repository import Repository

logger = logging.getLogger(__name__)

# Errores que activan failover hacia otro proveedor
_RETRYABLE_ERRORS = (
    anthropic.RateLimitError,
    anthropic.APITimeoutError,
    anthropic.APIConnectionError,
    anthropic.InternalServerError,
)

_COOLDOWN_SECONDS = 300


class ClaudeAdapter(BaseModel):

    def __init__(self, config: ModelConfig, repo: "Repository", client=None):
        self._config = config
        self._repo   = repo
        self._client = client or anthropic.Anthropic(
            api_key = config.api_key,
            timeout = config.timeout_seconds,
        )

    @property
    def name(self) -> str:
        return self._config.name   # "claude" — coincide con quota_usage.model

    def is_available(self) -> bool:
        # Primero: ¿está en cooldown temporal por error de red?
        if self._config._unavailable_until is not None:
            if time.time() < self._config._unavailable_until:
                return False
            self._config._unavailable_until = None  # cooldown expirado

        # Segundo: ¿tiene quota disponible hoy?
        used = self._repo.get_token_usage_today(self.name)
        return used < self._config.daily_token_limit

    def complete(self, prompt: str, role: ModelRole) -> ModelResponse:
        model = self._config.model_for(role)
        try:
            # Streaming: con max_tokens tan alto el SDK rechaza la llamada síncrona
            with self._client.messages.stream(
                model       = model,
                max_tokens  = self._config.max_tokens,
                temperature = self._config.temperature,
                messages    = [{"role": "user", "content": prompt}],
            ) as stream:
                message = stream.get_final_message()

        except _RETRYABLE_ERRORS as e:
            logger.warning("Claude error retryable: %s", e)
            self._config._unavailable_until = time.time() + _COOLDOWN_SECONDS
            raise   # El Router captura esto y hace failover

        except anthropic.BadRequestError as e:
            # Error del contenido, no de disponibilidad
            logger.error("Claude BadRequest (%s): %s", role.value, e)
            raise

        tokens_input  = message.usage.input_tokens
        tokens_output = message.usage.output_tokens
        self._repo.add_token_usage(self.name, tokens_input + tokens_output)

        return ModelResponse(
            text          = _first_text_block(message.content),
            model_used    = model,
            tokens_input  = tokens_input,
            tokens_output = tokens_output,
        )


def _first_text_block(content) -> str:
    """Solo interesa el primer bloque; si no es texto, la respuesta está vacía."""
    if not content:
        return ""
    block = content[0]
    return block.text if getattr(block, "type", None) == "text" else ""
