# router/gemini.py
import logging
import time
from typing import TYPE_CHECKING

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from booklingua.router.base import BaseModel
from booklingua.router.models import ModelConfig, ModelResponse, ModelRole

if TYPE_CHECKING:
    from booklingua.storage.repository import Repository

logger = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (
    google_exceptions.ResourceExhausted,   # 429
    google_exceptions.DeadlineExceeded,    # timeout
    google_exceptions.ServiceUnavailable,
)

_COOLDOWN_SECONDS = 300


class GeminiAdapter(BaseModel):
    """Proveedor de respaldo: entra solo si Claude no está disponible."""

    def __init__(self, config: ModelConfig, repo: "Repository"):
        self._config = config
        self._repo   = repo
        genai.configure(api_key=config.api_key)
        self._models: dict[str, genai.GenerativeModel] = {}

    @property
    def name(self) -> str:
        return self._config.name   # "gemini"

    def is_available(self) -> bool:
        if self._config._unavailable_until is not None:
            if time.time() < self._config._unavailable_until:
                return False
            self._config._unavailable_until = None

        used = self._repo.get_token_usage_today(self.name)
        return used < self._config.daily_token_limit

    def complete(self, prompt: str, role: ModelRole) -> ModelResponse:
        model_name = self._config.model_for(role)
        model      = self._model(model_name)

        try:
            response = model.generate_content(
                prompt,
                request_options={"timeout": self._config.timeout_seconds},
            )
        except _RETRYABLE_ERRORS as e:
            logger.warning("Gemini error retryable: %s", e)
            self._config._unavailable_until = time.time() + _COOLDOWN_SECONDS
            raise

        tokens_input  = response.usage_metadata.prompt_token_count
        tokens_output = response.usage_metadata.candidates_token_count
        self._repo.add_token_usage(self.name, tokens_input + tokens_output)

        return ModelResponse(
            text          = _response_text(response),
            model_used    = model_name,
            tokens_input  = tokens_input,
            tokens_output = tokens_output,
        )

    def _model(self, model_name: str) -> genai.GenerativeModel:
        """Un GenerativeModel por nombre, creado la primera vez que se usa."""
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(
                model_name        = model_name,
                generation_config = genai.GenerationConfig(
                    temperature       = self._config.temperature,
                    max_output_tokens = self._config.max_tokens,
                ),
            )
        return self._models[model_name]


def _response_text(response) -> str:
    # response.text lanza ValueError si la respuesta vino bloqueada o sin partes
    try:
        return response.text
    except ValueError:
        logger.warning("Gemini devolvió una respuesta sin texto")
        return ""
