# router/models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ModelRole(Enum):
    """Qué pasada hace la llamada. Cada adaptador elige su modelo por rol."""
    TRANSLATE = "translate"
    EDITORIAL = "editorial"


@dataclass
class ModelResponse:
    text:          str
    model_used:    str
    tokens_input:  int
    tokens_output: int


@dataclass
class ModelConfig:
    """
    Configuración de un proveedor individual.
    Se carga desde ~/.booklingua/config.yaml.
    """
    name:              str
    priority:          int
    daily_token_limit: int
    translate_model:   str
    editorial_model:   str
    api_key:           Optional[str] = None
    timeout_seconds:   int = 600
    temperature:       float = 0.3
    max_tokens:        int = 64_000

    # Control de cooldown temporal (no viene del YAML, es runtime)
    _unavailable_until: Optional[float] = field(
        default=None, compare=False, repr=False
    )

    def model_for(self, role: ModelRole) -> str:
        return self.translate_model if role == ModelRole.TRANSLATE else self.editorial_model
