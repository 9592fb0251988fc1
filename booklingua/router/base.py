# router/base.py
from abc import ABC, abstractmethod
from booklingua.router.models import ModelResponse, ModelRole


class BaseModel(ABC):
    """
    Contrato que deben cumplir todos los adaptadores.
    El Orchestrator y el Router solo hablan con esta interfaz.
    Nunca importan claude.py ni gemini.py directamente.
    """

    @abstractmethod
    def complete(self, prompt: str, role: ModelRole) -> ModelResponse:
        """
        Envía el prompt como único mensaje de usuario y devuelve el texto
        del primer bloque de la respuesta, sin interpretarlo.
        SÍ puede lanzar: TimeoutError, RateLimitError, APIError.
        El Router los captura y hace failover.
        """
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """
        Consulta quota del día en storage antes de hacer cualquier
        llamada de red. Si superó el límite → False sin latencia.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Identificador del proveedor. Debe coincidir con quota_usage.model."""
        ...
