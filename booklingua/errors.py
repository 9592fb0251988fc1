# booklingua/errors.py
"""Errores propios del pipeline. Todos burbujean hasta el motor de pasos."""


class OrderNotFoundError(Exception):
    """El pedido no existe en el store."""
    pass


class SourceFileNotFoundError(Exception):
    """El pedido no tiene manuscrito original."""
    pass


class UnknownLanguageError(ValueError):
    """Código de idioma sin entrada en la tabla de idiomas."""
    pass


class OrderNotReadyError(Exception):
    """Se pidió una entrega de un pedido que todavía no está COMPLETED."""
    pass


class InvalidEventError(ValueError):
    """El payload de un evento no pasa la validación."""
    pass


class ConfigError(Exception):
    """Configuración inválida o incompleta."""
    pass


class StepFailedError(Exception):
    """Un paso agotó su presupuesto de reintentos. El trabajo entero falla."""

    def __init__(self, step_id: str, attempts: int, cause: BaseException):
        self.step_id  = step_id
        self.attempts = attempts
        self.cause    = cause
        super().__init__(
            f"Paso '{step_id}' falló tras {attempts} intentos: "
            f"{type(cause).__name__}: {cause}"
        )


class TranslationNotFoundError(Exception):
    """El pedido no tiene traducción para ese idioma."""
    pass


class EmptyTranslationError(Exception):
    """La pasada de traducción devolvió texto vacío. El paso se reintenta."""
    pass


class JobAlreadyTriggeredError(Exception):
    """Modo estricto del trigger: el evento ya había creado su trabajo."""
    pass
