# workflow/engine.py
"""
Motor de pasos duradero.

Cada paso con nombre se ejecuta una sola vez por trabajo: su resultado
queda en job_steps y, si el trabajo se relanza (crash, reintento o
ejecución forzada), el paso se salta y se devuelve el resultado guardado.
Un paso que lanza se reintenta con el presupuesto de la función; solo
cuando lo agota falla el trabajo entero.
"""
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential,
)

from booklingua.config import WorkflowConfig
from booklingua.errors import StepFailedError
from booklingua.storage.models import JobStatus
from booklingua.storage.repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class WorkflowFunction:
    """Una función duradera suscrita a un evento."""
    id:         str
    event_type: type
    handler:    Callable[[Any, "StepContext"], Any]
    retries:    int = 3

    @property
    def event_name(self) -> str:
        return self.event_type.name

    def job_id_for(self, event) -> str:
        return f"{self.id}:{event.key}"


@dataclass
class JobOutcome:
    job_id:         str
    status:         JobStatus
    result:         Any = None
    executed_steps: list[str] = field(default_factory=list)
    skipped_steps:  list[str] = field(default_factory=list)


class StepContext:
    """
    Lo que recibe el handler: step.run(id, fn) memoiza y reintenta.
    Los resultados deben ser dataclasses planas o valores JSON.
    """

    def __init__(
        self,
        repo:     Repository,
        job_id:   str,
        retrying: Callable[[], Retrying],
    ):
        self._repo     = repo
        self._job_id   = job_id
        self._retrying = retrying
        self._seen:    set[str] = set()
        self.executed: list[str] = []
        self.skipped:  list[str] = []

    @property
    def job_id(self) -> str:
        return self._job_id

    def run(self, step_id: str, fn: Callable[[], Any], result_type: Optional[type] = None) -> Any:
        if step_id in self._seen:
            raise ValueError(f"Paso duplicado en el mismo trabajo: '{step_id}'")
        self._seen.add(step_id)

        stored = self._repo.get_step(self._job_id, step_id)
        if stored is not None:
            logger.debug("Paso %s ya completado — se reutiliza su resultado", step_id)
            self.skipped.append(step_id)
            return _load(stored.output, result_type)

        # Cada paso nuevo renueva el lease del trabajo
        self._repo.touch_job_run(self._job_id)
        try:
            result = self._retrying()(fn)
        except RetryError as e:
            attempt = e.last_attempt
            cause   = attempt.exception()
            logger.error(
                "Paso %s agotó %d intentos en %s: %s",
                step_id, attempt.attempt_number, self._job_id, cause,
            )
            raise StepFailedError(step_id, attempt.attempt_number, cause) from cause

        # Se persiste antes de seguir: desde aquí el paso no se repite
        self._repo.save_step(self._job_id, step_id, _dump(result))
        self.executed.append(step_id)
        return result


class WorkflowEngine:
    """
    Ejecuta trabajos registrados en job_runs.
    No sabe nada de pedidos ni de traducciones: solo de funciones y pasos.
    """

    def __init__(
        self,
        repo:   Repository,
        config: Optional[WorkflowConfig] = None,
        sleep:  Optional[Callable[[float], None]] = None,
    ):
        self._repo      = repo
        self._config    = config or WorkflowConfig()
        self._sleep     = sleep
        self._functions: dict[str, WorkflowFunction] = {}

    def register(self, function: WorkflowFunction) -> None:
        if function.id in self._functions:
            raise ValueError(f"Función ya registrada: '{function.id}'")
        self._functions[function.id] = function

    @property
    def functions(self) -> list[WorkflowFunction]:
        return list(self._functions.values())

    @property
    def lease_seconds(self) -> float:
        return self._config.lease_seconds

    def execute(self, job_id: str, force: bool = False) -> Optional[JobOutcome]:
        """
        Reclama y ejecuta un trabajo. Sin force solo corre trabajos QUEUED
        o RUNNING huérfanos (lease vencido); con force relanza cualquiera.
        En todos los casos los pasos hechos se saltan.
        Devuelve None si otro worker ya lo había reclamado.
        Si un paso agota sus reintentos marca el trabajo FAILED y relanza.
        Si el proceso se interrumpe (Ctrl+C, SystemExit) el trabajo vuelve
        a QUEUED para que el siguiente worker lo retome.
        """
        job = self._repo.get_job_run(job_id)
        if job is None:
            raise KeyError(f"Trabajo no encontrado: {job_id}")

        function = self._functions.get(job.function_id)
        if function is None:
            raise KeyError(f"Función no registrada: '{job.function_id}'")

        if not self._repo.claim_job_run(job_id, force=force, lease_seconds=self.lease_seconds):
            logger.info("Trabajo %s ya reclamado por otro worker (%s)", job_id, job.status.value)
            return None

        step = StepContext(
            repo     = self._repo,
            job_id   = job_id,
            retrying = lambda: self._build_retrying(function.retries),
        )

        try:
            event  = function.event_type.from_payload(job.payload)
            result = function.handler(event, step)
        except Exception as e:
            self._repo.finish_job_run(job_id, JobStatus.FAILED, f"{type(e).__name__}: {e}")
            logger.error("Trabajo %s falló: %s", job_id, e)
            raise
        except BaseException as e:
            self._repo.finish_job_run(job_id, JobStatus.QUEUED, f"Interrumpido: {type(e).__name__}")
            logger.warning("Trabajo %s interrumpido; vuelve a la cola", job_id)
            raise

        self._repo.finish_job_run(job_id, JobStatus.COMPLETED)
        logger.info(
            "Trabajo %s completado (%d pasos ejecutados, %d reutilizados)",
            job_id, len(step.executed), len(step.skipped),
        )
        return JobOutcome(
            job_id         = job_id,
            status         = JobStatus.COMPLETED,
            result         = result,
            executed_steps = step.executed,
            skipped_steps  = step.skipped,
        )

    def _build_retrying(self, attempts: int) -> Retrying:
        kwargs = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return Retrying(
            stop         = stop_after_attempt(attempts),
            wait         = wait_exponential(
                multiplier = self._config.retry_wait_seconds,
                max        = self._config.retry_max_wait_seconds,
            ),
            before_sleep = before_sleep_log(logger, logging.WARNING),
            **kwargs,
        )


# ------------------------------------------------------------------
# Serialización de resultados de paso
# ------------------------------------------------------------------

def _dump(result: Any) -> Any:
    if dataclasses.is_dataclass(result) and not isinstance(result, type):
        return dataclasses.asdict(result)
    return result


def _load(raw: Any, result_type: Optional[type]) -> Any:
    if result_type is None or raw is None:
        return raw
    if dataclasses.is_dataclass(result_type):
        return result_type(**raw)
    return result_type(raw)
