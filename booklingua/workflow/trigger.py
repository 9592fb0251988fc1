# workflow/trigger.py
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from booklingua.errors import JobAlreadyTriggeredError, StepFailedError
from booklingua.storage.repository import Repository
from booklingua.workflow.engine import JobOutcome, WorkflowEngine, WorkflowFunction

logger = logging.getLogger(__name__)


class JobTrigger:
    """
    Bus de eventos mínimo: cada evento encola un trabajo por función suscrita.
    El job_id se deriva de la clave del evento, así reenviar el mismo
    evento nunca crea un segundo trabajo para el mismo pedido.
    """

    def __init__(
        self,
        repo:      Repository,
        functions: list[WorkflowFunction],
        strict:    bool = False,
    ):
        self._repo      = repo
        self._functions = functions
        self._strict    = strict

    def send(self, event) -> list[str]:
        """Devuelve los job_id creados (vacío si el evento ya se había recibido)."""
        created: list[str] = []
        for function in self._functions:
            if function.event_name != event.name:
                continue

            job_id = function.job_id_for(event)
            is_new = self._repo.create_job_run(
                job_id      = job_id,
                function_id = function.id,
                event_name  = event.name,
                payload     = event.to_payload(),
            )
            if is_new:
                logger.info("Evento %s → trabajo %s encolado", event.name, job_id)
                created.append(job_id)
            elif self._strict:
                raise JobAlreadyTriggeredError(f"El trabajo {job_id} ya existe")
            else:
                logger.info("Evento %s duplicado — %s ya existe", event.name, job_id)

        if not any(f.event_name == event.name for f in self._functions):
            logger.warning("Ninguna función escucha el evento %s", event.name)
        return created


@dataclass
class WorkerReport:
    completed: list[str] = field(default_factory=list)
    failed:    list[str] = field(default_factory=list)
    skipped:   list[str] = field(default_factory=list)


class Worker:
    """
    Consume trabajos QUEUED uno detrás de otro.
    Varios procesos worker pueden correr a la vez: el claim en el engine
    garantiza que cada trabajo lo ejecuta uno solo.
    """

    def __init__(
        self,
        repo:   Repository,
        engine: WorkflowEngine,
        on_outcome: Optional[Callable[[JobOutcome], None]] = None,
    ):
        self._repo       = repo
        self._engine     = engine
        self._on_outcome = on_outcome

    def run_once(self, limit: Optional[int] = None) -> WorkerReport:
        """
        Procesa los trabajos encolados en este momento.
        Un trabajo que falla queda FAILED en job_runs y el worker sigue
        con el siguiente: los pedidos no comparten estado.
        Los RUNNING con el lease vencido (su worker murió) también se
        retoman, desde su último paso registrado.
        """
        report = WorkerReport()
        jobs   = self._repo.get_queued_job_runs(
            limit         = limit,
            lease_seconds = self._engine.lease_seconds,
        )

        for job in jobs:
            try:
                outcome = self._engine.execute(job.job_id)
            except StepFailedError as e:
                logger.error("Trabajo %s falló en el paso %s", job.job_id, e.step_id)
                report.failed.append(job.job_id)
                continue
            except Exception as e:
                # Fallo fuera de un paso (payload inválido, idioma desconocido...)
                logger.error("Trabajo %s falló: %s: %s", job.job_id, type(e).__name__, e)
                report.failed.append(job.job_id)
                continue

            if outcome is None:
                report.skipped.append(job.job_id)
                continue

            report.completed.append(job.job_id)
            if self._on_outcome:
                self._on_outcome(outcome)

        return report

    def run_forever(self, poll_seconds: float = 5.0) -> None:
        """Bucle de polling. Se corta con Ctrl+C desde el CLI."""
        logger.info("Worker escuchando trabajos (poll cada %.1fs)", poll_seconds)
        while True:
            report = self.run_once()
            if not (report.completed or report.failed):
                time.sleep(poll_seconds)
