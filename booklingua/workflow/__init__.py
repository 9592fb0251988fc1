from booklingua.workflow.engine import JobOutcome, StepContext, WorkflowEngine, WorkflowFunction
from booklingua.workflow.events import TranslateRequested
from booklingua.workflow.trigger import JobTrigger, Worker, WorkerReport

__all__ = [
    "JobOutcome",
    "StepContext",
    "WorkflowEngine",
    "WorkflowFunction",
    "TranslateRequested",
    "JobTrigger",
    "Worker",
    "WorkerReport",
]
