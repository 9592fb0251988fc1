# storage/__init__.py
from booklingua.storage.repository import Repository
from booklingua.storage.models import (
    FileType, JobStatus, OrderStatus, Tier,
    StoredFile, StoredJobRun, StoredOrder, StoredStep,
)

__all__ = [
    "Repository",
    "FileType", "JobStatus", "OrderStatus", "Tier",
    "StoredFile", "StoredJobRun", "StoredOrder", "StoredStep",
]
