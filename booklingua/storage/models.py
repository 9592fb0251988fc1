# storage/models.py
from dataclasses import dataclass, field
from typing import Optional
from enum import Enum


class OrderStatus(Enum):
    PENDING    = "pending"
    PROCESSING = "processing"
    COMPLETED  = "completed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def can_advance_to(self, target: "OrderStatus") -> bool:
        """Solo hacia delante: pending → processing → completed."""
        return target.rank > self.rank


_STATUS_RANK = {
    OrderStatus.PENDING:    0,
    OrderStatus.PROCESSING: 1,
    OrderStatus.COMPLETED:  2,
}


class Tier(Enum):
    SMALL  = "small"
    MEDIUM = "medium"
    LARGE  = "large"


class FileType(Enum):
    ORIGINAL   = "original"
    TRANSLATED = "translated"


class JobStatus(Enum):
    QUEUED    = "queued"
    RUNNING   = "running"
    COMPLETED = "completed"
    FAILED    = "failed"


@dataclass
class StoredOrder:
    id:                   int
    email:                str
    author_name:          str
    book_title:           str
    word_count:           int
    tier:                 Tier
    file_format:          str
    languages:            list[str]
    status:               OrderStatus
    created_at:           str
    genre:                Optional[str]   = None
    upsells:              list[str]       = field(default_factory=list)
    special_instructions: Optional[str]   = None
    amount_paid:          float           = 0.0
    completed_at:         Optional[str]   = None


@dataclass
class StoredFile:
    id:               int
    order_id:         int
    type:             FileType
    content:          str
    created_at:       str
    language:         Optional[str] = None
    original_content: Optional[str] = None
    # Gramática con la que se marcó content (solo traducciones)
    marker_grammar:   Optional[str] = None


@dataclass
class StoredJobRun:
    job_id:      str
    function_id: str
    event_name:  str
    payload:     dict
    status:      JobStatus
    attempts:    int
    created_at:  str
    updated_at:  str
    last_error:  Optional[str] = None


@dataclass
class StoredStep:
    job_id:       str
    step_id:      str
    output:       object
    completed_at: str
