"""Data types and exceptions for text-to-3D generation.

Workflow::

    1. submit(prompt)          -> job ID
    2. get_job(job_id)         -> GenerationJob (poll until terminal)
    3. generate_model(prompt)  -> GeneratedModel (1 + 2 with progress reporting)
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional

ProgressCallback = Callable[[int], Any]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class GenerationStatus(enum.Enum):
    """Lifecycle states for a generation job."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.SUCCEEDED, GenerationStatus.FAILED)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class GenerationError(Exception):
    """Base exception for model generation errors."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class GenerationAuthError(GenerationError):
    """Raised when an API key is missing or rejected."""


class GenerationValidationError(GenerationError):
    """Raised when the prompt is empty or otherwise unusable."""


class GenerationTimeoutError(GenerationError):
    """Raised when the job is still running after the last poll attempt."""


class GenerationFailedError(GenerationError):
    """Raised when the service reports the job as failed."""


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class GenerationJob:
    """State of a generation job as last read from the service."""

    id: str
    status: GenerationStatus
    progress: Optional[int] = None
    model_urls: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def has_all_formats(self) -> bool:
        return bool(self.model_urls.get("glb")) and bool(self.model_urls.get("obj"))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class GeneratedModel:
    """Mesh locations of a successfully generated model."""

    job_id: str
    glb_url: str
    obj_url: str
    prompt: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
