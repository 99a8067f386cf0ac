"""Text-to-3D generation.

:class:`MeshyClient` submits a prompt to Meshy and polls the task until
both mesh formats are available, reporting progress along the way.
"""

from promptprint.generation.base import (
    GeneratedModel,
    GenerationAuthError,
    GenerationError,
    GenerationFailedError,
    GenerationJob,
    GenerationStatus,
    GenerationTimeoutError,
    GenerationValidationError,
    ProgressCallback,
)
from promptprint.generation.meshy import MeshyClient

__all__ = [
    "GeneratedModel",
    "GenerationAuthError",
    "GenerationError",
    "GenerationFailedError",
    "GenerationJob",
    "GenerationStatus",
    "GenerationTimeoutError",
    "GenerationValidationError",
    "MeshyClient",
    "ProgressCallback",
]
