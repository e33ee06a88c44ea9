"""
Processing orchestration: operation slots, mode dispatch and the workflows.
"""

from .cancellation import (
    CancellationToken,
    OperationCancelledError,
    OperationSlot,
)

from .classifier import (
    AUDIO_SUFFIXES,
    ArtifactKind,
    ProcessingMode,
    classify_artifact,
    resolve_mode,
    strip_code_fences,
)

from .orchestrator import (
    CLIPBOARD_SUCCESS_PAYLOAD,
    MissingProblemInfoError,
    ProcessingOrchestrator,
)

__all__ = [
    "CancellationToken",
    "OperationCancelledError",
    "OperationSlot",
    "AUDIO_SUFFIXES",
    "ArtifactKind",
    "ProcessingMode",
    "classify_artifact",
    "resolve_mode",
    "strip_code_fences",
    "CLIPBOARD_SUCCESS_PAYLOAD",
    "MissingProblemInfoError",
    "ProcessingOrchestrator",
]
