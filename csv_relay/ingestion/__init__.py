from __future__ import annotations

from .pipeline import OutcomeKind, PeekReplayPipeline, PipelineOutcome, PipelineState
from .streamers import ChunkSource, SharedChunkSource
from .validators import Accepted, Rejected, ValidationResult, validate_prefix

__all__: list[str] = [
    "Accepted",
    "ChunkSource",
    "OutcomeKind",
    "PeekReplayPipeline",
    "PipelineOutcome",
    "PipelineState",
    "Rejected",
    "SharedChunkSource",
    "ValidationResult",
    "validate_prefix",
]
