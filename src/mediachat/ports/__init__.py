from .models import (
    ModelEvent,
    ReasoningDelta,
    StepFinish,
    TextDelta,
    TextModelPort,
    ToolCallRequest,
    ToolSpec,
    TranscriptionModelPort,
    VisionModelPort,
)
from .object_store import ObjectHead, ObjectStorePort, StoredObject

__all__ = [
    "ModelEvent",
    "ObjectHead",
    "ObjectStorePort",
    "ReasoningDelta",
    "StepFinish",
    "StoredObject",
    "TextDelta",
    "TextModelPort",
    "ToolCallRequest",
    "ToolSpec",
    "TranscriptionModelPort",
    "VisionModelPort",
]
