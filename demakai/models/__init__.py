from demakai.models.records import (
    ClassificationEntry,
    Document,
    DocumentChunk,
    EntryKind,
    Mode,
    SearchCandidate,
    SessionState,
)
from demakai.models.unified_message import MessageType, UnifiedMessage

__all__ = [
    "ClassificationEntry",
    "Document",
    "DocumentChunk",
    "EntryKind",
    "Mode",
    "SearchCandidate",
    "SessionState",
    "MessageType",
    "UnifiedMessage",
]
