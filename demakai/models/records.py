"""Domain records shared by the stores, the RAG pipeline and the handler."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class Mode(Enum):
    """Conversational mode of a session. Values are the persisted strings."""
    NATURAL = "natural"
    CODE_LOOKUP = "kbli_kbji"
    PUBLICATION = "publikasi"


class EntryKind(Enum):
    """Which classification table an entry belongs to."""
    BUSINESS = "KBLI"     # 5-digit business activity code
    OCCUPATION = "KBJI"   # 4-digit occupation code


@dataclass(frozen=True)
class ClassificationEntry:
    code: str
    title: str
    description: str
    kind: EntryKind


@dataclass(frozen=True)
class DocumentChunk:
    parent_title: str
    year: str
    source_type: str
    text: str
    embedding: Optional[List[float]] = None
    chunk_id: Optional[int] = None


@dataclass
class Document:
    title: str
    year: str = ""
    source_type: str = ""
    tags: List[str] = field(default_factory=list)
    chunks: List[DocumentChunk] = field(default_factory=list)
    document_id: Optional[int] = None


@dataclass
class SessionState:
    user_id: str
    current_mode: Mode = Mode.NATURAL
    mode_activated_at: Optional[datetime] = None
    last_query: Optional[str] = None
    message_count: int = 0
    last_interaction: Optional[datetime] = None
    first_interaction: Optional[datetime] = None
    conversation_history: List[Dict[str, str]] = field(default_factory=list)
    is_blocked: bool = False
    phone_number: Optional[str] = None
    last_message: Optional[str] = None
    # Set on the returned object when this read performed the idle reset.
    auto_reset: bool = False


@dataclass(frozen=True)
class SearchCandidate:
    """One retrieval hit handed to answer synthesis. Never persisted."""
    title: str
    description: str
    code: str = ""
    kind: Optional[EntryKind] = None
    year: str = ""
    source_type: str = ""
    similarity: Optional[float] = None
