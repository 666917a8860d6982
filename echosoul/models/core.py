"""
Core data models for the persona engine.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Message:
    """A single parsed transcript message from the selected participant."""
    content: str
    sender: str
    timestamp: str  # ISO-8601 when the export date is valid, raw 'date, time' otherwise

    def to_payload(self) -> Dict[str, Any]:
        return {'content': self.content, 'sender': self.sender, 'timestamp': self.timestamp}


@dataclass(frozen=True)
class EmbeddedMessage:
    """A message paired with its embedding vector."""
    message: Message
    vector: List[float]
    index: int = 0  # position in the parsed corpus
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def content(self) -> str:
        return self.message.content


@dataclass(frozen=True)
class VectorPoint:
    """A point written to a vector index collection."""
    id: str
    vector: List[float]
    payload: Dict[str, Any]


@dataclass(frozen=True)
class SearchHit:
    """A ranked similarity search result. Score is cosine similarity."""
    payload: Dict[str, Any]
    score: float

    @property
    def content(self) -> str:
        return self.payload.get('content', '')

    @property
    def distance(self) -> float:
        return 1.0 - self.score


class ProgressStage(str, Enum):
    """Ingestion progress stages."""
    READING = 'reading'
    PARSING = 'parsing'
    ANALYZING = 'analyzing'
    FINALIZING = 'finalizing'
    COMPLETE = 'complete'
    ERROR = 'error'

    @property
    def terminal(self) -> bool:
        return self in (ProgressStage.COMPLETE, ProgressStage.ERROR)


@dataclass(frozen=True)
class IngestionProgress:
    """Snapshot of an upload's ingestion progress."""
    upload_id: str
    stage: ProgressStage
    percent: int
    message: str
    total_items: int = 0
    processed_items: int = 0
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'upload_id': self.upload_id,
            'stage': self.stage.value,
            'percent': self.percent,
            'message': self.message,
            'total_items': self.total_items,
            'processed_items': self.processed_items,
            'session_id': self.session_id
        }


@dataclass
class Session:
    """A ready-to-chat persona built from one ingested transcript.

    The collection named by collection_ref is owned by this session and is
    deleted when the session is evicted.
    """
    id: str
    person_name: str
    selected_participant: str
    message_count: int
    collection_ref: str
    created_at: datetime
    last_activity: datetime
    detected_languages: List[str]
    corpus: List[Message]
    embedding_count: int = 0
    embedding_warning: bool = False
    turn_count: int = 0
    user_id: Optional[str] = None
    style_profile: Optional[Any] = None  # StyleProfile, computed on first use

    def to_summary(self) -> Dict[str, Any]:
        return {
            'session_id': self.id,
            'person_name': self.person_name,
            'selected_participant': self.selected_participant,
            'message_count': self.message_count,
            'embedding_count': self.embedding_count,
            'embedding_warning': self.embedding_warning,
            'detected_languages': list(self.detected_languages),
            'turn_count': self.turn_count,
            'created_at': self.created_at.isoformat(),
            'last_activity': self.last_activity.isoformat()
        }


@dataclass(frozen=True)
class Turn:
    """One utterance/response pair."""
    session_id: str
    user_message: str
    ai_response: str
    context_used: bool
    relevant_count: int
    processing_time_ms: int
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ChatResult:
    """Outcome of a single chat turn."""
    response: str
    context_used: bool
    relevant_count: int
    history_count: int
    processing_time_ms: int
    warning: Optional[str] = None
    repetition_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'response': self.response,
            'context_used': self.context_used,
            'relevant_count': self.relevant_count,
            'history_count': self.history_count,
            'processing_time_ms': self.processing_time_ms,
            'warning': self.warning,
            'repetition_kind': self.repetition_kind
        }


@dataclass(frozen=True)
class IngestionHandle:
    """Returned immediately when background ingestion is started."""
    session_id: str
    upload_id: str
