"""
Capability interfaces the engine depends on.

Services only talk to these abstractions; concrete adapters live in utils
(Bedrock, OpenSearch) and services (turn store, session registry).
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, ContextManager, Dict, Iterator, List, Optional, Tuple

from ..utils.errors import SessionNotFoundError
from .core import SearchHit, Session, Turn, VectorPoint


class EmbeddingProvider(ABC):
    """Text to vector. Failures raise DependencyError with an ErrorKind."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        raise NotImplementedError

    @abstractmethod
    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError


class GenerationProvider(ABC):
    """Completion capability. Failures raise GenerationError."""

    @abstractmethod
    def complete(self, instructions: str, turn_pairs: List[Tuple[str, str]], new_utterance: str, params: Dict[str, Any]) -> str:
        raise NotImplementedError


class VectorIndex(ABC):
    """Per-session collection store with similarity search."""

    @abstractmethod
    def create_collection(self, collection_id: str, vector_size: int, distance_metric: str = 'cosine') -> bool:
        """Create the collection; returns False when it already existed."""
        raise NotImplementedError

    @abstractmethod
    def upsert(self, collection_id: str, points: List[VectorPoint]) -> int:
        raise NotImplementedError

    @abstractmethod
    def search(self, collection_id: str, vector: List[float], top_k: int, score_threshold: Optional[float] = None) -> List[SearchHit]:
        """Return hits ordered by descending cosine similarity."""
        raise NotImplementedError

    @abstractmethod
    def delete_collection(self, collection_id: str) -> bool:
        """Delete the collection; missing collections return False."""
        raise NotImplementedError

    @abstractmethod
    def scroll_payloads(self, collection_id: str) -> Iterator[Dict[str, Any]]:
        """Yield every stored payload in corpus order."""
        raise NotImplementedError


class TurnStore(ABC):
    """Append-only turn history."""

    @abstractmethod
    def append(self, turn: Turn) -> None:
        raise NotImplementedError

    @abstractmethod
    def list(self, session_id: str, limit: int) -> List[Turn]:
        """Most recent first."""
        raise NotImplementedError


class SessionRegistry(ABC):
    """Session store keyed by opaque ids."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        raise NotImplementedError

    @abstractmethod
    def put(self, session: Session) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, session_id: str) -> Optional[Session]:
        raise NotImplementedError

    def require(self, session_id: str) -> Session:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @abstractmethod
    def lock_for(self, session_id: str) -> ContextManager:
        """Lock serializing updates to one session."""
        raise NotImplementedError

    @abstractmethod
    def touch(self, session_id: str) -> Session:
        """Refresh last_activity; raises SessionNotFoundError for unknown ids."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self, ttl_seconds: float, on_evict: Optional[Callable[[Session], None]] = None) -> List[str]:
        """Evict sessions idle longer than ttl_seconds; returns evicted ids."""
        raise NotImplementedError
