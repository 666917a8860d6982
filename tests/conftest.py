"""
Shared pytest fixtures and in-memory fakes for the capability interfaces.
"""

import math
import re
import threading
import time
import uuid
import zlib
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest

from echosoul.models.core import Message, SearchHit, Session, VectorPoint
from echosoul.models.interfaces import EmbeddingProvider, GenerationProvider, VectorIndex
from echosoul.utils.config import config
from echosoul.utils.errors import DependencyError, ErrorKind


class HashingEmbedder(EmbeddingProvider):
    """Deterministic bag-of-words embedder. Texts containing a fail_on marker raise."""

    def __init__(self, dimension: int = 64):
        self.dimension = dimension
        self.fail_on = ()
        self.fail_kind = ErrorKind.TRANSIENT
        self.broken = False
        self.calls: List[List[str]] = []
        self._lock = threading.Lock()

    def vector(self, text: str) -> List[float]:
        values = [0.0] * self.dimension
        for token in re.findall(r'\w+', text.lower()):
            values[zlib.crc32(token.encode('utf-8')) % self.dimension] += 1.0
        norm = math.sqrt(sum(value * value for value in values)) or 1.0
        return [value / norm for value in values]

    def _check(self, text: str) -> None:
        if self.broken or any(marker in text for marker in self.fail_on):
            raise DependencyError(f'cannot embed {text!r}', kind=self.fail_kind)

    def embed(self, text: str) -> List[float]:
        with self._lock:
            self.calls.append([text])
        self._check(text)
        return self.vector(text)

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        with self._lock:
            self.calls.append(list(texts))
        for text in texts:
            self._check(text)
        return [self.vector(text) for text in texts]


def cosine(left: List[float], right: List[float]) -> float:
    dot = sum(a * b for a, b in zip(left, right))
    norm = math.sqrt(sum(a * a for a in left)) * math.sqrt(sum(b * b for b in right))
    return dot / norm if norm else 0.0


class InMemoryIndex(VectorIndex):
    """Brute-force cosine index keyed by collection id."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, VectorPoint]] = {}
        self.fail_search = False
        self.deleted: List[str] = []

    def _require(self, collection_id: str) -> Dict[str, VectorPoint]:
        if collection_id not in self.collections:
            raise DependencyError(f'Collection {collection_id} not found', kind=ErrorKind.NOT_FOUND)
        return self.collections[collection_id]

    def create_collection(self, collection_id: str, vector_size: int, distance_metric: str = 'cosine') -> bool:
        if collection_id in self.collections:
            return False
        self.collections[collection_id] = {}
        return True

    def upsert(self, collection_id: str, points: List[VectorPoint]) -> int:
        collection = self._require(collection_id)
        for point in points:
            collection[point.id] = point
        return len(points)

    def search(self, collection_id: str, vector: List[float], top_k: int, score_threshold: Optional[float] = None) -> List[SearchHit]:
        if self.fail_search:
            raise DependencyError('search unavailable')
        collection = self._require(collection_id)
        hits = [SearchHit(payload=dict(point.payload), score=cosine(vector, point.vector)) for point in collection.values()]
        if score_threshold is not None:
            hits = [hit for hit in hits if hit.score >= score_threshold]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:top_k]

    def delete_collection(self, collection_id: str) -> bool:
        self.deleted.append(collection_id)
        return self.collections.pop(collection_id, None) is not None

    def scroll_payloads(self, collection_id: str):
        collection = self._require(collection_id)
        for point in sorted(collection.values(), key=lambda point: point.payload.get('index', 0)):
            yield dict(point.payload)


class ScriptedGenerator(GenerationProvider):
    """Returns queued replies (then a default) and records every call."""

    def __init__(self, replies: Optional[List[str]] = None):
        self.replies = list(replies or [])
        self.default = 'haha ja echt, vertel'
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.calls: List[Dict] = []

    def complete(self, instructions, turn_pairs, new_utterance, params):
        self.calls.append({
            'instructions': instructions,
            'turn_pairs': list(turn_pairs),
            'utterance': new_utterance,
            'params': dict(params)
        })
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else self.default


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 5, 1, 12, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def build_transcript(entries, start: datetime = datetime(2023, 3, 1, 8, 0)) -> str:
    """Render (sender, content) pairs as a dash-style export, one minute apart."""
    lines = []
    for offset, (sender, content) in enumerate(entries):
        stamp = start + timedelta(minutes=offset)
        lines.append(f'{stamp.strftime("%d/%m/%y, %H:%M")} - {sender}: {content}')
    return '\n'.join(lines)


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def index():
    return InMemoryIndex()


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transcript():
    return build_transcript


@pytest.fixture
def ingestion_settings():
    return replace(config.ingestion,
                   batch_size=4,
                   upsert_chunk_size=3,
                   batch_retry_attempts=2,
                   retry_delay=0.0,
                   rate_limit_delay=0.0,
                   failure_warning_rate=0.3,
                   min_messages=3,
                   min_lines=3,
                   embed_workers=1,
                   language_sample_size=5)


@pytest.fixture
def retrieval_settings():
    return replace(config.retrieval, search_workers=2)


@pytest.fixture
def chat_settings():
    return replace(config.chat, deadline_seconds=5.0, location='', hemisphere='north')


@pytest.fixture
def make_session(clock):
    """Factory for ready sessions over a list of message texts."""

    def factory(texts=(), session_id: str = 's1', **overrides) -> Session:
        corpus = [Message(content=text, sender='Mom', timestamp=f'2023-03-01T08:{position:02d}:00')
                  for position, text in enumerate(texts)]
        fields = dict(id=session_id,
                      person_name='Mom',
                      selected_participant='Mom',
                      message_count=len(corpus),
                      collection_ref=f'session_{session_id}',
                      created_at=clock(),
                      last_activity=clock(),
                      detected_languages=['Dutch'],
                      corpus=corpus)
        fields.update(overrides)
        return Session(**fields)

    return factory


@pytest.fixture
def store_corpus(index, embedder):
    """Embed a session's corpus into the in-memory index."""

    def store(session: Session) -> None:
        index.create_collection(session.collection_ref, embedder.dimension)
        index.upsert(session.collection_ref, [
            VectorPoint(id=str(uuid.uuid4()), vector=embedder.vector(message.content), payload={
                **message.to_payload(), 'index': position
            }) for position, message in enumerate(session.corpus)
        ])

    return store
