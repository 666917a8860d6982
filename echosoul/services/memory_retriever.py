"""
Memory Retriever: hybrid semantic and keyword retrieval for a live utterance.
"""

import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..models.core import Message, SearchHit
from ..models.interfaces import EmbeddingProvider, VectorIndex
from ..utils import lexicons as lx
from ..utils.config import RetrievalConfig, config
from ..utils.errors import DependencyError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

# Literal corpus matches rank just behind exact vector hits
DIRECT_MATCH_DISTANCE = 0.1

_TOKEN_PUNCTUATION = '.,!?;:"\'()[]'

# (content, distance)
Memory = Tuple[str, float]


@dataclass
class RetrievalResult:
    """Ranked examples for one utterance."""
    memories: List[str] = field(default_factory=list)
    targeted: List[str] = field(default_factory=list)
    semantic: List[str] = field(default_factory=list)
    style_samples: List[str] = field(default_factory=list)

    @property
    def relevant_count(self) -> int:
        return len(self.memories)


def _dedupe(items):
    return list(dict.fromkeys(items))


def extract_candidates(utterance: str) -> List[str]:
    """
    Derive search candidates from an utterance.

    Candidates are significant tokens, non-stopword bigrams and topic
    expansions triggered by work, living, travel and planning words.

    Args:
        utterance: Live user message

    Returns:
        Unique candidates in first-seen order
    """
    lower = utterance.lower()
    words = [word.strip(_TOKEN_PUNCTUATION) for word in lower.split()]
    words = [word for word in words if word]
    stopwords = set(lx.RETRIEVAL_STOPWORDS)
    candidates = []

    for word in words:
        if len(word) <= 3 or word in stopwords:
            continue
        candidates.append(word)
        for triggers, expansions in lx.WORD_EXPANSIONS:
            if any(trigger in word for trigger in triggers):
                candidates.extend(expansions)

    for first, second in zip(words, words[1:]):
        phrase = f'{first} {second}'
        if len(phrase) > 5 and first not in stopwords and second not in stopwords:
            candidates.append(phrase)

    for triggers, expansions in lx.UTTERANCE_EXPANSIONS:
        if any(trigger in lower for trigger in triggers):
            candidates.extend(expansions)

    if lx.PLANNING_TRIGGER in lower and any(word in lower for word in lx.PLANNING_MOTION_WORDS):
        candidates.extend(lx.PLANNING_EXPANSION)

    return _dedupe(candidates)


def find_direct_matches(corpus: Sequence[Message], candidates: Sequence[str], cap: int = 10) -> List[Memory]:
    """Corpus messages containing any candidate literally; each message counted once."""
    if not candidates:
        return []

    lowered = [candidate.lower() for candidate in candidates]
    matches = []
    for message in corpus:
        content_lower = message.content.lower()
        if any(candidate in content_lower for candidate in lowered):
            matches.append((message.content, DIRECT_MATCH_DISTANCE))
            if len(matches) >= cap:
                break
    return matches


class MemoryRetriever:
    """Runs broad, per-candidate and contextual searches and merges them with corpus samples."""

    def __init__(self,
                 embedder: EmbeddingProvider,
                 index: VectorIndex,
                 settings: Optional[RetrievalConfig] = None,
                 rng: Optional[random.Random] = None):
        """
        Initialize the retriever.

        Args:
            embedder: Embedding capability for the utterance and candidates
            index: Vector index holding session collections
            settings: RetrievalConfig (uses global config if None)
            rng: Random source for style samples
        """
        self.embedder = embedder
        self.index = index
        self.settings = settings or config.retrieval
        self.rng = rng or random.Random()

    def _search(self, collection_id: str, vector: List[float], top_k: int, threshold: float, label: str) -> List[SearchHit]:
        try:
            return self.index.search(collection_id, vector, top_k, threshold)
        except DependencyError as e:
            logger.warning(f'{label} search failed on {collection_id}: {e}')
            return []

    def _candidate_search(self, collection_id: str, candidate: str) -> List[Memory]:
        settings = self.settings
        try:
            vector = self.embedder.embed(candidate)
        except DependencyError as e:
            logger.warning(f'Memory search failed for candidate "{candidate}": {e}')
            return []

        hits = self._search(collection_id, vector, settings.topic_top_k, settings.topic_score_threshold, f'Candidate "{candidate}"')
        memories = [(hit.content, hit.distance) for hit in hits if hit.distance < settings.topic_max_distance]
        return memories[:settings.per_topic_cap]

    def _style_samples(self, corpus: Sequence[Message]) -> List[str]:
        count = min(len(corpus), self.settings.max_total)
        return [corpus[position].content for position in self.rng.sample(range(len(corpus)), count)]

    def retrieve(self,
                 collection_id: str,
                 utterance: str,
                 corpus: Sequence[Message],
                 query_vector: Optional[List[float]] = None) -> RetrievalResult:
        """
        Retrieve ranked examples for an utterance.

        Args:
            collection_id: Session collection to search
            utterance: Live user message
            corpus: The session's parsed messages
            query_vector: Precomputed utterance embedding

        Returns:
            RetrievalResult; memories holds the merged list capped at max_total

        Raises:
            DependencyError: If the utterance itself cannot be embedded
        """
        settings = self.settings
        if query_vector is None:
            query_vector = self.embedder.embed(utterance)

        candidates = extract_candidates(utterance)
        logger.debug(f'Retrieving memories for {len(candidates)} candidates: {", ".join(candidates)}')

        with ThreadPoolExecutor(max_workers=max(1, settings.search_workers), thread_name_prefix='retrieve') as executor:
            broad_future = executor.submit(self._search, collection_id, query_vector, settings.broad_top_k,
                                           settings.broad_score_threshold, 'Broad')
            contextual_future = executor.submit(self._search, collection_id, query_vector, settings.contextual_top_k,
                                                settings.contextual_score_threshold, 'Contextual')
            candidate_futures = [executor.submit(self._candidate_search, collection_id, candidate) for candidate in candidates]

            broad_hits = broad_future.result()
            contextual_hits = contextual_future.result()
            candidate_memories = [memory for future in candidate_futures for memory in future.result()]

        semantic = _dedupe(hit.content for hit in broad_hits)[:settings.broad_cap]

        contextual = [(hit.content, hit.distance) for hit in contextual_hits if hit.distance < settings.contextual_max_distance]
        memories = candidate_memories + contextual[:settings.contextual_cap]
        memories += find_direct_matches(corpus, candidates, settings.direct_match_cap)

        # First occurrence wins, then a stable sort by distance
        seen = {}
        for content, distance in memories:
            seen.setdefault(content, distance)
        targeted = [content for content, _ in sorted(seen.items(), key=lambda item: item[1])][:settings.targeted_cap]

        style_samples = self._style_samples(corpus)
        merged = _dedupe(targeted + semantic + style_samples)[:settings.max_total]

        logger.info(f'Retrieved {len(merged)} examples ({len(targeted)} memories, {len(semantic)} semantic, '
                    f'{len(style_samples)} style samples from {len(corpus)} messages)')
        return RetrievalResult(memories=merged, targeted=targeted, semantic=semantic, style_samples=style_samples)
