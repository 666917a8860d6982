"""
Unit tests for hybrid memory retrieval.
"""

import random
from dataclasses import replace

import pytest

from echosoul.models.core import Message, SearchHit
from echosoul.services.memory_retriever import (DIRECT_MATCH_DISTANCE, MemoryRetriever, extract_candidates,
                                                find_direct_matches)
from echosoul.utils.errors import DependencyError


class FixedIndex:
    """Returns the same hits for every query, whatever the vector."""

    def __init__(self, hits):
        self.hits = hits
        self.queries = []

    def search(self, collection_id, vector, top_k, score_threshold=None):
        self.queries.append((collection_id, top_k, score_threshold))
        return list(self.hits)


def _corpus(*texts):
    return [Message(content=text, sender='Mom', timestamp='2023-03-01T08:00:00') for text in texts]


class TestExtractCandidates:

    def test_tokens_bigrams_and_expansions(self):
        candidates = extract_candidates('Hoe gaat het met je werk?')

        assert 'gaat' in candidates
        assert 'werk' in candidates
        assert 'hoe gaat' in candidates
        assert {'werk situatie', 'werkplek', 'werkgever', 'collega'} <= set(candidates)
        # short tokens and stopwords are dropped
        assert 'het' not in candidates
        assert 'je werk' not in candidates
        assert len(candidates) == len(set(candidates))

    def test_planning_expansion(self):
        candidates = extract_candidates('wanneer gaan we naar Lissabon')
        assert {'plannen', 'gaan', 'naar'} <= set(candidates)

    def test_nothing_significant(self):
        assert extract_candidates('ja ok') == []


class TestFindDirectMatches:

    def test_each_message_counted_once(self):
        corpus = _corpus('ik werk bij de bakkerij', 'lekker weer', 'werk werk werk')
        matches = find_direct_matches(corpus, ['werk', 'bakkerij'])
        assert matches == [('ik werk bij de bakkerij', DIRECT_MATCH_DISTANCE), ('werk werk werk', DIRECT_MATCH_DISTANCE)]

    def test_cap(self):
        corpus = _corpus(*[f'werk dag {i}' for i in range(20)])
        assert len(find_direct_matches(corpus, ['werk'], cap=10)) == 10

    def test_case_insensitive(self):
        assert find_direct_matches(_corpus('De BAKKERIJ was dicht'), ['bakkerij'])

    def test_no_candidates(self):
        assert find_direct_matches(_corpus('werk'), []) == []


class TestMemoryRetriever:

    @pytest.fixture
    def fixed_index(self):
        return FixedIndex([SearchHit(payload={'content': 'A'}, score=0.95), SearchHit(payload={'content': 'B'}, score=0.7)])

    def test_targeted_memories_rank_by_distance_before_semantic_and_samples(self, embedder, fixed_index, retrieval_settings):
        retriever = MemoryRetriever(embedder, fixed_index, retrieval_settings, rng=random.Random(3))
        corpus = _corpus('ik werk bij de bakkerij', 'lekker weer', 'C')

        result = retriever.retrieve('session_s1', 'werk', corpus, query_vector=[1.0, 0.0])

        assert result.targeted == ['A', 'ik werk bij de bakkerij', 'B']
        assert result.semantic == ['A', 'B']
        assert sorted(result.style_samples) == sorted(message.content for message in corpus)
        assert result.memories[:3] == result.targeted
        assert set(result.memories[3:]) == {'lekker weer', 'C'}
        assert result.relevant_count == 5

    def test_merged_list_is_capped(self, embedder, fixed_index, retrieval_settings):
        settings = replace(retrieval_settings, max_total=2)
        retriever = MemoryRetriever(embedder, fixed_index, settings, rng=random.Random(0))

        result = retriever.retrieve('session_s1', 'werk', _corpus('ik werk hard', 'lekker weer', 'C'), query_vector=[1.0])

        assert result.memories == ['A', 'ik werk hard']
        assert len(result.style_samples) == 2

    def test_distance_cutoffs_filter_weak_hits(self, embedder, retrieval_settings):
        weak = FixedIndex([SearchHit(payload={'content': 'far away'}, score=0.2)])
        retriever = MemoryRetriever(embedder, weak, retrieval_settings, rng=random.Random(0))

        result = retriever.retrieve('session_s1', 'werk', _corpus('lekker weer'), query_vector=[1.0])

        assert result.targeted == []
        assert result.semantic == ['far away']

    def test_candidate_embedding_failures_are_skipped(self, embedder, fixed_index, retrieval_settings):
        embedder.broken = True
        retriever = MemoryRetriever(embedder, fixed_index, retrieval_settings, rng=random.Random(0))

        result = retriever.retrieve('session_s1', 'werk', _corpus('ik werk bij de bakkerij'), query_vector=[1.0])

        # contextual and direct matches still count
        assert result.targeted == ['A', 'ik werk bij de bakkerij', 'B']

    def test_search_failures_fall_back_to_direct_matches(self, embedder, index, retrieval_settings):
        index.fail_search = True
        retriever = MemoryRetriever(embedder, index, retrieval_settings, rng=random.Random(0))

        result = retriever.retrieve('session_s1', 'hoe is het op je werk', _corpus('ik werk bij de bakkerij', 'lekker weer'))

        assert result.targeted == ['ik werk bij de bakkerij']
        assert result.semantic == []

    def test_utterance_embedding_failure_propagates(self, embedder, index, retrieval_settings):
        embedder.broken = True
        retriever = MemoryRetriever(embedder, index, retrieval_settings)
        with pytest.raises(DependencyError):
            retriever.retrieve('session_s1', 'werk', _corpus('werk'))

    def test_real_index_finds_similar_messages(self, embedder, index, retrieval_settings, make_session, store_corpus):
        session = make_session(['de bakkerij was vandaag heel druk', 'zullen we pizza eten', 'mijn fiets is kapot'])
        store_corpus(session)
        retriever = MemoryRetriever(embedder, index, retrieval_settings, rng=random.Random(0))

        result = retriever.retrieve(session.collection_ref, 'hoe was het bij de bakkerij', session.corpus)

        assert result.targeted[0] == 'de bakkerij was vandaag heel druk'
