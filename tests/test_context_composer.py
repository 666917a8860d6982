"""
Unit tests for prompt composition.
"""

import random
from dataclasses import replace
from datetime import datetime

import pytest

from echosoul.models.core import Turn
from echosoul.services.context_composer import (CANNED_FAILURE_RESPONSES, FALLBACK_DEFAULT, FEW_SHOT_PAIRS, ContextComposer,
                                                canned_failure_response, fallback_for_utterance, memory_context,
                                                post_process, season_for, world_context)
from echosoul.services.memory_retriever import RetrievalResult


def _turn(user, ai, minute=0):
    return Turn(session_id='s1', user_message=user, ai_response=ai, context_used=True, relevant_count=1, processing_time_ms=5,
                created_at=datetime(2024, 5, 1, 12, minute))


@pytest.fixture
def composer(chat_settings):
    return ContextComposer(chat_settings, now=lambda: datetime(2024, 7, 1, 9, 0))


class TestHelpers:

    def test_post_process_collapses_blank_lines_and_clamps(self):
        assert post_process('  hoi\n\n\n\nlieverd  ') == 'hoi\n\nlieverd'
        assert post_process('x' * 600, max_chars=500) == 'x' * 500
        assert post_process(None) == ''

    def test_keyword_fallbacks(self):
        assert fallback_for_utterance('I MISS you so much').startswith('I miss you too')
        assert fallback_for_utterance('I love you').startswith('I love you so much')
        assert fallback_for_utterance('Do you remember the beach?').startswith('Our memories together')
        assert fallback_for_utterance('hallo') == FALLBACK_DEFAULT

    def test_canned_failure_response_uses_given_rng(self):
        assert canned_failure_response(random.Random(1)) in CANNED_FAILURE_RESPONSES

    def test_seasons_by_hemisphere(self):
        assert season_for(datetime(2024, 1, 10)) == 'winter'
        assert season_for(datetime(2024, 1, 10), 'south') == 'summer'
        assert season_for(datetime(2024, 10, 10)) == 'autumn'

    def test_world_context(self):
        text = world_context(datetime(2024, 12, 24), location='Utrecht')
        assert 'Date: 24-12-2024 (winter 2024)' in text
        assert 'Location: Utrecht' in text
        assert 'Holiday context' in text

    def test_memory_context_focuses_on_travel(self):
        text = memory_context(['die reis naar Rome was top', 'werk was druk'], 'weet je nog die vakantie')
        assert '- die reis naar Rome was top' in text
        assert 'werk was druk' not in text
        assert 'USE THESE MEMORIES' in text

    def test_memory_context_without_memories(self):
        assert memory_context([], 'hoi').startswith('No specific relevant memories found')


class TestCompose:

    def test_payload_carries_identity_memories_and_parameters(self, composer, make_session):
        session = make_session(['ik werk bij de bakkerij', 'haha ja echt', 'tot straks'])
        retrieval = RetrievalResult(memories=['ik werk bij de bakkerij', 'haha ja echt'],
                                    targeted=['ik werk bij de bakkerij'],
                                    semantic=['haha ja echt'],
                                    style_samples=['tot straks'])

        payload = composer.compose(session, 'Hoe is het op je werk?', retrieval, [])

        assert payload.instructions.startswith('You are Mom, a real person')
        assert 'SPECIFIC SHARED MEMORIES (reference these when relevant):\nik werk bij de bakkerij' in payload.instructions
        assert 'YOUR AUTHENTIC VOICE (from 3 real messages):\ntot straks' in payload.instructions
        assert 'STATISTICAL PROFILE - MATCH THESE EXACT PATTERNS:' in payload.instructions
        assert 'Topic category: work' in payload.instructions
        assert 'Season: summer' in payload.instructions
        assert 'REPETITION DETECTED' not in payload.instructions
        assert payload.turn_pairs == FEW_SHOT_PAIRS
        assert payload.utterance == 'Hoe is het op je werk?'
        assert payload.params == {'temperature': 0.9, 'max_tokens': composer.settings.max_tokens, 'top_p': composer.settings.top_p}
        assert payload.context_used
        assert payload.relevant_count == 2

    def test_history_turns_follow_few_shot_pairs_oldest_first(self, composer, make_session):
        history = [_turn('en nu?', 'nu thuis', 2), _turn('waar ben je?', 'bij de bakker', 1), _turn('hoi', 'hey', 0)]

        payload = composer.compose(make_session(['hoi daar']), 'ok', None, history)

        assert payload.turn_pairs == FEW_SHOT_PAIRS + [('hoi', 'hey'), ('waar ben je?', 'bij de bakker'), ('en nu?', 'nu thuis')]
        assert not payload.context_used
        assert 'CONVERSATION HISTORY INSIGHTS:' in payload.instructions

    def test_repetition_raises_temperature_within_limit(self, composer, make_session):
        history = [_turn('Hoe gaat het?', 'goed hoor')]

        payload = composer.compose(make_session(['hoi daar']), 'hoe gaat het', None, history)

        assert payload.repetition.is_repetitive
        assert 'REPETITION DETECTED' in payload.instructions
        assert payload.params['temperature'] == 1.0

    def test_budget_keeps_newest_history_first(self, chat_settings, make_session):
        composer = ContextComposer(replace(chat_settings, max_context_chars=50), now=lambda: datetime(2024, 7, 1))
        history = [_turn('c' * 10, 'c' * 10, 2), _turn('b' * 10, 'b' * 10, 1), _turn('a' * 10, 'a' * 10, 0)]
        retrieval = RetrievalResult(memories=['m' * 20], targeted=['m' * 20])

        payload = composer.compose(make_session(['hoi daar']), 'ok', retrieval, history)

        assert payload.turn_pairs == FEW_SHOT_PAIRS + [('b' * 10, 'b' * 10), ('c' * 10, 'c' * 10)]
        # the remaining budget is too small for the memory
        assert 'No specific memories found for this topic' in payload.instructions

    def test_prompt_history_is_limited(self, chat_settings, make_session):
        composer = ContextComposer(replace(chat_settings, prompt_history_turns=2), now=lambda: datetime(2024, 7, 1))
        history = [_turn(f'vraag {i}', f'antwoord {i}', i) for i in reversed(range(5))]

        payload = composer.compose(make_session(['hoi daar']), 'ok', None, history)

        assert payload.turn_pairs[len(FEW_SHOT_PAIRS):] == [('vraag 3', 'antwoord 3'), ('vraag 4', 'antwoord 4')]
