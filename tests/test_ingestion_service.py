"""
Tests for transcript ingestion, including an end-to-end upload and chat.
"""

import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime

import pytest

from echosoul.models.core import Message, ProgressStage
from echosoul.services.chat_service import ChatService
from echosoul.services.context_composer import ContextComposer
from echosoul.services.ingestion_service import IngestionService, collection_id_for
from echosoul.services.memory_retriever import MemoryRetriever
from echosoul.services.session_manager import InMemorySessionRegistry, ProgressStore
from echosoul.services.turn_store import InMemoryTurnStore
from echosoul.utils.errors import GenerationError, ValidationError


class RecordingProgressStore(ProgressStore):
    """ProgressStore that keeps every stored record."""

    def __init__(self):
        super().__init__()
        self.history = []

    def publish(self, progress):
        record = super().publish(progress)
        self.history.append(record)
        return record


def _mom_transcript(transcript, lines=500):
    entries = []
    for i in range(lines):
        if i % 2:
            entries.append(('Alex', f'Alex zegt iets over dag {i}'))
        elif i % 20 == 0:
            entries.append(('Mom', f'Ik sta weer in de bakkerij, dag {i}'))
        else:
            entries.append(('Mom', f'Lieverd, hoe is het met je, bericht {i}'))
    return transcript(entries)


@pytest.fixture
def registry(clock):
    return InMemorySessionRegistry(clock)


@pytest.fixture
def progress():
    return RecordingProgressStore()


@pytest.fixture
def ingestion(embedder, index, generator, registry, progress, ingestion_settings, clock):
    settings = replace(ingestion_settings, batch_size=50, upsert_chunk_size=100, min_messages=10, min_lines=5)
    service = IngestionService(embedder=embedder,
                               index=index,
                               generator=generator,
                               registry=registry,
                               progress=progress,
                               settings=settings,
                               executor=ThreadPoolExecutor(max_workers=1),
                               vector_size=embedder.dimension,
                               distance_metric='cosine',
                               clock=clock,
                               sleep=lambda _: None)
    yield service
    service.shutdown()


class TestEndToEnd:

    def test_upload_then_chat_with_direct_match_fallback(self, ingestion, registry, progress, embedder, index, generator,
                                                         transcript, chat_settings, retrieval_settings, clock):
        generator.replies = ['Dutch, English']

        handle = ingestion.start_ingestion(_mom_transcript(transcript), 'Mom', 'Mom', user_id='u-1')
        session = ingestion.wait(handle, timeout=30)

        assert session is not None
        assert session.id == handle.session_id
        assert session.message_count == 250
        assert session.embedding_count == 250
        assert not session.embedding_warning
        assert session.detected_languages == ['Dutch', 'English']
        assert session.user_id == 'u-1'
        assert registry.get(handle.session_id) is session
        assert len(index.collections[collection_id_for(handle.session_id)]) == 250

        final = progress.get(handle.upload_id)
        assert final.stage == ProgressStage.COMPLETE
        assert final.percent == 100
        percents = [record.percent for record in progress.history]
        assert percents == sorted(percents)
        assert percents[0] == 5

        # Vector thresholds nobody can reach leave only literal corpus matches
        unreachable = replace(retrieval_settings,
                              broad_score_threshold=1.01,
                              topic_score_threshold=1.01,
                              contextual_score_threshold=1.01)
        rng = random.Random(0)
        chat = ChatService(registry,
                           embedder=embedder,
                           index=index,
                           generator=generator,
                           turn_store=InMemoryTurnStore(),
                           retriever=MemoryRetriever(embedder, index, unreachable, rng=rng),
                           composer=ContextComposer(chat_settings, now=lambda: datetime(2024, 5, 1)),
                           settings=chat_settings,
                           rng=rng,
                           clock=clock)
        try:
            result = chat.chat(session.id, 'Hoe was het in de bakkerij?')
        finally:
            chat.shutdown()

        assert result.context_used
        assert result.relevant_count > 0
        assert 'Ik sta weer in de bakkerij, dag 0' in generator.calls[-1]['instructions']


class TestFailures:

    def test_missing_participant_fails_before_any_embedding(self, ingestion, progress, embedder, index, transcript):
        text = transcript([('Alex', f'Alex bericht nummer {i}') for i in range(20)])

        handle = ingestion.start_ingestion(text, 'Mom', 'Mom')
        assert ingestion.wait(handle, timeout=30) is None

        record = progress.get(handle.upload_id)
        assert record.stage == ProgressStage.ERROR
        assert record.message == 'No messages found for "Mom". Please check the name spelling.'
        assert embedder.calls == []
        assert index.collections == {}

    def test_embedding_outage_removes_collection(self, ingestion, progress, embedder, index, transcript):
        embedder.broken = True
        text = transcript([('Mom', f'Mom bericht nummer {i}') for i in range(20)])

        session = ingestion.run_ingestion('s9', 'up9', text, 'Mom', 'Mom')

        assert session is None
        assert progress.get('up9').stage == ProgressStage.ERROR
        assert index.collections == {}
        assert index.deleted == [collection_id_for('s9')]

    def test_empty_file(self, ingestion, progress):
        assert ingestion.run_ingestion('s9', 'up9', '  ', 'Mom', 'Mom') is None
        assert progress.get('up9').message == 'File appears to be empty'

    def test_missing_fields_rejected_synchronously(self, ingestion):
        with pytest.raises(ValidationError):
            ingestion.start_ingestion('text', '  ', 'Mom')


class TestBackgroundWork:

    def test_finished_ingestions_are_not_retained(self, ingestion, registry, transcript):
        handles = [ingestion.start_ingestion(_mom_transcript(transcript, lines=40), 'Mom', f'Mom {i}') for i in range(5)]
        ingestion.shutdown()

        assert ingestion._futures == {}
        assert all(registry.get(handle.session_id) is not None for handle in handles)

    def test_wait_after_completion_still_returns_the_session(self, ingestion, transcript):
        handle = ingestion.start_ingestion(_mom_transcript(transcript, lines=40), 'Mom', 'Mom')
        ingestion.shutdown()

        session = ingestion.wait(handle, timeout=30)

        assert session is not None
        assert session.id == handle.session_id


class TestLanguageDetection:

    def test_unknown_when_generation_fails(self, ingestion, generator):
        generator.error = GenerationError('down')
        assert ingestion.detect_languages([Message(content='hoi', sender='Mom', timestamp='')]) == ['unknown']

    def test_fenced_json_reply(self, ingestion, generator):
        generator.replies = ['```json\n["Dutch"]\n```']
        assert ingestion.detect_languages([Message(content='hoi', sender='Mom', timestamp='')]) == ['Dutch']
