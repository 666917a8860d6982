"""
Chat Service: answers a live utterance as the session's persona.

Every failure below the request degrades to a fallback reply: an utterance
that cannot be embedded gets a keyword reply, a failed or late completion gets
a canned empathetic reply with a warning.
"""

import random
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..models.core import ChatResult, Message, Session, Turn
from ..models.interfaces import EmbeddingProvider, GenerationProvider, SessionRegistry, TurnStore, VectorIndex
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import ChatConfig, config
from ..utils.errors import DependencyError, GenerationError, ValidationError
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient
from ..utils.timestamp_utils import elapsed_ms
from .context_composer import (EMPTY_COMPLETION_RESPONSE, ContextComposer, canned_failure_response, fallback_for_utterance,
                               post_process)
from .memory_retriever import MemoryRetriever
from .style_profiler import StyleProfile, build_style_profile
from .turn_store import InMemoryTurnStore

logger = get_logger(__name__)

NO_CONTEXT_WARNING = 'Responded without context due to technical issues'
GENERATION_WARNING = 'AI service temporarily unavailable - responded with care message'
DEADLINE_WARNING = 'Response took too long - responded with care message'

GREETING_SYSTEM = 'You are a WhatsApp user.'
GREETING_PROMPT = 'Write a short, informal WhatsApp greeting in {languages}. Only output the greeting, nothing else.'
DEFAULT_GREETING = 'hello'


@dataclass
class _Reply:
    response: str
    context_used: bool = False
    relevant_count: int = 0
    warning: Optional[str] = None
    repetition_kind: Optional[str] = None


class ChatService:
    """Runs one chat turn end to end under a deadline."""

    def __init__(self,
                 registry: SessionRegistry,
                 embedder: Optional[EmbeddingProvider] = None,
                 index: Optional[VectorIndex] = None,
                 generator: Optional[GenerationProvider] = None,
                 turn_store: Optional[TurnStore] = None,
                 retriever: Optional[MemoryRetriever] = None,
                 composer: Optional[ContextComposer] = None,
                 settings: Optional[ChatConfig] = None,
                 rng: Optional[random.Random] = None,
                 executor: Optional[ThreadPoolExecutor] = None,
                 clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the chat service.

        Args:
            registry: Session registry
            embedder: Embedding capability (Bedrock from config if None)
            index: Vector index (OpenSearch from config if None)
            generator: Completion capability (Bedrock from config if None)
            turn_store: Turn history store
            retriever: Memory retriever
            composer: Context composer
            settings: ChatConfig (uses global config if None)
            rng: Random source for style samples and canned replies
            executor: Pool running turns under the deadline
            clock: Clock for activity timestamps
        """
        self.registry = registry
        self.settings = settings or config.chat
        self.rng = rng or random.Random()
        self.embedder = embedder or BedrockEmbed(config.bedrock_embed)
        self.index = index or OpenSearchClient(config.opensearch)
        self.generator = generator or BedrockLLM(config.bedrock_llm)
        self.turn_store = turn_store or InMemoryTurnStore()
        self.retriever = retriever or MemoryRetriever(self.embedder, self.index, rng=self.rng)
        self.composer = composer or ContextComposer(self.settings)
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix='chat')
        self.clock = clock

    def chat(self, session_id: str, utterance: str) -> ChatResult:
        """
        Answer an utterance as the session's persona.

        Args:
            session_id: Target session
            utterance: User message

        Returns:
            ChatResult

        Raises:
            ValidationError: For an empty utterance
            SessionNotFoundError: If the session is unknown or expired
        """
        start_time = time.monotonic()
        if not isinstance(utterance, str) or not utterance.strip():
            raise ValidationError('Message must be a non-empty string')

        session = self.registry.touch(session_id)
        logger.info(f'Chat request for {session.person_name}: "{utterance[:50]}"')

        history = self._load_history(session_id)
        future = self.executor.submit(self._respond, session, utterance, history)
        try:
            reply = future.result(timeout=self.settings.deadline_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(f'Chat turn for {session_id} exceeded {self.settings.deadline_seconds}s deadline')
            reply = _Reply(response=canned_failure_response(self.rng), warning=DEADLINE_WARNING)

        result = ChatResult(response=reply.response,
                            context_used=reply.context_used,
                            relevant_count=reply.relevant_count,
                            history_count=len(history),
                            processing_time_ms=elapsed_ms(start_time),
                            warning=reply.warning,
                            repetition_kind=reply.repetition_kind)
        self._record(session, utterance, result)

        logger.info(f'Chat response generated in {result.processing_time_ms}ms '
                    f'({result.relevant_count} examples, {result.history_count} history turns)')
        return result

    def _load_history(self, session_id: str) -> List[Turn]:
        try:
            return self.turn_store.list(session_id, self.settings.history_limit)
        except DependencyError as e:
            logger.warning(f'Failed to load conversation history for {session_id}: {e}')
            return []

    def _respond(self, session: Session, utterance: str, history: List[Turn]) -> _Reply:
        try:
            query_vector = self.embedder.embed(utterance)
        except DependencyError as e:
            logger.warning(f'Failed to embed utterance for {session.id}, answering without context: {e}')
            return _Reply(response=fallback_for_utterance(utterance), warning=NO_CONTEXT_WARNING)

        try:
            corpus = self.corpus_for(session)
            retrieval = self.retriever.retrieve(session.collection_ref, utterance, corpus, query_vector=query_vector)
        except DependencyError as e:
            logger.warning(f'Retrieval failed for {session.id}, answering without memories: {e}')
            corpus, retrieval = [], None
        if corpus:
            self.profile_for(session)
        payload = self.composer.compose(session, utterance, retrieval, history)

        try:
            text = self.generator.complete(payload.instructions, payload.turn_pairs, payload.utterance, payload.params)
        except GenerationError as e:
            logger.error(f'Generation failed for {session.id}: {e}')
            return _Reply(response=canned_failure_response(self.rng),
                          context_used=payload.context_used,
                          relevant_count=payload.relevant_count,
                          warning=GENERATION_WARNING,
                          repetition_kind=payload.repetition.kind.value)

        response = post_process(text, self.settings.max_response_chars) or EMPTY_COMPLETION_RESPONSE
        logger.debug(f'Response: {response} (repetition: {payload.repetition.kind.value})')
        return _Reply(response=response,
                      context_used=payload.context_used,
                      relevant_count=payload.relevant_count,
                      repetition_kind=payload.repetition.kind.value)

    def _record(self, session: Session, utterance: str, result: ChatResult) -> None:
        turn = Turn(session_id=session.id,
                    user_message=utterance,
                    ai_response=result.response,
                    context_used=result.context_used,
                    relevant_count=result.relevant_count,
                    processing_time_ms=result.processing_time_ms,
                    created_at=self.clock())
        try:
            self.turn_store.append(turn)
        except DependencyError as e:
            logger.warning(f'Failed to save turn for {session.id}: {e}')
            return

        with self.registry.lock_for(session.id):
            session.turn_count += 1
            session.last_activity = self.clock()

    def corpus_for(self, session: Session) -> List[Message]:
        """The session corpus, reloaded from its collection when not held in memory."""
        if session.corpus:
            return session.corpus

        with self.registry.lock_for(session.id):
            if not session.corpus:
                payloads = self.index.scroll_payloads(session.collection_ref)
                session.corpus = [
                    Message(content=payload['content'], sender=payload.get('sender', ''), timestamp=payload.get('timestamp', ''))
                    for payload in payloads
                ]
                logger.info(f'Reloaded {len(session.corpus)} messages for session {session.id}')
        return session.corpus

    def profile_for(self, session: Session) -> Optional[StyleProfile]:
        """The session's style profile, computed once and cached."""
        with self.registry.lock_for(session.id):
            if session.style_profile is None:
                session.style_profile = build_style_profile(self.corpus_for(session))
                logger.debug(f'Computed style profile for session {session.id}')
            return session.style_profile

    def generate_greeting(self, languages: Optional[List[str]]) -> str:
        names = ', '.join(languages) if languages else 'the original language'
        try:
            greeting = self.generator.complete(GREETING_SYSTEM, [], GREETING_PROMPT.format(languages=names), {
                'max_tokens': 30,
                'temperature': 0.5
            })
        except GenerationError as e:
            logger.warning(f'Greeting generation failed: {e}')
            return DEFAULT_GREETING
        return (greeting or '').strip() or DEFAULT_GREETING

    def opening_context(self, session_id: str, query: Optional[str] = None, limit: int = 3) -> Dict[str, Any]:
        """
        Messages to seed a conversation opener.

        Args:
            session_id: Target session
            query: Search text (a greeting in the session languages if None)
            limit: Number of messages

        Returns:
            Dictionary with query, context and count

        Raises:
            SessionNotFoundError: If the session is unknown or expired
            DependencyError: If the query cannot be embedded or searched
        """
        session = self.registry.touch(session_id)
        query = query or self.generate_greeting(session.detected_languages)
        vector = self.embedder.embed(query)
        hits = self.index.search(session.collection_ref, vector, limit)
        context = [hit.content for hit in hits]
        return {'query': query, 'context': context, 'count': len(context)}

    def history(self, session_id: str, limit: Optional[int] = None) -> List[Turn]:
        self.registry.require(session_id)
        return self.turn_store.list(session_id, limit or self.settings.history_limit)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
