"""
Ingestion Service: turns an uploaded transcript into a ready-to-chat session.

start_ingestion() returns immediately; the work runs on a thread pool and
publishes progress through the ProgressStore.
"""

import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..models.core import IngestionHandle, IngestionProgress, Message, ProgressStage, Session
from ..models.interfaces import EmbeddingProvider, GenerationProvider, SessionRegistry, VectorIndex
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import IngestionConfig, config
from ..utils.errors import DependencyError, EchoSoulError, GenerationError, ValidationError
from ..utils.json_utils import parse_language_list
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient
from ..utils.timestamp_utils import elapsed_ms
from .embedding_batcher import EmbeddingBatcher
from .session_manager import InMemorySessionRegistry, ProgressStore
from .transcript_parser import parse_transcript

logger = get_logger(__name__)

LANGUAGE_DETECTION_SYSTEM = 'You are a language detection expert.'
LANGUAGE_DETECTION_PROMPT = ('Detect the language(s) used in the following WhatsApp messages. Reply with a comma-separated '
                             "list of language names (in English, e.g. 'Dutch, Danish, English').\n\nMessages:\n{sample}")


def collection_id_for(session_id: str) -> str:
    return f'session_{session_id}'


class IngestionService:
    """Parses, embeds and stores a transcript, then registers the session."""

    def __init__(self,
                 embedder: Optional[EmbeddingProvider] = None,
                 index: Optional[VectorIndex] = None,
                 generator: Optional[GenerationProvider] = None,
                 registry: Optional[SessionRegistry] = None,
                 progress: Optional[ProgressStore] = None,
                 settings: Optional[IngestionConfig] = None,
                 executor: Optional[ThreadPoolExecutor] = None,
                 vector_size: Optional[int] = None,
                 distance_metric: Optional[str] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the ingestion service.

        Args:
            embedder: Embedding capability (Bedrock, single attempt per call, if None)
            index: Vector index (OpenSearch from config if None)
            generator: Completion capability used for language detection
            registry: Session registry
            progress: Progress store
            settings: IngestionConfig (uses global config if None)
            executor: Pool running background ingestions
            vector_size: Embedding dimension of new collections
            distance_metric: Distance metric of new collections
            clock: Clock for session timestamps
            sleep: Sleep function used between batch retries
        """
        self.settings = settings or config.ingestion
        # The batcher owns retries on this path
        self.embedder = embedder or BedrockEmbed(replace(config.bedrock_embed, retry_attempts=1))
        self.index = index or OpenSearchClient(config.opensearch)
        self.generator = generator or BedrockLLM(config.bedrock_llm)
        self.registry = registry or InMemorySessionRegistry()
        self.progress = progress or ProgressStore()
        self.executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix='ingest')
        self.vector_size = vector_size or config.opensearch.dimension
        self.distance_metric = distance_metric or config.opensearch.distance_metric
        self.clock = clock
        self.batcher = EmbeddingBatcher(self.embedder, self.index, self.settings, sleep=sleep)
        self._futures: Dict[str, Future] = {}

    def start_ingestion(self, text: str, participant: str, person_name: str, user_id: Optional[str] = None) -> IngestionHandle:
        """
        Start ingesting a transcript in the background.

        Args:
            text: Raw transcript export
            participant: Sender name whose messages form the persona
            person_name: Display name of the persona
            user_id: Optional owner id

        Returns:
            IngestionHandle with the new session and upload ids

        Raises:
            ValidationError: If required fields are missing
        """
        if not participant or not participant.strip() or not person_name or not person_name.strip():
            raise ValidationError('Missing required fields: participant and person_name')

        handle = IngestionHandle(session_id=str(uuid.uuid4()), upload_id=str(uuid.uuid4()))
        self.progress.update(handle.upload_id, ProgressStage.READING, 5, 'Reading and validating file...',
                             session_id=handle.session_id)

        future = self.executor.submit(self.run_ingestion, handle.session_id, handle.upload_id, text, participant.strip(),
                                      person_name.strip(), user_id)
        self._futures[handle.upload_id] = future
        future.add_done_callback(lambda _: self._futures.pop(handle.upload_id, None))

        logger.info(f'Started ingestion {handle.upload_id} for session {handle.session_id} ({person_name})')
        return handle

    def wait(self, handle: IngestionHandle, timeout: Optional[float] = None) -> Optional[Session]:
        """Block until a background ingestion finishes and return its session (None on failure)."""
        future = self._futures.get(handle.upload_id)
        if future is not None:
            future.result(timeout)
        return self.registry.get(handle.session_id)

    def _report(self, upload_id: str, session_id: str, stage: ProgressStage, percent: int, message: str, total: int = 0,
                processed: int = 0) -> IngestionProgress:
        return self.progress.update(upload_id, stage, percent, message, total_items=total, processed_items=processed,
                                    session_id=session_id)

    def run_ingestion(self,
                      session_id: str,
                      upload_id: str,
                      text: str,
                      participant: str,
                      person_name: str,
                      user_id: Optional[str] = None) -> Optional[Session]:
        """
        Run the whole ingestion synchronously.

        Failures never escape: they move the upload to the error stage and
        delete the collection if it was already created.

        Returns:
            The registered Session, or None if ingestion failed
        """
        start_time = time.monotonic()
        collection_id = collection_id_for(session_id)
        collection_created = False

        try:
            if not text or not text.strip():
                raise ValidationError('File appears to be empty')

            self._report(upload_id, session_id, ProgressStage.PARSING, 15, 'Parsing WhatsApp messages...')
            messages = parse_transcript(text, participant, self.settings.min_messages, self.settings.min_lines)
            total = len(messages)
            self._report(upload_id, session_id, ProgressStage.PARSING, 25, f'Found {total} messages', total)

            self.index.create_collection(collection_id, self.vector_size, self.distance_metric)
            collection_created = True

            self._report(upload_id, session_id, ProgressStage.ANALYZING, 30, 'Creating embeddings for AI analysis...', total)
            result = self.batcher.embed_messages(
                messages,
                on_progress=lambda processed, count: self._report(
                    upload_id, session_id, ProgressStage.ANALYZING, 30 + round(processed / count * 50),
                    f'Analyzing conversation... ({processed:,}/{count:,})', count, processed))

            self._report(upload_id, session_id, ProgressStage.FINALIZING, 85, 'Storing in vector database...', total, total)
            self.batcher.store(collection_id,
                               result.embedded,
                               on_progress=lambda done, chunks: self._report(
                                   upload_id, session_id, ProgressStage.FINALIZING, 85 + round(done / chunks * 10),
                                   f'Storing in vector database... ({done}/{chunks})', total, total))

            self._report(upload_id, session_id, ProgressStage.FINALIZING, 95, 'Finalizing session...', total, total)
            languages = self.detect_languages(messages)

            now = self.clock()
            session = Session(id=session_id,
                              person_name=person_name,
                              selected_participant=participant,
                              message_count=total,
                              collection_ref=collection_id,
                              created_at=now,
                              last_activity=now,
                              detected_languages=languages,
                              corpus=messages,
                              embedding_count=len(result.embedded),
                              embedding_warning=result.warning(self.settings.failure_warning_rate),
                              user_id=user_id)
            self.registry.put(session)

            self._report(upload_id, session_id, ProgressStage.COMPLETE, 100, 'Ready to chat!', total, total)
            logger.info(f'Ingestion {upload_id} complete: {len(result.embedded)}/{total} messages embedded in '
                        f'{elapsed_ms(start_time)}ms')
            return session

        except EchoSoulError as e:
            logger.error(f'Ingestion {upload_id} failed: {e}')
            self._fail(upload_id, session_id, str(e), collection_id if collection_created else None)
        except Exception as e:
            logger.error(f'Unexpected error during ingestion {upload_id}: {e}')
            self._fail(upload_id, session_id, f'Failed to process file: {e}', collection_id if collection_created else None)

        return None

    def _fail(self, upload_id: str, session_id: str, message: str, collection_id: Optional[str]) -> None:
        current = self.progress.get(upload_id)
        self.progress.publish(
            IngestionProgress(upload_id=upload_id,
                              stage=ProgressStage.ERROR,
                              percent=current.percent if current else 0,
                              message=message,
                              total_items=current.total_items if current else 0,
                              processed_items=current.processed_items if current else 0,
                              session_id=session_id))

        if collection_id is None:
            return
        try:
            self.index.delete_collection(collection_id)
            logger.info(f'Deleted orphaned collection {collection_id}')
        except DependencyError as e:
            logger.error(f'Failed to delete orphaned collection {collection_id}: {e}')

    def detect_languages(self, messages: List[Message]) -> List[str]:
        """
        Ask the generation capability which languages a sample of messages uses.

        Returns:
            Language names, ['unknown'] when detection fails
        """
        if not messages:
            return ['unknown']

        sample = '\n'.join(message.content for message in messages[:self.settings.language_sample_size])
        try:
            reply = self.generator.complete(LANGUAGE_DETECTION_SYSTEM, [], LANGUAGE_DETECTION_PROMPT.format(sample=sample), {
                'max_tokens': 30,
                'temperature': 0.0
            })
        except GenerationError as e:
            logger.warning(f'Language detection failed: {e}')
            return ['unknown']

        languages = parse_language_list(reply)
        logger.debug(f'Detected languages: {", ".join(languages)}')
        return languages

    def release(self, session: Session) -> None:
        """Delete the collection owned by an evicted session."""
        self.index.delete_collection(session.collection_ref)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
