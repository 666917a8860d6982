"""
Embedding Batcher: turns parsed messages into stored vectors.
"""

import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from ..models.core import EmbeddedMessage, Message, VectorPoint
from ..models.interfaces import EmbeddingProvider, VectorIndex
from ..utils.config import IngestionConfig, config
from ..utils.errors import DependencyError, ErrorKind
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

# on_progress(processed, total)
ProgressCallback = Callable[[int, int], None]


@dataclass
class BatchResult:
    """Outcome of embedding a message list."""
    embedded: List[EmbeddedMessage] = field(default_factory=list)
    failures: int = 0
    total: int = 0

    @property
    def failure_rate(self) -> float:
        return self.failures / self.total if self.total else 0.0

    def warning(self, threshold: float) -> bool:
        return self.failure_rate > threshold


class EmbeddingBatcher:
    """Embeds messages in fixed-size batches with whole-batch retry and an individual fallback."""

    def __init__(self,
                 embedder: EmbeddingProvider,
                 index: Optional[VectorIndex] = None,
                 settings: Optional[IngestionConfig] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the batcher.

        Args:
            embedder: Embedding capability
            index: Vector index used by store()
            settings: IngestionConfig (uses global config if None)
            sleep: Sleep function used between retries
        """
        self.embedder = embedder
        self.index = index
        self.settings = settings or config.ingestion
        self.sleep = sleep

    def _backoff(self, error: DependencyError, attempt: int) -> float:
        if error.kind == ErrorKind.RATE_LIMIT:
            return self.settings.rate_limit_delay * (attempt + 1)
        return self.settings.retry_delay * (2**attempt) + random.uniform(0, 0.5)

    def _embed_batch_with_retry(self, texts: List[str], batch_no: int) -> Optional[List[List[float]]]:
        """
        Embed one batch, retrying the whole batch on retryable errors.

        Config and not-found rejections skip the remaining attempts; they may
        come from a single bad message, which the individual fallback isolates.

        Returns:
            Vectors, or None when the batch should fall back to individual embedding

        Raises:
            DependencyError: On auth errors
        """
        attempts = self.settings.batch_retry_attempts
        for attempt in range(attempts):
            try:
                vectors = self.embedder.embed_batch(texts)
                if len(vectors) != len(texts):
                    raise DependencyError(f'Embedding provider returned {len(vectors)} vectors for {len(texts)} texts')
                return vectors
            except DependencyError as e:
                if e.kind == ErrorKind.AUTH:
                    logger.error(f'Batch {batch_no} failed with auth error: {e}')
                    raise
                if not e.retryable:
                    logger.warning(f'Batch {batch_no} rejected ({e.kind.value}), isolating the offending messages: {e}')
                    return None
                logger.warning(f'Batch {batch_no} attempt {attempt + 1}/{attempts} failed ({e.kind.value}): {e}')
                if attempt < attempts - 1:
                    self.sleep(self._backoff(e, attempt))

        return None

    def _embed_individually(self, batch: List[Message], batch_no: int, start: int) -> Tuple[List[EmbeddedMessage], int]:
        """
        Embed each message of a failed batch on its own.

        Raises:
            DependencyError: On auth errors, or when every message fails with the same non-retryable kind
        """
        embedded = []
        errors: List[DependencyError] = []
        for position, message in enumerate(batch, start):
            try:
                vector = self.embedder.embed_batch([message.content])[0]
                embedded.append(EmbeddedMessage(message=message, vector=vector, index=position))
            except DependencyError as e:
                if e.kind == ErrorKind.AUTH:
                    raise
                errors.append(e)
                logger.warning(f'Batch {batch_no}: message could not be embedded individually ({e.kind.value}): {e}')

        # A uniform non-retryable rejection of the whole batch is a model or configuration fault
        if not embedded and errors and len({e.kind for e in errors}) == 1 and not errors[0].retryable:
            logger.error(f'Batch {batch_no}: every message rejected with {errors[0].kind.value}')
            raise errors[-1]

        logger.info(f'Batch {batch_no} individual fallback recovered {len(embedded)}/{len(batch)} messages')
        return embedded, len(errors)

    def _process_batch(self, batch: List[Message], batch_no: int, start: int) -> Tuple[List[EmbeddedMessage], int]:
        vectors = self._embed_batch_with_retry([message.content for message in batch], batch_no)
        if vectors is None:
            logger.warning(f'Batch {batch_no} failed as a whole, falling back to individual embedding')
            return self._embed_individually(batch, batch_no, start)
        return [
            EmbeddedMessage(message=message, vector=vector, index=start + offset)
            for offset, (message, vector) in enumerate(zip(batch, vectors))
        ], 0

    def embed_messages(self, messages: List[Message], on_progress: Optional[ProgressCallback] = None) -> BatchResult:
        """
        Embed messages in batches of batch_size.

        Args:
            messages: Messages to embed
            on_progress: Called with (processed, total) after each batch

        Returns:
            BatchResult with embedded messages in input order and the failure count

        Raises:
            DependencyError: On auth errors, a batch rejected message by message for the same
                non-retryable reason, or if no vector was produced at all
        """
        total = len(messages)
        batch_size = max(1, self.settings.batch_size)
        batches = [messages[start:start + batch_size] for start in range(0, total, batch_size)]
        logger.info(f'Embedding {total} messages in {len(batches)} batches of {batch_size}')

        results: List[Optional[Tuple[List[EmbeddedMessage], int]]] = [None] * len(batches)
        processed = 0
        lock = threading.Lock()

        def run(batch_index: int) -> None:
            nonlocal processed
            outcome = self._process_batch(batches[batch_index], batch_index + 1, batch_index * batch_size)
            with lock:
                results[batch_index] = outcome
                processed += len(batches[batch_index])
                if on_progress:
                    on_progress(processed, total)

        workers = max(1, self.settings.embed_workers)
        if workers == 1:
            for batch_index in range(len(batches)):
                run(batch_index)
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='embed') as executor:
                # result() re-raises the first worker failure
                for future in [executor.submit(run, batch_index) for batch_index in range(len(batches))]:
                    future.result()

        result = BatchResult(total=total)
        for embedded, failures in results:
            result.embedded.extend(embedded)
            result.failures += failures

        if not result.embedded:
            raise DependencyError('Failed to create any embeddings. Please check the embedding service configuration.')

        if result.warning(self.settings.failure_warning_rate):
            logger.warning(f'High embedding failure rate: {result.failures}/{total} ({result.failure_rate:.0%})')
        else:
            logger.info(f'Embedded {len(result.embedded)}/{total} messages ({result.failures} failures)')
        return result

    def store(self, collection_id: str, embedded: List[EmbeddedMessage], on_progress: Optional[ProgressCallback] = None) -> int:
        """
        Upsert embedded messages in chunks of upsert_chunk_size.

        Args:
            collection_id: Target collection
            embedded: Embedded messages, in corpus order
            on_progress: Called with (chunks_done, chunk_count) after each chunk

        Returns:
            Number of points written
        """
        if self.index is None:
            raise DependencyError('No vector index configured for storage', kind=ErrorKind.CONFIG)

        chunk_size = max(1, self.settings.upsert_chunk_size)
        chunks = [embedded[start:start + chunk_size] for start in range(0, len(embedded), chunk_size)]
        written = 0

        for chunk_no, chunk in enumerate(chunks):
            points = [
                VectorPoint(id=item.id, vector=item.vector, payload={
                    **item.message.to_payload(), 'index': item.index
                }) for item in chunk
            ]
            written += self.index.upsert(collection_id, points)
            logger.debug(f'Stored chunk {chunk_no + 1}/{len(chunks)} in {collection_id}')
            if on_progress:
                on_progress(chunk_no + 1, len(chunks))

        logger.info(f'Stored {written} vectors in {collection_id}')
        return written
