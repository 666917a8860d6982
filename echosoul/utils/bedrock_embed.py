"""
Amazon Bedrock embedding client wrapper with retry logic and error handling.
"""

import json
import random
import time
from typing import Any, Callable, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..models.interfaces import EmbeddingProvider
from .config import BedrockEmbedConfig
from .errors import DependencyError, ErrorKind, classify_client_error
from .lexicons import DIRECTIONAL_MARKS
from .logging_config import get_logger

logger = get_logger(__name__)

# Cohere accepts at most 96 texts per invoke_model call
COHERE_MAX_BATCH = 96

_STRIP_MARKS = str.maketrans('', '', DIRECTIONAL_MARKS)


class BedrockEmbedError(DependencyError):
    """Custom exception for Bedrock embedding errors."""
    pass


def sanitize_text(text: str, max_chars: int) -> str:
    """Strip directional marks, trim and clamp to the provider input limit."""
    return (text or '').translate(_STRIP_MARKS).strip()[:max_chars]


class BedrockEmbed(EmbeddingProvider):
    """Amazon Bedrock embedding client with retry logic and error handling."""

    def __init__(self, config: BedrockEmbedConfig, client: Any = None, sleep: Callable[[float], None] = time.sleep):
        """
        Initialize Bedrock embedding client.

        Args:
            config: BedrockEmbedConfig instance with connection parameters
            client: Pre-built bedrock-runtime client (created from config if None)
            sleep: Sleep function used between retries
        """
        self.config = config
        self.model_id = config.model_id
        self.output_embedding_length = config.dimension
        self.sleep = sleep

        if 'cohere' in self.model_id.lower() and self.output_embedding_length != 1024:
            raise BedrockEmbedError(f'Cohere models only support 1024 dimensions, got {self.output_embedding_length}',
                                    kind=ErrorKind.CONFIG)

        # Create Bedrock runtime client
        self.bedrock = client or boto3.client(service_name='bedrock-runtime', region_name=config.region)

        logger.info(f'Initialized Bedrock Embed client with model: {self.model_id}')

    @property
    def is_cohere(self) -> bool:
        return 'cohere' in self.model_id.lower()

    def _retry_delay(self, kind: ErrorKind, attempt: int) -> float:
        if kind == ErrorKind.RATE_LIMIT:
            return self.config.rate_limit_delay * (attempt + 1)
        # Exponential backoff with jitter
        return self.config.retry_delay * (2**attempt) + random.uniform(0, 1)

    def _call_with_retry(self, data: Dict[str, Any], attempts: Optional[int] = None) -> Dict[str, Any]:
        """
        Make a Bedrock API call with retry logic.

        Args:
            data: Request data dictionary
            attempts: Number of attempts (uses config default if None)

        Returns:
            Response dictionary from Bedrock API

        Raises:
            BedrockEmbedError: If the call fails with a non-retryable error or all attempts fail
        """
        attempts = attempts or self.config.retry_attempts
        body = json.dumps(data)

        for attempt in range(attempts):
            try:
                logger.debug(f'Bedrock Embed request attempt {attempt + 1}/{attempts}')

                accept = 'application/json'
                content_type = 'application/json'
                response = self.bedrock.invoke_model(body=body, modelId=self.model_id, accept=accept, contentType=content_type)

                result = json.loads(response.get('body').read())
                logger.debug('Bedrock Embed request successful')
                return result

            except ClientError as e:
                kind = classify_client_error(e)
                if kind in (ErrorKind.AUTH, ErrorKind.CONFIG, ErrorKind.NOT_FOUND):
                    logger.error(f'Bedrock Embed request rejected ({kind.value}): {e}')
                    raise BedrockEmbedError(f'Bedrock Embed request rejected: {e}', kind=kind, cause=e)

                logger.warning(f'Bedrock Embed attempt {attempt + 1}/{attempts} failed ({kind.value}): {e}')
                if attempt < attempts - 1:
                    self.sleep(self._retry_delay(kind, attempt))
                else:
                    raise BedrockEmbedError(f'Bedrock Embed failed after {attempts} attempts: {e}', kind=kind, cause=e)

            except BotoCoreError as e:
                logger.warning(f'Bedrock Embed attempt {attempt + 1}/{attempts} failed: {e}')
                if attempt < attempts - 1:
                    self.sleep(self._retry_delay(ErrorKind.TRANSIENT, attempt))
                else:
                    raise BedrockEmbedError(f'Bedrock Embed failed after {attempts} attempts: {e}', cause=e)

            except Exception as e:
                logger.error(f'Unexpected error in Bedrock Embed: {e}')
                raise BedrockEmbedError(f'Unexpected Bedrock Embed error: {e}', cause=e)

        raise BedrockEmbedError(f'Bedrock Embed failed after {attempts} attempts')

    def _embed_one(self, text: str, input_type: str, attempts: Optional[int] = None) -> List[float]:
        if self.is_cohere:
            response = self._call_with_retry({'input_type': input_type, 'texts': [text]}, attempts)
            embeddings = response.get('embeddings') or []
            if not embeddings:
                raise BedrockEmbedError('Bedrock Embed returned no embeddings')
            return embeddings[0]

        if 'titan' in self.model_id.lower():
            response = self._call_with_retry({'inputText': text, 'dimensions': self.output_embedding_length}, attempts)
            embedding = response.get('embedding')
            if not embedding:
                raise BedrockEmbedError('Bedrock Embed returned no embedding')
            return embedding

        raise BedrockEmbedError(f'Unsupported embedding model: {self.model_id}', kind=ErrorKind.CONFIG)

    def embed(self, text: str, input_type: str = 'search_query', attempts: Optional[int] = None) -> List[float]:
        """
        Generate an embedding for a single text.

        Args:
            text: Text to embed
            input_type: Cohere input type ('search_query' or 'search_document')
            attempts: Number of attempts (uses config default if None)

        Returns:
            List of embedding values

        Raises:
            BedrockEmbedError: If embedding generation fails
        """
        clean = sanitize_text(text, self.config.max_input_chars)
        if not clean:
            raise BedrockEmbedError('Cannot embed empty text', kind=ErrorKind.CONFIG)
        return self._embed_one(clean, input_type, attempts)

    def embed_batch(self, texts: List[str], input_type: str = 'search_document', attempts: Optional[int] = None) -> List[List[float]]:
        """
        Generate embeddings for several texts, preserving order.

        Cohere models embed up to 96 texts per call; Titan embeds one text per call.

        Args:
            texts: Texts to embed
            input_type: Cohere input type
            attempts: Number of attempts per call (uses config default if None)

        Returns:
            One vector per input text

        Raises:
            BedrockEmbedError: If any call fails
        """
        clean = [sanitize_text(text, self.config.max_input_chars) for text in texts]
        if any(not text for text in clean):
            raise BedrockEmbedError('Cannot embed empty text', kind=ErrorKind.CONFIG)

        if not self.is_cohere:
            return [self._embed_one(text, input_type, attempts) for text in clean]

        vectors = []
        for start in range(0, len(clean), COHERE_MAX_BATCH):
            chunk = clean[start:start + COHERE_MAX_BATCH]
            response = self._call_with_retry({'input_type': input_type, 'texts': chunk}, attempts)
            embeddings = response.get('embeddings') or []
            if len(embeddings) != len(chunk):
                raise BedrockEmbedError(f'Bedrock Embed returned {len(embeddings)} embeddings for {len(chunk)} texts')
            vectors.extend(embeddings)

        logger.debug(f'Embedded batch of {len(clean)} texts')
        return vectors

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock embedding service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            test_embedding = self.embed('test', attempts=1)
            return len(test_embedding) == self.output_embedding_length

        except Exception as e:
            logger.error(f'Bedrock Embed health check failed: {e}')
            return False
