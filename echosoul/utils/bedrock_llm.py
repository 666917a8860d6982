"""
Amazon Bedrock LLM client wrapper with retry logic and error handling.
"""

import json
import random
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..models.interfaces import GenerationProvider
from .config import BedrockLLMConfig
from .errors import ErrorKind, GenerationError, classify_client_error
from .logging_config import get_logger

logger = get_logger(__name__)


class BedrockLLMError(GenerationError):
    """Custom exception for Bedrock LLM errors."""
    pass


def build_messages(turn_pairs: List[Tuple[str, str]], new_utterance: str) -> List[Dict[str, Any]]:
    """Convert (user, assistant) pairs plus the new utterance to Converse messages."""
    messages = []
    for user_text, assistant_text in turn_pairs:
        messages.append({'role': 'user', 'content': [{'text': user_text}]})
        messages.append({'role': 'assistant', 'content': [{'text': assistant_text}]})
    messages.append({'role': 'user', 'content': [{'text': new_utterance}]})
    return messages


class BedrockLLM(GenerationProvider):
    """Amazon Bedrock LLM client with retry logic and error handling."""

    def __init__(self, config: BedrockLLMConfig, client: Any = None, sleep: Callable[[float], None] = time.sleep):
        """
        Initialize Bedrock LLM client.

        Args:
            config: BedrockLLMConfig instance with connection parameters
            client: Pre-built bedrock-runtime client (created from config if None)
            sleep: Sleep function used between retries
        """
        self.config = config
        self.model_id = config.model_id
        self.sleep = sleep

        # Create Bedrock runtime client with timeout configuration
        self.bedrock_runtime = client or boto3.client(
            'bedrock-runtime',
            region_name=config.region,
            config=BotoConfig(
                connect_timeout=600,
                read_timeout=600,
                retries={'max_attempts': 0}  # We handle retries manually
            ))

        logger.info(f'Initialized Bedrock LLM client with model: {self.model_id}')

    def generate_response(self,
                          messages: List[Dict[str, Any]],
                          system_prompt: str,
                          max_tokens: Optional[int] = None,
                          temperature: Optional[float] = None,
                          top_p: Optional[float] = None,
                          stop_sequences: Optional[List[str]] = None) -> Tuple[str, Optional[Dict[str, Any]]]:
        """
        Generate response using Bedrock LLM with retry logic.

        Args:
            messages: List of message dictionaries in Bedrock format
            system_prompt: System prompt for the conversation
            max_tokens: Maximum tokens to generate (uses config default if None)
            temperature: Temperature for generation (uses config default if None)
            top_p: Nucleus sampling mass (uses config default if None)
            stop_sequences: Stop sequences for generation

        Returns:
            Tuple of (response_text, invoke_metrics)

        Raises:
            BedrockLLMError: If all retry attempts fail
        """
        max_tokens = max_tokens or self.config.max_tokens
        temperature = self.config.temperature if temperature is None else temperature
        top_p = self.config.top_p if top_p is None else top_p
        stop_sequences = stop_sequences or []

        system = [{'text': system_prompt}]
        inf_params = {
            'maxTokens': max_tokens,
            'temperature': temperature,
            'topP': top_p,
            'stopSequences': stop_sequences,
        }

        for attempt in range(self.config.retry_attempts):
            try:
                logger.debug(f'Bedrock LLM request attempt {attempt + 1}/{self.config.retry_attempts}')

                stream = self.bedrock_runtime.converse_stream(modelId=self.model_id,
                                                              messages=messages,
                                                              system=system,
                                                              inferenceConfig=inf_params).get('stream')

                msg = ''
                invoke_metrics = None

                if stream:
                    for event in stream:
                        if 'contentBlockDelta' in event:
                            msg += event['contentBlockDelta']['delta'].get('text', '')
                        if 'metadata' in event:
                            invoke_metrics = {**event['metadata'].get('usage', {}), **event['metadata'].get('metrics', {})}

                logger.debug(f'Bedrock LLM response generated successfully (length: {len(msg)})')
                return msg, invoke_metrics

            except ClientError as e:
                kind = classify_client_error(e)
                if kind in (ErrorKind.AUTH, ErrorKind.CONFIG, ErrorKind.NOT_FOUND):
                    logger.error(f'Bedrock LLM request rejected ({kind.value}): {e}')
                    raise BedrockLLMError(f'Bedrock LLM request rejected: {e}', kind=kind)

                logger.warning(f'Bedrock LLM attempt {attempt + 1}/{self.config.retry_attempts} failed: {e}')
                if attempt < self.config.retry_attempts - 1:
                    # Exponential backoff with jitter
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    self.sleep(delay)
                else:
                    raise BedrockLLMError(f'Bedrock LLM failed after {self.config.retry_attempts} attempts: {e}', kind=kind)

            except (BotoCoreError, json.JSONDecodeError) as e:
                logger.warning(f'Bedrock LLM attempt {attempt + 1}/{self.config.retry_attempts} failed: {e}')

                if attempt < self.config.retry_attempts - 1:
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    self.sleep(delay)
                else:
                    raise BedrockLLMError(f'Bedrock LLM failed after {self.config.retry_attempts} attempts: {e}')

            except Exception as e:
                logger.error(f'Unexpected error in Bedrock LLM: {e}')
                raise BedrockLLMError(f'Unexpected Bedrock LLM error: {e}')

        raise BedrockLLMError(f'Bedrock LLM failed after {self.config.retry_attempts} attempts')

    def complete(self, instructions: str, turn_pairs: List[Tuple[str, str]], new_utterance: str, params: Dict[str, Any]) -> str:
        """
        Generate a persona reply.

        Args:
            instructions: System instructions
            turn_pairs: Few-shot and history (user, assistant) pairs, oldest first
            new_utterance: The message to answer
            params: Generation parameters (temperature, max_tokens, top_p)

        Returns:
            Response text

        Raises:
            BedrockLLMError: If generation fails
        """
        text, metrics = self.generate_response(messages=build_messages(turn_pairs, new_utterance),
                                               system_prompt=instructions,
                                               max_tokens=params.get('max_tokens'),
                                               temperature=params.get('temperature'),
                                               top_p=params.get('top_p'))
        if metrics:
            logger.debug(f'Bedrock LLM metrics: {metrics}')
        return text

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock LLM service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            test_messages = [{'role': 'user', 'content': [{'text': 'Hi'}]}]
            response, _ = self.generate_response(messages=test_messages,
                                                 system_prompt="You are a helpful assistant. Respond with just 'OK'.",
                                                 max_tokens=10,
                                                 temperature=0.0)
            return len(response.strip()) > 0

        except Exception as e:
            logger.error(f'Bedrock LLM health check failed: {e}')
            return False
