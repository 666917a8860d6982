"""
Unit tests for the Bedrock completion adapter.
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from echosoul.utils.bedrock_llm import BedrockLLM, BedrockLLMError, build_messages
from echosoul.utils.config import BedrockLLMConfig
from echosoul.utils.errors import ErrorKind, GenerationError


def _client_error(code):
    return ClientError({'Error': {'Code': code, 'Message': code}}, 'ConverseStream')


def _stream(*chunks):
    events = [{'contentBlockDelta': {'delta': {'text': chunk}}} for chunk in chunks]
    events.append({'metadata': {'usage': {'inputTokens': 12, 'outputTokens': 4}, 'metrics': {'latencyMs': 30}}})
    return {'stream': events}


@pytest.fixture
def llm_config():
    return BedrockLLMConfig(region='us-east-1',
                            model_id='anthropic.claude-3-5-sonnet-20240620-v1:0',
                            max_tokens=300,
                            temperature=0.9,
                            top_p=0.95,
                            retry_attempts=3,
                            retry_delay=0.0)


@pytest.fixture
def client():
    return MagicMock()


class TestBuildMessages:

    def test_pairs_alternate_and_end_with_user(self):
        messages = build_messages([('hoi', 'hey'), ('hoe gaat het?', 'goed')], 'en jij?')

        assert [message['role'] for message in messages] == ['user', 'assistant', 'user', 'assistant', 'user']
        assert messages[-1] == {'role': 'user', 'content': [{'text': 'en jij?'}]}


class TestComplete:

    def test_streams_text_and_passes_parameters(self, llm_config, client):
        client.converse_stream.return_value = _stream('Hoi ', 'lieverd')
        llm = BedrockLLM(llm_config, client=client)

        text = llm.complete('Je bent Mom.', [('hoi', 'hey')], 'hoe is het?', {'temperature': 1.0, 'max_tokens': 80, 'top_p': 0.9})

        assert text == 'Hoi lieverd'
        kwargs = client.converse_stream.call_args.kwargs
        assert kwargs['system'] == [{'text': 'Je bent Mom.'}]
        assert kwargs['inferenceConfig'] == {'maxTokens': 80, 'temperature': 1.0, 'topP': 0.9, 'stopSequences': []}
        assert len(kwargs['messages']) == 3

    def test_zero_temperature_is_kept(self, llm_config, client):
        client.converse_stream.return_value = _stream('Dutch')
        llm = BedrockLLM(llm_config, client=client)

        llm.complete('detect', [], 'hoi', {'temperature': 0.0, 'max_tokens': 30})

        assert client.converse_stream.call_args.kwargs['inferenceConfig']['temperature'] == 0.0

    def test_validation_error_is_not_retried(self, llm_config, client):
        client.converse_stream.side_effect = _client_error('ValidationException')
        llm = BedrockLLM(llm_config, client=client)

        with pytest.raises(GenerationError) as error:
            llm.complete('x', [], 'hoi', {})

        assert isinstance(error.value, BedrockLLMError)
        assert error.value.kind == ErrorKind.CONFIG
        assert client.converse_stream.call_count == 1

    def test_throttling_exhausts_retries(self, llm_config, client):
        client.converse_stream.side_effect = _client_error('ThrottlingException')
        sleeps = []
        llm = BedrockLLM(llm_config, client=client, sleep=sleeps.append)

        with pytest.raises(BedrockLLMError) as error:
            llm.complete('x', [], 'hoi', {})

        assert error.value.kind == ErrorKind.RATE_LIMIT
        assert client.converse_stream.call_count == 3
        assert len(sleeps) == 2

    def test_health_check(self, llm_config, client):
        client.converse_stream.return_value = _stream('OK')
        assert BedrockLLM(llm_config, client=client).health_check()

        client.converse_stream.side_effect = _client_error('AccessDeniedException')
        assert not BedrockLLM(llm_config, client=client).health_check()
