"""
Health check utilities for the application.
"""

from typing import Any, Callable, Dict

from .bedrock_embed import BedrockEmbed
from .bedrock_llm import BedrockLLM
from .config import config
from .logging_config import get_logger
from .opensearch_client import OpenSearchClient

logger = get_logger(__name__)


def check_health() -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status()

        # Check if all components are healthy
        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All system components are healthy')
        else:
            logger.warning('Some system components are unhealthy')

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def _probe(name: str, service: str, factory: Callable[[], Any], **details: str) -> Dict[str, Any]:
    try:
        healthy = factory().health_check()
    except Exception as e:
        logger.error(f'{service} probe failed: {e}')
        return {'healthy': False, 'service': service, 'error': str(e)}

    if not healthy:
        logger.warning(f'{name} is unhealthy')
    return {'healthy': healthy, 'service': service, **details}


def get_health_status() -> Dict[str, Any]:
    """Get detailed health status of all components.

    Returns:
        Dictionary with health status of each component
    """
    return {
        'bedrock_llm': _probe('bedrock_llm', 'Amazon Bedrock LLM', lambda: BedrockLLM(config.bedrock_llm),
                              model=config.bedrock_llm.model_id),
        'bedrock_embed': _probe('bedrock_embed', 'Amazon Bedrock Embed', lambda: BedrockEmbed(config.bedrock_embed),
                                model=config.bedrock_embed.model_id),
        'opensearch': _probe('opensearch', 'Amazon OpenSearch', lambda: OpenSearchClient(config.opensearch),
                             endpoint=config.opensearch.endpoint),
    }


def get_system_info() -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    return {
        'service_name': 'EchoSoul',
        'version': '0.1.0',
        'configuration': {
            'bedrock_llm_model': config.bedrock_llm.model_id,
            'bedrock_embed_model': config.bedrock_embed.model_id,
            'embedding_dimension': config.bedrock_embed.dimension,
            'session_ttl_hours': config.session.ttl_hours,
            'aws_region': config.bedrock_llm.region
        },
        'health_status': get_health_status()
    }
