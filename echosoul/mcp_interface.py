"""
MCP Interface Layer using fastmcp for the persona engine.
"""
from typing import Any, Dict, Optional

from fastmcp import FastMCP

from .services.chat_service import ChatService
from .services.ingestion_service import IngestionService
from .services.session_manager import InMemorySessionRegistry, ProgressStore, SessionSweeper
from .services.transcript_parser import summarize_transcript
from .services.turn_store import InMemoryTurnStore, OpenSearchTurnStore
from .utils.bedrock_embed import BedrockEmbed
from .utils.bedrock_llm import BedrockLLM
from .utils.config import config
from .utils.errors import DependencyError, EchoSoulError, ValidationError
from .utils.health_check import get_system_info
from .utils.logging_config import get_logger
from .utils.opensearch_client import OpenSearchClient

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('EchoSoul')

registry = InMemorySessionRegistry()
progress_store = ProgressStore()
vector_index = OpenSearchClient(config.opensearch)
generator = BedrockLLM(config.bedrock_llm)

ingestion_service = IngestionService(index=vector_index, generator=generator, registry=registry, progress=progress_store)
chat_service = ChatService(registry,
                           embedder=BedrockEmbed(config.bedrock_embed),
                           index=vector_index,
                           generator=generator,
                           turn_store=OpenSearchTurnStore(vector_index, config.opensearch.turn_index)
                           if config.environment == 'production' else InMemoryTurnStore())
sweeper = SessionSweeper(registry, on_evict=ingestion_service.release, progress=progress_store)


@mcp.tool()
def list_participants(transcript: str) -> Dict[str, Any]:
    """List the senders of a chat export so the caller can pick the persona.

    Args:
        transcript: Raw chat export text

    Returns:
        Participants with message counts, date range and a short preview
    """
    if not transcript or not transcript.strip():
        raise ValueError('Transcript is required')

    summary = summarize_transcript(transcript)
    logger.debug(f'MCP list_participants found {len(summary.participants)} participants')
    return summary.to_dict()


@mcp.tool()
def upload_transcript(transcript: str, participant: str, person_name: str, user_id: Optional[str] = None) -> Dict[str, str]:
    """Start building a persona from a chat export.

    Args:
        transcript: Raw chat export text
        participant: Sender name exactly as it appears in the export
        person_name: Display name of the persona
        user_id: Optional owner id

    Returns:
        session_id and upload_id; follow the upload with get_upload_progress

    Raises:
        Exception: If the request is rejected
    """
    try:
        handle = ingestion_service.start_ingestion(transcript, participant, person_name, user_id)
        return {'session_id': handle.session_id, 'upload_id': handle.upload_id, 'status': 'processing'}

    except ValidationError as e:
        logger.warning(f'Rejected upload: {e}')
        raise Exception(f'Upload rejected: {e}')


@mcp.tool()
def get_upload_progress(upload_id: str) -> Dict[str, Any]:
    """Latest ingestion progress of an upload.

    The record is released once a terminal stage (complete or error) has been read.

    Args:
        upload_id: Upload id returned by upload_transcript

    Returns:
        Progress record with stage, percent and message
    """
    record = progress_store.get(upload_id)
    if record is None:
        raise Exception(f'Upload {upload_id} not found')

    if record.stage.terminal:
        progress_store.discard(upload_id)
    return record.to_dict()


@mcp.tool()
def get_session(session_id: str) -> Dict[str, Any]:
    """Summary of a ready session.

    Args:
        session_id: Session id

    Returns:
        Session summary
    """
    try:
        return registry.require(session_id).to_summary()

    except ValidationError as e:
        raise Exception(str(e))


@mcp.tool()
def chat(session_id: str, message: str) -> Dict[str, Any]:
    """Send a message to the persona.

    Args:
        session_id: Session id
        message: User message

    Returns:
        Response with context and timing details

    Raises:
        Exception: If the session is unknown or the message is empty
    """
    try:
        return chat_service.chat(session_id, message).to_dict()

    except EchoSoulError as e:
        logger.error(f'Chat error in MCP: {e}')
        raise Exception(f'Chat failed: {e}')
    except Exception as e:
        logger.error(f'Unexpected error in MCP chat: {e}')
        raise Exception(f'Chat failed: {e}')


@mcp.tool()
def get_opening_context(session_id: str, query: Optional[str] = None, limit: int = 3) -> Dict[str, Any]:
    """Messages that could seed a conversation opener.

    Args:
        session_id: Session id
        query: Search text (defaults to a greeting in the session's languages)
        limit: Number of messages (default: 3)

    Returns:
        query, context messages and count
    """
    try:
        return chat_service.opening_context(session_id, query, limit)

    except (ValidationError, DependencyError) as e:
        logger.error(f'Opening context error in MCP: {e}')
        raise Exception(f'Failed to get context: {e}')


@mcp.tool()
def health() -> Dict[str, Any]:
    """System information and component health."""
    return get_system_info()


if __name__ == '__main__':
    sweeper.start()
    transport = config.mcp.transport
    host = config.mcp.host
    port = config.mcp.port
    mcp.run(transport=transport, host=host, port=port)
