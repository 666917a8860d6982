"""
Configuration management for AWS services and application settings.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {'1', 'true', 't', 'yes', 'y'}


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    top_p: float
    retry_attempts: int
    retry_delay: float


@dataclass
class BedrockEmbedConfig:
    """Configuration for Amazon Bedrock Embed service."""
    region: str
    model_id: str
    dimension: int
    retry_attempts: int
    retry_delay: float
    rate_limit_delay: float
    max_input_chars: int


@dataclass
class OpenSearchConfig:
    """Configuration for OpenSearch."""
    endpoint: str
    port: int
    region: str
    index_prefix: str
    dimension: int
    distance_metric: str
    use_aws_auth: bool
    turn_index: str


@dataclass
class IngestionConfig:
    """Configuration for transcript ingestion."""
    batch_size: int
    upsert_chunk_size: int
    batch_retry_attempts: int
    retry_delay: float
    rate_limit_delay: float
    failure_warning_rate: float
    min_messages: int
    min_lines: int
    embed_workers: int
    language_sample_size: int


@dataclass
class RetrievalConfig:
    """Configuration for memory retrieval."""
    broad_top_k: int
    broad_score_threshold: float
    broad_cap: int
    topic_top_k: int
    topic_score_threshold: float
    topic_max_distance: float
    per_topic_cap: int
    contextual_top_k: int
    contextual_score_threshold: float
    contextual_max_distance: float
    contextual_cap: int
    direct_match_cap: int
    targeted_cap: int
    max_total: int
    search_workers: int


@dataclass
class ChatConfig:
    """Configuration for the live chat path."""
    history_limit: int
    prompt_history_turns: int
    repetition_window: int
    max_response_chars: int
    max_context_chars: int
    max_voice_examples: int
    max_memories_in_prompt: int
    deadline_seconds: float
    base_temperature: float
    repetition_temperature: float
    max_temperature: float
    max_tokens: int
    top_p: float
    location: str
    hemisphere: str


@dataclass
class SessionConfig:
    """Configuration for session lifetime."""
    ttl_hours: float
    sweep_interval_minutes: float
    progress_retention_minutes: float = 60.0


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_llm: BedrockLLMConfig
    bedrock_embed: BedrockEmbedConfig
    opensearch: OpenSearchConfig
    ingestion: IngestionConfig
    retrieval: RetrievalConfig
    chat: ChatConfig
    session: SessionConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock configuration
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-5-sonnet-20240620-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '300')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.9')),
                                          top_p=float(os.getenv('BEDROCK_LLM_TOP_P', '0.95')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '3')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')))

    # Bedrock Embed configuration
    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v2:0'),
                                              dimension=int(os.getenv('BEDROCK_EMBED_DIMENSION', '1024')),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '0.5')),
                                              rate_limit_delay=float(os.getenv('BEDROCK_EMBED_RATE_LIMIT_DELAY', '2.0')),
                                              max_input_chars=int(os.getenv('BEDROCK_EMBED_MAX_INPUT_CHARS', '8000')))

    # Vector search configuration
    opensearch_config = OpenSearchConfig(endpoint=os.getenv('OPENSEARCH_ENDPOINT', 'localhost'),
                                         port=int(os.getenv('OPENSEARCH_PORT', '443')),
                                         region=os.getenv('OPENSEARCH_AWS_REGION', 'us-east-1'),
                                         index_prefix=os.getenv('OPENSEARCH_INDEX_PREFIX', 'echosoul'),
                                         dimension=int(os.getenv('OPENSEARCH_DIMENSION', '1024')),
                                         distance_metric=os.getenv('OPENSEARCH_DISTANCE_METRIC', 'cosine'),
                                         use_aws_auth=_env_bool('OPENSEARCH_USE_AWS_AUTH', 'true'),
                                         turn_index=os.getenv('OPENSEARCH_TURN_INDEX', 'echosoul_turns'))

    # Ingestion configuration
    ingestion_config = IngestionConfig(batch_size=int(os.getenv('INGESTION_BATCH_SIZE', '100')),
                                       upsert_chunk_size=int(os.getenv('INGESTION_UPSERT_CHUNK_SIZE', '100')),
                                       batch_retry_attempts=int(os.getenv('INGESTION_BATCH_RETRY_ATTEMPTS', '3')),
                                       retry_delay=float(os.getenv('INGESTION_RETRY_DELAY', '1.0')),
                                       rate_limit_delay=float(os.getenv('INGESTION_RATE_LIMIT_DELAY', '3.0')),
                                       failure_warning_rate=float(os.getenv('INGESTION_FAILURE_WARNING_RATE', '0.3')),
                                       min_messages=int(os.getenv('INGESTION_MIN_MESSAGES', '10')),
                                       min_lines=int(os.getenv('INGESTION_MIN_LINES', '5')),
                                       embed_workers=int(os.getenv('INGESTION_EMBED_WORKERS', '1')),
                                       language_sample_size=int(os.getenv('INGESTION_LANGUAGE_SAMPLE_SIZE', '10')))

    # Retrieval configuration
    retrieval_config = RetrievalConfig(broad_top_k=int(os.getenv('RETRIEVAL_BROAD_TOP_K', '15')),
                                       broad_score_threshold=float(os.getenv('RETRIEVAL_BROAD_SCORE_THRESHOLD', '0.5')),
                                       broad_cap=int(os.getenv('RETRIEVAL_BROAD_CAP', '8')),
                                       topic_top_k=int(os.getenv('RETRIEVAL_TOPIC_TOP_K', '15')),
                                       topic_score_threshold=float(os.getenv('RETRIEVAL_TOPIC_SCORE_THRESHOLD', '0.5')),
                                       topic_max_distance=float(os.getenv('RETRIEVAL_TOPIC_MAX_DISTANCE', '0.5')),
                                       per_topic_cap=int(os.getenv('RETRIEVAL_PER_TOPIC_CAP', '5')),
                                       contextual_top_k=int(os.getenv('RETRIEVAL_CONTEXTUAL_TOP_K', '12')),
                                       contextual_score_threshold=float(os.getenv('RETRIEVAL_CONTEXTUAL_SCORE_THRESHOLD', '0.45')),
                                       contextual_max_distance=float(os.getenv('RETRIEVAL_CONTEXTUAL_MAX_DISTANCE', '0.55')),
                                       contextual_cap=int(os.getenv('RETRIEVAL_CONTEXTUAL_CAP', '6')),
                                       direct_match_cap=int(os.getenv('RETRIEVAL_DIRECT_MATCH_CAP', '10')),
                                       targeted_cap=int(os.getenv('RETRIEVAL_TARGETED_CAP', '15')),
                                       max_total=int(os.getenv('RETRIEVAL_MAX_TOTAL', '20')),
                                       search_workers=int(os.getenv('RETRIEVAL_SEARCH_WORKERS', '4')))

    # Chat configuration
    chat_config = ChatConfig(history_limit=int(os.getenv('CHAT_HISTORY_LIMIT', '15')),
                             prompt_history_turns=int(os.getenv('CHAT_PROMPT_HISTORY_TURNS', '8')),
                             repetition_window=int(os.getenv('CHAT_REPETITION_WINDOW', '5')),
                             max_response_chars=int(os.getenv('CHAT_MAX_RESPONSE_CHARS', '500')),
                             max_context_chars=int(os.getenv('CHAT_MAX_CONTEXT_CHARS', '6000')),
                             max_voice_examples=int(os.getenv('CHAT_MAX_VOICE_EXAMPLES', '12')),
                             max_memories_in_prompt=int(os.getenv('CHAT_MAX_MEMORIES_IN_PROMPT', '8')),
                             deadline_seconds=float(os.getenv('CHAT_DEADLINE_SECONDS', '45')),
                             base_temperature=float(os.getenv('CHAT_BASE_TEMPERATURE', '0.9')),
                             repetition_temperature=float(os.getenv('CHAT_REPETITION_TEMPERATURE', '1.1')),
                             max_temperature=float(os.getenv('CHAT_MAX_TEMPERATURE', '1.0')),
                             max_tokens=int(os.getenv('CHAT_MAX_TOKENS', '80')),
                             top_p=float(os.getenv('CHAT_TOP_P', '0.95')),
                             location=os.getenv('CHAT_LOCATION', ''),
                             hemisphere=os.getenv('CHAT_HEMISPHERE', 'north'))

    # Session configuration
    session_config = SessionConfig(ttl_hours=float(os.getenv('SESSION_TTL_HOURS', '24')),
                                   sweep_interval_minutes=float(os.getenv('SESSION_SWEEP_INTERVAL_MINUTES', '60')),
                                   progress_retention_minutes=float(os.getenv('SESSION_PROGRESS_RETENTION_MINUTES', '60')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_llm=bedrock_llm_config,
                     bedrock_embed=bedrock_embed_config,
                     opensearch=opensearch_config,
                     ingestion=ingestion_config,
                     retrieval=retrieval_config,
                     chat=chat_config,
                     session=session_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
