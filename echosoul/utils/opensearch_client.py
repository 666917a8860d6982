"""
OpenSearch client wrapper for per-session vector collections.
"""

import re
from typing import Any, Dict, Iterator, List, Optional

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection, helpers
from opensearchpy.exceptions import ConnectionError as OpenSearchConnectionError
from opensearchpy.exceptions import AuthenticationException, AuthorizationException, NotFoundError, OpenSearchException
from requests_aws4auth import AWS4Auth

from ..models.core import SearchHit, VectorPoint
from ..models.interfaces import VectorIndex
from .config import OpenSearchConfig
from .errors import DependencyError, ErrorKind
from .logging_config import get_logger

logger = get_logger(__name__)

SPACE_TYPES = {'cosine': 'cosinesimil', 'l2': 'l2', 'euclid': 'l2'}


class OpenSearchError(DependencyError):
    """Custom exception for OpenSearch errors."""
    pass


def _error_kind(error: Exception) -> ErrorKind:
    if isinstance(error, (AuthenticationException, AuthorizationException)):
        return ErrorKind.AUTH
    if isinstance(error, NotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(error, OpenSearchConnectionError):
        return ErrorKind.TRANSIENT
    status = getattr(error, 'status_code', None)
    if status == 429:
        return ErrorKind.RATE_LIMIT
    if status == 400:
        return ErrorKind.CONFIG
    return ErrorKind.TRANSIENT


def _is_not_found(error: OpenSearchException) -> bool:
    # OpenSearchException args: (status_code, error_type, error_info)
    return isinstance(error, NotFoundError) or (len(error.args) >= 2 and (error.args[0] == 404 or error.args[1] == 'not_found'))


class OpenSearchClient(VectorIndex):
    """OpenSearch k-NN vector index with one index per collection."""

    def __init__(self, config: OpenSearchConfig, client: Any = None):
        """
        Initialize OpenSearch client.

        Args:
            config: OpenSearchConfig instance with connection parameters
            client: Pre-built OpenSearch client (created from config if None)
        """
        self.config = config
        self.client = client or self._build_client(config)

        logger.info(f'Initialized OpenSearch client for endpoint: {config.endpoint}')

    @staticmethod
    def _build_client(config: OpenSearchConfig) -> OpenSearch:
        # Parse endpoint to get host
        endpoint = config.endpoint
        if '://' in endpoint:
            endpoint = endpoint.split('://', 1)[1]

        auth = None
        if config.use_aws_auth:
            credentials = boto3.Session().get_credentials()
            auth = AWS4Auth(region=config.region, service='aoss', refreshable_credentials=credentials)

        return OpenSearch(hosts=[{
            'host': endpoint,
            'port': config.port
        }],
                          http_auth=auth,
                          use_ssl=config.use_aws_auth,
                          verify_certs=config.use_aws_auth,
                          connection_class=RequestsHttpConnection)

    def index_name(self, collection_id: str) -> str:
        """Index names must be lowercase and free of separators OpenSearch rejects."""
        safe_id = re.sub(r'[^a-z0-9_\-]', '-', collection_id.lower())
        return f'{self.config.index_prefix}_{safe_id}'

    def _raise(self, action: str, collection_id: str, error: Exception) -> None:
        if isinstance(error, OpenSearchException):
            logger.error(f'Error during {action} on {collection_id}: {error}')
            raise OpenSearchError(f'Failed to {action}: {error}', kind=_error_kind(error), cause=error)
        logger.error(f'Unexpected error during {action} on {collection_id}: {error}')
        raise OpenSearchError(f'Unexpected error during {action}: {error}', cause=error)

    def create_collection(self, collection_id: str, vector_size: int, distance_metric: str = 'cosine') -> bool:
        """
        Create the k-NN index for a collection if it doesn't exist.

        Args:
            collection_id: Collection identifier
            vector_size: Embedding dimension
            distance_metric: 'cosine' or 'l2'

        Returns:
            True if the index was created, False if it already existed

        Raises:
            OpenSearchError: If index creation fails
        """
        index_name = self.index_name(collection_id)
        space_type = SPACE_TYPES.get(distance_metric.lower())
        if space_type is None:
            raise OpenSearchError(f'Unsupported distance metric: {distance_metric}', kind=ErrorKind.CONFIG)

        try:
            if self.client.indices.exists(index=index_name):
                logger.debug(f'Index {index_name} already exists')
                return False

            index_body = {
                'mappings': {
                    'properties': {
                        'content': {
                            'type': 'text'
                        },
                        'sender': {
                            'type': 'keyword'
                        },
                        'timestamp': {
                            'type': 'keyword'
                        },
                        'index': {
                            'type': 'integer'
                        },
                        'embedding': {
                            'type': 'knn_vector',
                            'dimension': vector_size,
                            'method': {
                                'name': 'hnsw',
                                'space_type': space_type,
                                'engine': 'nmslib'
                            }
                        }
                    }
                },
                'settings': {
                    'index': {
                        'knn': True,
                        'knn.algo_param.ef_search': 100
                    }
                }
            }

            self.client.indices.create(index=index_name, body=index_body)
            logger.info(f'Created index {index_name} ({vector_size} dims, {space_type})')
            return True

        except OpenSearchException as e:
            # Lost a creation race with another writer
            if getattr(e, 'error', '') == 'resource_already_exists_exception':
                logger.debug(f'Index {index_name} created concurrently')
                return False
            self._raise('create collection', collection_id, e)
        except Exception as e:
            self._raise('create collection', collection_id, e)

    def upsert(self, collection_id: str, points: List[VectorPoint]) -> int:
        """
        Write points to the collection, replacing documents with the same id.

        Args:
            collection_id: Collection identifier
            points: Points to write

        Returns:
            Number of points written

        Raises:
            OpenSearchError: If the bulk request fails
        """
        if not points:
            return 0

        index_name = self.index_name(collection_id)
        actions = [{
            '_op_type': 'index',
            '_index': index_name,
            '_id': point.id,
            '_source': {
                **point.payload, 'embedding': point.vector
            }
        } for point in points]

        try:
            success, errors = helpers.bulk(self.client, actions, raise_on_error=False)
            if errors:
                logger.warning(f'Bulk upsert to {index_name} had {len(errors)} failed items')
                raise OpenSearchError(f'Bulk upsert failed for {len(errors)} of {len(points)} points')

            logger.debug(f'Upserted {success} points into {index_name}')
            return success

        except OpenSearchError:
            raise
        except Exception as e:
            self._raise('upsert', collection_id, e)

    def search(self, collection_id: str, vector: List[float], top_k: int, score_threshold: Optional[float] = None) -> List[SearchHit]:
        """
        Perform vector similarity search.

        Args:
            collection_id: Collection identifier
            vector: Query vector
            top_k: Number of results to return
            score_threshold: Minimum cosine similarity (no filtering if None)

        Returns:
            Hits ordered by descending cosine similarity

        Raises:
            OpenSearchError: If the search fails
        """
        index_name = self.index_name(collection_id)
        search_body = {
            'size': top_k,
            'query': {
                'knn': {
                    'embedding': {
                        'vector': vector,
                        'k': top_k
                    }
                }
            },
            '_source': {
                'excludes': ['embedding']  # Don't return embedding in results
            }
        }

        try:
            response = self.client.search(index=index_name, body=search_body)

            hits = []
            for hit in response['hits']['hits']:
                score = self._to_similarity(hit['_score'])
                if score_threshold is not None and score < score_threshold:
                    continue
                hits.append(SearchHit(payload=hit['_source'], score=score))

            logger.debug(f'Vector search returned {len(hits)} hits from {index_name}')
            return hits

        except Exception as e:
            self._raise('search', collection_id, e)

    def _to_similarity(self, raw_score: float) -> float:
        # nmslib cosinesimil scores as 1 + cosine; l2 as 1 / (1 + distance)
        if SPACE_TYPES.get(self.config.distance_metric.lower()) == 'cosinesimil':
            return raw_score - 1.0
        return raw_score

    def delete_collection(self, collection_id: str) -> bool:
        """
        Delete a collection's index. Missing collections are not an error.

        Args:
            collection_id: Collection identifier

        Returns:
            True if an index was deleted, False if it did not exist

        Raises:
            OpenSearchError: If deletion fails
        """
        index_name = self.index_name(collection_id)
        try:
            if not self.client.indices.exists(index=index_name):
                logger.debug(f'Index {index_name} does not exist, nothing to delete')
                return False

            self.client.indices.delete(index=index_name)
            logger.info(f'Deleted index {index_name}')
            return True

        except OpenSearchException as e:
            if _is_not_found(e):
                logger.debug(f'Index {index_name} vanished before deletion')
                return False
            self._raise('delete collection', collection_id, e)
        except Exception as e:
            self._raise('delete collection', collection_id, e)

    def scroll_payloads(self, collection_id: str, batch_size: int = 500) -> Iterator[Dict[str, Any]]:
        """
        Yield every stored payload of a collection in index order.

        Args:
            collection_id: Collection identifier
            batch_size: Scroll page size

        Yields:
            Payload dictionaries without embeddings
        """
        index_name = self.index_name(collection_id)
        try:
            hits = helpers.scan(self.client,
                                index=index_name,
                                query={
                                    'query': {
                                        'match_all': {}
                                    },
                                    '_source': {
                                        'excludes': ['embedding']
                                    },
                                    'sort': [{
                                        'index': 'asc'
                                    }]
                                },
                                size=batch_size,
                                preserve_order=True)
            for hit in hits:
                yield hit['_source']
        except Exception as e:
            self._raise('scroll', collection_id, e)

    def index_document(self, index_name: str, document: Dict[str, Any], refresh: bool = False) -> None:
        """
        Store a plain (non-vector) document, creating the index on first use.

        Args:
            index_name: Full index name
            document: Document body
            refresh: Make the document searchable immediately
        """
        try:
            self.client.index(index=index_name, body=document, refresh=refresh)
        except Exception as e:
            self._raise('index document', index_name, e)

    def find_documents(self, index_name: str, field: str, value: str, sort_field: str, limit: int) -> List[Dict[str, Any]]:
        """
        Return documents whose keyword field equals value, newest first by sort_field.

        Missing indexes yield an empty list.
        """
        search_body = {
            'size': limit,
            'query': {
                'term': {
                    field: value
                }
            },
            'sort': [{
                sort_field: {
                    'order': 'desc'
                }
            }]
        }
        try:
            response = self.client.search(index=index_name, body=search_body)
            return [hit['_source'] for hit in response['hits']['hits']]
        except OpenSearchException as e:
            if _is_not_found(e):
                return []
            self._raise('find documents', index_name, e)
        except Exception as e:
            self._raise('find documents', index_name, e)

    def health_check(self) -> bool:
        """
        Perform a health check on the OpenSearch service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            response = self.client.indices.exists(index=f'{self.config.index_prefix}_health')

            return response in [True, False]

        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False
