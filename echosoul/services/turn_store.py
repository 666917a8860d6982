"""
Turn history stores.
"""

import threading
from collections import defaultdict
from datetime import datetime
from typing import Dict, List

from ..models.core import Turn
from ..models.interfaces import TurnStore
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient

logger = get_logger(__name__)


class InMemoryTurnStore(TurnStore):
    """Process-local turn history."""

    def __init__(self):
        self._turns: Dict[str, List[Turn]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(self, turn: Turn) -> None:
        with self._lock:
            self._turns[turn.session_id].append(turn)

    def list(self, session_id: str, limit: int) -> List[Turn]:
        with self._lock:
            turns = list(self._turns.get(session_id, []))
        return list(reversed(turns))[:limit]


class OpenSearchTurnStore(TurnStore):
    """Turn history kept as plain documents in one dynamically mapped OpenSearch index."""

    def __init__(self, client: OpenSearchClient, index_name: str):
        """
        Initialize the store.

        Args:
            client: OpenSearchClient adapter
            index_name: Index holding turn documents
        """
        self.client = client
        self.index_name = index_name

    @staticmethod
    def _to_document(turn: Turn) -> Dict:
        return {
            'session_id': turn.session_id,
            'user_message': turn.user_message,
            'ai_response': turn.ai_response,
            'context_used': turn.context_used,
            'relevant_count': turn.relevant_count,
            'processing_time_ms': turn.processing_time_ms,
            'created_at': turn.created_at.isoformat()
        }

    @staticmethod
    def _from_document(document: Dict) -> Turn:
        return Turn(session_id=document['session_id'],
                    user_message=document['user_message'],
                    ai_response=document['ai_response'],
                    context_used=document.get('context_used', False),
                    relevant_count=document.get('relevant_count', 0),
                    processing_time_ms=document.get('processing_time_ms', 0),
                    created_at=datetime.fromisoformat(document['created_at']))

    def append(self, turn: Turn) -> None:
        self.client.index_document(self.index_name, self._to_document(turn), refresh=True)
        logger.debug(f'Stored turn for session {turn.session_id}')

    def list(self, session_id: str, limit: int) -> List[Turn]:
        documents = self.client.find_documents(self.index_name, 'session_id.keyword', session_id, 'created_at', limit)
        return [self._from_document(document) for document in documents]
