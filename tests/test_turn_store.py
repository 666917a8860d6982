"""
Unit tests for the turn history stores.
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

from echosoul.models.core import Turn
from echosoul.services.turn_store import InMemoryTurnStore, OpenSearchTurnStore


def _turn(number, session_id='s1'):
    return Turn(session_id=session_id,
                user_message=f'vraag {number}',
                ai_response=f'antwoord {number}',
                context_used=True,
                relevant_count=number,
                processing_time_ms=10 * number,
                created_at=datetime(2024, 5, 1, 12, 0) + timedelta(minutes=number))


class TestInMemoryTurnStore:

    def test_most_recent_first_with_limit(self):
        store = InMemoryTurnStore()
        for number in range(5):
            store.append(_turn(number))
        store.append(_turn(9, session_id='other'))

        turns = store.list('s1', limit=3)

        assert [turn.user_message for turn in turns] == ['vraag 4', 'vraag 3', 'vraag 2']

    def test_unknown_session(self):
        assert InMemoryTurnStore().list('nobody', limit=5) == []


class TestOpenSearchTurnStore:

    def test_documents_round_trip(self):
        client = MagicMock()
        store = OpenSearchTurnStore(client, 'echosoul_turns')
        turn = _turn(2)

        store.append(turn)

        index_name, document = client.index_document.call_args.args
        assert index_name == 'echosoul_turns'
        assert document['created_at'] == '2024-05-01T12:02:00'
        assert client.index_document.call_args.kwargs == {'refresh': True}

        client.find_documents.return_value = [document]
        assert store.list('s1', limit=5) == [turn]
        client.find_documents.assert_called_once_with('echosoul_turns', 'session_id.keyword', 's1', 'created_at', 5)
