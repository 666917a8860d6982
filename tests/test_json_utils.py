"""
Unit tests for LLM reply parsing helpers.
"""

from echosoul.utils.json_utils import clean_json_response, parse_language_list


class TestCleanJsonResponse:

    def test_strips_fences(self):
        assert clean_json_response('```json\n["Dutch"]\n```') == '["Dutch"]'
        assert clean_json_response('```\n["Dutch"]```') == '["Dutch"]'

    def test_plain_text_untouched(self):
        assert clean_json_response('  Dutch, English ') == 'Dutch, English'


class TestParseLanguageList:

    def test_json_list(self):
        assert parse_language_list('["Dutch", "English"]') == ['Dutch', 'English']

    def test_comma_separated_reply(self):
        assert parse_language_list('Dutch, English.') == ['Dutch', 'English']

    def test_duplicates_removed_in_order(self):
        assert parse_language_list('```json\n["English", "Dutch", "English"]\n```') == ['English', 'Dutch']

    def test_empty_reply_uses_default(self):
        assert parse_language_list('') == ['unknown']
        assert parse_language_list(None, default='Dutch') == ['Dutch']
