"""
Unit tests for the style profiler.
"""

from echosoul.models.core import Message
from echosoul.services.style_profiler import build_style_profile, describe_communication_patterns, render_style_guidance


def _corpus(*texts):
    return [Message(content=text, sender='Mom', timestamp='2023-03-01T08:00:00') for text in texts]


class TestBuildStyleProfile:

    def test_empty_corpus_has_no_profile(self):
        assert build_style_profile([]) is None

    def test_length_and_punctuation_statistics(self):
        profile = build_style_profile(_corpus('ja', 'hoe gaat het?', 'ik ben er bijna, tot zo'))

        assert profile.total_messages == 3
        assert profile.length.avg_characters == 13
        assert profile.length.avg_words == 3
        assert profile.length.median_characters == 13
        assert profile.length.shortest == 2
        assert profile.length.longest == 23
        assert profile.length.very_short_percent == 33
        assert profile.length.short_percent == 67
        assert profile.punctuation.question_marks_per_message == 0.33
        assert profile.punctuation.messages_without_punctuation_percent == 67

    def test_questions_and_replies(self):
        profile = build_style_profile(_corpus('ja', 'hoe gaat het?', 'ik ben er bijna, tot zo'))

        assert profile.questions.question_frequency == 33
        assert profile.questions.open_ended == ['hoe gaat het?']
        assert profile.questions.question_style == 'direct'
        assert profile.content.yes_no_responses == 1
        assert profile.typing.capitalization_style == 'mostly_lowercase'

    def test_most_used_words_need_three_occurrences(self):
        profile = build_style_profile(_corpus('lekker eten', 'lekker weer', 'lekker slapen', 'weer thuis'))
        assert profile.lexical.most_used_words == ['lekker(3)']

    def test_profile_is_deterministic(self):
        texts = ('haha ja echt', 'Goedemorgen! Hoe gaat het?', 'weet je nog toen we samen gingen', 'ff regelen ofzo',
                 'werk was druk vandaag', 'love you')
        corpus = _corpus(*texts)

        first = build_style_profile(corpus).to_dict()
        second = build_style_profile(list(corpus)).to_dict()

        assert first == second
        assert [message.content for message in corpus] == list(texts)


class TestRenderStyleGuidance:

    def test_no_profile_renders_nothing(self):
        assert render_style_guidance(None) == ''

    def test_guidance_carries_statistics_and_insights(self):
        guidance = render_style_guidance(build_style_profile(_corpus('ja', 'hoe gaat het?', 'ik ben er bijna, tot zo')))

        assert guidance.startswith('STATISTICAL PROFILE - MATCH THESE EXACT PATTERNS:')
        assert '- Average message: 13 characters (3 words)' in guidance
        assert '- 67% of messages have NO ending punctuation' in guidance
        assert 'VERY SHORT messages frequently' in guidance
        assert 'rarely uses ending punctuation' in guidance


class TestDescribeCommunicationPatterns:

    def test_nothing_to_describe(self):
        assert describe_communication_patterns([]) is None
        assert describe_communication_patterns(['  ', '']) is None

    def test_short_unpunctuated_messages(self):
        description = describe_communication_patterns(['ja', 'ok top'])

        assert description.startswith('MESSAGE LENGTH: very short (avg 1.5 words)')
        assert '- Uses very brief messages (1-3 words typically)' in description
        assert '- Often uses incomplete sentences without punctuation' in description
