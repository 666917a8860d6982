"""
Unit tests for the utterance and conversation classifiers.
"""

from echosoul.services.classifiers import (EmotionalTone, RepetitionKind, TopicCategory, analyze_utterance, classify_tone,
                                           classify_topic, conversation_trend, detect_repetition, extract_work_info,
                                           normalize_utterance)


class TestUtteranceAnalysis:

    def test_topic_categories(self):
        assert classify_topic('Ik zit nog op mijn werk') == TopicCategory.WORK
        assert classify_topic('Zullen we pizza bestellen') == TopicCategory.FOOD
        assert classify_topic('Hoe laat is het') == TopicCategory.TIMING
        assert classify_topic('mooi weer') == TopicCategory.GENERAL

    def test_tones(self):
        assert classify_tone('wat een gekkenhuis vandaag') == EmotionalTone.STRESSED
        assert classify_tone('haha leuk') == EmotionalTone.HAPPY
        assert classify_tone('ik moet ff snel weg') == EmotionalTone.BUSY
        assert classify_tone('kom je eten?') == EmotionalTone.CURIOUS
        assert classify_tone('goedemorgen') == EmotionalTone.NEUTRAL

    def test_work_stress_strategy(self):
        analysis = analyze_utterance('kut werk vandaag')
        assert analysis.tone == EmotionalTone.STRESSED
        assert analysis.topic == TopicCategory.WORK
        assert analysis.strategy == 'Acknowledge work stress, maybe relate or show understanding'

    def test_lookup_question_strategy(self):
        analysis = analyze_utterance('waar is de sleutel')
        assert analysis.strategy == "Don't ask obvious questions back - show familiarity"


class TestConversationTrend:

    def test_no_history(self):
        assert conversation_trend([]) == 'starting conversation'

    def test_many_questions(self):
        assert conversation_trend(['waar woon je?', 'hoe laat?']).startswith('avoid more basic questions')

    def test_work_stress(self):
        assert conversation_trend(['werk is echt druk', 'pff stress']) == 'work stress theme - be understanding and supportive'

    def test_natural_flow(self):
        assert conversation_trend(['mooi weer vandaag']) == 'natural conversation flow'


class TestDetectRepetition:

    def test_first_utterance_is_never_repetitive(self):
        assert not detect_repetition([], 'Hoe gaat het?').is_repetitive

    def test_identical_question_after_normalization(self):
        analysis = detect_repetition(['Hoe gaat het?'], 'hoe  gaat   het')
        assert analysis.kind == RepetitionKind.IDENTICAL_QUESTION
        assert analysis.suggestions

    def test_travel_planning(self):
        previous = ['wanneer gaan we naar Spanje?', 'wanneer gaan we weg?']
        assert detect_repetition(previous, 'wanneer gaan we naar Italie?').kind == RepetitionKind.TRAVEL_PLANNING

    def test_one_earlier_planning_question_is_fine(self):
        assert not detect_repetition(['wanneer gaan we naar Spanje?'], 'wanneer gaan we naar Italie?').is_repetitive

    def test_location_questions(self):
        previous = ['waar is het?', 'welke straat?']
        assert detect_repetition(previous, 'waar woon je nu?').kind == RepetitionKind.LOCATION_QUESTIONS

    def test_only_recent_window_counts(self):
        previous = ['hoe gaat het', 'ok', 'leuk', 'top', 'prima', 'ja']
        assert not detect_repetition(previous, 'hoe gaat het', window=5).is_repetitive
        assert detect_repetition(previous, 'hoe gaat het', window=6).is_repetitive

    def test_normalize_utterance(self):
        assert normalize_utterance('  Hoe   GAAT het?!  ') == 'hoe gaat het'


class TestExtractWorkInfo:

    def test_current_work_and_changes(self):
        info = extract_work_info(['ik werk nu bij de bakkerij', 'mooi weer', 'ik heb een nieuwe baan'])
        assert info.current_work == 'ik werk nu bij de bakkerij'
        assert info.work_changes == 'ik heb een nieuwe baan'

    def test_no_work_mentions(self):
        info = extract_work_info(['mooi weer'])
        assert info.current_work == 'Unknown'
        assert info.work_changes == 'None mentioned'
