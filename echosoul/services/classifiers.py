"""
Keyword classifiers for live utterances and recent conversation.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..utils import lexicons as lx


class TopicCategory(str, Enum):
    WORK = 'work'
    FOOD = 'food'
    LIVING = 'living situation'
    TIMING = 'timing/schedule'
    PLANS = 'activities/plans'
    PERSONAL = 'personal'
    SOCIAL = 'social'
    GENERAL = 'general'


class EmotionalTone(str, Enum):
    STRESSED = 'stressed/frustrated'
    HAPPY = 'positive/happy'
    BUSY = 'busy/urgent'
    CURIOUS = 'curious/questioning'
    NEUTRAL = 'neutral'


class RepetitionKind(str, Enum):
    NONE = 'none'
    IDENTICAL_QUESTION = 'identical_question'
    TRAVEL_PLANNING = 'travel_planning'
    LOCATION_QUESTIONS = 'location_questions'


REPETITION_SUGGESTIONS = {
    RepetitionKind.IDENTICAL_QUESTION: [
        'User is asking the same question again. Acknowledge this with humor/memory.',
        'Reference your previous response while adding new context or details.',
        "Show continuity: 'haha je vraagt het steeds' or 'zoals ik zei...'",
        'Act like a real person who notices repeated questions.',
    ],
    RepetitionKind.TRAVEL_PLANNING: [
        "Multiple travel planning questions - show you're thinking about it actively.",
        'Reference past trips and compare to current planning.',
        'Show real-world awareness about timing, seasons, booking lead times.',
    ],
    RepetitionKind.LOCATION_QUESTIONS: [
        'Too many basic location questions - show familiarity instead.',
        "Don't ask obvious follow-up questions - act like you know them.",
        'Reference shared knowledge about places and locations.',
    ],
}

_TOPIC_PATTERNS = [
    (TopicCategory.WORK, lx.word_pattern(lx.TOPIC_WORK_WORDS)),
    (TopicCategory.FOOD, lx.word_pattern(lx.TOPIC_FOOD_WORDS)),
    (TopicCategory.LIVING, lx.word_pattern(lx.TOPIC_LIVING_WORDS)),
    (TopicCategory.TIMING, lx.word_pattern(lx.TOPIC_TIMING_WORDS)),
    (TopicCategory.PLANS, lx.word_pattern(lx.TOPIC_PLANS_WORDS)),
    (TopicCategory.PERSONAL, lx.word_pattern(lx.TOPIC_PERSONAL_WORDS)),
    (TopicCategory.SOCIAL, lx.word_pattern(lx.TOPIC_SOCIAL_WORDS)),
]

_TONE_PATTERNS = [
    (EmotionalTone.STRESSED, lx.word_pattern(lx.STRESSED_WORDS)),
    (EmotionalTone.HAPPY, lx.word_pattern(lx.POSITIVE_WORDS)),
    (EmotionalTone.BUSY, lx.word_pattern(lx.BUSY_WORDS)),
]

_TREND_PATTERNS = [(label, lx.word_pattern(words)) for label, words in lx.TREND_TOPICS]
_LOOKUP_QUESTION_PATTERN = lx.word_pattern(lx.LOOKUP_QUESTION_WORDS)


def classify_topic(utterance: str) -> TopicCategory:
    for category, pattern in _TOPIC_PATTERNS:
        if pattern.search(utterance):
            return category
    return TopicCategory.GENERAL


def classify_tone(utterance: str) -> EmotionalTone:
    for tone, pattern in _TONE_PATTERNS:
        if pattern.search(utterance):
            return tone
    if '?' in utterance:
        return EmotionalTone.CURIOUS
    return EmotionalTone.NEUTRAL


def response_strategy(utterance: str, tone: EmotionalTone, topic: TopicCategory) -> str:
    """Pick the reply strategy for an analysed utterance."""
    lower = utterance.lower()
    if tone == EmotionalTone.STRESSED:
        if topic == TopicCategory.WORK:
            return 'Acknowledge work stress, maybe relate or show understanding'
        return 'Show empathy and support, avoid interrogating'
    if tone == EmotionalTone.BUSY:
        return 'Be supportive and brief, match their energy'
    if topic == TopicCategory.TIMING:
        return 'Acknowledge the timing, maybe express concern if early/late'
    if 'regelen' in lower or 'moet ff' in lower:
        return "Show you understand they're busy, be supportive"
    if _LOOKUP_QUESTION_PATTERN.search(lower):
        return "Don't ask obvious questions back - show familiarity"
    return 'Respond naturally and show interest'


@dataclass(frozen=True)
class UtteranceAnalysis:
    tone: EmotionalTone
    topic: TopicCategory
    strategy: str


def analyze_utterance(utterance: str) -> UtteranceAnalysis:
    tone = classify_tone(utterance)
    topic = classify_topic(utterance)
    return UtteranceAnalysis(tone=tone, topic=topic, strategy=response_strategy(utterance, tone, topic))


def trend_topic(utterance: str) -> str:
    for label, pattern in _TREND_PATTERNS:
        if pattern.search(utterance):
            return label
    return 'general'


def conversation_trend(recent_utterances: Sequence[str]) -> str:
    """
    Summarize where the last few user utterances are heading.

    Args:
        recent_utterances: User utterances, oldest first

    Returns:
        One-line trend description
    """
    if not recent_utterances:
        return 'starting conversation'

    recent = list(recent_utterances)[-3:]
    topics = [trend_topic(text) for text in recent]

    if sum(1 for text in recent if '?' in text) >= 2:
        return "avoid more basic questions - they're sharing info, be supportive"
    if 'work' in topics and any(lx.STRESS_TREND_PATTERN.search(text) for text in recent):
        return 'work stress theme - be understanding and supportive'
    if topics.count('question') > 1:
        return "discussing logistics - don't ask more obvious questions"
    return 'natural conversation flow'


@dataclass
class RepetitionAnalysis:
    kind: RepetitionKind = RepetitionKind.NONE
    suggestions: List[str] = field(default_factory=list)

    @property
    def is_repetitive(self) -> bool:
        return self.kind != RepetitionKind.NONE


def normalize_utterance(text: str) -> str:
    """Lowercase, collapse whitespace and drop trailing punctuation."""
    return re.sub(r'\s+', ' ', text.lower()).strip().rstrip('?!. ')


def _is_planning_question(lower: str) -> bool:
    return lx.PLANNING_TRIGGER in lower and any(word in lower for word in lx.PLANNING_MOTION_WORDS)


def _is_location_question(lower: str) -> bool:
    return any(word in lower for word in lx.LOCATION_QUESTION_WORDS)


def detect_repetition(previous_utterances: Sequence[str], utterance: str, window: int = 5) -> RepetitionAnalysis:
    """
    Detect repetitive questioning in the last `window` user utterances.

    Args:
        previous_utterances: Earlier user utterances, oldest first
        utterance: The new utterance
        window: Number of previous utterances to inspect

    Returns:
        RepetitionAnalysis with mitigation suggestions when flagged
    """
    if not previous_utterances:
        return RepetitionAnalysis()

    recent = [text.lower() for text in list(previous_utterances)[-window:]]
    current = utterance.lower()

    normalized = normalize_utterance(current)
    if any(normalize_utterance(text) == normalized for text in recent):
        kind: Optional[RepetitionKind] = RepetitionKind.IDENTICAL_QUESTION
    elif _is_planning_question(current) and sum(1 for text in recent if _is_planning_question(text)) >= 2:
        kind = RepetitionKind.TRAVEL_PLANNING
    elif _is_location_question(current) and sum(1 for text in recent if _is_location_question(text)) >= 2:
        kind = RepetitionKind.LOCATION_QUESTIONS
    else:
        kind = None

    if kind is None:
        return RepetitionAnalysis()
    return RepetitionAnalysis(kind=kind, suggestions=list(REPETITION_SUGGESTIONS[kind]))


@dataclass(frozen=True)
class WorkInfo:
    current_work: str = 'Unknown'
    work_changes: str = 'None mentioned'


def extract_work_info(recent_utterances: Sequence[str]) -> WorkInfo:
    """Latest work mention and any hinted job change among recent user utterances."""
    work = [text for text in recent_utterances if any(word in text.lower() for word in lx.WORK_MENTION_WORDS)][-5:]
    if not work:
        return WorkInfo()

    current = [text for text in work if any(word in text.lower() for word in lx.WORK_CURRENT_WORDS)]
    changes = [text for text in work if any(word in text.lower() for word in lx.WORK_CHANGE_WORDS)]
    return WorkInfo(current_work=current[-1] if current else 'Unknown',
                    work_changes=', '.join(changes) if changes else 'None mentioned')
