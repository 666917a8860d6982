"""
Style Profiler: deterministic statistical fingerprint of a participant's messages.

Everything here is a pure function of the message list. Collections are
ordered and de-duplication keeps first-seen order, so identical corpora give
identical profiles.
"""

import math
import re
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..models.core import Message
from ..utils import lexicons as lx


def _round(value: float) -> int:
    """Round half up, independent of banker's rounding."""
    return int(math.floor(value + 0.5))


def _round2(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


def _percent(count: int, total: int) -> int:
    return _round(count / total * 100) if total else 0


def _unique(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))


def _first_words(text: str, count: int = 2) -> str:
    return ' '.join(text.split(' ')[:count])


@dataclass
class LengthStats:
    avg_characters: int
    avg_words: int
    median_characters: int
    shortest: int
    longest: int
    very_short_percent: int
    short_percent: int
    medium_percent: int
    long_percent: int


@dataclass
class PunctuationStats:
    question_marks_per_message: float
    exclamation_marks_per_message: float
    periods_per_message: float
    ellipses_per_message: float
    commas_per_message: float
    messages_without_punctuation_percent: int


@dataclass
class LexicalStats:
    unique_words: int
    vocabulary_richness: float
    most_used_words: List[str]


@dataclass
class PatternStats:
    emoji_usage_percent: int
    laughter_usage_percent: int
    caps_usage_percent: int
    abbreviation_usage_percent: int
    question_messages_percent: int
    one_word_messages_percent: int


@dataclass
class ContentStats:
    greeting_messages: int
    yes_no_responses: int
    very_casual_responses: int


@dataclass
class PersonalityPatterns:
    enthusiasm_level: int
    humor_indicators: List[str]
    address_terms: List[str]
    conversation_starters: List[str]
    agreement_patterns: List[str]


@dataclass
class ConversationFlow:
    typical_greetings: List[str]
    topic_transitions: List[str]
    conversation_enders: List[str]


@dataclass
class UniqueExpressions:
    signature_phrases: List[str]
    reaction_words: List[str]
    intensifiers: List[str]


@dataclass
class TypingStyle:
    capitalization_style: str
    casual_spellings: List[str]


@dataclass
class MessageClustering:
    sends_multiple_messages: bool
    typical_burst_size: int


@dataclass
class TopicLanguage:
    work_phrases: List[str]
    work_formality: str
    personal_phrases: List[str]
    social_phrases: List[str]


@dataclass
class EmotionalPatterns:
    happy: List[str]
    excited: List[str]
    sad: List[str]
    frustrated: List[str]


@dataclass
class ReferencePatterns:
    memory_frequency: int
    memory_starters: List[str]
    shared_experiences: List[str]
    nostalgia_level: str


@dataclass
class QuestionPatterns:
    question_frequency: int
    yes_no: List[str]
    open_ended: List[str]
    check_ins: List[str]
    choice_based: List[str]
    question_style: str
    typical_starters: List[str]


@dataclass
class StyleProfile:
    """Statistical fingerprint of a message corpus."""
    total_messages: int
    length: LengthStats
    punctuation: PunctuationStats
    lexical: LexicalStats
    patterns: PatternStats
    content: ContentStats
    personality: PersonalityPatterns
    flow: ConversationFlow
    expressions: UniqueExpressions
    typing: TypingStyle
    clustering: MessageClustering
    topics: TopicLanguage
    emotions: EmotionalPatterns
    references: ReferencePatterns
    questions: QuestionPatterns

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _length_stats(contents: Sequence[str]) -> LengthStats:
    n = len(contents)
    lengths = [len(content) for content in contents]
    word_counts = [len(content.split()) for content in contents]
    return LengthStats(avg_characters=_round(sum(lengths) / n),
                       avg_words=_round(sum(word_counts) / n),
                       median_characters=sorted(lengths)[n // 2],
                       shortest=min(lengths),
                       longest=max(lengths),
                       very_short_percent=_percent(sum(1 for length in lengths if length <= 10), n),
                       short_percent=_percent(sum(1 for length in lengths if 10 < length <= 30), n),
                       medium_percent=_percent(sum(1 for length in lengths if 30 < length <= 100), n),
                       long_percent=_percent(sum(1 for length in lengths if length > 100), n))


def _punctuation_stats(contents: Sequence[str], all_text: str) -> PunctuationStats:
    n = len(contents)
    return PunctuationStats(
        question_marks_per_message=_round2(all_text.count('?') / n),
        exclamation_marks_per_message=_round2(all_text.count('!') / n),
        periods_per_message=_round2(all_text.count('.') / n),
        ellipses_per_message=_round2(len(re.findall(r'\.{2,}', all_text)) / n),
        commas_per_message=_round2(all_text.count(',') / n),
        messages_without_punctuation_percent=_percent(sum(1 for content in contents if not re.search(r'[.!?]$', content)), n))


def _lexical_stats(words: Sequence[str]) -> LexicalStats:
    frequencies = Counter(words)
    stopwords = set(lx.STOPWORDS)
    # Counter keeps first-seen order, and sorted() is stable for equal counts
    ranked = sorted(frequencies.items(), key=lambda item: -item[1])
    significant = [(word, freq) for word, freq in ranked if word not in stopwords and len(word) > 2 and freq > 2]
    return LexicalStats(unique_words=len(frequencies),
                        vocabulary_richness=_round2(len(frequencies) / len(words)) if words else 0.0,
                        most_used_words=[f'{word}({freq})' for word, freq in significant[:10]])


def _rate(contents: Sequence[str], pattern) -> int:
    return _percent(sum(1 for content in contents if pattern.search(content)), len(contents))


def _pattern_stats(contents: Sequence[str]) -> PatternStats:
    n = len(contents)
    return PatternStats(emoji_usage_percent=_rate(contents, lx.EMOJI_PATTERN),
                        laughter_usage_percent=_rate(contents, lx.LAUGHTER_PATTERN),
                        caps_usage_percent=_rate(contents, lx.CAPS_PATTERN),
                        abbreviation_usage_percent=_rate(contents, lx.ABBREVIATION_PATTERN),
                        question_messages_percent=_percent(sum(1 for content in contents if '?' in content), n),
                        one_word_messages_percent=_percent(sum(1 for content in contents if len(content.split()) == 1), n))


def _content_stats(contents: Sequence[str]) -> ContentStats:
    return ContentStats(greeting_messages=sum(1 for content in contents if lx.GREETING_PATTERN.search(content)),
                        yes_no_responses=sum(1 for content in contents if lx.BARE_REPLY_PATTERN.match(content.strip())),
                        very_casual_responses=sum(1 for content in contents if 0 < len(content.strip()) <= 5))


def _personality(contents: Sequence[str], lower_text: str) -> PersonalityPatterns:
    n = len(contents)
    return PersonalityPatterns(
        enthusiasm_level=_round(len(lx.ENTHUSIASM_PATTERN.findall(lower_text)) / n * 100),
        humor_indicators=_unique(content.lower() for content in contents if lx.HUMOR_PATTERN.search(content))[:5],
        address_terms=_unique(match.lower() for match in lx.ADDRESS_PATTERN.findall(lower_text)),
        conversation_starters=_unique(
            _first_words(content) for content in contents if lx.STARTER_PATTERN.match(content.strip()))[:5],
        agreement_patterns=_unique(match.lower() for match in lx.AGREEMENT_PATTERN.findall(lower_text))[:3])


def _flow(contents: Sequence[str]) -> ConversationFlow:
    return ConversationFlow(
        typical_greetings=_unique(content.lower() for content in contents if lx.FLOW_GREETING_PATTERN.match(content))[:3],
        topic_transitions=_unique(_first_words(content) for content in contents if lx.TRANSITION_PATTERN.match(content))[:3],
        conversation_enders=_unique(content.lower() for content in contents if lx.ENDER_PATTERN.match(content))[:3])


def _expressions(lower_words: Sequence[str]) -> UniqueExpressions:
    frequencies = Counter(lower_words)
    bigrams = Counter(phrase for phrase in (f'{a} {b}' for a, b in zip(lower_words, lower_words[1:])) if len(phrase) > 4)
    signature = [phrase for phrase, count in sorted(bigrams.items(), key=lambda item: -item[1]) if count >= 3][:5]
    return UniqueExpressions(signature_phrases=signature,
                             reaction_words=[word for word in lx.REACTION_WORDS if frequencies[word] >= 2],
                             intensifiers=[word for word in lx.INTENSIFIERS if frequencies[word] >= 2])


def _casual_spellings(lower: str) -> List[str]:
    found = []
    for spelling in lx.CASUAL_SPELLINGS:
        # two-letter forms only count as standalone tokens
        if len(spelling) == 2:
            if f'{spelling} ' in lower or f' {spelling}' in lower:
                found.append(spelling)
        elif spelling in lower:
            found.append(spelling)
    return found


def _typing(contents: Sequence[str]) -> TypingStyle:
    n = len(contents)
    proper = sum(1 for content in contents if re.match(r'^[A-Z]', content))
    all_lower = sum(1 for content in contents if content == content.lower())
    if all_lower / n > 0.8:
        style = 'mostly_lowercase'
    elif proper / n > 0.8:
        style = 'proper'
    else:
        style = 'mixed'
    return TypingStyle(capitalization_style=style,
                       casual_spellings=_unique(spelling for content in contents for spelling in _casual_spellings(content.lower())))


def _clustering(contents: Sequence[str]) -> MessageClustering:
    very_short = sum(1 for content in contents if len(content) < 10)
    multiple = very_short / len(contents) > 0.3
    return MessageClustering(sends_multiple_messages=multiple, typical_burst_size=2 if multiple else 1)


def _matching_lower(contents: Sequence[str], pattern) -> List[str]:
    return [content.lower() for content in contents if pattern.search(content)]


def _topics(contents: Sequence[str]) -> TopicLanguage:
    work = [content for content in contents if lx.WORK_PATTERN.search(content)]
    formality = 'casual'
    if work:
        formal = sum(1 for content in work if lx.FORMAL_PATTERN.search(content))
        formality = 'formal' if formal / len(work) > 0.3 else 'casual'
    return TopicLanguage(work_phrases=_unique(content.lower() for content in work)[:3],
                         work_formality=formality,
                         personal_phrases=_unique(_matching_lower(contents, lx.PERSONAL_PATTERN))[:3],
                         social_phrases=_unique(_matching_lower(contents, lx.SOCIAL_PATTERN))[:3])


def _emotions(contents: Sequence[str]) -> EmotionalPatterns:
    happy = [text for text in _unique(_matching_lower(contents, lx.HAPPY_PATTERN)) if len(text) < 50]
    return EmotionalPatterns(happy=happy[:5],
                             excited=_unique(_matching_lower(contents, lx.EXCITED_PATTERN))[:3],
                             sad=_unique(_matching_lower(contents, lx.SAD_PATTERN))[:3],
                             frustrated=_unique(_matching_lower(contents, lx.FRUSTRATED_PATTERN))[:3])


def _memory_starter(content: str) -> str:
    words = content.lower().split(' ')
    for position, word in enumerate(words):
        if lx.MEMORY_STARTER_PATTERN.search(word):
            return ' '.join(words[position:position + 2])
    return ''


def _references(contents: Sequence[str]) -> ReferencePatterns:
    memory_messages = [content for content in contents if lx.MEMORY_PATTERN.search(content)]
    frequency = _percent(len(memory_messages), len(contents))
    if frequency > 15:
        level = 'high'
    elif frequency > 5:
        level = 'moderate'
    else:
        level = 'low'
    starters = [starter for starter in _unique(_memory_starter(content) for content in memory_messages) if starter]
    return ReferencePatterns(memory_frequency=frequency,
                             memory_starters=starters[:3],
                             shared_experiences=_unique(_matching_lower(contents, lx.SHARED_PATTERN))[:3],
                             nostalgia_level=level)


def _questions(contents: Sequence[str]) -> QuestionPatterns:
    questions = [content for content in contents if '?' in content]
    buckets: Dict[str, List[str]] = {'yes_no': [], 'open_ended': [], 'check_ins': [], 'choice_based': []}

    for content in questions:
        lower = content.lower()
        if lx.YES_NO_QUESTION_PATTERN.match(lower):
            buckets['yes_no'].append(lower)
        elif lx.OPEN_QUESTION_PATTERN.match(lower):
            buckets['open_ended'].append(lower)
        elif lx.CHECK_IN_PATTERN.match(lower):
            buckets['check_ins'].append(lower)
        elif ' of ' in lower or ' or ' in lower:
            buckets['choice_based'].append(lower)

    style = 'direct'
    if questions:
        direct = sum(1 for content in questions if len(content.split(' ')) <= 4)
        style = 'direct' if direct / len(questions) > 0.6 else 'elaborate'

    return QuestionPatterns(question_frequency=_percent(len(questions), len(contents)),
                            yes_no=buckets['yes_no'][:2],
                            open_ended=buckets['open_ended'][:2],
                            check_ins=buckets['check_ins'][:2],
                            choice_based=buckets['choice_based'][:2],
                            question_style=style,
                            typical_starters=_unique(_first_words(content.lower()) for content in questions)[:5])


def build_style_profile(messages: Sequence[Message]) -> Optional[StyleProfile]:
    """
    Compute the style profile of a corpus.

    Args:
        messages: Parsed messages of one participant

    Returns:
        StyleProfile, or None for an empty corpus
    """
    if not messages:
        return None

    contents = [message.content for message in messages]
    all_text = ' '.join(contents)
    lower_text = all_text.lower()
    lower_words = lower_text.split()

    return StyleProfile(total_messages=len(contents),
                        length=_length_stats(contents),
                        punctuation=_punctuation_stats(contents, all_text),
                        lexical=_lexical_stats(lower_words),
                        patterns=_pattern_stats(contents),
                        content=_content_stats(contents),
                        personality=_personality(contents, lower_text),
                        flow=_flow(contents),
                        expressions=_expressions(lower_words),
                        typing=_typing(contents),
                        clustering=_clustering(contents),
                        topics=_topics(contents),
                        emotions=_emotions(contents),
                        references=_references(contents),
                        questions=_questions(contents))


def render_style_guidance(profile: Optional[StyleProfile]) -> str:
    """
    Render the profile as instructions for the generation model.

    Args:
        profile: StyleProfile or None

    Returns:
        Multi-line guidance text, empty for no profile
    """
    if profile is None:
        return ''

    length, punct, patterns = profile.length, profile.punctuation, profile.patterns
    lines = [
        'STATISTICAL PROFILE - MATCH THESE EXACT PATTERNS:', '', 'MESSAGE LENGTH TARGETS:',
        f'- Average message: {length.avg_characters} characters ({length.avg_words} words)',
        f'- Most common length: {length.median_characters} characters',
        f'- Very short messages (<=10 chars): {length.very_short_percent}% of all messages',
        f'- Short messages (11-30 chars): {length.short_percent}% of all messages',
        f'- Medium messages (31-100 chars): {length.medium_percent}% of all messages',
        f'- Long messages (>100 chars): {length.long_percent}% of all messages', '', 'PUNCTUATION PATTERNS TO COPY:',
        f'- {punct.messages_without_punctuation_percent}% of messages have NO ending punctuation',
        f'- Question marks per message: {punct.question_marks_per_message}',
        f'- Exclamation marks per message: {punct.exclamation_marks_per_message}',
        f'- Uses ellipses {punct.ellipses_per_message} times per message on average', '', 'EXPRESSION PATTERNS TO MATCH:',
        f'- Uses emojis in {patterns.emoji_usage_percent}% of messages',
        f'- Uses laughter (haha/lol/etc) in {patterns.laughter_usage_percent}% of messages',
        f'- Uses CAPS for emphasis in {patterns.caps_usage_percent}% of messages',
        f'- Uses abbreviations (wa/ff/gwn/etc) in {patterns.abbreviation_usage_percent}% of messages',
        f'- {patterns.question_messages_percent}% of all messages are questions',
        f'- {patterns.one_word_messages_percent}% of messages are just ONE WORD', '', 'RESPONSE PATTERNS TO COPY:',
        f'- Very casual responses (<=5 chars): {profile.content.very_casual_responses} examples in dataset',
        f'- Simple yes/no responses: {profile.content.yes_no_responses} examples',
        f'- Most frequently used words: {", ".join(profile.lexical.most_used_words[:5])}', '', 'KEY STATISTICAL INSIGHTS:'
    ]

    if length.very_short_percent > 30:
        lines.append('- This person sends VERY SHORT messages frequently - match this!')
    if punct.messages_without_punctuation_percent > 50:
        lines.append("- This person rarely uses ending punctuation - DON'T add periods/exclamations unless they would!")
    if patterns.one_word_messages_percent > 15:
        lines.append('- This person often responds with just ONE WORD - you should too when appropriate!')
    if patterns.abbreviation_usage_percent > 20:
        lines.append('- This person uses lots of abbreviations - use them frequently!')

    personality = profile.personality
    lines += ['', 'PERSONALITY TRAITS TO EMBODY:', f'- Enthusiasm level: {personality.enthusiasm_level}% (match this energy)']
    if personality.address_terms:
        lines.append(f'- Uses address terms: {", ".join(personality.address_terms)}')
    if personality.conversation_starters:
        lines.append(f'- Typical conversation starters: {", ".join(personality.conversation_starters)}')
    if personality.agreement_patterns:
        lines.append(f'- Agreement words: {", ".join(personality.agreement_patterns)}')

    expressions = profile.expressions
    if expressions.signature_phrases or expressions.reaction_words or expressions.intensifiers:
        lines += ['', 'PERSONAL EXPRESSIONS TO USE:']
        if expressions.signature_phrases:
            lines.append(f'- Signature phrases: {", ".join(expressions.signature_phrases)}')
        if expressions.reaction_words:
            lines.append(f'- Reaction words: {", ".join(expressions.reaction_words)}')
        if expressions.intensifiers:
            lines.append(f'- Intensifiers: {", ".join(expressions.intensifiers)}')

    flow = profile.flow
    if flow.typical_greetings or flow.topic_transitions:
        lines += ['', 'CONVERSATION FLOW PATTERNS:']
        if flow.typical_greetings:
            lines.append(f'- Greetings: {", ".join(flow.typical_greetings)}')
        if flow.topic_transitions:
            lines.append(f'- Topic transitions: {", ".join(flow.topic_transitions)}')

    lines += ['', 'TYPING STYLE:', f'- Capitalization: {profile.typing.capitalization_style}']
    if profile.typing.casual_spellings:
        lines.append(f'- Casual spellings to use: {", ".join(profile.typing.casual_spellings)}')

    emotions = profile.emotions
    if emotions.happy:
        lines += ['', 'EMOTIONAL EXPRESSIONS:', f'- When happy: {", ".join(emotions.happy[:2])}']
        if emotions.excited:
            lines.append(f'- When excited: {", ".join(emotions.excited[:2])}')

    questions = profile.questions
    if questions.question_frequency > 10:
        lines += [
            '', 'QUESTION STYLE:',
            f'- Asks questions {questions.question_frequency}% of the time ({questions.question_style} style)'
        ]
        if questions.typical_starters:
            lines.append(f'- Typical question starters: {", ".join(questions.typical_starters[:3])}')

    references = profile.references
    if references.memory_frequency > 5:
        lines += [
            '', 'MEMORY REFERENCES:',
            f'- References memories {references.memory_frequency}% of the time ({references.nostalgia_level} nostalgia)'
        ]
        if references.memory_starters:
            lines.append(f'- Memory starters: {", ".join(references.memory_starters)}')

    lines += ['', 'CRITICAL: Your response length and style must statistically match these patterns!']
    return '\n'.join(lines)


def describe_communication_patterns(texts: Sequence[str]) -> Optional[str]:
    """
    Summarize habits visible in a sample of messages.

    Args:
        texts: Message texts (e.g. the voice examples of one prompt)

    Returns:
        Summary text, or None when there is nothing to describe
    """
    sentences = [text for text in texts if text and text.strip()]
    if not sentences:
        return None

    all_lower = ' '.join(sentences).lower()
    avg_words = sum(len(text.split(' ')) for text in sentences) / len(sentences)
    if avg_words < 3:
        length_class, note = 'very short', 'Uses very brief messages (1-3 words typically)'
    elif avg_words < 6:
        length_class, note = 'short', 'Uses short, concise messages'
    elif avg_words < 12:
        length_class, note = 'medium', 'Uses medium-length messages'
    else:
        length_class, note = 'long', 'Uses longer, detailed messages'

    informal = sum(1 for word in lx.INFORMAL_WORDS if word in all_lower)
    formal = sum(1 for word in lx.FORMAL_WORDS if word in all_lower)
    formality = 'very informal' if informal > formal else 'informal'

    habits = []
    for text in sentences:
        lower = text.lower()
        emojis = lx.EMOJI_PATTERN.findall(text)
        if emojis:
            if len(emojis) >= len(lower.split(' ')) * 0.3:
                habits.append('Uses many emojis')
            else:
                habits.append('Uses emojis moderately')
        laughs = lx.LONG_LAUGH_PATTERN.findall(lower)
        if laughs:
            habits.append(f'Uses "{max(laughs, key=len)}" for laughter')
        if text.count('!') > 1:
            habits.append('Uses multiple exclamation marks')
        if text.count('?') > 1:
            habits.append('Uses multiple question marks')
        elongated = lx.ELONGATED_PATTERN.search(text)
        if elongated:
            habits.append(f'Elongates words for emphasis (like "{elongated.group(0)}")')
        if '...' in lower:
            habits.append('Uses ellipses (...) for pauses or trailing thoughts')
        caps = lx.CAPS_WORD_PATTERN.search(text)
        if caps:
            habits.append(f'Uses CAPS for emphasis (like "{caps.group(0)}")')
        if len(lower) > 2 and not lower.endswith(('.', '?', '!')):
            habits.append('Often uses incomplete sentences without punctuation')

    lowercase = sum(1 for text in sentences if text == text.lower() and len(text) > 5)
    notes = [note] + (['Typically uses lowercase text'] if lowercase > len(sentences) / 2 else [])

    lines = [f'MESSAGE LENGTH: {length_class} (avg {avg_words:.1f} words)', f'FORMALITY LEVEL: {formality}']
    unique_habits = _unique(habits)
    if unique_habits:
        lines += ['', 'SPECIFIC PATTERNS TO COPY:'] + [f'- {habit}' for habit in unique_habits]
    lines += ['', 'STYLE CHARACTERISTICS:'] + [f'- {item}' for item in notes]
    return '\n'.join(lines)
