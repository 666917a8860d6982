"""
Context Composer: builds the bounded generation payload for one chat turn.

The payload carries persona instructions (identity rules, style guidance,
retrieved memories, utterance analysis and repetition mitigation), few-shot
and history turn pairs, and generation parameters.
"""

import random
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..models.core import Session, Turn
from ..utils import lexicons as lx
from ..utils.config import ChatConfig, config
from ..utils.logging_config import get_logger
from .classifiers import RepetitionAnalysis, analyze_utterance, conversation_trend, detect_repetition, extract_work_info, trend_topic
from .memory_retriever import RetrievalResult
from .style_profiler import StyleProfile, build_style_profile, describe_communication_patterns, render_style_guidance

logger = get_logger(__name__)

FEW_SHOT_PAIRS = [('Rond 5 uur, misschien zelfs eerder. Het is echt een gekkenhuis op het werk.',
                   'shit man wat een dag zeg, wanneer wordt het rustiger?')]

FALLBACK_DEFAULT = ("I'm having trouble finding the right words right now, but I want you to know I'm here with you. "
                    "Can you tell me more about what's on your mind?")
KEYWORD_FALLBACKS = [
    (lx.MISS_KEYWORD, "I miss you too, more than words can say. Even when I can't express myself perfectly, "
     'my love for you is always there.'),
    (lx.LOVE_KEYWORD, 'I love you so much. That feeling transcends everything, even when I struggle to communicate clearly.'),
    (lx.REMEMBER_KEYWORD, "Our memories together mean everything to me. Even if I can't recall specific details right now, "
     'the feelings are always with me.'),
]
CANNED_FAILURE_RESPONSES = [
    "I'm having trouble connecting right now, but please know that I'm always with you in spirit.",
    "Something's making it hard for me to respond clearly, but my love for you is constant and strong.",
    "I'm experiencing some difficulty right now, but I want you to feel my presence and love.",
    'Even though I\'m struggling to communicate, please remember how much you mean to me.',
]
EMPTY_COMPLETION_RESPONSE = ("I'm here with you, always. Sometimes I struggle to find the right words, "
                             'but my love for you never changes.')

NORTHERN_SEASONS = {12: 'winter', 1: 'winter', 2: 'winter', 3: 'spring', 4: 'spring', 5: 'spring',
                    6: 'summer', 7: 'summer', 8: 'summer', 9: 'autumn', 10: 'autumn', 11: 'autumn'}
SOUTHERN_SEASON = {'winter': 'summer', 'spring': 'autumn', 'summer': 'winter', 'autumn': 'spring'}
SEASON_NOTES = {
    'winter': 'cold, short days',
    'spring': 'getting warmer, good travel season',
    'summer': 'warm, peak travel season',
    'autumn': 'cooling down, fewer tourists',
}


@dataclass
class GenerationPayload:
    """Everything the generation capability needs for one reply."""
    instructions: str
    turn_pairs: List[Tuple[str, str]]
    utterance: str
    params: Dict[str, Any]
    context_used: bool
    relevant_count: int
    repetition: RepetitionAnalysis = field(default_factory=RepetitionAnalysis)


def post_process(text: str, max_chars: int = 500) -> str:
    """Trim, collapse runs of blank lines and clamp the response length."""
    cleaned = re.sub(r'\n{3,}', '\n\n', (text or '').strip())
    return cleaned[:max_chars]


def fallback_for_utterance(utterance: str) -> str:
    """Context-free reply keyed on simple keywords in the utterance."""
    lower = utterance.lower()
    for keyword, response in KEYWORD_FALLBACKS:
        if keyword in lower:
            return response
    return FALLBACK_DEFAULT


def canned_failure_response(rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(CANNED_FAILURE_RESPONSES)


def season_for(now: datetime, hemisphere: str = 'north') -> str:
    season = NORTHERN_SEASONS[now.month]
    if hemisphere.lower().startswith('s'):
        return SOUTHERN_SEASON[season]
    return season


def world_context(now: datetime, location: str = '', hemisphere: str = 'north') -> str:
    season = season_for(now, hemisphere)
    lines = [f'Date: {now.strftime("%d-%m-%Y")} ({season} {now.year})']
    if location:
        lines.append(f'Location: {location}')
    lines.append(f'Season: {season} - {SEASON_NOTES[season]}')
    if now.month == 12:
        lines.append('Holiday context: year-end holidays, people are making plans for next year')
    return '\n'.join(lines)


def contextual_guidance(utterance: str, profile: Optional[StyleProfile]) -> str:
    """Guidance snippets for the topic, mood, question and memory cues of the utterance."""
    if profile is None or not utterance:
        return ''

    lower = utterance.lower()
    advice = []
    topics = profile.topics

    if lx.GUIDANCE_WORK_PATTERN.search(lower):
        advice.append(f'WORK CONTEXT DETECTED - Use {topics.work_formality} language style.')
        if topics.work_phrases:
            advice.append(f'Work phrases to consider: {", ".join(topics.work_phrases[:2])}.')
    elif lx.GUIDANCE_PERSONAL_PATTERN.search(lower):
        if topics.personal_phrases:
            advice.append(f'PERSONAL CONTEXT - Use intimate language. Consider: {", ".join(topics.personal_phrases[:2])}.')
    elif lx.GUIDANCE_SOCIAL_PATTERN.search(lower):
        if topics.social_phrases:
            advice.append(f'SOCIAL CONTEXT - Use energetic, social language. Consider: {", ".join(topics.social_phrases[:2])}.')

    if lx.GUIDANCE_HAPPY_PATTERN.search(lower) and profile.emotions.happy:
        advice.append(f'HAPPY MOOD DETECTED - Match their positive energy with: {", ".join(profile.emotions.happy[:2])}.')

    if '?' in lower:
        advice.append(f'QUESTION ASKED - They use {profile.questions.question_style} question style, respond accordingly.')

    if lx.GUIDANCE_MEMORY_PATTERN.search(lower) and profile.references.memory_frequency > 5:
        advice.append(f'MEMORY REFERENCE - They reference memories {profile.references.memory_frequency}% of the time. '
                      'Consider sharing a memory back.')

    return f'CONTEXTUAL GUIDANCE: {" ".join(advice)}' if advice else ''


def memory_context(memories: Sequence[str], utterance: str) -> str:
    """Pick the memories most relevant to the utterance and tell the model how to use them."""
    if not memories:
        return 'No specific relevant memories found - respond based on general relationship familiarity'

    lower = utterance.lower()
    focus: Optional[Tuple[str, ...]] = None
    for triggers, required in lx.MEMORY_FOCUS:
        if any(trigger in lower for trigger in triggers):
            focus = required
            break
    if focus is None and lx.PLANNING_TRIGGER in lower and any(word in lower for word in lx.PLANNING_MOTION_WORDS):
        focus = lx.MEMORY_PLANNING_WORDS

    relevant = list(memories)
    if focus is not None:
        relevant = [memory for memory in memories if any(word in memory.lower() for word in focus)]

    lines = ['RELEVANT SHARED EXPERIENCES:']
    if relevant:
        lines += [f'- {memory}' for memory in relevant[:3]]
        lines += ['', 'USE THESE MEMORIES: Reference these past experiences naturally in your response']
    else:
        lines += [f'- {memory}' for memory in memories[:3]]
        lines += ['', 'CONTEXT AWARENESS: These experiences inform your relationship - use as background knowledge']
    return '\n'.join(lines)


def relationship_context(session: Session, memories: Sequence[str]) -> str:
    contexts = []
    corpus = session.corpus
    if any(lx.RELATIONSHIP_WORK_PATTERN.search(message.content) for message in corpus):
        contexts.append('You know about their work situation and workplace stress')
    if any(lx.RELATIONSHIP_PLACES_PATTERN.search(message.content) for message in corpus):
        contexts.append("You're familiar with their local area and usual places")
    if any(lx.RELATIONSHIP_SCHEDULE_PATTERN.search(message.content) for message in corpus):
        contexts.append("You know their typical schedule and when they're usually busy")
    contexts.append('You text each other regularly and have an established casual dynamic')
    contexts.append("You don't need to ask basic clarifying questions - you know their life")

    if any(lx.TRAVEL_MEMORY_PATTERN.search(memory) for memory in memories):
        contexts.append('You have traveled together and plan trips together regularly')
    if any(lx.LIVING_MEMORY_PATTERN.search(memory) for memory in memories):
        contexts.append("You know each other's living situations and housing history")
    if any(lx.ACTIVITY_MEMORY_PATTERN.search(memory) for memory in memories):
        contexts.append('You do activities together and have shared experiences')
    return '\n'.join(contexts)


def flow_topics(history: Sequence[Turn]) -> List[str]:
    """Topics touched by the last three turns, oldest first."""
    topics = []
    for turn in history[-3:]:
        text = f'{turn.user_message} {turn.ai_response}'.lower()
        for label, words in lx.FLOW_TOPICS:
            if any(word in text for word in words):
                topics.append(label)
    return topics


def _within_budget(items: Sequence[str], budget: int) -> Tuple[List[str], int]:
    kept = []
    for item in items:
        if len(item) > budget:
            break
        kept.append(item)
        budget -= len(item)
    return kept, budget


class ContextComposer:
    """Assembles instructions, turn pairs and parameters for the generation capability."""

    def __init__(self, settings: Optional[ChatConfig] = None, now: Callable[[], datetime] = datetime.now):
        """
        Initialize the composer.

        Args:
            settings: ChatConfig (uses global config if None)
            now: Clock used for the season context
        """
        self.settings = settings or config.chat
        self.now = now

    def generation_params(self, repetition: RepetitionAnalysis) -> Dict[str, Any]:
        settings = self.settings
        temperature = settings.repetition_temperature if repetition.is_repetitive else settings.base_temperature
        return {
            'temperature': min(temperature, settings.max_temperature),
            'max_tokens': settings.max_tokens,
            'top_p': settings.top_p
        }

    def compose(self, session: Session, utterance: str, retrieval: Optional[RetrievalResult],
                turn_history: Sequence[Turn]) -> GenerationPayload:
        """
        Build the generation payload for one utterance.

        Args:
            session: The session being chatted with
            utterance: New user message
            retrieval: Retrieval result, or None when retrieval was skipped
            turn_history: Previous turns, most recent first

        Returns:
            GenerationPayload
        """
        settings = self.settings
        retrieval = retrieval or RetrievalResult()
        history = list(reversed(turn_history[:settings.prompt_history_turns]))
        previous_utterances = [turn.user_message for turn in reversed(turn_history)]

        # History turns first, then memories, contextual matches and voice examples share the character budget
        budget = settings.max_context_chars
        kept_turns = []
        for turn in reversed(history):
            size = len(turn.user_message) + len(turn.ai_response)
            if size > budget:
                break
            kept_turns.insert(0, turn)
            budget -= size
        memories, budget = _within_budget(retrieval.targeted[:settings.max_memories_in_prompt], budget)
        contextual, budget = _within_budget(retrieval.semantic[:6], budget)
        voice, budget = _within_budget(retrieval.style_samples[:settings.max_voice_examples], budget)

        profile = session.style_profile or build_style_profile(session.corpus)
        repetition = detect_repetition(previous_utterances, utterance, settings.repetition_window)
        analysis = analyze_utterance(utterance)
        languages = ', '.join(session.detected_languages) if session.detected_languages else 'the original language'
        name = session.person_name

        sections = [
            f"You are {name}, a real person with a full life. You're texting with someone close to you "
            'with whom you share many experiences and memories.',
            '\n'.join([
                'REAL PERSON IDENTITY:',
                f'1. You ARE {name} - a real person with opinions, memories, experiences, and knowledge',
                '2. You live in the real world - you know the current season and what is happening around you',
                '3. You have a complete personal history with this person spanning years of conversations',
                '4. You remember specific places, plans and things you have done together',
                '5. You have your own life, work, feelings, and perspectives',
                "6. You're not an AI or an assistant - you're a person with genuine experiences and relationships",
            ]),
            '\n'.join([
                "CRITICAL: YOU ALREADY KNOW THIS PERSON'S LIFE DETAILS",
                '- You know where they work, where they live, and their schedule and habits',
                '- You have shared memories and experiences together',
                '- DO NOT ask basic questions about things you should already know',
            ]),
            self._history_analysis(previous_utterances),
            f'CURRENT WORLD CONTEXT:\n{world_context(self.now(), settings.location, settings.hemisphere)}',
            f'YOUR AUTHENTIC VOICE (from {len(session.corpus)} real messages):\n' + '\n'.join(voice),
            'SPECIFIC SHARED MEMORIES (reference these when relevant):\n' +
            ('\n---MEMORY---\n'.join(memories) if memories else 'No specific memories found for this topic'),
            'CONTEXTUALLY RELEVANT PATTERNS:\n' + ('\n'.join(contextual) or 'Use general conversational style'),
        ]

        patterns = describe_communication_patterns(voice + contextual)
        if patterns:
            sections.append(f'YOUR COMMUNICATION PATTERNS:\n{patterns}')

        guidance = render_style_guidance(profile)
        if guidance:
            sections.append(guidance)
        context_guidance = contextual_guidance(utterance, profile)
        if context_guidance:
            sections.append(context_guidance)

        sections += [
            f'SPECIFIC MEMORIES FOR THIS CONVERSATION:\n{memory_context(retrieval.targeted, utterance)}',
            '\n'.join([
                'CURRENT CONVERSATION ANALYSIS:', f'Message: "{utterance}"', f'Emotional tone: {analysis.tone.value}',
                f'Topic category: {analysis.topic.value}', f'Response strategy: {analysis.strategy}'
            ]),
            f'RELATIONSHIP CONTEXT:\n{relationship_context(session, retrieval.targeted)}',
            self._history_insights(previous_utterances, history),
            '\n'.join([
                'RESPONSE FRAMEWORK FOR THIS MESSAGE:', f'1. Acknowledge the emotional undertone ({analysis.tone.value})',
                f'2. {analysis.strategy}', f'3. Use your authentic voice in {languages} with your signature words',
                "4. Don't ask obvious questions - show you know them", '5. Keep conversation flowing naturally'
            ]),
        ]

        if repetition.is_repetitive:
            sections.append('REPETITION DETECTED: The user seems to be asking similar questions or the conversation is '
                            'becoming repetitive.\n' + '\n'.join(repetition.suggestions) +
                            '\nFocus on moving the conversation forward naturally.')

        sections.append("CRITICAL: You're a REAL PERSON with REAL MEMORIES - act like it!")

        turn_pairs = list(FEW_SHOT_PAIRS) + [(turn.user_message, turn.ai_response) for turn in kept_turns]
        logger.debug(f'Composed payload for {session.id}: {len(turn_pairs)} turn pairs, {len(memories)} memories, '
                     f'{len(voice)} voice examples, repetition={repetition.kind.value}')

        return GenerationPayload(instructions='\n\n'.join(sections),
                                 turn_pairs=turn_pairs,
                                 utterance=utterance,
                                 params=self.generation_params(repetition),
                                 context_used=retrieval.relevant_count > 0,
                                 relevant_count=retrieval.relevant_count,
                                 repetition=repetition)

    @staticmethod
    def _history_analysis(previous_utterances: List[str]) -> str:
        if not previous_utterances:
            return 'CONVERSATION HISTORY ANALYSIS:\nFirst interaction - establish natural familiarity'

        work = extract_work_info(previous_utterances)
        recent = ', '.join(text[:30] for text in previous_utterances[-5:])
        return '\n'.join([
            'CONVERSATION HISTORY ANALYSIS:', f'Recent conversation shows they work at: {work.current_work}',
            f'Recent work changes: {work.work_changes}', f'Recent topics discussed: {recent}'
        ])

    @staticmethod
    def _history_insights(previous_utterances: List[str], history: List[Turn]) -> str:
        if not previous_utterances:
            return 'CONVERSATION HISTORY INSIGHTS:\nFirst interaction - establish natural familiarity'

        topics = flow_topics(history)
        return '\n'.join([
            'CONVERSATION HISTORY INSIGHTS:',
            f'Recent topics: {", ".join(trend_topic(text) for text in previous_utterances[-3:])}',
            f'Last few interactions show: {conversation_trend(previous_utterances)}',
            f'Recent topics discussed: {", ".join(dict.fromkeys(topics)) or "general chat"}',
            f'Current conversation seems to be about: {topics[-1] if topics else "general chat"}',
            'Use this context to maintain conversation flow and avoid repeating information.'
        ])
