"""
Keyword lists used by the style profiler, classifiers and retriever.

Lists are plain data; word_pattern() turns a list into a case-insensitive
whole-word regex.
"""

import re
from typing import Iterable, Pattern

SYSTEM_MESSAGE_MARKERS = ('<Media omitted>', 'image omitted', 'video omitted', 'audio omitted',
                          'Messages and calls are end-to-end encrypted', 'This message was deleted', 'document omitted',
                          'GIF omitted', 'sticker omitted')

# Directional marks inserted by some exporters
DIRECTIONAL_MARKS = '\u200e\u200f'

STOPWORDS = ('de', 'het', 'een', 'van', 'is', 'op', 'dat', 'en', 'je', 'niet', 'met', 'aan', 'voor', 'te', 'zijn', 'maar',
             'als', 'was', 'dan', 'zo', 'me', 'wel', 'nog', 'wat', 'kan', 'door', 'zou', 'hem', 'bij', 'nu', 'ook', 'tot',
             'mijn', 'die', 'naar', 'heeft', 'ze', 'er', 'uit', 'om', 'daar', 'deze', 'over', 'onder', 'hun')

# Retrieval also ignores casual fillers
RETRIEVAL_STOPWORDS = STOPWORDS + ('ff', 'wa', 'gwn', 'ofzo', 'man', 'toch', 'zeg')


def word_pattern(words: Iterable[str]) -> Pattern:
    """Compile a case-insensitive whole-word alternation."""
    return re.compile(r'\b(' + '|'.join(re.escape(w) for w in words) + r')\b', re.IGNORECASE)


# Profiler pattern rates
EMOJI_PATTERN = re.compile('[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF'
                           '\U0001F1E0-\U0001F1FF\u2600-\u26FF\u2700-\u27BF]')
LAUGHTER_PATTERN = re.compile(r'haha|hehe|lol|lmao|hihi', re.IGNORECASE)
CAPS_PATTERN = re.compile(r'[A-Z]{2,}')
ABBREVIATIONS = ('wa', 'ff', 'gwn', 'btw', 'omg', 'thx', 'pls', 'ur')
ABBREVIATION_PATTERN = word_pattern(ABBREVIATIONS)

GREETINGS = ('hoi', 'hey', 'hallo', 'hi', 'goedemorgen', 'goedemiddag', 'goedenavond')
GREETING_PATTERN = word_pattern(GREETINGS)
BARE_REPLY_PATTERN = re.compile(r'^(ja|nee|yes|no|ok|okay|oke|goed|prima|leuk)$', re.IGNORECASE)

# Personality markers
ENTHUSIASM_PATTERN = re.compile(r'!+|haha+|yes+|nice+|cool+|awesome+|geweldig+|super+')
HUMOR_PATTERN = re.compile('haha|lol|\U0001F602|grappig|lachen|lmao|hihi|hehe', re.IGNORECASE)
ADDRESS_TERMS = ('papi', 'bro', 'man', 'dude', 'schat', 'lief', 'friend', 'mate', 'buddy')
ADDRESS_PATTERN = word_pattern(ADDRESS_TERMS)
STARTER_PATTERN = re.compile(r'^(hoi|hey|so|anyway|btw|owja|trouwens)', re.IGNORECASE)
AGREEMENT_WORDS = ('ja', 'yes', 'inderdaad', 'klopt', 'precies', 'exact', 'true', 'right', 'sure', 'definitely')
AGREEMENT_PATTERN = word_pattern(AGREEMENT_WORDS)

# Conversation flow
FLOW_GREETING_PATTERN = re.compile(r'^(hoi|hey|hallo|hi|goedemorgen|yo)', re.IGNORECASE)
TRANSITION_PATTERN = re.compile(r'^(btw|anyway|owja|trouwens|oh|maar|en|so)', re.IGNORECASE)
ENDER_PATTERN = re.compile(r'^(bye|ciao|tot|later|speak|talk|doei|dag|slaap)', re.IGNORECASE)

REACTION_WORDS = ('owh', 'aah', 'uhm', 'hmm', 'ooh', 'wow', 'damn', 'shit', 'fuck', 'nice', 'cool')
INTENSIFIERS = ('heel', 'echt', 'super', 'zeer', 'zo', 'really', 'very', 'totally', 'absolutely')
CASUAL_SPELLINGS = ('ff', 'wa', 'gwn', 'ofzo', 'thx', 'pls')

# Topic sublanguages
WORK_WORDS = ('werk', 'job', 'college', 'school', 'meeting', 'project', 'deadline', 'boss', 'colleague', 'kantoor', 'stage',
              'study', 'studie', 'toets', 'tentamen', 'les', 'docent')
WORK_PATTERN = word_pattern(WORK_WORDS)
FORMAL_PATTERN = word_pattern(('goedemorgen', 'goedemiddag', 'dank', 'thanks', 'bedankt', 'please', 'alstublieft'))
PERSONAL_WORDS = ('love', 'liefde', 'schat', 'lief', 'miss', 'missen', 'date', 'daten', 'kiss', 'knuffel', 'family', 'familie',
                  'vrienden', 'thuis', 'home')
PERSONAL_PATTERN = word_pattern(PERSONAL_WORDS)
SOCIAL_WORDS = ('party', 'feest', 'drinken', 'uitgaan', 'bar', 'club', 'friends', 'vrienden', 'weekend', 'vanavond', 'tonight')
SOCIAL_PATTERN = word_pattern(SOCIAL_WORDS)

# Emotional lexicons
HAPPY_PATTERN = re.compile('\\b(haha|lol|nice|leuk|geweldig|super|blij|happy|cool|awesome|yes|ja)\\b|\U0001F60A|\U0001F602|\u2764',
                           re.IGNORECASE)
EXCITED_PATTERN = re.compile(r'!{2,}|[A-Z]{3,}|omg|wow|amazing|incredible|yesss|hahahaha', re.IGNORECASE)
SAD_PATTERN = re.compile('\\b(sad|verdrietig|down|nee|shit|damn|bummer|helaas|jammer)\\b|\U0001F622|\U0001F61E', re.IGNORECASE)
FRUSTRATED_PATTERN = word_pattern(('ugh', 'wtf', 'seriously', 'echt', 'irritant', 'annoying', 'stupid', 'dom', 'fuck', 'shit'))

# Memory references
MEMORY_WORDS = ('remember', 'herinner', 'weet je nog', 'vroeger', 'toen', 'yesterday', 'gisteren', 'last time', 'vorige keer',
                'that time', 'die keer')
MEMORY_PATTERN = word_pattern(MEMORY_WORDS)
MEMORY_STARTER_PATTERN = re.compile(r'remember|herinner|weet|toen|yesterday|gisteren', re.IGNORECASE)
SHARED_PATTERN = word_pattern(('we', 'ons', 'samen', 'together', 'both', 'allebei', 'with you', 'met jou'))

# Question categories
YES_NO_QUESTION_PATTERN = re.compile(r'^(ben je|are you|doe je|do you|heb je|have you|is|wil je|will you|kan je|can you)',
                                     re.IGNORECASE)
OPEN_QUESTION_PATTERN = re.compile(r'^(wat|what|hoe|how|waarom|why|wanneer|when|waar|where)', re.IGNORECASE)
CHECK_IN_PATTERN = re.compile(r"^(hoe gaat|how's|alles goed|everything ok|wat doe je|what are you)", re.IGNORECASE)

# Utterance-level contextual guidance triggers
GUIDANCE_WORK_PATTERN = word_pattern(('werk', 'job', 'college', 'school', 'meeting', 'project', 'deadline', 'study', 'studie',
                                      'toets', 'tentamen'))
GUIDANCE_PERSONAL_PATTERN = word_pattern(('love', 'liefde', 'miss', 'missen', 'date', 'daten', 'kiss', 'knuffel', 'schat',
                                          'lief'))
GUIDANCE_SOCIAL_PATTERN = word_pattern(('party', 'feest', 'drinken', 'uitgaan', 'bar', 'club', 'friends', 'vrienden',
                                        'weekend'))
GUIDANCE_HAPPY_PATTERN = re.compile(
    '\\b(haha|lol|nice|leuk|geweldig|super|blij|happy|cool|awesome)\\b|\U0001F60A|\U0001F602', re.IGNORECASE)
GUIDANCE_MEMORY_PATTERN = word_pattern(('remember', 'herinner', 'weet je nog', 'vroeger', 'toen', 'yesterday', 'gisteren',
                                        'last time', 'vorige keer'))

# Utterance classification
STRESSED_WORDS = ('shit', 'kut', 'echt', 'gekkenhuis', 'druk', 'stress', 'moe', 'tired')
POSITIVE_WORDS = ('haha', 'lol', 'leuk', 'nice', 'cool', 'geweldig')
BUSY_WORDS = ('ff', 'moet', 'regelen', 'snel')
TOPIC_WORK_WORDS = ('werk', 'job', 'kantoor', 'bakkerij', 'collega')
TOPIC_FOOD_WORDS = ('eten', 'pizza', 'restaurant', 'koken')
TOPIC_LIVING_WORDS = ('huis', 'thuis', 'wonen', 'verhuizen')
TOPIC_TIMING_WORDS = ('tijd', 'uur', 'vroeg', 'laat', 'wanneer')
TOPIC_PLANS_WORDS = ('regelen', 'doen', 'bezig', 'plannen')
TOPIC_PERSONAL_WORDS = PERSONAL_WORDS
TOPIC_SOCIAL_WORDS = SOCIAL_WORDS
LOOKUP_QUESTION_WORDS = ('waar', 'welke', 'wat')
STRESS_TREND_PATTERN = re.compile(r'stress|druk|kut|gekkenhuis', re.IGNORECASE)

# Relationship context over the whole corpus
RELATIONSHIP_WORK_PATTERN = word_pattern(('werk', 'job', 'bakkerij', 'kantoor'))
RELATIONSHIP_PLACES_PATTERN = word_pattern(('hoek', 'deur', 'straat', 'hier', 'daar'))
RELATIONSHIP_SCHEDULE_PATTERN = word_pattern(('vroeg', 'laat', 'tijd', 'uur'))

# Memory flavour of retrieved examples
TRAVEL_MEMORY_PATTERN = re.compile(r'reis|vakantie|travel|trip', re.IGNORECASE)
LIVING_MEMORY_PATTERN = re.compile(r'woon|verhuisd|adres|huis|home', re.IGNORECASE)
ACTIVITY_MEMORY_PATTERN = re.compile(r'samen|gedaan|geweest|met elkaar', re.IGNORECASE)

# Targeted retrieval expansions: trigger substrings -> extra search candidates
WORD_EXPANSIONS = (
    (('werk', 'job', 'baan'), ('werk situatie', 'werkplek', 'werkgever')),
    (('huis', 'wonen', 'adres'), ('wonen', 'huis', 'adres')),
    (('reis', 'vakantie', 'trip'), ('reizen', 'vakantie', 'trip')),
)
UTTERANCE_EXPANSIONS = (
    (('werk', 'job', 'baan'), ('werk', 'werkplek', 'werkgever', 'collega')),
    (('wonen', 'huis', 'adres'), ('wonen', 'huis', 'adres', 'verhuizen')),
    (('samen', 'met jou'), ('samen', 'met elkaar', 'gedaan')),
)
PLANNING_TRIGGER = 'wanneer'
PLANNING_MOTION_WORDS = ('gaan', 'naar')
PLANNING_EXPANSION = ('plannen', 'gaan', 'naar')

# Repetition detection
LOCATION_QUESTION_WORDS = ('waar', 'welke', 'welk')

# Keyword fallbacks when no context is available
MISS_KEYWORD = 'miss'
LOVE_KEYWORD = 'love'
REMEMBER_KEYWORD = 'remember'

# Communication pattern summary
INFORMAL_WORDS = ('wa', 'papi', 'ff', 'gwn', 'ofzo', 'haha', 'lol', 'omg', 'btw', 'wtf')
FORMAL_WORDS = ('however', 'therefore', 'nevertheless', 'furthermore')
ELONGATED_PATTERN = re.compile(r'\b\w*([a-z])\1{2,}\w*\b', re.IGNORECASE)
LONG_LAUGH_PATTERN = re.compile(r'ha+ha+')
CAPS_WORD_PATTERN = re.compile(r'\b[A-Z]{2,}\b')

# Conversation trend topics, first match wins
TREND_TOPICS = (
    ('work', ('werk', 'job', 'bakkerij')),
    ('food', ('eten', 'pizza', 'food')),
    ('time', ('tijd', 'uur', 'vroeg')),
    ('question', ('waar', 'welke', 'wat')),
    ('tasks', ('regelen', 'doen', 'moet')),
)

# Work mentions in recent turns
WORK_MENTION_WORDS = ('werk', 'fabriek', 'bedrijf', 'baan', 'job', 'collega', 'kantoor')
WORK_CHANGE_WORDS = ('nieuwe', 'anders', 'veranderd', 'niet meer')
WORK_CURRENT_WORDS = ('werk', 'ben', 'bij')

# Memory focus: utterance triggers -> words a retrieved memory must contain
MEMORY_FOCUS = (
    (('reis', 'vakantie', 'trip', 'travel'), ('reis', 'vakantie', 'trip', 'travel')),
    (('waar', 'adres', 'woon'), ('woon', 'verhuisd', 'adres')),
)
MEMORY_PLANNING_WORDS = ('gaan', 'plannen', 'reis')

# Topics tracked across recent turns
FLOW_TOPICS = (
    ('living situation', ('woon', 'huis', 'verhuis')),
    ('work', ('werk', 'job', 'baan')),
    ('going out', ('uitgaan', 'drinken', 'feest', 'zuipen')),
)
