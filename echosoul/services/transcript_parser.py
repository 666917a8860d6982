"""
Transcript parser for exported chat histories.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

from ..models.core import Message
from ..utils.config import config
from ..utils.errors import ValidationError
from ..utils.lexicons import DIRECTIONAL_MARKS, SYSTEM_MESSAGE_MARKERS
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import to_iso_timestamp

logger = get_logger(__name__)

# Ordered: the first grammar that matches a line wins
TIMESTAMP_GRAMMARS: Tuple[Tuple[str, Pattern], ...] = (
    ('bracketed',
     re.compile(r'^\[(?P<date>\d{1,2}/\d{1,2}/\d{2,4}),\s*(?P<time>\d{1,2}:\d{2}(?::\d{2})?)\s?(?P<period>[AaPp]\.?[Mm]\.?)?\]'
                r'\s*(?P<sender>[^:]+):\s*(?P<content>.+)$')),
    ('dash',
     re.compile(r'^(?P<date>\d{1,2}/\d{1,2}/\d{2,4}),\s*(?P<time>\d{1,2}:\d{2})\s?(?P<period>[AaPp]\.?[Mm]\.?)?\s*-\s*'
                r'(?P<sender>[^:]+):\s*(?P<content>.+)$')),
    ('dotted',
     re.compile(r'^\[(?P<date>\d{1,2}\.\d{1,2}\.\d{2,4}),\s*(?P<time>\d{1,2}:\d{2}(?::\d{2})?)\]'
                r'\s*(?P<sender>[^:]+):\s*(?P<content>.+)$')),
)

_LOWER_SYSTEM_MARKERS = tuple(marker.lower() for marker in SYSTEM_MESSAGE_MARKERS)
_STRIP_MARKS = str.maketrans('', '', DIRECTIONAL_MARKS)


@dataclass(frozen=True)
class ParsedLine:
    """One line matched by a timestamp grammar."""
    grammar: str
    date: str
    time: str
    period: Optional[str]
    sender: str
    content: str

    @property
    def timestamp(self) -> str:
        return to_iso_timestamp(self.date, self.time, self.period)


@dataclass
class ParseStats:
    """Counters for one parse run."""
    total_lines: int = 0
    matched: int = 0
    skipped_system: int = 0
    skipped_short: int = 0
    other_senders: int = 0
    kept: int = 0


@dataclass
class TranscriptSummary:
    """Overview of a transcript used to pick the participant."""
    participants: Dict[str, int] = field(default_factory=dict)
    total_messages: int = 0
    first_timestamp: Optional[str] = None
    last_timestamp: Optional[str] = None
    preview: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'participants': [{
                'name': name,
                'message_count': count
            } for name, count in self.participants.items()],
            'total_messages': self.total_messages,
            'first_timestamp': self.first_timestamp,
            'last_timestamp': self.last_timestamp,
            'preview': list(self.preview)
        }


def clean_line(line: str) -> str:
    return line.translate(_STRIP_MARKS).strip()


def split_lines(text: str) -> List[str]:
    """Split on \\r?\\n, strip directional marks and drop blank lines."""
    lines = (clean_line(line) for line in re.split(r'\r?\n', text))
    return [line for line in lines if line]


def match_line(line: str) -> Optional[ParsedLine]:
    """Match a line against the timestamp grammars.

    Args:
        line: A single cleaned transcript line

    Returns:
        ParsedLine for the first matching grammar, or None
    """
    for name, pattern in TIMESTAMP_GRAMMARS:
        match = pattern.match(line)
        if match:
            period = match.group('period')
            return ParsedLine(grammar=name,
                              date=match.group('date'),
                              time=match.group('time'),
                              period=period.strip() if period else None,
                              sender=match.group('sender').strip(),
                              content=match.group('content').strip())
    return None


def is_system_message(content: str) -> bool:
    lowered = content.lower()
    return any(marker in lowered for marker in _LOWER_SYSTEM_MARKERS)


def _validate_text(text: str, min_lines: int) -> List[str]:
    if not text or not text.strip():
        raise ValidationError('File appears to be empty')

    lines = split_lines(text)
    if len(lines) < min_lines:
        raise ValidationError(f'Transcript has only {len(lines)} lines; at least {min_lines} are required')
    return lines


def parse_transcript(text: str, participant: str, min_messages: Optional[int] = None, min_lines: Optional[int] = None) -> List[Message]:
    """Parse an exported transcript into the participant's messages.

    Args:
        text: Raw export text
        participant: Sender name to keep (exact match)
        min_messages: Minimum qualifying messages (uses config default if None)
        min_lines: Minimum non-blank lines (uses config default if None)

    Returns:
        Messages sorted by reconstructed timestamp

    Raises:
        ValidationError: If the transcript is empty, too short, or has too few messages for the participant
    """
    min_messages = config.ingestion.min_messages if min_messages is None else min_messages
    min_lines = config.ingestion.min_lines if min_lines is None else min_lines

    lines = _validate_text(text, min_lines)
    stats = ParseStats(total_lines=len(lines))
    messages = []

    for line in lines:
        parsed = match_line(line)
        if parsed is None:
            continue
        stats.matched += 1

        if is_system_message(parsed.content):
            stats.skipped_system += 1
            continue
        if len(parsed.content) <= 3:
            stats.skipped_short += 1
            continue
        if parsed.sender != participant:
            stats.other_senders += 1
            continue

        messages.append(Message(content=parsed.content, sender=parsed.sender, timestamp=parsed.timestamp))

    stats.kept = len(messages)
    logger.info(f'Parsing stats for {participant}: {stats.kept}/{stats.total_lines} lines kept '
                f'(matched={stats.matched}, system={stats.skipped_system}, short={stats.skipped_short}, '
                f'other_senders={stats.other_senders})')

    if not messages:
        raise ValidationError(f'No messages found for "{participant}". Please check the name spelling.')
    if len(messages) < min_messages:
        raise ValidationError(f'Only {len(messages)} messages found. Need more messages for better AI responses.')

    # sorted() is stable, so same-timestamp messages keep file order
    return sorted(messages, key=lambda message: message.timestamp)


def summarize_transcript(text: str, preview_lines: int = 5) -> TranscriptSummary:
    """Summarize participants and date range without choosing a participant.

    Args:
        text: Raw export text
        preview_lines: Number of leading lines to include as preview

    Returns:
        TranscriptSummary with participants in first-seen order

    Raises:
        ValidationError: If the transcript is empty
    """
    lines = _validate_text(text, min_lines=1)
    summary = TranscriptSummary(preview=lines[:preview_lines])
    timestamps = []

    for line in lines:
        parsed = match_line(line)
        if parsed is None or is_system_message(parsed.content):
            continue
        summary.participants[parsed.sender] = summary.participants.get(parsed.sender, 0) + 1
        summary.total_messages += 1
        timestamps.append(parsed.timestamp)

    if timestamps:
        summary.first_timestamp = min(timestamps)
        summary.last_timestamp = max(timestamps)

    logger.debug(f'Transcript summary: {len(summary.participants)} participants, {summary.total_messages} messages')
    return summary
