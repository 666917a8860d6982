"""
Utilities for cleaning and parsing short LLM replies.
"""

import json
from typing import List


def clean_json_response(response: str) -> str:
    """Clean LLM response by removing code block markers.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned string
    """
    response = response.strip()

    # Remove ```json and ``` markers
    if response.startswith('```json'):
        response = response[7:]
    elif response.startswith('```'):
        response = response[3:]

    if response.endswith('```'):
        response = response[:-3]

    return response.strip()


def parse_language_list(response: str, default: str = 'unknown') -> List[str]:
    """Parse a language-detection reply into language names.

    Accepts a JSON list (optionally fenced) or a comma-separated line.

    Args:
        response: Raw LLM response
        default: Value returned when nothing usable is found

    Returns:
        Unique language names in reply order
    """
    cleaned = clean_json_response(response or '')
    try:
        parsed = json.loads(cleaned)
        items = parsed if isinstance(parsed, list) else [str(parsed)]
    except json.JSONDecodeError:
        items = cleaned.split(',')

    names = [str(item).strip().strip('."\'').strip() for item in items]
    names = list(dict.fromkeys(name for name in names if name))
    return names or [default]
