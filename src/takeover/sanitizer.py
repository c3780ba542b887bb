"""Cleanup of raw generation output before it is sent as the user"""

import re

QUOTE_PAIRS = (('"', '"'), ("'", "'"), ('“', '”'), ('‘', '’'))

# Tried once each, in order
META_PREFIXES = (
    re.compile(r"^here'?s? (my|the|a) (message|response|reply):?\s*", re.IGNORECASE),
    re.compile(r"^(message|response|reply):?\s*", re.IGNORECASE),
    re.compile(r"^i would (say|respond|text):?\s*", re.IGNORECASE),
)


def strip_wrapping_quotes(text: str) -> str:
    """Remove one layer of quotes if the text is wrapped on both ends"""
    for opening, closing in QUOTE_PAIRS:
        if len(text) >= 2 and text.startswith(opening) and text.endswith(closing):
            return text[1:-1]
    return text


def clean_generated_text(raw: str) -> str:
    """
    Turn raw model output into a message that can be sent.

    Returns:
        Cleaned text; an empty string means the output was unusable
    """
    if not raw:
        return ""

    cleaned = strip_wrapping_quotes(raw.strip())

    for prefix in META_PREFIXES:
        cleaned = prefix.sub('', cleaned, count=1)

    return cleaned.strip()
