"""Approval interpretation - classifies the user's reply to a takeover offer"""

from enum import Enum
from typing import Tuple


class ApprovalDecision(Enum):
    """Outcome of classifying a reply"""

    APPROVE = "approve"
    DENY = "deny"
    UNCLEAR = "unclear"


APPROVAL_KEYWORDS: Tuple[str, ...] = (
    'take over',
    'yes',
    'yeah',
    'yep',
    'sure',
    'ok',
    'okay',
    'do it',
    'go ahead',
    'please',
    'yea',
    'ye',
    'ya',
    'k',
)

# Substring matches: short entries such as "no" also hit "now" and "know",
# and a denial wins, so a mixed reply errs toward leaving the thread alone
DENIAL_KEYWORDS: Tuple[str, ...] = (
    'no',
    'nope',
    "don't",
    'dont',
    'cancel',
    'nevermind',
    'never mind',
    'nah',
    'stop',
    'not now',
    'later',
)


def _normalize(text: str) -> str:
    return (text or '').strip().lower()


def is_approval(text: str) -> bool:
    """Check if a reply contains any approval keyword"""
    normalized = _normalize(text)
    return any(keyword in normalized for keyword in APPROVAL_KEYWORDS)


def is_denial(text: str) -> bool:
    """Check if a reply contains any denial keyword"""
    normalized = _normalize(text)
    return any(keyword in normalized for keyword in DENIAL_KEYWORDS)


def classify(text: str) -> ApprovalDecision:
    """
    Map a free-text reply to approve / deny / unclear.

    Matching is by substring on the trimmed, lower-cased text. A denial
    keyword wins over an approval keyword in the same reply.
    """
    if is_denial(text):
        return ApprovalDecision.DENY

    if is_approval(text):
        return ApprovalDecision.APPROVE

    return ApprovalDecision.UNCLEAR
