"""Style analysis - a short descriptive summary of how the user texts.

The summary is plain text handed to the generation service alongside the
raw samples; it is not a model of the user's style.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List

from src.utils.logger_config import get_logger

logger = get_logger(__name__)

EMOJI_PATTERN = re.compile("[\U0001F300-\U0001FAFF☀-⛿✀-➿]")


@dataclass
class StyleAnalysis:
    """Summary of the user's texting habits"""

    tone: str = "casual"
    average_length: int = 50
    emoji_usage: str = "none"  # none, rare, frequent
    typing_patterns: str = "casual"
    common_words: List[str] = field(default_factory=list)
    capitalized_ratio: float = 0.0
    punctuated_ratio: float = 0.0
    sample_count: int = 0

    def to_style_guide(self) -> str:
        """Render the analysis as instructions for the generation prompt"""
        if self.sample_count == 0:
            return "Keep messages brief and casual."

        if self.capitalized_ratio < 0.3:
            caps_rule = "Use mostly lowercase"
        elif self.capitalized_ratio > 0.7:
            caps_rule = "Use proper capitalization"
        else:
            caps_rule = "Mix capitalization naturally"

        if self.punctuated_ratio < 0.3:
            punctuation_rule = "Skip punctuation usually"
        elif self.punctuated_ratio > 0.7:
            punctuation_rule = "Use proper punctuation"
        else:
            punctuation_rule = "Use punctuation sparingly"

        emoji_rule = {
            "none": "Avoid emojis",
            "rare": "Use emojis occasionally",
        }.get(self.emoji_usage, "Use emojis frequently")

        lines = [
            f"- Average message length: {self.average_length} characters",
            f"- Tone: {self.tone}",
            f"- Capitalization: {self.typing_patterns}",
            f"- Emoji usage: {self.emoji_usage}",
        ]
        if self.common_words:
            lines.append(f"- Common words: {', '.join(self.common_words[:5])}")
        lines.extend([
            f"- Keep messages around {self.average_length} characters",
            f"- {caps_rule}",
            f"- {punctuation_rule}",
            f"- {emoji_rule}",
        ])
        return "\n".join(lines)


def analyze_style(samples: Iterable[str]) -> StyleAnalysis:
    """
    Summarize the user's style from their own past messages

    Args:
        samples: Message texts written by the user, oldest first

    Returns:
        StyleAnalysis (defaults when there are no usable samples)
    """
    texts = [text.strip() for text in samples if text and text.strip()]
    if not texts:
        return StyleAnalysis()

    average_length = round(sum(len(text) for text in texts) / len(texts))

    with_emoji = sum(1 for text in texts if EMOJI_PATTERN.search(text))
    emoji_ratio = with_emoji / len(texts)
    if emoji_ratio == 0:
        emoji_usage = "none"
    elif emoji_ratio < 0.3:
        emoji_usage = "rare"
    else:
        emoji_usage = "frequent"

    capitalized_ratio = sum(1 for text in texts if text[0].isupper()) / len(texts)
    punctuated_ratio = sum(1 for text in texts if text[-1] in ".!?") / len(texts)

    if capitalized_ratio > 0.7 and punctuated_ratio > 0.7:
        typing_patterns = "Proper capitalization and punctuation"
    elif capitalized_ratio < 0.3:
        typing_patterns = "Mostly lowercase, casual typing"
    else:
        typing_patterns = "Mixed capitalization, casual style"

    if average_length < 30:
        tone = "very brief and casual"
    elif average_length < 80:
        tone = "casual and conversational"
    else:
        tone = "detailed and expressive"

    words = [
        word for word in " ".join(texts).lower().split() if len(word) > 3
    ]
    common_words = [word for word, _ in Counter(words).most_common(10)]

    analysis = StyleAnalysis(
        tone=tone,
        average_length=average_length,
        emoji_usage=emoji_usage,
        typing_patterns=typing_patterns,
        common_words=common_words,
        capitalized_ratio=capitalized_ratio,
        punctuated_ratio=punctuated_ratio,
        sample_count=len(texts),
    )
    logger.debug(f"Style analysis over {len(texts)} samples: {tone}, {typing_patterns}")
    return analysis
