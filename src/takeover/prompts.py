"""Message templates and generation prompts used by the orchestrator"""

from typing import Sequence

from src.message_maker.style import analyze_style

from .models import ExchangeEntry

OFFER_TEMPLATE = "Hey, are you trying to ghost {name} or do you want me to take over?"

ERROR_NOTICE_TEMPLATE = "Agent ran into a problem with {name}. Taking back control."

DEFAULT_EXIT_MESSAGE = "gotta go, talk later!"

# Fragments of the templates above that no user reply would contain verbatim
AGENT_NOTICE_MARKERS = (
    "are you trying to ghost",
    "do you want me to take over?",
    "taking back control.",
)

TURN_PROMPT_TEMPLATE = """Current situation:
- You are texting with {name}
- You have sent {turns_sent} messages so far in this session
- Maximum messages before wind-down: {max_turns}

Recent conversation:
{history}

Your writing style (from {sample_count} message samples):
{style_guide}

Samples of how you text:
{samples}

Instructions:
{instruction}

Respond with ONLY the message text you want to send - no explanations, no quotes, just the raw message as you would type it."""

WIND_DOWN_PROMPT_TEMPLATE = """Based on these sample messages showing your texting style:
{samples}

Generate ONE brief, natural exit message to end the conversation with {name}.
Match your style exactly - same length, tone, capitalization, and punctuation patterns.

Examples (adjust to YOUR style):
- If casual/brief: "gtg talk later"
- If casual: "gotta run but talk soon!"
- If proper: "I need to go, but let's chat later!"

Respond with ONLY the exit message - no explanations, no quotes."""


def format_exchange(entries: Sequence[ExchangeEntry], counterpart_name: str) -> str:
    """Format exchange entries as 'Speaker: text' lines"""
    if not entries:
        return "(No previous messages)"
    return "\n".join(
        f"{'You' if entry.is_from_me else counterpart_name}: {entry.text or '(attachment)'}"
        for entry in entries
    )


def format_samples(samples: Sequence[ExchangeEntry]) -> str:
    if not samples:
        return "(No samples available)"
    return "\n".join(sample.text for sample in samples)


def build_turn_prompt(
    counterpart_name: str,
    exchange: Sequence[ExchangeEntry],
    samples: Sequence[ExchangeEntry],
    turns_sent: int,
    max_turns: int,
) -> str:
    """
    Prompt for one automated reply

    Args:
        counterpart_name: Display name of the counterpart
        exchange: Most recent exchange entries, oldest first
        samples: Most recent own-message samples, oldest first
        turns_sent: Automated messages already sent this session
        max_turns: Session turn limit
    """
    if turns_sent >= max_turns - 1:
        instruction = (
            "This is your last message for now. Reply to the last message "
            f"from {counterpart_name} naturally in your style."
        )
    else:
        instruction = (
            f"Generate ONE natural response to the last message from {counterpart_name}. "
            "Keep it in your exact texting style."
        )

    return TURN_PROMPT_TEMPLATE.format(
        name=counterpart_name,
        turns_sent=turns_sent,
        max_turns=max_turns,
        history=format_exchange(exchange, counterpart_name),
        sample_count=len(samples),
        style_guide=analyze_style(sample.text for sample in samples).to_style_guide(),
        samples=format_samples(samples),
        instruction=instruction,
    )


def build_wind_down_prompt(counterpart_name: str, samples: Sequence[ExchangeEntry]) -> str:
    """Prompt for the exit message; uses only the user's own samples"""
    return WIND_DOWN_PROMPT_TEMPLATE.format(
        name=counterpart_name,
        samples=format_samples(samples),
    )


def is_agent_notice(text: str) -> bool:
    """True if text is a copy of an offer or error notice the agent sent"""
    lowered = (text or "").lower()
    return any(marker in lowered for marker in AGENT_NOTICE_MARKERS)
