"""Prompt text sent to the debaters."""

from __future__ import annotations

from .profiles import AgentProfile

DEBATE_RULES = (
    "You are participating in a debate. You are currently DEBATING against {opponent}.\n"
    "Your opponent is {opponent_flaw}.\n"
    "Keep your responses short (max 2 sentences), punchy, and witty.\n"
    "Listen to your opponent's argument and rebut it directly."
)

OPENING_PROMPT = (
    'Start a heated debate about: "{topic}". You are in favor of it. '
    "State your opening argument now."
)

REBUTTAL_PROMPT = 'Your opponent {name} said: "{text}". Rebut this!'


def system_instruction(agent: AgentProfile, opponent: AgentProfile, *, opens: bool) -> str:
    """Build the system instruction for `agent` debating `opponent`."""
    # The opener faces a calmer opponent, the responder a louder one.
    flaw = "sophisticated but wrong" if opens else "loud and wrong"
    rules = DEBATE_RULES.format(opponent=opponent.display_name, opponent_flaw=flaw)
    return f"You are {agent.display_name}. {agent.persona_text}.\n{rules}"


def opening_prompt(topic: str) -> str:
    return OPENING_PROMPT.format(topic=topic)


def rebuttal_prompt(opponent: AgentProfile, text: str) -> str:
    return REBUTTAL_PROMPT.format(name=opponent.display_name, text=text)


__all__ = [
    "DEBATE_RULES",
    "OPENING_PROMPT",
    "REBUTTAL_PROMPT",
    "system_instruction",
    "opening_prompt",
    "rebuttal_prompt",
]
