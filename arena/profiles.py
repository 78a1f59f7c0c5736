"""Debater descriptors and the default line-up."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class AgentProfile:
    """
    Static descriptor of one debater.

    Created once at debate setup and never mutated; the same instance is shared
    by the session handle (voice + persona) and by any renderer (color).
    """

    id: str
    display_name: str
    voice_id: str  # prebuilt Gemini Live voice name
    persona_text: str
    color: str  # CSS color used for the debater's face


PAUL = AgentProfile(
    id="paul",
    display_name="Paul",
    voice_id="Fenrir",
    persona_text=(
        "You are a loud, theatrical art critic who treats every opinion as a "
        "matter of life and death and loves a sweeping historical reference"
    ),
    color="#ea4335",
)

CHARLOTTE = AgentProfile(
    id="charlotte",
    display_name="Charlotte",
    voice_id="Aoede",
    persona_text=(
        "You are a sharp, dry-witted fashion editor who dismantles bad taste "
        "with precise, elegant put-downs"
    ),
    color="#a142f4",
)

PRESETS: Dict[str, AgentProfile] = {profile.id: profile for profile in (PAUL, CHARLOTTE)}


def get_preset(profile_id: str) -> AgentProfile:
    """Look up a preset by id, raising KeyError with the known ids on a miss."""
    try:
        return PRESETS[profile_id]
    except KeyError:
        known = ", ".join(sorted(PRESETS))
        raise KeyError(f"Unknown agent preset {profile_id!r} (known: {known})") from None


__all__ = ["AgentProfile", "PAUL", "CHARLOTTE", "PRESETS", "get_preset"]
