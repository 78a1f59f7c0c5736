"""
Per-side face animation signal.

Renderers draw a face from `(eye_scale, mouth_scale, color)` and nothing
else. Every input is passed in explicitly, so two debaters animate from their
own volume without sharing any global state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

BLINK_SPEED = 0.0125


@dataclass(frozen=True)
class FaceSignal:
    eye_scale: float  # how open the eyes are, 0..1
    mouth_scale: float  # how open the mouth is, 0..1
    color: str


def ease_out_quint(x: float) -> float:
    return 1 - math.pow(1 - x, 5)


def clamp(x: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, x))


def smoothstep(edge0: float, edge1: float, x: float) -> float:
    """GLSL smoothstep."""
    x = clamp((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return x * x * (3 - 2 * x)


def blink(frame: int, speed: float = BLINK_SPEED) -> float:
    s = ease_out_quint((math.sin(frame * speed) + 1) * 2)
    s = smoothstep(0.1, 0.25, s)
    return min(1.0, s)


def mouth_scale(volume: float) -> float:
    return clamp(volume * 2, 0.0, 1.0)


def face_signal(volume: float, color: str, frame: int) -> FaceSignal:
    return FaceSignal(eye_scale=blink(frame), mouth_scale=mouth_scale(volume), color=color)


__all__ = ["FaceSignal", "face_signal", "blink", "mouth_scale", "smoothstep", "ease_out_quint"]
