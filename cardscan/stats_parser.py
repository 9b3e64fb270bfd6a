"""Turn recognized card text into attack and health values."""
from __future__ import annotations

import re
from typing import Dict, List

from .models import ATTACK_RANGE, HEALTH_RANGE
from .utils import clamp

DEFAULT_ATTACK = 45
DEFAULT_HEALTH = 100

NUMBER_PATTERN = re.compile(r"\d+")
ATTACK_PATTERN = re.compile(r"(?:attack|atk|power)\s*:?\s*(\d+)", re.IGNORECASE)
HEALTH_PATTERN = re.compile(r"(?:health|hp|life)\s*:?\s*(\d+)", re.IGNORECASE)


def extract_numbers(text: str) -> List[int]:
    return [int(n) for n in NUMBER_PATTERN.findall(text or "")]


def parse_stats(text: str) -> Dict[str, int]:
    """Return clamped ``{"attack": ..., "health": ...}`` for ``text``.

    Labeled values win. Without labels, two or more numbers are read as
    smallest = attack and largest = health; a lone number is taken as attack.
    Anything not found keeps its default. Never raises.
    """

    text = text or ""
    numbers = extract_numbers(text)
    attack = DEFAULT_ATTACK
    health = DEFAULT_HEALTH

    attack_match = ATTACK_PATTERN.search(text)
    health_match = HEALTH_PATTERN.search(text)
    if attack_match:
        attack = int(attack_match.group(1))
    if health_match:
        health = int(health_match.group(1))

    if not attack_match and not health_match:
        if len(numbers) >= 2:
            attack = min(numbers)
            health = max(numbers)
        elif len(numbers) == 1:
            attack = numbers[0]

    return {
        "attack": clamp(attack, *ATTACK_RANGE),
        "health": clamp(health, *HEALTH_RANGE),
    }
