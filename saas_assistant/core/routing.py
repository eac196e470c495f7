"""Decide whether a prompt should be answered with tools available.

Each signal is treated as independent evidence and combined noisy-or style:
``score = 1 - prod(1 - w_i)``. A prompt with no signals scores 0.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from saas_assistant.config.providers import ROUTING_KEYWORDS


TOOL_THRESHOLD = 0.5

EMAIL_WEIGHT = 0.35
TIME_WEIGHT = 0.2
DATE_WEIGHT = 0.2

_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_TIME_RE = re.compile(r"\b\d{1,2}(?::\d{2})?\s*(?:am|pm)\b|\b\d{1,2}:\d{2}\b")
_DATE_RE = re.compile(
    r"\b(?:today|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b"
    r"|\b\d{4}-\d{2}-\d{2}\b|\b\d{1,2}/\d{1,2}(?:/\d{2,4})?\b"
)


@dataclass
class Classification:
    use_tools: bool
    confidence: float
    signals: List[str] = field(default_factory=list)


def _keyword_re(keyword: str) -> "re.Pattern[str]":
    return re.compile(r"\b" + re.escape(keyword) + r"s?\b")


_KEYWORD_PATTERNS = {keyword: _keyword_re(keyword) for keyword in ROUTING_KEYWORDS}


def score_prompt(text: str, keywords: Optional[Dict[str, float]] = None) -> Classification:
    lowered = (text or "").lower()
    weights = keywords if keywords is not None else ROUTING_KEYWORDS
    patterns = _KEYWORD_PATTERNS if keywords is None else {k: _keyword_re(k) for k in weights}

    signals: List[str] = []
    miss = 1.0
    for keyword, weight in weights.items():
        if patterns[keyword].search(lowered):
            signals.append(keyword)
            miss *= 1.0 - weight

    for name, regex, weight in (
        ("email", _EMAIL_RE, EMAIL_WEIGHT),
        ("time", _TIME_RE, TIME_WEIGHT),
        ("date", _DATE_RE, DATE_WEIGHT),
    ):
        if regex.search(lowered):
            signals.append(name)
            miss *= 1.0 - weight

    confidence = round(1.0 - miss, 4)
    return Classification(use_tools=confidence >= TOOL_THRESHOLD, confidence=confidence, signals=signals)


def classify(text: str, authenticated: bool) -> Classification:
    """Score the prompt; anonymous users never get tools."""

    result = score_prompt(text)
    if not authenticated:
        result.use_tools = False
    return result
