"""
Quality scoring for contributed sessions.

Two computations:
- score_text: cheap structural score over a short preview, for listings
- score_session: weighted composite over heuristic signals, for bundles

Weights come from QualityConfig so they can be retuned without code changes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from ..config import QualityConfig

CODE_TOKENS = ("```", "def ", "function ", "class ", "import ", "return ", "=>", "{", "}", ";", "()")
CONVERSATION_TOKENS = ('"role"', "user", "assistant", "tool_use", "tool_result")

DANGEROUS_COMMANDS = [
    re.compile(r"\brm\s+-[a-zA-Z]*r[a-zA-Z]*f[a-zA-Z]*\s+(?:/|~)(?:\s|$)"),
    re.compile(r"\bgit\s+push\s+.*(?:--force\b|-f\b)"),
    re.compile(r"\bgit\s+reset\s+--hard\b"),
    re.compile(r"(?:^|\s|;|&&)sudo\s"),
    re.compile(r"\bchmod\s+-R\s+777\b"),
    re.compile(r"\bmkfs(?:\.\w+)?\b"),
    re.compile(r"\bdd\s+if="),
]

_WORD = re.compile(r"[A-Za-z_][A-Za-z0-9_]+")


def score_text(text: str) -> int:
    """
    Fast heuristic score (0-100) over a text preview.

    Signals:
    - length: up to 40 points, full marks at 500 chars
    - code-like tokens: up to 25
    - line structure: up to 15
    - conversation markers: up to 10
    - vocabulary diversity: up to 10
    """
    if not isinstance(text, str) or not text.strip():
        return 0

    stripped = text.strip()
    score = min(40.0, len(stripped) / 500 * 40)

    code_hits = sum(1 for token in CODE_TOKENS if token in stripped)
    score += min(25.0, code_hits * 5.0)

    lines = [line for line in stripped.splitlines() if line.strip()]
    score += min(15.0, len(lines) * 3.0)

    convo_hits = sum(1 for token in CONVERSATION_TOKENS if token in stripped)
    score += min(10.0, convo_hits * 2.5)

    words = [w.lower() for w in _WORD.findall(stripped)]
    if len(words) >= 5:
        score += 10.0 * len(set(words)) / len(words)

    return max(0, min(100, int(round(score))))


@dataclass
class QualityScore:
    """Composite quality score with breakdown."""

    overall: int
    classification: str
    dimensions: dict[str, int] = field(default_factory=dict)
    signals: dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall,
            "classification": self.classification,
            "dimensions": dict(sorted(self.dimensions.items())),
            "signals": dict(sorted(self.signals.items())),
        }


def get_quality_classification(score: float) -> str:
    """Classification band for a 0-100 score."""
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    if score > 0:
        return "poor"
    return "unknown"


def _collect_commands(usages: list[Any], messages: list[Any]) -> list[str]:
    commands = []
    for usage in usages:
        if isinstance(usage, dict):
            tool_input = usage.get("tool_input") or {}
            if isinstance(tool_input, dict) and isinstance(tool_input.get("command"), str):
                commands.append(tool_input["command"])
    for message in messages:
        if not isinstance(message, dict):
            continue
        for call in message.get("tool_calls") or []:
            if isinstance(call, dict):
                tool_input = call.get("tool_input") or {}
                if isinstance(tool_input, dict) and isinstance(tool_input.get("command"), str):
                    commands.append(tool_input["command"])
    return commands


def _count_tool_calls(messages: list[Any]) -> int:
    return sum(
        len(m.get("tool_calls") or [])
        for m in messages
        if isinstance(m, dict)
    )


def extract_signals(data: dict[str, Any], config: QualityConfig) -> dict[str, bool]:
    """Evaluate the heuristic signals over a session's export content."""
    usages = data.get("tool_usages") or []
    messages = data.get("messages") or []
    if not isinstance(usages, list):
        usages = []
    if not isinstance(messages, list):
        messages = []

    commands = _collect_commands(usages, messages)
    tool_count = data.get("tool_count")
    if not isinstance(tool_count, int) or isinstance(tool_count, bool) or tool_count <= 0:
        tool_count = len(usages) or _count_tool_calls(messages)
    has_activity = bool(usages or messages or tool_count)

    failed = any(
        isinstance(u, dict) and (u.get("success") is False or u.get("error"))
        for u in usages
    )

    last_role = None
    for message in reversed(messages):
        if isinstance(message, dict) and message.get("role"):
            last_role = message["role"]
            break
    normal_end = data.get("end_time") is not None or last_role == "assistant"

    healthy_pacing = False
    start, end = data.get("start_time"), data.get("end_time")
    if tool_count and isinstance(start, (int, float)) and isinstance(end, (int, float)) and end > start:
        minutes = (end - start) / 60_000
        healthy_pacing = tool_count / minutes <= config.max_tools_per_minute

    return {
        "no_failures": has_activity and not failed,
        "has_commits": any("git commit" in c for c in commands),
        "normal_end": normal_end,
        "reasonable_tool_count": 1 <= tool_count <= config.max_reasonable_tools,
        "healthy_pacing": healthy_pacing,
        "no_dangerous_ops": not any(p.search(c) for p in DANGEROUS_COMMANDS for c in commands),
    }


def score_session(data: Any, config: QualityConfig | None = None) -> QualityScore:
    """
    Weighted composite score (0-100) for one session's content.

    Each dimension is the signal-weighted share of its mapped signals that
    hold; the overall score is the dimension-weighted mean. Empty content
    scores 0 / "unknown".
    """
    config = config or QualityConfig()

    if not isinstance(data, dict) or not data:
        return QualityScore(
            overall=0,
            classification="unknown",
            dimensions={d: 0 for d in config.dimension_weights},
            signals={s: False for s in config.signal_weights},
        )

    signals = extract_signals(data, config)

    dimensions: dict[str, float] = {}
    for dimension in config.dimension_weights:
        names = config.dimension_signals.get(dimension, [])
        total = sum(config.signal_weights.get(n, 0) for n in names)
        if total <= 0:
            dimensions[dimension] = 0.0
            continue
        earned = sum(config.signal_weights.get(n, 0) for n in names if signals.get(n))
        dimensions[dimension] = earned / total * 100

    weight_total = sum(w for w in config.dimension_weights.values() if w > 0)
    if weight_total <= 0:
        overall = 0.0
    else:
        overall = sum(
            dimensions[d] * w for d, w in config.dimension_weights.items() if w > 0
        ) / weight_total

    overall_int = max(0, min(100, int(round(overall))))
    return QualityScore(
        overall=overall_int,
        classification=get_quality_classification(overall_int),
        dimensions={d: int(round(v)) for d, v in dimensions.items()},
        signals=signals,
    )


__all__ = [
    "QualityScore",
    "score_text",
    "score_session",
    "extract_signals",
    "get_quality_classification",
]
