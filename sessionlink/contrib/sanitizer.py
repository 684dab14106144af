"""
Sanitizer - category-based redaction of session content.

Categories (each toggled in RedactionConfig):
- secrets: credential and token shapes
- pii: email and IP addresses
- paths: user home directories, normalized to ~
- high_entropy: long random-looking runs that match no known shape
- custom: user-supplied regexes

Replacement markers never match any pattern, so sanitizing sanitized output
is a no-op. redact_text/redact_object are pure with respect to their input;
the only state is the cumulative report.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from typing import Any

from ..config import RedactionConfig
from .models import REDACTION_CATEGORIES, RedactionReport

logger = logging.getLogger(__name__)

SECRET_MARKER = "[REDACTED_SECRET]"
EMAIL_MARKER = "[REDACTED_EMAIL]"
IP_MARKER = "[REDACTED_IP]"
HIGH_ENTROPY_MARKER = "[REDACTED_HIGH_ENTROPY]"
CUSTOM_MARKER = "[REDACTED_CUSTOM]"
HOME_MARKER = "~"

# (pattern, replacement) applied in order; earlier shapes win
SECRET_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----"), SECRET_MARKER),
    (re.compile(r"\bsk-ant-[A-Za-z0-9_\-]{20,}"), SECRET_MARKER),
    (re.compile(r"\bsk-(?:proj-)?[A-Za-z0-9_\-]{20,}"), SECRET_MARKER),
    (re.compile(r"\b(?:ghp|gho|ghu|ghs|ghr)_[A-Za-z0-9]{36,}\b"), SECRET_MARKER),
    (re.compile(r"\bgithub_pat_[A-Za-z0-9_]{22,}"), SECRET_MARKER),
    (re.compile(r"\bAKIA[0-9A-Z]{16}\b"), SECRET_MARKER),
    (re.compile(r"\bxox[abprs]-[A-Za-z0-9\-]{10,}"), SECRET_MARKER),
    (re.compile(r"\bhf_[A-Za-z0-9]{30,}\b"), SECRET_MARKER),
    (re.compile(r"\bAIza[0-9A-Za-z_\-]{35}"), SECRET_MARKER),
    (re.compile(r"\beyJ[A-Za-z0-9_\-]{10,}\.eyJ[A-Za-z0-9_\-]{10,}\.[A-Za-z0-9_\-]{10,}"), SECRET_MARKER),
    (re.compile(r"(?i)\b(bearer\s+)(?!\[REDACTED)[A-Za-z0-9_\-.=+/]{16,}"), rf"\1{SECRET_MARKER}"),
    (
        re.compile(r"(?i)\b((?:postgres(?:ql)?|mysql|mongodb(?:\+srv)?|redis|amqp)://)[^\s:/@]+:[^\s@/]+@"),
        rf"\1{SECRET_MARKER}@",
    ),
    (
        re.compile(
            r"(?i)\b([A-Za-z0-9_\-]*(?:api[_-]?key|apikey|secret|password|passwd|pwd|token))"
            r"([\"']?\s*[=:]\s*[\"']?)"
            r"(?!\[REDACTED)(?!\d+\b)([^\s\"'<>,;{}\[\]]{8,})"
        ),
        rf"\1\2{SECRET_MARKER}",
    ),
]

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}\b")
IPV4_PATTERN = re.compile(r"\b(?:(?:25[0-5]|2[0-4]\d|1?\d?\d)\.){3}(?:25[0-5]|2[0-4]\d|1?\d?\d)\b")
_KEEP_IPS = {"127.0.0.1", "0.0.0.0"}

# Dict keys whose string values are credentials regardless of shape
SENSITIVE_KEY_PATTERN = re.compile(
    r"(?i)(?:^|[_\-])(?:api[_-]?key|apikey|secret|client[_-]?secret|password|passwd|token|access[_-]?key)$"
)

PATH_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"(?<![\w.~])/(?:Users|home)/[^/\s\"'`:;,]+"),
    re.compile(r"(?i)\b[A-Z]:\\Users\\[^\\\s\"'`]+"),
]


def shannon_entropy(text: str) -> float:
    """Shannon entropy in bits per character."""
    if not text:
        return 0.0
    length = len(text)
    return -sum((n / length) * math.log2(n / length) for n in Counter(text).values())


class Sanitizer:
    """
    Redacts sensitive content and keeps a cumulative report.

    One instance per export batch; get_report() covers every call made
    against it.
    """

    def __init__(self, config: RedactionConfig | None = None):
        self.config = config or RedactionConfig()
        self._counts: Counter[str] = Counter({c: 0 for c in REDACTION_CATEGORIES})
        self._warnings: list[str] = []
        self._blocked = False
        self._entropy_pattern = re.compile(
            rf"[A-Za-z0-9+=_\-]{{{max(1, self.config.entropy_min_length)},}}"
        )
        self._custom_patterns: list[re.Pattern[str]] = []
        for raw in self.config.custom_regex:
            try:
                self._custom_patterns.append(re.compile(raw))
            except re.error as e:
                logger.warning(f"Ignoring invalid custom redaction pattern {raw!r}: {e}")
                self._warn(f"invalid custom pattern ignored: {raw}")
                # Requested redaction cannot run, so the batch must not ship
                self._blocked = True

    def _warn(self, message: str) -> None:
        if message not in self._warnings:
            self._warnings.append(message)

    def _redact_secrets(self, text: str) -> str:
        for pattern, replacement in SECRET_PATTERNS:
            text, n = pattern.subn(replacement, text)
            self._counts["secrets"] += n
        return text

    def _redact_pii(self, text: str) -> str:
        text, n = EMAIL_PATTERN.subn(EMAIL_MARKER, text)
        self._counts["pii"] += n

        replaced = 0

        def _ip(match: re.Match[str]) -> str:
            nonlocal replaced
            if match.group(0) in _KEEP_IPS:
                return match.group(0)
            replaced += 1
            return IP_MARKER

        text = IPV4_PATTERN.sub(_ip, text)
        self._counts["pii"] += replaced
        return text

    def _redact_paths(self, text: str) -> str:
        for pattern in PATH_PATTERNS:
            text, n = pattern.subn(HOME_MARKER, text)
            self._counts["paths"] += n
        return text

    def _redact_custom(self, text: str) -> str:
        for pattern in self._custom_patterns:
            text, n = pattern.subn(CUSTOM_MARKER, text)
            self._counts["custom"] += n
        return text

    def _is_high_entropy(self, token: str) -> bool:
        has_alpha = any(c.isalpha() for c in token)
        has_digit = any(c.isdigit() for c in token)
        if not (has_alpha and has_digit):
            return False
        return shannon_entropy(token) >= self.config.entropy_threshold

    def _redact_high_entropy(self, text: str) -> str:
        replaced = 0

        def _sub(match: re.Match[str]) -> str:
            nonlocal replaced
            if self._is_high_entropy(match.group(0)):
                replaced += 1
                return HIGH_ENTROPY_MARKER
            return match.group(0)

        text = self._entropy_pattern.sub(_sub, text)
        self._counts["high_entropy"] += replaced
        return text

    def redact_text(self, text: str) -> str:
        """Apply every enabled category to a flat string."""
        if not isinstance(text, str):
            self._warn(f"non-string text passed through: {type(text).__name__}")
            return text
        if not text:
            return text

        if self.config.redact_secrets:
            text = self._redact_secrets(text)
        if self._custom_patterns:
            text = self._redact_custom(text)
        if self.config.redact_pii:
            text = self._redact_pii(text)
        if self.config.redact_paths:
            text = self._redact_paths(text)
        if self.config.enable_high_entropy:
            text = self._redact_high_entropy(text)
        return text

    def redact_object(self, value: Any) -> Any:
        """
        Recursively redact every string leaf of JSON-shaped data.

        Returns a new structure; the input is never mutated. Dict keys are
        kept as-is. Leaves that are not JSON types pass through unchanged and
        are recorded as coverage gaps.
        """
        if isinstance(value, str):
            return self.redact_text(value)
        if isinstance(value, dict):
            return {key: self._redact_entry(key, item) for key, item in value.items()}
        if isinstance(value, list):
            return [self.redact_object(item) for item in value]
        if isinstance(value, tuple):
            return tuple(self.redact_object(item) for item in value)
        if value is None or isinstance(value, (bool, int, float)):
            return value

        type_name = type(value).__name__
        logger.debug(f"Unredactable leaf of type {type_name} passed through")
        self._warn(f"unredactable leaf passed through: {type_name}")
        return value

    def _redact_entry(self, key: Any, item: Any) -> Any:
        if (
            self.config.redact_secrets
            and isinstance(key, str)
            and isinstance(item, str)
            and item
            and item != SECRET_MARKER
            and SENSITIVE_KEY_PATTERN.search(key)
        ):
            self._counts["secrets"] += 1
            return SECRET_MARKER
        return self.redact_object(item)

    def get_report(self) -> RedactionReport:
        """Cumulative counts across all calls on this instance."""
        return RedactionReport(
            counts={c: self._counts.get(c, 0) for c in REDACTION_CATEGORIES},
            residue_warnings=list(self._warnings),
            blocked=self._blocked,
        )


def create_sanitizer(
    redact_secrets: bool = True,
    redact_pii: bool = True,
    redact_paths: bool = True,
    enable_high_entropy: bool = True,
    custom_regex: list[str] | None = None,
    config: RedactionConfig | None = None,
) -> Sanitizer:
    """Build a Sanitizer from toggles, or from an explicit config."""
    if config is None:
        config = RedactionConfig(
            redact_secrets=redact_secrets,
            redact_pii=redact_pii,
            redact_paths=redact_paths,
            enable_high_entropy=enable_high_entropy,
            custom_regex=list(custom_regex or []),
        )
    return Sanitizer(config)


__all__ = [
    "Sanitizer",
    "create_sanitizer",
    "shannon_entropy",
    "SECRET_MARKER",
    "EMAIL_MARKER",
    "IP_MARKER",
    "HIGH_ENTROPY_MARKER",
    "CUSTOM_MARKER",
]
