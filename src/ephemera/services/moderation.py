# src/ephemera/services/moderation.py
"""Automatic content moderation based on patterns and heuristics.

The engine is synchronous, stateless per call and deterministic: the same
text always yields the same verdict, so every rule can be unit tested in
isolation.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field

from ephemera.core.settings import Settings

logger = logging.getLogger(__name__)

ACTION_ALLOW = "allow"
ACTION_WARN = "warn"
ACTION_BLOCK = "block"

SCORE_BANNED = 100
SCORE_SPAM = 80
SCORE_TOO_SHORT = 50
SCORE_WARNING_MATCH = 30
SCORE_EXCESSIVE_CAPS = 20
SCORE_MAX = 100

# Locale letters that NFKD does not fold (dotless i) or that we want folded
# before decomposition.
_LOCALE_FOLD = str.maketrans({"ı": "i", "ğ": "g", "ü": "u", "ş": "s", "ö": "o", "ç": "c"})
_WHITESPACE = re.compile(r"\s+")
_UPPERCASE = re.compile(r"[A-ZĞÜŞİÖÇ]")

# Matched against normalized (lower-cased, folded) text.
DEFAULT_BANNED_PATTERNS = (
    # Threats
    r"\b(oldur|oldururum|gebertir|gebertecegim|keserim|vururum|yakalarim)\b",
    r"seni\s+(oldur|gebert|kes|vur)",
    r"\b(i\s*will|i'll|im\s+going\s+to|i'm\s+going\s+to)\s+(kill|stab|shoot)\s+you\b",
    # Doxxing: national ID and phone numbers
    r"\btc\s*:?\s*\d{11}\b",
    r"\btel\s*:?\s*0?\d{10}\b",
)

DEFAULT_WARNING_PATTERNS = (
    r"\b(salak|aptal|gerizekali|dangalak)\b",
    r"\b(idiot|stupid|moron|loser)\b",
)

# (pattern, flags, match against raw text instead of normalized text)
_SPAM_RULES = (
    # Same character six or more times in a row
    (r"(.)\1{5,}", 0, False),
    # All-caps span of fifty or more characters
    (r"[A-ZĞÜŞİÖÇ][A-ZĞÜŞİÖÇ\s]{48,}[A-ZĞÜŞİÖÇ]", 0, True),
    # Three or more URLs clustered together
    (r"(https?://\S+\s*){3,}", 0, False),
    # Several long digit runs (phone-number spam)
    (r"\d{10,}.*\d{10,}", 0, False),
)


@dataclass
class ModerationResult:
    """Full verdict for a piece of text."""

    action: str = ACTION_ALLOW
    reasons: list[str] = field(default_factory=list)
    score: int = 0


@dataclass(frozen=True)
class PostModeration:
    """Caller-facing projection of a verdict."""

    allowed: bool
    auto_gray: bool
    reasons: list[str]
    score: int


def normalize(content: str) -> str:
    """Lower-case, fold diacritics and collapse whitespace."""
    text = content.lower().translate(_LOCALE_FOLD)
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return _WHITESPACE.sub(" ", text).strip()


class ContentModerationService:
    """Scores submitted text into allow / warn / block."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.banned_patterns: list[re.Pattern[str]] = [
            re.compile(pattern, re.IGNORECASE) for pattern in DEFAULT_BANNED_PATTERNS
        ]
        self.warning_patterns: list[re.Pattern[str]] = [
            re.compile(pattern, re.IGNORECASE) for pattern in DEFAULT_WARNING_PATTERNS
        ]
        self.spam_patterns: list[tuple[re.Pattern[str], bool]] = [
            (re.compile(pattern, flags), raw) for pattern, flags, raw in _SPAM_RULES
        ]
        for pattern in settings.banned_patterns:
            self.add_banned_pattern(pattern)

    def analyze(self, content: str) -> ModerationResult:
        """Run the moderation pipeline, short-circuiting on hard matches."""
        result = ModerationResult()
        raw = _WHITESPACE.sub(" ", content or "").strip()
        normalized = normalize(raw)

        for pattern in self.banned_patterns:
            if pattern.search(normalized):
                return ModerationResult(ACTION_BLOCK, ["banned_content"], SCORE_BANNED)

        for pattern, use_raw in self.spam_patterns:
            if pattern.search(raw if use_raw else normalized):
                return ModerationResult(ACTION_BLOCK, ["spam"], SCORE_SPAM)

        for pattern in self.warning_patterns:
            if pattern.search(normalized):
                result.action = ACTION_WARN
                result.reasons.append("potentially_offensive")
                result.score += SCORE_WARNING_MATCH

        if len(raw) < self.settings.moderation_min_length:
            result.action = ACTION_BLOCK
            result.reasons.append("too_short")
            result.score = SCORE_TOO_SHORT

        if len(raw) > self.settings.caps_min_length:
            caps_ratio = len(_UPPERCASE.findall(raw)) / len(raw)
            if caps_ratio > self.settings.caps_ratio_threshold:
                result.score += SCORE_EXCESSIVE_CAPS
                result.reasons.append("excessive_caps")

        result.score = min(result.score, SCORE_MAX)
        if result.score >= self.settings.moderation_warn_score and result.action != ACTION_BLOCK:
            result.action = ACTION_WARN

        return result

    def moderate_post(self, content: str) -> PostModeration:
        """Return whether the text may be posted and whether to gray it out."""
        result = self.analyze(content)
        if result.action != ACTION_ALLOW:
            logger.info("Auto-moderation %s: reasons=%s score=%d", result.action, result.reasons, result.score)
        return PostModeration(
            allowed=result.action != ACTION_BLOCK,
            auto_gray=result.action == ACTION_WARN,
            reasons=list(result.reasons),
            score=result.score,
        )

    def is_allowed(self, content: str) -> bool:
        """Return True when the text passes without any verdict."""
        return self.analyze(content).action == ACTION_ALLOW

    def should_warn(self, content: str) -> bool:
        """Return True when the text would be grayed out."""
        return self.analyze(content).action == ACTION_WARN

    def add_banned_pattern(self, pattern: str | re.Pattern[str]) -> None:
        """Register an extra hard-block pattern (matched on normalized text)."""
        if isinstance(pattern, str):
            pattern = re.compile(pattern, re.IGNORECASE)
        self.banned_patterns.append(pattern)

    def stats(self) -> dict[str, int]:
        """Return the number of active patterns per category."""
        return {
            "banned_patterns": len(self.banned_patterns),
            "warning_patterns": len(self.warning_patterns),
            "spam_patterns": len(self.spam_patterns),
        }
