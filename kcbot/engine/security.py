"""
kcbot.engine.security — Input sanitizer & abuse heuristics
===========================================================

``sanitize_input`` strips markup-ish fragments from free text before it is
forwarded anywhere (e.g. the /summary prompt).  ``detect_abuse`` scores a
message with additive heuristics.  The score is advisory: callers log it,
nothing here blocks a message.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass

logger = logging.getLogger("kcbot.security")

# ---------------------------------------------------------------------------
# Heuristic weights & thresholds
# ---------------------------------------------------------------------------
FLOOD_SCORE = 30
CAPS_SCORE = 20
SUSPICIOUS_SCORE = 40
EMOJI_SCORE = 15
SPAM_THRESHOLD = 50

_CAPS_RATIO = 0.7
_CAPS_MIN_LENGTH = 10
_EMOJI_RATIO = 0.3
_EMOJI_MIN_LENGTH = 5

_FLOOD_RE = re.compile(r"(.)\1{10,}")
_UPPER_RE = re.compile(r"[A-Z]")
_EMOJI_RE = re.compile(
    "[\U0001F600-\U0001F64F"
    "\U0001F300-\U0001F5FF"
    "\U0001F680-\U0001F6FF"
    "\u2600-\u26FF"
    "\u2700-\u27BF]"
)
SUSPICIOUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"bit\.ly", re.IGNORECASE),
    re.compile(r"tinyurl", re.IGNORECASE),
    re.compile(r"telegram\.me/joinchat", re.IGNORECASE),
    re.compile(r"discord\.gg", re.IGNORECASE),
    re.compile(r"free.*crypto", re.IGNORECASE),
    re.compile(r"click.*here.*now", re.IGNORECASE),
)

_ANGLE_RE = re.compile(r"[<>]")
_JS_PROTOCOL_RE = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"on\w+=", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class AbuseReport:
    is_spam: bool = False
    is_flood: bool = False
    contains_suspicious_content: bool = False
    score: int = 0

    def to_dict(self) -> dict[str, bool | int]:
        return asdict(self)


def sanitize_input(value: object, max_length: int = 1000) -> str | None:
    """Strip angle brackets, ``javascript:`` and ``on*=`` handlers, trim,
    then hard-cut to *max_length* characters.

    Returns None for non-string or empty input.
    """
    if not isinstance(value, str) or not value:
        return None

    cleaned = _ANGLE_RE.sub("", value)
    cleaned = _JS_PROTOCOL_RE.sub("", cleaned)
    cleaned = _EVENT_HANDLER_RE.sub("", cleaned)
    cleaned = cleaned.strip()
    return cleaned[:max_length]


def detect_abuse(text: str | None) -> AbuseReport:
    """Score *text* for flooding, shouting, suspicious links and emoji spam."""
    if not text:
        return AbuseReport()

    length = len(text)
    score = 0

    is_flood = _FLOOD_RE.search(text) is not None
    if is_flood:
        score += FLOOD_SCORE

    caps_ratio = len(_UPPER_RE.findall(text)) / length
    if caps_ratio > _CAPS_RATIO and length > _CAPS_MIN_LENGTH:
        score += CAPS_SCORE

    suspicious = any(p.search(text) for p in SUSPICIOUS_PATTERNS)
    if suspicious:
        score += SUSPICIOUS_SCORE

    emoji_count = len(_EMOJI_RE.findall(text))
    if emoji_count > length * _EMOJI_RATIO and length > _EMOJI_MIN_LENGTH:
        score += EMOJI_SCORE

    return AbuseReport(
        is_spam=score >= SPAM_THRESHOLD,
        is_flood=is_flood,
        contains_suspicious_content=suspicious,
        score=score,
    )


def log_security_event(
    event: str,
    details: str,
    user_id: str | None = None,
    platform: str | None = None,
) -> None:
    """Emit a WARNING on the ``kcbot.security`` logger."""
    suffix = ""
    if user_id:
        suffix += f" - User: {user_id}"
    if platform:
        suffix += f" - Platform: {platform}"
    logger.warning("[SECURITY] %s: %s%s", event, details, suffix)
