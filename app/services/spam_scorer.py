"""
Spam scoring for contact submissions.

Weighted additive heuristic over the submission's text fields. The result is
an integer in [0, 10]; anything at or above the policy threshold is spam.

Pure: no I/O, no module state. Every weight lives on SpamPolicy so the
thresholds and tables can be tuned from configuration.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple

from app.core.config import settings

MIN_SCORE = 0
MAX_SCORE = 10

DEFAULT_SPAM_KEYWORDS: Tuple[str, ...] = (
    "urgent",
    "money",
    "free",
    "winner",
    "prize",
    "click here",
    "buy now",
    "limited time",
    "act now",
    "special promotion",
    "cash",
    "profit",
    "make money",
    "work from home",
    "get rich",
    "viagra",
    "casino",
    "lottery",
    "credit card",
    "loan",
    "mortgage",
    "insurance",
)

DEFAULT_SUSPICIOUS_TLDS: Tuple[str, ...] = (
    "tk",
    "ml",
    "ga",
    "cf",
    "gq",
    "xyz",
    "top",
    "click",
    "loan",
    "work",
)

_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
_REPEATED_RUN_RE = re.compile(r"(.)\1{4,}", re.DOTALL)
_DIGITS_RE = re.compile(r"^\d+$")


@dataclass(frozen=True)
class SpamPolicy:
    keywords: Tuple[str, ...] = DEFAULT_SPAM_KEYWORDS
    keyword_weight: int = 2
    keyword_cap: int = 6

    caps_high_ratio: float = 0.6
    caps_high_weight: int = 3
    caps_low_ratio: float = 0.4
    caps_low_weight: int = 1

    url_weight: int = 3
    url_cap: int = 6

    suspicious_tlds: Tuple[str, ...] = DEFAULT_SUSPICIOUS_TLDS
    suspicious_tld_weight: int = 2
    long_local_part: int = 30
    long_local_part_weight: int = 1
    numeric_local_part_weight: int = 2
    double_dot_weight: int = 1

    short_name: int = 3
    short_name_weight: int = 1
    numeric_name_weight: int = 2
    name_matches_local_part_weight: int = 1

    min_words: int = 5
    max_words: int = 200
    word_count_weight: int = 1
    repeated_run_weight: int = 1

    threshold: int = 5
    block_threshold: int = 8

    _keyword_patterns: Tuple[re.Pattern, ...] = field(
        init=False, repr=False, compare=False
    )
    _keyword_strip_re: Optional[re.Pattern] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self):
        # Word boundaries keep "free" from matching "freelance"
        patterns = tuple(
            re.compile(r"\b" + re.escape(keyword.lower()) + r"\b", re.IGNORECASE)
            for keyword in self.keywords
        )
        object.__setattr__(self, "_keyword_patterns", patterns)

        # Longest first so "make money" goes as a whole, not just "money"
        ordered = sorted({k.lower() for k in self.keywords if k}, key=len, reverse=True)
        strip_re = (
            re.compile(
                r"\b(?:" + "|".join(re.escape(k) for k in ordered) + r")\b",
                re.IGNORECASE,
            )
            if ordered
            else None
        )
        object.__setattr__(self, "_keyword_strip_re", strip_re)

    @classmethod
    def from_settings(cls) -> "SpamPolicy":
        return cls(
            threshold=settings.SPAM_THRESHOLD,
            block_threshold=settings.SPAM_BLOCK_THRESHOLD,
        )


DEFAULT_SPAM_POLICY = SpamPolicy()


@dataclass(frozen=True)
class ScoreResult:
    score: int
    is_spam: bool
    submission_type: str
    flags: Tuple[str, ...] = ()


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _keyword_points(full_text: str, policy: SpamPolicy, flags: list) -> int:
    hits = [
        keyword
        for keyword, pattern in zip(policy.keywords, policy._keyword_patterns)
        if pattern.search(full_text)
    ]
    if hits:
        flags.append("keywords:" + ",".join(hits))
    return min(len(hits) * policy.keyword_weight, policy.keyword_cap)


def _without_keywords(message: str, policy: SpamPolicy) -> str:
    """Message with spam keywords removed and whitespace collapsed.

    Caps ratio, word count and repeated runs are measured on this text, so
    another keyword occurrence only ever moves the keyword term.
    """
    if policy._keyword_strip_re is not None:
        message = policy._keyword_strip_re.sub("", message)
    return " ".join(message.split())


def _caps_points(message: str, policy: SpamPolicy, flags: list) -> int:
    if not message:
        return 0
    ratio = sum(1 for ch in message if ch.isupper()) / len(message)
    if ratio > policy.caps_high_ratio:
        flags.append("caps_high")
        return policy.caps_high_weight
    if ratio > policy.caps_low_ratio:
        flags.append("caps_moderate")
        return policy.caps_low_weight
    return 0


def _url_points(message: str, policy: SpamPolicy, flags: list) -> int:
    url_count = len(_URL_RE.findall(message))
    if url_count:
        flags.append(f"urls:{url_count}")
    return min(url_count * policy.url_weight, policy.url_cap)


def _email_points(email: str, policy: SpamPolicy, flags: list) -> int:
    if not email:
        return 0
    local_part, _, domain = email.lower().partition("@")
    points = 0

    tld = domain.rsplit(".", 1)[-1] if "." in domain else ""
    if tld and tld in policy.suspicious_tlds:
        flags.append("suspicious_tld")
        points += policy.suspicious_tld_weight
    if len(local_part) > policy.long_local_part:
        flags.append("long_local_part")
        points += policy.long_local_part_weight
    if _DIGITS_RE.match(local_part):
        flags.append("numeric_local_part")
        points += policy.numeric_local_part_weight
    if ".." in local_part:
        flags.append("double_dot_local_part")
        points += policy.double_dot_weight
    return points


def _name_points(name: str, email: str, policy: SpamPolicy, flags: list) -> int:
    if not name:
        return 0
    points = 0
    if len(name) < policy.short_name:
        flags.append("short_name")
        points += policy.short_name_weight
    if _DIGITS_RE.match(name):
        flags.append("numeric_name")
        points += policy.numeric_name_weight
    local_part = email.partition("@")[0]
    if local_part and name.lower() == local_part.lower():
        flags.append("name_matches_email")
        points += policy.name_matches_local_part_weight
    return points


def _structure_points(message: str, policy: SpamPolicy, flags: list) -> int:
    if not message:
        return 0
    points = 0
    word_count = len(message.split())
    if word_count < policy.min_words:
        flags.append("short_message")
        points += policy.word_count_weight
    elif word_count > policy.max_words:
        flags.append("long_message")
        points += policy.word_count_weight

    runs = len(_REPEATED_RUN_RE.findall(message))
    if runs:
        flags.append(f"repeated_runs:{runs}")
        points += runs * policy.repeated_run_weight
    return points


def classify_submission_type(
    score: int, policy: SpamPolicy = DEFAULT_SPAM_POLICY
) -> str:
    """normal / suspicious / blocked, by threshold."""
    if score >= policy.block_threshold:
        return "blocked"
    if score >= policy.threshold:
        return "suspicious"
    return "normal"


def score_submission(
    fields: Optional[Mapping[str, Any]],
    policy: SpamPolicy = DEFAULT_SPAM_POLICY,
) -> ScoreResult:
    """
    Score a submission's name, email, subject and message.

    Missing keys and non-string values count as empty text, so the call
    never raises on malformed input and all-empty input scores 0.
    """
    fields = fields or {}
    name = _text(fields.get("name"))
    email = _text(fields.get("email"))
    subject = _text(fields.get("subject"))
    message = _text(fields.get("message"))

    flags: list = []
    full_text = " ".join((message, subject, name)).lower()
    shape = _without_keywords(message, policy)

    score = (
        _keyword_points(full_text, policy, flags)
        + _caps_points(shape, policy, flags)
        + _url_points(message, policy, flags)
        + _email_points(email, policy, flags)
        + _name_points(name, email, policy, flags)
        + _structure_points(shape, policy, flags)
    )
    score = max(MIN_SCORE, min(score, MAX_SCORE))

    return ScoreResult(
        score=score,
        is_spam=score >= policy.threshold,
        submission_type=classify_submission_type(score, policy),
        flags=tuple(flags),
    )
