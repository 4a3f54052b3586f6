"""
Contact API services.

Services:
    - spam_scorer: pure spam scoring of submission text
    - submission_limiter: per-sender limits over a trailing window
    - contact_repository: SQLAlchemy persistence of submissions
    - notification_service: confirmation and admin emails
    - contact_service: the submission workflow tying them together
"""

from .spam_scorer import (
    DEFAULT_SPAM_POLICY,
    ScoreResult,
    SpamPolicy,
    classify_submission_type,
    score_submission,
)
from .submission_limiter import (
    DEFAULT_LIMIT_POLICY,
    LimitPolicy,
    LimitResult,
    RecentCountQuery,
    SubmissionCounter,
    check_limit,
    failure_result,
)

__all__ = [
    # Spam scorer
    "DEFAULT_SPAM_POLICY",
    "ScoreResult",
    "SpamPolicy",
    "classify_submission_type",
    "score_submission",
    # Submission limiter
    "DEFAULT_LIMIT_POLICY",
    "LimitPolicy",
    "LimitResult",
    "RecentCountQuery",
    "SubmissionCounter",
    "check_limit",
    "failure_result",
]
