from sqlalchemy import Boolean, CheckConstraint, Column, Index, Integer, String, Text

from app.db.base import Base, TimestampMixin, UUIDMixin

STATUS_PENDING = "pending"
STATUS_REVIEWED = "reviewed"
STATUS_REPLIED = "replied"
STATUS_ARCHIVED = "archived"
SUBMISSION_STATUSES = (STATUS_PENDING, STATUS_REVIEWED, STATUS_REPLIED, STATUS_ARCHIVED)

TYPE_NORMAL = "normal"
TYPE_SUSPICIOUS = "suspicious"
TYPE_BLOCKED = "blocked"
SUBMISSION_TYPES = (TYPE_NORMAL, TYPE_SUSPICIOUS, TYPE_BLOCKED)


class ContactSubmission(Base, UUIDMixin, TimestampMixin):
    """
    A message sent through the portfolio contact form.

    Rows are written once by the submit endpoint with status "pending";
    later status changes belong to admin tooling.
    """

    __tablename__ = "contact_submissions"

    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    subject = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)

    # Request metadata
    ip_address = Column(String(45), nullable=False)
    user_agent = Column(String(500))

    # Spam verdict
    spam_score = Column(Integer, nullable=False, default=0)
    is_spam = Column(Boolean, nullable=False, default=False)
    submission_type = Column(String(20), nullable=False, default=TYPE_NORMAL, index=True)

    status = Column(String(20), nullable=False, default=STATUS_PENDING)

    __table_args__ = (
        CheckConstraint(
            "spam_score BETWEEN 0 AND 10", name="contact_submissions_spam_score_check"
        ),
        CheckConstraint(
            "submission_type IN ('normal', 'suspicious', 'blocked')",
            name="contact_submissions_type_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'reviewed', 'replied', 'archived')",
            name="contact_submissions_status_check",
        ),
        Index("ix_contact_submissions_email_created", "email", "created_at"),
        Index("ix_contact_submissions_ip_created", "ip_address", "created_at"),
        Index("ix_contact_submissions_spam_created", "is_spam", "created_at"),
        Index("ix_contact_submissions_score_created", "spam_score", "created_at"),
        Index("ix_contact_submissions_status_created", "status", "created_at"),
    )

    def __repr__(self):
        return (
            f"<ContactSubmission(id={self.id}, type={self.submission_type}, "
            f"status={self.status})>"
        )
