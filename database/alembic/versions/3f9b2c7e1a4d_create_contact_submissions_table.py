"""create_contact_submissions_table

Revision ID: 3f9b2c7e1a4d
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3f9b2c7e1a4d"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "contact_submissions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("ip_address", sa.String(length=45), nullable=False),
        sa.Column("user_agent", sa.String(length=500)),
        sa.Column("spam_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_spam", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "submission_type",
            sa.String(length=20),
            nullable=False,
            server_default="normal",
        ),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "spam_score BETWEEN 0 AND 10",
            name="contact_submissions_spam_score_check",
        ),
        sa.CheckConstraint(
            "submission_type IN ('normal', 'suspicious', 'blocked')",
            name="contact_submissions_type_check",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'reviewed', 'replied', 'archived')",
            name="contact_submissions_status_check",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index(
        "ix_contact_submissions_created_at",
        "contact_submissions",
        ["created_at"],
        unique=False,
    )
    op.create_index(
        "ix_contact_submissions_submission_type",
        "contact_submissions",
        ["submission_type"],
        unique=False,
    )
    op.create_index(
        "ix_contact_submissions_email_created",
        "contact_submissions",
        ["email", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_contact_submissions_ip_created",
        "contact_submissions",
        ["ip_address", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_contact_submissions_spam_created",
        "contact_submissions",
        ["is_spam", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_contact_submissions_score_created",
        "contact_submissions",
        ["spam_score", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_contact_submissions_status_created",
        "contact_submissions",
        ["status", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_contact_submissions_status_created", table_name="contact_submissions")
    op.drop_index("ix_contact_submissions_score_created", table_name="contact_submissions")
    op.drop_index("ix_contact_submissions_spam_created", table_name="contact_submissions")
    op.drop_index("ix_contact_submissions_ip_created", table_name="contact_submissions")
    op.drop_index("ix_contact_submissions_email_created", table_name="contact_submissions")
    op.drop_index("ix_contact_submissions_submission_type", table_name="contact_submissions")
    op.drop_index("ix_contact_submissions_created_at", table_name="contact_submissions")
    op.drop_table("contact_submissions")
