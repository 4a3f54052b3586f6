"""
Import every model in one place so Base.metadata sees them.

Usage:
    from app.models import ContactSubmission
"""

from app.db.base import Base

from .contact import ContactSubmission

__all__ = ["Base", "ContactSubmission"]
