"""
Contact API workers package
Celery tasks for notification delivery
"""

from .celery_app import celery_app

__all__ = ['celery_app']
