from typing import Callable, Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from app.db import session as db_session
from app.services.contact_repository import ContactRepository
from app.services.contact_service import ContactService


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Usage:
        @router.get("/items")
        def get_items(db: Session = Depends(get_db)):
            ...
    """
    yield from db_session.get_db()


def get_session_factory() -> Callable[[], Session]:
    return db_session.get_session_factory()


def get_contact_repository(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> ContactRepository:
    return ContactRepository(session_factory)


def get_contact_service(
    repository: ContactRepository = Depends(get_contact_repository),
) -> ContactService:
    """Contact service bound to the request's repository."""
    return ContactService(repository)
