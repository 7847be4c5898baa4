"""FastAPI dependencies for database access, the job queue and internal auth."""

from typing import Generator

from fastapi import Header, Request
from sqlalchemy.orm import Session

from qcsat.core.config import settings
from qcsat.core.errors import ForbiddenError, ServiceUnavailableError
from qcsat.core.security import verify_secret
from qcsat.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_job_queue(request: Request):
    """The JobQueue created at startup. 503 when Redis is not configured."""
    queue = getattr(request.app.state, "job_queue", None)
    if queue is None:
        raise ServiceUnavailableError("Job queue not configured")
    return queue


def verify_internal_secret(x_internal_secret: str | None = Header(None)) -> None:
    """Verify the internal secret header."""
    if not settings.INTERNAL_SECRET:
        raise ServiceUnavailableError("INTERNAL_SECRET not configured")
    if not verify_secret(x_internal_secret, settings.INTERNAL_SECRET):
        raise ForbiddenError("Invalid internal secret")
