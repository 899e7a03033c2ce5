"""
FastAPI dependencies: database session, actor id, clock, config, service.

Tests override ``get_db``, ``get_clock`` and ``get_config`` through
``app.dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from transformation_kernel.db.engine import get_session
from transformation_kernel.domain.clock import Clock, SystemClock
from transformation_kernel.exceptions import ValidationError
from transformation_modules.transformation.config import TransformationConfig
from transformation_modules.transformation.service import TransformationService

ACTOR_HEADER = "X-Actor-Id"


def get_db() -> Generator[Session, None, None]:
    """One session per request; the service owns commit and rollback."""
    session = get_session()
    try:
        yield session
    finally:
        session.close()


def get_actor_id(x_actor_id: str | None = Header(default=None, alias=ACTOR_HEADER)) -> UUID:
    """Identity is upstream; the actor arrives as an opaque UUID header."""
    if not x_actor_id:
        raise ValidationError(f"{ACTOR_HEADER} header is required", field=ACTOR_HEADER)
    try:
        actor_id = UUID(x_actor_id)
    except ValueError:
        raise ValidationError(f"{ACTOR_HEADER} header must be a UUID", field=ACTOR_HEADER)
    return actor_id


def get_clock() -> Clock:
    return SystemClock()


@lru_cache(maxsize=1)
def _active_config() -> TransformationConfig:
    return TransformationConfig.from_active()


def get_config() -> TransformationConfig:
    return _active_config()


def get_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    config: TransformationConfig = Depends(get_config),
) -> TransformationService:
    return TransformationService(db, clock=clock, config=config)
