from __future__ import annotations

from collections.abc import Generator

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.orm import Session, sessionmaker

from checkins.application.collaborators import Collaborators
from checkins.infrastructure.config import DatabaseConfig, get_settings
from checkins.infrastructure.db import create_database_engine, create_session_factory
from checkins.infrastructure.logging import clear_context, set_context


def get_db_config(request: Request) -> DatabaseConfig:
    config = getattr(request.app.state, "db_config", None)
    if config is None:
        config = get_settings().database
        request.app.state.db_config = config
    return config


def get_session_factory(request: Request) -> sessionmaker[Session]:
    cached_factory = getattr(request.app.state, "session_factory", None)
    if cached_factory is not None:
        return cached_factory

    engine = create_database_engine(get_db_config(request))
    session_factory = create_session_factory(engine)
    request.app.state.session_factory = session_factory
    return session_factory


def get_db_session(request: Request) -> Generator[Session, None, None]:
    session_factory = get_session_factory(request)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def get_actor(
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
) -> Generator[int, None, None]:
    """The acting person's id from the ``X-Actor-Id`` header."""
    if x_actor_id is None or not x_actor_id.strip().isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id header with a person id is required",
        )
    actor = int(x_actor_id)
    set_context(actor_id=actor)
    try:
        yield actor
    finally:
        clear_context()


def get_collaborators(request: Request) -> Collaborators:
    collaborators = getattr(request.app.state, "collaborators", None)
    if collaborators is None:
        collaborators = Collaborators.default()
        request.app.state.collaborators = collaborators
    return collaborators
