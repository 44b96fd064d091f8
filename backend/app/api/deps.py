from collections.abc import Callable, Generator

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings, get_settings
from app.db.session import SessionLocal
from app.services.generation import GenerationCoordinator, make_coordinator_factory
from app.services.generation_jobs import GenerationJobRunner
from app.services.generation_lock import TimetableLockManager


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker[Session]:
    return SessionLocal


def get_lock_manager(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> TimetableLockManager:
    return TimetableLockManager(
        session_factory,
        ttl_seconds=settings.generation_lock_ttl_seconds,
        wait_seconds=settings.generation_lock_wait_seconds,
        poll_seconds=settings.generation_lock_poll_seconds,
    )


def get_coordinator_factory(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> Callable[[], GenerationCoordinator]:
    return make_coordinator_factory(session_factory, settings=settings)


def get_job_runner(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
    coordinator_factory: Callable[[], GenerationCoordinator] = Depends(get_coordinator_factory),
) -> GenerationJobRunner:
    return GenerationJobRunner(session_factory, settings=settings, coordinator_factory=coordinator_factory)
