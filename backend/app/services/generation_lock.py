from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import time
import uuid

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from app.core.exceptions import LockContentionError, TransientGenerationError
from app.models.timetable_generation import TimetableGenerationLock

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TimetableLease:
    timetable_id: str
    owner_token: str
    run_id: str | None
    expires_at: datetime


class TimetableLockManager:
    """Exclusive, TTL-bounded generation lock per timetable.

    Backed by one row in ``timetable_generation_locks``; the primary key makes
    acquisition atomic and an expired row can be taken over, so a crashed
    holder never blocks generation for longer than the TTL.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        ttl_seconds: int,
        wait_seconds: float,
        poll_seconds: float = 0.25,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._ttl = timedelta(seconds=max(1, ttl_seconds))
        self._wait_seconds = max(0.0, wait_seconds)
        self._poll_seconds = max(0.01, poll_seconds)
        self._clock = clock
        self._sleep = sleep

    def acquire(self, timetable_id: str, *, run_id: str | None = None) -> TimetableLease:
        token = str(uuid.uuid4())
        deadline = time.monotonic() + self._wait_seconds
        while True:
            lease = self._try_acquire(timetable_id, token=token, run_id=run_id)
            if lease is not None:
                logger.debug("Acquired generation lock for timetable %s (run %s)", timetable_id, run_id)
                return lease
            if time.monotonic() >= deadline:
                logger.info("Generation lock for timetable %s is held by another run", timetable_id)
                raise LockContentionError(timetable_id)
            self._sleep(self._poll_seconds)

    def release(self, lease: TimetableLease) -> None:
        try:
            with self._session_factory() as db:
                db.execute(
                    delete(TimetableGenerationLock).where(
                        TimetableGenerationLock.timetable_id == lease.timetable_id,
                        TimetableGenerationLock.owner_token == lease.owner_token,
                    )
                )
                db.commit()
        except OperationalError:
            # The lease still expires on its own once the TTL passes.
            logger.exception("Unable to release generation lock for timetable %s", lease.timetable_id)
            return
        logger.debug("Released generation lock for timetable %s", lease.timetable_id)

    @contextmanager
    def hold(self, timetable_id: str, *, run_id: str | None = None) -> Iterator[TimetableLease]:
        lease = self.acquire(timetable_id, run_id=run_id)
        try:
            yield lease
        finally:
            self.release(lease)

    def is_locked(self, db: Session, timetable_id: str) -> bool:
        holder = db.execute(
            select(TimetableGenerationLock.timetable_id).where(
                TimetableGenerationLock.timetable_id == timetable_id,
                TimetableGenerationLock.expires_at > self._clock(),
            )
        ).scalar_one_or_none()
        return holder is not None

    def _try_acquire(self, timetable_id: str, *, token: str, run_id: str | None) -> TimetableLease | None:
        now = self._clock()
        expires_at = now + self._ttl
        try:
            with self._session_factory() as db:
                db.add(
                    TimetableGenerationLock(
                        timetable_id=timetable_id,
                        owner_token=token,
                        run_id=run_id,
                        acquired_at=now,
                        expires_at=expires_at,
                    )
                )
                try:
                    db.commit()
                    return TimetableLease(timetable_id, token, run_id, expires_at)
                except IntegrityError:
                    db.rollback()

                taken_over = db.execute(
                    update(TimetableGenerationLock)
                    .where(
                        TimetableGenerationLock.timetable_id == timetable_id,
                        TimetableGenerationLock.expires_at <= now,
                    )
                    .values(owner_token=token, run_id=run_id, acquired_at=now, expires_at=expires_at)
                )
                db.commit()
                if taken_over.rowcount == 1:
                    logger.warning("Took over expired generation lock for timetable %s", timetable_id)
                    return TimetableLease(timetable_id, token, run_id, expires_at)
                return None
        except OperationalError as exc:
            raise TransientGenerationError(
                "Database unavailable while acquiring generation lock",
                details={"timetable_id": timetable_id},
            ) from exc
